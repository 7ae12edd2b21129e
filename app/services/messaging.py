"""Outbound chat messages via the Telegram Bot API."""

from __future__ import annotations

import logging

import httpx

from app.core.errors import DeliveryFailure

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramClient:
    """Sends HTML-formatted messages to a chat id.

    The http client can be injected (tests pass one built on
    httpx.MockTransport); otherwise a short-lived one is opened per send.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        timeout: float = 5.0,
        base_url: str = TELEGRAM_API_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"{base_url}/bot{bot_token}/sendMessage"
        self._timeout = timeout
        self._http = http_client

    async def send(self, chat_id: str, message: str) -> None:
        """Deliver one message. Raises DeliveryFailure on any error."""
        body = {"chat_id": chat_id, "text": message, "parse_mode": "HTML"}
        try:
            if self._http is not None:
                resp = await self._http.post(self._url, json=body, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=body)
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"Telegram request failed: {e}") from e

        if resp.status_code != 200:
            raise DeliveryFailure(
                f"Telegram rejected message: HTTP {resp.status_code}"
            )
        # The Bot API reports some failures with 200 and ok=false.
        try:
            ok = resp.json().get("ok", False)
        except ValueError:
            ok = False
        if not ok:
            raise DeliveryFailure("Telegram rejected message: ok=false")
        logger.info("Telegram message delivered chat_id=%s", chat_id)
