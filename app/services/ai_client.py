"""Generative-model clients.

Two wire formats are supported, selected by AI_PROVIDER:

  gemini  POST {base}/models/{model}:generateContent
          structured output via generationConfig.responseSchema
  openai  POST {base}/chat/completions (OpenAI, OpenRouter, DeepSeek, ...)
          structured output via response_format=json_schema

Both expose the same coroutine, complete(prompt, response_schema=None),
returning the model's raw text.  Every failure surfaces as ProviderError
with a machine-readable code:

  timeout          the call exceeded AI_TIMEOUT_SECONDS
  quota_exceeded   HTTP 429 from the provider
  provider_error   any other HTTP or transport failure
  invalid_response the provider answered 2xx but without usable text
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx

from app.core.config import Settings
from app.core.errors import ProviderError
from app.core.metrics import MODEL_CALL_DURATION

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    provider: str
    model: str

    async def complete(
        self, prompt: str, *, response_schema: dict[str, Any] | None = None
    ) -> str: ...


class _HttpModelClient:
    provider = ""

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None,
        base_url: str,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = http_client

    async def _post_json(
        self, url: str, body: dict[str, Any], headers: dict[str, str]
    ) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            if self._http is not None:
                resp = await self._http.post(
                    url, json=body, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=body, headers=headers)
        except httpx.TimeoutException:
            raise ProviderError(
                f"Model call timed out after {self._timeout:g}s", code="timeout"
            ) from None
        except httpx.HTTPError as e:
            raise ProviderError(f"Model call failed: {e}") from e
        finally:
            MODEL_CALL_DURATION.labels(provider=self.provider).observe(
                time.perf_counter() - start
            )

        if resp.status_code == 429:
            raise ProviderError(
                "Model provider quota exceeded",
                code="quota_exceeded",
                status_code=429,
            )
        if resp.status_code >= 400:
            logger.warning(
                "Model provider error provider=%s status=%s body=%s",
                self.provider,
                resp.status_code,
                resp.text[:500],
            )
            raise ProviderError(
                f"Model provider returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            raise ProviderError(
                "Model provider returned a non-JSON body", code="invalid_response"
            ) from None


def _gemini_schema(schema: Any) -> Any:
    """Gemini's schema dialect spells types in upper case."""
    if isinstance(schema, dict):
        return {
            k: (v.upper() if k == "type" and isinstance(v, str) else _gemini_schema(v))
            for k, v in schema.items()
        }
    if isinstance(schema, list):
        return [_gemini_schema(v) for v in schema]
    return schema


class GeminiClient(_HttpModelClient):
    provider = "gemini"

    async def complete(
        self, prompt: str, *, response_schema: dict[str, Any] | None = None
    ) -> str:
        body: dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if response_schema is not None:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": _gemini_schema(response_schema),
            }
        headers = {"x-goog-api-key": self._api_key or ""}
        url = f"{self._base_url}/models/{self.model}:generateContent"

        data = await self._post_json(url, body, headers)
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError):
            raise ProviderError(
                "Gemini response has no candidates", code="invalid_response"
            ) from None
        if not text.strip():
            raise ProviderError("Gemini returned empty text", code="invalid_response")
        return text


class OpenAICompatibleClient(_HttpModelClient):
    provider = "openai"

    async def complete(
        self, prompt: str, *, response_schema: dict[str, Any] | None = None
    ) -> str:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if response_schema is not None:
            if response_schema.get("type") != "object":
                # json_schema mode needs an object at the root
                response_schema = {
                    "type": "object",
                    "properties": {"questions": response_schema},
                    "required": ["questions"],
                }
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "quiz_questions", "schema": response_schema},
            }
        headers = {"Authorization": f"Bearer {self._api_key or ''}"}
        url = f"{self._base_url}/chat/completions"

        data = await self._post_json(url, body, headers)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ProviderError(
                "Completion response has no choices", code="invalid_response"
            ) from None
        if not isinstance(text, str) or not text.strip():
            raise ProviderError(
                "Completion returned empty content", code="invalid_response"
            )
        return text


def build_model_client(
    settings: Settings, *, http_client: httpx.AsyncClient | None = None
) -> ModelClient:
    """Construct the client configured by AI_PROVIDER."""
    cls = GeminiClient if settings.ai_provider == "gemini" else OpenAICompatibleClient
    if not settings.ai_api_key:
        logger.warning("AI_API_KEY is not set; model calls will be rejected")
    return cls(
        model=settings.ai_model,
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        timeout=settings.ai_timeout_seconds,
        http_client=http_client,
    )
