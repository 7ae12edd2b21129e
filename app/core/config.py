from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]
AIProvider = Literal["gemini", "openai"]

_DEFAULT_MODELS: dict[str, str] = {
    "gemini": "gemini-2.5-flash",
    "openai": "openai/gpt-4o",
}

_DEFAULT_BASE_URLS: dict[str, str] = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
    "openai": "https://openrouter.ai/api/v1",
}


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {raw!r})")
    return value


def _getenv_pem(name: str) -> str | None:
    # Single-line env values carry PEM newlines escaped as backslash-n.
    raw = _getenv(name, "").replace("\\n", "\n")
    if not raw:
        return None
    if not raw.startswith("-----BEGIN "):
        raise ValueError(f"{name} must be a PEM-encoded public key")
    return raw


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    ai_provider: AIProvider
    ai_model: str
    ai_api_key: str | None
    ai_base_url: str
    ai_timeout_seconds: float
    ai_structured_output: bool
    ai_feedback_enabled: bool
    telegram_bot_token: str | None
    notify_timeout_seconds: float
    generation_stale_seconds: float
    jwt_public_key: str | None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    provider_raw = _getenv("AI_PROVIDER", "gemini").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if provider_raw not in ("gemini", "openai"):
        raise ValueError(f"AI_PROVIDER must be gemini|openai (got {provider_raw!r})")

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        ai_provider=provider_raw,
        ai_model=_getenv("AI_MODEL", "") or _DEFAULT_MODELS[provider_raw],
        ai_api_key=_getenv("AI_API_KEY", "") or None,
        ai_base_url=(
            _getenv("AI_BASE_URL", "") or _DEFAULT_BASE_URLS[provider_raw]
        ).rstrip("/"),
        ai_timeout_seconds=_getenv_float("AI_TIMEOUT_SECONDS", 60.0),
        ai_structured_output=_getenv_bool("AI_STRUCTURED_OUTPUT", True),
        ai_feedback_enabled=_getenv_bool("AI_FEEDBACK_ENABLED", False),
        telegram_bot_token=_getenv("TELEGRAM_BOT_TOKEN", "") or None,
        notify_timeout_seconds=_getenv_float("NOTIFY_TIMEOUT_SECONDS", 2.0),
        generation_stale_seconds=_getenv_float("GENERATION_STALE_SECONDS", 900.0),
        jwt_public_key=_getenv_pem("JWT_PUBLIC_KEY"),
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
