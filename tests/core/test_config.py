from __future__ import annotations

import pytest

from app.core.config import AppEnv, Settings, load_settings

# ---- valid values ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"


# ---- invalid APP_ENV ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("LOG_LEVEL", "info")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_empty_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


# ---- invalid LOG_LEVEL ----


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_empty_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


# ---- AI provider ----


def test_provider_defaults_to_gemini(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("AI_PROVIDER", "AI_MODEL", "AI_BASE_URL", "AI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.ai_provider == "gemini"
    assert settings.ai_model == "gemini-2.5-flash"
    assert settings.ai_base_url.startswith("https://generativelanguage")
    assert settings.ai_api_key is None


def test_openai_provider_picks_its_own_defaults(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("AI_PROVIDER", "OpenAI")
    monkeypatch.delenv("AI_MODEL", raising=False)
    monkeypatch.setenv("AI_BASE_URL", "https://llm.internal/v1/")
    settings = load_settings()
    assert settings.ai_provider == "openai"
    assert settings.ai_model == "openai/gpt-4o"
    assert settings.ai_base_url == "https://llm.internal/v1"


def test_load_settings_rejects_unknown_provider(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("AI_PROVIDER", "llama")
    with pytest.raises(ValueError, match=r"AI_PROVIDER must be gemini\|openai"):
        load_settings()


# ---- booleans and timeouts ----


def test_boolean_flags_accept_common_spellings(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("AI_STRUCTURED_OUTPUT", "off")
    monkeypatch.setenv("AI_FEEDBACK_ENABLED", "YES")
    settings = load_settings()
    assert settings.ai_structured_output is False
    assert settings.ai_feedback_enabled is True


def test_boolean_flag_rejects_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "maybe")
    with pytest.raises(ValueError, match="LOG_JSON must be a boolean"):
        load_settings()


def test_timeouts_must_be_positive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NOTIFY_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValueError, match="NOTIFY_TIMEOUT_SECONDS must be positive"):
        load_settings()


def test_timeouts_must_be_numbers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AI_TIMEOUT_SECONDS", "soon")
    with pytest.raises(ValueError, match="AI_TIMEOUT_SECONDS must be a number"):
        load_settings()


def test_empty_telegram_token_means_disabled(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "   ")
    assert load_settings().telegram_bot_token is None


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
        ai_provider="gemini",
        ai_model="gemini-2.5-flash",
        ai_api_key=None,
        ai_base_url="https://generativelanguage.googleapis.com/v1beta",
        ai_timeout_seconds=60.0,
        ai_structured_output=True,
        ai_feedback_enabled=False,
        telegram_bot_token=None,
        notify_timeout_seconds=2.0,
        generation_stale_seconds=900.0,
        jwt_public_key=None,
    )


def test_settings_is_dev() -> None:
    s = _make_settings("dev")
    assert s.is_dev is True
    assert s.is_test is False
    assert s.is_prod is False


def test_settings_is_test() -> None:
    s = _make_settings("test")
    assert s.is_dev is False
    assert s.is_test is True
    assert s.is_prod is False


def test_settings_is_prod() -> None:
    s = _make_settings("prod")
    assert s.is_dev is False
    assert s.is_test is False
    assert s.is_prod is True


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]


# ---- JWT_PUBLIC_KEY ----

_PEM = "-----BEGIN PUBLIC KEY-----\nMFkw\n-----END PUBLIC KEY-----\n"


def test_jwt_public_key_defaults_to_none(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("JWT_PUBLIC_KEY", raising=False)
    assert load_settings().jwt_public_key is None


def test_jwt_public_key_is_loaded(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_PUBLIC_KEY", _PEM)
    assert load_settings().jwt_public_key == _PEM.strip()


def test_jwt_public_key_accepts_escaped_newlines(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("JWT_PUBLIC_KEY", _PEM.strip().replace("\n", "\\n"))
    assert load_settings().jwt_public_key == _PEM.strip()


def test_jwt_public_key_must_be_pem(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_PUBLIC_KEY", "not-a-key")
    with pytest.raises(ValueError, match="JWT_PUBLIC_KEY must be a PEM"):
        load_settings()
