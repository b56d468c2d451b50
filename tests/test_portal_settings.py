from portal import settings
from portal.config import load_config

_VARS = (
    "SUPABASE_URL",
    "EXPO_PUBLIC_SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "EXPO_PUBLIC_SUPABASE_ANON_KEY",
    "WEBHOOK_URL",
    "EXPO_PUBLIC_WEBHOOK_URL",
    "BACKEND_TIMEOUT_SEC",
    "BACKEND_CONNECT_TIMEOUT_SEC",
    "CHAT_TIMEOUT_MS",
    "WEBHOOK_TIMEOUT_MS",
    "CHAT_MAX_MESSAGE_CHARS",
    "CHAT_RETRY_ATTEMPTS",
    "CHAT_RETRY_ENABLED",
    "ACADEMIC_PERIODS",
    "DEFAULT_PERIOD",
)


def _clear(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)

    assert settings.chat_timeout_ms() == 30000
    assert settings.webhook_timeout_ms() == 40000
    assert settings.chat_max_message_chars() == 500
    assert settings.chat_retry_attempts() == 3
    assert settings.chat_retry_enabled() is False
    assert settings.academic_periods() == ["2025-I", "2024-II", "2024-I", "2023-II", "2023-I"]
    assert settings.truthy("yes") is True


def test_public_prefix_fallback_and_conversions(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("EXPO_PUBLIC_SUPABASE_URL", "https://db.example.invalid/")
    monkeypatch.setenv("WEBHOOK_URL", "https://hooks.example.invalid/chat")
    monkeypatch.setenv("EXPO_PUBLIC_WEBHOOK_URL", "https://ignored.example.invalid")
    monkeypatch.setenv("CHAT_TIMEOUT_MS", "not-a-number")
    monkeypatch.setenv("BACKEND_TIMEOUT_SEC", "500")
    monkeypatch.setenv("ACADEMIC_PERIODS", "2026-I, 2025-II")
    monkeypatch.setenv("CHAT_RETRY_ENABLED", "true")

    assert settings.supabase_url() == "https://db.example.invalid"
    assert settings.webhook_url() == "https://hooks.example.invalid/chat"
    assert settings.chat_timeout_ms() == 30000
    assert settings.backend_timeout_sec() == 120.0
    assert settings.chat_retry_enabled() is True

    cfg = load_config()
    assert cfg.supabase_url == "https://db.example.invalid"
    assert cfg.academic_periods == ["2026-I", "2025-II"]
    assert cfg.default_period == "2026-I"
    assert cfg.backend_timeout_sec == (5.0, 120.0)
    assert cfg.chat_timeout_sec == 30.0


def test_default_period_override(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("DEFAULT_PERIOD", "2024-II")

    assert load_config().default_period == "2024-II"
