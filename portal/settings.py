from __future__ import annotations

import os
import logging
from typing import List

_log = logging.getLogger(__name__)

_PUBLIC_PREFIX = "EXPO_PUBLIC_"
_DEFAULT_PERIODS = "2025-I,2024-II,2024-I,2023-II,2023-I"


def truthy(value: str) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default)


def env_public_str(name: str, default: str = "") -> str:
    # The mobile build exposed the same values with a public prefix.
    return env_str(name, "").strip() or env_str(f"{_PUBLIC_PREFIX}{name}", default).strip()


def env_int(name: str, default: int) -> int:
    try:
        return int(env_str(name, str(default)) or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return int(default)


def env_float(name: str, default: float) -> float:
    try:
        return float(env_str(name, str(default)) or default)
    except Exception:
        _log.debug("numeric conversion failed", exc_info=True)
        return float(default)


def env_bool(name: str, default: str = "") -> bool:
    return truthy(env_str(name, default))


def supabase_url() -> str:
    return env_public_str("SUPABASE_URL").rstrip("/")


def supabase_anon_key() -> str:
    return env_public_str("SUPABASE_ANON_KEY")


def backend_timeout_sec() -> float:
    return min(120.0, max(1.0, env_float("BACKEND_TIMEOUT_SEC", 15.0)))


def backend_connect_timeout_sec(read_timeout: float) -> float:
    return min(read_timeout, max(0.5, env_float("BACKEND_CONNECT_TIMEOUT_SEC", 5.0)))


def webhook_url() -> str:
    return env_public_str("WEBHOOK_URL")


def webhook_timeout_ms() -> int:
    return max(1000, env_int("WEBHOOK_TIMEOUT_MS", 40000))


def chat_timeout_ms() -> int:
    return max(100, env_int("CHAT_TIMEOUT_MS", 30000))


def chat_max_message_chars() -> int:
    return max(1, env_int("CHAT_MAX_MESSAGE_CHARS", 500))


def chat_retry_attempts() -> int:
    return max(1, env_int("CHAT_RETRY_ATTEMPTS", 3))


def chat_retry_enabled() -> bool:
    return env_bool("CHAT_RETRY_ENABLED", "0")


def academic_periods() -> List[str]:
    raw = env_str("ACADEMIC_PERIODS", _DEFAULT_PERIODS)
    periods = [p.strip() for p in raw.split(",") if p.strip()]
    return periods or [p for p in _DEFAULT_PERIODS.split(",")]


def default_period(periods: List[str]) -> str:
    chosen = env_str("DEFAULT_PERIOD", "").strip()
    if chosen:
        return chosen
    return periods[0] if periods else ""


def log_level() -> str:
    return env_str("LOG_LEVEL", "INFO").strip().upper()


def log_format() -> str:
    return env_str("LOG_FORMAT", "text").strip().lower()

