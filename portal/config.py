from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from . import settings as _settings


@dataclass(frozen=True)
class PortalConfig:
    supabase_url: str
    supabase_anon_key: str
    backend_timeout_sec: Tuple[float, float]
    webhook_url: str
    webhook_timeout_ms: int
    chat_timeout_ms: int
    chat_max_message_chars: int
    chat_retry_attempts: int
    chat_retry_enabled: bool
    academic_periods: List[str] = field(default_factory=list)
    default_period: str = ""

    @property
    def chat_timeout_sec(self) -> float:
        return self.chat_timeout_ms / 1000.0


def load_config() -> PortalConfig:
    """Resolve the environment into one immutable snapshot."""
    read_timeout = _settings.backend_timeout_sec()
    periods = _settings.academic_periods()
    return PortalConfig(
        supabase_url=_settings.supabase_url(),
        supabase_anon_key=_settings.supabase_anon_key(),
        backend_timeout_sec=(_settings.backend_connect_timeout_sec(read_timeout), read_timeout),
        webhook_url=_settings.webhook_url(),
        webhook_timeout_ms=_settings.webhook_timeout_ms(),
        chat_timeout_ms=_settings.chat_timeout_ms(),
        chat_max_message_chars=_settings.chat_max_message_chars(),
        chat_retry_attempts=_settings.chat_retry_attempts(),
        chat_retry_enabled=_settings.chat_retry_enabled(),
        academic_periods=periods,
        default_period=_settings.default_period(periods),
    )
