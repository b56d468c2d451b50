from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Set

_TRANSITIONS: Dict[str, Set[str]] = {
    "composed": {"sending"},
    "sending": {"delivered", "failed"},
    "delivered": set(),
    "failed": set(),
}

_TERMINAL_STATUSES = {"delivered", "failed"}


def normalize_chat_message_status(status: object) -> str:
    text = str(status or "").strip().lower()
    return text or "composed"


def is_terminal_chat_message_status(status: object) -> bool:
    return normalize_chat_message_status(status) in _TERMINAL_STATUSES


@dataclass
class ChatMessageStateMachine:
    status: str = "composed"
    failure_kind: str = ""

    def __post_init__(self) -> None:
        self.status = normalize_chat_message_status(self.status)

    def transition(self, next_status: object, *, failure_kind: str = "") -> str:
        target = normalize_chat_message_status(next_status)
        allowed = _TRANSITIONS.get(self.status)
        if not allowed or target not in allowed:
            raise ValueError(f"invalid_chat_message_transition:{self.status}->{target}")
        self.status = target
        if target == "failed":
            self.failure_kind = failure_kind or "unknown"
        return self.status
