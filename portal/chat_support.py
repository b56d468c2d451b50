from __future__ import annotations

from typing import Optional

_WELCOME_PROFESSOR = (
    "Hello professor! I am your virtual assistant. I can help you with your courses, "
    "your students and more. How can I help you today?"
)
_WELCOME_STUDENT = (
    "Hello student! I am your virtual assistant. I can help you with your courses, "
    "grades, attendance and more. How can I help you today?"
)
_TIMEOUT_NOTICE = (
    "The assistant is taking longer than usual. This happens when the workflow is busy; "
    "please try again in a few moments."
)
_FAILURE_NOTICE = "Sorry, your message could not be sent. Please try again."


def welcome_message(role: Optional[str]) -> str:
    return _WELCOME_PROFESSOR if role == "professor" else _WELCOME_STUDENT


def failure_notice(error_kind: str) -> str:
    return _TIMEOUT_NOTICE if error_kind == "timeout" else _FAILURE_NOTICE
