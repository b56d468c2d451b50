from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .academic_gateway import AcademicGateway
from .api_models import AttendanceEntryRequest, AuthUser, ChatMessageRequest, GradeEntryRequest
from .chat_message_state import ChatMessageStateMachine
from .chat_support import failure_notice, welcome_message
from .chat_webhook_client import ChatIdentity, ChatWebhookClient
from .config import PortalConfig
from .gateway_result import ERROR_FORBIDDEN, ERROR_UNAUTHENTICATED, ERROR_VALIDATION, GatewayResult
from .grading import grade_overview, summaries_by_course
from .identity import IdentityProvider

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortalServiceDeps:
    identity: IdentityProvider
    gateway: AcademicGateway
    chat: ChatWebhookClient
    config: PortalConfig


@dataclass
class ChatTurn:
    message: str
    status: str
    reply: str = ""
    error_kind: str = ""
    notice: str = ""


@dataclass(frozen=True)
class AttendanceReport:
    records: List[Any] = field(default_factory=list)
    summaries: Dict[str, Any] = field(default_factory=dict)


def _validation_detail(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc") or ())
        msg = str(err.get("msg") or "invalid")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid input"


class PortalService:
    """What the signed-in user may do, dispatched by role.

    Every operation answers from the identity first: without a user nothing
    touches the network, and professor-only writes refuse students outright.
    """

    def __init__(self, deps: PortalServiceDeps):
        self._deps = deps

    def _user(self) -> Optional[AuthUser]:
        return self._deps.identity.current_user()

    def _period(self, period: Optional[str]) -> str:
        return str(period or "").strip() or self._deps.config.default_period

    def _unauthenticated(self, fallback: Any) -> GatewayResult:
        return GatewayResult.failed(ERROR_UNAUTHENTICATED, "sign in required", fallback=fallback)

    def dashboard(self, period: Optional[str] = None) -> GatewayResult[Dict[str, Any]]:
        user = self._user()
        if user is None:
            return self._unauthenticated(None)
        term = self._period(period)
        gateway = self._deps.gateway

        if user.role == "professor":
            sections = gateway.list_taught_sections(user.id, term)
            if sections.is_error:
                return GatewayResult.failed(sections.error, sections.detail)
            return GatewayResult.ok(
                {"role": user.role, "period": term, "sections": sections.data or [], "user": user}
            )

        courses = gateway.list_enrolled_courses(user.id, term)
        if courses.is_error:
            return GatewayResult.failed(courses.error, courses.detail)
        grades = gateway.list_grades(user.id, term)
        # Grades are secondary on the dashboard; a failed read leaves the overview empty.
        rows = grades.lenient() or []
        return GatewayResult.ok(
            {
                "role": user.role,
                "period": term,
                "courses": courses.data or [],
                "overview": grade_overview(g.average for g in rows),
                "user": user,
            }
        )

    def my_grades(self, period: Optional[str] = None) -> GatewayResult:
        user = self._user()
        if user is None:
            return self._unauthenticated([])
        if user.role != "student":
            return GatewayResult.failed(ERROR_FORBIDDEN, "grades are listed for students", fallback=[])
        return self._deps.gateway.list_grades(user.id, self._period(period))

    def my_attendance(self, period: Optional[str] = None) -> GatewayResult[AttendanceReport]:
        user = self._user()
        if user is None:
            return self._unauthenticated(AttendanceReport())
        if user.role != "student":
            return GatewayResult.failed(ERROR_FORBIDDEN, "attendance is listed for students", fallback=AttendanceReport())
        result = self._deps.gateway.list_attendance(user.id, self._period(period))
        if result.is_error:
            return GatewayResult.failed(result.error, result.detail, fallback=AttendanceReport())
        records = result.data or []
        report = AttendanceReport(records=records, summaries=summaries_by_course(records))
        return GatewayResult.ok(report) if records else GatewayResult.empty(report)

    def _professor(self) -> Union[AuthUser, GatewayResult]:
        user = self._user()
        if user is None:
            return self._unauthenticated(False)
        if user.role != "professor":
            _log.warning("student attempted a professor operation", extra={"user_id": user.id})
            return GatewayResult.failed(ERROR_FORBIDDEN, "professor role required", fallback=False)
        return user

    def record_grade(self, entry: Union[GradeEntryRequest, Dict[str, Any]]) -> GatewayResult[bool]:
        actor = self._professor()
        if isinstance(actor, GatewayResult):
            return actor
        try:
            req = entry if isinstance(entry, GradeEntryRequest) else GradeEntryRequest.model_validate(entry)
        except ValidationError as exc:
            return GatewayResult.failed(ERROR_VALIDATION, _validation_detail(exc), fallback=False)
        return self._deps.gateway.upsert_grade_component(
            req.course_code,
            req.student_code,
            req.component,
            req.score,
            req.remarks,
            actor.id,
            period=req.period,
        )

    def record_attendance(self, entry: Union[AttendanceEntryRequest, Dict[str, Any]]) -> GatewayResult[bool]:
        actor = self._professor()
        if isinstance(actor, GatewayResult):
            return actor
        try:
            req = entry if isinstance(entry, AttendanceEntryRequest) else AttendanceEntryRequest.model_validate(entry)
        except ValidationError as exc:
            return GatewayResult.failed(ERROR_VALIDATION, _validation_detail(exc), fallback=False)
        return self._deps.gateway.append_attendance(
            req.course_code,
            req.student_code,
            req.date,
            req.status,
            req.remarks,
            actor.id,
            period=req.period,
        )

    def lookup_student(self, code: str) -> GatewayResult:
        if self._user() is None:
            return self._unauthenticated(None)
        return self._deps.gateway.find_student_by_code(code)

    def search_courses(self, text: str) -> GatewayResult:
        user = self._user()
        if user is None:
            return self._unauthenticated([])
        return self._deps.gateway.search_courses(text, user.school_id)

    def chat_welcome(self) -> str:
        user = self._user()
        return welcome_message(user.role if user else None)

    def send_chat(self, text: str) -> ChatTurn:
        machine = ChatMessageStateMachine()
        user = self._user()
        if user is None:
            machine.transition("sending")
            machine.transition("failed", failure_kind=ERROR_UNAUTHENTICATED)
            return ChatTurn(message=str(text or ""), status=machine.status, error_kind=machine.failure_kind)
        try:
            req = ChatMessageRequest.model_validate(
                {"message": str(text or "")},
                context={"max_chars": self._deps.config.chat_max_message_chars},
            )
        except ValidationError as exc:
            # Never left the composer.
            return ChatTurn(
                message=str(text or ""),
                status=machine.status,
                error_kind=ERROR_VALIDATION,
                notice=_validation_detail(exc),
            )

        machine.transition("sending")
        outcome = self._deps.chat.send(
            req.message,
            ChatIdentity(user_id=user.id, role=user.role, email=user.email, display_name=user.display_name),
        )
        if outcome.success:
            machine.transition("delivered")
            return ChatTurn(message=req.message, status=machine.status, reply=outcome.response)
        machine.transition("failed", failure_kind=outcome.error_kind)
        return ChatTurn(
            message=req.message,
            status=machine.status,
            error_kind=machine.failure_kind,
            notice=failure_notice(outcome.error_kind),
        )
