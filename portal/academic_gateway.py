from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Union

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from .api_models import (
    COMPONENT_COLUMNS,
    STATUS_TO_BACKEND,
    AttendanceView,
    CourseEnrollmentView,
    CourseView,
    EnrollmentView,
    GradeView,
    SchoolView,
    SectionView,
    StudentView,
)
from .gateway_result import (
    ERROR_BACKEND,
    ERROR_FORBIDDEN,
    ERROR_NETWORK,
    ERROR_VALIDATION,
    GatewayResult,
)
from .observability import GatewayMetrics

_log = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 20.0

_ENROLLED_COURSES_SELECT = """
    id, fecha_matricula, estado,
    secciones!inner (
        id, nombre, horario, periodo_academico, codigo_curso,
        cursos ( codigo, nombre, creditos, horas_teoria, horas_practica ),
        profesores ( codigo_profesor, usuarios ( nombres, apellidos ) )
    )
"""
_TAUGHT_SECTIONS_SELECT = """
    id, nombre, horario, periodo_academico, fecha_inicio, fecha_fin, codigo_curso,
    cursos ( codigo, nombre, creditos, horas_teoria, horas_practica ),
    escuelas ( nombre )
"""
_GRADES_SELECT = """
    id, examen_parcial, examen_final, nota_tareas, promedio_final,
    observaciones, fecha_registro, fecha_actualizacion,
    matriculas!inner (
        id_estudiante,
        secciones!inner ( codigo_curso, periodo_academico )
    )
"""
_ATTENDANCE_SELECT = """
    id, fecha, estado, observacion,
    matriculas!inner (
        id_estudiante,
        secciones!inner ( codigo_curso, periodo_academico, cursos ( codigo, nombre ) )
    )
"""
_COURSE_SEARCH_SELECT = """
    codigo, nombre, creditos, horas_teoria, horas_practica,
    curso_escuela!inner ( id_escuela )
"""
_STUDENT_SELECT = """
    id, codigo,
    usuarios ( nombres, apellidos, email ),
    escuelas ( nombre )
"""
_OWNED_ENROLLMENT_SELECT = """
    id,
    secciones!inner ( codigo_curso, id_profesor, periodo_academico ),
    estudiantes!inner ( codigo )
"""
_SECTION_ROSTER_SELECT = """
    id, fecha_matricula, estado,
    estudiantes ( codigo, usuarios ( nombres, apellidos, email ) )
"""


def _ilike_any(columns: List[str], text: str) -> str:
    """``or`` filter matching ``text`` anywhere in any of ``columns``, case-insensitively."""
    # Quoted so commas and parentheses in user input stay inside the value.
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return ",".join(f'{column}.ilike."*{escaped}*"' for column in columns)


@dataclass(frozen=True)
class AcademicGatewayDeps:
    client: Client
    periods: List[str] = field(default_factory=list)
    metrics: GatewayMetrics = field(default_factory=GatewayMetrics)


class AcademicGateway:
    """Typed reads and the two professor-owned writes over the relational backend.

    Nothing is cached; every call goes to the backend. Failures never raise:
    they come back as ``GatewayResult.failed`` whose ``lenient()`` value is
    the historical sentinel.
    """

    def __init__(self, deps: AcademicGatewayDeps):
        self._deps = deps

    @property
    def is_loading(self) -> bool:
        return self._deps.metrics.inflight > 0

    @property
    def metrics(self) -> GatewayMetrics:
        return self._deps.metrics

    def _table(self, name: str):
        return self._deps.client.table(name)

    def _run(self, operation: str, call: Callable[[], GatewayResult], *, fallback: Any) -> GatewayResult:
        with self._deps.metrics.track(operation) as slot:
            try:
                result = call()
            except httpx.HTTPError as exc:
                _log.warning("%s failed: backend unreachable", operation, exc_info=True, extra={"operation": operation})
                result = GatewayResult.failed(ERROR_NETWORK, str(exc) or type(exc).__name__, fallback=fallback)
            except APIError as exc:
                _log.warning(
                    "%s failed: backend error %s",
                    operation,
                    exc.code,
                    exc_info=True,
                    extra={"operation": operation},
                )
                result = GatewayResult.failed(ERROR_BACKEND, exc.message or "backend error", fallback=fallback)
            except (KeyError, TypeError, ValueError) as exc:
                _log.warning("%s failed: unexpected row shape", operation, exc_info=True, extra={"operation": operation})
                result = GatewayResult.failed(ERROR_BACKEND, f"unexpected row shape: {exc}", fallback=fallback)
            if result.is_error:
                slot["outcome"] = "error"
            elif result.is_empty:
                slot["outcome"] = "empty"
            return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_periods(self) -> GatewayResult[List[str]]:
        return GatewayResult.from_rows(list(self._deps.periods))

    def list_schools(self) -> GatewayResult[List[SchoolView]]:
        def _call() -> GatewayResult:
            rows = self._table("escuelas").select("id, nombre, facultad").eq("activo", True).order("nombre").execute().data
            return GatewayResult.from_rows([SchoolView.from_row(r) for r in rows])

        return self._run("list_schools", _call, fallback=[])

    def list_enrolled_courses(self, student_id: str, period: str) -> GatewayResult[List[CourseEnrollmentView]]:
        def _call() -> GatewayResult:
            rows = (
                self._table("matriculas")
                .select(_ENROLLED_COURSES_SELECT)
                .eq("id_estudiante", student_id)
                .eq("secciones.periodo_academico", period)
                .execute()
                .data
            )
            return GatewayResult.from_rows([CourseEnrollmentView.from_row(r) for r in rows])

        return self._run("list_enrolled_courses", _call, fallback=[])

    def list_taught_sections(self, professor_id: str, period: str) -> GatewayResult[List[SectionView]]:
        def _call() -> GatewayResult:
            rows = (
                self._table("secciones")
                .select(_TAUGHT_SECTIONS_SELECT)
                .eq("id_profesor", professor_id)
                .eq("periodo_academico", period)
                .execute()
                .data
            )
            return GatewayResult.from_rows([SectionView.from_row(r) for r in rows])

        return self._run("list_taught_sections", _call, fallback=[])

    def list_grades(self, student_id: str, period: str) -> GatewayResult[List[GradeView]]:
        def _call() -> GatewayResult:
            rows = (
                self._table("notas")
                .select(_GRADES_SELECT)
                .eq("matriculas.id_estudiante", student_id)
                .eq("matriculas.secciones.periodo_academico", period)
                .execute()
                .data
            )
            return GatewayResult.from_rows([GradeView.from_row(r) for r in rows])

        return self._run("list_grades", _call, fallback=[])

    def list_attendance(self, student_id: str, period: str) -> GatewayResult[List[AttendanceView]]:
        def _call() -> GatewayResult:
            rows = (
                self._table("asistencias")
                .select(_ATTENDANCE_SELECT)
                .eq("matriculas.id_estudiante", student_id)
                .eq("matriculas.secciones.periodo_academico", period)
                .order("fecha", desc=True)
                .execute()
                .data
            )
            return GatewayResult.from_rows([AttendanceView.from_row(r) for r in rows])

        return self._run("list_attendance", _call, fallback=[])

    def search_courses(self, text: str, school_id: Optional[int] = None) -> GatewayResult[List[CourseView]]:
        needle = str(text or "").strip()
        if not needle:
            return GatewayResult.empty([])

        def _call() -> GatewayResult:
            builder = self._table("cursos").select(_COURSE_SEARCH_SELECT)
            if school_id:
                builder = builder.eq("curso_escuela.id_escuela", school_id)
            rows = builder.or_(_ilike_any(["nombre", "codigo"], needle)).execute().data
            return GatewayResult.from_rows([CourseView.from_row(r) for r in rows])

        return self._run("search_courses", _call, fallback=[])

    def find_student_by_code(self, code: str) -> GatewayResult[StudentView]:
        """Exact lookup; an unknown code is ``empty``, a failed query is ``error``."""
        needle = str(code or "").strip()
        if not needle:
            return GatewayResult.failed(ERROR_VALIDATION, "student code is required")

        def _call() -> GatewayResult:
            rows = self._table("estudiantes").select(_STUDENT_SELECT).eq("codigo", needle).limit(2).execute().data
            if not rows:
                return GatewayResult.empty(None)
            return GatewayResult.ok(StudentView.from_row(rows[0]))

        return self._run("find_student_by_code", _call, fallback=None)

    def list_enrolled_students(self, section_id: int) -> GatewayResult[List[EnrollmentView]]:
        def _call() -> GatewayResult:
            rows = self._table("matriculas").select(_SECTION_ROSTER_SELECT).eq("id_seccion", section_id).execute().data
            return GatewayResult.from_rows([EnrollmentView.from_row(r) for r in rows])

        return self._run("list_enrolled_students", _call, fallback=[])

    # ------------------------------------------------------------------
    # Professor-owned writes
    # ------------------------------------------------------------------

    def _resolve_owned_enrollment(
        self,
        course_code: str,
        student_code: str,
        acting_professor_id: str,
        period: Optional[str],
    ) -> Optional[int]:
        builder = (
            self._table("matriculas")
            .select(_OWNED_ENROLLMENT_SELECT)
            .eq("estudiantes.codigo", student_code)
            .eq("secciones.codigo_curso", course_code)
            .eq("secciones.id_profesor", acting_professor_id)
        )
        if period:
            builder = builder.eq("secciones.periodo_academico", period)
        rows = builder.limit(2).execute().data
        if len(rows) != 1:
            _log.warning(
                "no single enrollment for student=%s course=%s owned by professor=%s (matches=%d)",
                student_code,
                course_code,
                acting_professor_id,
                len(rows),
            )
            return None
        return int(rows[0]["id"])

    def upsert_grade_component(
        self,
        course_code: str,
        student_code: str,
        component: str,
        score: float,
        remarks: str,
        acting_professor_id: str,
        period: Optional[str] = None,
    ) -> GatewayResult[bool]:
        column = COMPONENT_COLUMNS.get(str(component or ""))
        if column is None:
            return GatewayResult.failed(ERROR_VALIDATION, f"unknown grade component: {component}", fallback=False)
        try:
            value = float(score)
        except (TypeError, ValueError):
            return GatewayResult.failed(ERROR_VALIDATION, "score must be a number", fallback=False)
        if not MIN_SCORE <= value <= MAX_SCORE:
            return GatewayResult.failed(ERROR_VALIDATION, "score must be between 0 and 20", fallback=False)
        if not acting_professor_id:
            return GatewayResult.failed(ERROR_FORBIDDEN, "acting professor required", fallback=False)

        def _call() -> GatewayResult:
            enrollment_id = self._resolve_owned_enrollment(course_code, student_code, acting_professor_id, period)
            if enrollment_id is None:
                return GatewayResult.failed(ERROR_FORBIDDEN, "enrollment not owned by acting professor", fallback=False)
            row = {
                "id_matricula": enrollment_id,
                column: value,
                "id_profesor_registro": acting_professor_id,
            }
            if str(remarks or "").strip():
                row["observaciones"] = str(remarks).strip()
            # One conditional upsert: concurrent writers merge into the same record.
            self._table("notas").upsert(row, on_conflict="id_matricula").execute()
            return GatewayResult.ok(True)

        return self._run("upsert_grade_component", _call, fallback=False)

    def append_attendance(
        self,
        course_code: str,
        student_code: str,
        date: Union[dt.date, str],
        status: str,
        remarks: str,
        acting_professor_id: str,
        period: Optional[str] = None,
    ) -> GatewayResult[bool]:
        backend_status = STATUS_TO_BACKEND.get(str(status or ""))
        if backend_status is None:
            return GatewayResult.failed(ERROR_VALIDATION, f"unknown attendance status: {status}", fallback=False)
        day = date.isoformat() if isinstance(date, dt.date) else str(date or "").strip()
        if not day:
            return GatewayResult.failed(ERROR_VALIDATION, "date is required", fallback=False)
        if not acting_professor_id:
            return GatewayResult.failed(ERROR_FORBIDDEN, "acting professor required", fallback=False)

        def _call() -> GatewayResult:
            enrollment_id = self._resolve_owned_enrollment(course_code, student_code, acting_professor_id, period)
            if enrollment_id is None:
                return GatewayResult.failed(ERROR_FORBIDDEN, "enrollment not owned by acting professor", fallback=False)
            # Append-only: the same day may be recorded more than once.
            self._table("asistencias").insert(
                {
                    "id_matricula": enrollment_id,
                    "fecha": day,
                    "estado": backend_status,
                    "observacion": str(remarks or "").strip() or None,
                    "id_profesor_registro": acting_professor_id,
                }
            ).execute()
            return GatewayResult.ok(True)

        return self._run("append_attendance", _call, fallback=False)
