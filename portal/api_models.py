from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from .grading import STATUS_FROM_BACKEND, STATUS_TO_BACKEND, passed, weighted_average

Role = Literal["student", "professor"]
GradeComponent = Literal["midterm", "final", "assignments"]
AttendanceStatus = Literal["present", "late", "absent"]

ROLE_TO_BACKEND: Dict[str, str] = {"student": "estudiante", "professor": "profesor"}
ROLE_FROM_BACKEND: Dict[str, str] = {v: k for k, v in ROLE_TO_BACKEND.items()}
COMPONENT_COLUMNS: Dict[str, str] = {
    "midterm": "examen_parcial",
    "final": "examen_final",
    "assignments": "nota_tareas",
}
ACADEMIC_DEGREES = ("Licenciado", "Magister", "Doctor")


def _sub(row: Any, key: str) -> Dict[str, Any]:
    # Embedded one-to-one resources come back as objects, occasionally as one-item lists.
    value = row.get(key) if isinstance(row, dict) else None
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else {}


def _full_name(first: str, last: str) -> str:
    return " ".join(part for part in (first, last) if part).strip()


class AuthUser(BaseModel):
    id: str
    email: str
    first_names: str = ""
    last_names: str = ""
    role: Role
    student_code: Optional[str] = None
    professor_code: Optional[str] = None
    school_id: Optional[int] = None

    @property
    def display_name(self) -> str:
        return _full_name(self.first_names, self.last_names) or self.email


class SchoolView(BaseModel):
    id: int
    name: str
    faculty: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SchoolView":
        return cls(id=row["id"], name=row.get("nombre") or "", faculty=row.get("facultad"))


class CourseView(BaseModel):
    code: str
    name: str = ""
    credits: int = 0
    theory_hours: int = 0
    practice_hours: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CourseView":
        return cls(
            code=row.get("codigo") or "",
            name=row.get("nombre") or "",
            credits=row.get("creditos") or 0,
            theory_hours=row.get("horas_teoria") or 0,
            practice_hours=row.get("horas_practica") or 0,
        )


class ProfessorRef(BaseModel):
    code: str = ""
    first_names: str = ""
    last_names: str = ""

    @property
    def display_name(self) -> str:
        return _full_name(self.first_names, self.last_names)


class CourseEnrollmentView(BaseModel):
    enrollment_id: int
    section_id: int = 0
    section_name: str = ""
    course_code: str = ""
    schedule: Optional[str] = None
    period: str = ""
    course: Optional[CourseView] = None
    professor: Optional[ProfessorRef] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CourseEnrollmentView":
        section = _sub(row, "secciones")
        course = _sub(section, "cursos")
        professor = _sub(section, "profesores")
        person = _sub(professor, "usuarios")
        return cls(
            enrollment_id=row.get("id") or 0,
            section_id=section.get("id") or 0,
            section_name=section.get("nombre") or "",
            course_code=section.get("codigo_curso") or course.get("codigo") or "",
            schedule=section.get("horario"),
            period=section.get("periodo_academico") or "",
            course=CourseView.from_row(course) if course else None,
            professor=ProfessorRef(
                code=professor.get("codigo_profesor") or "",
                first_names=person.get("nombres") or "",
                last_names=person.get("apellidos") or "",
            )
            if professor
            else None,
        )


class SectionView(BaseModel):
    id: int
    name: str = ""
    schedule: Optional[str] = None
    period: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    course_code: str = ""
    course: Optional[CourseView] = None
    school_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SectionView":
        course = _sub(row, "cursos")
        school = _sub(row, "escuelas")
        return cls(
            id=row["id"],
            name=row.get("nombre") or "",
            schedule=row.get("horario"),
            period=row.get("periodo_academico") or "",
            start_date=row.get("fecha_inicio"),
            end_date=row.get("fecha_fin"),
            course_code=row.get("codigo_curso") or course.get("codigo") or "",
            course=CourseView.from_row(course) if course else None,
            school_name=school.get("nombre"),
        )


class GradeView(BaseModel):
    id: int
    course_code: str = ""
    midterm: Optional[float] = None
    final: Optional[float] = None
    assignments: Optional[float] = None
    stored_average: Optional[float] = None
    remarks: Optional[str] = None
    registered_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def average(self) -> Optional[float]:
        return weighted_average(self.midterm, self.final, self.assignments)

    @property
    def passed(self) -> bool:
        return passed(self.average)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "GradeView":
        section = _sub(_sub(row, "matriculas"), "secciones")
        return cls(
            id=row["id"],
            course_code=section.get("codigo_curso") or "",
            midterm=row.get("examen_parcial"),
            final=row.get("examen_final"),
            assignments=row.get("nota_tareas"),
            stored_average=row.get("promedio_final"),
            remarks=row.get("observaciones"),
            registered_at=row.get("fecha_registro"),
            updated_at=row.get("fecha_actualizacion"),
        )


class AttendanceView(BaseModel):
    id: int
    date: str
    status: AttendanceStatus
    remarks: Optional[str] = None
    course_code: str = ""
    course_name: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AttendanceView":
        section = _sub(_sub(row, "matriculas"), "secciones")
        course = _sub(section, "cursos")
        return cls(
            id=row["id"],
            date=str(row.get("fecha") or ""),
            status=STATUS_FROM_BACKEND.get(row.get("estado") or "", "absent"),
            remarks=row.get("observacion"),
            course_code=section.get("codigo_curso") or course.get("codigo") or "",
            course_name=course.get("nombre") or "",
        )


class StudentView(BaseModel):
    id: str
    code: str
    first_names: str = ""
    last_names: str = ""
    email: str = ""
    school_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return _full_name(self.first_names, self.last_names)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StudentView":
        person = _sub(row, "usuarios")
        school = _sub(row, "escuelas")
        return cls(
            id=str(row.get("id") or ""),
            code=row.get("codigo") or "",
            first_names=person.get("nombres") or "",
            last_names=person.get("apellidos") or "",
            email=person.get("email") or "",
            school_name=school.get("nombre"),
        )


class EnrollmentView(BaseModel):
    id: int
    enrolled_at: Optional[str] = None
    status: str = ""
    student_code: str = ""
    first_names: str = ""
    last_names: str = ""
    email: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EnrollmentView":
        student = _sub(row, "estudiantes")
        person = _sub(student, "usuarios")
        return cls(
            id=row["id"],
            enrolled_at=row.get("fecha_matricula"),
            status=row.get("estado") or "",
            student_code=student.get("codigo") or "",
            first_names=person.get("nombres") or "",
            last_names=person.get("apellidos") or "",
            email=person.get("email") or "",
        )


class GradeEntryRequest(BaseModel):
    course_code: str = Field(min_length=1)
    student_code: str = Field(min_length=1)
    component: GradeComponent = "midterm"
    score: float = Field(ge=0, le=20)
    remarks: str = ""
    period: Optional[str] = None

    @field_validator("course_code", "student_code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("code is required")
        return text


class AttendanceEntryRequest(BaseModel):
    course_code: str = Field(min_length=1)
    student_code: str = Field(min_length=1)
    date: dt.date
    status: AttendanceStatus = "present"
    remarks: str = ""
    period: Optional[str] = None

    @field_validator("course_code", "student_code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("code is required")
        return text


class ChatMessageRequest(BaseModel):
    message: str

    @field_validator("message")
    @classmethod
    def _check_message(cls, value: str, info: ValidationInfo) -> str:
        text = value.strip()
        if not text:
            raise ValueError("message is required")
        limit = (info.context or {}).get("max_chars")
        if limit and len(text) > int(limit):
            raise ValueError(f"message exceeds {limit} characters")
        return text


def _check_email(value: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError("email is required")
    if "@" not in text:
        raise ValueError("invalid email")
    return text


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("password is required")
        return value


class RegistrationRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)
    confirm_password: str
    dni: str = Field(min_length=8, max_length=8)
    first_names: str = Field(min_length=1)
    last_names: str = Field(min_length=1)
    phone: Optional[str] = None
    gender: Optional[str] = None
    birth_date: dt.date
    role: Role
    student_code: Optional[str] = None
    school_id: Optional[int] = None
    professor_code: Optional[str] = None
    specialty: Optional[str] = None
    academic_degree: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("first_names", "last_names", "dni")
    @classmethod
    def _required_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("field is required")
        return text

    @model_validator(mode="after")
    def _check_consistency(self) -> "RegistrationRequest":
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        if self.role == "student":
            if not (self.student_code or "").strip():
                raise ValueError("student_code is required for students")
            if not self.school_id:
                raise ValueError("school_id is required for students")
        else:
            if not (self.professor_code or "").strip():
                raise ValueError("professor_code is required for professors")
            if not (self.specialty or "").strip():
                raise ValueError("specialty is required for professors")
            if self.academic_degree not in ACADEMIC_DEGREES:
                raise ValueError(f"academic_degree must be one of {', '.join(ACADEMIC_DEGREES)}")
        return self
