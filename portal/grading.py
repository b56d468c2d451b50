"""Grade and attendance aggregation over already-fetched rows.

All functions are pure. A missing component score means the average is still
pending, which is reported as ``None`` and never as zero.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

MIDTERM_WEIGHT = 0.30
FINAL_WEIGHT = 0.30
ASSIGNMENTS_WEIGHT = 0.40
PASSING_AVERAGE = 11.0
SATISFACTORY_ATTENDANCE_PCT = 70
PENDING_LABEL = "--"

STATUS_TO_BACKEND: Dict[str, str] = {"present": "Presente", "late": "Tardanza", "absent": "Ausente"}
STATUS_FROM_BACKEND: Dict[str, str] = {v: k for k, v in STATUS_TO_BACKEND.items()}


@dataclass(frozen=True)
class AttendanceSummary:
    present: int
    late: int
    absent: int
    total: int
    rate_percent: int

    @property
    def satisfactory(self) -> bool:
        return attendance_satisfactory(self.rate_percent)


def weighted_average(
    midterm: Optional[float],
    final: Optional[float],
    assignments: Optional[float],
) -> Optional[float]:
    if midterm is None or final is None or assignments is None:
        return None
    return MIDTERM_WEIGHT * float(midterm) + FINAL_WEIGHT * float(final) + ASSIGNMENTS_WEIGHT * float(assignments)


def passed(average: Optional[float]) -> bool:
    return average is not None and average >= PASSING_AVERAGE


def format_average(average: Optional[float]) -> str:
    if average is None:
        return PENDING_LABEL
    return f"{average:.1f}"


def _status_of(record: Any) -> str:
    if isinstance(record, dict):
        raw = str(record.get("status") or record.get("estado") or "")
    else:
        raw = str(getattr(record, "status", "") or "")
    return STATUS_FROM_BACKEND.get(raw, raw)


def _round_half_up(value: float) -> int:
    # Display percentages round halves up, not to even.
    return int(value + 0.5)


def attendance_summary(records: Iterable[Any]) -> Optional[AttendanceSummary]:
    """Tally present, late and absent records; ``None`` when there are none.

    Records may be views, or raw rows carrying either the domain status or
    the stored one (``Presente``, ``Tardanza``, ``Ausente``). Anything else is
    not counted.
    """
    present = late = absent = 0
    for record in records:
        status = _status_of(record)
        if status == "present":
            present += 1
        elif status == "late":
            late += 1
        elif status == "absent":
            absent += 1
    total = present + late + absent
    if total == 0:
        return None
    return AttendanceSummary(
        present=present,
        late=late,
        absent=absent,
        total=total,
        rate_percent=_round_half_up(100.0 * present / total),
    )


def attendance_satisfactory(rate_percent: Optional[float]) -> bool:
    return rate_percent is not None and rate_percent >= SATISFACTORY_ATTENDANCE_PCT


def summaries_by_course(records: Iterable[Any]) -> Dict[str, AttendanceSummary]:
    grouped: Dict[str, List[Any]] = OrderedDict()
    for record in records:
        code = record.get("course_code") if isinstance(record, dict) else getattr(record, "course_code", "")
        grouped.setdefault(str(code or ""), []).append(record)
    out: Dict[str, AttendanceSummary] = OrderedDict()
    for code, items in grouped.items():
        summary = attendance_summary(items)
        if summary is not None:
            out[code] = summary
    return out


def passed_count(averages: Iterable[Optional[float]]) -> int:
    return sum(1 for avg in averages if passed(avg))


def grade_overview(averages: Iterable[Optional[float]]) -> Dict[str, Any]:
    values = list(averages)
    present = [float(v) for v in values if v is not None]
    return {
        "courses": len(values),
        "graded": len(present),
        "pending": len(values) - len(present),
        "passed": passed_count(present),
        "mean_average": round(sum(present) / len(present), 1) if present else None,
        "mean_label": format_average(sum(present) / len(present) if present else None),
    }
