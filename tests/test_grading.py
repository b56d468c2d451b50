import pytest

from portal.grading import (
    attendance_satisfactory,
    attendance_summary,
    format_average,
    grade_overview,
    passed,
    passed_count,
    summaries_by_course,
    weighted_average,
)


def test_weighted_average_uses_fixed_weights():
    assert weighted_average(12, 14, 15) == pytest.approx(13.8)
    assert weighted_average(0, 0, 0) == 0
    assert weighted_average(20, 20, 20) == pytest.approx(20)


def test_missing_component_is_pending_not_zero():
    assert weighted_average(None, 14, 15) is None
    assert weighted_average(12, None, 15) is None
    assert weighted_average(12, 14, None) is None
    assert format_average(None) == "--"


def test_pass_threshold_is_inclusive():
    assert passed(11.0) is True
    assert passed(10.99) is False
    assert passed(None) is False
    assert passed_count([11, 10.5, None, 18]) == 2


def test_format_average_one_decimal():
    assert format_average(13.8) == "13.8"
    assert format_average(11) == "11.0"


def test_attendance_summary_counts_and_rate():
    records = [{"status": "present"}] * 3 + [{"status": "late"}, {"status": "absent"}]

    summary = attendance_summary(records)

    assert (summary.present, summary.late, summary.absent, summary.total) == (3, 1, 1, 5)
    assert summary.rate_percent == 60
    assert summary.satisfactory is False


def test_attendance_rate_rounds_half_up():
    # 7/8 = 87.5 and 5/8 = 62.5 both round up
    seven = [{"status": "present"}] * 7 + [{"status": "absent"}]
    five = [{"status": "present"}] * 5 + [{"status": "late"}] * 3
    assert attendance_summary(seven).rate_percent == 88
    assert attendance_summary(five).rate_percent == 63


def test_attendance_summary_empty_is_none():
    assert attendance_summary([]) is None


def test_attendance_summary_accepts_stored_statuses():
    records = [{"status": "Presente"}, {"estado": "Tardanza"}, {"status": "present"}, {"status": "Ausente"}]

    summary = attendance_summary(records)

    assert (summary.present, summary.late, summary.absent, summary.total) == (2, 1, 1, 4)
    assert summary.rate_percent == 50
    assert attendance_summary([{"status": "Presente"}]).rate_percent == 100
    assert attendance_summary([{"status": "Justificado"}]) is None


def test_attendance_threshold():
    assert attendance_satisfactory(70) is True
    assert attendance_satisfactory(69) is False
    assert attendance_satisfactory(None) is False


class _Record:
    def __init__(self, course_code, status):
        self.course_code = course_code
        self.status = status


def test_summaries_by_course_groups_objects():
    records = [_Record("MAT101", "present"), _Record("FIS101", "absent"), _Record("MAT101", "late")]

    summaries = summaries_by_course(records)

    assert list(summaries) == ["MAT101", "FIS101"]
    assert summaries["MAT101"].total == 2
    assert summaries["MAT101"].rate_percent == 50
    assert summaries["FIS101"].rate_percent == 0


def test_grade_overview():
    overview = grade_overview([13.8, None, 9.0])
    assert overview == {"courses": 3, "graded": 2, "pending": 1, "passed": 1, "mean_average": 11.4, "mean_label": "11.4"}
    assert grade_overview([None])["mean_label"] == "--"
    assert grade_overview([])["mean_average"] is None
