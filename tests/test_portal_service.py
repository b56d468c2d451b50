from __future__ import annotations

import unittest
from unittest import mock

from portal.academic_gateway import AcademicGateway, AcademicGatewayDeps
from portal.api_models import AuthUser, GradeEntryRequest
from portal.chat_webhook_client import ChatOutcome, ChatWebhookClient
from portal.identity import StaticIdentityProvider
from portal.portal_service import PortalService, PortalServiceDeps
from tests.fakes import FakeBackend, academic_tables, portal_config


_STUDENT = AuthUser(
    id="stu-1", email="ana@uni.edu", first_names="Ana", last_names="Quispe", role="student", student_code="E2021001", school_id=1
)
_PROFESSOR = AuthUser(id="prof-1", email="luis@uni.edu", first_names="Luis", last_names="Rojas", role="professor")


class PortalServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend(academic_tables())
        self.identity = StaticIdentityProvider()
        self.chat = mock.create_autospec(ChatWebhookClient, instance=True)
        self.service = PortalService(
            PortalServiceDeps(
                identity=self.identity,
                gateway=AcademicGateway(AcademicGatewayDeps(client=self.backend, periods=["2025-I"])),
                chat=self.chat,
                config=portal_config(),
            )
        )


class TestSignedOut(PortalServiceTestCase):
    def test_every_operation_is_unauthenticated_without_network(self):
        results = [
            self.service.dashboard(),
            self.service.my_grades(),
            self.service.my_attendance(),
            self.service.record_grade({"course_code": "MAT101", "student_code": "E2021001", "score": 12}),
            self.service.record_attendance({"course_code": "MAT101", "student_code": "E2021001", "date": "2025-05-02"}),
            self.service.lookup_student("E2021001"),
            self.service.search_courses("calc"),
        ]

        self.assertTrue(all(r.error == "unauthenticated" for r in results))
        self.assertEqual(results[3].lenient(), False)
        self.assertEqual(results[1].lenient(), [])
        self.assertEqual(self.backend.queries, [])

        turn = self.service.send_chat("hello")
        self.assertEqual(turn.status, "failed")
        self.assertEqual(turn.error_kind, "unauthenticated")
        self.chat.send.assert_not_called()


class TestStudent(PortalServiceTestCase):
    def setUp(self):
        super().setUp()
        self.identity.sign_in(_STUDENT, token="t")

    def test_dashboard_lists_courses_and_overview(self):
        result = self.service.dashboard()

        self.assertTrue(result.is_ok)
        self.assertEqual(result.data["period"], "2025-I")
        self.assertEqual(len(result.data["courses"]), 2)
        self.assertEqual(result.data["overview"]["graded"], 1)
        self.assertEqual(result.data["overview"]["pending"], 1)
        self.assertEqual(result.data["overview"]["passed"], 1)

    def test_attendance_report_summarises_per_course(self):
        report = self.service.my_attendance("2025-I").data

        self.assertEqual(len(report.records), 2)
        self.assertEqual(report.summaries["MAT101"].rate_percent, 50)

    def test_professor_operations_are_forbidden(self):
        grade = self.service.record_grade(
            GradeEntryRequest(course_code="MAT101", student_code="E2021001", component="midterm", score=20)
        )
        attendance = self.service.record_attendance(
            {"course_code": "MAT101", "student_code": "E2021001", "date": "2025-05-02"}
        )

        self.assertEqual(grade.error, "forbidden")
        self.assertEqual(attendance.error, "forbidden")
        self.assertEqual(self.backend.writes(), [])

    def test_course_search_is_scoped_to_own_school(self):
        result = self.service.search_courses("fis")

        self.assertEqual([c.code for c in result.data], ["FIS101"])
        self.assertIn(("curso_escuela.id_escuela", "eq", 1), self.backend.queries[-1].filters)

    def test_chat_delivered(self):
        self.chat.send.return_value = ChatOutcome(success=True, response="You have 2 courses.")

        turn = self.service.send_chat("  how many courses?  ")

        self.assertEqual(turn.status, "delivered")
        self.assertEqual(turn.reply, "You have 2 courses.")
        message, identity = self.chat.send.call_args.args
        self.assertEqual(message, "how many courses?")
        self.assertEqual(identity.role, "student")
        self.assertEqual(identity.display_name, "Ana Quispe")

    def test_chat_timeout_shows_notice(self):
        self.chat.send.return_value = ChatOutcome.failed("timeout", "no reply within 30s")

        turn = self.service.send_chat("hello")

        self.assertEqual(turn.status, "failed")
        self.assertEqual(turn.error_kind, "timeout")
        self.assertIn("longer than usual", turn.notice)

    def test_chat_welcome_matches_role(self):
        self.assertTrue(self.service.chat_welcome().startswith("Hello student"))

    def test_chat_over_length_is_not_sent(self):
        turn = self.service.send_chat("x" * 21)

        self.assertEqual(turn.status, "composed")
        self.assertEqual(turn.error_kind, "validation")
        self.chat.send.assert_not_called()


class TestProfessor(PortalServiceTestCase):
    def setUp(self):
        super().setUp()
        self.identity.sign_in(_PROFESSOR, token="t")

    def test_dashboard_lists_taught_sections(self):
        result = self.service.dashboard("2025-I")

        self.assertEqual([s.course_code for s in result.data["sections"]], ["MAT101"])

    def test_record_grade_validates_before_network(self):
        result = self.service.record_grade({"course_code": "MAT101", "student_code": "E2021001", "score": 25})

        self.assertEqual(result.error, "validation")
        self.assertIn("score", result.detail)
        self.assertEqual(self.backend.queries, [])

    def test_record_grade_and_attendance_for_own_section(self):
        grade = self.service.record_grade(
            {"course_code": "MAT101", "student_code": "E2021001", "component": "final", "score": 17.5}
        )
        attendance = self.service.record_attendance(
            {"course_code": "MAT101", "student_code": "E2021001", "date": "2025-05-02", "status": "absent"}
        )

        self.assertTrue(grade.is_ok)
        self.assertTrue(attendance.is_ok)
        self.assertEqual(self.backend.writes("notas")[0].payload["examen_final"], 17.5)
        self.assertEqual(self.backend.writes("asistencias")[0].payload["estado"], "Ausente")

    def test_foreign_section_is_forbidden(self):
        result = self.service.record_grade({"course_code": "FIS101", "student_code": "E2021001", "score": 12})

        self.assertEqual(result.error, "forbidden")
        self.assertEqual(self.backend.writes(), [])

    def test_student_views_are_not_for_professors(self):
        self.assertEqual(self.service.my_grades().error, "forbidden")

    def test_chat_welcome_matches_role(self):
        self.assertIn("professor", self.service.chat_welcome())

    def test_lookup_student(self):
        self.assertTrue(self.service.lookup_student("E2021001").is_ok)
        self.assertTrue(self.service.lookup_student("E0000000").is_empty)


if __name__ == "__main__":
    unittest.main()
