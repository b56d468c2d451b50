"""Tests for portal.chat_message_state module."""

from __future__ import annotations

import unittest

from portal.chat_message_state import (
    ChatMessageStateMachine,
    is_terminal_chat_message_status,
    normalize_chat_message_status,
)
from portal.chat_support import failure_notice, welcome_message


class TestNormalizeChatMessageStatus(unittest.TestCase):
    def test_blank_is_composed(self):
        self.assertEqual(normalize_chat_message_status(None), "composed")
        self.assertEqual(normalize_chat_message_status("  "), "composed")

    def test_case_and_whitespace(self):
        self.assertEqual(normalize_chat_message_status(" Sending "), "sending")

    def test_terminal(self):
        self.assertTrue(is_terminal_chat_message_status("delivered"))
        self.assertTrue(is_terminal_chat_message_status("FAILED"))
        self.assertFalse(is_terminal_chat_message_status("sending"))


class TestChatMessageStateMachine(unittest.TestCase):
    def test_happy_path(self):
        machine = ChatMessageStateMachine()
        machine.transition("sending")
        self.assertEqual(machine.transition("delivered"), "delivered")

    def test_failure_records_kind(self):
        machine = ChatMessageStateMachine()
        machine.transition("sending")
        machine.transition("failed", failure_kind="timeout")
        self.assertEqual(machine.failure_kind, "timeout")

    def test_invalid_transition_raises(self):
        machine = ChatMessageStateMachine()
        with self.assertRaises(ValueError) as ctx:
            machine.transition("delivered")
        self.assertIn("composed->delivered", str(ctx.exception))

    def test_terminal_states_are_final(self):
        machine = ChatMessageStateMachine(status="failed")
        with self.assertRaises(ValueError):
            machine.transition("sending")


class TestChatSupport(unittest.TestCase):
    def test_welcome_depends_on_role(self):
        self.assertIn("professor", welcome_message("professor"))
        self.assertIn("student", welcome_message("student"))
        self.assertEqual(welcome_message(None), welcome_message("student"))

    def test_timeout_has_its_own_notice(self):
        self.assertNotEqual(failure_notice("timeout"), failure_notice("network"))


if __name__ == "__main__":
    unittest.main()
