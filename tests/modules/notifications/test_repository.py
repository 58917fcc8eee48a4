"""
Unit tests for the notification outbox helpers.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from placement_api.modules.notifications.models import (
    NotificationEvent,
    NotificationEventType,
    NotificationStatus,
)
from placement_api.modules.notifications.repository import (
    backoff_delay,
    enqueue,
    mark_attempt_failed,
    mark_delivered,
)

NOW = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


def _event(attempts: int = 0) -> MagicMock:
    event = MagicMock(spec=NotificationEvent)
    event.status = NotificationStatus.PENDING
    event.attempts = attempts
    event.next_attempt_at = NOW
    event.last_error = None
    event.delivered_at = None
    return event


class TestEnqueue:
    def test_adds_pending_event_to_session(self, mock_db):
        recipient_id = uuid4()

        event = enqueue(
            mock_db,
            NotificationEventType.PAYMENT_VERIFIED,
            title="Payment verified",
            message="Your payment QHG31YRWPF has been verified.",
            payload={"transaction_code": "QHG31YRWPF"},
            recipient_id=recipient_id,
            recipient_email="jane@students.ac.ke",
        )

        mock_db.add.assert_called_once_with(event)
        assert event.status == NotificationStatus.PENDING
        assert event.attempts == 0
        assert event.channels == ["email", "push"]
        assert event.recipient_id == recipient_id
        mock_db.commit.assert_not_called()

    def test_recipient_required(self, mock_db):
        with pytest.raises(ValueError):
            enqueue(
                mock_db,
                NotificationEventType.OPPORTUNITIES_CLOSED,
                title="t",
                message="m",
                payload={},
            )


class TestBackoff:
    def test_doubles_each_attempt(self):
        assert backoff_delay(1, 60) == timedelta(seconds=60)
        assert backoff_delay(2, 60) == timedelta(seconds=120)
        assert backoff_delay(3, 60) == timedelta(seconds=240)

    def test_zero_attempts_uses_base(self):
        assert backoff_delay(0, 30) == timedelta(seconds=30)


class TestMarkAttempt:
    def test_delivered(self):
        event = _event(attempts=1)
        event.last_error = "timeout"

        mark_delivered(event, NOW)

        assert event.status == NotificationStatus.DELIVERED
        assert event.attempts == 2
        assert event.delivered_at == NOW
        assert event.last_error is None

    def test_failure_reschedules_with_backoff(self):
        event = _event(attempts=1)

        mark_attempt_failed(event, "SMTP timeout", NOW, max_attempts=5, backoff_seconds=60)

        assert event.status == NotificationStatus.PENDING
        assert event.attempts == 2
        assert event.last_error == "SMTP timeout"
        assert event.next_attempt_at == NOW + timedelta(seconds=120)

    def test_last_attempt_marks_failed(self):
        event = _event(attempts=4)

        mark_attempt_failed(event, "SMTP timeout", NOW, max_attempts=5, backoff_seconds=60)

        assert event.status == NotificationStatus.FAILED
        assert event.attempts == 5

    def test_long_errors_truncated(self):
        event = _event()

        mark_attempt_failed(event, "x" * 5000, NOW, max_attempts=5, backoff_seconds=60)

        assert len(event.last_error) == 2000
