"""Unit tests for backoff computation and the per-attempt controller."""

from datetime import timedelta

import pytest

from infrastructure.configuration import RetryPolicyConfig
from infrastructure.configuration.infrastructure import NotificationRetrySettings
from infrastructure.operations import OperationResult
from modules.notifications.models import (
    Channel,
    DispatchOutcome,
    FailureKind,
    Lane,
    NotificationStatus,
    NotificationType,
    Priority,
)
from modules.notifications.retry import BackoffController, RetryPolicies, backoff_delay
from tests.factories import NOW, RecordingEscalator, make_notification

pytestmark = pytest.mark.unit


@pytest.fixture
def policies():
    return RetryPolicies(NotificationRetrySettings())


@pytest.fixture
def escalator():
    return RecordingEscalator()


@pytest.fixture
def controller(clock, policies, escalator):
    controller = BackoffController(clock, policies, escalator=escalator, max_workers=2)
    yield controller
    controller.shutdown()


def sending(**overrides):
    return make_notification(status=NotificationStatus.SENDING, **overrides)


class TestBackoffDelay:
    """Tests for backoff_delay()."""

    POLICY = RetryPolicyConfig(backoff_seconds=[30, 300, 1800])

    @pytest.mark.parametrize(
        "attempts,expected",
        [(1, 30), (2, 300), (3, 1800), (7, 1800)],
    )
    def test_schedule_by_attempt(self, attempts, expected):
        """The n-th failure uses the n-th entry, clamped to the last one."""
        assert backoff_delay(self.POLICY, attempts) == expected

    def test_retry_after_is_lower_bound(self):
        """A provider retry-after hint longer than the schedule wins."""
        assert backoff_delay(self.POLICY, 1, retry_after=120) == 120
        assert backoff_delay(self.POLICY, 2, retry_after=120) == 300

    def test_delays_never_decrease(self):
        """The previous delay bounds the next one from below."""
        assert backoff_delay(self.POLICY, 2, last_backoff_seconds=600) == 600


class TestRetryPolicies:
    """Tests for policy resolution."""

    def test_urgent_lane_wins(self, policies):
        policy = policies.resolve_for(
            NotificationType.BOOKING_REMINDER, Channel.EMAIL, Lane.URGENT
        )
        assert policy.max_attempts == 2
        assert policy.backoff_seconds == [30, 60]

    def test_type_before_channel(self, policies):
        policy = policies.resolve_for(
            NotificationType.BOOKING_REMINDER, Channel.SMS, Lane.NORMAL
        )
        assert policy.backoff_seconds == [30, 300, 900]

    def test_channel_policy(self, policies):
        policy = policies.resolve_for(
            NotificationType.BOOKING_CONFIRMATION, Channel.SMS, Lane.NORMAL
        )
        assert policy.retry_until_seconds == 3600

    def test_unknown_name_falls_back_to_default(self, policies):
        assert policies.get("nope").backoff_seconds == [30, 300, 1800]

    def test_override_keeps_other_defaults(self):
        """Overriding one policy leaves the built-in ones in place."""
        settings = NotificationRetrySettings(
            NOTIFICATIONS_RETRY_POLICIES={
                "email": RetryPolicyConfig(max_attempts=5, backoff_seconds=[10])
            }
        )
        policies = RetryPolicies(settings)
        assert policies.get("email").max_attempts == 5
        assert policies.get("sms").max_attempts == 3

    def test_invalid_backoff_rejected(self):
        """Decreasing schedules are rejected at load time."""
        with pytest.raises(ValueError):
            RetryPolicyConfig(backoff_seconds=[300, 30])


class TestBackoffController:
    """Tests for BackoffController.execute()."""

    def test_success_marks_sent(self, controller):
        """A successful send consumes one attempt and sets the deadline."""
        record = sending()
        outcome = controller.execute(record, lambda: OperationResult.success())
        assert outcome == DispatchOutcome.SENT
        assert record.status == NotificationStatus.SENT
        assert record.attempts == 1
        assert record.sent_at == NOW
        assert record.first_attempted_at == NOW
        assert record.retry_until == NOW + timedelta(seconds=7200)

    def test_transient_schedules_retry(self, controller):
        """Transient failures go back to pending after the email backoff."""
        record = sending()
        outcome = controller.execute(
            record,
            lambda: OperationResult.transient_error("timeout", error_code="PROVIDER_TIMEOUT"),
        )
        assert outcome == DispatchOutcome.RETRYING
        assert record.status == NotificationStatus.PENDING
        assert record.scheduled_at == NOW + timedelta(seconds=60)
        assert record.failure_code == "PROVIDER_TIMEOUT"

    def test_transient_on_last_attempt_fails(self, controller):
        """The attempt that reaches max_attempts ends failed (transient)."""
        record = sending(attempts=2, first_attempted_at=NOW, retry_until=NOW + timedelta(hours=2))
        outcome = controller.execute(
            record, lambda: OperationResult.transient_error("timeout")
        )
        assert outcome == DispatchOutcome.FAILED
        assert record.attempts == 3
        assert record.failure_kind == FailureKind.TRANSIENT

    def test_fatal_fails_after_one_attempt(self, controller):
        record = sending(channel=Channel.SMS)
        outcome = controller.execute(
            record,
            lambda: OperationResult.permanent_error(
                "bad number", error_code="INVALID_PHONE_FORMAT"
            ),
        )
        assert outcome == DispatchOutcome.FAILED
        assert record.attempts == 1
        assert record.failure_kind == FailureKind.FATAL
        assert record.failure_reason == "bad number"

    def test_skip_is_not_a_failure(self, controller):
        record = sending()
        outcome = controller.execute(
            record, lambda: OperationResult.skipped("opted out", error_code="OPTED_OUT")
        )
        assert outcome == DispatchOutcome.SKIPPED
        assert record.status == NotificationStatus.SKIPPED
        assert record.failure_kind is None

    def test_exception_is_transient(self, controller):
        """A raising send becomes a SYSTEM_ERROR retry."""

        def explode():
            raise RuntimeError("boom")

        record = sending()
        outcome = controller.execute(record, explode)
        assert outcome == DispatchOutcome.RETRYING
        assert record.failure_code == "SYSTEM_ERROR"

    def test_exhausted_record_is_not_sent(self, controller):
        """A record already at max_attempts fails without calling send."""
        calls = []
        record = sending(attempts=3)
        outcome = controller.execute(
            record, lambda: calls.append(1) or OperationResult.success()
        )
        assert outcome == DispatchOutcome.FAILED
        assert calls == []
        assert record.attempts == 3
        assert record.failure_code == "MAX_ATTEMPTS_EXCEEDED"

    def test_retry_deadline_stops_retries(self, controller):
        """A retry that would land past retry_until fails instead."""
        record = sending(
            attempts=1,
            first_attempted_at=NOW - timedelta(hours=2),
            retry_until=NOW + timedelta(seconds=30),
        )
        outcome = controller.execute(
            record, lambda: OperationResult.transient_error("timeout")
        )
        assert outcome == DispatchOutcome.FAILED
        assert "retry deadline passed" in record.failure_reason
        assert record.retry_until == NOW + timedelta(seconds=30)


class TestEscalation:
    """Tests for urgent escalation on final failure."""

    def test_urgent_failure_escalates_once(self, controller, escalator):
        record = sending(priority=Priority.URGENT, channel=Channel.PUSH)
        controller.execute(
            record, lambda: OperationResult.permanent_error("no device", "NO_VALID_DEVICE_TOKENS")
        )
        assert len(escalator.events) == 1
        assert escalator.events[0].notification_id == record.id
        assert record.escalated_at == NOW

        controller._escalate_if_urgent(record, NOW)
        assert len(escalator.events) == 1

    def test_fail_outside_a_send_escalates_urgent(self, controller, escalator):
        urgent = sending(priority=Priority.URGENT, channel=Channel.PUSH)
        normal = sending()

        controller.fail(urgent, "Claim lease expired while sending", "CLAIM_EXPIRED")
        controller.fail(normal, "Batch run aborted", "BATCH_ABORTED")

        assert urgent.status == normal.status == NotificationStatus.FAILED
        assert urgent.failure_kind == FailureKind.TRANSIENT
        assert [e.notification_id for e in escalator.events] == [urgent.id]

    def test_normal_failure_not_escalated(self, controller, escalator):
        record = sending()
        controller.execute(record, lambda: OperationResult.permanent_error("bad"))
        assert escalator.events == []

    def test_escalator_error_does_not_change_outcome(self, clock, policies):
        class Broken:
            def escalate(self, event):
                raise RuntimeError("pager down")

        controller = BackoffController(clock, policies, escalator=Broken(), max_workers=1)
        record = sending(priority=Priority.URGENT)
        try:
            outcome = controller.execute(
                record, lambda: OperationResult.permanent_error("bad")
            )
        finally:
            controller.shutdown()
        assert outcome == DispatchOutcome.FAILED
        assert record.status == NotificationStatus.FAILED
