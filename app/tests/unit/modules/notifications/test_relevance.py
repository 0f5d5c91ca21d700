"""Unit tests for send-time relevance checks."""

from datetime import timedelta

import pytest

from infrastructure.configuration.features import NotificationSchedulingSettings
from modules.notifications.models import NotificationType
from modules.notifications.payloads import PaymentPayload
from modules.notifications.relevance import RelevanceValidator
from tests.factories import NOW, make_booking, make_consultation, make_notification, make_reminder

pytestmark = pytest.mark.unit


@pytest.fixture
def validator(clock):
    return RelevanceValidator(clock, NotificationSchedulingSettings())


def error_code(validator, notification, business_object):
    result = validator.check(notification, business_object)
    return None if result.is_success else result.error_code


class TestBusinessState:
    """Tests driven by the business object's status."""

    def test_confirmed_booking_is_relevant(self, validator):
        assert validator.is_still_relevant(make_notification(), make_booking())

    def test_missing_business_object(self, validator):
        assert error_code(validator, make_notification(), None) == "BUSINESS_OBJECT_MISSING"

    @pytest.mark.parametrize("status", ["cancelled", "completed", "no_show"])
    def test_ended_business_object(self, validator, status):
        booking = make_booking(status=status)
        assert error_code(validator, make_notification(), booking) == "BUSINESS_OBJECT_ENDED"

    def test_cancellation_notice_tolerates_cancelled(self, validator):
        """A cancellation notice is about the cancelled state itself."""
        notice = make_notification(notification_type=NotificationType.BOOKING_CANCELLED)
        assert validator.is_still_relevant(notice, make_booking(status="cancelled"))


class TestEventTime:
    """Tests for the event-passed rule."""

    def test_event_passed_beyond_grace(self, validator):
        booking = make_booking(starts_at=NOW - timedelta(hours=2))
        assert error_code(validator, make_notification(), booking) == "EVENT_PASSED"

    def test_event_within_grace(self, validator):
        booking = make_booking(starts_at=NOW - timedelta(minutes=30))
        assert validator.is_still_relevant(make_notification(), booking)

    def test_follow_up_is_exempt(self, validator):
        """Follow-ups are sent after completed events by definition."""
        booking = make_booking(starts_at=NOW - timedelta(hours=24), status="completed")
        follow_up = make_notification(notification_type=NotificationType.BOOKING_FOLLOW_UP)
        assert validator.is_still_relevant(follow_up, booking)


class TestPayment:
    """Tests for payment notifications."""

    def payment_notice(self):
        return make_notification(
            notification_type=NotificationType.PAYMENT_REMINDER,
            payload=PaymentPayload(
                booking_id="b-1",
                amount_due=100.0,
                remaining_amount=100.0,
                due_at=NOW + timedelta(days=1),
            ),
        )

    def test_outstanding_payment_is_relevant(self, validator):
        booking = make_booking(payment_status="pending", amount_due=100.0)
        assert validator.is_still_relevant(self.payment_notice(), booking)

    def test_settled_payment_is_skipped(self, validator):
        booking = make_booking(payment_status="paid", amount_due=100.0, amount_paid=100.0)
        assert error_code(validator, self.payment_notice(), booking) == "PAYMENT_SETTLED"

    def test_fully_paid_pending_status_is_skipped(self, validator):
        """Nothing remaining means settled, whatever the status says."""
        booking = make_booking(payment_status="pending", amount_due=50.0, amount_paid=50.0)
        assert error_code(validator, self.payment_notice(), booking) == "PAYMENT_SETTLED"


class TestReminders:
    """Tests for reminder timing."""

    def test_on_time_reminder(self, validator):
        booking = make_booking(starts_at=NOW + timedelta(hours=24))
        assert validator.is_still_relevant(make_reminder(booking, hours_before=24), booking)

    def test_rescheduled_event_makes_reminder_mistimed(self, validator):
        """The booking moved 6h later; the stored 24h reminder is stale."""
        original = make_booking(starts_at=NOW + timedelta(hours=24))
        reminder = make_reminder(original, hours_before=24)
        moved = make_booking(starts_at=NOW + timedelta(hours=30))
        assert error_code(validator, reminder, moved) == "REMINDER_MISTIMED"

    def test_reminder_too_far_out(self, validator):
        booking = make_booking(starts_at=NOW + timedelta(hours=200))
        reminder = make_reminder(booking, hours_before=200)
        assert error_code(validator, reminder, booking) == "REMINDER_OUT_OF_RANGE"

    def test_booking_reminder_needs_minimum_lead(self, validator):
        booking = make_booking(starts_at=NOW + timedelta(minutes=10))
        reminder = make_reminder(booking, hours_before=0)
        assert error_code(validator, reminder, booking) == "REMINDER_TOO_LATE"

    def test_consultation_reminder_has_no_minimum_lead(self, validator):
        consultation = make_consultation(starts_at=NOW + timedelta(minutes=10))
        reminder = make_reminder(consultation, hours_before=0)
        assert validator.is_still_relevant(reminder, consultation)
