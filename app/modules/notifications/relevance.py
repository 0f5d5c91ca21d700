"""Send-time relevance checks.

A notification scheduled days ago may no longer make sense when its turn
comes: the booking was cancelled, the payment settled, or the event moved.
The validator runs immediately before every send attempt, retries included.
"""

from datetime import datetime, timedelta
from typing import Optional

from infrastructure.clock import Clock
from infrastructure.configuration.features import NotificationSchedulingSettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from modules.notifications.business import BusinessSnapshot
from modules.notifications.models import Notification, NotificationType
from modules.notifications.payloads import ReminderPayload, payload_event_time

logger = get_module_logger()

# Reminders further out than this are never relevant
MAX_REMINDER_HOURS = 168

PAYMENT_TYPES = frozenset(
    {NotificationType.PAYMENT_REMINDER, NotificationType.PAYMENT_OVERDUE}
)

REMINDER_TYPES = frozenset(
    {NotificationType.BOOKING_REMINDER, NotificationType.CONSULTATION_REMINDER}
)

# Sent after the event by definition; exempt from the event-passed rule
POST_EVENT_TYPES = frozenset({NotificationType.BOOKING_FOLLOW_UP})

# Ended statuses that a type is about, and therefore tolerates
TOLERATED_STATUSES = {
    NotificationType.BOOKING_CANCELLED: frozenset({"cancelled"}),
    NotificationType.BOOKING_FOLLOW_UP: frozenset({"completed"}),
}


def event_time(
    notification: Notification, business_object: Optional[BusinessSnapshot]
) -> Optional[datetime]:
    """Current event start, preferring the live business object."""
    if business_object is not None:
        return business_object.starts_at
    return payload_event_time(notification.payload)


class RelevanceValidator:
    """Decides whether a notification still warrants delivery.

    Args:
        clock: Time source
        settings: Grace window, reminder tolerance and minimum lead
    """

    def __init__(self, clock: Clock, settings: NotificationSchedulingSettings):
        self._clock = clock
        self.grace = timedelta(minutes=settings.grace_minutes)
        self.tolerance_hours = settings.reminder_tolerance_minutes / 60
        self.min_lead = timedelta(minutes=settings.min_reminder_lead_minutes)

    def is_still_relevant(
        self,
        notification: Notification,
        business_object: Optional[BusinessSnapshot],
    ) -> bool:
        return self.check(notification, business_object).is_success

    def check(
        self,
        notification: Notification,
        business_object: Optional[BusinessSnapshot],
    ) -> OperationResult:
        """Return success, or skipped with the reason the send is moot."""
        result = self._evaluate(notification, business_object)
        if not result.is_success:
            logger.info(
                "notification_not_relevant",
                reason=result.message,
                error_code=result.error_code,
                **notification.log_context(),
            )
        return result

    def _evaluate(
        self,
        notification: Notification,
        business_object: Optional[BusinessSnapshot],
    ) -> OperationResult:
        now = self._clock.now()

        if business_object is None:
            return OperationResult.skipped(
                f"{notification.business_ref} no longer exists",
                error_code="BUSINESS_OBJECT_MISSING",
            )

        tolerated = TOLERATED_STATUSES.get(notification.type, frozenset())
        if business_object.is_ended and business_object.status not in tolerated:
            return OperationResult.skipped(
                f"{notification.business_ref} is {business_object.status}",
                error_code="BUSINESS_OBJECT_ENDED",
            )

        starts_at = business_object.starts_at
        if notification.type not in POST_EVENT_TYPES and now - starts_at > self.grace:
            return OperationResult.skipped(
                "Event has already passed", error_code="EVENT_PASSED"
            )

        if notification.type in PAYMENT_TYPES and not business_object.payment_outstanding:
            return OperationResult.skipped(
                "Payment already settled", error_code="PAYMENT_SETTLED"
            )

        payload = notification.payload
        if notification.type in REMINDER_TYPES and isinstance(payload, ReminderPayload):
            return self._check_reminder(notification, payload, starts_at, now)

        return OperationResult.success()

    def _check_reminder(
        self,
        notification: Notification,
        payload: ReminderPayload,
        starts_at: datetime,
        now: datetime,
    ) -> OperationResult:
        hours_until = (starts_at - now).total_seconds() / 3600

        if hours_until < 0 or hours_until > MAX_REMINDER_HOURS:
            return OperationResult.skipped(
                f"Event is {hours_until:.1f}h away", error_code="REMINDER_OUT_OF_RANGE"
            )
        if abs(hours_until - payload.hours_before) > self.tolerance_hours:
            return OperationResult.skipped(
                f"{payload.hours_before}h reminder but event is {hours_until:.1f}h away",
                error_code="REMINDER_MISTIMED",
            )
        if (
            notification.type == NotificationType.BOOKING_REMINDER
            and starts_at - now < self.min_lead
        ):
            return OperationResult.skipped(
                "Event starts too soon for a reminder",
                error_code="REMINDER_TOO_LATE",
            )
        return OperationResult.success()
