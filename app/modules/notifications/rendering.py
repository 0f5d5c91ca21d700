"""Message rendering collaborator.

Content and templates are owned elsewhere; the engine only needs a
RenderedMessage for a (type, channel, payload). PlainTextRenderer is the
default used in development and tests.
"""

from typing import Protocol

from infrastructure.notifications.models import RenderedMessage
from modules.notifications.models import Notification, NotificationType
from modules.notifications.payloads import (
    BookingPayload,
    ConsultationPayload,
    OtherPayload,
    PaymentPayload,
    ReminderPayload,
)


class MessageRenderer(Protocol):
    def render(self, notification: Notification) -> RenderedMessage: ...


SUBJECTS = {
    NotificationType.BOOKING_CONFIRMATION: "Booking confirmed",
    NotificationType.BOOKING_REMINDER: "Upcoming booking",
    NotificationType.PAYMENT_REMINDER: "Payment reminder",
    NotificationType.PAYMENT_OVERDUE: "Payment overdue",
    NotificationType.BOOKING_CANCELLED: "Booking cancelled",
    NotificationType.BOOKING_RESCHEDULED: "Booking rescheduled",
    NotificationType.BOOKING_FOLLOW_UP: "How did it go?",
    NotificationType.CONSULTATION_CONFIRMATION: "Consultation confirmed",
    NotificationType.CONSULTATION_REMINDER: "Upcoming consultation",
    NotificationType.CONSULTATION_STARTING_SOON: "Consultation starting soon",
}


class PlainTextRenderer:
    """Renders short plain-text messages from the payload fields."""

    def render(self, notification: Notification) -> RenderedMessage:
        payload = notification.payload
        subject = SUBJECTS.get(notification.type, "Notification")

        if isinstance(payload, BookingPayload):
            body = f"{payload.service_name or 'Your booking'} on {payload.starts_at:%Y-%m-%d %H:%M} UTC"
        elif isinstance(payload, ReminderPayload):
            body = (
                f"{payload.title or 'Your booking'} starts in {payload.hours_before}h "
                f"({payload.starts_at:%Y-%m-%d %H:%M} UTC)"
            )
        elif isinstance(payload, PaymentPayload):
            body = (
                f"{payload.remaining_amount:.2f} {payload.currency} due by "
                f"{payload.due_at:%Y-%m-%d}"
            )
        elif isinstance(payload, ConsultationPayload):
            body = f"{payload.title or 'Your consultation'} at {payload.starts_at:%Y-%m-%d %H:%M} UTC"
            if payload.join_url:
                body += f" - join: {payload.join_url}"
        elif isinstance(payload, OtherPayload):
            body = payload.values.get("body", subject)
        else:
            body = subject

        return RenderedMessage(
            subject=subject,
            body=body,
            data={
                "notification_id": notification.id,
                "type": notification.type.value,
                "business_ref": str(notification.business_ref),
            },
        )
