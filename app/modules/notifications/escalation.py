"""Escalation of urgent notifications that exhausted their retries.

Escalation is best-effort: an escalator that raises is logged and never
changes the outcome of the delivery it reports on.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import structlog

from infrastructure.logging import mask_email, mask_phone
from modules.notifications.models import Notification

logger = structlog.get_logger()


@dataclass
class EscalationEvent:
    notification_id: str
    business_ref: str
    notification_type: str
    channel: str
    recipient: str
    attempts: int
    last_error: Optional[str]
    failed_at: datetime

    @classmethod
    def from_notification(
        cls, notification: Notification, failed_at: datetime
    ) -> "EscalationEvent":
        return cls(
            notification_id=notification.id,
            business_ref=str(notification.business_ref),
            notification_type=notification.type.value,
            channel=notification.channel.value,
            recipient=masked_recipient(notification),
            attempts=notification.attempts,
            last_error=notification.failure_reason,
            failed_at=failed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["failed_at"] = self.failed_at.isoformat()
        return data


def masked_recipient(notification: Notification) -> str:
    """Recipient description safe for alert channels."""
    recipient = notification.recipient
    if recipient.phone:
        return mask_phone(recipient.phone) or ""
    if recipient.email:
        return mask_email(recipient.email) or ""
    if recipient.device_tokens:
        return f"{len(recipient.device_tokens)} device(s)"
    return f"user:{notification.user_id or 'unknown'}"


class Escalator(Protocol):
    def escalate(self, event: EscalationEvent) -> None: ...


class LogEscalator:
    """Reports escalations at critical level for the on-call log alerts."""

    def escalate(self, event: EscalationEvent) -> None:
        logger.critical(
            "urgent_notification_failed",
            message="manual intervention required",
            **event.to_dict(),
        )


class CompositeEscalator:
    """Fans one event out to several escalators.

    Each escalator is isolated: one raising does not stop the others.
    """

    def __init__(self, escalators: List[Escalator]):
        self.escalators = list(escalators)

    def escalate(self, event: EscalationEvent) -> None:
        for escalator in self.escalators:
            try:
                escalator.escalate(event)
            except Exception as e:  # pylint: disable=broad-except
                logger.error(
                    "escalator_failed",
                    escalator=type(escalator).__name__,
                    notification_id=event.notification_id,
                    error=str(e),
                )
