"""Notification domain models.

The Notification record is the single source of truth for one
single-channel delivery task. Status changes go through
``Notification.transition_to`` so that illegal lifecycle moves raise
instead of silently corrupting state.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from infrastructure.notifications.models import Recipient
from modules.notifications.payloads import OtherPayload, Payload


class NotificationType(str, Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_REMINDER = "booking_reminder"
    PAYMENT_REMINDER = "payment_reminder"
    PAYMENT_OVERDUE = "payment_overdue"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    BOOKING_FOLLOW_UP = "booking_follow_up"
    CONSULTATION_CONFIRMATION = "consultation_confirmation"
    CONSULTATION_REMINDER = "consultation_reminder"
    CONSULTATION_STARTING_SOON = "consultation_starting_soon"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    DATABASE = "database"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Priority(IntEnum):
    """Lower value is more urgent."""

    URGENT = 1
    HIGH = 2
    NORMAL = 3
    LOW = 4


class Lane(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def priority(self) -> Priority:
        return Priority[self.name]

    @classmethod
    def for_priority(cls, priority: int) -> "Lane":
        return cls[Priority(priority).name]


# Scan order for lane draining
LANE_ORDER = [Lane.URGENT, Lane.HIGH, Lane.NORMAL, Lane.LOW]


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"


ACTIVE_STATUSES = frozenset(
    {NotificationStatus.PENDING, NotificationStatus.SENDING, NotificationStatus.SENT}
)

CLOSED_STATUSES = frozenset(
    {
        NotificationStatus.SKIPPED,
        NotificationStatus.EXPIRED,
        NotificationStatus.CANCELLED,
    }
)

ALLOWED_TRANSITIONS: Dict[NotificationStatus, frozenset] = {
    NotificationStatus.PENDING: frozenset(
        {
            NotificationStatus.SENDING,
            NotificationStatus.SKIPPED,
            NotificationStatus.EXPIRED,
            NotificationStatus.CANCELLED,
        }
    ),
    NotificationStatus.SENDING: frozenset(
        {
            NotificationStatus.SENT,
            NotificationStatus.FAILED,
            NotificationStatus.SKIPPED,
            NotificationStatus.PENDING,
        }
    ),
    NotificationStatus.FAILED: frozenset({NotificationStatus.PENDING}),
}


class InvalidTransitionError(Exception):
    """Raised when a lifecycle move is not allowed from the current status."""

    def __init__(
        self,
        notification_id: str,
        current: NotificationStatus,
        target: NotificationStatus,
        message: Optional[str] = None,
    ):
        self.notification_id = notification_id
        self.current = current
        self.target = target
        super().__init__(
            message
            or f"Notification {notification_id} cannot move from "
            f"{current.value} to {target.value}"
        )


class BusinessRef(BaseModel):
    """Reference to the business object a notification is about."""

    kind: Literal["booking", "consultation"]
    id: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"

    @classmethod
    def parse(cls, value: str) -> "BusinessRef":
        kind, _, ref_id = value.partition(":")
        return cls(kind=kind, id=ref_id)

    @classmethod
    def booking(cls, booking_id: str) -> "BusinessRef":
        return cls(kind="booking", id=booking_id)

    @classmethod
    def consultation(cls, consultation_id: str) -> "BusinessRef":
        return cls(kind="consultation", id=consultation_id)


class Notification(BaseModel):
    """A scheduled, single-channel delivery task tied to a business event.

    Invariants:
        - attempts never exceeds max_attempts
        - sent_at is set iff status is SENT, and failure_reason is then None
        - status FAILED always carries a failure_reason

    ``version`` increments on every persisted change and guards
    conditional writes in shared stores.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    idempotency_key: str
    type: NotificationType
    channel: Channel
    priority: Priority = Priority.NORMAL
    queue_name: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING

    business_ref: BusinessRef
    user_id: Optional[str] = None
    recipient: Recipient = Field(default_factory=Recipient)
    payload: Payload = Field(default_factory=OtherPayload)

    attempts: int = 0
    max_attempts: int = 3
    failure_reason: Optional[str] = None
    failure_code: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    last_backoff_seconds: Optional[int] = None
    escalated_at: Optional[datetime] = None

    scheduled_at: datetime
    first_attempted_at: Optional[datetime] = None
    retry_until: Optional[datetime] = None
    last_attempted_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    version: int = 0

    @property
    def lane(self) -> Lane:
        return Lane.for_priority(self.priority)

    @property
    def is_terminal(self) -> bool:
        return self.status not in (
            NotificationStatus.PENDING,
            NotificationStatus.SENDING,
        )

    def can_transition_to(self, target: NotificationStatus) -> bool:
        return target in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def transition_to(self, target: NotificationStatus, now: datetime) -> None:
        """Move to ``target`` or raise InvalidTransitionError."""
        if not self.can_transition_to(target):
            raise InvalidTransitionError(self.id, self.status, target)
        self.status = target
        self.updated_at = now

    def mark_sent(self, now: datetime) -> None:
        self.transition_to(NotificationStatus.SENT, now)
        self.sent_at = now
        self.failure_reason = None
        self.failure_code = None
        self.failure_kind = None

    def mark_read(self, now: datetime) -> None:
        """Record that the recipient opened the notification.

        Only sent notifications can be read. The first read wins; the status
        does not change.
        """
        if self.status != NotificationStatus.SENT:
            raise InvalidTransitionError(
                self.id,
                self.status,
                NotificationStatus.SENT,
                message=f"Notification {self.id} is {self.status.value}; "
                "only sent notifications can be marked read",
            )
        if self.read_at is None:
            self.read_at = now
            self.updated_at = now

    def mark_failed(
        self,
        now: datetime,
        reason: str,
        code: Optional[str],
        kind: FailureKind,
    ) -> None:
        self.transition_to(NotificationStatus.FAILED, now)
        self.failure_reason = reason or code or "unknown failure"
        self.failure_code = code
        self.failure_kind = kind

    def mark_skipped(self, now: datetime, reason: str, code: Optional[str]) -> None:
        self.transition_to(NotificationStatus.SKIPPED, now)
        self.failure_reason = reason
        self.failure_code = code
        self.failure_kind = None

    def schedule_retry(
        self,
        now: datetime,
        delay_seconds: int,
        reason: str,
        code: Optional[str],
    ) -> None:
        """Send back to pending after a transient failure."""
        self.transition_to(NotificationStatus.PENDING, now)
        self.scheduled_at = now + timedelta(seconds=delay_seconds)
        self.last_backoff_seconds = delay_seconds
        self.failure_reason = reason
        self.failure_code = code
        self.failure_kind = FailureKind.TRANSIENT

    def release(self, now: datetime) -> None:
        """Return a claim to pending without consuming an attempt."""
        self.transition_to(NotificationStatus.PENDING, now)

    def requeue_failed(self, now: datetime) -> None:
        """Explicit retry of a failed record; it becomes due immediately."""
        self.transition_to(NotificationStatus.PENDING, now)
        self.scheduled_at = now

    def expire(self, now: datetime, reason: str) -> None:
        self.transition_to(NotificationStatus.EXPIRED, now)
        self.cancelled_at = now
        self.failure_reason = reason
        self.failure_code = "EXPIRED"

    def cancel(self, now: datetime, reason: str) -> None:
        self.transition_to(NotificationStatus.CANCELLED, now)
        self.cancelled_at = now
        self.failure_reason = reason
        self.failure_code = "CANCELLED"

    def log_context(self) -> Dict[str, Any]:
        """Fields bound to every log line about this notification."""
        return {
            "notification_id": self.id,
            "business_ref": str(self.business_ref),
            "notification_type": self.type.value,
            "channel": self.channel.value,
            "attempts": self.attempts,
        }


@dataclass
class Recommendation:
    """Advice to the external scheduler; the engine never reschedules itself."""

    job: str
    run_again_after: timedelta
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "run_again_after_seconds": int(self.run_again_after.total_seconds()),
            "reason": self.reason,
        }


class DispatchOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    RETRYING = "retrying"
    SKIPPED = "skipped"
    NOT_CLAIMED = "not_claimed"


@dataclass
class DispatchResult:
    notification_id: str
    outcome: DispatchOutcome
    reason: Optional[str] = None


@dataclass
class DeliveryTally:
    """Outcome counts shared by every run report.

    ``processed`` counts notifications for which a delivery attempt was
    made (sent + failed + retrying). Skips and lost claims are counted
    separately and never as processed.
    """

    sent: int = 0
    failed: int = 0
    retrying: int = 0
    skipped: int = 0
    not_claimed: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.failed + self.retrying

    @property
    def handled(self) -> int:
        return self.processed + self.skipped

    @property
    def success_rate(self) -> float:
        """Percentage of attempted deliveries that ended sent."""
        finished = self.sent + self.failed
        return round(self.sent * 100 / finished, 2) if finished else 0.0

    def record(self, result: DispatchResult) -> None:
        attr = result.outcome.value
        setattr(self, attr, getattr(self, attr) + 1)

    def merge(self, other: "DeliveryTally") -> None:
        for name in ("sent", "failed", "retrying", "skipped", "not_claimed"):
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["processed"] = self.processed
        data["success_rate"] = self.success_rate
        return data


@dataclass
class BatchReport:
    batch_key: str
    total: int = 0
    tally: DeliveryTally = field(default_factory=DeliveryTally)
    invalid: int = 0
    groups: int = 0
    duplicate: bool = False
    timed_out: bool = False
    left_pending: int = 0
    requeued: int = 0
    duration_seconds: float = 0.0
    run_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "batch_key": self.batch_key,
            "total": self.total,
            **self.tally.to_dict(),
            "invalid": self.invalid,
            "groups": self.groups,
            "duplicate": self.duplicate,
            "timed_out": self.timed_out,
            "left_pending": self.left_pending,
            "requeued": self.requeued,
            "duration_seconds": round(self.duration_seconds, 3),
            "recommendation": (
                self.recommendation.to_dict() if self.recommendation else None
            ),
        }


@dataclass
class SweepReport:
    released_stale: int = 0
    dispatched: DeliveryTally = field(default_factory=DeliveryTally)
    overdue_scheduled: int = 0
    retried: DeliveryTally = field(default_factory=DeliveryTally)
    expired: int = 0
    item_errors: int = 0
    timed_out: bool = False
    run_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None

    @property
    def total_handled(self) -> int:
        return (
            self.released_stale
            + self.dispatched.handled
            + self.overdue_scheduled
            + self.retried.handled
            + self.expired
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "released_stale": self.released_stale,
            "dispatched": self.dispatched.to_dict(),
            "overdue_scheduled": self.overdue_scheduled,
            "retried": self.retried.to_dict(),
            "expired": self.expired,
            "item_errors": self.item_errors,
            "timed_out": self.timed_out,
            "total_handled": self.total_handled,
            "recommendation": (
                self.recommendation.to_dict() if self.recommendation else None
            ),
        }


@dataclass
class CleanupReport:
    deleted_failed: int = 0
    deleted_read: int = 0
    deleted_unread: int = 0
    deleted_closed: int = 0
    deleted_orphans: int = 0
    archived: int = 0
    timed_out: bool = False
    statistics: Dict[str, Any] = field(default_factory=dict)
    run_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None

    @property
    def total_deleted(self) -> int:
        return (
            self.deleted_failed
            + self.deleted_read
            + self.deleted_unread
            + self.deleted_closed
            + self.deleted_orphans
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "deleted_failed": self.deleted_failed,
            "deleted_read": self.deleted_read,
            "deleted_unread": self.deleted_unread,
            "deleted_closed": self.deleted_closed,
            "deleted_orphans": self.deleted_orphans,
            "total_deleted": self.total_deleted,
            "archived": self.archived,
            "timed_out": self.timed_out,
            "statistics": self.statistics,
            "recommendation": (
                self.recommendation.to_dict() if self.recommendation else None
            ),
        }


@dataclass
class HealthReport:
    status: str
    checked_at: datetime
    queue_depth: Dict[str, int] = field(default_factory=dict)
    failed_last_24h: int = 0
    stale_count: int = 0
    circuit_breakers: Dict[str, str] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "checked_at": self.checked_at.isoformat(),
            "queue_depth": self.queue_depth,
            "failed_last_24h": self.failed_last_24h,
            "stale_count": self.stale_count,
            "circuit_breakers": self.circuit_breakers,
            "recommendations": self.recommendations,
        }
