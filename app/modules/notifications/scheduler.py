"""Notification scheduling: the engine's inbound interface.

Business events (a booking created, moved or cancelled) become one
Notification record per channel. Scheduling is idempotent within a time
bucket: the same (business ref, type, channel, bucket) never produces two
active records.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from infrastructure.clock import Clock
from infrastructure.configuration.features import (
    NotificationChannelSettings,
    NotificationSchedulingSettings,
)
from infrastructure.configuration.infrastructure import NotificationRetrySettings
from infrastructure.idempotency import IdempotencyCache, IdempotencyKeyBuilder
from infrastructure.logging import get_module_logger
from infrastructure.notifications import PreferenceProvider, Recipient
from infrastructure.operations import NotificationStoreError
from modules.notifications.business import BusinessDirectory, BusinessSnapshot
from modules.notifications.models import (
    ACTIVE_STATUSES,
    BusinessRef,
    Channel,
    Lane,
    Notification,
    NotificationStatus,
    NotificationType,
    Priority,
)
from modules.notifications.payloads import (
    BookingPayload,
    ConsultationPayload,
    PaymentPayload,
    PayloadBase,
    ReminderPayload,
    payload_event_time,
)
from modules.notifications.retry import RetryPolicies
from modules.notifications.router import QueueRouter
from modules.notifications.store import NotificationStore

logger = get_module_logger()

# Pending notifications withdrawn and re-created when an event moves
RESCHEDULED_TYPES = frozenset(
    {
        NotificationType.BOOKING_REMINDER,
        NotificationType.PAYMENT_REMINDER,
        NotificationType.BOOKING_FOLLOW_UP,
        NotificationType.CONSULTATION_REMINDER,
        NotificationType.CONSULTATION_STARTING_SOON,
    }
)

URGENT_REMINDER_HOURS = 2


class NotificationScheduler:
    """Creates notification records from business events.

    Args:
        store: Notification record store
        cache: Suppresses a racing scheduler between check and insert
        directory: User contact lookup
        router: Assigns the initial lane and queue
        policies: Supplies max_attempts per notification
        clock: Time source
        channel_settings: Channel enable flags
        scheduling_settings: Offsets and default channels
        retry_settings: Idempotency bucket width
        preferences: Optional per-user channel preferences
    """

    def __init__(
        self,
        store: NotificationStore,
        cache: IdempotencyCache,
        directory: BusinessDirectory,
        router: QueueRouter,
        policies: RetryPolicies,
        clock: Clock,
        channel_settings: NotificationChannelSettings,
        scheduling_settings: NotificationSchedulingSettings,
        retry_settings: NotificationRetrySettings,
        preferences: Optional[PreferenceProvider] = None,
    ):
        self.store = store
        self.cache = cache
        self.directory = directory
        self.router = router
        self.policies = policies
        self._clock = clock
        self.channel_settings = channel_settings
        self.scheduling = scheduling_settings
        self.bucket_seconds = retry_settings.idempotency_bucket_seconds
        self.preferences = preferences
        self._keys = IdempotencyKeyBuilder(namespace="notifications")

    def idempotency_key(
        self,
        business_ref: BusinessRef,
        notification_type: NotificationType,
        channel: Channel,
        scheduled_at: datetime,
    ) -> str:
        bucket = int(scheduled_at.timestamp()) // self.bucket_seconds
        return self._keys.build(
            operation="schedule",
            business_ref=str(business_ref),
            type=notification_type.value,
            channel=channel.value,
            bucket=bucket,
        )

    def resolve_channels(
        self,
        channels: Optional[Iterable[Channel]],
        user_id: Optional[str],
        notification_type: NotificationType,
    ) -> List[Channel]:
        """Requested (or preferred, or default) channels, enabled ones only.

        Disabled channels fall back to the in-app channel and duplicates
        collapse, keeping the first occurrence.
        """
        requested = list(channels) if channels else []
        if not requested and self.preferences is not None and user_id:
            preferred = self.preferences.preferred_channels(
                user_id, notification_type.value
            )
            requested = [Channel(c) for c in preferred or []]
        if not requested:
            requested = [Channel(c) for c in self.scheduling.default_channels]

        resolved: List[Channel] = []
        for channel in requested:
            if not self.channel_settings.is_enabled(channel.value):
                logger.info(
                    "notification_channel_fallback",
                    requested=channel.value,
                    fallback=Channel.DATABASE.value,
                )
                channel = Channel.DATABASE
            if channel not in resolved:
                resolved.append(channel)
        return resolved

    @staticmethod
    def recipient_for(
        channel: Channel, user_id: Optional[str], contact: Optional[Recipient]
    ) -> Optional[Recipient]:
        """Contact data usable by ``channel``, or None."""
        if channel == Channel.DATABASE:
            return Recipient(user_id=user_id) if user_id else None
        if contact is None:
            return None
        if channel == Channel.EMAIL and contact.email:
            return Recipient(user_id=user_id, email=contact.email)
        if channel == Channel.SMS and contact.phone:
            return Recipient(user_id=user_id, phone=contact.phone)
        if channel == Channel.PUSH and contact.device_tokens:
            return Recipient(user_id=user_id, device_tokens=list(contact.device_tokens))
        return None

    def schedule_notification(
        self,
        business_ref: BusinessRef,
        notification_type: NotificationType,
        channels: Optional[Sequence[Channel]],
        scheduled_at: datetime,
        payload: PayloadBase,
        user_id: Optional[str],
        priority: Optional[Priority] = None,
    ) -> List[str]:
        """Create one record per resolved channel.

        Returns:
            Ids of the new records, or of the existing active records that
            made a channel a duplicate.
        """
        now = self._clock.now()
        contact = self.directory.get_user_contact(user_id) if user_id else None
        ids: List[str] = []

        for channel in self.resolve_channels(channels, user_id, notification_type):
            log = logger.bind(
                business_ref=str(business_ref),
                notification_type=notification_type.value,
                channel=channel.value,
            )
            recipient = self.recipient_for(channel, user_id, contact)
            if recipient is None:
                log.info("notification_channel_skipped", reason="no usable contact")
                continue

            key = self.idempotency_key(
                business_ref, notification_type, channel, scheduled_at
            )
            existing = self._active_with_key(key)
            if existing is not None:
                log.info("notification_already_scheduled", notification_id=existing)
                ids.append(existing)
                continue

            if not self.cache.add(
                key, {"business_ref": str(business_ref)}, ttl_seconds=self.bucket_seconds
            ):
                log.info("notification_schedule_suppressed", idempotency_key=key)
                continue

            try:
                record = self._build(
                    key,
                    business_ref,
                    notification_type,
                    channel,
                    scheduled_at,
                    payload,
                    user_id,
                    recipient,
                    priority,
                    now,
                )
                self.store.add(record)
            finally:
                self.cache.delete(key)

            log.info(
                "notification_scheduled",
                notification_id=record.id,
                scheduled_at=scheduled_at.isoformat(),
                lane=record.lane.value,
                queue_name=record.queue_name,
            )
            ids.append(record.id)
        return ids

    def _active_with_key(self, key: str) -> Optional[str]:
        for record in self.store.find_by_idempotency_key(key):
            if record.status in ACTIVE_STATUSES:
                return record.id
        return None

    def _build(
        self,
        key: str,
        business_ref: BusinessRef,
        notification_type: NotificationType,
        channel: Channel,
        scheduled_at: datetime,
        payload: PayloadBase,
        user_id: Optional[str],
        recipient: Recipient,
        priority: Optional[Priority],
        now: datetime,
    ) -> Notification:
        record = Notification(
            idempotency_key=key,
            type=notification_type,
            channel=channel,
            business_ref=business_ref,
            user_id=user_id,
            recipient=recipient,
            payload=payload,
            scheduled_at=scheduled_at,
            created_at=now,
            updated_at=now,
        )
        if priority is None:
            route = self.router.route(record, payload_event_time(payload), now)
            lane, queue = route.lane, route.queue_name
        else:
            lane = Lane.for_priority(priority)
            queue = self.router.queue_for(lane, channel.value)
        record.priority = lane.priority
        record.queue_name = queue
        record.max_attempts = self.policies.resolve_for(
            notification_type, channel, lane
        ).max_attempts
        return record

    def schedule_reminder(
        self,
        business_object: BusinessSnapshot,
        hours_before_list: Optional[Sequence[int]] = None,
    ) -> List[str]:
        """Schedule reminders before a booking or consultation.

        Consultations also get a "starting soon" notice on the in-app and
        SMS channels with urgent priority.
        """
        now = self._clock.now()
        starts_at = business_object.starts_at
        is_consultation = business_object.ref.kind == "consultation"
        if is_consultation:
            offsets = hours_before_list or self.scheduling.consultation_reminder_hours
            notification_type = NotificationType.CONSULTATION_REMINDER
        else:
            offsets = hours_before_list or self.scheduling.booking_reminder_hours
            notification_type = NotificationType.BOOKING_REMINDER

        ids: List[str] = []
        for hours in offsets:
            send_at = starts_at - timedelta(hours=hours)
            if send_at <= now:
                continue
            ids += self.schedule_notification(
                business_object.ref,
                notification_type,
                None,
                send_at,
                ReminderPayload(
                    hours_before=hours,
                    starts_at=starts_at,
                    title=business_object.title,
                    urgent=hours <= URGENT_REMINDER_HOURS,
                ),
                business_object.user_id,
            )

        if is_consultation:
            minutes = self.scheduling.starting_soon_minutes
            send_at = starts_at - timedelta(minutes=minutes)
            if send_at > now:
                ids += self.schedule_notification(
                    business_object.ref,
                    NotificationType.CONSULTATION_STARTING_SOON,
                    [Channel.DATABASE, Channel.SMS],
                    send_at,
                    ConsultationPayload(
                        consultation_id=business_object.ref.id,
                        title=business_object.title,
                        starts_at=starts_at,
                        minutes_before=minutes,
                        urgent=True,
                    ),
                    business_object.user_id,
                    priority=Priority.URGENT,
                )
        return ids

    def _payment_payload(
        self,
        booking: BusinessSnapshot,
        due_at: datetime,
        hours_before_due: Optional[int] = None,
    ) -> PaymentPayload:
        return PaymentPayload(
            booking_id=booking.ref.id,
            amount_due=booking.amount_due,
            remaining_amount=booking.remaining_amount,
            currency=booking.currency,
            due_at=due_at,
            hours_before_due=hours_before_due,
        )

    def payment_due_at(self, booking: BusinessSnapshot) -> datetime:
        return booking.starts_at - timedelta(days=self.scheduling.payment_due_days_before)

    def schedule_payment_reminder(
        self,
        booking: BusinessSnapshot,
        hours_before_due_list: Optional[Sequence[int]] = None,
    ) -> List[str]:
        """Remind about an outstanding payment ahead of its due date."""
        if not booking.payment_outstanding:
            return []

        now = self._clock.now()
        due_at = self.payment_due_at(booking)
        offsets = (
            self.scheduling.payment_reminder_hours
            if hours_before_due_list is None
            else hours_before_due_list
        )
        ids: List[str] = []
        for hours in offsets:
            send_at = due_at - timedelta(hours=hours)
            if send_at <= now:
                continue
            ids += self.schedule_notification(
                booking.ref,
                NotificationType.PAYMENT_REMINDER,
                None,
                send_at,
                self._payment_payload(booking, due_at, hours),
                booking.user_id,
            )
        return ids

    def schedule_overdue_payment(self, booking: BusinessSnapshot) -> List[str]:
        """Notify about an overdue payment unless one went out recently."""
        now = self._clock.now()
        window_start = now - timedelta(hours=self.scheduling.overdue_dedup_hours)
        for record in self.store.find_by_business_ref(str(booking.ref)):
            if (
                record.type == NotificationType.PAYMENT_OVERDUE
                and record.created_at is not None
                and record.created_at >= window_start
            ):
                return []

        return self.schedule_notification(
            booking.ref,
            NotificationType.PAYMENT_OVERDUE,
            None,
            now,
            self._payment_payload(booking, self.payment_due_at(booking)),
            booking.user_id,
        )

    def schedule_follow_up(
        self, booking: BusinessSnapshot, hours_after: Optional[int] = None
    ) -> List[str]:
        hours = self.scheduling.follow_up_hours if hours_after is None else hours_after
        return self.schedule_notification(
            booking.ref,
            NotificationType.BOOKING_FOLLOW_UP,
            None,
            booking.starts_at + timedelta(hours=hours),
            BookingPayload(
                booking_id=booking.ref.id,
                service_name=booking.title,
                starts_at=booking.starts_at,
            ),
            booking.user_id,
            priority=Priority.LOW,
        )

    def _confirmation(self, business_object: BusinessSnapshot) -> List[str]:
        now = self._clock.now()
        if business_object.ref.kind == "consultation":
            return self.schedule_notification(
                business_object.ref,
                NotificationType.CONSULTATION_CONFIRMATION,
                None,
                now,
                ConsultationPayload(
                    consultation_id=business_object.ref.id,
                    title=business_object.title,
                    starts_at=business_object.starts_at,
                ),
                business_object.user_id,
                priority=Priority.HIGH,
            )
        return self.schedule_notification(
            business_object.ref,
            NotificationType.BOOKING_CONFIRMATION,
            None,
            now,
            BookingPayload(
                booking_id=business_object.ref.id,
                service_name=business_object.title,
                starts_at=business_object.starts_at,
            ),
            business_object.user_id,
            priority=Priority.HIGH,
        )

    def schedule_booking_created(self, business_object: BusinessSnapshot) -> List[str]:
        """Confirmation now, then every follow-on notification."""
        ids = self._confirmation(business_object)
        ids += self.schedule_reminder(business_object)
        if business_object.ref.kind == "booking":
            ids += self.schedule_payment_reminder(business_object)
            ids += self.schedule_follow_up(business_object)
        return ids

    def cancel_notifications(
        self,
        business_ref: BusinessRef,
        types: Optional[Iterable[NotificationType]] = None,
        reason: str = "Business event changed",
    ) -> int:
        """Cancel pending notifications; in-flight sends are left alone."""
        now = self._clock.now()
        wanted = set(types) if types is not None else None
        cancelled = 0
        for record in self.store.find_by_business_ref(str(business_ref)):
            if record.status != NotificationStatus.PENDING:
                continue
            if wanted is not None and record.type not in wanted:
                continue
            record.cancel(now, reason)
            try:
                self.store.save(record)
            except NotificationStoreError as e:
                if e.error_code != "CONFLICT":
                    raise
                # Claimed in the meantime; the relevance check handles it
                logger.info("notification_cancel_conflict", **record.log_context())
                continue
            logger.info("notification_cancelled", reason=reason, **record.log_context())
            cancelled += 1
        return cancelled

    def mark_read(self, notification_id: str) -> Optional[Notification]:
        """Record that the recipient read a sent notification.

        Returns:
            The updated record, or None if it does not exist.

        Raises:
            InvalidTransitionError: The notification was never sent.
        """
        record = self.store.get(notification_id)
        if record is None:
            return None
        if record.read_at is not None:
            return record
        record.mark_read(self._clock.now())
        try:
            record = self.store.save(record)
        except NotificationStoreError as e:
            if e.error_code != "CONFLICT":
                raise
            # Read concurrently; the stored read time stands
            return self.store.get(notification_id)
        logger.info("notification_read", **record.log_context())
        return record

    def _previous_start(self, business_ref: BusinessRef) -> Optional[datetime]:
        for record in self.store.find_by_business_ref(str(business_ref)):
            if record.status == NotificationStatus.PENDING and record.type in RESCHEDULED_TYPES:
                starts_at = payload_event_time(record.payload)
                if starts_at is not None:
                    return starts_at
        return None

    def reschedule(self, business_object: BusinessSnapshot) -> List[str]:
        """Move time-based notifications to the business object's new time."""
        previous = self._previous_start(business_object.ref)
        self.cancel_notifications(
            business_object.ref, RESCHEDULED_TYPES, reason="Event rescheduled"
        )

        ids = self.schedule_reminder(business_object)
        if business_object.ref.kind != "booking":
            return ids

        ids += self.schedule_payment_reminder(business_object)
        ids += self.schedule_follow_up(business_object)
        ids += self.schedule_notification(
            business_object.ref,
            NotificationType.BOOKING_RESCHEDULED,
            None,
            self._clock.now(),
            BookingPayload(
                booking_id=business_object.ref.id,
                service_name=business_object.title,
                starts_at=business_object.starts_at,
                previous_starts_at=previous,
            ),
            business_object.user_id,
            priority=Priority.HIGH,
        )
        return ids

    def notify_booking_cancelled(self, booking: BusinessSnapshot) -> List[str]:
        self.cancel_notifications(booking.ref, reason="Booking cancelled")
        return self.schedule_notification(
            booking.ref,
            NotificationType.BOOKING_CANCELLED,
            None,
            self._clock.now(),
            BookingPayload(
                booking_id=booking.ref.id,
                service_name=booking.title,
                starts_at=booking.starts_at,
            ),
            booking.user_id,
            priority=Priority.HIGH,
        )
