"""Dispatcher: claim, deduplicate, re-validate, send and persist.

One call to ``dispatch`` handles one notification end to end:

    1. claim the record (pending -> sending); losing the race is not an error
    2. skip it if a sibling with the same idempotency key was already sent
    3. reserve ``notification_dispatch:<key>`` for the in-flight window;
       if another worker holds it, release the claim without an attempt
    4. re-check relevance against the live business object
    5. render and send through the BackoffController
    6. persist the new status
"""

from typing import Dict, Optional

from infrastructure.clock import Clock
from infrastructure.idempotency import IdempotencyCache
from infrastructure.logging import get_module_logger
from infrastructure.notifications import DeliveryMetadata, NotificationChannel
from infrastructure.operations import NotificationStoreError, OperationResult
from modules.notifications.business import BusinessDirectory
from modules.notifications.models import (
    Channel,
    DispatchOutcome,
    DispatchResult,
    Notification,
    NotificationStatus,
)
from modules.notifications.relevance import RelevanceValidator
from modules.notifications.rendering import MessageRenderer
from modules.notifications.retry import BackoffController
from modules.notifications.store import NotificationStore

logger = get_module_logger()

DISPATCH_NAMESPACE = "notification_dispatch"


def dispatch_key(notification: Notification) -> str:
    return f"{DISPATCH_NAMESPACE}:{notification.idempotency_key}"


class Dispatcher:
    """Sends one notification through its channel.

    Per-item failures never escape ``dispatch``: unexpected exceptions are
    logged and treated as transient.
    """

    def __init__(
        self,
        store: NotificationStore,
        cache: IdempotencyCache,
        channels: Dict[Channel, NotificationChannel],
        directory: BusinessDirectory,
        relevance: RelevanceValidator,
        renderer: MessageRenderer,
        controller: BackoffController,
        clock: Clock,
        reservation_seconds: int = 300,
    ):
        self.store = store
        self.cache = cache
        self.channels = channels
        self.directory = directory
        self.relevance = relevance
        self.renderer = renderer
        self.controller = controller
        self._clock = clock
        self.reservation_seconds = reservation_seconds

    def dispatch(self, notification_id: str) -> DispatchResult:
        claimed: Optional[Notification] = None
        try:
            claimed = self.store.claim(notification_id, self._clock.now())
            if claimed is None:
                return DispatchResult(
                    notification_id, DispatchOutcome.NOT_CLAIMED, "not pending"
                )
            return self._process(claimed)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "notification_dispatch_error",
                notification_id=notification_id,
                error=str(e),
                exc_info=True,
            )
            if claimed is None:
                return DispatchResult(
                    notification_id, DispatchOutcome.NOT_CLAIMED, str(e)
                )
            return self._recover(claimed, e)

    def _process(self, record: Notification) -> DispatchResult:
        now = self._clock.now()
        log = logger.bind(**record.log_context())

        duplicate = self._sent_sibling(record)
        if duplicate is not None:
            record.mark_skipped(
                now,
                f"Duplicate of sent notification {duplicate}",
                "DUPLICATE",
            )
            log.info("notification_skipped", reason=record.failure_reason)
            return self._persist(record, DispatchOutcome.SKIPPED)

        key = dispatch_key(record)
        if not self.cache.add(
            key, {"notification_id": record.id}, ttl_seconds=self.reservation_seconds
        ):
            record.release(now)
            log.info("notification_dispatch_in_flight", dispatch_key=key)
            result = self._persist(record, DispatchOutcome.NOT_CLAIMED)
            result.reason = "dispatch already in flight"
            return result

        try:
            business_object = self.directory.get(record.business_ref)
            relevance = self.relevance.check(record, business_object)
            if not relevance.is_success:
                record.mark_skipped(now, relevance.message, relevance.error_code)
                log.info(
                    "notification_skipped",
                    reason=relevance.message,
                    error_code=relevance.error_code,
                )
                return self._persist(record, DispatchOutcome.SKIPPED)

            outcome = self.controller.execute(record, self._sender(record))
            return self._persist(record, outcome)
        finally:
            self.cache.delete(key)

    def _sender(self, record: Notification):
        channel = self.channels.get(record.channel)
        message = self.renderer.render(record)
        metadata = DeliveryMetadata(
            notification_id=record.id,
            notification_type=record.type.value,
            channel=record.channel.value,
            user_id=record.user_id,
            business_ref=str(record.business_ref),
            priority=int(record.priority),
            attempt=record.attempts + 1,
        )

        def send() -> OperationResult:
            if channel is None:
                return OperationResult.permanent_error(
                    f"No sender configured for channel {record.channel.value}",
                    error_code="CHANNEL_NOT_CONFIGURED",
                )
            return channel.send(record.recipient, message, metadata)

        return send

    def _sent_sibling(self, record: Notification) -> Optional[str]:
        for sibling in self.store.find_by_idempotency_key(record.idempotency_key):
            if sibling.id != record.id and sibling.status == NotificationStatus.SENT:
                return sibling.id
        return None

    def _persist(
        self, record: Notification, outcome: DispatchOutcome
    ) -> DispatchResult:
        reason = record.failure_reason
        try:
            self.store.save(record)
        except NotificationStoreError as e:
            if e.error_code != "CONFLICT":
                raise
            logger.warning(
                "notification_save_conflict",
                outcome=outcome.value,
                **record.log_context(),
            )
            reason = "record changed concurrently"
        return DispatchResult(record.id, outcome, reason)

    def _recover(self, record: Notification, error: Exception) -> DispatchResult:
        """Best effort to leave a claimed record retryable after an error."""
        if record.status != NotificationStatus.SENDING:
            return DispatchResult(record.id, DispatchOutcome.FAILED, str(error))
        try:
            outcome = self.controller.apply(
                record,
                OperationResult.transient_error(
                    f"Unexpected error during dispatch: {error}",
                    error_code="SYSTEM_ERROR",
                ),
                self.controller.policies.resolve(record),
            )
            self.store.save(record)
            return DispatchResult(record.id, outcome, record.failure_reason)
        except Exception as e:  # pylint: disable=broad-except
            # The claim lease releases the record on the next sweep
            logger.error(
                "notification_recovery_failed",
                notification_id=record.id,
                error=str(e),
            )
            return DispatchResult(record.id, DispatchOutcome.FAILED, str(error))
