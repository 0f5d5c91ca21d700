"""Batch processing of explicit notification id lists.

Ids are grouped by (type, channel) in first-seen order and processed
group by group with pacing delays in between. A batch is identified by a
digest of its sorted ids so that an identical concurrent run is rejected.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from infrastructure.clock import Clock
from infrastructure.configuration.features import NotificationBatchSettings
from infrastructure.idempotency import IdempotencyCache, IdempotencyKeyBuilder
from infrastructure.logging import bind_run_context, get_module_logger
from infrastructure.operations import NotificationStoreError
from modules.notifications.dispatcher import Dispatcher
from modules.notifications.models import (
    BatchReport,
    FailureKind,
    Notification,
    NotificationStatus,
    NotificationType,
    Recommendation,
)
from modules.notifications.store import NotificationStore

logger = get_module_logger()

BATCH_NAMESPACE = "notification_batches:run"


def batch_key(notification_ids: Sequence[str]) -> str:
    return f"{BATCH_NAMESPACE}:{IdempotencyKeyBuilder.digest(','.join(sorted(notification_ids)))}"


def is_retryable_failure(
    notification: Notification, now: datetime, cooldown: timedelta
) -> bool:
    """Failed records that an explicit retry may send back to pending."""
    return (
        notification.status == NotificationStatus.FAILED
        and notification.failure_kind == FailureKind.TRANSIENT
        and notification.attempts < notification.max_attempts
        and (notification.retry_until is None or now < notification.retry_until)
        and notification.last_attempted_at is not None
        and notification.last_attempted_at <= now - cooldown
    )


def requeue_retryable(
    store: NotificationStore, clock: Clock, limit: int, cooldown: timedelta
) -> List[str]:
    """Move up to ``limit`` retryable failed records back to pending."""
    now = clock.now()
    requeued: List[str] = []
    for record in store.find_by_status(NotificationStatus.FAILED):
        if len(requeued) >= limit:
            break
        if not is_retryable_failure(record, now, cooldown):
            continue
        record.requeue_failed(now)
        try:
            store.save(record)
        except NotificationStoreError as e:
            if e.error_code != "CONFLICT":
                raise
            continue
        logger.info("notification_requeued", **record.log_context())
        requeued.append(record.id)
    return requeued


class BatchProcessor:
    """Processes a list of notification ids as one paced, deduplicated run.

    Args:
        store: Notification record store
        cache: Holds the batch reservation for the dedup window
        dispatcher: Sends each item
        clock: Time source; pacing delays go through clock.sleep
        settings: Sizes, delays and dedup window
        timeout_seconds: Time budget of one run; items not started by then
            stay pending
    """

    def __init__(
        self,
        store: NotificationStore,
        cache: IdempotencyCache,
        dispatcher: Dispatcher,
        clock: Clock,
        settings: NotificationBatchSettings,
        timeout_seconds: int = 600,
    ):
        self.store = store
        self.cache = cache
        self.dispatcher = dispatcher
        self._clock = clock
        self.settings = settings
        self.timeout_seconds = timeout_seconds

    def run(self, notification_ids: Sequence[str]) -> BatchReport:
        ids = list(dict.fromkeys(notification_ids))
        key = batch_key(ids)
        report = BatchReport(batch_key=key, total=len(ids))
        if not ids:
            return report

        if not self.cache.add(
            key, {"size": len(ids)}, ttl_seconds=self.settings.dedup_window_seconds
        ):
            report.duplicate = True
            logger.info("notification_batch_duplicate", batch_key=key, size=len(ids))
            return report

        with bind_run_context(job="notification_batch", batch_key=key) as run_id:
            report.run_id = run_id
            self._process(ids, report)
        return report

    def _group(
        self, ids: List[str], report: BatchReport
    ) -> "OrderedDict[Tuple[str, str], List[str]]":
        groups: "OrderedDict[Tuple[str, str], List[str]]" = OrderedDict()
        for notification_id in ids:
            record = self.store.get(notification_id)
            if record is None or record.status != NotificationStatus.PENDING:
                report.invalid += 1
                logger.info(
                    "notification_batch_item_invalid",
                    notification_id=notification_id,
                    status=record.status.value if record else None,
                )
                continue
            group = (record.type.value, record.channel.value)
            groups.setdefault(group, []).append(record.id)
        return groups

    def _process(self, ids: List[str], report: BatchReport) -> None:
        started = self._clock.now()
        deadline = started + timedelta(seconds=self.timeout_seconds)
        item_delay = self.settings.inter_item_delay_ms / 1000
        group_delay = self.settings.inter_group_delay_ms / 1000

        groups = self._group(ids, report)
        report.groups = len(groups)
        logger.info(
            "notification_batch_started",
            total=report.total,
            groups=report.groups,
            invalid=report.invalid,
        )

        remaining = [i for members in groups.values() for i in members]
        started_ids: List[str] = []
        try:
            for group_index, members in enumerate(groups.values()):
                if group_index > 0:
                    self._clock.sleep(group_delay)
                for item_index, notification_id in enumerate(members):
                    if self._clock.now() >= deadline:
                        report.timed_out = True
                        break
                    if item_index > 0:
                        self._clock.sleep(item_delay)
                    started_ids.append(notification_id)
                    remaining.remove(notification_id)
                    report.tally.record(self.dispatcher.dispatch(notification_id))
                if report.timed_out:
                    break
        except Exception:
            logger.error("notification_batch_aborted", exc_info=True)
            self._abort(started_ids)
            raise
        finally:
            report.duration_seconds = (self._clock.now() - started).total_seconds()

        if report.timed_out:
            report.left_pending = len(remaining)
            logger.warning(
                "notification_batch_timed_out",
                timeout_seconds=self.timeout_seconds,
                left_pending=report.left_pending,
            )

        if report.tally.processed >= self.settings.large_batch_threshold:
            report.recommendation = Recommendation(
                job="cleanup",
                run_again_after=timedelta(
                    minutes=self.settings.post_batch_cleanup_minutes
                ),
                reason=f"{report.tally.processed} notifications processed",
            )

        logger.info("notification_batch_completed", **report.to_dict())

    def _abort(self, started_ids: List[str]) -> None:
        """Fail items of an aborted run that are still claimed."""
        for notification_id in started_ids:
            try:
                record = self.store.get(notification_id)
                if record is None or record.status != NotificationStatus.SENDING:
                    continue
                self.dispatcher.controller.fail(
                    record, "Batch run aborted", "BATCH_ABORTED"
                )
                self.store.save(record)
            except Exception as e:  # pylint: disable=broad-except
                logger.error(
                    "notification_abort_cleanup_failed",
                    notification_id=notification_id,
                    error=str(e),
                )

    def run_from_pending(
        self,
        batch_size: Optional[int] = None,
        type_filter: Optional[NotificationType] = None,
    ) -> BatchReport:
        """Process due pending notifications, most urgent first."""
        limit = batch_size or self.settings.batch_size
        due = self.store.find_due(self._clock.now(), limit, type_filter)
        return self.run([n.id for n in due])

    def run_from_failed(self, batch_size: Optional[int] = None) -> BatchReport:
        """Requeue retryable failed notifications and process them."""
        limit = batch_size or self.settings.retry_batch_size
        cooldown = timedelta(minutes=self.settings.failed_retry_cooldown_minutes)
        requeued = requeue_retryable(self.store, self._clock, limit, cooldown)
        report = self.run(requeued)
        report.requeued = len(requeued)
        return report
