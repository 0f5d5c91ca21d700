"""Retention cleanup and statistics.

Deletes terminal notifications past their retention period, plus orphans
whose business object is gone, and refreshes the cached statistics.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from infrastructure.clock import Clock
from infrastructure.configuration.features import (
    NotificationBatchSettings,
    NotificationRetentionSettings,
)
from infrastructure.idempotency import IdempotencyCache
from infrastructure.logging import bind_run_context, get_module_logger
from modules.notifications.business import BusinessDirectory
from modules.notifications.models import (
    CLOSED_STATUSES,
    CleanupReport,
    Notification,
    NotificationStatus,
    Recommendation,
)
from modules.notifications.store import NotificationStore

logger = get_module_logger()

STATISTICS_KEY = "notifications:statistics"


class ArchiveSink(Protocol):
    def archive(self, notifications: List[Notification]) -> None: ...


class InMemoryArchiveSink:
    def __init__(self):
        self.records: List[Notification] = []

    def archive(self, notifications: List[Notification]) -> None:
        self.records.extend(notifications)


def _older_than(value: Optional[datetime], cutoff: datetime) -> bool:
    return value is not None and value < cutoff


def is_old_failed(record: Notification, cutoff: datetime) -> bool:
    return record.status == NotificationStatus.FAILED and _older_than(
        record.last_attempted_at or record.updated_at, cutoff
    )


def is_old_read(record: Notification, cutoff: datetime) -> bool:
    return (
        record.status == NotificationStatus.SENT
        and record.read_at is not None
        and _older_than(record.sent_at, cutoff)
    )


def is_old_unread(record: Notification, cutoff: datetime) -> bool:
    return (
        record.status == NotificationStatus.SENT
        and record.read_at is None
        and _older_than(record.sent_at, cutoff)
    )


def is_old_closed(record: Notification, cutoff: datetime) -> bool:
    return record.status in CLOSED_STATUSES and _older_than(record.updated_at, cutoff)


class CleanupJob:
    """Deletes notifications outside the retention policy.

    Args:
        store: Notification record store
        cache: Holds the cached statistics
        directory: Used to detect orphans
        clock: Time source
        retention: Retention periods, batch size and thresholds
        batch_settings: Backlog ratio and rerun delay
        archive: Optional sink that receives the records each run deleted
        timeout_seconds: Time budget of one run; categories not started by
            then wait for the next run
    """

    def __init__(
        self,
        store: NotificationStore,
        cache: IdempotencyCache,
        directory: BusinessDirectory,
        clock: Clock,
        retention: NotificationRetentionSettings,
        batch_settings: NotificationBatchSettings,
        archive: Optional[ArchiveSink] = None,
        timeout_seconds: int = 900,
    ):
        self.store = store
        self.cache = cache
        self.directory = directory
        self._clock = clock
        self.retention = retention
        self.batch_settings = batch_settings
        self.archive = archive
        self.timeout = timedelta(seconds=timeout_seconds)

    def run(self, batch_size: Optional[int] = None) -> CleanupReport:
        batch_size = batch_size or self.retention.batch_size
        report = CleanupReport()

        with bind_run_context(job="cleanup", batch_size=batch_size) as run_id:
            report.run_id = run_id
            now = self._clock.now()
            records = self.store.list_all()
            logger.info("cleanup_started", records=len(records))

            categories = [
                ("deleted_failed", is_old_failed, self.retention.failed_days),
                ("deleted_read", is_old_read, self.retention.read_days),
                ("deleted_unread", is_old_unread, self.retention.unread_days),
                ("deleted_closed", is_old_closed, self.retention.closed_days),
            ]
            deadline = now + self.timeout
            remaining = batch_size
            deleted_ids = set()
            for field_name, predicate, days in categories:
                if self._clock.now() >= deadline:
                    report.timed_out = True
                    break
                cutoff = now - timedelta(days=days)
                selected = [
                    r for r in records if r.id not in deleted_ids and predicate(r, cutoff)
                ][:remaining]
                count = self._delete(selected, report)
                deleted_ids.update(r.id for r in selected)
                setattr(report, field_name, count)
                remaining -= count

            if remaining > 0 and self._clock.now() >= deadline:
                report.timed_out = True
            if remaining > 0 and not report.timed_out:
                orphans = self._orphans(
                    [r for r in records if r.id not in deleted_ids], remaining
                )
                report.deleted_orphans = self._delete(orphans, report)

            if report.timed_out:
                logger.warning(
                    "cleanup_timed_out", timeout_seconds=self.timeout.total_seconds()
                )

            report.statistics = self.refresh_statistics()

            threshold = self.batch_settings.backlog_ratio * batch_size
            if report.timed_out or report.total_deleted >= threshold:
                report.recommendation = Recommendation(
                    job="cleanup",
                    run_again_after=timedelta(
                        minutes=self.batch_settings.cleanup_rerun_minutes
                    ),
                    reason=f"{report.total_deleted} records deleted; more may remain",
                )

            logger.info("cleanup_completed", **report.to_dict())
        return report

    def _orphans(self, records: List[Notification], limit: int) -> List[Notification]:
        orphans: List[Notification] = []
        missing: Dict[str, bool] = {}
        for record in records:
            if len(orphans) >= limit:
                break
            if record.status == NotificationStatus.SENDING:
                continue
            ref = str(record.business_ref)
            if ref not in missing:
                missing[ref] = self.directory.get(record.business_ref) is None
            if missing[ref]:
                orphans.append(record)
        return orphans

    def _delete(self, records: List[Notification], report: CleanupReport) -> int:
        deleted = [r for r in records if self.store.delete(r.id)]
        if deleted and self.archive is not None:
            self.archive.archive(deleted)
            report.archived += len(deleted)
        return len(deleted)

    def compute_statistics(self) -> Dict[str, Any]:
        now = self._clock.now()
        since = now - timedelta(hours=24)
        records = self.store.list_all()

        by_status = Counter(r.status.value for r in records)
        by_type = Counter(r.type.value for r in records)
        sent = by_status.get(NotificationStatus.SENT.value, 0)
        failed = by_status.get(NotificationStatus.FAILED.value, 0)
        finished = sent + failed

        return {
            "total": len(records),
            "by_status": dict(by_status),
            "by_type": dict(by_type),
            "success_rate": round(sent * 100 / finished, 2) if finished else 0.0,
            "recent_24h": {
                "created": sum(
                    1 for r in records if r.created_at and r.created_at >= since
                ),
                "sent": sum(1 for r in records if r.sent_at and r.sent_at >= since),
                "failed": sum(
                    1
                    for r in records
                    if r.status == NotificationStatus.FAILED
                    and r.updated_at
                    and r.updated_at >= since
                ),
            },
            "generated_at": now.isoformat(),
        }

    def refresh_statistics(self) -> Dict[str, Any]:
        statistics = self.compute_statistics()
        self.cache.set(
            STATISTICS_KEY,
            statistics,
            ttl_seconds=self.retention.statistics_ttl_seconds,
        )
        return statistics

    def get_statistics(self) -> Dict[str, Any]:
        """Cached statistics, recomputed when the cache entry expired."""
        cached = self.cache.get(STATISTICS_KEY)
        if cached is not None:
            return cached
        return self.refresh_statistics()

    @staticmethod
    def is_cleanup_needed(
        store: NotificationStore,
        retention: NotificationRetentionSettings,
        now: datetime,
    ) -> bool:
        """True when old failed plus old read records exceed the threshold."""
        failed_cutoff = now - timedelta(days=retention.failed_days)
        read_cutoff = now - timedelta(days=retention.read_days)
        old = sum(
            1 for r in store.find_by_status(NotificationStatus.FAILED)
            if is_old_failed(r, failed_cutoff)
        ) + sum(
            1 for r in store.find_by_status(NotificationStatus.SENT)
            if is_old_read(r, read_cutoff)
        )
        return old > retention.cleanup_threshold
