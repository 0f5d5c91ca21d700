"""Periodic overdue and backlog sweep.

One run works through five phases, each bounded by what is left of the
batch size:

    0. release stale claims (sending past the claim lease -> failed, transient)
    a. dispatch due pending notifications through the priority lanes
    b. schedule payment_overdue notices for unpaid bookings close to their event
    c. requeue and dispatch retryable failed notifications
    d. expire pending notifications whose event has passed or whose
       business object is gone

A failing item never aborts the run. Phases not started within the run's
time budget are skipped until the next run.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from infrastructure.clock import Clock
from infrastructure.configuration.features import (
    NotificationBatchSettings,
    NotificationSchedulingSettings,
)
from infrastructure.configuration.infrastructure import NotificationRetrySettings
from infrastructure.logging import bind_run_context, get_module_logger
from infrastructure.operations import NotificationStoreError
from modules.notifications.batch import requeue_retryable
from modules.notifications.business import BusinessDirectory
from modules.notifications.dispatcher import Dispatcher
from modules.notifications.lanes import LanePool
from modules.notifications.models import (
    DeliveryTally,
    Lane,
    Notification,
    NotificationStatus,
    NotificationType,
    Recommendation,
    SweepReport,
)
from modules.notifications.relevance import POST_EVENT_TYPES, event_time
from modules.notifications.router import QueueRouter
from modules.notifications.scheduler import NotificationScheduler
from modules.notifications.store import NotificationStore

logger = get_module_logger()

EXPIRED_REASON = "Notification expired - event has passed"
ORPHANED_REASON = "Notification expired - business object no longer exists"


class OverdueSweeper:
    def __init__(
        self,
        store: NotificationStore,
        dispatcher: Dispatcher,
        router: QueueRouter,
        lanes: LanePool,
        scheduler: NotificationScheduler,
        directory: BusinessDirectory,
        clock: Clock,
        batch_settings: NotificationBatchSettings,
        scheduling_settings: NotificationSchedulingSettings,
        retry_settings: NotificationRetrySettings,
        timeout_seconds: int = 300,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.router = router
        self.lanes = lanes
        self.scheduler = scheduler
        self.directory = directory
        self._clock = clock
        self.batch_settings = batch_settings
        self.scheduling = scheduling_settings
        self.claim_lease = timedelta(seconds=retry_settings.claim_lease_seconds)
        self.timeout = timedelta(seconds=timeout_seconds)

    def run(
        self,
        batch_size: Optional[int] = None,
        type_filter: Optional[NotificationType] = None,
    ) -> SweepReport:
        batch_size = batch_size or self.batch_settings.sweep_batch_size
        report = SweepReport()

        with bind_run_context(
            job="overdue_sweep",
            batch_size=batch_size,
            type_filter=type_filter.value if type_filter else None,
        ) as run_id:
            report.run_id = run_id
            logger.info("overdue_sweep_started")

            deadline = self._clock.now() + self.timeout
            remaining = batch_size
            report.released_stale = self.release_stale_claims(remaining, report)
            remaining -= report.released_stale

            if remaining > 0 and self._within(deadline, report):
                due = self.store.find_due(self._clock.now(), remaining, type_filter)
                report.dispatched = self._dispatch(due)
                remaining -= len(due)

            if (
                remaining > 0
                and type_filter in (None, NotificationType.PAYMENT_OVERDUE)
                and self._within(deadline, report)
            ):
                report.overdue_scheduled = self.detect_overdue_payments(remaining, report)
                remaining -= report.overdue_scheduled

            if remaining > 0 and self._within(deadline, report):
                cooldown = timedelta(
                    minutes=self.batch_settings.failed_retry_cooldown_minutes
                )
                requeued = requeue_retryable(self.store, self._clock, remaining, cooldown)
                retry_records = [r for r in map(self.store.get, requeued) if r]
                report.retried = self._dispatch(retry_records)
                remaining -= len(requeued)

            if remaining > 0 and self._within(deadline, report):
                report.expired = self.expire_passed(remaining, type_filter, report)

            if report.timed_out:
                logger.warning(
                    "overdue_sweep_timed_out",
                    timeout_seconds=self.timeout.total_seconds(),
                )

            threshold = self.batch_settings.backlog_ratio * batch_size
            if report.timed_out or report.total_handled >= threshold:
                report.recommendation = Recommendation(
                    job="overdue_sweep",
                    run_again_after=timedelta(
                        minutes=self.batch_settings.sweep_rerun_minutes
                    ),
                    reason=(
                        f"{report.total_handled} of {batch_size} handled; "
                        + ("run timed out" if report.timed_out else "backlog likely")
                    ),
                )

            logger.info("overdue_sweep_completed", **report.to_dict())
        return report

    def _within(self, deadline: datetime, report: SweepReport) -> bool:
        if self._clock.now() < deadline:
            return True
        report.timed_out = True
        return False

    def release_stale_claims(self, limit: int, report: SweepReport) -> int:
        now = self._clock.now()
        released = 0
        for record in self.store.find_by_status(NotificationStatus.SENDING):
            if released >= limit:
                break
            stamps = [t for t in (record.last_attempted_at, record.updated_at) if t]
            if not stamps or now - max(stamps) <= self.claim_lease:
                continue
            try:
                self.dispatcher.controller.fail(
                    record, "Claim lease expired while sending", "CLAIM_EXPIRED"
                )
                self.store.save(record)
            except Exception as e:  # pylint: disable=broad-except
                report.item_errors += 1
                logger.error(
                    "stale_claim_release_failed",
                    notification_id=record.id,
                    error=str(e),
                )
                continue
            released += 1
        return released

    def _dispatch(self, records: List[Notification]) -> DeliveryTally:
        tally = DeliveryTally()
        if not records:
            return tally

        now = self._clock.now()
        by_lane: Dict[Lane, List[str]] = defaultdict(list)
        for record in records:
            business_object = self.directory.get(record.business_ref)
            route = self.router.route(record, event_time(record, business_object), now)
            by_lane[route.lane].append(record.id)

        for result in self.lanes.drain(by_lane, self.dispatcher.dispatch):
            tally.record(result)
        return tally

    def detect_overdue_payments(self, limit: int, report: SweepReport) -> int:
        candidates = self.directory.find_overdue_payment_candidates(
            self._clock.now(), self.scheduling.overdue_window_hours, limit
        )
        scheduled = 0
        for booking in candidates:
            try:
                if self.scheduler.schedule_overdue_payment(booking):
                    scheduled += 1
            except Exception as e:  # pylint: disable=broad-except
                report.item_errors += 1
                logger.error(
                    "overdue_payment_schedule_failed",
                    business_ref=str(booking.ref),
                    error=str(e),
                    exc_info=True,
                )
        return scheduled

    def expire_passed(
        self,
        limit: int,
        type_filter: Optional[NotificationType],
        report: SweepReport,
    ) -> int:
        now = self._clock.now()
        grace = timedelta(minutes=self.scheduling.grace_minutes)
        expired = 0
        for record in self.store.find_by_status(NotificationStatus.PENDING):
            if expired >= limit:
                break
            if type_filter is not None and record.type != type_filter:
                continue
            try:
                business_object = self.directory.get(record.business_ref)
                if business_object is None:
                    reason = ORPHANED_REASON
                else:
                    starts_at = event_time(record, business_object)
                    if (
                        record.type in POST_EVENT_TYPES
                        or starts_at is None
                        or now - starts_at <= grace
                    ):
                        continue
                    reason = EXPIRED_REASON
                record.expire(now, reason)
                self.store.save(record)
            except NotificationStoreError as e:
                if e.error_code != "CONFLICT":
                    report.item_errors += 1
                    logger.error(
                        "notification_expire_failed",
                        notification_id=record.id,
                        error=str(e),
                    )
                continue
            except Exception as e:  # pylint: disable=broad-except
                report.item_errors += 1
                logger.error(
                    "notification_expire_failed",
                    notification_id=record.id,
                    error=str(e),
                    exc_info=True,
                )
                continue
            logger.info("notification_expired", reason=reason, **record.log_context())
            expired += 1
        return expired
