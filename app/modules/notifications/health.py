"""Notification engine health check."""

from collections import Counter
from datetime import timedelta
from typing import List

from infrastructure.clock import Clock
from infrastructure.configuration.features import (
    NotificationRetentionSettings,
    NotificationSchedulingSettings,
)
from infrastructure.configuration.infrastructure import NotificationRetrySettings
from infrastructure.logging import bind_run_context, get_module_logger
from infrastructure.resilience import CircuitBreakerRegistry
from modules.notifications.cleanup import CleanupJob
from modules.notifications.models import LANE_ORDER, HealthReport, NotificationStatus
from modules.notifications.store import NotificationStore

logger = get_module_logger()

# Failures in the last 24h above which the engine reports degraded
FAILURE_ALERT_THRESHOLD = 10


class HealthCheck:
    def __init__(
        self,
        store: NotificationStore,
        clock: Clock,
        breakers: CircuitBreakerRegistry,
        retention: NotificationRetentionSettings,
        scheduling: NotificationSchedulingSettings,
        retry_settings: NotificationRetrySettings,
    ):
        self.store = store
        self._clock = clock
        self.breakers = breakers
        self.retention = retention
        self.stale_after = timedelta(minutes=scheduling.stale_after_minutes)
        self.claim_lease = timedelta(seconds=retry_settings.claim_lease_seconds)

    def run(self) -> HealthReport:
        with bind_run_context(job="health_check"):
            now = self._clock.now()
            pending = self.store.find_by_status(NotificationStatus.PENDING)
            sending = self.store.find_by_status(NotificationStatus.SENDING)
            failed = self.store.find_by_status(NotificationStatus.FAILED)

            due = Counter(n.lane.value for n in pending if n.scheduled_at <= now)
            queue_depth = {lane.value: due.get(lane.value, 0) for lane in LANE_ORDER}

            day_ago = now - timedelta(hours=24)
            failed_recent = sum(
                1 for n in failed if n.updated_at and n.updated_at >= day_ago
            )

            stale = sum(1 for n in pending if now - n.scheduled_at > self.stale_after)
            stale += sum(
                1
                for n in sending
                if n.updated_at and now - n.updated_at > self.claim_lease
            )

            states = self.breakers.get_states()
            open_breakers = self.breakers.get_open()

            recommendations: List[str] = []
            if stale:
                recommendations.append("run overdue sweep")
            if CleanupJob.is_cleanup_needed(self.store, self.retention, now):
                recommendations.append("run cleanup")
            if failed_recent >= FAILURE_ALERT_THRESHOLD:
                recommendations.append("investigate failures")
            for name in open_breakers:
                recommendations.append(f"investigate open circuit {name}")

            degraded = (
                bool(stale)
                or bool(open_breakers)
                or failed_recent >= FAILURE_ALERT_THRESHOLD
            )
            report = HealthReport(
                status="degraded" if degraded else "healthy",
                checked_at=now,
                queue_depth=queue_depth,
                failed_last_24h=failed_recent,
                stale_count=stale,
                circuit_breakers=states,
                recommendations=recommendations,
            )

            log = logger.warning if degraded else logger.info
            log("notification_health_checked", **report.to_dict())
        return report
