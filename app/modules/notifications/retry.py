"""Retry and backoff control for notification delivery.

BackoffController wraps a single send attempt: it accounts the attempt on
the record before calling the channel, bounds the call with the policy's
send timeout and turns the OperationResult into the record's next status.

Policy resolution order:
    1. urgent lane -> "urgent"
    2. notification type (e.g. "booking_reminder")
    3. channel ("email", "sms", "push", "database")
    4. "default"
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import timedelta
from typing import Callable, Optional

from infrastructure.clock import Clock
from infrastructure.configuration import RetryPolicyConfig
from infrastructure.configuration.infrastructure import NotificationRetrySettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult
from modules.notifications.escalation import EscalationEvent, Escalator
from modules.notifications.models import (
    Channel,
    DispatchOutcome,
    FailureKind,
    Lane,
    Notification,
    NotificationStatus,
    NotificationType,
)

logger = get_module_logger()

SendFunction = Callable[[], OperationResult]

# Scheduled job name -> policy governing its reruns and run timeout
JOB_POLICIES = {"overdue_sweep": "overdue", "batch": "batch", "cleanup": "cleanup"}


def backoff_delay(
    policy: RetryPolicyConfig,
    attempts: int,
    retry_after: Optional[int] = None,
    last_backoff_seconds: Optional[int] = None,
) -> int:
    """Delay before the next attempt after ``attempts`` failed attempts.

    The schedule index clamps to its last entry. A provider ``retry_after``
    and the previous delay are lower bounds, so delays never decrease.
    """
    schedule = policy.backoff_seconds
    index = min(max(attempts, 1) - 1, len(schedule) - 1)
    return max(schedule[index], retry_after or 0, last_backoff_seconds or 0)


class RetryPolicies:
    """Looks up the retry policy that governs a notification or job."""

    def __init__(self, settings: NotificationRetrySettings):
        self._policies = dict(settings.policies)

    def get(self, name: str) -> RetryPolicyConfig:
        return self._policies.get(name) or self._policies["default"]

    def for_job(self, job: str) -> RetryPolicyConfig:
        return self.get(JOB_POLICIES.get(job, job))

    def resolve_for(
        self, notification_type: NotificationType, channel: Channel, lane: Lane
    ) -> RetryPolicyConfig:
        if lane == Lane.URGENT and "urgent" in self._policies:
            return self._policies["urgent"]
        for name in (notification_type.value, channel.value):
            if name in self._policies:
                return self._policies[name]
        return self._policies["default"]

    def resolve(self, notification: Notification) -> RetryPolicyConfig:
        return self.resolve_for(notification.type, notification.channel, notification.lane)


class BackoffController:
    """Executes one send attempt and applies its outcome to the record.

    The controller only mutates the in-memory record; persisting it is the
    caller's job.

    Args:
        clock: Time source for every timestamp and deadline
        policies: Retry policy lookup
        escalator: Receives urgent notifications that end failed
        max_workers: Threads available for timed sends
    """

    def __init__(
        self,
        clock: Clock,
        policies: RetryPolicies,
        escalator: Optional[Escalator] = None,
        max_workers: int = 10,
    ):
        self._clock = clock
        self.policies = policies
        self._escalator = escalator
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notification-send"
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    def execute(
        self, notification: Notification, send: SendFunction
    ) -> DispatchOutcome:
        """Run ``send`` for a claimed notification.

        Args:
            notification: Record in status sending
            send: Zero-argument callable performing the channel send

        Returns:
            DispatchOutcome describing the new status of the record.
        """
        policy = self.policies.resolve(notification)
        log = logger.bind(**notification.log_context())
        now = self._clock.now()

        if notification.attempts >= notification.max_attempts:
            self.fail(
                notification,
                "Maximum delivery attempts reached",
                "MAX_ATTEMPTS_EXCEEDED",
            )
            return DispatchOutcome.FAILED

        notification.attempts += 1
        notification.last_attempted_at = now
        if notification.first_attempted_at is None:
            notification.first_attempted_at = now
            notification.retry_until = now + timedelta(
                seconds=policy.retry_until_seconds
            )

        log = log.bind(attempts=notification.attempts)
        log.info("notification_send_attempt", max_attempts=notification.max_attempts)

        result = self._timed_send(send, policy.timeout_seconds, log)
        return self.apply(notification, result, policy)

    def _timed_send(self, send: SendFunction, timeout_seconds: int, log) -> OperationResult:
        ctx = contextvars.copy_context()
        future = self._executor.submit(ctx.run, send)
        try:
            return future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            log.warning("notification_send_timeout", timeout_seconds=timeout_seconds)
            return OperationResult.transient_error(
                f"Send did not complete within {timeout_seconds}s",
                error_code="SEND_TIMEOUT",
            )
        except Exception as e:  # pylint: disable=broad-except
            log.error("notification_send_error", error=str(e), exc_info=True)
            return OperationResult.transient_error(
                f"Unexpected error during send: {e}", error_code="SYSTEM_ERROR"
            )

    def apply(
        self,
        notification: Notification,
        result: OperationResult,
        policy: RetryPolicyConfig,
    ) -> DispatchOutcome:
        """Move the record to the status implied by ``result``."""
        now = self._clock.now()
        log = logger.bind(**notification.log_context())

        if result.is_success:
            notification.mark_sent(now)
            log.info("notification_sent")
            return DispatchOutcome.SENT

        if result.is_skipped:
            notification.mark_skipped(now, result.message, result.error_code)
            log.info(
                "notification_skipped",
                reason=result.message,
                error_code=result.error_code,
            )
            return DispatchOutcome.SKIPPED

        if result.is_transient:
            delay = backoff_delay(
                policy,
                notification.attempts,
                retry_after=result.retry_after,
                last_backoff_seconds=notification.last_backoff_seconds,
            )
            deadline = notification.retry_until
            next_at = now + timedelta(seconds=delay)
            if notification.attempts < notification.max_attempts and (
                deadline is None or next_at <= deadline
            ):
                notification.schedule_retry(now, delay, result.message, result.error_code)
                log.info(
                    "notification_retry_scheduled",
                    reason=result.message,
                    error_code=result.error_code,
                    delay_seconds=delay,
                    scheduled_at=notification.scheduled_at.isoformat(),
                )
                return DispatchOutcome.RETRYING

            kind = FailureKind.TRANSIENT
            reason = result.message
            if notification.attempts < notification.max_attempts:
                reason = f"{result.message} (retry deadline passed)"
        else:
            kind = FailureKind.FATAL
            reason = result.message

        notification.mark_failed(now, reason, result.error_code, kind)
        log.warning(
            "notification_failed",
            reason=notification.failure_reason,
            error_code=result.error_code,
            failure_kind=kind.value,
        )
        self._escalate_if_urgent(notification, now)
        return DispatchOutcome.FAILED

    def fail(
        self,
        notification: Notification,
        reason: str,
        code: str,
        kind: FailureKind = FailureKind.TRANSIENT,
    ) -> None:
        """Mark a claimed record failed outside a send attempt.

        Used for exhausted attempts, expired claim leases and aborted batch
        runs. Urgent records are escalated exactly as after a failed send.
        """
        now = self._clock.now()
        notification.mark_failed(now, reason, code, kind)
        logger.warning(
            "notification_failed",
            reason=notification.failure_reason,
            error_code=code,
            failure_kind=kind.value,
            **notification.log_context(),
        )
        self._escalate_if_urgent(notification, now)

    def _escalate_if_urgent(self, notification: Notification, now) -> None:
        if (
            notification.lane != Lane.URGENT
            or notification.status != NotificationStatus.FAILED
            or notification.escalated_at is not None
            or self._escalator is None
        ):
            return

        notification.escalated_at = now
        try:
            self._escalator.escalate(
                EscalationEvent.from_notification(notification, failed_at=now)
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "escalation_failed",
                notification_id=notification.id,
                error=str(e),
                exc_info=True,
            )
