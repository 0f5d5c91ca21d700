"""Notification channel abstract base class.

All channel implementations (Email, SMS, Push, In-App) share the same
pre-send pipeline and differ only in recipient validation, provider call
and post-send bookkeeping.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Optional

import structlog

from infrastructure.clock import Clock
from infrastructure.notifications.models import (
    DeliveryMetadata,
    Recipient,
    RenderedMessage,
)
from infrastructure.notifications.preferences import PreferenceProvider
from infrastructure.operations import (
    OperationResult,
    classify_provider_code,
    classify_provider_error,
)
from infrastructure.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)

logger = structlog.get_logger()


def _is_transient(result: Any) -> bool:
    return isinstance(result, OperationResult) and result.is_transient


class NotificationChannel(ABC):
    """Abstract base class for notification channels.

    ``send`` never raises. Before any provider call it checks, in order:

    1. channel enabled, otherwise fatal ``CHANNEL_DISABLED``
    2. user preferences, otherwise skipped ``OPTED_OUT``
    3. channel-specific recipient validation (``validate``)
    4. channel-specific admission such as rate limits (``admit``)

    The provider call then goes through a circuit breaker. Provider
    exceptions are classified by ``classify_provider_error`` and failed
    provider results by ``classify_provider_code``. Only transient outcomes
    count as breaker failures. When the provider does not accept the
    message, ``release`` gives back whatever ``admit`` reserved.

    Example Implementation:
        class EmailChannel(NotificationChannel):

            @property
            def channel_name(self) -> str:
                return "email"

            def validate(self, recipient, metadata):
                ...

            def deliver(self, target, message, metadata):
                return self._provider.send(target, message.subject, message.body)
    """

    def __init__(
        self,
        clock: Clock,
        enabled: bool = True,
        preferences: Optional[PreferenceProvider] = None,
        failure_threshold: int = 5,
        breaker_timeout_seconds: int = 60,
    ):
        self.enabled = enabled
        self._clock = clock
        self._preferences = preferences
        self.circuit_breaker = CircuitBreaker(
            name=f"{self.channel_name}_channel",
            clock=clock,
            failure_threshold=failure_threshold,
            timeout_seconds=breaker_timeout_seconds,
            failure_predicate=_is_transient,
        )

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Channel identifier (email, sms, push, database)."""
        pass

    @abstractmethod
    def validate(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        """Check the recipient for this channel.

        Returns:
            Success with the provider target in ``data``, or a fatal or
            skipped result that stops the send.
        """
        pass

    @abstractmethod
    def deliver(
        self, target: Any, message: RenderedMessage, metadata: DeliveryMetadata
    ) -> OperationResult:
        """Call the provider. May raise; the base class classifies errors."""
        pass

    def admit(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        """Reserve capacity for this send; success data is handed to ``release``."""
        return OperationResult.success()

    def release(
        self,
        admission: OperationResult,
        recipient: Recipient,
        metadata: DeliveryMetadata,
    ) -> None:
        """Undo ``admit`` for a send the provider did not accept."""

    def after_send(
        self,
        result: OperationResult,
        target: Any,
        recipient: Recipient,
        metadata: DeliveryMetadata,
    ) -> OperationResult:
        """Hook for post-send bookkeeping (suppression, token cleanup)."""
        return result

    def send(
        self,
        recipient: Recipient,
        message: RenderedMessage,
        metadata: DeliveryMetadata,
    ) -> OperationResult:
        """Send one rendered message to one recipient.

        Args:
            recipient: Contact data of the user.
            message: Rendered content.
            metadata: Notification identity for policy checks and logs.

        Returns:
            OperationResult: success, transient, fatal or skipped.
        """
        log = logger.bind(
            channel=self.channel_name,
            notification_id=metadata.notification_id,
            notification_type=metadata.notification_type,
        )

        if not self.enabled:
            log.warning("channel_disabled")
            return OperationResult.permanent_error(
                f"Channel {self.channel_name} is disabled",
                error_code="CHANNEL_DISABLED",
            )

        user_id = recipient.user_id or metadata.user_id
        if (
            self._preferences is not None
            and user_id
            and self._preferences.is_opted_out(
                user_id, self.channel_name, metadata.notification_type
            )
        ):
            log.info("channel_opted_out", user_id=user_id)
            return OperationResult.skipped(
                f"User opted out of {self.channel_name} for "
                f"{metadata.notification_type}",
                error_code="OPTED_OUT",
            )

        validation = self.validate(recipient, metadata)
        if not validation.is_success:
            log.info(
                "recipient_validation_failed",
                error_code=validation.error_code,
                reason=validation.message,
            )
            return validation

        target = validation.data
        admission = self.admit(recipient, metadata)
        if not admission.is_success:
            log.info(
                "send_not_admitted",
                error_code=admission.error_code,
                retry_after=admission.retry_after,
            )
            return admission

        try:
            result = self.circuit_breaker.call(
                self._guarded_deliver, target, message, metadata
            )
        except CircuitBreakerOpenError as e:
            self.release(admission, recipient, metadata)
            return OperationResult.transient_error(
                str(e), error_code="CIRCUIT_OPEN", retry_after=e.retry_after
            )

        if not result.is_success:
            self.release(admission, recipient, metadata)
        return self.after_send(result, target, recipient, metadata)

    def _guarded_deliver(
        self, target: Any, message: RenderedMessage, metadata: DeliveryMetadata
    ) -> OperationResult:
        try:
            result = self.deliver(target, message, metadata)
        except Exception as e:  # pylint: disable=broad-except
            result = classify_provider_error(e)
            logger.warning(
                "provider_send_raised",
                channel=self.channel_name,
                notification_id=metadata.notification_id,
                error=str(e),
                error_code=result.error_code,
            )
            return result

        if result.is_success or result.is_skipped:
            return result
        # Providers report failures by code; the code decides retryability
        classified = classify_provider_code(
            result.error_code, result.message, result.retry_after
        )
        return replace(classified, data=result.data)

    def health_check(self) -> OperationResult:
        """Report channel availability from the breaker state."""
        if not self.enabled:
            return OperationResult.skipped(
                f"Channel {self.channel_name} is disabled",
                error_code="CHANNEL_DISABLED",
            )
        state = self.circuit_breaker.state
        if state == CircuitState.OPEN:
            return OperationResult.transient_error(
                f"Channel {self.channel_name} circuit is open",
                error_code="CIRCUIT_OPEN",
            )
        return OperationResult.success(data={"circuit_state": state.value})
