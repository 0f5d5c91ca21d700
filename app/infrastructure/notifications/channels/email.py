"""Email channel implementation."""

from typing import Any, Optional

import structlog
from email_validator import EmailNotValidError, validate_email

from infrastructure.clock import Clock
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.models import (
    DeliveryMetadata,
    Recipient,
    RenderedMessage,
)
from infrastructure.notifications.preferences import PreferenceProvider
from infrastructure.notifications.providers import EmailProvider
from infrastructure.operations import OperationResult

logger = structlog.get_logger()


class EmailChannel(NotificationChannel):
    """Email notification channel.

    Addresses are checked for syntax only (no DNS lookups). Hard bounces
    suppress the address and complaints opt the user out of e-mail, so
    neither is ever retried or sent again.
    """

    def __init__(
        self,
        provider: EmailProvider,
        clock: Clock,
        enabled: bool = True,
        preferences: Optional[PreferenceProvider] = None,
        **breaker_options,
    ):
        super().__init__(clock, enabled, preferences, **breaker_options)
        self._provider = provider

    @property
    def channel_name(self) -> str:
        return "email"

    def validate(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        if not recipient.email:
            return OperationResult.permanent_error(
                "Email address required", error_code="INVALID_EMAIL"
            )

        try:
            address = validate_email(
                recipient.email.strip(), check_deliverability=False
            ).normalized
        except EmailNotValidError as e:
            return OperationResult.permanent_error(
                f"Invalid email address: {str(e)}", error_code="INVALID_EMAIL"
            )

        if self._preferences is not None and self._preferences.is_suppressed(address):
            return OperationResult.skipped(
                "Email address is suppressed", error_code="SUPPRESSED"
            )

        return OperationResult.success(data=address)

    def deliver(
        self, target: Any, message: RenderedMessage, metadata: DeliveryMetadata
    ) -> OperationResult:
        return self._provider.send(target, message.subject or "Notification", message.body)

    def after_send(
        self,
        result: OperationResult,
        target: Any,
        recipient: Recipient,
        metadata: DeliveryMetadata,
    ) -> OperationResult:
        if result.is_success:
            logger.info(
                "email_sent",
                notification_id=metadata.notification_id,
                notification_type=metadata.notification_type,
            )
            return result

        if self._preferences is not None:
            if result.error_code == "BOUNCED":
                self._preferences.suppress(target, "hard_bounce")
            elif result.error_code == "COMPLAINED":
                user_id = recipient.user_id or metadata.user_id
                if user_id:
                    self._preferences.opt_out(user_id, self.channel_name)

        logger.warning(
            "email_failed",
            notification_id=metadata.notification_id,
            error_code=result.error_code,
            error=result.message,
        )
        return result
