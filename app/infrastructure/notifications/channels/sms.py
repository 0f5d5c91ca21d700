"""SMS channel implementation."""

import re
from typing import Any, Optional

import structlog

from infrastructure.clock import Clock
from infrastructure.logging.formatters import mask_phone
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.models import (
    DeliveryMetadata,
    Recipient,
    RenderedMessage,
)
from infrastructure.notifications.preferences import PreferenceProvider
from infrastructure.notifications.providers import SmsProvider
from infrastructure.notifications.rate_limiter import RateLimiter
from infrastructure.operations import OperationResult

logger = structlog.get_logger()

# "+" followed by 11 to 15 digits, no leading zero
E164_PATTERN = re.compile(r"^\+[1-9]\d{10,14}$")

MAX_SMS_LENGTH = 1600


class SMSChannel(NotificationChannel):
    """SMS notification channel.

    Requires phone numbers in E.164 format. Per-user rate limits (channel
    first, then notification type) are reserved before the provider call
    and released again when the message was not accepted.
    Numbers only ever reach the logs masked.
    """

    def __init__(
        self,
        provider: SmsProvider,
        clock: Clock,
        enabled: bool = True,
        preferences: Optional[PreferenceProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        **breaker_options,
    ):
        super().__init__(clock, enabled, preferences, **breaker_options)
        self._provider = provider
        self._rate_limiter = rate_limiter

    @property
    def channel_name(self) -> str:
        return "sms"

    def validate(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        phone = (recipient.phone or "").strip()
        if not E164_PATTERN.match(phone):
            return OperationResult.permanent_error(
                "Phone number must be in E.164 format (+15551234567)",
                error_code="INVALID_PHONE_FORMAT",
            )
        return OperationResult.success(data=phone)

    def _limit_keys(self, metadata: DeliveryMetadata):
        return [self.channel_name, metadata.notification_type]

    def admit(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        if self._rate_limiter is None:
            return OperationResult.success()
        return self._rate_limiter.acquire(
            recipient.user_id or metadata.user_id, self._limit_keys(metadata)
        )

    def release(
        self,
        admission: OperationResult,
        recipient: Recipient,
        metadata: DeliveryMetadata,
    ) -> None:
        if self._rate_limiter is not None:
            self._rate_limiter.release(
                recipient.user_id or metadata.user_id,
                self._limit_keys(metadata),
                admission.data,
            )

    def deliver(
        self, target: Any, message: RenderedMessage, metadata: DeliveryMetadata
    ) -> OperationResult:
        text = message.body
        if len(text) > MAX_SMS_LENGTH:
            logger.warning(
                "sms_message_truncated",
                phone=mask_phone(target),
                original_length=len(text),
            )
            text = text[: MAX_SMS_LENGTH - 3] + "..."
        return self._provider.send(target, text)

    def after_send(
        self,
        result: OperationResult,
        target: Any,
        recipient: Recipient,
        metadata: DeliveryMetadata,
    ) -> OperationResult:
        if result.is_success:
            logger.info(
                "sms_sent",
                phone=mask_phone(target),
                notification_id=metadata.notification_id,
            )
        else:
            logger.warning(
                "sms_failed",
                phone=mask_phone(target),
                notification_id=metadata.notification_id,
                error_code=result.error_code,
                error=result.message,
            )
        return result
