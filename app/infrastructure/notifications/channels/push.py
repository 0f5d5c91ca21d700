"""Push channel implementation."""

from typing import Any, List, Optional

import structlog

from infrastructure.clock import Clock
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.models import (
    DeliveryMetadata,
    Recipient,
    RenderedMessage,
)
from infrastructure.notifications.preferences import (
    DeviceTokenRegistry,
    PreferenceProvider,
)
from infrastructure.notifications.providers import PushProvider
from infrastructure.operations import OperationResult

logger = structlog.get_logger()

MIN_TOKEN_LENGTH = 10
MAX_TOKEN_LENGTH = 200

INVALID_TOKEN_MARKERS = (
    "invalid_registration",
    "not_registered",
    "invalid_token",
    "token_not_found",
)


def filter_device_tokens(tokens: List[str]) -> List[str]:
    """Strip tokens and drop those outside the accepted length range."""
    valid = []
    for token in tokens:
        stripped = (token or "").strip()
        if MIN_TOKEN_LENGTH <= len(stripped) <= MAX_TOKEN_LENGTH:
            valid.append(stripped)
    return valid


def is_invalid_token_error(result: OperationResult) -> bool:
    text = f"{result.error_code or ''} {result.message}".lower()
    return any(marker in text for marker in INVALID_TOKEN_MARKERS)


class PushChannel(NotificationChannel):
    """Push notification channel.

    Malformed tokens are dropped before sending. Tokens the provider
    rejects as unregistered are handed to the DeviceTokenRegistry and the
    rejection is fatal, since resending to them can never succeed.
    """

    def __init__(
        self,
        provider: PushProvider,
        clock: Clock,
        enabled: bool = True,
        preferences: Optional[PreferenceProvider] = None,
        token_registry: Optional[DeviceTokenRegistry] = None,
        **breaker_options,
    ):
        super().__init__(clock, enabled, preferences, **breaker_options)
        self._provider = provider
        self._token_registry = token_registry

    @property
    def channel_name(self) -> str:
        return "push"

    def validate(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        tokens = filter_device_tokens(recipient.device_tokens)
        dropped = len(recipient.device_tokens) - len(tokens)
        if dropped:
            logger.info(
                "device_tokens_filtered",
                notification_id=metadata.notification_id,
                dropped=dropped,
                remaining=len(tokens),
            )
        if not tokens:
            return OperationResult.permanent_error(
                "No valid device tokens", error_code="NO_VALID_DEVICE_TOKENS"
            )
        return OperationResult.success(data=tokens)

    def deliver(
        self, target: Any, message: RenderedMessage, metadata: DeliveryMetadata
    ) -> OperationResult:
        data = dict(message.data)
        data.setdefault("notification_id", metadata.notification_id)
        data.setdefault("type", metadata.notification_type)
        return self._provider.send(target, message.subject, message.body, data)

    def after_send(
        self,
        result: OperationResult,
        target: Any,
        recipient: Recipient,
        metadata: DeliveryMetadata,
    ) -> OperationResult:
        user_id = recipient.user_id or metadata.user_id
        reported = []
        if isinstance(result.data, dict):
            reported = list(result.data.get("invalid_tokens") or [])

        if not result.is_success and is_invalid_token_error(result):
            invalid = list(target)
        else:
            invalid = [token for token in target if token in reported]

        if invalid and self._token_registry is not None:
            self._token_registry.mark_for_cleanup(
                user_id, invalid, reason=result.error_code or "invalid_token"
            )

        if invalid and len(invalid) == len(target):
            logger.warning(
                "push_all_tokens_invalid",
                notification_id=metadata.notification_id,
                devices=len(target),
            )
            return OperationResult.permanent_error(
                "All device tokens were rejected as invalid",
                error_code="INVALID_TOKEN",
            )

        if result.is_success:
            logger.info(
                "push_sent",
                notification_id=metadata.notification_id,
                delivered=len(target) - len(invalid),
                invalid=len(invalid),
            )
        else:
            logger.warning(
                "push_failed",
                notification_id=metadata.notification_id,
                error_code=result.error_code,
                error=result.message,
            )
        return result
