"""In-app (database) channel implementation."""

import uuid
from typing import Any, Optional

import structlog

from infrastructure.clock import Clock
from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.models import (
    DeliveryMetadata,
    InboxEntry,
    Recipient,
    RenderedMessage,
)
from infrastructure.notifications.preferences import PreferenceProvider
from infrastructure.notifications.providers import InboxWriter
from infrastructure.operations import OperationResult

logger = structlog.get_logger()


class InAppChannel(NotificationChannel):
    """Writes a user-visible inbox entry.

    Needs only a user id, so it is the fallback when every requested
    channel is disabled.
    """

    def __init__(
        self,
        inbox: InboxWriter,
        clock: Clock,
        enabled: bool = True,
        preferences: Optional[PreferenceProvider] = None,
        **breaker_options,
    ):
        super().__init__(clock, enabled, preferences, **breaker_options)
        self._inbox = inbox

    @property
    def channel_name(self) -> str:
        return "database"

    def validate(
        self, recipient: Recipient, metadata: DeliveryMetadata
    ) -> OperationResult:
        user_id = recipient.user_id or metadata.user_id
        if not user_id:
            return OperationResult.permanent_error(
                "User id required for in-app delivery",
                error_code="INVALID_RECIPIENT",
            )
        return OperationResult.success(data=user_id)

    def deliver(
        self, target: Any, message: RenderedMessage, metadata: DeliveryMetadata
    ) -> OperationResult:
        entry = InboxEntry(
            id=uuid.uuid4().hex,
            user_id=target,
            notification_id=metadata.notification_id,
            notification_type=metadata.notification_type,
            title=message.subject,
            body=message.body,
            data=message.data,
            created_at=self._clock.now(),
        )
        result = self._inbox.write(entry)
        if result.is_success:
            logger.info(
                "inbox_entry_written",
                notification_id=metadata.notification_id,
                user_id=target,
            )
        return result
