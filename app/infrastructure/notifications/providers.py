"""Transport provider interfaces and log-only development providers.

Concrete SMTP, SMS and push gateways live outside this engine. They
implement the Protocols below and either return an OperationResult
(with a provider error code on failure) or raise ProviderError.
"""

import threading
import uuid
from typing import Any, Dict, List, Optional, Protocol

import structlog

from infrastructure.logging.formatters import mask_phone
from infrastructure.notifications.models import InboxEntry
from infrastructure.operations import OperationResult

logger = structlog.get_logger()


class EmailProvider(Protocol):
    def send(self, address: str, subject: str, body: str) -> OperationResult: ...


class SmsProvider(Protocol):
    def send(self, e164_number: str, text: str) -> OperationResult: ...


class PushProvider(Protocol):
    def send(
        self, tokens: List[str], title: str, body: str, data: Dict[str, Any]
    ) -> OperationResult:
        """Deliver to every token.

        On partial failure the result may still be a success, with the
        rejected tokens listed in ``data["invalid_tokens"]``.
        """
        ...


class InboxWriter(Protocol):
    def write(self, entry: InboxEntry) -> OperationResult: ...


class LogEmailProvider:
    """Development provider: logs the message instead of sending it."""

    def send(self, address: str, subject: str, body: str) -> OperationResult:
        message_id = uuid.uuid4().hex
        logger.info(
            "dev_email_sent",
            address=address,
            subject=subject,
            message_id=message_id,
        )
        return OperationResult.success(data={"message_id": message_id})


class LogSmsProvider:
    """Development provider: logs the message instead of sending it."""

    def send(self, e164_number: str, text: str) -> OperationResult:
        message_id = uuid.uuid4().hex
        logger.info(
            "dev_sms_sent",
            phone=mask_phone(e164_number),
            length=len(text),
            message_id=message_id,
        )
        return OperationResult.success(data={"message_id": message_id})


class LogPushProvider:
    """Development provider: logs the message instead of sending it."""

    def send(
        self, tokens: List[str], title: str, body: str, data: Dict[str, Any]
    ) -> OperationResult:
        logger.info("dev_push_sent", devices=len(tokens), title=title)
        return OperationResult.success(
            data={"delivered": len(tokens), "invalid_tokens": []}
        )


class InMemoryInbox:
    """InboxWriter keeping entries per user in process memory."""

    def __init__(self):
        self._entries: Dict[str, List[InboxEntry]] = {}
        self._lock = threading.Lock()

    def write(self, entry: InboxEntry) -> OperationResult:
        with self._lock:
            self._entries.setdefault(entry.user_id, []).append(entry)
        return OperationResult.success(data={"inbox_entry_id": entry.id})

    def entries_for(self, user_id: str) -> List[InboxEntry]:
        with self._lock:
            return list(self._entries.get(user_id, []))

    def find(self, notification_id: str) -> Optional[InboxEntry]:
        with self._lock:
            for entries in self._entries.values():
                for entry in entries:
                    if entry.notification_id == notification_id:
                        return entry
        return None
