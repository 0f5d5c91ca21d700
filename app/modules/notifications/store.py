"""Notification record storage.

The store is the single source of truth and the only point of
coordination between workers. ``claim`` is the sole mutual-exclusion
point: an atomic ``pending -> sending`` move guarded by the current status.

The protocol-based design allows multiple backends (in-memory, DynamoDB).
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.operations import NotificationStoreError
from modules.notifications.models import (
    Channel,
    Notification,
    NotificationStatus,
    NotificationType,
)

logger = get_module_logger()


def due_sort_key(notification: Notification) -> Tuple[int, datetime]:
    """Priority first, then scheduled time."""
    return (int(notification.priority), notification.scheduled_at)


class NotificationStore(Protocol):
    """Storage interface for notification records.

    Methods:
        add: Persist a new record; fails if the id already exists
        get: Fetch one record by id
        save: Persist changes to an existing record
        claim: Atomically move a pending record to sending
        delete: Remove a record
        find_due: Pending records due now, ordered by priority then time
        find_by_status: Records in one status
        find_by_idempotency_key / find_by_business_ref / find_by_type_channel:
            index lookups
        list_all: Every record (statistics)
    """

    def add(self, notification: Notification) -> Notification: ...

    def get(self, notification_id: str) -> Optional[Notification]: ...

    def save(self, notification: Notification) -> Notification:
        """Persist a modified record.

        Raises:
            NotificationStoreError: If the record changed since it was read
                (error_code CONFLICT) or does not exist (NOT_FOUND).
        """
        ...

    def claim(self, notification_id: str, now: datetime) -> Optional[Notification]:
        """Move a pending record to sending.

        Returns:
            The claimed record, or None if it was not pending (another
            worker owns it, or it was cancelled).
        """
        ...

    def delete(self, notification_id: str) -> bool: ...

    def find_due(
        self,
        now: datetime,
        limit: int,
        type_filter: Optional[NotificationType] = None,
    ) -> List[Notification]: ...

    def find_by_status(
        self, status: NotificationStatus, limit: Optional[int] = None
    ) -> List[Notification]: ...

    def find_by_idempotency_key(self, key: str) -> List[Notification]: ...

    def find_by_business_ref(self, business_ref: str) -> List[Notification]: ...

    def find_by_type_channel(
        self, notification_type: NotificationType, channel: Channel
    ) -> List[Notification]: ...

    def list_all(self) -> List[Notification]: ...


class InMemoryNotificationStore:
    """Thread-safe in-memory NotificationStore.

    Records are copied on the way in and out so callers never share
    mutable state with the store. Secondary indexes mirror the DynamoDB
    GSIs: (status), (idempotency_key), (business_ref), (type, channel).

    Suitable for single-instance deployments, development and tests.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Notification] = {}
        self._by_status: Dict[NotificationStatus, Set[str]] = defaultdict(set)
        self._by_key: Dict[str, Set[str]] = defaultdict(set)
        self._by_ref: Dict[str, Set[str]] = defaultdict(set)
        self._by_type_channel: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
        self._lock = threading.RLock()

    def _index(self, record: Notification) -> None:
        self._by_status[record.status].add(record.id)
        self._by_key[record.idempotency_key].add(record.id)
        self._by_ref[str(record.business_ref)].add(record.id)
        self._by_type_channel[(record.type.value, record.channel.value)].add(record.id)

    def _unindex(self, record: Notification) -> None:
        self._by_status[record.status].discard(record.id)
        self._by_key[record.idempotency_key].discard(record.id)
        self._by_ref[str(record.business_ref)].discard(record.id)
        self._by_type_channel[(record.type.value, record.channel.value)].discard(
            record.id
        )

    def _copies(self, ids: Iterable[str]) -> List[Notification]:
        return [self._records[i].model_copy(deep=True) for i in ids if i in self._records]

    def add(self, notification: Notification) -> Notification:
        with self._lock:
            if notification.id in self._records:
                raise NotificationStoreError(
                    f"Notification {notification.id} already exists",
                    error_code="ALREADY_EXISTS",
                )
            record = notification.model_copy(deep=True)
            record.version = 1
            self._records[record.id] = record
            self._index(record)
            notification.version = record.version
            return record.model_copy(deep=True)

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            record = self._records.get(notification_id)
            return record.model_copy(deep=True) if record else None

    def save(self, notification: Notification) -> Notification:
        with self._lock:
            current = self._records.get(notification.id)
            if current is None:
                raise NotificationStoreError(
                    f"Notification {notification.id} not found",
                    error_code="NOT_FOUND",
                )
            if current.version != notification.version:
                raise NotificationStoreError(
                    f"Notification {notification.id} was modified concurrently",
                    error_code="CONFLICT",
                )
            self._unindex(current)
            record = notification.model_copy(deep=True)
            record.version = current.version + 1
            self._records[record.id] = record
            self._index(record)
            notification.version = record.version
            return record.model_copy(deep=True)

    def claim(self, notification_id: str, now: datetime) -> Optional[Notification]:
        with self._lock:
            current = self._records.get(notification_id)
            if current is None or current.status != NotificationStatus.PENDING:
                logger.debug(
                    "notification_claim_rejected",
                    notification_id=notification_id,
                    status=current.status.value if current else None,
                )
                return None
            claimed = current.model_copy(deep=True)
            claimed.transition_to(NotificationStatus.SENDING, now)
            return self.save(claimed)

    def delete(self, notification_id: str) -> bool:
        with self._lock:
            record = self._records.pop(notification_id, None)
            if record is None:
                return False
            self._unindex(record)
            return True

    def _select(
        self, ids: Iterable[str], predicate: Callable[[Notification], bool]
    ) -> List[Notification]:
        return [
            self._records[i].model_copy(deep=True)
            for i in ids
            if i in self._records and predicate(self._records[i])
        ]

    def find_due(
        self,
        now: datetime,
        limit: int,
        type_filter: Optional[NotificationType] = None,
    ) -> List[Notification]:
        with self._lock:
            due = self._select(
                self._by_status[NotificationStatus.PENDING],
                lambda n: n.scheduled_at <= now
                and n.attempts < n.max_attempts
                and (type_filter is None or n.type == type_filter),
            )
        due.sort(key=due_sort_key)
        return due[:limit]

    def find_by_status(
        self, status: NotificationStatus, limit: Optional[int] = None
    ) -> List[Notification]:
        with self._lock:
            records = self._copies(self._by_status[status])
        records.sort(key=lambda n: (n.updated_at or n.scheduled_at, n.id))
        return records if limit is None else records[:limit]

    def find_by_idempotency_key(self, key: str) -> List[Notification]:
        with self._lock:
            return self._copies(self._by_key.get(key, ()))

    def find_by_business_ref(self, business_ref: str) -> List[Notification]:
        with self._lock:
            return self._copies(self._by_ref.get(business_ref, ()))

    def find_by_type_channel(
        self, notification_type: NotificationType, channel: Channel
    ) -> List[Notification]:
        with self._lock:
            return self._copies(
                self._by_type_channel.get((notification_type.value, channel.value), ())
            )

    def list_all(self) -> List[Notification]:
        with self._lock:
            return self._copies(list(self._records))
