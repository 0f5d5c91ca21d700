"""Business directory: the engine's read-only view of domain entities.

Bookings, consultations, users and payments live in an external store.
The engine only needs point-in-time snapshots of them to decide whether a
notification is still relevant, where to send it and which payments are
overdue.
"""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel

from infrastructure.notifications.models import Recipient
from modules.notifications.models import BusinessRef

# Business statuses after which no notification is relevant any more
ENDED_STATUSES = frozenset({"cancelled", "completed", "no_show"})


class BusinessSnapshot(BaseModel):
    """Point-in-time view of a booking or consultation."""

    ref: BusinessRef
    user_id: str
    status: str = "confirmed"
    starts_at: datetime
    title: str = ""
    payment_status: Optional[str] = None
    amount_due: float = 0.0
    amount_paid: float = 0.0
    currency: str = "CAD"

    @property
    def remaining_amount(self) -> float:
        return round(self.amount_due - self.amount_paid, 2)

    @property
    def is_ended(self) -> bool:
        return self.status in ENDED_STATUSES

    @property
    def payment_outstanding(self) -> bool:
        return self.payment_status == "pending" and self.remaining_amount > 0


class BusinessDirectory(Protocol):
    def get(self, ref: BusinessRef) -> Optional[BusinessSnapshot]: ...

    def get_user_contact(self, user_id: str) -> Optional[Recipient]: ...

    def find_overdue_payment_candidates(
        self, now: datetime, window_hours: int, limit: int
    ) -> List[BusinessSnapshot]:
        """Bookings with an outstanding payment whose event is in the
        future but closer than ``window_hours``."""
        ...


class InMemoryBusinessDirectory:
    """BusinessDirectory for development and tests."""

    def __init__(self):
        self._objects: Dict[str, BusinessSnapshot] = {}
        self._users: Dict[str, Recipient] = {}
        self._lock = threading.Lock()

    def put(self, snapshot: BusinessSnapshot) -> BusinessSnapshot:
        with self._lock:
            self._objects[str(snapshot.ref)] = snapshot
        return snapshot

    def remove(self, ref: BusinessRef) -> None:
        with self._lock:
            self._objects.pop(str(ref), None)

    def update(self, ref: BusinessRef, **changes) -> BusinessSnapshot:
        with self._lock:
            updated = self._objects[str(ref)].model_copy(update=changes)
            self._objects[str(ref)] = updated
            return updated

    def add_user(self, contact: Recipient) -> None:
        with self._lock:
            self._users[contact.user_id] = contact

    def get(self, ref: BusinessRef) -> Optional[BusinessSnapshot]:
        with self._lock:
            return self._objects.get(str(ref))

    def get_user_contact(self, user_id: str) -> Optional[Recipient]:
        with self._lock:
            return self._users.get(user_id)

    def find_overdue_payment_candidates(
        self, now: datetime, window_hours: int, limit: int
    ) -> List[BusinessSnapshot]:
        window = timedelta(hours=window_hours)
        with self._lock:
            candidates = [
                snapshot
                for snapshot in self._objects.values()
                if snapshot.ref.kind == "booking"
                and not snapshot.is_ended
                and snapshot.payment_outstanding
                and snapshot.starts_at > now
                and now > snapshot.starts_at - window
            ]
        candidates.sort(key=lambda s: s.starts_at)
        return candidates[:limit]
