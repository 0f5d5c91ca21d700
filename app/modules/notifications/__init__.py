"""Notification delivery and retry engine.

Schedules, dispatches, retries, deduplicates, batches and archives
time-sensitive notifications tied to bookings, payments and consultations.

Usage:
    from modules.notifications import build_engine

    engine = build_engine()
    engine.scheduler.schedule_booking_created(booking)
    report = engine.sweeper.run()
"""

from modules.notifications.factory import (
    NotificationEngine,
    build_engine,
    get_engine,
    reset_engine,
)
from modules.notifications.models import (
    BusinessRef,
    Channel,
    Notification,
    NotificationStatus,
    NotificationType,
    Priority,
)

__all__ = [
    "NotificationEngine",
    "build_engine",
    "get_engine",
    "reset_engine",
    "BusinessRef",
    "Channel",
    "Notification",
    "NotificationStatus",
    "NotificationType",
    "Priority",
]
