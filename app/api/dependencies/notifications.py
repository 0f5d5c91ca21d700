"""FastAPI dependency for the process-wide notification engine."""

from typing import Annotated

from fastapi import Depends

from modules.notifications import NotificationEngine, get_engine


def get_notification_engine() -> NotificationEngine:
    return get_engine()


EngineDep = Annotated[NotificationEngine, Depends(get_notification_engine)]
