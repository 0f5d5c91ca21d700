"""Priority lane routing.

Routing is a pure function of the notification, the event time and now,
so routing the same record again after a reschedule is always safe.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from infrastructure.configuration.features import NotificationChannelSettings
from modules.notifications.models import Lane, Notification, NotificationType, Priority

URGENT_TYPES = frozenset({NotificationType.CONSULTATION_STARTING_SOON})

HIGH_TYPES = frozenset(
    {
        NotificationType.BOOKING_CONFIRMATION,
        NotificationType.BOOKING_CANCELLED,
        NotificationType.BOOKING_RESCHEDULED,
        NotificationType.CONSULTATION_CONFIRMATION,
    }
)

LOW_TYPES = frozenset({NotificationType.BOOKING_FOLLOW_UP})

URGENT_WITHIN_HOURS = 2
HIGH_WITHIN_HOURS = 24


@dataclass(frozen=True)
class Route:
    lane: Lane
    queue_name: str
    priority: Priority


class QueueRouter:
    """Assigns a lane, queue and priority before dispatch.

    Lanes:
        urgent: urgent type, urgent payload flag, or event within 2h
        high:   confirmation-like types, or event within 24h
        low:    follow-ups
        normal: everything else

    The normal lane uses the channel queue; the others use their lane queue.
    """

    def __init__(self, settings: NotificationChannelSettings):
        self.channel_queues = dict(settings.channel_queues)
        self.lane_queues = dict(settings.lane_queues)

    def lane_for(
        self,
        notification: Notification,
        event_at: Optional[datetime],
        now: datetime,
    ) -> Lane:
        # Past events (follow-ups) never qualify for the time-based lanes
        hours_until = None
        if event_at is not None and event_at >= now:
            hours_until = (event_at - now).total_seconds() / 3600

        if (
            notification.type in URGENT_TYPES
            or notification.payload.urgent
            or (hours_until is not None and hours_until <= URGENT_WITHIN_HOURS)
        ):
            return Lane.URGENT
        if notification.type in HIGH_TYPES or (
            hours_until is not None and hours_until <= HIGH_WITHIN_HOURS
        ):
            return Lane.HIGH
        if notification.type in LOW_TYPES:
            return Lane.LOW
        return Lane.NORMAL

    def route(
        self,
        notification: Notification,
        event_at: Optional[datetime],
        now: datetime,
    ) -> Route:
        lane = self.lane_for(notification, event_at, now)
        return Route(
            lane=lane,
            queue_name=self.queue_for(lane, notification.channel.value),
            priority=lane.priority,
        )

    def queue_for(self, lane: Lane, channel: str) -> str:
        if lane == Lane.NORMAL:
            return self.channel_queues.get(channel, self.lane_queues[lane.value])
        return self.lane_queues[lane.value]
