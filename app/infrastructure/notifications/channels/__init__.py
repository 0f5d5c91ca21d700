"""Channel senders: one per transport."""

from infrastructure.notifications.channels.base import NotificationChannel
from infrastructure.notifications.channels.email import EmailChannel
from infrastructure.notifications.channels.in_app import InAppChannel
from infrastructure.notifications.channels.push import PushChannel
from infrastructure.notifications.channels.sms import SMSChannel

__all__ = [
    "NotificationChannel",
    "EmailChannel",
    "SMSChannel",
    "PushChannel",
    "InAppChannel",
]
