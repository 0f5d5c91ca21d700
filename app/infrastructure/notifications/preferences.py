"""User preference, suppression and device-token collaborators.

The engine never stores user settings itself. It asks a PreferenceProvider
whether a user opted out of a (channel, type) combination, whether an
address is suppressed and which channels to use by default, and reports
dead push tokens to a DeviceTokenRegistry.
"""

import threading
from typing import Dict, List, Optional, Protocol, Set, Tuple

import structlog

logger = structlog.get_logger()


class PreferenceProvider(Protocol):
    def is_opted_out(
        self, user_id: str, channel: str, notification_type: Optional[str] = None
    ) -> bool: ...

    def opt_out(
        self, user_id: str, channel: str, notification_type: Optional[str] = None
    ) -> None: ...

    def is_suppressed(self, email: str) -> bool: ...

    def suppress(self, email: str, reason: str) -> None: ...

    def preferred_channels(
        self, user_id: str, notification_type: str
    ) -> Optional[List[str]]: ...


class DeviceTokenRegistry(Protocol):
    def mark_for_cleanup(self, user_id: Optional[str], tokens: List[str], reason: str) -> None: ...


class InMemoryPreferenceProvider:
    """PreferenceProvider backed by dicts.

    An opt-out registered without a notification type covers every type
    on that channel.
    """

    def __init__(self):
        self._opt_outs: Set[Tuple[str, str, Optional[str]]] = set()
        self._suppressed: Dict[str, str] = {}
        self._channels: Dict[Tuple[str, Optional[str]], List[str]] = {}
        self._lock = threading.Lock()

    def is_opted_out(
        self, user_id: str, channel: str, notification_type: Optional[str] = None
    ) -> bool:
        with self._lock:
            return (user_id, channel, None) in self._opt_outs or (
                notification_type is not None
                and (user_id, channel, notification_type) in self._opt_outs
            )

    def opt_out(
        self, user_id: str, channel: str, notification_type: Optional[str] = None
    ) -> None:
        with self._lock:
            self._opt_outs.add((user_id, channel, notification_type))
        logger.info(
            "user_opted_out",
            user_id=user_id,
            channel=channel,
            notification_type=notification_type,
        )

    def is_suppressed(self, email: str) -> bool:
        with self._lock:
            return email.lower() in self._suppressed

    def suppress(self, email: str, reason: str) -> None:
        with self._lock:
            self._suppressed[email.lower()] = reason
        logger.info("email_suppressed", reason=reason)

    def set_channels(
        self,
        user_id: str,
        channels: List[str],
        notification_type: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._channels[(user_id, notification_type)] = list(channels)

    def preferred_channels(
        self, user_id: str, notification_type: str
    ) -> Optional[List[str]]:
        with self._lock:
            channels = self._channels.get((user_id, notification_type))
            if channels is None:
                channels = self._channels.get((user_id, None))
            return list(channels) if channels is not None else None


class InMemoryDeviceTokenRegistry:
    """Collects push tokens that providers reported as dead."""

    def __init__(self):
        self.marked: Dict[str, str] = {}
        self._lock = threading.Lock()

    def mark_for_cleanup(
        self, user_id: Optional[str], tokens: List[str], reason: str
    ) -> None:
        with self._lock:
            for token in tokens:
                self.marked[token] = reason
        logger.info(
            "device_tokens_marked_for_cleanup",
            user_id=user_id,
            count=len(tokens),
            reason=reason,
        )
