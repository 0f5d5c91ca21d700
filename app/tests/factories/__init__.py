"""Test data factories for deterministic test data generation."""

from tests.factories.notifications import (
    NOW,
    VALID_TOKEN,
    make_booking,
    make_consultation,
    make_notification,
    make_recipient,
    make_reminder,
    make_starting_soon,
)
from tests.factories.providers import (
    FakeEmailProvider,
    FakePushProvider,
    FakeSmsProvider,
    RecordingEscalator,
)
from tests.factories.sorted_sets import FakeSortedSetRedis

__all__ = [
    "NOW",
    "VALID_TOKEN",
    "make_booking",
    "make_consultation",
    "make_notification",
    "make_recipient",
    "make_reminder",
    "make_starting_soon",
    "FakeEmailProvider",
    "FakePushProvider",
    "FakeSmsProvider",
    "RecordingEscalator",
    "FakeSortedSetRedis",
]
