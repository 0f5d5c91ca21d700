"""Shared fixtures for notification engine tests.

Every engine built here runs on a FrozenClock starting at NOW, with
in-memory store, cache, directory and inbox, and fake transport providers
that record their calls.
"""

import pytest

from infrastructure.clock import FrozenClock
from infrastructure.configuration import Settings
from infrastructure.configuration.features import (
    NotificationBatchSettings,
    NotificationChannelSettings,
)
from infrastructure.idempotency import InMemoryCache
from infrastructure.notifications import (
    InMemoryDeviceTokenRegistry,
    InMemoryInbox,
    InMemoryPreferenceProvider,
)
from modules.notifications import build_engine
from modules.notifications.business import InMemoryBusinessDirectory
from modules.notifications.cleanup import InMemoryArchiveSink
from modules.notifications.store import InMemoryNotificationStore
from tests.factories import (
    NOW,
    FakeEmailProvider,
    FakePushProvider,
    FakeSmsProvider,
    RecordingEscalator,
    make_booking,
    make_recipient,
)


@pytest.fixture
def clock():
    """FrozenClock starting at NOW (2025-01-01 00:00 UTC)."""
    return FrozenClock(NOW)


@pytest.fixture
def settings():
    """Settings with every channel enabled and no pacing delays."""
    return Settings(
        PREFIX="test",
        notification_channels=NotificationChannelSettings(
            NOTIFICATIONS_SMS_ENABLED=True,
            NOTIFICATIONS_PUSH_ENABLED=True,
        ),
        notification_batches=NotificationBatchSettings(
            NOTIFICATIONS_INTER_ITEM_DELAY_MS=0,
            NOTIFICATIONS_INTER_GROUP_DELAY_MS=0,
        ),
    )


@pytest.fixture
def store():
    return InMemoryNotificationStore()


@pytest.fixture
def cache(clock):
    return InMemoryCache(clock)


@pytest.fixture
def directory():
    """Directory holding user-1's contact data and booking b-1."""
    directory = InMemoryBusinessDirectory()
    directory.add_user(make_recipient())
    directory.put(make_booking())
    return directory


@pytest.fixture
def preferences():
    return InMemoryPreferenceProvider()


@pytest.fixture
def token_registry():
    return InMemoryDeviceTokenRegistry()


@pytest.fixture
def inbox():
    return InMemoryInbox()


@pytest.fixture
def email_provider():
    return FakeEmailProvider()


@pytest.fixture
def sms_provider():
    return FakeSmsProvider()


@pytest.fixture
def push_provider():
    return FakePushProvider()


@pytest.fixture
def escalator():
    return RecordingEscalator()


@pytest.fixture
def archive():
    return InMemoryArchiveSink()


@pytest.fixture
def engine(
    settings,
    clock,
    store,
    cache,
    directory,
    preferences,
    token_registry,
    inbox,
    email_provider,
    sms_provider,
    push_provider,
    escalator,
    archive,
):
    """Fully wired NotificationEngine over the fixtures above."""
    engine = build_engine(
        settings,
        clock,
        store=store,
        cache=cache,
        directory=directory,
        preferences=preferences,
        token_registry=token_registry,
        inbox=inbox,
        email_provider=email_provider,
        sms_provider=sms_provider,
        push_provider=push_provider,
        escalator=escalator,
        archive=archive,
    )
    yield engine
    engine.shutdown()
