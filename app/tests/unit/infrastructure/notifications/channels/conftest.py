"""Fixtures for channel tests."""

import pytest

from infrastructure.notifications import (
    DeliveryMetadata,
    InMemoryDeviceTokenRegistry,
    InMemoryInbox,
    InMemoryPreferenceProvider,
    RenderedMessage,
)
from tests.factories import FakeEmailProvider, FakePushProvider, FakeSmsProvider


@pytest.fixture
def preferences():
    return InMemoryPreferenceProvider()


@pytest.fixture
def token_registry():
    return InMemoryDeviceTokenRegistry()


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
def inbox():
    return InMemoryInbox()


@pytest.fixture
def message():
    return RenderedMessage(
        subject="Upcoming booking",
        body="Haircut starts in 24h",
        data={"business_ref": "booking:b-1"},
    )


@pytest.fixture
def metadata_factory():
    def factory(channel, notification_type="booking_reminder", **overrides):
        fields = {
            "notification_id": "n-1",
            "notification_type": notification_type,
            "channel": channel,
            "user_id": "user-1",
        }
        fields.update(overrides)
        return DeliveryMetadata(**fields)

    return factory
