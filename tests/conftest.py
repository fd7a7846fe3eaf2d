"""Shared pytest fixtures and configuration."""

import os
import pytest
from datetime import datetime, timezone

# Set test environment variables
os.environ.setdefault("API_BASE_URL", "http://testserver")
os.environ.setdefault("QUERY_STALE_TIME_SECONDS", "300")
os.environ.setdefault("QUERY_RETRY_COUNT", "1")
os.environ.setdefault("NOTIFICATION_POLL_SECONDS", "30")
os.environ.setdefault("LOG_MASK_SENSITIVE", "true")

from ownitright.models.notification import Notification
from ownitright.models.tracker import Step, Tracker
from ownitright.services.query_cache import QueryCache
from tests.utils.factories import create_notification_data, create_step_data
from tests.utils.helpers import FakeClock, RecordingTransport, make_rest_client


@pytest.fixture
def fake_clock():
    """Manually advanced monotonic clock for stale-time tests."""
    return FakeClock()


@pytest.fixture
def query_cache(fake_clock):
    """QueryCache with a fake clock and the default retry count."""
    return QueryCache(stale_time=300, retry=1, clock=fake_clock)


@pytest.fixture
def transport():
    """Recording mock transport; tests register responses per route."""
    return RecordingTransport()


@pytest.fixture
def rest_client(transport):
    """RestClient talking to the recording transport."""
    return make_rest_client(transport)


@pytest.fixture
def sample_steps():
    """One pending and two verified steps."""
    return [
        Step(**create_step_data(step_id="1", status="pending")),
        Step(**create_step_data(step_id="2", status="verified")),
        Step(**create_step_data(step_id="3", status="verified")),
    ]


@pytest.fixture
def sample_tracker(sample_steps):
    """Tracker over the sample steps."""
    return Tracker(
        id="tracker-1",
        property_id="prop-1",
        property_name="Prestige Lakeside Habitat",
        steps=sample_steps,
    )


@pytest.fixture
def sample_notifications():
    """Three unread notifications for user-1."""
    return [
        Notification(**create_notification_data(notification_id=str(i), user_id="user-1"))
        for i in range(1, 4)
    ]


@pytest.fixture
def fixed_now():
    return datetime(2024, 12, 9, 12, 0, 0, tzinfo=timezone.utc)
