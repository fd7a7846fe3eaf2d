"""Tests for the notification state machine and NotificationService."""

import httpx
import pytest
from datetime import datetime, timezone
from freezegun import freeze_time

from ownitright.models.notification import Notification
from ownitright.models.status import NotificationStatus
from ownitright.services.notification_state import (
    NotificationService,
    archive,
    feed_key,
    mark_all_read,
    mark_read,
    parse_feed,
    unread_count,
    visible,
)
from ownitright.utils.errors import MutationError, NetworkError, ValidationError
from tests.utils.assertions import assert_failed_with, assert_unread_invariant
from tests.utils.factories import create_notification_data
from tests.utils.helpers import request_json

FEED_PATH = "/api/notifications"


@pytest.fixture
def service(query_cache, rest_client):
    return NotificationService(query_cache, rest_client)


def _feed_body(*notifications, unread=99):
    return {"notifications": list(notifications), "total": len(notifications), "unreadCount": unread}


@pytest.mark.unit
@freeze_time("2024-12-09 12:00:00")
def test_mark_read_stamps_read_at(sample_notifications):
    """Test unread -> read with a read_at timestamp."""
    updated = mark_read(sample_notifications[0])

    assert updated.is_read is True
    assert updated.status == NotificationStatus.READ
    assert updated.read_at == datetime(2024, 12, 9, 12, 0, 0, tzinfo=timezone.utc)
    assert sample_notifications[0].is_read is False


@pytest.mark.unit
def test_mark_read_is_idempotent(sample_notifications, fixed_now):
    """Test that marking twice equals marking once."""
    once = mark_read(sample_notifications[0], fixed_now)
    twice = mark_read(once, datetime(2030, 1, 1, tzinfo=timezone.utc))

    assert twice == once
    assert twice is once


@pytest.mark.unit
def test_archived_is_terminal(sample_notifications):
    """Test that an archived notification never leaves archived."""
    archived = archive(sample_notifications[0])

    assert archived.status == NotificationStatus.ARCHIVED
    assert mark_read(archived) is archived
    assert archive(archived) is archived


@pytest.mark.unit
def test_unread_count_excludes_archived_unread(sample_notifications):
    """Test that archived notifications never count as unread, read or not."""
    notifications = [archive(sample_notifications[0])] + sample_notifications[1:]

    assert unread_count(notifications) == 2


@pytest.mark.unit
def test_unread_invariant_after_operation_sequence(sample_notifications, fixed_now):
    """Test the recomputed unread count after mixed mark_read/archive operations."""
    notifications = list(sample_notifications)
    operations = [(mark_read, 0), (archive, 1), (mark_read, 0), (archive, 0), (mark_read, 2)]

    for operation, index in operations:
        if operation is mark_read:
            notifications[index] = mark_read(notifications[index], fixed_now)
        else:
            notifications[index] = archive(notifications[index])
        assert_unread_invariant(notifications, unread_count(notifications))

    assert unread_count(notifications) == 0


@pytest.mark.unit
def test_mark_all_read_scenario(sample_notifications, fixed_now):
    """Test that three unread notifications all become read."""
    result = mark_all_read(sample_notifications, "user-1", fixed_now)

    assert all(n.is_read for n in result)
    assert unread_count(result) == 0


@pytest.mark.unit
def test_mark_all_read_scoped_to_user(fixed_now):
    """Test that only the user's own and broadcast notifications are marked."""
    own = Notification(**create_notification_data(notification_id="1", user_id="user-1"))
    other = Notification(**create_notification_data(notification_id="2", user_id="user-2"))
    broadcast = Notification(**create_notification_data(notification_id="3", user_id=None))

    result = mark_all_read([own, other, broadcast], "user-1", fixed_now)

    assert [n.is_read for n in result] == [True, False, True]


@pytest.mark.unit
def test_visible_hides_archived(sample_notifications):
    """Test default queries drop archived notifications."""
    notifications = [archive(sample_notifications[0])] + sample_notifications[1:]

    assert len(visible(notifications)) == 2
    assert len(visible(notifications, include_archived=True)) == 3


@pytest.mark.unit
def test_parse_feed_recomputes_unread_count():
    """Test that the server's unreadCount is not trusted."""
    feed = parse_feed(_feed_body(
        create_notification_data(notification_id="1"),
        create_notification_data(notification_id="2", isRead=True),
    ))

    assert feed.total == 2
    assert feed.unread_count == 1


@pytest.mark.unit
def test_parse_feed_rejects_malformed_items():
    """Test that a malformed item is reported as a transport problem."""
    with pytest.raises(NetworkError):
        parse_feed({"notifications": [{"id": "1"}]})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_feed_fetches_and_caches(service, transport):
    """Test that the feed is fetched once per user and cached."""
    transport.add("GET", FEED_PATH, json=_feed_body(create_notification_data(notification_id="1")))

    first = await service.feed("user-1")
    second = await service.feed("user-1")

    assert first.data.unread_count == 1
    assert second.data is first.data
    assert len(transport.calls("GET", FEED_PATH)) == 1
    assert transport.requests[0].url.params["userId"] == "user-1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_feed_filters_are_separate_cache_entries(service, transport, query_cache):
    """Test that each filter set caches its own feed and invalidation reaches all of them."""
    everything = [
        create_notification_data(notification_id="1", category="booking"),
        create_notification_data(notification_id="2", category="report"),
    ]

    def handler(request):
        category = request.url.params.get("category")
        items = [n for n in everything if category is None or n["category"] == category]
        return httpx.Response(200, json=_feed_body(*items))

    transport.add("GET", FEED_PATH, handler=handler)

    full = await service.feed("user-1")
    bookings = await service.feed("user-1", category="booking")
    full_again = await service.feed("user-1")
    all_categories = await service.feed("user-1", category="all")

    assert len(full.data.notifications) == 2
    assert [n.id for n in bookings.data.notifications] == ["1"]
    assert full_again.data is full.data
    assert all_categories.data is full.data
    assert len(transport.calls("GET", FEED_PATH)) == 2
    assert feed_key("user-1", {"category": "booking"}) == (FEED_PATH, "user-1", {"category": "booking"})

    assert query_cache.invalidate(feed_key("user-1")) == 2
    assert query_cache.get_state(feed_key("user-1", {"category": "booking"})).is_stale is True

@pytest.mark.unit
@pytest.mark.asyncio
async def test_feed_requires_user(service):
    """Test that an empty user id is rejected locally."""
    with pytest.raises(ValidationError):
        await service.feed("")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_mark_read_already_read_sends_nothing(service, transport):
    """Test the idempotent short-circuit for already read notifications."""
    transport.add("GET", FEED_PATH, json=_feed_body(create_notification_data(notification_id="1", isRead=True)))
    await service.feed("user-1")

    result = await service.mark_read("1", "user-1")

    assert result.ok is True
    assert transport.calls("PATCH", f"{FEED_PATH}/1/read") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_mark_read_success_updates_and_invalidates(service, transport, query_cache):
    """Test a successful mark_read: request sent, cache updated, key invalidated."""
    transport.add("GET", FEED_PATH, json=_feed_body(create_notification_data(notification_id="1")))
    transport.add("PATCH", f"{FEED_PATH}/1/read", json={"success": True})
    await service.feed("user-1")

    result = await service.mark_read("1", "user-1")

    assert result.ok is True
    request = transport.calls("PATCH", f"{FEED_PATH}/1/read")[0]
    assert request_json(request) == {"userId": "user-1"}
    assert service.cached_notification("1", "user-1").is_read is True
    assert service.unread_count("user-1") == 0
    assert query_cache.get_state(feed_key("user-1")).is_stale is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_mark_read_failure_rolls_back(service, transport, query_cache):
    """Test that a rejected mark_read restores the unread state without invalidating."""
    transport.add("GET", FEED_PATH, json=_feed_body(create_notification_data(notification_id="1")))
    transport.add("PATCH", f"{FEED_PATH}/1/read", status_code=500, json={"message": "db down"})
    await service.feed("user-1")

    result = await service.mark_read("1", "user-1")

    assert_failed_with(result, MutationError)
    assert "db down" in result.error_message
    assert service.cached_notification("1", "user-1").is_read is False
    assert service.unread_count("user-1") == 1
    assert query_cache.get_state(feed_key("user-1")).is_stale is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_mark_all_read_single_request(service, transport, query_cache):
    """Test that mark_all_read sends one request and updates the whole feed."""
    transport.add("GET", FEED_PATH, json=_feed_body(
        *[create_notification_data(notification_id=str(i)) for i in range(1, 4)]
    ))
    transport.add("PATCH", f"{FEED_PATH}/mark-all-read", json={"success": True})
    await service.feed("user-1")

    result = await service.mark_all_read("user-1")

    assert result.ok is True
    assert len(transport.calls("PATCH", f"{FEED_PATH}/mark-all-read")) == 1
    assert service.unread_count("user-1") == 0
    assert query_cache.get_state(feed_key("user-1")).is_stale is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_mark_all_read_failure_changes_nothing(service, transport, query_cache):
    """Test all-or-nothing: a rejected batch leaves every notification unread."""
    transport.add("GET", FEED_PATH, json=_feed_body(
        *[create_notification_data(notification_id=str(i)) for i in range(1, 4)]
    ))
    transport.add("PATCH", f"{FEED_PATH}/mark-all-read", status_code=503, json={"message": "busy"})
    await service.feed("user-1")

    result = await service.mark_all_read("user-1")

    assert_failed_with(result, MutationError)
    assert service.unread_count("user-1") == 3
    assert query_cache.get_state(feed_key("user-1")).is_stale is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_archive_removes_from_unread(service, transport):
    """Test archive: request sent and unread badge drops."""
    transport.add("GET", FEED_PATH, json=_feed_body(create_notification_data(notification_id="1")))
    transport.add("PATCH", f"{FEED_PATH}/1/archive", json={"success": True})
    await service.feed("user-1")

    result = await service.archive("1", "user-1")

    assert result.ok is True
    assert service.cached_notification("1", "user-1").is_archived is True
    assert service.unread_count("user-1") == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_archive_already_archived_sends_nothing(service, transport):
    """Test that archiving twice is a local no-op."""
    transport.add("GET", FEED_PATH, json=_feed_body(create_notification_data(notification_id="1", isArchived=True)))
    await service.feed("user-1")

    result = await service.archive("1", "user-1")

    assert result.ok is True
    assert transport.calls("PATCH", f"{FEED_PATH}/1/archive") == []
