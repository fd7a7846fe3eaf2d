"""Notification read/unread/archived state machine.

    unread --mark_read--> read --archive--> archived
      |                                        ^
      +---------------archive------------------+

Archived is terminal. The pure transition functions never mutate their
input; `NotificationService` binds them to the query cache and the REST
backend with optimistic updates.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from ownitright.models.notification import Notification, NotificationFeed
from ownitright.models.registry import parse_record
from ownitright.models.result import OperationResult
from ownitright.models.status import NotificationStatus
from ownitright.services.query_cache import QueryCache, QueryState, Subscription
from ownitright.services.rest_client import RestClient, clean_params
from ownitright.utils.config import ClientConfig
from ownitright.utils.errors import NetworkError, ValidationError
from ownitright.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

NOTIFICATIONS_PATH = "/api/notifications"


def mark_read(notification: Notification, now: Optional[datetime] = None) -> Notification:
    """unread -> read, stamping read_at. Read or archived input is returned unchanged."""
    if notification.status != NotificationStatus.UNREAD:
        return notification
    return notification.model_copy(update={
        "is_read": True,
        "read_at": now or datetime.now(timezone.utc),
    })


def archive(notification: Notification) -> Notification:
    if notification.is_archived:
        return notification
    return notification.model_copy(update={"is_archived": True})


def mark_all_read(notifications: Iterable[Notification], user_id: str,
                  now: Optional[datetime] = None) -> list[Notification]:
    """Mark every unread notification addressed to user_id (own or broadcast) read."""
    now = now or datetime.now(timezone.utc)
    return [
        mark_read(n, now) if n.is_addressed_to(user_id) else n
        for n in notifications
    ]


def unread_count(notifications: Iterable[Notification]) -> int:
    return sum(1 for n in notifications if n.status == NotificationStatus.UNREAD)


def visible(notifications: Iterable[Notification], include_archived: bool = False) -> list[Notification]:
    return [n for n in notifications if include_archived or not n.is_archived]


def feed_key(user_id: str, filters: Optional[Mapping[str, Any]] = None) -> tuple:
    """Cache key of a user's feed; each filter set is its own collection under it."""
    params = clean_params(filters)
    if not params:
        return (NOTIFICATIONS_PATH, user_id)
    return (NOTIFICATIONS_PATH, user_id, params)


def parse_feed(body: Any) -> NotificationFeed:
    """Parse GET /api/notifications; the server's unreadCount is not trusted."""
    if isinstance(body, list):
        items = body
        total = len(body)
    elif isinstance(body, dict):
        items = body.get("notifications") or []
        total = body.get("total", len(items))
    else:
        raise NetworkError("Unexpected notifications response")

    try:
        notifications = tuple(parse_record(item, kind="notification") for item in items)
    except ValidationError as e:
        raise NetworkError(f"Malformed notification in response: {e}") from e
    return NotificationFeed(notifications=notifications, total=total)


class NotificationService:
    """Notification feed for one app instance, kept in the query cache per user."""

    def __init__(self, cache: QueryCache, client: RestClient):
        self.cache = cache
        self.client = client

    def _fetcher(self, user_id: str, filters: dict[str, Any]) -> Callable:
        async def fetch() -> NotificationFeed:
            params = {"userId": user_id, "limit": ClientConfig.NOTIFICATION_PAGE_SIZE}
            params.update(filters)
            body = await self.client.get(NOTIFICATIONS_PATH, params=params)
            return parse_feed(body)
        return fetch

    async def feed(self, user_id: str, **filters: Any) -> QueryState:
        """Cached feed for user_id; filters (category, isRead, ...) go to the query string."""
        if not user_id:
            raise ValidationError("user_id is required", field="user_id")
        return await self.cache.query(feed_key(user_id, filters), self._fetcher(user_id, filters))

    def cached_notification(self, notification_id: str, user_id: str) -> Optional[Notification]:
        feed = self.cache.get_query_data(feed_key(user_id))
        if feed is None:
            return None
        return feed.find(notification_id)

    def _update_one(self, notification_id: str, transition: Callable[[Notification], Notification]):
        def updater(feed: Optional[NotificationFeed]) -> Optional[NotificationFeed]:
            if feed is None:
                return feed
            return feed.replace(
                transition(n) if n.id == notification_id else n
                for n in feed.notifications
            )
        return updater

    async def mark_read(self, notification_id: str, user_id: str) -> OperationResult:
        """
        Mark one notification read.

        A notification already read or archived in the cached feed needs no
        request. Otherwise the feed is updated optimistically and rolled back
        if the backend rejects the write.
        """
        cached = self.cached_notification(notification_id, user_id)
        if cached is not None and cached.status != NotificationStatus.UNREAD:
            logger.debug("Notification already read", notification_id=notification_id)
            return OperationResult.success(cached)

        now = datetime.now(timezone.utc)

        async def send():
            return await self.client.patch(
                f"{NOTIFICATIONS_PATH}/{notification_id}/read",
                json={"userId": user_id},
            )

        result = await self.cache.mutate(
            send,
            invalidate=[feed_key(user_id)],
            optimistic=(feed_key(user_id), self._update_one(notification_id, lambda n: mark_read(n, now))),
        )
        logger.info(
            "Mark notification read",
            notification_id=notification_id,
            user_id=mask_user_id(user_id),
            success=result.ok
        )
        return result

    async def mark_all_read(self, user_id: str) -> OperationResult:
        """
        Mark every unread notification read in one request; all or nothing.

        The cached feed changes in a single step only after the backend
        accepted the batch, then it is invalidated.
        """
        async def send():
            return await self.client.patch(
                f"{NOTIFICATIONS_PATH}/mark-all-read",
                json={"userId": user_id},
            )

        result = await self.cache.mutate(send)
        if result.ok:
            now = datetime.now(timezone.utc)
            if self.cache.get_query_data(feed_key(user_id)) is not None:
                self.cache.set_query_data(
                    feed_key(user_id),
                    lambda feed: feed.replace(mark_all_read(feed.notifications, user_id, now)),
                )
            self.cache.invalidate(feed_key(user_id))
        logger.info("Mark all notifications read", user_id=mask_user_id(user_id), success=result.ok)
        return result

    async def archive(self, notification_id: str, user_id: str) -> OperationResult:
        cached = self.cached_notification(notification_id, user_id)
        if cached is not None and cached.is_archived:
            return OperationResult.success(cached)

        async def send():
            return await self.client.patch(
                f"{NOTIFICATIONS_PATH}/{notification_id}/archive",
                json={"userId": user_id},
            )

        result = await self.cache.mutate(
            send,
            invalidate=[feed_key(user_id)],
            optimistic=(feed_key(user_id), self._update_one(notification_id, archive)),
        )
        logger.info(
            "Archive notification",
            notification_id=notification_id,
            user_id=mask_user_id(user_id),
            success=result.ok
        )
        return result

    def unread_count(self, user_id: str) -> int:
        """Unread badge count from the cached feed (0 before the first fetch)."""
        feed = self.cache.get_query_data(feed_key(user_id))
        if feed is None:
            return 0
        return feed.unread_count

    def watch(self, user_id: str, on_change: Optional[Callable[[QueryState], Any]] = None,
              interval: Optional[float] = None, **filters: Any) -> Subscription:
        """Poll the feed (the notification bell) until the subscription is cancelled."""
        if not user_id:
            raise ValidationError("user_id is required", field="user_id")
        interval = ClientConfig.NOTIFICATION_POLL_SECONDS if interval is None else interval
        return self.cache.subscribe(
            feed_key(user_id, filters),
            self._fetcher(user_id, filters),
            refetch_interval=interval,
            on_change=on_change,
        )
