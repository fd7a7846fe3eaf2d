"""Collection query cache - coalesced fetches, stale-while-revalidate, invalidation.

One QueryCache is created per app instance and closed on shutdown. Every
collection a view shows is fetched through `query()` under a cache key
(e.g. ("/api/leads",) or ("/api/notifications", user_id)). Writes go
through `mutate()`, which invalidates only the keys the caller names.
"""

import asyncio
import inspect
import time
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict

from ownitright.models.result import OperationResult
from ownitright.utils.config import ClientConfig
from ownitright.utils.errors import NetworkError, NotFoundError, OwnItRightError, ValidationError
from ownitright.utils.logging import format_cache_key, get_structured_logger, log_timing

logger = get_structured_logger(__name__)

CacheKey = tuple
KeyLike = Union[tuple, list, str]
Fetcher = Callable[[], Awaitable[Any]]
Updater = Callable[[Any], Any]


def normalize_key(key: KeyLike) -> CacheKey:
    """Turn a list/str/tuple key into a hashable tuple."""
    if isinstance(key, str):
        return (key,)
    if isinstance(key, (list, tuple)):
        parts = []
        for part in key:
            if isinstance(part, Mapping):
                part = tuple(sorted((str(k), v) for k, v in part.items()))
            elif isinstance(part, list):
                part = tuple(part)
            parts.append(part)
        return tuple(parts)
    raise ValidationError(f"Unsupported cache key type {type(key).__name__}", field="key")


def key_matches(key: CacheKey, prefix: CacheKey, exact: bool = False) -> bool:
    if exact:
        return key == prefix
    return key[:len(prefix)] == prefix


class QueryState(BaseModel):
    """What a view renders: data plus loading/error flags."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    key: tuple
    data: Any = None
    error: Optional[OwnItRightError] = None
    is_loading: bool = False
    is_fetching: bool = False
    is_stale: bool = False
    updated_at: Optional[float] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class _CacheEntry:
    """Mutable per-key slot; only touched from the event loop thread."""

    def __init__(self, key: CacheKey):
        self.key = key
        self.data: Any = None
        self.has_data = False
        self.error: Optional[OwnItRightError] = None
        self.updated_at: Optional[float] = None
        self.invalidated = False
        self.generation = 0
        self.task: Optional[asyncio.Task] = None
        self.fetcher: Optional[Fetcher] = None

    @property
    def is_fetching(self) -> bool:
        return self.task is not None and not self.task.done()


class _Snapshot:
    def __init__(self, key: CacheKey, entry: Optional[_CacheEntry]):
        self.key = key
        self.existed = entry is not None
        self.data = entry.data if entry else None
        self.has_data = entry.has_data if entry else False
        self.updated_at = entry.updated_at if entry else None


class Subscription:
    """A mounted consumer of one cache key, optionally polling on an interval."""

    def __init__(
        self,
        cache: "QueryCache",
        key: CacheKey,
        fetcher: Fetcher,
        refetch_interval: Optional[float] = None,
        on_change: Optional[Callable[[QueryState], Any]] = None,
        stale_time: Optional[float] = None,
    ):
        self.key = key
        self.refetch_interval = refetch_interval
        self.state: Optional[QueryState] = None
        self._cache = cache
        self._fetcher = fetcher
        self._on_change = on_change
        self._stale_time = stale_time
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "Subscription":
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def refresh(self) -> None:
        """Ask for an immediate refetch (used by invalidation)."""
        self._wake.set()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel and wait until the polling task has finished."""
        self.cancel()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False

    async def _emit(self, state: QueryState) -> None:
        self.state = state
        if self._on_change is None:
            return
        result = self._on_change(state)
        if inspect.isawaitable(result):
            await result

    async def _wait_for_tick(self) -> None:
        if self.refetch_interval is None:
            await self._wake.wait()
        else:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.refetch_interval)
            except asyncio.TimeoutError:
                pass
        self._wake.clear()

    async def _load(self, log, initial: bool) -> None:
        """One query or refetch; failures are logged and the subscription keeps going."""
        try:
            if initial:
                state = await self._cache.query(self.key, self._fetcher, stale_time=self._stale_time)
                await self._emit(state)
                if not state.is_fetching:
                    return
                state = await self._cache.wait_for_fetch(self.key, stale_time=self._stale_time)
            else:
                state = await self._cache.refetch(self.key, self._fetcher, stale_time=self._stale_time)
            await self._emit(state)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(
                "Subscription load failed" if initial else "Subscription refresh failed",
                error=str(e),
                exc_info=True
            )

    async def _run(self) -> None:
        log = logger.bind(cache_key=format_cache_key(self.key))
        try:
            await self._load(log, initial=True)
            while True:
                await self._wait_for_tick()
                await self._load(log, initial=False)
        finally:
            self._cache._subscriptions.discard(self)
            log.debug("Subscription stopped")


class QueryCache:
    """Per-app cache of remote collections keyed by cache key."""

    def __init__(
        self,
        stale_time: Optional[float] = None,
        retry: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_time = stale_time if stale_time is not None else ClientConfig.QUERY_STALE_TIME_SECONDS
        self.retry = retry if retry is not None else ClientConfig.QUERY_RETRY_COUNT
        self._clock = clock
        self._entries: dict[CacheKey, _CacheEntry] = {}
        self._subscriptions: set[Subscription] = set()
        self._closed = False
        logger.info(
            "QueryCache initialized",
            stale_time_seconds=self.stale_time,
            retry_count=self.retry
        )

    async def __aenter__(self) -> "QueryCache":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # --- Reads ---

    async def query(
        self,
        key: KeyLike,
        fetcher: Fetcher,
        stale_time: Optional[float] = None,
        retry: Optional[int] = None,
    ) -> QueryState:
        """
        Return the cached collection for key, fetching it when needed.

        Fresh data is served as-is. Stale data is served immediately while a
        background refetch runs. Without data the caller waits for the fetch,
        which is shared with any concurrent caller of the same key.
        """
        key = normalize_key(key)
        stale_time = self.stale_time if stale_time is None else stale_time
        entry = self._get_or_create(key)
        entry.fetcher = fetcher

        if entry.has_data:
            if self._is_stale(entry, stale_time):
                logger.debug("Serving stale data while revalidating", cache_key=format_cache_key(key))
                self._start_fetch(entry, fetcher, retry)
            else:
                logger.debug("Query cache hit", cache_key=format_cache_key(key))
            return self._state(entry, stale_time)

        task = self._start_fetch(entry, fetcher, retry)
        await asyncio.shield(task)
        return self._state(entry, stale_time)

    async def refetch(self, key: KeyLike, fetcher: Optional[Fetcher] = None,
                      retry: Optional[int] = None, stale_time: Optional[float] = None) -> QueryState:
        """Force a fetch (still coalesced with one already in flight)."""
        key = normalize_key(key)
        entry = self._get_or_create(key)
        fetcher = fetcher or entry.fetcher
        if fetcher is None:
            raise NotFoundError(f"No fetcher registered for {format_cache_key(key)}")
        entry.fetcher = fetcher
        task = self._start_fetch(entry, fetcher, retry)
        await asyncio.shield(task)
        return self._state(entry, self.stale_time if stale_time is None else stale_time)

    async def wait_for_fetch(self, key: KeyLike, stale_time: Optional[float] = None) -> QueryState:
        """Wait for the in-flight fetch of key, if any, and return the new state."""
        key = normalize_key(key)
        entry = self._get_or_create(key)
        if entry.is_fetching:
            await asyncio.shield(entry.task)
        return self._state(entry, self.stale_time if stale_time is None else stale_time)

    def get_state(self, key: KeyLike) -> QueryState:
        key = normalize_key(key)
        entry = self._entries.get(key)
        if entry is None:
            return QueryState(key=key, is_stale=True)
        return self._state(entry, self.stale_time)

    def get_query_data(self, key: KeyLike) -> Any:
        entry = self._entries.get(normalize_key(key))
        return entry.data if entry is not None else None

    def set_query_data(self, key: KeyLike, data_or_updater: Union[Any, Updater]) -> Any:
        """Replace cached data; a callable receives the current data and returns the new."""
        key = normalize_key(key)
        entry = self._get_or_create(key)
        if callable(data_or_updater):
            data = data_or_updater(entry.data)
        else:
            data = data_or_updater
        entry.data = data
        entry.has_data = True
        entry.updated_at = self._clock()
        return data

    # --- Invalidation ---

    def invalidate(self, key: KeyLike, exact: bool = False) -> int:
        """Mark every entry under key stale; mounted subscribers refetch now."""
        prefix = normalize_key(key)
        count = 0
        for entry_key, entry in self._entries.items():
            if key_matches(entry_key, prefix, exact):
                entry.invalidated = True
                entry.generation += 1
                count += 1

        for subscription in list(self._subscriptions):
            if key_matches(subscription.key, prefix, exact):
                subscription.refresh()

        logger.info(
            "Invalidated queries",
            cache_key=format_cache_key(prefix),
            exact=exact,
            invalidated_count=count
        )
        return count

    def remove(self, key: KeyLike) -> None:
        entry = self._entries.pop(normalize_key(key), None)
        if entry is not None and entry.is_fetching:
            entry.task.cancel()

    def clear(self) -> None:
        for entry in self._entries.values():
            if entry.is_fetching:
                entry.task.cancel()
        self._entries.clear()

    # --- Writes ---

    async def mutate(
        self,
        mutation_fn: Callable[[], Awaitable[Any]],
        invalidate: Iterable[KeyLike] = (),
        optimistic: Optional[tuple[KeyLike, Updater]] = None,
    ) -> OperationResult:
        """
        Run a write once and report the outcome as an OperationResult.

        On success the given keys are invalidated; nothing else is. On failure
        the optimistic update (if any) is rolled back and no key is
        invalidated, so the view keeps showing what the server last said.
        """
        snapshot = None
        if optimistic is not None:
            optimistic_key, updater = optimistic
            optimistic_key = normalize_key(optimistic_key)
            snapshot = _Snapshot(optimistic_key, self._entries.get(optimistic_key))
            if snapshot.has_data:
                self.set_query_data(optimistic_key, updater)

        try:
            with log_timing("mutation", logger=logger):
                data = await mutation_fn()
        except OwnItRightError as e:
            if snapshot is not None:
                self._restore(snapshot)
            logger.warning(
                "Mutation failed",
                error=str(e),
                error_type=type(e).__name__,
                rolled_back=snapshot is not None and snapshot.has_data
            )
            return OperationResult.failure(e)
        except BaseException:
            if snapshot is not None:
                self._restore(snapshot)
            raise

        for key in invalidate:
            self.invalidate(key)
        return OperationResult.success(data)

    # --- Subscriptions ---

    def subscribe(
        self,
        key: KeyLike,
        fetcher: Fetcher,
        refetch_interval: Optional[float] = None,
        on_change: Optional[Callable[[QueryState], Any]] = None,
        stale_time: Optional[float] = None,
    ) -> Subscription:
        """Mount a consumer; with refetch_interval it polls until cancelled."""
        if self._closed:
            raise RuntimeError("QueryCache is closed")
        subscription = Subscription(
            self,
            normalize_key(key),
            fetcher,
            refetch_interval=refetch_interval,
            on_change=on_change,
            stale_time=stale_time,
        )
        self._subscriptions.add(subscription)
        logger.debug(
            "Subscription started",
            cache_key=format_cache_key(subscription.key),
            refetch_interval_seconds=refetch_interval
        )
        return subscription.start()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def close(self) -> None:
        """Stop every subscription and in-flight fetch."""
        self._closed = True
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            await subscription.stop()

        tasks = [entry.task for entry in self._entries.values() if entry.is_fetching]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._entries.clear()
        logger.info("QueryCache closed", subscriptions_stopped=len(subscriptions))

    # --- Internals ---

    def _get_or_create(self, key: CacheKey) -> _CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = _CacheEntry(key)
            self._entries[key] = entry
        return entry

    def _is_stale(self, entry: _CacheEntry, stale_time: float) -> bool:
        if not entry.has_data or entry.invalidated:
            return True
        return self._clock() - entry.updated_at >= stale_time

    def _state(self, entry: _CacheEntry, stale_time: float) -> QueryState:
        return QueryState(
            key=entry.key,
            data=entry.data,
            error=entry.error,
            is_loading=not entry.has_data and entry.is_fetching,
            is_fetching=entry.is_fetching,
            is_stale=self._is_stale(entry, stale_time),
            updated_at=entry.updated_at,
        )

    def _start_fetch(self, entry: _CacheEntry, fetcher: Fetcher, retry: Optional[int]) -> asyncio.Task:
        if entry.is_fetching:
            logger.debug("Joining in-flight fetch", cache_key=format_cache_key(entry.key))
            return entry.task
        if self._closed:
            raise RuntimeError("QueryCache is closed")

        retry = self.retry if retry is None else retry
        task = asyncio.get_running_loop().create_task(self._run_fetch(entry, fetcher, retry))
        entry.task = task
        task.add_done_callback(partial(self._on_fetch_done, entry))
        return task

    async def _run_fetch(self, entry: _CacheEntry, fetcher: Fetcher, retry: int) -> None:
        cache_key = format_cache_key(entry.key)
        generation = entry.generation
        attempts = max(retry, 0) + 1

        for attempt in range(1, attempts + 1):
            try:
                with log_timing("query_fetch", logger=logger, cache_key=cache_key, attempt=attempt):
                    data = await fetcher()
            except NetworkError as e:
                if attempt < attempts:
                    logger.warning(
                        "Query fetch failed, retrying",
                        cache_key=cache_key,
                        attempt=attempt,
                        error=str(e)
                    )
                    continue
                self._record_error(entry, e)
                return
            except OwnItRightError as e:
                self._record_error(entry, e)
                return

            entry.data = data
            entry.has_data = True
            entry.error = None
            entry.updated_at = self._clock()
            # Invalidated mid-flight: this result may predate the write
            entry.invalidated = entry.generation != generation
            return

    def _record_error(self, entry: _CacheEntry, error: OwnItRightError) -> None:
        entry.error = error
        logger.warning(
            "Query failed",
            cache_key=format_cache_key(entry.key),
            error=str(error),
            error_type=type(error).__name__,
            has_stale_data=entry.has_data
        )

    def _on_fetch_done(self, entry: _CacheEntry, task: asyncio.Task) -> None:
        if entry.task is task:
            entry.task = None
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Unexpected error during query fetch",
                cache_key=format_cache_key(entry.key),
                error=str(error),
                error_type=type(error).__name__
            )

    def _restore(self, snapshot: _Snapshot) -> None:
        if not snapshot.existed:
            self._entries.pop(snapshot.key, None)
            return
        entry = self._get_or_create(snapshot.key)
        entry.data = snapshot.data
        entry.has_data = snapshot.has_data
        entry.updated_at = snapshot.updated_at
        logger.info("Rolled back optimistic update", cache_key=format_cache_key(snapshot.key))
