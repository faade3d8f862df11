"""Serial request queue for quota-limited upstream APIs.

Callers enqueue keys (e.g. place ids) from anywhere on the event loop. A
single drain task dispatches them one at a time, FIFO, keeping at least
`min_interval_ms` between upstream calls, and settles each caller's future
independently. Successful responses are cached for a short TTL so repeated
lookups are answered without touching the upstream; failures are never
cached.

One queue instance per upstream integration. Instances share nothing.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

from quotaguard.domain.events.api_events import (
    ApiCallDeferred,
    CacheHit,
    EventListener,
    RequestEnqueued,
    dispatch_event,
)
from quotaguard.domain.exceptions import QueueTimeoutError
from quotaguard.domain.interfaces.cache import CacheService
from quotaguard.domain.interfaces.upstream import UpstreamFetcher
from quotaguard.domain.models.common import (
    Clock,
    QueueEntry,
    QueueStatus,
    RequestKey,
    RetryPolicy,
)
from quotaguard.infrastructure.cache.caching_service import CachingServiceImpl
from quotaguard.infrastructure.resilience.api_retry import ApiRetryService, Sleep

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_MS = 1000
DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000
DEFAULT_CACHE_MAX_ITEMS = 500


class SerialRequestQueue:
    """Rate-limited, deduplicating dispatcher for one upstream API."""

    def __init__(
        self,
        fetcher: UpstreamFetcher,
        retry_service: Optional[ApiRetryService] = None,
        retry_policy: Optional[RetryPolicy] = None,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
        cache: Optional[CacheService] = None,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        cache_max_items: int = DEFAULT_CACHE_MAX_ITEMS,
        coalesce: bool = False,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        name: str = "default",
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the queue.

        Args:
            fetcher: Async callable performing one upstream request for a key.
            retry_service: Executor wrapping each dispatch; one sharing this
                queue's sleep is created when omitted.
            retry_policy: Policy passed to the executor for each dispatch.
            min_interval_ms: Minimum spacing between upstream calls.
            cache: Cache for successful responses; a bounded one is created
                from `cache_ttl_ms`/`cache_max_items` when omitted.
            coalesce: When True, enqueues for a key that is already pending
                or in flight wait on that request instead of dispatching
                again. Every caller still gets its own future.
            clock: Monotonic time source in seconds.
            sleep: Awaitable sleep taking seconds.
            name: Label used in logs and events.
            event_listener: Optional callable receiving domain events.
        """
        if min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0.")
        self.fetcher = fetcher
        self.name = name
        self.min_interval_ms = min_interval_ms
        self.retry_policy = retry_policy
        self.coalesce = coalesce
        self.event_listener = event_listener
        self._clock = clock
        self._sleep = sleep
        if retry_service is None:
            retry_service = ApiRetryService(policy=retry_policy, sleep=sleep, event_listener=event_listener)
        self.retry_service = retry_service
        if cache is None:
            cache = CachingServiceImpl(max_items=cache_max_items, ttl_seconds=cache_ttl_ms / 1000, clock=clock)
        self._cache = cache

        self._pending: Deque[QueueEntry] = deque()
        self._in_flight: Dict[RequestKey, QueueEntry] = {}
        self._is_draining = False
        self._last_dispatch_at: Optional[float] = None
        self._drain_task: Optional["asyncio.Task[None]"] = None

        logger.info(
            f"SerialRequestQueue '{name}' initialized: min_interval={min_interval_ms}ms, "
            f"cache={type(self._cache).__name__}, coalesce={coalesce}"
        )

    # --- Public API ---

    def enqueue(self, key: str) -> "asyncio.Future[Any]":
        """Schedules a request for `key` and returns a future for its result.

        A fresh cache entry short-circuits the queue: the returned future is
        already resolved and no upstream call is made. The future belongs to
        this caller alone; cancelling it never affects other callers of the
        same key. Must be called from a running event loop.
        """
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string.")
        loop = asyncio.get_running_loop()
        request_key = RequestKey(key)

        cached = self._cache.get_entry(request_key)
        if cached is not None:
            logger.debug(f"[{self.name}] Cache hit for key: {key}")
            dispatch_event(self.event_listener, CacheHit(queue_name=self.name, key=key))
            future: "asyncio.Future[Any]" = loop.create_future()
            future.set_result(cached.value)
            return future

        if self.coalesce:
            shared = self._in_flight.get(request_key)
            if shared is not None:
                logger.debug(f"[{self.name}] Joining in-flight request for key: {key}")
                return shared.add_waiter(loop.create_future())

        entry = QueueEntry(key=request_key, enqueued_at=self._clock())
        future = entry.add_waiter(loop.create_future())
        self._pending.append(entry)
        if self.coalesce:
            self._in_flight[request_key] = entry
        dispatch_event(self.event_listener, RequestEnqueued(
            queue_name=self.name, key=key, queue_length=len(self._pending),
        ))
        logger.debug(f"[{self.name}] Enqueued key: {key} (queue length {len(self._pending)})")

        if not self._is_draining:
            self._is_draining = True
            self._drain_task = loop.create_task(self._drain())
        return future

    async def request(self, key: str, timeout: Optional[float] = None) -> Any:
        """Enqueues `key` and waits for its result.

        Args:
            key: Resource identifier.
            timeout: Seconds to wait. On expiry only this caller gives up;
                the dispatch still runs and fills the cache for later callers.

        Raises:
            QueueTimeoutError: If `timeout` elapses first.
        """
        future = self.enqueue(key)
        if timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] Caller stopped waiting for '{key}' after {timeout:.2f}s")
            raise QueueTimeoutError(key, timeout) from None

    def clear_cache(self) -> None:
        """Empties the response cache. Pending requests are untouched."""
        self._cache.clear()

    def get_status(self) -> QueueStatus:
        """Returns a read-only snapshot of the queue state."""
        return QueueStatus(
            queue_length=len(self._pending),
            is_draining=self._is_draining,
            last_dispatch_at=self._last_dispatch_at,
            cache_size=len(self._cache),
            in_flight=len(self._in_flight),
        )

    async def join(self) -> None:
        """Waits until the queue is idle, however the drain task ended."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.wait([self._drain_task])

    async def aclose(self) -> None:
        """Stops the drain task and cancels every pending caller."""
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        while self._pending:
            self._pending.popleft().cancel()
        self._in_flight.clear()
        self._is_draining = False

    # --- Drain loop ---

    def _required_wait(self) -> float:
        if self._last_dispatch_at is None:
            return 0.0
        elapsed = self._clock() - self._last_dispatch_at
        return max(0.0, self.min_interval_ms / 1000 - elapsed)

    async def _drain(self) -> None:
        logger.debug(f"[{self.name}] Drain loop started")
        try:
            while self._pending:
                wait = self._required_wait()
                if wait > 0:
                    dispatch_event(self.event_listener, ApiCallDeferred(endpoint=self.name, wait_time_seconds=wait))
                    logger.debug(f"[{self.name}] Spacing dispatch by {wait:.3f}s")
                    await self._sleep(wait)
                entry = self._pending.popleft()
                await self._dispatch(entry)
        finally:
            self._is_draining = False
            logger.debug(f"[{self.name}] Drain loop idle")

    async def _dispatch(self, entry: QueueEntry) -> None:
        key = entry.key
        try:
            value = await self.retry_service.execute_with_retry(
                lambda: self.fetcher(key),
                policy=self.retry_policy,
                endpoint_name=f"{self.name}:{key}",
            )
        except asyncio.CancelledError:
            entry.cancel()
            raise
        except Exception as e:
            logger.warning(f"[{self.name}] Request for '{key}' failed: {e}")
            entry.reject(e)
        else:
            self._cache.set(key, value)
            entry.resolve(value)
        finally:
            self._last_dispatch_at = self._clock()
            if self._in_flight.get(key) is entry:
                del self._in_flight[key]
