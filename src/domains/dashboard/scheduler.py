# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Periodic, coalesced refresh of dashboard snapshots.

Each QueryKey (query name, school code) is refreshed independently. The
first subscriber for a key starts a background loop that fetches
immediately and then every ``interval_seconds``, measured between refresh
starts. Later subscribers share that loop and receive the current state
right away.

Refresh rules:
- Concurrent refresh requests for one key join the in-flight fetch.
  A forced refresh starts a new one; whichever started last wins.
- Results are committed through the SnapshotCache with their start time,
  so a superseded refresh never overwrites newer data.
- A retryable failure keeps the last good data and marks the state stale.
  A non-retryable failure clears the data.
- When the last subscriber leaves, the loop stops and the cached value is
  released. A fetch still in flight finishes and its result is dropped.

Usage:
    scheduler = RefreshScheduler(default_interval_seconds=30)
    key = QueryKey("admin-dashboard-stats", "acme")

    async with scheduler.subscribe(key, lambda: aggregator.compute_stats("acme")) as sub:
        async for state in sub:
            render(state.data, stale=state.is_stale)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Generic, TypeVar

from src.domains.dashboard.cache import InMemorySnapshotCache, QueryKey, SnapshotCache
from src.domains.dashboard.result import Result
from src.infrastructure.cache.redis_client import RedisError
from src.utils.datetime import utc_now
from src.utils.logging import bind_context, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FetchFn = Callable[[], Awaitable[Result[Any]]]

_CLOSED = object()


@dataclass(frozen=True)
class QueryState(Generic[T]):
    """Observable state of one refreshed query.

    Attributes:
        key: The query key.
        data: Last good value, or None.
        error: Error from the latest refresh, or None if it succeeded.
        updated_at: When ``data`` was committed (UTC).
        is_fetching: Whether a refresh is in flight.
    """

    key: QueryKey
    data: T | None = None
    error: BaseException | None = None
    updated_at: datetime | None = None
    is_fetching: bool = False

    @property
    def is_stale(self) -> bool:
        """True when data is shown despite a failed refresh."""
        return self.error is not None and self.data is not None

    @property
    def has_settled(self) -> bool:
        return self.updated_at is not None or self.error is not None


class Subscription(Generic[T]):
    """A subscriber's view of one query.

    Iterate it to receive state updates. If the consumer falls behind, the
    oldest undelivered states are dropped; the latest is always kept.
    """

    def __init__(self, scheduler: "RefreshScheduler", key: QueryKey, max_pending: int = 16) -> None:
        self._scheduler = scheduler
        self.key = key
        self.latest: QueryState[T] | None = None
        self.closed = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_pending)

    def _deliver(self, state: QueryState[T]) -> None:
        if self.closed:
            return
        self.latest = state
        self._push(state)

    def _push(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def _finish(self) -> None:
        if not self.closed:
            self.closed = True
            self._push(_CLOSED)

    async def get(self) -> QueryState[T]:
        """Wait for the next state update.

        Raises:
            StopAsyncIteration: If the subscription was closed.
        """
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> QueryState[T]:
        return await self.get()

    def close(self) -> None:
        """Detach from the scheduler. Safe to call more than once."""
        self._scheduler._detach(self)

    async def __aenter__(self) -> "Subscription[T]":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


@dataclass
class _KeyRunner:
    key: QueryKey
    fetch_fn: FetchFn
    interval_seconds: float
    state: QueryState[Any]
    subscribers: list[Subscription[Any]] = field(default_factory=list)
    loop_task: asyncio.Task[None] | None = None
    in_flight: asyncio.Task[None] | None = None
    settled_started_at: float = float("-inf")
    closed: bool = False


class RefreshScheduler:
    """Keeps subscribed queries fresh, one background loop per key.

    Attributes:
        default_interval_seconds: Refresh period used when subscribe() is
            not given one.
    """

    def __init__(
        self,
        cache: SnapshotCache[Any] | None = None,
        default_interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the scheduler.

        Args:
            cache: Snapshot cache; defaults to a process-local one.
            default_interval_seconds: Refresh period per key.
            clock: Source of refresh start times. Must not go backwards.
        """
        if default_interval_seconds <= 0:
            raise ValueError("default_interval_seconds must be positive")
        self._cache: SnapshotCache[Any] = cache if cache is not None else InMemorySnapshotCache()
        self.default_interval_seconds = default_interval_seconds
        self._clock = clock
        self._runners: dict[QueryKey, _KeyRunner] = {}
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def cache(self) -> SnapshotCache[Any]:
        return self._cache

    def subscribe(
        self,
        key: QueryKey,
        fetch_fn: FetchFn,
        interval_seconds: float | None = None,
    ) -> Subscription[Any]:
        """Subscribe to a query, starting its refresh loop if needed.

        Must be called from a running event loop. When the key already has
        subscribers, the existing fetch function and interval are kept.

        Args:
            key: The query key.
            fetch_fn: Coroutine function returning a Result.
            interval_seconds: Refresh period; defaults to
                default_interval_seconds.

        Returns:
            A Subscription delivering QueryState updates.
        """
        interval = self.default_interval_seconds if interval_seconds is None else interval_seconds
        if interval <= 0:
            raise ValueError("interval_seconds must be positive")

        subscription: Subscription[Any] = Subscription(self, key)
        runner = self._runners.get(key)
        if runner is not None:
            runner.subscribers.append(subscription)
            if runner.state.has_settled:
                subscription._deliver(runner.state)
            return subscription

        runner = _KeyRunner(
            key=key,
            fetch_fn=fetch_fn,
            interval_seconds=interval,
            state=QueryState(key=key),
            subscribers=[subscription],
        )
        self._runners[key] = runner
        runner.loop_task = asyncio.get_running_loop().create_task(
            self._run(runner), name=f"refresh:{key.query_name}:{key.tenant_code}"
        )
        logger.debug("Started refresh loop for %s/%s", key.query_name, key.tenant_code)
        return subscription

    def state(self, key: QueryKey) -> QueryState[Any] | None:
        """Current state of a subscribed key, or None if it has no subscribers."""
        runner = self._runners.get(key)
        return runner.state if runner is not None else None

    def subscriber_count(self, key: QueryKey) -> int:
        runner = self._runners.get(key)
        return len(runner.subscribers) if runner is not None else 0

    async def refetch(self, key: QueryKey, force: bool = False) -> QueryState[Any]:
        """Refresh a subscribed key now.

        Args:
            key: The query key.
            force: Start a new fetch even if one is in flight.

        Returns:
            The key's state once the refresh has settled.

        Raises:
            KeyError: If the key has no subscribers.
        """
        runner = self._runners.get(key)
        if runner is None:
            raise KeyError(f"No subscribers for {key.query_name}/{key.tenant_code}")
        await self._refresh(runner, force=force)
        return runner.state

    async def close(self) -> None:
        """Stop every refresh loop and in-flight fetch."""
        runners = list(self._runners.values())
        self._runners.clear()
        tasks: list[asyncio.Task[Any]] = []
        for runner in runners:
            runner.closed = True
            for subscription in runner.subscribers:
                subscription._finish()
            runner.subscribers.clear()
            if runner.loop_task is not None:
                runner.loop_task.cancel()
                tasks.append(runner.loop_task)
        for task in self._background:
            task.cancel()
            tasks.append(task)
        await asyncio.gather(*tasks, return_exceptions=True)

    # ========== Internals ==========

    async def _run(self, runner: _KeyRunner) -> None:
        loop = asyncio.get_running_loop()
        await self._warm_start(runner)
        # Fixed rate: a refresh that overruns the interval is followed immediately by the next one
        next_at = loop.time()
        while not runner.closed:
            try:
                await self._refresh(runner)
            except Exception as e:
                logger.exception(
                    "Refresh loop of %s/%s failed", runner.key.query_name, runner.key.tenant_code
                )
                if not runner.closed:
                    self._publish(runner, replace(runner.state, error=e, is_fetching=False))
            next_at = max(next_at + runner.interval_seconds, loop.time())
            await asyncio.sleep(next_at - loop.time())

    async def _warm_start(self, runner: _KeyRunner) -> None:
        try:
            entry = await self._cache.get(runner.key)
        except RedisError as e:
            logger.warning("Snapshot cache read failed for %s: %s", runner.key.query_name, e)
            return
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Dropping unreadable snapshot for %s/%s: %r",
                runner.key.query_name,
                runner.key.tenant_code,
                e,
            )
            await self._invalidate(runner.key)
            return
        if entry is None or runner.closed:
            return
        runner.settled_started_at = entry.started_at
        self._publish(
            runner,
            QueryState(key=runner.key, data=entry.value, updated_at=entry.committed_at),
        )

    async def _refresh(self, runner: _KeyRunner, force: bool = False) -> None:
        in_flight = runner.in_flight
        if in_flight is not None and not in_flight.done() and not force:
            await asyncio.shield(in_flight)
            return

        task = asyncio.get_running_loop().create_task(self._execute(runner))
        runner.in_flight = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        await asyncio.shield(task)

    async def _execute(self, runner: _KeyRunner) -> None:
        key = runner.key
        started_at = self._clock()
        bind_context(query=key.query_name, tenant_code=key.tenant_code)
        runner.state = replace(runner.state, is_fetching=True)

        value: Any = None
        error: BaseException | None
        try:
            result = await runner.fetch_fn()
            value, error = result.value, result.error
        except Exception as e:
            logger.exception("Refresh of %s/%s raised", key.query_name, key.tenant_code)
            error = e

        if runner.closed:
            logger.debug("Dropping result for detached %s/%s", key.query_name, key.tenant_code)
            return
        if started_at < runner.settled_started_at:
            logger.info("Discarding superseded refresh of %s/%s", key.query_name, key.tenant_code)
            return

        if error is None:
            await self._commit(runner, value, started_at)
        else:
            await self._fail(runner, error, started_at)

    async def _commit(self, runner: _KeyRunner, value: Any, started_at: float) -> None:
        try:
            committed = await self._cache.put(runner.key, value, started_at)
        except RedisError as e:
            logger.warning("Snapshot cache write failed for %s: %s", runner.key.query_name, e)
            committed = True
        if not committed or runner.closed:
            return
        runner.settled_started_at = started_at
        self._publish(
            runner,
            QueryState(key=runner.key, data=value, updated_at=utc_now()),
        )

    async def _fail(self, runner: _KeyRunner, error: BaseException, started_at: float) -> None:
        retryable = getattr(error, "retryable", True)
        runner.settled_started_at = started_at
        if retryable:
            logger.warning(
                "Refresh of %s/%s failed, keeping last data: %s",
                runner.key.query_name,
                runner.key.tenant_code,
                error,
            )
            self._publish(runner, replace(runner.state, error=error, is_fetching=False))
            return

        logger.warning(
            "Refresh of %s/%s failed, clearing data: %s",
            runner.key.query_name,
            runner.key.tenant_code,
            error,
        )
        self._publish(runner, QueryState(key=runner.key, error=error))
        await self._invalidate(runner.key)

    def _publish(self, runner: _KeyRunner, state: QueryState[Any]) -> None:
        runner.state = state
        for subscription in list(runner.subscribers):
            subscription._deliver(state)

    def _detach(self, subscription: Subscription[Any]) -> None:
        subscription._finish()
        runner = self._runners.get(subscription.key)
        if runner is None or subscription not in runner.subscribers:
            return
        runner.subscribers.remove(subscription)
        if runner.subscribers:
            return

        runner.closed = True
        del self._runners[runner.key]
        if runner.loop_task is not None:
            runner.loop_task.cancel()
        release = asyncio.get_running_loop().create_task(self._release(runner.key))
        self._background.add(release)
        release.add_done_callback(self._background.discard)
        logger.debug("Stopped refresh loop for %s/%s", runner.key.query_name, runner.key.tenant_code)

    async def _release(self, key: QueryKey) -> None:
        if key not in self._runners:
            await self._invalidate(key)

    async def _invalidate(self, key: QueryKey) -> None:
        try:
            await self._cache.invalidate(key)
        except RedisError as e:
            logger.warning("Snapshot cache invalidate failed for %s: %s", key.query_name, e)
