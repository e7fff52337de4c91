"""Cancellable fixed-interval polling with an in-flight guard.

The backend has no push channel, so orders, chat and notifications are all
kept fresh by the same primitive. Each subscription owns one asyncio task that
alternates between fetching and sleeping, which is what guarantees that a
subscription never has two fetches outstanding.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from .metrics_exporter import record_poll_failure, record_poll_fetch, record_skipped_tick
from .sync_logging import log_context

T = TypeVar("T")
logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[T]]
ResultFn = Callable[[T], Any]
ErrorFn = Callable[[Exception], Any]
LivenessFn = Callable[[], bool]


def _always_live() -> bool:
    return True


class PollSubscription(Generic[T]):
    """Handle for one periodic refresh.

    Fetches run back to back on a fixed period measured from the start of
    the previous fetch. A period that elapses while a fetch is outstanding is
    skipped rather than queued; the next fetch then starts as soon as the
    slow one settles.

    Results (and errors) are delivered only while the subscription is still
    the current, live one. A fetch that was in flight across ``stop()`` or a
    live -> not-live change completes normally but its outcome is dropped.
    """

    def __init__(
        self,
        name: str,
        fetch: FetchFn[T],
        interval: float,
        is_live: LivenessFn = _always_live,
        on_result: ResultFn[T] | None = None,
        on_error: ErrorFn | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._fetch = fetch
        self._is_live = is_live
        self._on_result = on_result
        self._on_error = on_error

        self._stopped = False
        self._live = False
        # Bumped on every liveness flip and on stop; a fetch only delivers if
        # the generation it started under is still current.
        self._generation = 0
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

        self.in_flight = False
        self.fetch_count = 0
        self.skipped_ticks = 0

    @property
    def active(self) -> bool:
        return not self._stopped

    @property
    def live(self) -> bool:
        return self._live

    def __repr__(self) -> str:
        return (
            f"PollSubscription(name={self.name!r}, interval={self.interval}, "
            f"active={self.active}, live={self._live}, in_flight={self.in_flight})"
        )

    # ------------------------------------------------------------------
    # Lifecycle (driven by PollLoop)
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll:{self.name}"
        )

    def _stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._live = False
        self._generation += 1
        self._wake.set()
        logger.debug("Poll subscription %s stopped", self.name)

    def _liveness_changed(self) -> bool:
        """Re-evaluate liveness; wake the task if it flipped."""
        live = self._evaluate_liveness()
        if live != self._live:
            self._live = live
            self._generation += 1
            self._wake.set()
            logger.debug(
                "Poll subscription %s %s", self.name, "resumed" if live else "suspended"
            )
        return live

    def _invalidate(self) -> None:
        """Discard any in-flight outcome and fetch again as soon as live."""
        if self._stopped:
            return
        self._generation += 1
        self._wake.set()

    def _evaluate_liveness(self) -> bool:
        if self._stopped:
            return False
        try:
            return bool(self._is_live())
        except Exception:
            logger.exception("Liveness check for %s failed; treating as not live", self.name)
            return False

    def _is_current(self, generation: int) -> bool:
        self._liveness_changed()
        return self._live and generation == self._generation

    async def wait_closed(self) -> None:
        """Wait for the task to finish after ``stop``."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    # ------------------------------------------------------------------
    # Task body
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        with log_context(subscription=self.name):
            while not self._stopped:
                if not self._liveness_changed():
                    self._wake.clear()
                    await self._wake.wait()
                    continue

                generation = self._generation
                started = loop.time()
                await self._fetch_once(generation)

                if generation != self._generation:
                    # Liveness flipped mid-fetch: re-evaluate straight away so
                    # that resuming starts with an immediate fetch.
                    continue

                elapsed = loop.time() - started
                missed = int(elapsed // self.interval)
                if missed:
                    self.skipped_ticks += missed
                    record_skipped_tick(self.name, missed)
                    logger.debug(
                        "Poll %s fetch took %.2fs, skipped %d tick(s)",
                        self.name,
                        elapsed,
                        missed,
                    )

                delay = self.interval - elapsed
                if delay > 0:
                    self._wake.clear()
                    try:
                        await asyncio.wait_for(self._wake.wait(), timeout=delay)
                    except TimeoutError:
                        pass

    async def _fetch_once(self, generation: int) -> None:
        self.in_flight = True
        self.fetch_count += 1
        record_poll_fetch(self.name)
        try:
            result = await self._fetch()
        except Exception as exc:
            self.in_flight = False
            record_poll_failure(self.name)
            if self._is_current(generation):
                await self._deliver(self._on_error, exc)
            else:
                logger.debug("Dropping error from stale %s fetch: %s", self.name, exc)
            return
        finally:
            self.in_flight = False

        if self._is_current(generation):
            await self._deliver(self._on_result, result)
        else:
            logger.debug("Dropping result from stale %s fetch", self.name)

    async def _deliver(self, callback: Callable[[Any], Any] | None, value: Any) -> None:
        if callback is None:
            if isinstance(value, Exception):
                logger.warning("Poll %s fetch failed: %s", self.name, value)
            return
        try:
            outcome = callback(value)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Poll %s callback failed", self.name)


class PollLoop:
    """Owner of every poll subscription running on the current event loop."""

    def __init__(self) -> None:
        self._subscriptions: set[PollSubscription[Any]] = set()

    @property
    def subscriptions(self) -> list[PollSubscription[Any]]:
        return list(self._subscriptions)

    def start(
        self,
        fetch: FetchFn[T],
        interval: float,
        is_live: LivenessFn = _always_live,
        *,
        on_result: ResultFn[T] | None = None,
        on_error: ErrorFn | None = None,
        name: str = "poll",
    ) -> PollSubscription[T]:
        """Start a subscription; the first fetch happens right away if live.

        Must be called from inside the running event loop.
        """
        subscription = PollSubscription(
            name=name,
            fetch=fetch,
            interval=interval,
            is_live=is_live,
            on_result=on_result,
            on_error=on_error,
        )
        self._subscriptions.add(subscription)
        subscription._start()
        logger.info("Started poll subscription %s (every %.1fs)", name, interval)
        return subscription

    def stop(self, subscription: PollSubscription[Any]) -> None:
        """Stop a subscription. Safe to call more than once."""
        self._subscriptions.discard(subscription)
        subscription._stop()

    def stop_all(self) -> None:
        for subscription in list(self._subscriptions):
            self.stop(subscription)

    def notify_liveness_changed(self) -> None:
        """Re-check every subscription after a focus or identity change."""
        for subscription in list(self._subscriptions):
            subscription._liveness_changed()

    def invalidate(self) -> None:
        """Drop in-flight results everywhere and refetch live subscriptions now.

        Used when the identity behind every subscription changes while
        liveness itself stays the same.
        """
        for subscription in list(self._subscriptions):
            subscription._liveness_changed()
            subscription._invalidate()

    async def aclose(self, grace_seconds: float = 1.0) -> None:
        """Stop everything and wait briefly for in-flight fetches to settle.

        Fetches still hung after the grace period are cancelled; this is
        the only place a request is ever hard-cancelled.
        """
        subscriptions = list(self._subscriptions)
        self.stop_all()
        tasks = [s._task for s in subscriptions if s._task is not None and not s._task.done()]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @asynccontextmanager
    async def running(
        self,
        fetch: FetchFn[T],
        interval: float,
        is_live: LivenessFn = _always_live,
        *,
        on_result: ResultFn[T] | None = None,
        on_error: ErrorFn | None = None,
        name: str = "poll",
    ) -> AsyncIterator[PollSubscription[T]]:
        """Scope a subscription to a block; it is stopped however the block exits."""
        subscription = self.start(
            fetch, interval, is_live, on_result=on_result, on_error=on_error, name=name
        )
        try:
            yield subscription
        finally:
            self.stop(subscription)
