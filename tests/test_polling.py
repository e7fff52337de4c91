"""Tests for the poll loop: scheduling, overlap guard, liveness and stop."""

import asyncio

import pytest

from driver_sync.polling import PollLoop, PollSubscription
from tests.conftest import wait_until


@pytest.fixture
async def poll_loop():
    loop = PollLoop()
    yield loop
    await loop.aclose(grace_seconds=0.1)


@pytest.mark.unit
class TestScheduling:
    async def test_fetches_immediately_on_start(self, poll_loop):
        results = []

        async def fetch():
            return "orders"

        sub = poll_loop.start(fetch, 10.0, on_result=results.append, name="orders")

        await wait_until(lambda: results)
        assert results == ["orders"]
        assert sub.fetch_count == 1

    async def test_refetches_every_interval(self, poll_loop):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1

        poll_loop.start(fetch, 0.05)
        await asyncio.sleep(0.18)

        assert 3 <= calls <= 5

    async def test_slow_fetch_skips_tick_instead_of_queueing(self, poll_loop):
        """interval=0.1, first fetch takes 0.15: second fetch at ~0.15, not 0.1."""
        loop = asyncio.get_running_loop()
        starts: list[float] = []

        async def fetch():
            starts.append(loop.time())
            if len(starts) == 1:
                await asyncio.sleep(0.15)

        sub = poll_loop.start(fetch, 0.1)
        await wait_until(lambda: len(starts) >= 2)

        gap = starts[1] - starts[0]
        assert 0.14 <= gap < 0.2
        assert sub.skipped_ticks == 1

    async def test_never_overlaps(self, poll_loop):
        in_flight = 0
        max_in_flight = 0
        calls = 0

        async def fetch():
            nonlocal in_flight, max_in_flight, calls
            calls += 1
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.03)
            in_flight -= 1

        poll_loop.start(fetch, 0.01)
        await asyncio.sleep(0.2)

        assert calls >= 3
        assert max_in_flight == 1

    def test_rejects_non_positive_interval(self):
        async def fetch():
            return None

        with pytest.raises(ValueError):
            PollSubscription("bad", fetch, 0)


@pytest.mark.unit
class TestFailures:
    async def test_fetch_failure_is_reported_and_loop_continues(self, poll_loop):
        errors = []
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            raise ConnectionError("offline")

        poll_loop.start(fetch, 0.03, on_error=errors.append)
        await wait_until(lambda: calls >= 3)

        assert len(errors) >= 2
        assert all(isinstance(e, ConnectionError) for e in errors)

    async def test_callback_failure_does_not_stop_loop(self, poll_loop):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return calls

        def on_result(value):
            raise RuntimeError("view exploded")

        sub = poll_loop.start(fetch, 0.03, on_result=on_result)
        await wait_until(lambda: calls >= 3)

        assert sub.active

    async def test_async_callbacks_are_awaited(self, poll_loop):
        seen = []

        async def fetch():
            return 1

        async def on_result(value):
            await asyncio.sleep(0)
            seen.append(value)

        poll_loop.start(fetch, 10.0, on_result=on_result)
        await wait_until(lambda: seen)
        assert seen == [1]


@pytest.mark.unit
@pytest.mark.critical
class TestStop:
    async def test_stop_discards_in_flight_result(self, poll_loop):
        release = asyncio.Event()
        results = []

        async def fetch():
            await release.wait()
            return "late"

        sub = poll_loop.start(fetch, 0.05, on_result=results.append)
        await wait_until(lambda: sub.in_flight)

        poll_loop.stop(sub)
        release.set()
        await sub.wait_closed()

        assert results == []
        assert not sub.active
        assert sub.fetch_count == 1

    async def test_stop_discards_in_flight_error(self, poll_loop):
        release = asyncio.Event()
        errors = []

        async def fetch():
            await release.wait()
            raise ConnectionError("late failure")

        sub = poll_loop.start(fetch, 0.05, on_error=errors.append)
        await wait_until(lambda: sub.in_flight)

        poll_loop.stop(sub)
        release.set()
        await sub.wait_closed()

        assert errors == []

    async def test_stop_is_idempotent(self, poll_loop):
        async def fetch():
            return None

        sub = poll_loop.start(fetch, 0.05)
        poll_loop.stop(sub)
        poll_loop.stop(sub)
        await sub.wait_closed()

        assert poll_loop.subscriptions == []

    async def test_no_fetches_after_stop(self, poll_loop):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1

        sub = poll_loop.start(fetch, 0.02)
        await wait_until(lambda: calls >= 1)
        poll_loop.stop(sub)
        await sub.wait_closed()
        stopped_at = calls

        await asyncio.sleep(0.08)
        assert calls == stopped_at

    async def test_running_scope_stops_on_error(self, poll_loop):
        async def fetch():
            return None

        with pytest.raises(RuntimeError):
            async with poll_loop.running(fetch, 0.05, name="scoped") as sub:
                raise RuntimeError("screen crashed")

        assert not sub.active
        assert poll_loop.subscriptions == []

    async def test_aclose_cancels_hung_fetch(self):
        loop = PollLoop()
        hang = asyncio.Event()

        async def fetch():
            await hang.wait()

        sub = loop.start(fetch, 0.05)
        await wait_until(lambda: sub.in_flight)

        await loop.aclose(grace_seconds=0.05)

        assert sub._task.done()


@pytest.mark.unit
class TestLiveness:
    async def test_not_live_does_not_fetch(self, poll_loop):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1

        poll_loop.start(fetch, 0.02, lambda: False)
        await asyncio.sleep(0.08)

        assert calls == 0

    async def test_becoming_live_fetches_immediately(self, poll_loop):
        live = False
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1

        poll_loop.start(fetch, 10.0, lambda: live)
        await asyncio.sleep(0.02)
        assert calls == 0

        live = True
        poll_loop.notify_liveness_changed()
        await wait_until(lambda: calls == 1)

    async def test_losing_liveness_mid_fetch_discards_and_suspends(self, poll_loop):
        live = True
        release = asyncio.Event()
        results = []
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return calls

        sub = poll_loop.start(fetch, 0.02, lambda: live, on_result=results.append)
        await wait_until(lambda: sub.in_flight)

        live = False
        poll_loop.notify_liveness_changed()
        release.set()
        await asyncio.sleep(0.08)

        assert results == []
        assert calls == 1
        assert not sub.live

        live = True
        poll_loop.notify_liveness_changed()
        await wait_until(lambda: results)
        assert results[0] == 2

    async def test_liveness_checked_on_each_tick(self, poll_loop):
        """A predicate that flips without notification is seen on the next tick."""
        live = True
        calls = 0

        async def fetch():
            nonlocal calls, live
            calls += 1
            live = False

        poll_loop.start(fetch, 0.02, lambda: live)
        await asyncio.sleep(0.1)

        assert calls == 1

    async def test_raising_predicate_counts_as_not_live(self, poll_loop):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1

        def broken():
            raise RuntimeError("no view")

        poll_loop.start(fetch, 0.02, broken)
        await asyncio.sleep(0.06)

        assert calls == 0


@pytest.mark.unit
class TestInvalidate:
    async def test_invalidate_drops_in_flight_result_and_refetches(self, poll_loop):
        release = asyncio.Event()
        results = []
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            if calls == 1:
                await release.wait()
                return "old identity"
            return "new identity"

        sub = poll_loop.start(fetch, 10.0, on_result=results.append)
        await wait_until(lambda: sub.in_flight)

        poll_loop.invalidate()
        release.set()

        await wait_until(lambda: results == ["new identity"])
        assert sub.fetch_count == 2

    async def test_invalidate_wakes_sleeping_subscription(self, poll_loop):
        results = []

        async def fetch():
            return len(results)

        poll_loop.start(fetch, 10.0, on_result=results.append)
        await wait_until(lambda: results == [0])

        poll_loop.invalidate()

        await wait_until(lambda: results == [0, 1])

    async def test_invalidate_does_not_wake_suspended_subscription(self, poll_loop):
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1

        poll_loop.start(fetch, 0.02, lambda: False)
        poll_loop.invalidate()
        await asyncio.sleep(0.05)

        assert calls == 0
