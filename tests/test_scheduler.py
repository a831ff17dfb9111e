"""Tests for the scheduler loop and interval ticker."""

import asyncio

import pytest

from headsync.common.errors import ConfigError, TransportError
from headsync.storage.memory_backend import MemoryStore
from headsync.sync.observer import MetricsObserver, ObserverGroup, SyncObserver
from headsync.sync.scheduler import IntervalTicker, SchedulerLoop, run_syncers
from headsync.sync.syncer import Syncer

from tests.fixtures import FakeNodeClient, make_entry


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TrackingSyncer(Syncer):
    """Records pass overlap and the start height each pass was given."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.active = 0
        self.max_active = 0
        self.starts = []

    async def bump(self, start_height=None, stop_event=None):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.starts.append(start_height)
        try:
            return await super().bump(start_height, stop_event)
        finally:
            self.active -= 1


# ---------------------------------------------------------------------------
# IntervalTicker
# ---------------------------------------------------------------------------

class TestIntervalTicker:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ConfigError):
            IntervalTicker(0)
        with pytest.raises(ConfigError):
            IntervalTicker(-1.5)
        with pytest.raises(ConfigError):
            IntervalTicker(float("nan"))
        with pytest.raises(ConfigError):
            IntervalTicker(float("inf"))

    @pytest.mark.asyncio
    async def test_first_tick_is_immediate(self):
        clock = FakeClock()
        ticker = IntervalTicker(5.0, clock=clock)
        assert ticker.delay() == 0.0
        assert await ticker.wait(asyncio.Event()) is True
        assert ticker.delay() == 5.0

    @pytest.mark.asyncio
    async def test_delay_shrinks_with_elapsed_time(self):
        clock = FakeClock()
        ticker = IntervalTicker(5.0, clock=clock)
        await ticker.wait(asyncio.Event())
        clock.now += 2.0
        assert ticker.delay() == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_overrun_ticks_immediately_then_reschedules(self):
        clock = FakeClock()
        ticker = IntervalTicker(5.0, clock=clock)
        await ticker.wait(asyncio.Event())
        clock.now += 17.0  # pass overran three intervals
        assert ticker.delay() == 0.0
        assert await ticker.wait(asyncio.Event()) is True
        # No burst of catch-up ticks
        assert ticker.delay() == 5.0

    @pytest.mark.asyncio
    async def test_stop_interrupts_wait(self):
        ticker = IntervalTicker(60.0)
        stop_event = asyncio.Event()
        await ticker.wait(stop_event)

        asyncio.get_running_loop().call_later(0.01, stop_event.set)
        assert await asyncio.wait_for(ticker.wait(stop_event), timeout=1.0) is False

    @pytest.mark.asyncio
    async def test_no_tick_after_stop(self):
        ticker = IntervalTicker(1.0)
        stop_event = asyncio.Event()
        stop_event.set()
        assert await ticker.wait(stop_event) is False


# ---------------------------------------------------------------------------
# SchedulerLoop
# ---------------------------------------------------------------------------

class TestSchedulerLoop:
    def test_rejects_non_positive_interval(self, syncer):
        with pytest.raises(ConfigError):
            SchedulerLoop(syncer, 0)
        with pytest.raises(ConfigError):
            SchedulerLoop(syncer, float("nan"))

    @pytest.mark.asyncio
    async def test_runs_max_ticks(self, syncer, memory_store):
        loop = SchedulerLoop(syncer, 0.01)
        await asyncio.wait_for(loop.run(max_ticks=3), timeout=5.0)
        assert loop.ticks == 3
        assert not loop.running
        assert memory_store.heights() == list(range(0, 11))

    @pytest.mark.asyncio
    async def test_follows_advancing_head(self, node, memory_store):
        node.head = 2

        class AdvanceHead(SyncObserver):
            def on_pass_succeeded(self, name, head):
                node.head += 3

        syncer = Syncer("test", node, memory_store, observer=AdvanceHead())
        loop = SchedulerLoop(syncer, 0.01)
        await asyncio.wait_for(loop.run(max_ticks=3), timeout=5.0)

        assert memory_store.heights() == list(range(0, 9))
        assert node.fetched == list(range(0, 9))

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_loop(self, node, memory_store):
        metrics = MetricsObserver()
        node.failures[4] = TransportError("flaky")

        class Heal(SyncObserver):
            def on_pass_failed(self, name, error):
                node.failures.clear()

        syncer = Syncer("test", node, memory_store, observer=ObserverGroup(metrics, Heal()))
        loop = SchedulerLoop(syncer, 0.01)
        await asyncio.wait_for(loop.run(max_ticks=2), timeout=5.0)

        status = metrics.status("test")
        assert status.passes == 2
        assert status.failures == {"transport": 1}
        assert status.successes == 1
        assert memory_store.heights() == list(range(0, 11))

    @pytest.mark.asyncio
    async def test_start_override_consumed_by_first_pass(self, node, memory_store):
        node.head = 105
        node.head_error = TransportError("down")
        await memory_store.insert_if_absent(41, make_entry(41))

        class Recover(SyncObserver):
            def on_pass_failed(self, name, error):
                node.head_error = None

        syncer = TrackingSyncer("test", node, memory_store, observer=Recover())
        loop = SchedulerLoop(syncer, 0.01, start_height=100)
        assert loop.pending_start_height == 100
        await asyncio.wait_for(loop.run(max_ticks=3), timeout=5.0)

        # Even a failed first pass consumes the override; later ticks use the cursor
        assert syncer.starts == [100, None, None]
        assert loop.pending_start_height is None
        assert memory_store.heights() == [41] + list(range(42, 106))

    @pytest.mark.asyncio
    async def test_partial_failure_under_override_resumes_after_cursor(self, node, memory_store):
        node.head = 105
        node.failures[103] = TransportError("flaky")
        await memory_store.insert_if_absent(41, make_entry(41))

        class Heal(SyncObserver):
            def on_pass_failed(self, name, error):
                node.failures.clear()
                node.fetched.clear()

        syncer = TrackingSyncer("test", node, memory_store, observer=Heal())
        loop = SchedulerLoop(syncer, 0.01, start_height=100)
        await asyncio.wait_for(loop.run(max_ticks=2), timeout=5.0)

        assert syncer.starts == [100, None]
        assert node.fetched == [103, 104, 105]
        assert memory_store.heights() == [41, 100, 101, 102, 103, 104, 105]

    @pytest.mark.asyncio
    async def test_passes_never_overlap(self, memory_store):
        node = FakeNodeClient(head=5, delay=0.01)

        class AdvanceHead(SyncObserver):
            def on_pass_succeeded(self, name, head):
                node.head += 5

        syncer = TrackingSyncer("test", node, memory_store, observer=AdvanceHead())
        # Each pass takes ~50ms, far longer than the interval
        loop = SchedulerLoop(syncer, 0.001)
        await asyncio.wait_for(loop.run(max_ticks=4), timeout=5.0)

        assert syncer.max_active == 1
        assert loop.ticks == 4
        assert memory_store.heights() == list(range(0, 21))

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self, syncer):
        loop = SchedulerLoop(syncer, 30.0)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.05)
        assert loop.running
        assert loop.ticks == 1

        loop.stop()
        await asyncio.wait_for(task, timeout=1.0)
        assert not loop.running

    @pytest.mark.asyncio
    async def test_stop_mid_pass(self, memory_store):
        node = FakeNodeClient(head=10_000, delay=0.001)
        syncer = Syncer("test", node, memory_store, observer=SyncObserver())
        loop = SchedulerLoop(syncer, 30.0)

        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.05)
        loop.stop()
        await asyncio.wait_for(task, timeout=1.0)

        heights = memory_store.heights()
        assert 0 < len(heights) < 10_001
        assert heights == list(range(len(heights)))
        assert loop.last_outcome is not None
        assert type(loop.last_outcome.error).__name__ == "SyncInterrupted"

    @pytest.mark.asyncio
    async def test_cannot_run_twice_concurrently(self, syncer):
        loop = SchedulerLoop(syncer, 30.0)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.01)
        with pytest.raises(RuntimeError):
            await loop.run()
        loop.stop()
        await task


# ---------------------------------------------------------------------------
# Several instances
# ---------------------------------------------------------------------------

class TestRunSyncers:
    @pytest.mark.asyncio
    async def test_independent_instances(self):
        healthy_node = FakeNodeClient(head=4)
        broken_node = FakeNodeClient(head=4)
        broken_node.head_error = TransportError("unreachable")
        healthy_store, broken_store = MemoryStore(), MemoryStore()
        metrics = MetricsObserver()

        loops = [
            SchedulerLoop(Syncer("healthy", healthy_node, healthy_store, observer=metrics), 0.01),
            SchedulerLoop(Syncer("broken", broken_node, broken_store, observer=metrics), 0.01),
        ]
        await asyncio.wait_for(run_syncers(loops, max_ticks=2), timeout=5.0)

        assert healthy_store.heights() == [0, 1, 2, 3, 4]
        assert await broken_store.count() == 0
        assert metrics.status("healthy").successes == 2
        assert metrics.status("broken").failures == {"transport": 2}

    @pytest.mark.asyncio
    async def test_sync_to_head_runs_until_stopped(self, syncer, memory_store):
        stop_event = asyncio.Event()
        task = asyncio.create_task(syncer.sync_to_head(interval=0.01, stop_event=stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert memory_store.heights() == list(range(0, 11))
