"""Rate-limited writer and stats."""
import asyncio

import pytest

from ghaload.application.consumer import RateLimitedWriter, tick_interval
from ghaload.application.stats import IngestStats, report_status
from ghaload.domain.decoding import parse_event


class CountingCounter:
    def __init__(self):
        self.value = 0

    def inc(self, amount=1):
        self.value += amount


def _queue_of(events):
    q = asyncio.Queue()
    for ev in events:
        q.put_nowait(ev)
    return q


def test_tick_interval():
    assert tick_interval(1) == 1.0
    assert tick_interval(4) == 0.25
    with pytest.raises(ValueError):
        tick_interval(0)


@pytest.mark.asyncio
async def test_writes_in_fifo_order_and_counts(memory_store, make_raw):
    events = [parse_event(make_raw(i, f"2015-01-01T00:0{i}:00Z")) for i in (3, 1, 2)]
    store = memory_store()
    counter = CountingCounter()
    stats = IngestStats(counter)
    queue = _queue_of(events)
    writer = RateLimitedWriter(queue, store, stats, rate=1000)

    task = asyncio.create_task(writer.run())
    await asyncio.wait_for(queue.join(), timeout=2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.order == [3, 1, 2]
    snap = stats.snapshot()
    assert snap.writes == 3
    assert snap.last_created_at == events[-1].created_at
    assert counter.value == 3


@pytest.mark.asyncio
async def test_failed_write_is_dropped_and_loop_continues(memory_store, make_raw, caplog):
    store = memory_store(fail_ids={2})
    stats = IngestStats()
    queue = _queue_of([parse_event(make_raw(i)) for i in (1, 2, 3)])
    writer = RateLimitedWriter(queue, store, stats, rate=1000)

    task = asyncio.create_task(writer.run())
    await asyncio.wait_for(queue.join(), timeout=2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.order == [1, 3]
    assert writer.dropped == 1
    assert stats.snapshot().writes == 2
    assert "ingest error: id=2" in caplog.text


@pytest.mark.asyncio
async def test_rate_gates_writes(memory_store, make_raw):
    rate = 20
    queue = _queue_of([parse_event(make_raw(i)) for i in range(1, 4)])
    writer = RateLimitedWriter(queue, memory_store(), IngestStats(), rate=rate)
    loop = asyncio.get_running_loop()

    started = loop.time()
    task = asyncio.create_task(writer.run())
    await asyncio.wait_for(queue.join(), timeout=5)
    elapsed = loop.time() - started
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # three ticks at 50ms each; allow for timer slack on the low side only
    assert elapsed >= 3 / rate * 0.8


@pytest.mark.asyncio
async def test_waits_for_events_when_queue_empty(memory_store, make_raw):
    queue = asyncio.Queue()
    store = memory_store()
    writer = RateLimitedWriter(queue, store, IngestStats(), rate=1000)

    task = asyncio.create_task(writer.run())
    await asyncio.sleep(0.01)
    assert store.order == []

    await queue.put(parse_event(make_raw(9)))
    await asyncio.wait_for(queue.join(), timeout=2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert store.order == [9]


@pytest.mark.asyncio
async def test_report_status_logs_snapshot(make_raw, caplog):
    caplog.set_level("INFO", logger="ghaload.application.stats")
    stats = IngestStats()
    stats.record_write(parse_event(make_raw(1, "2015-01-01T00:15:00Z")))

    task = asyncio.create_task(report_status(stats, interval=0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert "status: t=2015-01-01T00:15:00Z writes=1" in caplog.text


def test_empty_snapshot_status_line():
    assert IngestStats().snapshot().status_line() == "status: t=- writes=0"
