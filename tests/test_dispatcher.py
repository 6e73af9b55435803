"""Event serialization: one job fully handled before the next begins."""

import asyncio
import threading

import pytest

from thermobridge.services.dispatcher import EventDispatcher


@pytest.fixture
async def dispatcher():
    d = EventDispatcher()
    await d.start()
    yield d
    await d.stop()


class TestSerialization:
    async def test_call_returns_handler_result(self, dispatcher):
        async def double(x):
            return x * 2

        assert await dispatcher.call("double", double, 21) == 42

    async def test_jobs_never_overlap(self, dispatcher):
        trace = []

        async def noop():
            return None

        async def job(name):
            trace.append(("start", name))
            await asyncio.sleep(0.01)
            trace.append(("end", name))

        for i in range(3):
            await dispatcher.submit(f"job{i}", job, i)
        await dispatcher.call("barrier", noop)

        assert trace == [
            ("start", 0), ("end", 0),
            ("start", 1), ("end", 1),
            ("start", 2), ("end", 2),
        ]

    async def test_failing_job_does_not_stop_worker(self, dispatcher):
        async def boom():
            raise ValueError("bad payload")

        async def ok():
            return "ok"

        with pytest.raises(ValueError):
            await dispatcher.call("boom", boom)
        assert await dispatcher.call("ok", ok) == "ok"
        assert dispatcher.failed == 1
        assert dispatcher.running

    async def test_failing_submitted_job_is_counted_not_returned(self, dispatcher):
        async def boom():
            raise ValueError("bad threshold")

        async def noop():
            return None

        assert await dispatcher.submit("set_threshold", boom) is None
        await dispatcher.call("barrier", noop)

        assert dispatcher.failed == 1
        assert dispatcher.processed == 1

    async def test_submit_from_foreign_thread(self, dispatcher):
        seen = []

        async def record(value):
            seen.append((value, threading.current_thread() is threading.main_thread()))

        def producer():
            for i in range(3):
                dispatcher.submit_threadsafe("mqtt", record, i)

        t = threading.Thread(target=producer)
        t.start()
        t.join()

        async def noop():
            return None

        # callbacks scheduled via call_soon_threadsafe run before this job is queued
        await asyncio.sleep(0)
        await dispatcher.call("barrier", noop)

        assert [v for v, _ in seen] == [0, 1, 2]
        assert all(on_loop_thread for _, on_loop_thread in seen)


class TestLifecycle:
    async def test_stop_drains_queued_jobs(self):
        d = EventDispatcher()
        await d.start()
        done = []

        async def job(i):
            await asyncio.sleep(0)
            done.append(i)

        for i in range(5):
            await d.submit("job", job, i)
        await d.stop()

        assert done == [0, 1, 2, 3, 4]
        assert not d.running

    async def test_submit_before_start_raises(self):
        d = EventDispatcher()

        async def job():
            return None

        with pytest.raises(RuntimeError):
            await d.submit("job", job)

    def test_threadsafe_submit_before_start_is_dropped(self):
        d = EventDispatcher()

        async def job():
            return None

        d.submit_threadsafe("job", job)
