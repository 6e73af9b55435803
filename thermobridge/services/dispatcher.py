from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


Handler = Callable[..., Awaitable[Any]]


@dataclass
class _Job:
    name: str
    handler: Handler
    args: tuple
    done: Optional[asyncio.Future] = None


class EventDispatcher:
    """Single-consumer queue: every job runs to completion before the next starts.

    MQTT callbacks arrive on paho's network thread and use ``submit_threadsafe``;
    coroutines already on the loop use ``submit`` (fire-and-forget) or ``call``
    (awaits the result).
    """

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="control_events")

    async def stop(self) -> None:
        if self._task and self._queue is not None:
            # sentinel goes behind anything already queued
            await self._queue.put(None)
            await self._task
            self._task = None

    def submit_threadsafe(self, name: str, handler: Handler, *args: Any) -> None:
        if self._loop is None or self._queue is None:
            logger.warning("Dispatcher not started, dropping %s", name)
            return
        job = _Job(name=name, handler=handler, args=args)
        self._loop.call_soon_threadsafe(self._queue.put_nowait, job)

    async def _enqueue(self, job: _Job) -> None:
        if self._queue is None:
            raise RuntimeError("Dispatcher not started")
        await self._queue.put(job)

    async def submit(self, name: str, handler: Handler, *args: Any) -> None:
        """Queue a job without waiting; failures are only logged and counted."""
        await self._enqueue(_Job(name=name, handler=handler, args=args))

    async def call(self, name: str, handler: Handler, *args: Any) -> Any:
        """Queue a job and wait for its result."""
        done = asyncio.get_running_loop().create_future()
        await self._enqueue(_Job(name=name, handler=handler, args=args, done=done))
        return await done

    async def _run(self) -> None:
        logger.info("Event dispatcher started")
        assert self._queue is not None

        while True:
            job = await self._queue.get()
            if job is None:
                break

            try:
                result = await job.handler(*job.args)
            except Exception as e:
                self.failed += 1
                logger.exception("Event %s failed: %s", job.name, e)
                if job.done is not None and not job.done.done():
                    job.done.set_exception(e)
            else:
                self.processed += 1
                if job.done is not None and not job.done.done():
                    job.done.set_result(result)

        logger.info(
            "Event dispatcher stopped (processed=%d failed=%d)", self.processed, self.failed
        )
