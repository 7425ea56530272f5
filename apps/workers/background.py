"""Bounded background queue for fire-and-forget work."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from core.metrics import background_task_failures_total, background_tasks_dropped_total

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[None]]


class BackgroundTaskQueue:
    """Runs submitted coroutines on a fixed pool of worker tasks.

    ``submit`` never blocks: when the queue is full the task is dropped and
    logged. Failures and timeouts are logged and counted, never raised to the
    submitter.
    """

    def __init__(self, maxsize: int = 1000, workers: int = 2, task_timeout: float = 5.0) -> None:
        self.maxsize = maxsize
        self.workers = workers
        self.task_timeout = task_timeout
        self._queue: asyncio.Queue[tuple[str, TaskFactory]] = asyncio.Queue(maxsize=maxsize)
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Start the worker tasks."""
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._run(), name=f"background-worker-{n}") for n in range(self.workers)
        ]
        logger.info(f"Background queue started with {self.workers} workers")

    def submit(self, name: str, factory: TaskFactory) -> bool:
        """
        Queue a task without waiting.

        Args:
            name: Task name used in logs and metrics
            factory: Zero-argument callable returning the coroutine to run

        Returns:
            True if queued, False if dropped
        """
        try:
            self._queue.put_nowait((name, factory))
        except asyncio.QueueFull:
            background_tasks_dropped_total.labels(task=name).inc()
            logger.warning(f"Background queue full, dropping task {name}")
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued task has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain queued tasks, then stop the workers."""
        if self.running:
            await self.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _run(self) -> None:
        while True:
            name, factory = await self._queue.get()
            try:
                await asyncio.wait_for(factory(), timeout=self.task_timeout)
            except asyncio.TimeoutError:
                background_task_failures_total.labels(task=name).inc()
                logger.warning(f"Background task {name} timed out after {self.task_timeout}s")
            except Exception as e:
                background_task_failures_total.labels(task=name).inc()
                logger.warning(f"Background task {name} failed: {e}")
            finally:
                self._queue.task_done()
