"""
Fixed-size pool of workers pulling jobs from a FIFO queue.

Each worker is a long-lived asyncio task. Jobs are zero-argument callables;
a job that returns an awaitable (e.g. a coroutine function) is awaited, so a
worker runs exactly one job at a time, start to finish, and jobs on different
workers interleave at their await points (database I/O).

    pool = WorkerPool(4)
    for offset in range(0, count, batch_size):
        pool.schedule(functools.partial(import_batch, offset))
    await pool.shutdown()   # every scheduled job has finished here
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List

from core.logging import current_worker_id

logger = logging.getLogger(__name__)

# Queued once per worker by shutdown()
_STOP = object()


class WorkerPool:
    """
    Bounded pool of asyncio workers consuming an unbounded job queue.

    Failure semantics:
    - A job that raises is logged and recorded; its worker keeps going
    - shutdown() re-raises the first recorded failure once every worker exited
    - No retries; a job that wants them does them itself
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"pool size must be at least 1, got {size}")
        self.size = size
        self.jobs: asyncio.Queue = asyncio.Queue()
        self.workers: List[asyncio.Task] = []
        self.failures: List[Exception] = []
        self._fill_the_pool()

    def schedule(self, job: Callable[[], Any]) -> None:
        """Enqueue a job; never blocks"""
        self.jobs.put_nowait(job)

    async def shutdown(self, raise_errors: bool = True) -> None:
        """
        Stop every worker after the jobs already queued have run.

        Safe to call more than once: a pool without live workers returns
        immediately.
        """
        workers, self.workers = self.workers, []

        for _ in workers:
            self.jobs.put_nowait(_STOP)

        if workers:
            await asyncio.gather(*workers)

        if raise_errors and self.failures:
            first = self.failures[0]
            if len(self.failures) > 1:
                logger.error(f"{len(self.failures)} jobs failed, raising the first")
            self.failures = []
            raise first

    async def reset(self) -> None:
        """Shut down and start a fresh set of workers of the same size"""
        try:
            await self.shutdown()
        finally:
            self._fill_the_pool()

    @property
    def live_workers(self) -> int:
        return sum(1 for worker in self.workers if not worker.done())

    def _fill_the_pool(self) -> None:
        self.workers = [
            asyncio.create_task(self._work(worker_id), name=f"import-worker-{worker_id}")
            for worker_id in range(1, self.size + 1)
        ]

    async def _work(self, worker_id: int) -> None:
        # Each task runs in its own copy of the context, so this stamp is
        # only seen by log records emitted from this worker
        current_worker_id.set(worker_id)

        while True:
            job = await self.jobs.get()
            try:
                if job is _STOP:
                    return

                result = job()
                if inspect.isawaitable(result):
                    await result

            except Exception as e:
                logger.exception(f"Job failed on worker {worker_id}: {e}")
                self.failures.append(e)

            finally:
                self.jobs.task_done()
