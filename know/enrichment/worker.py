from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

from .job_queue import JobQueue
from .pipeline import EnrichmentPipeline

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Bounded-concurrency consumer of the enrichment queue.

    The dispatch loop hands every dequeued id to a new task right away; each
    task then waits on a semaphore of `concurrency` slots before running the
    pipeline, which caps in-flight calls to the language model provider. The
    slot is released by `async with` whatever the job's outcome.

    Shutdown is cooperative: `stop()` closes the queue, gives running jobs
    `drain_timeout` seconds, then cancels the rest. Cancellation interrupts
    the outstanding provider call.
    """

    def __init__(self, queue: JobQueue, pipeline: EnrichmentPipeline, concurrency: int = 5):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.queue = queue
        self.pipeline = pipeline
        self.concurrency = concurrency
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._stopping: Optional[asyncio.Event] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._jobs: Set[asyncio.Task] = set()
        self._in_flight = 0
        self._completed = 0
        self._failed = 0

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    def stats(self) -> Dict[str, int]:
        return {
            "concurrency": self.concurrency,
            "in_flight": self._in_flight,
            "waiting": max(len(self._jobs) - self._in_flight, 0),
            "completed": self._completed,
            "failed": self._failed,
        }

    async def start(self) -> None:
        if self.running:
            return
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._stopping = asyncio.Event()
        self.queue.bind(asyncio.get_running_loop())
        self._dispatcher = asyncio.create_task(self._dispatch(), name="enrichment-dispatch")
        logger.info("Enrichment worker pool started (concurrency %s)", self.concurrency)

    async def stop(self, drain_timeout: Optional[float] = None) -> None:
        if self._dispatcher is None:
            return
        self._stopping.set()
        self.queue.close()
        await asyncio.gather(self._dispatcher, return_exceptions=True)
        self._dispatcher = None

        jobs = set(self._jobs)
        if jobs and drain_timeout:
            _, jobs = await asyncio.wait(jobs, timeout=drain_timeout)
        for job in jobs:
            job.cancel()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)
            logger.info("Cancelled %s enrichment jobs at shutdown", len(jobs))
        logger.info("Enrichment worker pool stopped")

    async def join(self) -> None:
        """Wait until every queued id has been dequeued and its job has finished."""
        await self.queue.join()
        if self._jobs:
            await asyncio.gather(*set(self._jobs), return_exceptions=True)

    async def _dispatch(self) -> None:
        while not self._stopping.is_set():
            article_id = await self.queue.dequeue(self._stopping)
            if article_id is None:
                if self.queue.closed:
                    break
                continue
            job = asyncio.create_task(self._run_job(article_id), name=f"enrich-{article_id}")
            self._jobs.add(job)
            job.add_done_callback(self._jobs.discard)

    async def _run_job(self, article_id: int) -> None:
        try:
            async with self._semaphore:
                self._in_flight += 1
                try:
                    run = await self.pipeline.run(article_id)
                    if run.failed_stages:
                        self._failed += 1
                    else:
                        self._completed += 1
                except Exception:  # noqa: BLE001
                    self._failed += 1
                    logger.exception("Enrichment job for article %s crashed", article_id)
                finally:
                    self._in_flight -= 1
        finally:
            self.queue.task_done()
