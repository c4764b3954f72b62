from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Protocol

from redis import Redis
from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)


class QueueClosedError(RuntimeError):
    pass


class JobQueue(Protocol):
    @property
    def closed(self) -> bool:
        ...

    def enqueue(self, article_id: int) -> None:
        ...

    async def dequeue(self, cancel: Optional[asyncio.Event] = None) -> Optional[int]:
        ...

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        ...

    def qsize(self) -> int:
        ...

    def task_done(self) -> None:
        ...

    async def join(self) -> None:
        ...

    def close(self) -> None:
        ...


async def _wait_first(getter: "asyncio.Future[int]", cancel: Optional[asyncio.Event]) -> Optional[int]:
    if cancel is None:
        return await getter
    if cancel.is_set():
        getter.cancel()
        return None
    cancel_waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({getter, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_waiter.cancel()
    if getter.done() and not getter.cancelled():
        # An item that arrived together with the cancel signal is still handed out.
        return getter.result()
    getter.cancel()
    return None


class EnrichmentQueue:
    """
    In-process FIFO of article ids awaiting enrichment.

    `enqueue` never blocks and may be called from any thread (FastAPI runs
    sync handlers in a threadpool); once the consuming loop is bound, puts
    from other threads are scheduled onto it. No dedup or priority: the same
    id may be queued many times and the pipeline is idempotent.

    Closing discards whatever has not been dequeued yet. Losing those ids is
    acceptable because the administrative sweep re-enqueues pending articles.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[int]" = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._loop_thread = threading.get_ident()

    def enqueue(self, article_id: int) -> None:
        if self._closed:
            raise QueueClosedError("Enrichment queue is shut down")
        loop = self._loop
        if loop is not None and self._loop_thread != threading.get_ident():
            if loop.is_closed():
                raise QueueClosedError("Enrichment queue loop is closed")
            loop.call_soon_threadsafe(self._queue.put_nowait, article_id)
        else:
            self._queue.put_nowait(article_id)
        logger.debug("Queued article %s for enrichment", article_id)

    async def dequeue(self, cancel: Optional[asyncio.Event] = None) -> Optional[int]:
        if self._loop is None:
            self.bind(asyncio.get_running_loop())
        return await _wait_first(asyncio.ensure_future(self._queue.get()), cancel)

    def close(self) -> None:
        self._closed = True
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            discarded += 1
        if discarded:
            logger.info("Enrichment queue closed; discarded %s queued articles", discarded)


class RedisEnrichmentQueue:
    """
    Redis-list backed queue (RPUSH / BLPOP). Ids survive a process restart;
    closing only stops this process from producing and consuming.

    BLPOP is issued with a short timeout so a pending dequeue notices the
    cancel event within `poll_seconds`.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key: str = "know:enrichment",
        poll_seconds: int = 1,
        client: Optional[Redis] = None,
        async_client: Optional[AsyncRedis] = None,
    ):
        self.key = key
        self.poll_seconds = poll_seconds
        self.redis = client or Redis.from_url(redis_url)
        self.async_redis = async_client or AsyncRedis.from_url(redis_url)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        return None

    def qsize(self) -> int:
        return int(self.redis.llen(self.key))

    def task_done(self) -> None:
        return None

    async def join(self) -> None:
        while not self._closed and await self.async_redis.llen(self.key):
            await asyncio.sleep(self.poll_seconds)

    def enqueue(self, article_id: int) -> None:
        if self._closed:
            raise QueueClosedError("Enrichment queue is shut down")
        self.redis.rpush(self.key, int(article_id))

    async def dequeue(self, cancel: Optional[asyncio.Event] = None) -> Optional[int]:
        while not self._closed and not (cancel is not None and cancel.is_set()):
            item = await self.async_redis.blpop([self.key], timeout=self.poll_seconds)
            if item is None:
                continue
            _, raw = item
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Dropping malformed enrichment queue item %r", raw)
        return None

    def close(self) -> None:
        self._closed = True
