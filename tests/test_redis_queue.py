import asyncio

import pytest

from know.enrichment import EnrichmentPipeline, QueueClosedError, RedisEnrichmentQueue, WorkerPool

from conftest import FakeLanguageModel


class FakeRedis:
    """Minimal list commands over a shared dict, standing in for a server."""

    def __init__(self, lists):
        self.lists = lists

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(str(value).encode())
        return len(self.lists[key])

    def llen(self, key):
        return len(self.lists.get(key, []))


class FakeAsyncRedis:
    def __init__(self, lists):
        self.lists = lists

    async def blpop(self, keys, timeout=0):
        for key in keys:
            if self.lists.get(key):
                return key.encode(), self.lists[key].pop(0)
        await asyncio.sleep(0.01)
        return None

    async def llen(self, key):
        return len(self.lists.get(key, []))


def _queue(lists):
    return RedisEnrichmentQueue(key="test:queue", client=FakeRedis(lists), async_client=FakeAsyncRedis(lists))


def test_ids_round_trip_in_fifo_order():
    lists = {}
    queue = _queue(lists)
    queue.enqueue(3)
    queue.enqueue(1)
    assert queue.qsize() == 2

    async def main():
        return [await queue.dequeue(), await queue.dequeue()]

    assert asyncio.run(main()) == [3, 1]
    assert queue.qsize() == 0


def test_malformed_items_are_dropped():
    lists = {"test:queue": [b"abc", b"7"]}
    queue = _queue(lists)
    assert asyncio.run(queue.dequeue()) == 7


def test_cancel_and_close_stop_consumers():
    queue = _queue({})

    async def main():
        cancel = asyncio.Event()
        waiter = asyncio.create_task(queue.dequeue(cancel))
        await asyncio.sleep(0.05)
        cancel.set()
        return await asyncio.wait_for(waiter, timeout=1)

    assert asyncio.run(main()) is None
    queue.close()
    with pytest.raises(QueueClosedError):
        queue.enqueue(1)


def test_pool_dispatch_ends_when_queue_is_closed(repo, vector_index, tag_cache):
    queue = _queue({})
    pool = WorkerPool(queue, EnrichmentPipeline(repo, FakeLanguageModel(), vector_index, tag_cache), concurrency=1)

    async def main():
        await pool.start()
        queue.close()
        await asyncio.sleep(0.05)
        running = pool.running
        await pool.stop()
        return running

    assert asyncio.run(main()) is False
