from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Dict, Iterable, List

if TYPE_CHECKING:
    from .repository import ArticleRepository

logger = logging.getLogger(__name__)


def _key(tag: str) -> str:
    return tag.strip().casefold()


def unique_tags(tags: Iterable[str]) -> List[str]:
    """One entry per case-insensitive tag, first spelling kept. An article counts once per tag."""
    seen: Dict[str, str] = {}
    for tag in tags:
        key = _key(tag)
        if key and key not in seen:
            seen[key] = tag
    return list(seen.values())


class TagFrequencyCache:
    """
    In-memory tag -> article count index answering "most popular tags"
    without scanning every article per request.

    The cache is explicitly constructed and explicitly initialized: until
    `initialize()` has finished its scan of the repository every mutation is
    a no-op and every read is empty, so callers never observe or corrupt a
    half-built map.

    Tag identity is case-insensitive; the first spelling seen is the one
    reported. Counts are floored at zero and keys are never evicted.

    Handler threads and worker jobs mutate the cache concurrently. Each key is
    guarded by one of `stripes` locks chosen by hash, so updates to unrelated
    tags rarely contend and there is no global lock.
    """

    def __init__(self, stripes: int = 16):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._counts: Dict[str, int] = {}
        self._display: Dict[str, str] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._init_lock = threading.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def initialize(self, repository: "ArticleRepository") -> None:
        with self._init_lock:
            if self._initialized:
                return
            counts: Dict[str, int] = {}
            display: Dict[str, str] = {}
            for tags in repository.iter_tag_sets():
                for tag in unique_tags(tags):
                    key = _key(tag)
                    if not key:
                        continue
                    display.setdefault(key, tag.strip())
                    counts[key] = counts.get(key, 0) + 1
            self._counts = counts
            self._display = display
            self._initialized = True
        logger.info("Tag cache initialized with %s unique tags", len(counts))

    def add_tags(self, tags: Iterable[str]) -> None:
        if not self._initialized:
            return
        for tag in tags:
            key = _key(tag)
            if not key:
                continue
            with self._lock_for(key):
                self._display.setdefault(key, tag.strip())
                self._counts[key] = self._counts.get(key, 0) + 1

    def remove_tags(self, tags: Iterable[str]) -> None:
        if not self._initialized:
            return
        for tag in tags:
            key = _key(tag)
            if not key:
                continue
            with self._lock_for(key):
                self._display.setdefault(key, tag.strip())
                current = self._counts.get(key, 0)
                self._counts[key] = current - 1 if current > 0 else 0

    def update_tags(self, old_tags: Iterable[str], new_tags: Iterable[str]) -> None:
        if not self._initialized:
            return
        old = {_key(t): t for t in unique_tags(old_tags)}
        new = {_key(t): t for t in unique_tags(new_tags)}
        self.remove_tags(tag for key, tag in old.items() if key not in new)
        self.add_tags(tag for key, tag in new.items() if key not in old)

    def count(self, tag: str) -> int:
        if not self._initialized:
            return 0
        return self._counts.get(_key(tag), 0)

    def get_popular_tags(self) -> List[str]:
        if not self._initialized:
            return []
        snapshot = dict(self._counts)
        ranked = sorted(
            ((key, count) for key, count in snapshot.items() if count > 0),
            key=lambda item: (-item[1], item[0]),
        )
        return [self._display.get(key, key) for key, _ in ranked]

    def clear(self) -> None:
        """Drop all counts. The cache stays initialized (an empty store)."""
        for lock in self._locks:
            lock.acquire()
        try:
            self._counts.clear()
            self._display.clear()
        finally:
            for lock in reversed(self._locks):
                lock.release()
