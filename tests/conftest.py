import asyncio
from typing import List, Optional

import pytest
from sqlalchemy import create_engine

from know.enrichment import (
    LanguageModelError,
    SqlAlchemyArticleRepository,
    TagFrequencyCache,
    build_vector_index,
)

DIMENSION = 4


class FakeLanguageModel:
    """Scripted model that records calls and the peak number of concurrent calls."""

    def __init__(
        self,
        tags: Optional[List[str]] = None,
        summary: str = "A short summary.",
        embedding: Optional[List[float]] = None,
        delay: float = 0.0,
        fail: tuple = (),
    ):
        self.tags = ["Python", "Testing"] if tags is None else tags
        self.summary = summary
        self.embedding = [1.0, 0.0, 0.0, 0.0] if embedding is None else embedding
        self.delay = delay
        self.fail = set(fail)
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def _call(self, kind: str) -> None:
        self.calls.append(kind)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if kind in self.fail:
            raise LanguageModelError(f"scripted {kind} failure")

    async def generate_tags(self, text: str) -> List[str]:
        await self._call("tags")
        return list(self.tags)

    async def generate_summary(self, text: str) -> str:
        await self._call("summary")
        return self.summary

    async def generate_embedding(self, text: str) -> List[float]:
        await self._call("embedding")
        return list(self.embedding)


@pytest.fixture
def engine(tmp_path):
    return create_engine(f"sqlite+pysqlite:///{tmp_path / 'know.db'}", future=True)


@pytest.fixture
def repo(engine):
    return SqlAlchemyArticleRepository(engine=engine)


@pytest.fixture
def vector_index(repo, engine):
    return build_vector_index("blob", repo, DIMENSION, engine=engine)


@pytest.fixture
def tag_cache(repo):
    cache = TagFrequencyCache()
    cache.initialize(repo)
    return cache
