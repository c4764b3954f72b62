from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .llm import LanguageModel
from .models import (
    ArticleRecord,
    EnrichmentRun,
    EnrichmentStage,
    StageOutcome,
    enrichment_state,
    needs_embedding,
    needs_summary,
    needs_tags,
)
from .repository import ArticleRepository
from .tag_cache import TagFrequencyCache
from .vector_index import VectorIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ArticleVanished(Exception):
    """The article was deleted while its enrichment run was in progress."""


class EnrichmentPipeline:
    """
    Drives one article through tags -> summary -> embedding.

    Each stage runs only while its field is still empty and persists its
    result immediately, so a failure in one stage never discards the work of
    another. Failures are logged with the article id and stage name and leave
    the field pending for a later re-enqueue; nothing is retried here.

    Tags settle even on an empty result, while a blank summary is not stored
    and stays eligible for the next run.
    """

    def __init__(
        self,
        repository: ArticleRepository,
        language_model: LanguageModel,
        vector_index: VectorIndex,
        tag_cache: TagFrequencyCache,
        call_timeout: Optional[float] = 30.0,
    ):
        self.repo = repository
        self.llm = language_model
        self.vector_index = vector_index
        self.tag_cache = tag_cache
        self.call_timeout = call_timeout

    async def run(self, article_id: int) -> EnrichmentRun:
        run = EnrichmentRun(article_id=article_id)
        article = self.repo.get_article(article_id)
        if not article:
            logger.info("Article %s no longer exists; skipping enrichment", article_id)
            run.found = False
            return run

        stages = (
            (EnrichmentStage.TAGS, self._tag_stage),
            (EnrichmentStage.SUMMARY, self._summary_stage),
            (EnrichmentStage.EMBEDDING, self._embedding_stage),
        )
        for stage, handler in stages:
            try:
                run.outcomes[stage] = await handler(article)
            except ArticleVanished:
                logger.info("Article %s deleted during %s stage; stopping enrichment", article_id, stage.value)
                run.found = False
                run.outcomes[stage] = StageOutcome.SKIPPED
                return run
            except Exception:  # noqa: BLE001
                logger.exception("Enrichment stage %s failed for article %s", stage.value, article_id)
                run.outcomes[stage] = StageOutcome.FAILED

        latest = self.repo.get_article(article_id)
        if latest:
            run.state = enrichment_state(latest)
        logger.info(
            "Enrichment run for article %s finished: %s",
            article_id,
            ", ".join(f"{stage.value}={outcome.value}" for stage, outcome in run.outcomes.items()),
        )
        return run

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self.call_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.call_timeout)

    async def _tag_stage(self, article: ArticleRecord) -> StageOutcome:
        if not needs_tags(article):
            return StageOutcome.SKIPPED
        tags = await self._call(self.llm.generate_tags(f"{article.title}\n\n{article.content}"))
        replaced = self.repo.update_tags(article.id, tags)
        if replaced is None:
            raise ArticleVanished(article.id)
        self.tag_cache.update_tags(replaced, tags)
        article.tags = list(tags)
        if not tags:
            logger.info("Article %s settled with zero tags", article.id)
            return StageOutcome.EMPTY
        return StageOutcome.COMPLETED

    async def _summary_stage(self, article: ArticleRecord) -> StageOutcome:
        if not needs_summary(article):
            return StageOutcome.SKIPPED
        summary = await self._call(self.llm.generate_summary(article.content))
        if not summary or not summary.strip():
            logger.info("Empty summary for article %s; leaving it pending", article.id)
            return StageOutcome.EMPTY
        if not self.repo.update_summary(article.id, summary.strip()):
            raise ArticleVanished(article.id)
        article.summary = summary.strip()
        return StageOutcome.COMPLETED

    async def _embedding_stage(self, article: ArticleRecord) -> StageOutcome:
        if not needs_embedding(article) or not self.vector_index.enabled:
            return StageOutcome.SKIPPED
        vector = await self._call(self.llm.generate_embedding(f"{article.title}\n\n{article.content}"))
        if len(vector) == 0:
            logger.warning("Empty embedding for article %s; it stays out of similarity search", article.id)
            return StageOutcome.EMPTY
        self.vector_index.upsert(article.id, vector)
        if not self.repo.set_has_embedding(article.id, True):
            # Deleted while we were embedding: drop the orphaned vector.
            self.vector_index.delete(article.id)
            raise ArticleVanished(article.id)
        article.has_embedding = True
        return StageOutcome.COMPLETED
