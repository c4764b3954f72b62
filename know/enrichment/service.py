from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .job_queue import JobQueue
from .llm import LanguageModel
from .models import ArticleRecord
from .repository import ArticleRepository
from .tag_cache import TagFrequencyCache, unique_tags
from .vector_index import VectorIndex

logger = logging.getLogger(__name__)


class ArticleService:
    """
    Write path and read surface around the enrichment core.

    Writes commit to the repository first and then enqueue the article id.
    Enqueue problems are logged and never fail the write: enrichment is
    asynchronous and the sweep recovers anything that was not queued.
    """

    def __init__(
        self,
        repository: ArticleRepository,
        queue: JobQueue,
        tag_cache: TagFrequencyCache,
        vector_index: VectorIndex,
        language_model: LanguageModel,
    ):
        self.repo = repository
        self.queue = queue
        self.tag_cache = tag_cache
        self.vector_index = vector_index
        self.llm = language_model

    def _enqueue(self, article_id: int) -> None:
        try:
            self.queue.enqueue(article_id)
        except Exception:  # noqa: BLE001
            logger.exception("Could not queue article %s for enrichment", article_id)

    def get_article(self, article_id: int) -> Optional[ArticleRecord]:
        return self.repo.get_article(article_id)

    def list_articles(self) -> List[ArticleRecord]:
        return self.repo.list_articles()

    def create_article(self, title: str, content: str, category: Optional[str] = None) -> ArticleRecord:
        article = self.repo.create_article(title=title, content=content, category=category)
        logger.info("Created article %s", article.id)
        self._enqueue(article.id)
        return article

    def update_article(
        self,
        article_id: int,
        title: str,
        content: str,
        category: Optional[str] = None,
    ) -> Optional[ArticleRecord]:
        """Edit title/content; tags, summary and embedding go back to pending."""
        result = self.repo.update_content(article_id, title=title, content=content, category=category)
        if result is None:
            return None
        article, previous_tags = result
        self.tag_cache.remove_tags(unique_tags(previous_tags))
        logger.info("Updated article %s; enrichment reset", article_id)
        self._enqueue(article_id)
        return article

    def delete_article(self, article_id: int) -> bool:
        article = self.repo.delete_article(article_id)
        if article is None:
            return False
        self.tag_cache.remove_tags(unique_tags(article.tag_list))
        try:
            self.vector_index.delete(article_id)
        except Exception:  # noqa: BLE001
            # Search joins against the repository, so a leftover vector is never served.
            logger.exception("Failed to delete vector for article %s", article_id)
        logger.info("Deleted article %s", article_id)
        return True

    def clear_all(self) -> int:
        removed = self.repo.delete_all()
        self.vector_index.clear()
        self.tag_cache.clear()
        logger.info("Cleared %s articles, their vectors and the tag cache", removed)
        return removed

    def popular_tags(self) -> List[str]:
        return self.tag_cache.get_popular_tags()

    async def search(self, query: str, limit: int = 5) -> List[Tuple[ArticleRecord, float]]:
        """Embed the query text and return the nearest articles."""
        if not self.vector_index.enabled:
            return []
        vector = await self.llm.generate_embedding(query)
        if len(vector) == 0:
            return []
        return self.vector_index.search(vector, limit)
