from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .job_queue import JobQueue
from .models import ArticleRecord, is_pending
from .repository import ArticleRepository
from .tag_cache import TagFrequencyCache, unique_tags

logger = logging.getLogger(__name__)


def requeue_pending(
    repository: ArticleRepository,
    queue: JobQueue,
    predicate: Callable[[ArticleRecord], bool] = is_pending,
    retag_empty: bool = True,
    tag_cache: Optional[TagFrequencyCache] = None,
) -> List[int]:
    """
    Administrative recovery sweep: enqueue every article the predicate marks
    as pending, through the same queue the write path uses.

    Articles that settled on zero tags are not re-tagged by a plain
    re-enqueue, so with `retag_empty` their tags are reset to pending first;
    whatever the reset cleared is taken out of `tag_cache`.
    Returns the ids that were queued. `QueueClosedError` propagates.
    """
    queued: List[int] = []
    for article in repository.list_articles():
        if not predicate(article):
            continue
        if retag_empty and article.tags is not None and not article.tags:
            cleared = repository.reset_tags(article.id)
            if cleared and tag_cache is not None:
                tag_cache.remove_tags(unique_tags(cleared))
        queue.enqueue(article.id)
        queued.append(article.id)
    logger.info("Sweep queued %s articles for enrichment", len(queued))
    return queued
