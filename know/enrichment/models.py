from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class EnrichmentState(str, Enum):
    PENDING = "pending"
    TAGGED = "tagged"
    SUMMARIZED = "summarized"
    EMBEDDED = "embedded"


class EnrichmentStage(str, Enum):
    TAGS = "tags"
    SUMMARY = "summary"
    EMBEDDING = "embedding"


class StageOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ArticleRecord:
    id: int
    title: str
    content: str
    category: Optional[str] = None
    # None means the tag stage has never settled; [] is a settled empty result.
    tags: Optional[List[str]] = None
    summary: Optional[str] = None
    has_embedding: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def tag_list(self) -> List[str]:
        return list(self.tags or [])


@dataclass
class EnrichmentRun:
    article_id: int
    found: bool = True
    outcomes: Dict[EnrichmentStage, StageOutcome] = field(default_factory=dict)
    state: EnrichmentState = EnrichmentState.PENDING

    def outcome(self, stage: EnrichmentStage) -> StageOutcome:
        return self.outcomes.get(stage, StageOutcome.SKIPPED)

    @property
    def failed_stages(self) -> List[EnrichmentStage]:
        return [stage for stage, outcome in self.outcomes.items() if outcome == StageOutcome.FAILED]


def needs_tags(article: ArticleRecord) -> bool:
    return article.tags is None


def needs_summary(article: ArticleRecord) -> bool:
    return article.summary is None or not article.summary.strip()


def needs_embedding(article: ArticleRecord) -> bool:
    return not article.has_embedding


def is_pending(article: ArticleRecord) -> bool:
    """
    Default predicate of the administrative sweep: an article is pending when
    it carries no tags (never tagged, or settled on zero tags) or has no
    summary. Missing embeddings are not considered; pass a different predicate
    to the sweep to include them.
    """
    return not article.tags or needs_summary(article)


def enrichment_state(article: ArticleRecord) -> EnrichmentState:
    """
    Derive the furthest state reached. Stages run in order, so a later field
    being present without an earlier one (possible after a partially failed
    run) still reports the earliest gap.
    """
    if needs_tags(article):
        return EnrichmentState.PENDING
    if needs_summary(article):
        return EnrichmentState.TAGGED
    if needs_embedding(article):
        return EnrichmentState.SUMMARIZED
    return EnrichmentState.EMBEDDED
