"""
Enrichment subsystem exports.
"""

from .config import EnrichmentConfig
from .job_queue import EnrichmentQueue, JobQueue, QueueClosedError, RedisEnrichmentQueue
from .llm import GeminiLanguageModel, LanguageModel, LanguageModelError, LocalLanguageModel, parse_tags
from .models import (
    ArticleRecord,
    EnrichmentRun,
    EnrichmentStage,
    EnrichmentState,
    StageOutcome,
    enrichment_state,
    is_pending,
    needs_embedding,
    needs_summary,
    needs_tags,
)
from .pipeline import EnrichmentPipeline
from .repository import ArticleRepository, InMemoryArticleRepository, SqlAlchemyArticleRepository
from .runtime import EnrichmentRuntime, build_runtime
from .service import ArticleService
from .sweep import requeue_pending
from .tag_cache import TagFrequencyCache, unique_tags
from .vector_index import (
    BlobTableBackend,
    SqliteVecBackend,
    VectorDimensionError,
    VectorIndex,
    build_vector_index,
    pack_vector,
    unpack_vector,
)
from .worker import WorkerPool

__all__ = [
    "ArticleRecord",
    "ArticleRepository",
    "ArticleService",
    "BlobTableBackend",
    "EnrichmentConfig",
    "EnrichmentPipeline",
    "EnrichmentQueue",
    "EnrichmentRun",
    "EnrichmentRuntime",
    "EnrichmentStage",
    "EnrichmentState",
    "GeminiLanguageModel",
    "InMemoryArticleRepository",
    "JobQueue",
    "LanguageModel",
    "LanguageModelError",
    "LocalLanguageModel",
    "QueueClosedError",
    "RedisEnrichmentQueue",
    "SqlAlchemyArticleRepository",
    "SqliteVecBackend",
    "StageOutcome",
    "TagFrequencyCache",
    "VectorDimensionError",
    "VectorIndex",
    "WorkerPool",
    "build_runtime",
    "build_vector_index",
    "enrichment_state",
    "is_pending",
    "needs_embedding",
    "needs_summary",
    "needs_tags",
    "pack_vector",
    "parse_tags",
    "requeue_pending",
    "unique_tags",
    "unpack_vector",
]
