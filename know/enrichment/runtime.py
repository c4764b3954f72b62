from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

from .config import EnrichmentConfig
from .job_queue import EnrichmentQueue, JobQueue, RedisEnrichmentQueue
from .llm import GeminiLanguageModel, LanguageModel, LocalLanguageModel
from .pipeline import EnrichmentPipeline
from .repository import ArticleRepository, SqlAlchemyArticleRepository
from .service import ArticleService
from .tag_cache import TagFrequencyCache
from .vector_index import VectorIndex, build_vector_index
from .worker import WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentRuntime:
    config: EnrichmentConfig
    repository: ArticleRepository
    queue: JobQueue
    tag_cache: TagFrequencyCache
    vector_index: VectorIndex
    language_model: LanguageModel
    pipeline: EnrichmentPipeline
    pool: WorkerPool
    service: ArticleService

    async def start(self) -> None:
        self.tag_cache.initialize(self.repository)
        await self.pool.start()

    async def stop(self) -> None:
        await self.pool.stop(drain_timeout=self.config.shutdown_drain_seconds)
        aclose = getattr(self.language_model, "aclose", None)
        if aclose is not None:
            await aclose()


def ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def build_language_model(config: EnrichmentConfig) -> LanguageModel:
    if config.llm_provider == "local":
        return LocalLanguageModel(dimension=config.embedding_dimension)
    return GeminiLanguageModel(
        api_key=config.gemini_api_key,
        text_model=config.gemini_text_model,
        embedding_model=config.gemini_embedding_model,
        dimension=config.embedding_dimension,
        timeout_seconds=config.llm_timeout_seconds,
    )


def build_queue(config: EnrichmentConfig) -> JobQueue:
    if config.queue_backend == "redis":
        return RedisEnrichmentQueue(config.redis_url, key=config.redis_queue_key)
    return EnrichmentQueue()


def build_runtime(
    config: EnrichmentConfig,
    repository: Optional[ArticleRepository] = None,
    language_model: Optional[LanguageModel] = None,
    queue: Optional[JobQueue] = None,
) -> EnrichmentRuntime:
    """
    Wire every enrichment component from one config. Collaborators can be
    passed in to replace the configured ones (tests, embedding in another app).
    """
    ensure_sqlite_dir(config.database_url)
    engine = create_engine(config.database_url, future=True)
    repository = repository or SqlAlchemyArticleRepository(engine=engine)
    language_model = language_model or build_language_model(config)
    queue = queue or build_queue(config)

    tag_cache = TagFrequencyCache()
    vector_index = build_vector_index(
        config.vector_backend,
        repository,
        config.embedding_dimension,
        database_url=config.database_url,
        engine=engine,
    )
    pipeline = EnrichmentPipeline(
        repository=repository,
        language_model=language_model,
        vector_index=vector_index,
        tag_cache=tag_cache,
        call_timeout=config.llm_timeout_seconds,
    )
    pool = WorkerPool(queue=queue, pipeline=pipeline, concurrency=config.worker_concurrency)
    service = ArticleService(
        repository=repository,
        queue=queue,
        tag_cache=tag_cache,
        vector_index=vector_index,
        language_model=language_model,
    )
    logger.info(
        "Enrichment runtime built (llm=%s, vector=%s, queue=%s, concurrency=%s)",
        config.llm_provider,
        config.vector_backend if vector_index.enabled else "disabled",
        config.queue_backend,
        config.worker_concurrency,
    )
    return EnrichmentRuntime(
        config=config,
        repository=repository,
        queue=queue,
        tag_cache=tag_cache,
        vector_index=vector_index,
        language_model=language_model,
        pipeline=pipeline,
        pool=pool,
        service=service,
    )
