from __future__ import annotations

import os
from dataclasses import dataclass

VECTOR_BACKENDS = ("sqlite-vec", "blob", "disabled")
LLM_PROVIDERS = ("gemini", "local")
QUEUE_BACKENDS = ("memory", "redis")


@dataclass
class EnrichmentConfig:
    database_url: str = "sqlite+pysqlite:///./data/know.db"
    worker_concurrency: int = 5
    embedding_dimension: int = 768
    vector_backend: str = "sqlite-vec"
    llm_provider: str = "gemini"
    gemini_api_key: str = ""
    gemini_text_model: str = "gemini-2.5-flash"
    gemini_embedding_model: str = "gemini-embedding-001"
    llm_timeout_seconds: float = 30.0
    queue_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_queue_key: str = "know:enrichment"
    shutdown_drain_seconds: float = 5.0
    log_level: str = "INFO"

    def __post_init__(self):
        if self.vector_backend not in VECTOR_BACKENDS:
            raise ValueError(f"Invalid vector_backend '{self.vector_backend}'. Must be one of: {VECTOR_BACKENDS}")
        if self.llm_provider not in LLM_PROVIDERS:
            raise ValueError(f"Invalid llm_provider '{self.llm_provider}'. Must be one of: {LLM_PROVIDERS}")
        if self.queue_backend not in QUEUE_BACKENDS:
            raise ValueError(f"Invalid queue_backend '{self.queue_backend}'. Must be one of: {QUEUE_BACKENDS}")
        if self.worker_concurrency < 1:
            raise ValueError("worker_concurrency must be >= 1")
        if self.embedding_dimension < 1:
            raise ValueError("embedding_dimension must be >= 1")

    @classmethod
    def from_env(cls) -> "EnrichmentConfig":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+pysqlite:///./data/know.db"),
            worker_concurrency=int(os.getenv("WORKER_CONCURRENCY", "5")),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "768")),
            vector_backend=os.getenv("VECTOR_BACKEND", "sqlite-vec").lower(),
            llm_provider=os.getenv("LLM_PROVIDER", "gemini").lower(),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_text_model=os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-flash"),
            gemini_embedding_model=os.getenv("GEMINI_EMBEDDING_MODEL", "gemini-embedding-001"),
            llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
            queue_backend=os.getenv("QUEUE_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_queue_key=os.getenv("REDIS_QUEUE_KEY", "know:enrichment"),
            shutdown_drain_seconds=float(os.getenv("SHUTDOWN_DRAIN_SECONDS", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
