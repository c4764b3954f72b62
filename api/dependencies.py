from __future__ import annotations

from functools import lru_cache

from fastapi import Request

from know.enrichment import ArticleService, EnrichmentConfig, EnrichmentRuntime, build_runtime


@lru_cache(maxsize=1)
def get_config() -> EnrichmentConfig:
    return EnrichmentConfig.from_env()


@lru_cache(maxsize=1)
def get_default_runtime() -> EnrichmentRuntime:
    return build_runtime(get_config())


def get_runtime(request: Request) -> EnrichmentRuntime:
    return request.app.state.runtime


def get_service(request: Request) -> ArticleService:
    return get_runtime(request).service
