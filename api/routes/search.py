from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from know.enrichment import ArticleService, LanguageModelError, VectorDimensionError

from api.dependencies import get_service
from api.routes.serializers import article_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


@router.get("")
async def search_articles(
    query: str = Query(""),
    limit: int = Query(5, ge=1, le=50),
    service: ArticleService = Depends(get_service),
):
    if not query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    try:
        hits = await service.search(query, limit)
    except (httpx.HTTPError, LanguageModelError, VectorDimensionError) as exc:
        logger.exception("Search failed for query %r", query)
        raise HTTPException(status_code=502, detail=f"Could not embed query: {exc}")
    return [{**article_payload(article), "distance": distance} for article, distance in hits]
