from __future__ import annotations

from fastapi import APIRouter, Depends

from know.enrichment import ArticleService

from api.dependencies import get_service

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("/popular")
def popular_tags(service: ArticleService = Depends(get_service)):
    return service.popular_tags()
