from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from know.enrichment import ArticleService

from api.dependencies import get_service
from api.routes.serializers import ArticleIn, article_payload

router = APIRouter(prefix="/articles", tags=["articles"])


@router.get("")
def list_articles(service: ArticleService = Depends(get_service)):
    return [article_payload(a) for a in service.list_articles()]


@router.post("", status_code=201)
def create_article(body: ArticleIn, service: ArticleService = Depends(get_service)):
    article = service.create_article(title=body.title, content=body.content, category=body.category)
    return article_payload(article)


@router.get("/{article_id}")
def get_article(article_id: int, service: ArticleService = Depends(get_service)):
    article = service.get_article(article_id)
    if not article:
        raise HTTPException(status_code=404, detail=f"Article not found: {article_id}")
    return article_payload(article)


@router.put("/{article_id}")
def update_article(article_id: int, body: ArticleIn, service: ArticleService = Depends(get_service)):
    article = service.update_article(article_id, title=body.title, content=body.content, category=body.category)
    if not article:
        raise HTTPException(status_code=404, detail=f"Article not found: {article_id}")
    return article_payload(article)


@router.delete("/{article_id}", status_code=204)
def delete_article(article_id: int, service: ArticleService = Depends(get_service)):
    if not service.delete_article(article_id):
        raise HTTPException(status_code=404, detail=f"Article not found: {article_id}")
