from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from know.enrichment import ArticleRecord, enrichment_state


class ArticleIn(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    category: Optional[str] = None


def article_payload(article: ArticleRecord) -> dict:
    return {
        "id": article.id,
        "title": article.title,
        "content": article.content,
        "category": article.category,
        "tags": article.tag_list,
        "summary": article.summary,
        "has_embedding": article.has_embedding,
        "state": enrichment_state(article).value,
        "created_at": article.created_at.isoformat() if article.created_at else None,
        "updated_at": article.updated_at.isoformat() if article.updated_at else None,
    }
