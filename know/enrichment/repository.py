from __future__ import annotations

import itertools
import json
import threading
from copy import deepcopy
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import ArticleRecord

Base = declarative_base()


class ArticleModel(Base):
    __tablename__ = "articles"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String)
    tags_json = Column(String)
    summary = Column(Text)
    has_embedding = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ArticleRepository:
    """
    Persistence boundary for articles. The enrichment pipeline only needs
    read-by-id and partial-field updates; the write path adds create, edit and
    delete. All methods are synchronous; the pipeline calls them between its
    external-call suspension points.

    Partial updates return a falsy value when the article no longer exists so
    callers can tell a vanished article apart from a successful write.
    """

    def get_article(self, article_id: int) -> Optional[ArticleRecord]:
        raise NotImplementedError

    def get_articles(self, article_ids: Iterable[int]) -> Dict[int, ArticleRecord]:
        raise NotImplementedError

    def list_articles(self) -> List[ArticleRecord]:
        raise NotImplementedError

    def create_article(self, title: str, content: str, category: Optional[str] = None) -> ArticleRecord:
        raise NotImplementedError

    def update_content(
        self,
        article_id: int,
        title: str,
        content: str,
        category: Optional[str] = None,
    ) -> Optional[Tuple[ArticleRecord, List[str]]]:
        """
        Replace title/content/category and reset every enrichment field.
        Returns the updated record and the tags it carried before the edit.
        """
        raise NotImplementedError

    def update_tags(self, article_id: int, tags: List[str]) -> Optional[List[str]]:
        """Store tags verbatim; returns the tags that were replaced."""
        raise NotImplementedError

    def reset_tags(self, article_id: int) -> Optional[List[str]]:
        """Mark tags pending again; returns the tags that were cleared."""
        raise NotImplementedError

    def update_summary(self, article_id: int, summary: str) -> bool:
        raise NotImplementedError

    def set_has_embedding(self, article_id: int, value: bool) -> bool:
        raise NotImplementedError

    def delete_article(self, article_id: int) -> Optional[ArticleRecord]:
        raise NotImplementedError

    def delete_all(self) -> int:
        raise NotImplementedError

    def iter_tag_sets(self) -> Iterable[List[str]]:
        raise NotImplementedError


class InMemoryArticleRepository(ArticleRepository):
    """
    Dict-backed store for local runs and tests. Keeps copies of the
    dataclasses to avoid cross-mutation between calls and guards every access
    with a lock since HTTP handler threads and the event loop share it.
    """

    def __init__(self):
        self.articles: Dict[int, ArticleRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _clone(self, obj):
        return deepcopy(obj)

    def get_article(self, article_id: int) -> Optional[ArticleRecord]:
        with self._lock:
            article = self.articles.get(article_id)
            return self._clone(article) if article else None

    def get_articles(self, article_ids: Iterable[int]) -> Dict[int, ArticleRecord]:
        with self._lock:
            return {i: self._clone(self.articles[i]) for i in article_ids if i in self.articles}

    def list_articles(self) -> List[ArticleRecord]:
        with self._lock:
            ordered = sorted(self.articles.values(), key=lambda a: (a.created_at, a.id), reverse=True)
            return [self._clone(a) for a in ordered]

    def create_article(self, title: str, content: str, category: Optional[str] = None) -> ArticleRecord:
        with self._lock:
            article = ArticleRecord(id=next(self._ids), title=title, content=content, category=category)
            self.articles[article.id] = article
            return self._clone(article)

    def update_content(
        self,
        article_id: int,
        title: str,
        content: str,
        category: Optional[str] = None,
    ) -> Optional[Tuple[ArticleRecord, List[str]]]:
        with self._lock:
            article = self.articles.get(article_id)
            if not article:
                return None
            previous_tags = article.tag_list
            article.title = title
            article.content = content
            article.category = category
            article.tags = None
            article.summary = None
            article.has_embedding = False
            article.updated_at = datetime.utcnow()
            return self._clone(article), previous_tags

    def update_tags(self, article_id: int, tags: List[str]) -> Optional[List[str]]:
        with self._lock:
            article = self.articles.get(article_id)
            if not article:
                return None
            previous = article.tag_list
            article.tags = list(tags)
            article.updated_at = datetime.utcnow()
            return previous

    def reset_tags(self, article_id: int) -> Optional[List[str]]:
        with self._lock:
            article = self.articles.get(article_id)
            if not article:
                return None
            previous = article.tag_list
            article.tags = None
            return previous

    def update_summary(self, article_id: int, summary: str) -> bool:
        with self._lock:
            article = self.articles.get(article_id)
            if not article:
                return False
            article.summary = summary
            article.updated_at = datetime.utcnow()
            return True

    def set_has_embedding(self, article_id: int, value: bool) -> bool:
        with self._lock:
            article = self.articles.get(article_id)
            if not article:
                return False
            article.has_embedding = value
            return True

    def delete_article(self, article_id: int) -> Optional[ArticleRecord]:
        with self._lock:
            return self.articles.pop(article_id, None)

    def delete_all(self) -> int:
        with self._lock:
            count = len(self.articles)
            self.articles.clear()
            return count

    def iter_tag_sets(self) -> Iterable[List[str]]:
        with self._lock:
            return [a.tag_list for a in self.articles.values() if a.tags]


class SqlAlchemyArticleRepository(ArticleRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    Tags are stored as a JSON array string; NULL marks an untagged article.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if not database_url:
                raise ValueError("Either database_url or engine is required")
            engine = create_engine(database_url, future=True)
        self.engine = engine
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    @staticmethod
    def _decode_tags(raw: Optional[str]) -> Optional[List[str]]:
        if raw is None:
            return None
        return list(json.loads(raw))

    def _to_record(self, model: ArticleModel) -> ArticleRecord:
        return ArticleRecord(
            id=model.id,
            title=model.title,
            content=model.content,
            category=model.category,
            tags=self._decode_tags(model.tags_json),
            summary=model.summary,
            has_embedding=bool(model.has_embedding),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    # region Reads
    def get_article(self, article_id: int) -> Optional[ArticleRecord]:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            return self._to_record(model) if model else None

    def get_articles(self, article_ids: Iterable[int]) -> Dict[int, ArticleRecord]:
        ids = list(article_ids)
        if not ids:
            return {}
        with self._session() as session:
            stmt = select(ArticleModel).where(ArticleModel.id.in_(ids))
            return {m.id: self._to_record(m) for m in session.execute(stmt).scalars().all()}

    def list_articles(self) -> List[ArticleRecord]:
        with self._session() as session:
            stmt = select(ArticleModel).order_by(ArticleModel.created_at.desc(), ArticleModel.id.desc())
            return [self._to_record(m) for m in session.execute(stmt).scalars().all()]

    def iter_tag_sets(self) -> Iterable[List[str]]:
        # Only the tags column; the cache warm-up should not pull article bodies.
        with self._session() as session:
            stmt = select(ArticleModel.tags_json).where(ArticleModel.tags_json.is_not(None))
            rows = session.execute(stmt).scalars().all()
        return [tags for tags in (self._decode_tags(raw) for raw in rows) if tags]

    # endregion

    # region Writes
    def create_article(self, title: str, content: str, category: Optional[str] = None) -> ArticleRecord:
        now = datetime.utcnow()
        with self._session() as session:
            model = ArticleModel(
                title=title,
                content=content,
                category=category,
                tags_json=None,
                summary=None,
                has_embedding=False,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            session.commit()
            return self._to_record(model)

    def update_content(
        self,
        article_id: int,
        title: str,
        content: str,
        category: Optional[str] = None,
    ) -> Optional[Tuple[ArticleRecord, List[str]]]:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            if not model:
                return None
            previous_tags = self._decode_tags(model.tags_json) or []
            model.title = title
            model.content = content
            model.category = category
            model.tags_json = None
            model.summary = None
            model.has_embedding = False
            model.updated_at = datetime.utcnow()
            session.commit()
            return self._to_record(model), previous_tags

    def update_tags(self, article_id: int, tags: List[str]) -> Optional[List[str]]:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            if not model:
                return None
            previous = self._decode_tags(model.tags_json) or []
            model.tags_json = json.dumps(list(tags), ensure_ascii=False)
            model.updated_at = datetime.utcnow()
            session.commit()
            return previous

    def reset_tags(self, article_id: int) -> Optional[List[str]]:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            if not model:
                return None
            previous = self._decode_tags(model.tags_json) or []
            model.tags_json = None
            session.commit()
            return previous

    def update_summary(self, article_id: int, summary: str) -> bool:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            if not model:
                return False
            model.summary = summary
            model.updated_at = datetime.utcnow()
            session.commit()
            return True

    def set_has_embedding(self, article_id: int, value: bool) -> bool:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            if not model:
                return False
            model.has_embedding = value
            session.commit()
            return True

    def delete_article(self, article_id: int) -> Optional[ArticleRecord]:
        with self._session() as session:
            model = session.get(ArticleModel, article_id)
            if not model:
                return None
            record = self._to_record(model)
            session.delete(model)
            session.commit()
            return record

    def delete_all(self) -> int:
        with self._session() as session:
            result = session.execute(delete(ArticleModel))
            session.commit()
            return result.rowcount or 0

    # endregion
