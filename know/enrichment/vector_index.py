from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from sqlalchemy import Column, Integer, LargeBinary, MetaData, Table, create_engine, delete, event, insert, select, text
from sqlalchemy.engine import Engine

from .models import ArticleRecord
from .repository import ArticleRepository

logger = logging.getLogger(__name__)

# Entries at or beyond this cosine distance (orthogonal or opposite) never match.
MAX_COSINE_DISTANCE = 1.0

VECTOR_DTYPE = np.dtype("<f4")


class VectorDimensionError(ValueError):
    pass


def pack_vector(vector: Sequence[float]) -> bytes:
    """Encode as packed little-endian float32, the persisted blob layout."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def unpack_vector(blob: bytes) -> np.ndarray:
    if len(blob) % VECTOR_DTYPE.itemsize:
        raise ValueError(f"Vector blob length {len(blob)} is not a multiple of {VECTOR_DTYPE.itemsize}")
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


class VectorBackend(Protocol):
    name: str

    def probe(self) -> bool:
        ...

    def upsert(self, article_id: int, blob: bytes) -> None:
        ...

    def delete(self, article_id: int) -> None:
        ...

    def clear(self) -> None:
        ...

    def nearest(self, query_blob: bytes, limit: int) -> List[Tuple[int, float]]:
        """Return (article_id, distance) with distance < 1.0, ascending, at most `limit`."""
        ...


class SqliteVecBackend:
    """
    Native backend on the sqlite-vec extension. Vectors live in a `vec0`
    virtual table keyed by article id; search is a ranged scan on
    `vec_distance_cosine` ordered ascending with a LIMIT.

    The extension is loaded into every new DBAPI connection of a dedicated
    engine, so the connections the article repository already pooled are
    never touched.
    """

    name = "sqlite-vec"

    def __init__(self, database_url: str, dimension: int, table_name: str = "vec_articles"):
        self.dimension = dimension
        self.table_name = table_name
        self.engine: Engine = create_engine(database_url, future=True)
        if self.engine.dialect.name != "sqlite":
            raise RuntimeError(f"sqlite-vec requires a SQLite database, got {self.engine.dialect.name}")
        event.listen(self.engine, "connect", self._load_extension)

    @staticmethod
    def _load_extension(dbapi_connection, connection_record) -> None:
        import sqlite_vec

        dbapi_connection.enable_load_extension(True)
        try:
            sqlite_vec.load(dbapi_connection)
        finally:
            dbapi_connection.enable_load_extension(False)

    def probe(self) -> bool:
        with self.engine.begin() as conn:
            version = conn.execute(text("SELECT vec_version()")).scalar()
            conn.execute(
                text(
                    f"CREATE VIRTUAL TABLE IF NOT EXISTS {self.table_name} USING vec0("
                    f"article_id INTEGER PRIMARY KEY, embedding float[{self.dimension}])"
                )
            )
        logger.info("sqlite-vec %s loaded; using table %s (dimension %s)", version, self.table_name, self.dimension)
        return True

    def upsert(self, article_id: int, blob: bytes) -> None:
        # vec0 tables have no UPSERT; delete and insert in one transaction.
        with self.engine.begin() as conn:
            conn.execute(text(f"DELETE FROM {self.table_name} WHERE article_id = :id"), {"id": article_id})
            conn.execute(
                text(f"INSERT INTO {self.table_name}(article_id, embedding) VALUES (:id, :embedding)"),
                {"id": article_id, "embedding": blob},
            )

    def delete(self, article_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(f"DELETE FROM {self.table_name} WHERE article_id = :id"), {"id": article_id})

    def clear(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(f"DELETE FROM {self.table_name}"))

    def nearest(self, query_blob: bytes, limit: int) -> List[Tuple[int, float]]:
        sql = text(
            f"""
            SELECT article_id, vec_distance_cosine(embedding, :query) AS distance
            FROM {self.table_name}
            WHERE vec_distance_cosine(embedding, :query) < :max_distance
            ORDER BY distance
            LIMIT :limit
            """
        )
        with self.engine.connect() as conn:
            rows = conn.execute(
                sql, {"query": query_blob, "max_distance": MAX_COSINE_DISTANCE, "limit": limit}
            ).all()
        return [(int(row.article_id), float(row.distance)) for row in rows]


class BlobTableBackend:
    """
    Portable backend: a plain `(article_id, embedding BLOB)` table in the same
    database as the articles, scanned and ranked with numpy. Fine for small
    and medium corpora and for hosts where the native extension is missing.
    """

    name = "blob"

    def __init__(self, engine: Engine, dimension: int, table_name: str = "article_vectors"):
        self.engine = engine
        self.dimension = dimension
        self.metadata = MetaData()
        self.table = Table(
            table_name,
            self.metadata,
            Column("article_id", Integer, primary_key=True),
            Column("embedding", LargeBinary, nullable=False),
        )

    def probe(self) -> bool:
        self.metadata.create_all(self.engine)
        return True

    def upsert(self, article_id: int, blob: bytes) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(self.table).where(self.table.c.article_id == article_id))
            conn.execute(insert(self.table).values(article_id=article_id, embedding=blob))

    def delete(self, article_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(self.table).where(self.table.c.article_id == article_id))

    def clear(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(self.table))

    def nearest(self, query_blob: bytes, limit: int) -> List[Tuple[int, float]]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(self.table.c.article_id, self.table.c.embedding)).all()
        if not rows:
            return []
        ids = np.array([row.article_id for row in rows], dtype=np.int64)
        matrix = np.vstack([unpack_vector(row.embedding) for row in rows]).astype(np.float64)
        query = unpack_vector(query_blob).astype(np.float64)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarity = np.where(norms > 0, matrix @ query / norms, 0.0)
        distances = 1.0 - similarity

        candidates = np.flatnonzero(distances < MAX_COSINE_DISTANCE)
        order = candidates[np.argsort(distances[candidates], kind="stable")][:limit]
        return [(int(ids[i]), float(distances[i])) for i in order]


class VectorIndex:
    """
    Fixed-dimension nearest-neighbour index keyed by article id.

    A `None` backend means the index is disabled (degraded mode): writes are
    no-ops and searches return nothing. The reason is logged once, when the
    index is built, never per call.
    """

    def __init__(
        self,
        backend: Optional[VectorBackend],
        repository: ArticleRepository,
        dimension: int,
        disabled_reason: Optional[str] = None,
    ):
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.backend = backend
        self.repo = repository
        self.dimension = dimension
        if backend is None:
            logger.warning("Vector index disabled: %s", disabled_reason or "no backend configured")

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise VectorDimensionError(f"Expected a {self.dimension}-dimensional vector, got {len(vector)}")

    def upsert(self, article_id: int, vector: Sequence[float]) -> bool:
        """Store the vector for `article_id`, replacing any previous one. Returns False when disabled."""
        if self.backend is None:
            return False
        self._check_dimension(vector)
        self.backend.upsert(article_id, pack_vector(vector))
        logger.debug("Stored %s-dimensional vector for article %s", self.dimension, article_id)
        return True

    def delete(self, article_id: int) -> None:
        if self.backend is None:
            return
        self.backend.delete(article_id)

    def clear(self) -> None:
        if self.backend is None:
            return
        self.backend.clear()

    def search(self, query_vector: Sequence[float], k: int) -> List[Tuple[ArticleRecord, float]]:
        """
        Up to `k` (article, cosine distance) pairs, nearest first. Entries whose
        article no longer exists are skipped; the backend is asked for more
        candidates until `k` live articles are found or it runs dry.
        """
        if self.backend is None or k <= 0:
            return []
        self._check_dimension(query_vector)
        query_blob = pack_vector(query_vector)

        limit = k
        while True:
            hits = self.backend.nearest(query_blob, limit)
            articles = self.repo.get_articles(article_id for article_id, _ in hits)
            results = [(articles[article_id], distance) for article_id, distance in hits if article_id in articles]
            stale = len(hits) - len(results)
            if stale:
                logger.debug("Skipped %s stale vector entries without an article", stale)
            if len(results) >= k or len(hits) < limit:
                return results[:k]
            limit *= 2


def build_vector_index(
    backend_name: str,
    repository: ArticleRepository,
    dimension: int,
    database_url: Optional[str] = None,
    engine: Optional[Engine] = None,
) -> VectorIndex:
    """
    Probe the configured backend once. Any failure (extension missing,
    platform mismatch, non-SQLite database) degrades the index instead of
    raising.
    """
    if backend_name == "disabled":
        return VectorIndex(None, repository, dimension, disabled_reason="disabled by configuration")

    try:
        if backend_name == "sqlite-vec":
            if not database_url:
                raise ValueError("sqlite-vec backend needs a database URL")
            backend: VectorBackend = SqliteVecBackend(database_url, dimension)
        elif backend_name == "blob":
            if engine is None:
                raise ValueError("blob backend needs an engine")
            backend = BlobTableBackend(engine, dimension)
        else:
            raise ValueError(f"Unknown vector backend: {backend_name}")
        if not backend.probe():
            raise RuntimeError(f"{backend_name} probe returned false")
    except Exception as exc:  # noqa: BLE001
        return VectorIndex(None, repository, dimension, disabled_reason=f"{backend_name} unavailable ({exc})")

    return VectorIndex(backend, repository, dimension)
