"""Key-value document store.

Every record the matching core persists goes through :class:`KeyValueStore`.
Documents are JSON-compatible dicts addressed by ``(collection, key)``.
``create_if_absent`` is the one primitive match creation relies on: it must be
atomic, so two racing writers on the same key cannot both succeed.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import ColumnElement, and_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.errors import PersistenceFailure
from models.document import Document

logger = logging.getLogger(__name__)

Doc = dict[str, Any]


class KeyValueStore(ABC):
    """Storage seam for swipes, matches and profiles."""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Doc | None:
        """Return the document stored under key, or None."""

    @abstractmethod
    async def upsert(self, collection: str, key: str, doc: Doc) -> None:
        """Insert or fully replace the document stored under key."""

    @abstractmethod
    async def query(self, collection: str, filters: dict[str, Any]) -> list[Doc]:
        """Return documents whose top-level fields equal every filter value."""

    @abstractmethod
    async def create_if_absent(self, collection: str, key: str, doc: Doc) -> bool:
        """Atomically insert doc unless key exists. Returns True if inserted."""


class MemoryKeyValueStore(KeyValueStore):
    """In-process store for tests and single-process runs.

    Each operation yields to the event loop before touching state, so
    concurrent callers interleave the way they would against a remote store.
    The check-and-set in ``create_if_absent`` runs without a suspension point.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Doc]] = {}

    def _bucket(self, collection: str) -> dict[str, Doc]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, key: str) -> Doc | None:
        await asyncio.sleep(0)
        doc = self._bucket(collection).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def upsert(self, collection: str, key: str, doc: Doc) -> None:
        await asyncio.sleep(0)
        self._bucket(collection)[key] = copy.deepcopy(doc)

    async def query(self, collection: str, filters: dict[str, Any]) -> list[Doc]:
        await asyncio.sleep(0)
        bucket = self._bucket(collection)
        return [
            copy.deepcopy(doc)
            for _, doc in sorted(bucket.items())
            if all(doc.get(field) == value for field, value in filters.items())
        ]

    async def create_if_absent(self, collection: str, key: str, doc: Doc) -> bool:
        await asyncio.sleep(0)
        bucket = self._bucket(collection)
        if key in bucket:
            return False
        bucket[key] = copy.deepcopy(doc)
        return True


def _field_clause(field: str, value: Any) -> ColumnElement[bool]:
    """Equality on one top-level JSON field, typed by the Python value."""
    element = Document.doc[field]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    raise ValueError(f"Unsupported filter value for {field}: {value!r}")


class SqlKeyValueStore(KeyValueStore):
    """Store backed by the ``documents`` table.

    Writes use INSERT ... ON CONFLICT, so the (collection, key) primary key
    makes ``create_if_absent`` atomic on PostgreSQL and SQLite alike.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    def _insert(self, collection: str, key: str, doc: Doc) -> Any:
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise PersistenceFailure(f"Unsupported database dialect: {dialect}")
        now = datetime.now(timezone.utc)
        return insert(Document).values(collection=collection, key=key, doc=doc, created_at=now, updated_at=now)

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Store {operation} failed: {e}")
            raise PersistenceFailure(f"Store {operation} failed") from e

    async def get(self, collection: str, key: str) -> Doc | None:
        async with self._session("get") as session:
            result = await session.execute(
                select(Document.doc).where(and_(Document.collection == collection, Document.key == key))
            )
            return result.scalar_one_or_none()

    async def upsert(self, collection: str, key: str, doc: Doc) -> None:
        async with self._session("upsert") as session:
            stmt = self._insert(collection, key, doc)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Document.collection, Document.key],
                set_={"doc": stmt.excluded.doc, "updated_at": stmt.excluded.updated_at},
            )
            await session.execute(stmt)
            await session.commit()

    async def query(self, collection: str, filters: dict[str, Any]) -> list[Doc]:
        conditions = [Document.collection == collection]
        conditions.extend(_field_clause(field, value) for field, value in filters.items())
        async with self._session("query") as session:
            result = await session.execute(select(Document.doc).where(and_(*conditions)).order_by(Document.key))
            return list(result.scalars().all())

    async def create_if_absent(self, collection: str, key: str, doc: Doc) -> bool:
        async with self._session("create_if_absent") as session:
            stmt = self._insert(collection, key, doc).on_conflict_do_nothing(
                index_elements=[Document.collection, Document.key]
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1
