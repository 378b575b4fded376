"""
SQLAlchemy Document Store.

Live binding of `DocumentStore` over a single `documents` table.
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rcm_core.db.models import StoredDocument
from rcm_core.db.store import (
    Document,
    DocumentStore,
    Table,
    _matches,
    _stamp_created,
    _table_name,
)
from rcm_core.utils.dates import utc_now
from rcm_core.utils.errors import ConcurrencyConflictError
from rcm_core.utils.logging import get_logger

logger = get_logger(__name__)


def _equals_condition(key: str, value: Any) -> Optional[ColumnElement[bool]]:
    """SQL condition for one normalized filter; None leaves it to the Python recheck."""
    if key == "id":
        return StoredDocument.id == value
    if key == "version":
        return StoredDocument.version == value

    field = StoredDocument.body[key]
    if value is None:
        # missing and JSON null both extract as SQL NULL
        return field.as_string().is_(None)
    if isinstance(value, bool):
        return field.as_boolean() == value
    if isinstance(value, int):
        return field.as_integer() == value
    if isinstance(value, str):
        return field.as_string() == value
    return None


class SQLAlchemyDocumentStore(DocumentStore):
    """
    Document store backed by an async SQLAlchemy session maker.

    Calls outside `transaction()` commit individually. Calls inside it
    share one session that commits when the block exits and rolls back
    if it raises.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._current: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"rcm_store_session_{id(self)}", default=None
        )

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = self._current.get()
        if session is not None:
            yield session
            return

        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLAlchemyDocumentStore"]:
        if self._current.get() is not None:
            yield self
            return

        async with self._session_maker() as session:
            token = self._current.set(session)
            try:
                yield self
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Store transaction rolled back: {e}")
                raise
            finally:
                self._current.reset(token)

    @staticmethod
    async def _load(session: AsyncSession, doc_id: str, for_update: bool = False) -> Optional[StoredDocument]:
        stmt = select(StoredDocument).where(StoredDocument.id == doc_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, table: "Table | str", doc_id: str) -> Optional[Document]:
        async with self._session() as session:
            row = await self._load(session, doc_id)
            if row is None or row.table_name != _table_name(table):
                return None
            return row.to_document()

    async def insert(self, table: "Table | str", document: Document) -> str:
        body = self.normalize(dict(document))
        doc_id = body.pop("id", None) or str(uuid4())
        tenant_id = body.pop("tenant_id")
        body.pop("version", None)
        now = utc_now().isoformat()
        _stamp_created(body, now)

        async with self._session() as session:
            session.add(
                StoredDocument(
                    id=doc_id,
                    table_name=_table_name(table),
                    tenant_id=tenant_id,
                    body=body,
                    version=1,
                )
            )
            await session.flush()
        return doc_id

    async def patch(
        self,
        table: "Table | str",
        doc_id: str,
        values: Document,
        expected_version: Optional[int] = None,
    ) -> Document:
        update = self.normalize(dict(values))
        for key in ("id", "tenant_id", "version"):
            update.pop(key, None)
        update.setdefault("updated_at", utc_now().isoformat())

        async with self._session() as session:
            row = await self._load(session, doc_id, for_update=True)
            if row is None or row.table_name != _table_name(table):
                raise KeyError(f"{_table_name(table)}/{doc_id}")
            if expected_version is not None and row.version != expected_version:
                raise ConcurrencyConflictError(
                    _table_name(table), doc_id, expected_version, row.version
                )

            # Reassign so the JSON column is flagged dirty
            row.body = {**row.body, **update}
            row.version = row.version + 1
            await session.flush()
            return row.to_document()

    async def find(
        self,
        table: "Table | str",
        tenant_id: str,
        **equals: Any,
    ) -> list[Document]:
        """
        Equality filters on scalar values run in SQL as JSON path comparisons;
        every row is rechecked in Python so both bindings agree on matches.
        """
        criteria = self.normalize(equals)
        conditions = [
            StoredDocument.table_name == _table_name(table),
            StoredDocument.tenant_id == tenant_id,
        ]
        for key, value in criteria.items():
            condition = _equals_condition(key, value)
            if condition is not None:
                conditions.append(condition)

        stmt = select(StoredDocument).where(*conditions).order_by(StoredDocument.seq)
        async with self._session() as session:
            result = await session.execute(stmt)
            documents = [row.to_document() for row in result.scalars().all()]
        return [doc for doc in documents if _matches(doc, criteria)]
