"""
Document Store Interface.

Transactional, tenant-partitioned key/document store the core runs on.
Two bindings exist: an in-memory store for demo mode and tests, and a
SQLAlchemy-backed store for live mode (see `rcm_core.db.sql_store`).

Every stored document carries `id`, `tenant_id`, `created_at`,
`updated_at` and `version`; `version` starts at 1 and is incremented on
every patch.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from pydantic_core import to_jsonable_python

from rcm_core.utils.dates import utc_now
from rcm_core.utils.errors import ConcurrencyConflictError
from rcm_core.utils.logging import get_logger

logger = get_logger(__name__)

Document = dict[str, Any]

# (table, id) -> document before the transaction first wrote it; None when it inserted it
_Journal = dict[tuple[str, str], Optional[Document]]


class Table(str, Enum):
    """Store tables used by the core."""

    CLAIMS = "claims"
    DENIALS = "denials"
    APPEALS = "appeals"
    REMITTANCE_BATCHES = "remittance_batches"
    PAYER_RULES = "payer_rules"
    FEE_SCHEDULES = "fee_schedules"
    PRACTICES = "practices"
    PATIENTS = "patients"
    APPOINTMENTS = "appointments"
    PAYMENTS = "payments"
    TASKS = "tasks"
    NOTIFICATIONS = "notifications"


@dataclass
class Page:
    """One page of a cursor-paginated scan."""

    page: list[Document] = field(default_factory=list)
    is_done: bool = True
    continue_cursor: Optional[str] = None


def _table_name(table: "Table | str") -> str:
    return table.value if isinstance(table, Table) else table


def _matches(document: Document, equals: dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in equals.items())


def _stamp_created(document: Document, now: str) -> None:
    # Missing or null timestamps default to the insert time
    if not document.get("created_at"):
        document["created_at"] = now
    if not document.get("updated_at"):
        document["updated_at"] = document["created_at"]


class DocumentStore(ABC):
    """
    Abstract document store.

    Reads return copies; mutating a returned document never changes the
    stored one.
    """

    @abstractmethod
    async def get(self, table: "Table | str", doc_id: str) -> Optional[Document]:
        """Get a document by ID (any tenant)."""

    @abstractmethod
    async def insert(self, table: "Table | str", document: Document) -> str:
        """Insert a document and return its new ID."""

    @abstractmethod
    async def patch(
        self,
        table: "Table | str",
        doc_id: str,
        values: Document,
        expected_version: Optional[int] = None,
    ) -> Document:
        """
        Shallow-merge values into a document.

        Raises:
            KeyError: If the document does not exist
            ConcurrencyConflictError: If expected_version is given and stale
        """

    @abstractmethod
    async def find(
        self,
        table: "Table | str",
        tenant_id: str,
        **equals: Any,
    ) -> list[Document]:
        """Scan a tenant's documents, in insertion order, filtered by field equality."""

    @abstractmethod
    def transaction(self):  # type: ignore[no-untyped-def]
        """Async context manager committing all writes inside it or none."""

    async def first(
        self,
        table: "Table | str",
        tenant_id: str,
        **equals: Any,
    ) -> Optional[Document]:
        """First matching document, if any."""
        results = await self.find(table, tenant_id, **equals)
        return results[0] if results else None

    async def get_owned(
        self,
        table: "Table | str",
        doc_id: Optional[str],
        tenant_id: str,
    ) -> Optional[Document]:
        """Get a document only if it belongs to the tenant."""
        if not doc_id:
            return None
        document = await self.get(table, doc_id)
        if document is None or document.get("tenant_id") != tenant_id:
            return None
        return document

    async def paginate(
        self,
        table: "Table | str",
        tenant_id: str,
        num_items: int,
        cursor: Optional[str] = None,
        **equals: Any,
    ) -> Page:
        """Page through a tenant's documents; the cursor is an opaque offset."""
        results = await self.find(table, tenant_id, **equals)
        start = int(cursor) if cursor else 0
        end = start + max(num_items, 0)
        page = results[start:end]
        is_done = end >= len(results)
        return Page(
            page=page,
            is_done=is_done,
            continue_cursor=None if is_done else str(end),
        )

    @staticmethod
    def normalize(values: dict[str, Any]) -> dict[str, Any]:
        """Convert enums, Decimals and datetimes to their stored JSON form."""
        return to_jsonable_python(values)


class InMemoryDocumentStore(DocumentStore):
    """
    In-memory store for demo mode and tests.

    Outermost transactions run one at a time and journal the prior state
    of every document they write; a block that raises restores only those
    documents. A transaction opened inside another one (same task, or a
    task it spawned) joins it.
    """

    def __init__(self):
        self._tables: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()
        self._journal: ContextVar[Optional[_Journal]] = ContextVar(
            f"memory_store_journal_{id(self)}", default=None
        )

    def _table(self, table: "Table | str") -> dict[str, Document]:
        return self._tables.setdefault(_table_name(table), {})

    async def get(self, table: "Table | str", doc_id: str) -> Optional[Document]:
        document = self._table(table).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def insert(self, table: "Table | str", document: Document) -> str:
        stored = self.normalize(dict(document))
        doc_id = stored.get("id") or str(uuid4())
        now = utc_now().isoformat()
        stored["id"] = doc_id
        _stamp_created(stored, now)
        stored["version"] = 1
        self._record(table, doc_id)
        self._table(table)[doc_id] = stored
        return doc_id

    async def patch(
        self,
        table: "Table | str",
        doc_id: str,
        values: Document,
        expected_version: Optional[int] = None,
    ) -> Document:
        documents = self._table(table)
        if doc_id not in documents:
            raise KeyError(f"{_table_name(table)}/{doc_id}")

        current = documents[doc_id]
        if expected_version is not None and current["version"] != expected_version:
            raise ConcurrencyConflictError(
                _table_name(table), doc_id, expected_version, current["version"]
            )

        self._record(table, doc_id)
        update = self.normalize(dict(values))
        update.pop("id", None)
        update.pop("tenant_id", None)
        update.setdefault("updated_at", utc_now().isoformat())
        current.update(update)
        current["version"] += 1
        return copy.deepcopy(current)

    async def find(
        self,
        table: "Table | str",
        tenant_id: str,
        **equals: Any,
    ) -> list[Document]:
        criteria = self.normalize(equals)
        return [
            copy.deepcopy(document)
            for document in self._table(table).values()
            if document.get("tenant_id") == tenant_id and _matches(document, criteria)
        ]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryDocumentStore"]:
        if self._journal.get() is not None:
            yield self
            return

        async with self._lock:
            journal: _Journal = {}
            token = self._journal.set(journal)
            try:
                yield self
            except BaseException:
                self._undo(journal)
                logger.warning(f"In-memory transaction rolled back ({len(journal)} documents)")
                raise
            finally:
                self._journal.reset(token)

    def _record(self, table: "Table | str", doc_id: str) -> None:
        journal = self._journal.get()
        if journal is None:
            return
        key = (_table_name(table), doc_id)
        if key not in journal:
            previous = self._table(table).get(doc_id)
            journal[key] = copy.deepcopy(previous) if previous is not None else None

    def _undo(self, journal: _Journal) -> None:
        for (table, doc_id), previous in journal.items():
            if previous is None:
                self._table(table).pop(doc_id, None)
            else:
                self._table(table)[doc_id] = previous

    # =========================================================================
    # Demo Data
    # =========================================================================

    def seed_documents(self, table: "Table | str", documents: list[Document]) -> list[str]:
        """
        Seed documents synchronously (fixtures, demo data).

        Documents keep their `id` when they carry one.
        """
        ids = []
        for document in documents:
            stored = self.normalize(dict(document))
            doc_id = stored.get("id") or str(uuid4())
            now = utc_now().isoformat()
            stored["id"] = doc_id
            _stamp_created(stored, now)
            stored["version"] = 1
            self._table(table)[doc_id] = stored
            ids.append(doc_id)
        return ids

    def clear(self) -> None:
        """Drop all documents."""
        self._tables.clear()

    def count(self, table: "Table | str") -> int:
        """Number of documents in a table (all tenants)."""
        return len(self._table(table))
