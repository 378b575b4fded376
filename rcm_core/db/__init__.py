"""
Document store module for the Revenue Cycle Core.

Exports the store interface, its bindings and connection utilities.
"""

from rcm_core.db.connection import (
    check_db_connection,
    close_db_connection,
    create_session_maker,
    create_tables,
    get_engine,
    get_session_maker,
)
from rcm_core.db.sql_store import SQLAlchemyDocumentStore
from rcm_core.db.store import (
    Document,
    DocumentStore,
    InMemoryDocumentStore,
    Page,
    Table,
)

__all__ = [
    # Store
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "Page",
    "SQLAlchemyDocumentStore",
    "Table",
    # Connection
    "get_engine",
    "get_session_maker",
    "create_session_maker",
    "create_tables",
    "close_db_connection",
    "check_db_connection",
]
