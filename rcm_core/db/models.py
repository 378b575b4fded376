"""
SQLAlchemy Models for the live document store.
Source: https://docs.sqlalchemy.org/en/20/orm/declarative_styles.html
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimeStampedModel:
    """Mixin for models with created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class StoredDocument(Base, TimeStampedModel):
    """
    One document of any store table.

    `seq` preserves insertion order for scans; `body` holds the JSON
    document without the store-managed `id`, `tenant_id` and `version`.
    """

    __tablename__ = "documents"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    table_name: Mapped[str] = mapped_column(String(64), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (Index("ix_documents_table_tenant", "table_name", "tenant_id"),)

    def to_document(self) -> dict[str, Any]:
        """Rebuild the store document."""
        document = dict(self.body)
        document["id"] = self.id
        document["tenant_id"] = self.tenant_id
        document["version"] = self.version
        return document

    def __repr__(self) -> str:
        return f"<StoredDocument({self.table_name}/{self.id}, v{self.version})>"
