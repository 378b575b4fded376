"""
Base Document Schema
Fields shared by every tenant-owned document in the store.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TenantDocument(BaseModel):
    """
    Base class for tenant-partitioned store documents.

    `version` is maintained by the store and incremented on every patch.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = Field(None, description="Store-assigned document ID")
    tenant_id: str = Field(..., min_length=1, description="Owning tenant ID")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible store document."""
        return self.model_dump(mode="json", exclude={"id", "version"})
