"""
Base Tenant-Scoped Service.

Shared wiring for the core services: document store, settings, clock and
audit sink, plus tenant checks and claim loading.
"""

from typing import Optional

from rcm_core.core.config import RCMSettings, get_settings
from rcm_core.core.enums import AuditAction
from rcm_core.db.store import DocumentStore, Table
from rcm_core.schemas.claim import Claim
from rcm_core.services.sinks import AuditSink, LoggingAuditSink, emit_audit
from rcm_core.utils.dates import Clock, utc_now
from rcm_core.utils.errors import NotFoundError, UnauthenticatedError


def require_tenant(tenant_id: Optional[str]) -> str:
    """
    Validate the caller's tenant ID.

    Raises:
        UnauthenticatedError: If no tenant was supplied
    """
    if tenant_id is None or not str(tenant_id).strip():
        raise UnauthenticatedError()
    return str(tenant_id)


class TenantScopedService:
    """Base class for services operating on one tenant's documents."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[RCMSettings] = None,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.audit = audit or LoggingAuditSink()
        self._clock = clock or utc_now

    def now(self):
        """Current time from the injected clock."""
        return self._clock()

    async def _load_claim(self, tenant_id: str, claim_id: Optional[str]) -> Claim:
        """
        Load a claim owned by the tenant.

        Raises:
            NotFoundError: If the claim is missing or owned by another tenant
        """
        document = await self.store.get_owned(Table.CLAIMS, claim_id, tenant_id)
        if document is None:
            raise NotFoundError("Claim")
        return Claim.model_validate(document)

    async def _audit(
        self,
        tenant_id: str,
        action: AuditAction,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
        phi_accessed: bool = False,
        actor_id: Optional[str] = None,
    ) -> None:
        await emit_audit(
            self.audit,
            tenant_id,
            action,
            resource_type,
            resource_id=resource_id,
            details=details,
            phi_accessed=phi_accessed,
            actor_id=actor_id,
        )
