"""
Revenue Cycle Operations.

Tenant-scoped public surface of the core. Every operation takes the
caller's tenant ID first; inputs are validated here and errors surface as
`RCMError` subclasses.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from rcm_core.core.config import RCMSettings, get_settings
from rcm_core.core.enums import (
    AgeBucket,
    ClaimStatus,
    ExceptionResolution,
    FollowUpAction,
    MatchStatus,
    StoreMode,
)
from rcm_core.db.connection import get_session_maker
from rcm_core.db.sql_store import SQLAlchemyDocumentStore
from rcm_core.db.store import DocumentStore, InMemoryDocumentStore
from rcm_core.schemas.analytics import (
    AgingReport,
    PayerAlertRequest,
    PayerAlertResult,
    PayerBehavior,
    WorklistItem,
)
from rcm_core.schemas.claim import (
    Claim,
    ClaimAge,
    ClaimCreate,
    ClaimPage,
    ClaimStats,
    ClaimStatusUpdate,
    ScrubIssue,
    ScrubResult,
)
from rcm_core.schemas.remittance import (
    BatchListing,
    BulkResolveItem,
    BulkResolveResult,
    ExceptionListing,
    ExceptionResolutionRequest,
    IngestResult,
    PatientStatement,
    ReconciliationSummary,
    RemittanceBatchDetail,
    RemittanceIngest,
    ResolutionResult,
    StatementRequest,
)
from rcm_core.services.aging import AgingAndPrioritizationEngine
from rcm_core.services.claim_lifecycle import ClaimLifecycleManager
from rcm_core.services.remittance import RemittanceReconciler
from rcm_core.services.sinks import AuditSink, NotificationSink, PaymentSink, TaskSink
from rcm_core.utils.dates import Clock
from rcm_core.utils.errors import ValidationFailedError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_input(model: type[ModelT], data: Union[ModelT, dict[str, Any]]) -> ModelT:
    """
    Coerce operation input to its schema.

    Raises:
        ValidationFailedError: If the input does not match the schema
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationFailedError(
            f"Invalid {model.__name__} input",
            e.errors(include_url=False, include_context=False),
        ) from e


def create_store(settings: Optional[RCMSettings] = None) -> DocumentStore:
    """Document store for the configured mode."""
    settings = settings or get_settings()
    if settings.STORE_MODE == StoreMode.LIVE:
        return SQLAlchemyDocumentStore(get_session_maker(settings))
    return InMemoryDocumentStore()


class RevenueCycleOperations:
    """Claim, remittance and A/R operations over one document store."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        settings: Optional[RCMSettings] = None,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        payments: Optional[PaymentSink] = None,
        tasks: Optional[TaskSink] = None,
        notifications: Optional[NotificationSink] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or create_store(self.settings)
        self.claims = ClaimLifecycleManager(
            self.store, settings=self.settings, audit=audit, clock=clock
        )
        self.remittance = RemittanceReconciler(
            self.store,
            settings=self.settings,
            audit=audit,
            clock=clock,
            payments=payments,
            tasks=tasks,
        )
        self.aging = AgingAndPrioritizationEngine(
            self.store,
            settings=self.settings,
            audit=audit,
            clock=clock,
            tasks=tasks,
            notifications=notifications,
        )
        logger.info(f"Revenue cycle operations ready ({type(self.store).__name__})")

    # =========================================================================
    # Claims
    # =========================================================================

    async def create_claim(
        self, tenant_id: str, data: Union[ClaimCreate, dict[str, Any]]
    ) -> Claim:
        return await self.claims.create(tenant_id, validate_input(ClaimCreate, data))

    async def scrub_claim(self, tenant_id: str, claim_id: str) -> ScrubResult:
        return await self.claims.scrub(tenant_id, claim_id)

    async def submit_claim(
        self, tenant_id: str, claim_id: str, submitted_by: Optional[str] = None
    ) -> Claim:
        return await self.claims.submit(tenant_id, claim_id, submitted_by=submitted_by)

    async def update_claim_status(
        self,
        tenant_id: str,
        claim_id: str,
        update: Union[ClaimStatusUpdate, dict[str, Any]],
    ) -> Claim:
        return await self.claims.update_status(
            tenant_id, claim_id, validate_input(ClaimStatusUpdate, update)
        )

    async def recalculate_claim_age(self, tenant_id: str, claim_id: str) -> ClaimAge:
        return await self.claims.recalculate_age(tenant_id, claim_id)

    async def get_claim(self, tenant_id: str, claim_id: str) -> Claim:
        return await self.claims.get_claim(tenant_id, claim_id)

    async def list_claims(
        self,
        tenant_id: str,
        status: Optional[ClaimStatus] = None,
        payer_id: Optional[str] = None,
        age_bucket: Optional[AgeBucket] = None,
        practice_id: Optional[str] = None,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> ClaimPage:
        return await self.claims.list_claims(
            tenant_id,
            status=status,
            payer_id=payer_id,
            age_bucket=age_bucket,
            practice_id=practice_id,
            limit=limit,
            cursor=cursor,
        )

    async def get_claims_by_patient(self, tenant_id: str, patient_id: str) -> list[Claim]:
        return await self.claims.get_claims_by_patient(tenant_id, patient_id)

    async def get_scrub_errors(self, tenant_id: str, claim_id: str) -> list[ScrubIssue]:
        return await self.claims.get_scrub_errors(tenant_id, claim_id)

    async def get_claim_stats(self, tenant_id: str) -> ClaimStats:
        return await self.claims.get_claim_stats(tenant_id)

    # =========================================================================
    # Remittance
    # =========================================================================

    async def ingest_remittance(
        self, tenant_id: str, remittance: Union[RemittanceIngest, dict[str, Any]]
    ) -> IngestResult:
        return await self.remittance.ingest(tenant_id, validate_input(RemittanceIngest, remittance))

    async def resolve_remittance_exception(
        self,
        tenant_id: str,
        request: Union[ExceptionResolutionRequest, dict[str, Any]],
    ) -> ResolutionResult:
        return await self.remittance.resolve_exception(
            tenant_id, validate_input(ExceptionResolutionRequest, request)
        )

    async def bulk_resolve_remittance_exceptions(
        self,
        tenant_id: str,
        items: list[Union[BulkResolveItem, dict[str, Any]]],
        resolution: Union[ExceptionResolution, str],
        adjusted_amount: Optional[Decimal] = None,
    ) -> BulkResolveResult:
        try:
            resolution = ExceptionResolution(resolution)
        except ValueError as e:
            raise ValidationFailedError(f"Invalid resolution: {resolution}") from e
        return await self.remittance.bulk_resolve(
            tenant_id,
            [validate_input(BulkResolveItem, item) for item in items],
            resolution,
            adjusted_amount=adjusted_amount,
        )

    async def list_remittance_batches(
        self,
        tenant_id: str,
        match_status: Optional[MatchStatus] = None,
        limit: int = 50,
    ) -> BatchListing:
        return await self.remittance.list_batches(tenant_id, match_status=match_status, limit=limit)

    async def get_remittance_batch(self, tenant_id: str, batch_id: str) -> RemittanceBatchDetail:
        return await self.remittance.get_batch(tenant_id, batch_id)

    async def get_remittance_exceptions(self, tenant_id: str, limit: int = 50) -> ExceptionListing:
        return await self.remittance.get_exceptions(tenant_id, limit=limit)

    async def get_reconciliation_summary(self, tenant_id: str) -> ReconciliationSummary:
        return await self.remittance.get_reconciliation_summary(tenant_id)

    async def generate_patient_statement(
        self, tenant_id: str, request: Union[StatementRequest, dict[str, Any]]
    ) -> PatientStatement:
        return await self.remittance.generate_statement(
            tenant_id, validate_input(StatementRequest, request)
        )

    # =========================================================================
    # A/R
    # =========================================================================

    async def get_aging_report(
        self, tenant_id: str, practice_id: Optional[str] = None
    ) -> AgingReport:
        return await self.aging.get_aging_report(tenant_id, practice_id=practice_id)

    async def get_prioritized_worklist(
        self, tenant_id: str, limit: Optional[int] = None
    ) -> list[WorklistItem]:
        return await self.aging.get_prioritized_worklist(tenant_id, limit=limit)

    async def get_payer_behavior(self, tenant_id: str) -> list[PayerBehavior]:
        return await self.aging.get_payer_behavior(tenant_id)

    async def get_open_claims_by_payer(self, tenant_id: str, payer_id: str) -> list[Claim]:
        return await self.aging.get_open_claims_by_payer(tenant_id, payer_id)

    async def write_off(
        self,
        tenant_id: str,
        claim_id: str,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Claim:
        return await self.aging.write_off(tenant_id, claim_id, reason=reason, actor_id=actor_id)

    async def create_follow_up(
        self,
        tenant_id: str,
        claim_id: str,
        action: Union[FollowUpAction, str],
        notes: Optional[str] = None,
        due: Optional[datetime] = None,
    ) -> str:
        try:
            action = FollowUpAction(action)
        except ValueError as e:
            raise ValidationFailedError(f"Invalid follow-up action: {action}") from e
        return await self.aging.create_follow_up(tenant_id, claim_id, action, notes=notes, due=due)

    async def flag_payer_alert(
        self, tenant_id: str, request: Union[PayerAlertRequest, dict[str, Any]]
    ) -> PayerAlertResult:
        return await self.aging.flag_payer_alert(
            tenant_id, validate_input(PayerAlertRequest, request)
        )

    async def alert_flagged_payers(self, tenant_id: str) -> list[PayerAlertResult]:
        return await self.aging.alert_flagged_payers(tenant_id)
