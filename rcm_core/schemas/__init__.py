"""
Pydantic Schemas for the Revenue Cycle Core.

This module exports the store documents and operation inputs/results.
"""

from rcm_core.schemas.base import TenantDocument
from rcm_core.schemas.claim import (
    Claim,
    ClaimAge,
    ClaimCreate,
    ClaimPage,
    ClaimStats,
    ClaimStatusUpdate,
    Procedure,
    ScrubIssue,
    ScrubResult,
)
from rcm_core.schemas.denial import Appeal, Denial
from rcm_core.schemas.remittance import (
    BatchListing,
    BatchExceptions,
    BulkResolveItem,
    BulkResolveResult,
    EnrichedLineItem,
    ExceptionResolutionRequest,
    ExceptionListing,
    IndexedLineItem,
    IngestResult,
    LinkedClaimSummary,
    MatchStatusTotal,
    PatientStatement,
    ReconciliationSummary,
    RemittanceBatch,
    RemittanceBatchDetail,
    RemittanceIngest,
    RemittanceLineItem,
    RemittanceLineItemInput,
    ResolutionResult,
    StatementLine,
    StatementRequest,
)
from rcm_core.schemas.reference import (
    FeeEntry,
    FeeSchedule,
    PayerRule,
    PayerRuleSet,
)
from rcm_core.schemas.records import AuditEntry, FollowUpTask, Notification, PaymentRecord
from rcm_core.schemas.analytics import (
    AgingBucketTotal,
    AgingReport,
    AgingTotals,
    PayerAlertRequest,
    PayerAlertResult,
    PayerBehavior,
    WorklistItem,
)

__all__ = [
    # Base
    "TenantDocument",
    # Claims
    "Claim",
    "ClaimAge",
    "ClaimCreate",
    "ClaimPage",
    "ClaimStats",
    "ClaimStatusUpdate",
    "Procedure",
    "ScrubIssue",
    "ScrubResult",
    # Denials / appeals
    "Appeal",
    "Denial",
    # Remittance
    "BatchListing",
    "BatchExceptions",
    "BulkResolveItem",
    "BulkResolveResult",
    "EnrichedLineItem",
    "ExceptionResolutionRequest",
    "ExceptionListing",
    "IndexedLineItem",
    "IngestResult",
    "LinkedClaimSummary",
    "MatchStatusTotal",
    "PatientStatement",
    "ReconciliationSummary",
    "RemittanceBatch",
    "RemittanceBatchDetail",
    "RemittanceIngest",
    "RemittanceLineItem",
    "RemittanceLineItemInput",
    "ResolutionResult",
    "StatementLine",
    "StatementRequest",
    # Reference data
    "FeeEntry",
    "FeeSchedule",
    "PayerRule",
    "PayerRuleSet",
    # Sink records
    "AuditEntry",
    "FollowUpTask",
    "Notification",
    "PaymentRecord",
    # Analytics
    "AgingBucketTotal",
    "AgingReport",
    "AgingTotals",
    "PayerAlertRequest",
    "PayerAlertResult",
    "PayerBehavior",
    "WorklistItem",
]
