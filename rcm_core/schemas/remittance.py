"""
Pydantic Schemas for Electronic Remittance Advice (ERA) batches.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from rcm_core.core.enums import ClaimStatus, ExceptionResolution, MatchStatus
from rcm_core.schemas.base import TenantDocument
from rcm_core.schemas.claim import Procedure


# =============================================================================
# Line Items
# =============================================================================


class RemittanceLineItemInput(BaseModel):
    """Payer-reported payment line for one claim."""

    claim_number: str = Field(..., min_length=1)
    patient_name: Optional[str] = None
    procedure_code: Optional[str] = None
    charged_amount: Decimal
    paid_amount: Decimal
    adjustment_amount: Optional[Decimal] = None
    remark_codes: Optional[list[str]] = None


class RemittanceLineItem(RemittanceLineItemInput):
    """Stored line item with its match outcome."""

    matched_claim_id: Optional[str] = None
    match_status: MatchStatus = MatchStatus.UNMATCHED


# =============================================================================
# Batch Document
# =============================================================================


class RemittanceBatch(TenantDocument):
    """
    Ingested ERA.

    Owns its line items; references claims by ID only.
    """

    era_id: str
    payer_id: str
    payer_name: str
    check_number: Optional[str] = None
    check_date: Optional[date] = None
    check_amount: Decimal
    line_items: list[RemittanceLineItem] = Field(default_factory=list)
    match_rate: Decimal = Field(default=Decimal("0"), description="Percentage, 2 decimals")
    dedupe_key: Optional[str] = None
    processed_at: Optional[datetime] = None

    def count(self, status: MatchStatus) -> int:
        """Number of line items with the given match status."""
        return sum(1 for item in self.line_items if item.match_status == status)


# =============================================================================
# Operation Inputs
# =============================================================================


class RemittanceIngest(BaseModel):
    """Input for ingesting an ERA."""

    payer_id: str = Field(..., min_length=1)
    payer_name: str = Field(..., min_length=1)
    check_number: Optional[str] = None
    check_date: Optional[date] = None
    check_amount: Decimal
    line_items: list[RemittanceLineItemInput] = Field(default_factory=list)


class ExceptionResolutionRequest(BaseModel):
    """Input for resolving one exception line item."""

    batch_id: str = Field(..., min_length=1)
    line_item_index: int
    claim_id: str = Field(..., min_length=1)
    resolution: ExceptionResolution
    adjusted_amount: Optional[Decimal] = Field(None, ge=0)


class BulkResolveItem(BaseModel):
    """One entry of a bulk resolution request."""

    batch_id: str
    line_item_index: int
    claim_id: str


# =============================================================================
# Operation Results
# =============================================================================


class IngestResult(BaseModel):
    """Summary of an ERA ingestion."""

    batch_id: str
    era_id: str
    match_rate: Decimal
    matched: int
    unmatched: int
    exceptions: int
    duplicate: bool = False


class ResolutionResult(BaseModel):
    """Outcome of a single exception resolution."""

    batch_id: str
    resolution: ExceptionResolution
    line_item_index: int
    match_rate: Decimal
    payment_id: Optional[str] = None


class BulkResolveResult(BaseModel):
    """Outcome of a best-effort bulk resolution."""

    resolved_count: int
    total: int


class LinkedClaimSummary(BaseModel):
    """Claim fields shown next to a matched line item."""

    id: str
    claim_number: Optional[str] = None
    status: ClaimStatus
    total_charged: Decimal
    total_paid: Optional[Decimal] = None
    patient_id: Optional[str] = None


class EnrichedLineItem(RemittanceLineItem):
    """Line item with its linked claim resolved."""

    matched_claim: Optional[LinkedClaimSummary] = None


class RemittanceBatchDetail(BaseModel):
    """Batch with enriched line items."""

    batch: RemittanceBatch
    line_items: list[EnrichedLineItem]


class BatchListing(BaseModel):
    """Batches filtered by line-item match status."""

    batches: list[RemittanceBatch]
    total_count: int


class MatchStatusTotal(BaseModel):
    """Count and paid amount of line items in one match status."""

    count: int = 0
    amount: Decimal = Decimal("0.00")


class ReconciliationSummary(BaseModel):
    """Tenant-wide reconciliation totals."""

    total_batches: int
    total_line_items: int
    matched: MatchStatusTotal
    unmatched: MatchStatusTotal
    exception: MatchStatusTotal
    auto_match_rate: Decimal


class IndexedLineItem(BaseModel):
    """Line item with its position in the batch."""

    line_item_index: int
    line_item: RemittanceLineItem


class BatchExceptions(BaseModel):
    """Batch with only its exception line items."""

    batch: RemittanceBatch
    exceptions: list[IndexedLineItem]


class ExceptionListing(BaseModel):
    """Batches needing manual review."""

    exceptions: list[BatchExceptions]
    total_count: int


# =============================================================================
# Patient Statements
# =============================================================================


class StatementRequest(BaseModel):
    """Claims to bill to one patient."""

    patient_id: str = Field(..., min_length=1)
    claim_ids: list[str] = Field(default_factory=list)


class StatementLine(BaseModel):
    """Patient responsibility on one claim."""

    claim_id: str
    claim_number: str = "N/A"
    procedures: list[Procedure] = Field(default_factory=list)
    total_charged: Decimal
    insurance_paid: Decimal
    adjustments: Decimal
    patient_portion: Decimal
    patient_owes: Decimal = Field(..., description="Patient portion less insurance paid, floored at zero")


class PatientStatement(BaseModel):
    """Statement queued for delivery to a patient."""

    patient_id: str
    patient_name: str
    claim_count: int
    total_patient_owes: Decimal
    claims: list[StatementLine]
    generated_at: datetime
    task_id: str
