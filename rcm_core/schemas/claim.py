"""
Pydantic Schemas for Dental Claims.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from rcm_core.core.enums import (
    AgeBucket,
    ClaimStatus,
    PreDeterminationStatus,
    ScrubSeverity,
)
from rcm_core.schemas.base import TenantDocument


# =============================================================================
# Procedure Schemas
# =============================================================================


class Procedure(BaseModel):
    """
    Billed procedure line (CDT code).

    Codes and fees are not constrained here: blank codes and non-positive
    fees are reported by the scrubbing engine instead of being rejected.
    """

    code: str = Field(default="", max_length=20, description="CDT procedure code")
    description: str = Field(default="", max_length=500)
    fee: Decimal = Field(..., description="Billed fee per unit")
    tooth: Optional[str] = Field(None, max_length=10, description="Tooth number")
    surface: Optional[str] = Field(None, max_length=10, description="Tooth surface(s)")
    quantity: Optional[int] = Field(None, ge=0, description="Units billed (defaults to 1)")


class ScrubIssue(BaseModel):
    """Single scrubbing finding."""

    code: str
    message: str
    severity: ScrubSeverity
    field: Optional[str] = None


# =============================================================================
# Claim Document
# =============================================================================


class Claim(TenantDocument):
    """
    Dental insurance claim.

    Bundles billed procedures for one patient visit and tracks the claim
    from draft through payer adjudication.
    """

    practice_id: str
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None
    claim_number: Optional[str] = None
    payer_id: str = ""
    payer_name: str = ""
    status: ClaimStatus = ClaimStatus.DRAFT

    procedures: list[Procedure] = Field(default_factory=list)
    total_charged: Decimal = Decimal("0")
    total_paid: Optional[Decimal] = None
    patient_portion: Optional[Decimal] = None
    adjustments: Optional[Decimal] = None

    # Scrub results
    scrub_errors: Optional[list[ScrubIssue]] = None
    scrub_passed_at: Optional[datetime] = None

    # Submission / adjudication tracking
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    # Aging
    age_in_days: Optional[int] = None
    age_bucket: Optional[AgeBucket] = None

    # Pre-determination
    is_pre_determination: bool = False
    pre_det_status: Optional[PreDeterminationStatus] = None
    pre_det_response_at: Optional[datetime] = None


# =============================================================================
# Operation Inputs
# =============================================================================


class ClaimCreate(BaseModel):
    """Input for creating a draft claim."""

    practice_id: str = Field(..., min_length=1)
    patient_id: str = Field(..., min_length=1)
    appointment_id: Optional[str] = None
    payer_id: str = Field(..., min_length=1)
    payer_name: str = Field(..., min_length=1)
    procedures: list[Procedure] = Field(default_factory=list)
    total_charged: Decimal
    patient_portion: Optional[Decimal] = Field(None, ge=0)
    claim_number: Optional[str] = Field(None, max_length=50)
    is_pre_determination: bool = False


class ClaimStatusUpdate(BaseModel):
    """Input for a downstream status update."""

    status: ClaimStatus
    paid_amount: Optional[Decimal] = Field(None, ge=0)
    adjustments: Optional[Decimal] = None


# =============================================================================
# Operation Results
# =============================================================================


class ScrubResult(BaseModel):
    """Outcome of scrubbing a claim."""

    claim_id: str
    status: ClaimStatus
    errors: list[ScrubIssue]
    error_count: int
    warning_count: int
    info_count: int


class ClaimAge(BaseModel):
    """Age of a submitted claim."""

    age_in_days: int
    age_bucket: AgeBucket


class ClaimPage(BaseModel):
    """Cursor-paginated claim listing."""

    claims: list[Claim]
    next_cursor: Optional[str] = None
    total_count: int


class ClaimStats(BaseModel):
    """Tenant-wide claim statistics."""

    total_claims: int
    status_counts: dict[str, int]
    clean_claim_rate: Decimal = Field(..., description="Percentage, 2 decimals")
    open_claims_count: int
    avg_age_in_days: int
