"""
Pydantic Schemas for Denials and Appeals.

Both are written by the denial-management workflow and read here as claim
history by the A/R analytics.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from rcm_core.core.enums import AppealStatus, DenialCategory, DenialStatus
from rcm_core.schemas.base import TenantDocument


class Denial(TenantDocument):
    """Payer refusal (full or partial) to pay a claim."""

    claim_id: str
    patient_id: Optional[str] = None
    payer_id: str = ""
    payer_name: str = ""
    denial_date: Optional[date] = None
    reason_code: str = ""
    reason_description: str = ""
    category: Optional[DenialCategory] = None
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    status: DenialStatus = DenialStatus.NEW
    assigned_to: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    is_escalated: bool = False
    escalated_at: Optional[datetime] = None


class Appeal(TenantDocument):
    """Formal request to reverse a denial."""

    claim_id: str
    denial_id: Optional[str] = None
    patient_id: Optional[str] = None
    status: AppealStatus = AppealStatus.DRAFT
    letter_content: Optional[str] = None
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    outcome_amount: Optional[Decimal] = None
    outcome_date: Optional[date] = None
    outcome_notes: Optional[str] = None

    @property
    def is_win(self) -> bool:
        """Appeal reversed the denial in full or in part."""
        return self.status in (AppealStatus.WON, AppealStatus.PARTIAL)
