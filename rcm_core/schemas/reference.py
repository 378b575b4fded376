"""
Pydantic Schemas for Reference Data.

Payer rule sets and fee schedules consumed read-only by the scrubbing
engine, plus the practice/patient/appointment records a claim points at.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from rcm_core.core.enums import PayerRuleType
from rcm_core.schemas.base import TenantDocument


# =============================================================================
# Payer Rules
# =============================================================================


class PayerRule(BaseModel):
    """Single payer-specific scrubbing rule."""

    rule_type: PayerRuleType
    description: str
    procedure_codes: Optional[list[str]] = Field(
        None, description="Codes the rule applies to (all codes when unset)"
    )
    condition: Optional[str] = None
    action: str = ""


class PayerRuleSet(TenantDocument):
    """All scrubbing rules configured for one payer."""

    payer_id: str
    payer_name: str = ""
    rules: list[PayerRule] = Field(default_factory=list)
    is_active: bool = True


# =============================================================================
# Fee Schedules
# =============================================================================


class FeeEntry(BaseModel):
    """Scheduled fee for one procedure code."""

    code: str
    description: str = ""
    fee: Decimal


class FeeSchedule(TenantDocument):
    """Practice price list, optionally specific to one payer."""

    practice_id: str
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    name: str = ""
    fees: list[FeeEntry] = Field(default_factory=list)
    is_default: bool = False
    is_active: bool = True

    def fee_map(self) -> dict[str, Decimal]:
        """Code -> scheduled fee (later entries win)."""
        return {entry.code: entry.fee for entry in self.fees}

