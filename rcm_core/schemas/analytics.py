"""
Pydantic Schemas for A/R analytics results.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from rcm_core.core.enums import AgeBucket


class AgingBucketTotal(BaseModel):
    """Count and outstanding amount in one aging bucket."""

    bucket: AgeBucket
    count: int = 0
    total_amount: Decimal = Decimal("0.00")


class AgingTotals(BaseModel):
    """Grand totals per ledger."""

    insurance: Decimal
    patient: Decimal
    total: Decimal


class AgingReport(BaseModel):
    """Insurance and patient A/R split by aging bucket."""

    insurance_aging: list[AgingBucketTotal]
    patient_aging: list[AgingBucketTotal]
    totals: AgingTotals

    def insurance_bucket(self, bucket: AgeBucket) -> AgingBucketTotal:
        """Insurance totals for one bucket."""
        return next(b for b in self.insurance_aging if b.bucket == bucket)

    def patient_bucket(self, bucket: AgeBucket) -> AgingBucketTotal:
        """Patient totals for one bucket."""
        return next(b for b in self.patient_aging if b.bucket == bucket)


class WorklistItem(BaseModel):
    """Scored open claim for collections follow-up."""

    claim_id: str
    claim_number: Optional[str] = None
    patient_id: Optional[str] = None
    payer_id: str
    payer_name: str
    amount: Decimal
    age_days: int
    score: int = Field(..., ge=0, le=100)
    rationale: str


class PayerBehavior(BaseModel):
    """Behavioral statistics for one payer."""

    payer_id: str
    payer_name: str
    total_claims: int
    paid_claims: int
    denied_claims: int
    appealed_claims: int
    appeal_wins: int
    avg_days_to_pay: Optional[int] = None
    denial_rate: Decimal = Field(..., description="Percentage, 2 decimals")
    appeal_success_rate: Optional[Decimal] = None
    total_charged: Decimal
    total_paid: Decimal
    flags: list[str] = Field(default_factory=list)


class PayerAlertRequest(BaseModel):
    """Payer to flag, usually taken from a payer behavior entry."""

    payer_id: str = Field(..., min_length=1)
    payer_name: str
    flags: list[str] = Field(..., min_length=1, description='e.g. ["slow", "high_denial"]')
    avg_days_to_pay: Optional[int] = None
    denial_rate: Optional[Decimal] = None

    @classmethod
    def from_behavior(cls, behavior: PayerBehavior) -> "PayerAlertRequest":
        return cls(
            payer_id=behavior.payer_id,
            payer_name=behavior.payer_name,
            flags=behavior.flags,
            avg_days_to_pay=behavior.avg_days_to_pay,
            denial_rate=behavior.denial_rate,
        )


class PayerAlertResult(BaseModel):
    payer_id: str
    notification_id: str
    title: str
    message: str
    recipient_roles: list[str]
