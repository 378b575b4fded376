"""
A/R Aging and Prioritization Engine.

Provides:
- Insurance and patient A/R aging report
- Scored collections worklist
- Payer behavior statistics
- Write-offs and collections follow-up tasks
- Payer alerts for slow or high-denial payers

Analytics read claims, denials and appeals and never write.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from rcm_core.core.config import RCMSettings
from rcm_core.core.enums import (
    AgeBucket,
    AuditAction,
    ClaimStatus,
    FollowUpAction,
    TaskPriority,
)
from rcm_core.db.store import DocumentStore, Table
from rcm_core.schemas.analytics import (
    AgingBucketTotal,
    AgingReport,
    AgingTotals,
    PayerAlertRequest,
    PayerAlertResult,
    PayerBehavior,
    WorklistItem,
)
from rcm_core.schemas.claim import Claim
from rcm_core.schemas.denial import Appeal, Denial
from rcm_core.schemas.records import FollowUpTask, Notification
from rcm_core.services.base import TenantScopedService, require_tenant
from rcm_core.services.claim_state_machine import is_open_ar_status
from rcm_core.services.sinks import (
    AuditSink,
    NotificationSink,
    StoreNotificationSink,
    StoreTaskSink,
    TaskSink,
)
from rcm_core.utils.dates import Clock, bucket_since, days_between, ensure_utc
from rcm_core.utils.money import ZERO, percentage, round_int, round_money, to_decimal

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

_ACTION_LABELS = {
    FollowUpAction.CALL: "Call",
    FollowUpAction.LETTER: "Send letter to",
    FollowUpAction.NOTE: "Note on",
}


def priority_from_age(age_days: int) -> TaskPriority:
    """Follow-up priority for a claim of the given age."""
    if age_days > 90:
        return TaskPriority.URGENT
    if age_days > 60:
        return TaskPriority.HIGH
    if age_days > 30:
        return TaskPriority.MEDIUM
    return TaskPriority.LOW


def insurance_outstanding(claim: Claim) -> Decimal:
    """Amount still owed by the payer, floored at zero."""
    amount = (
        claim.total_charged
        - to_decimal(claim.patient_portion)
        - to_decimal(claim.total_paid)
        - to_decimal(claim.adjustments)
    )
    return max(ZERO, amount)


@dataclass
class PayerStats:
    """Payer history used for worklist scoring."""

    total: int = 0
    denied: int = 0
    paid_days: list[int] = field(default_factory=list)

    @property
    def denial_ratio(self) -> float:
        return self.denied / self.total if self.total else 0.0

    @property
    def avg_pay_days(self) -> float:
        return sum(self.paid_days) / len(self.paid_days) if self.paid_days else 0.0


@dataclass
class ScoreBreakdown:
    """Worklist score and the factors that produced it."""

    score: int = 50
    rationale: list[str] = field(default_factory=list)

    def add(self, points: int, reason: Optional[str] = None) -> None:
        self.score += points
        if reason:
            self.rationale.append(reason)

    def clamped(self) -> int:
        return max(0, min(100, self.score))


def _days_to_pay(claim: Claim) -> Optional[int]:
    if claim.status != ClaimStatus.PAID or not claim.submitted_at or not claim.paid_at:
        return None
    return days_between(claim.submitted_at, claim.paid_at)


class AgingAndPrioritizationEngine(TenantScopedService):
    """Read-only A/R analytics plus collections write-offs, follow-ups and payer alerts."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[RCMSettings] = None,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        tasks: Optional[TaskSink] = None,
        notifications: Optional[NotificationSink] = None,
    ):
        super().__init__(store, settings=settings, audit=audit, clock=clock)
        self.tasks = tasks or StoreTaskSink(store)
        self.notifications = notifications or StoreNotificationSink(store)

    async def _billable_claims(self, tenant_id: str, **equals) -> list[Claim]:
        """Tenant claims excluding pre-determinations."""
        documents = await self.store.find(Table.CLAIMS, tenant_id, **equals)
        claims = [Claim.model_validate(doc) for doc in documents]
        return [c for c in claims if not c.is_pre_determination]

    # =========================================================================
    # Aging Report
    # =========================================================================

    def _aging_bucket(self, claim: Claim, now: datetime) -> AgeBucket:
        if claim.submitted_at:
            return bucket_since(claim.submitted_at, now)
        if claim.age_bucket:
            return claim.age_bucket
        return bucket_since(claim.created_at, now)

    async def get_aging_report(
        self,
        tenant_id: str,
        practice_id: Optional[str] = None,
    ) -> AgingReport:
        """
        Open A/R split into insurance and patient ledgers by aging bucket.

        Insurance outstanding is charged minus patient portion, paid and
        adjustments; the patient portion is tallied separately.
        """
        tenant_id = require_tenant(tenant_id)
        filters = {"practice_id": practice_id} if practice_id else {}
        claims = [
            c for c in await self._billable_claims(tenant_id, **filters)
            if is_open_ar_status(c.status)
        ]

        now = self.now()
        insurance = {bucket: AgingBucketTotal(bucket=bucket) for bucket in AgeBucket}
        patient = {bucket: AgingBucketTotal(bucket=bucket) for bucket in AgeBucket}
        total_insurance = ZERO
        total_patient = ZERO

        for claim in claims:
            bucket = self._aging_bucket(claim, now)

            insurance_amount = insurance_outstanding(claim)
            if insurance_amount > 0:
                insurance[bucket].count += 1
                insurance[bucket].total_amount += insurance_amount
                total_insurance += insurance_amount

            patient_portion = to_decimal(claim.patient_portion)
            if patient_portion > 0:
                patient[bucket].count += 1
                patient[bucket].total_amount += patient_portion
                total_patient += patient_portion

        for totals in (*insurance.values(), *patient.values()):
            totals.total_amount = round_money(totals.total_amount)

        return AgingReport(
            insurance_aging=list(insurance.values()),
            patient_aging=list(patient.values()),
            totals=AgingTotals(
                insurance=round_money(total_insurance),
                patient=round_money(total_patient),
                total=round_money(total_insurance + total_patient),
            ),
        )

    # =========================================================================
    # Prioritized Worklist
    # =========================================================================

    def _score_claim(
        self,
        claim: Claim,
        age: int,
        payer_stats: Optional[PayerStats],
        previously_denied: bool,
    ) -> ScoreBreakdown:
        """
        Collection priority of one open claim.

        Starts at 50; age adds up to 30, amount up to 20, payer history and
        denial history subtract, an open appeal adds 5.
        """
        breakdown = ScoreBreakdown()

        if age > 90:
            breakdown.add(30, f"Critical age ({age} days) - timely filing risk")
        elif age > 60:
            breakdown.add(20, f"High age ({age} days) - approaching deadline")
        elif age > 30:
            breakdown.add(10, f"Moderate age ({age} days)")
        else:
            breakdown.add(0, f"Recent claim ({age} days)")

        amount = claim.total_charged
        shown = f"${round_money(amount)}"
        if amount >= 2000:
            breakdown.add(20, f"High value ({shown})")
        elif amount >= 1000:
            breakdown.add(15, f"Moderate value ({shown})")
        elif amount >= 500:
            breakdown.add(10, f"Standard value ({shown})")
        else:
            breakdown.add(5, f"Low value ({shown})")

        if payer_stats and payer_stats.total >= self.settings.PAYER_HISTORY_MIN_CLAIMS:
            if payer_stats.denial_ratio > self.settings.WORKLIST_HIGH_DENIAL_RATIO:
                breakdown.add(
                    -10,
                    f"Payer {claim.payer_name} high denial rate "
                    f"({round_int(Decimal(str(payer_stats.denial_ratio)) * 100)}%)",
                )
            if payer_stats.avg_pay_days > self.settings.SLOW_PAYER_DAYS:
                breakdown.add(
                    -5,
                    f"Payer {claim.payer_name} slow payer "
                    f"(avg {round_int(Decimal(str(payer_stats.avg_pay_days)))} days)",
                )

        if previously_denied or claim.status == ClaimStatus.DENIED:
            breakdown.add(-10, "Previously denied - lower collection probability")

        if claim.status == ClaimStatus.APPEALED:
            breakdown.add(5, "Appeal in progress - monitor closely")

        return breakdown

    async def get_prioritized_worklist(
        self,
        tenant_id: str,
        limit: Optional[int] = None,
    ) -> list[WorklistItem]:
        """
        Open claims ranked by collection priority.

        Sorted by score descending, then age descending.
        """
        tenant_id = require_tenant(tenant_id)
        limit = limit if limit is not None else self.settings.WORKLIST_DEFAULT_LIMIT
        now = self.now()

        claims = await self._billable_claims(tenant_id)

        payer_stats: dict[str, PayerStats] = {}
        for claim in claims:
            stats = payer_stats.setdefault(claim.payer_id, PayerStats())
            stats.total += 1
            if claim.status == ClaimStatus.DENIED:
                stats.denied += 1
            days = _days_to_pay(claim)
            if days is not None:
                stats.paid_days.append(days)

        denied_claim_ids = {
            doc.get("claim_id") for doc in await self.store.find(Table.DENIALS, tenant_id)
        }

        items = []
        for claim in claims:
            if not is_open_ar_status(claim.status):
                continue
            age = days_between(claim.submitted_at, now)
            breakdown = self._score_claim(
                claim, age, payer_stats.get(claim.payer_id), claim.id in denied_claim_ids
            )
            items.append(
                WorklistItem(
                    claim_id=claim.id,
                    claim_number=claim.claim_number,
                    patient_id=claim.patient_id,
                    payer_id=claim.payer_id,
                    payer_name=claim.payer_name,
                    amount=claim.total_charged,
                    age_days=age,
                    score=breakdown.clamped(),
                    rationale="; ".join(breakdown.rationale),
                )
            )

        items.sort(key=lambda item: (-item.score, -item.age_days))
        return items[:max(limit, 0)]

    # =========================================================================
    # Payer Behavior
    # =========================================================================

    async def get_payer_behavior(self, tenant_id: str) -> list[PayerBehavior]:
        """Per-payer payment and denial statistics, busiest payer first."""
        tenant_id = require_tenant(tenant_id)
        claims = await self._billable_claims(tenant_id)

        appeals_by_claim: dict[str, list[Appeal]] = {}
        for doc in await self.store.find(Table.APPEALS, tenant_id):
            appeal = Appeal.model_validate(doc)
            appeals_by_claim.setdefault(appeal.claim_id, []).append(appeal)

        grouped: dict[str, dict] = {}
        for claim in claims:
            payer = grouped.setdefault(
                claim.payer_id,
                {
                    "payer_name": claim.payer_name,
                    "total": 0,
                    "paid": 0,
                    "denied": 0,
                    "appealed": 0,
                    "appeal_wins": 0,
                    "pay_days": [],
                    "charged": ZERO,
                    "collected": ZERO,
                },
            )
            payer["total"] += 1
            payer["charged"] += claim.total_charged
            payer["collected"] += to_decimal(claim.total_paid)

            if claim.status == ClaimStatus.PAID:
                payer["paid"] += 1
                days = _days_to_pay(claim)
                if days is not None:
                    payer["pay_days"].append(days)
            if claim.status == ClaimStatus.DENIED:
                payer["denied"] += 1

            appeals = appeals_by_claim.get(claim.id, [])
            if appeals:
                payer["appealed"] += 1
                if any(a.is_win for a in appeals):
                    payer["appeal_wins"] += 1

        results = []
        for payer_id, payer in grouped.items():
            pay_days = payer["pay_days"]
            avg_days = round_int(Decimal(sum(pay_days)) / len(pay_days)) if pay_days else None
            denial_rate = percentage(payer["denied"], payer["total"])
            appeal_rate = (
                percentage(payer["appeal_wins"], payer["appealed"]) if payer["appealed"] else None
            )

            flags = []
            if avg_days is not None and avg_days > self.settings.SLOW_PAYER_DAYS:
                flags.append("slow")
            if denial_rate > Decimal(str(self.settings.PAYER_HIGH_DENIAL_PCT)):
                flags.append("high_denial")

            results.append(
                PayerBehavior(
                    payer_id=payer_id,
                    payer_name=payer["payer_name"],
                    total_claims=payer["total"],
                    paid_claims=payer["paid"],
                    denied_claims=payer["denied"],
                    appealed_claims=payer["appealed"],
                    appeal_wins=payer["appeal_wins"],
                    avg_days_to_pay=avg_days,
                    denial_rate=denial_rate,
                    appeal_success_rate=appeal_rate,
                    total_charged=round_money(payer["charged"]),
                    total_paid=round_money(payer["collected"]),
                    flags=flags,
                )
            )

        results.sort(key=lambda p: p.total_claims, reverse=True)
        return results

    async def get_open_claims_by_payer(self, tenant_id: str, payer_id: str) -> list[Claim]:
        """Open A/R claims of one payer, newest first."""
        tenant_id = require_tenant(tenant_id)
        claims = [
            c for c in await self._billable_claims(tenant_id, payer_id=payer_id)
            if is_open_ar_status(c.status)
        ]
        return sorted(
            claims,
            key=lambda c: ensure_utc(c.created_at) if c.created_at else _EPOCH,
            reverse=True,
        )

    async def get_denials(self, tenant_id: str, claim_id: str) -> list[Denial]:
        """Denial history of a claim."""
        tenant_id = require_tenant(tenant_id)
        claim = await self._load_claim(tenant_id, claim_id)
        documents = await self.store.find(Table.DENIALS, tenant_id, claim_id=claim.id)
        return [Denial.model_validate(doc) for doc in documents]

    # =========================================================================
    # Collections Actions
    # =========================================================================

    async def write_off(
        self,
        tenant_id: str,
        claim_id: str,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Claim:
        """Adjust off the remaining balance of a claim."""
        tenant_id = require_tenant(tenant_id)

        async with self.store.transaction():
            claim = await self._load_claim(tenant_id, claim_id)
            existing = to_decimal(claim.adjustments)
            remaining = claim.total_charged - to_decimal(claim.total_paid) - existing
            new_adjustments = existing + remaining

            await self.store.patch(
                Table.CLAIMS,
                claim.id,
                {"adjustments": new_adjustments, "updated_at": self.now()},
            )

        logger.info(f"Wrote off {round_money(remaining)} on claim {claim.claim_number}")
        await self._audit(
            tenant_id,
            AuditAction.CLAIM_WRITE_OFF,
            "claim",
            claim.id,
            {
                "claim_number": claim.claim_number,
                "payer_id": claim.payer_id,
                "payer_name": claim.payer_name,
                "total_charged": str(claim.total_charged),
                "previous_adjustments": str(existing),
                "write_off_amount": str(remaining),
                "new_adjustments": str(new_adjustments),
                "reason": reason or "No reason provided",
            },
            phi_accessed=True,
            actor_id=actor_id,
        )
        return await self._load_claim(tenant_id, claim.id)

    async def create_follow_up(
        self,
        tenant_id: str,
        claim_id: str,
        action: FollowUpAction,
        notes: Optional[str] = None,
        due: Optional[datetime] = None,
    ) -> str:
        """Enqueue a billing follow-up task for a claim; returns the task ID."""
        tenant_id = require_tenant(tenant_id)
        claim = await self._load_claim(tenant_id, claim_id)

        now = self.now()
        age = days_between(claim.submitted_at, now)
        reference = claim.claim_number or claim.id

        task = FollowUpTask(
            tenant_id=tenant_id,
            title=f"{_ACTION_LABELS[action]} payer re: claim {reference}",
            description=notes
            or (
                f"Follow-up {action.value} for claim {reference} ({claim.payer_name}). "
                f"Amount: ${round_money(claim.total_charged)}. Age: {age} days."
            ),
            resource_type="claim",
            resource_id=claim.id,
            assigned_role="billing",
            priority=priority_from_age(age),
            status="open",
            sla_deadline=due or now + timedelta(days=self.settings.FOLLOW_UP_DEFAULT_SLA_DAYS),
            created_at=now,
            updated_at=now,
        )
        return await self.tasks.enqueue(task)

    # =========================================================================
    # Payer Alerts
    # =========================================================================

    async def flag_payer_alert(
        self,
        tenant_id: str,
        request: PayerAlertRequest,
    ) -> PayerAlertResult:
        """
        Notify billing staff that a payer is slow or denies often.

        A flag's statistic is spelled out only when it is supplied.
        """
        tenant_id = require_tenant(tenant_id)

        details = []
        if "slow" in request.flags and request.avg_days_to_pay is not None:
            details.append(
                f"Avg {request.avg_days_to_pay} days to pay "
                f"(threshold: {self.settings.SLOW_PAYER_DAYS})"
            )
        if "high_denial" in request.flags and request.denial_rate is not None:
            details.append(
                f"{request.denial_rate}% denial rate "
                f"(threshold: {self.settings.PAYER_HIGH_DENIAL_PCT:g}%)"
            )

        title = f"Payer Alert: {request.payer_name}"
        message = f"Payer {request.payer_name} flagged for: {', '.join(request.flags)}."
        if details:
            message = f"{message} {'. '.join(details)}"
        roles = list(self.settings.payer_alert_roles)

        notification_id = await self.notifications.notify(
            Notification(
                tenant_id=tenant_id,
                title=title,
                message=message,
                type="warning",
                resource_type="payer",
                resource_id=request.payer_id,
                recipient_roles=roles,
                created_at=self.now(),
                updated_at=self.now(),
            )
        )
        logger.warning(f"Payer {request.payer_id} flagged: {', '.join(request.flags)}")
        await self._audit(
            tenant_id,
            AuditAction.PAYER_ALERT,
            "payer",
            request.payer_id,
            {"flags": request.flags, "notification_id": notification_id},
        )

        return PayerAlertResult(
            payer_id=request.payer_id,
            notification_id=notification_id,
            title=title,
            message=message,
            recipient_roles=roles,
        )

    async def alert_flagged_payers(self, tenant_id: str) -> list[PayerAlertResult]:
        """Raise an alert for every payer currently carrying a behavior flag."""
        return [
            await self.flag_payer_alert(tenant_id, PayerAlertRequest.from_behavior(behavior))
            for behavior in await self.get_payer_behavior(tenant_id)
            if behavior.flags
        ]
