"""
Claim Lifecycle Manager.

Provides:
- Draft claim creation with tenant ownership checks
- Scrubbing workflow (draft/failed -> scrubbing -> ready | scrub_failed)
- Guarded submission (ready -> submitted)
- Manual downstream status updates
- Claim aging
- Claim listing, lookup and statistics
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from rcm_core.core.config import RCMSettings
from rcm_core.core.enums import AgeBucket, AuditAction, ClaimStatus
from rcm_core.db.store import DocumentStore, Table
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
from rcm_core.services.base import TenantScopedService, require_tenant
from rcm_core.services.claim_state_machine import (
    IN_FLIGHT_STATUSES,
    ClaimStateMachine,
    TransitionContext,
    TransitionEvent,
    get_claim_state_machine,
    is_aging_terminal_status,
    is_pre_submission_status,
    status_update_event,
)
from rcm_core.services.reference_data import (
    FeeScheduleProvider,
    PayerRuleProvider,
    StoreFeeScheduleProvider,
    StorePayerRuleProvider,
)
from rcm_core.services.scrubbing import ScrubbingEngine, ScrubConfig
from rcm_core.services.sinks import AuditSink
from rcm_core.utils.dates import Clock, bucket_for_age, days_between, ensure_utc
from rcm_core.utils.errors import InvalidStateError, NotFoundError, ValidationFailedError
from rcm_core.utils.money import percentage, round_int

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ClaimLifecycleManager(TenantScopedService):
    """
    Owns the claim entity and its status state machine.

    Every method takes the caller's tenant ID first; claims of other
    tenants are reported as not found.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[RCMSettings] = None,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        scrubber: Optional[ScrubbingEngine] = None,
        payer_rules: Optional[PayerRuleProvider] = None,
        fee_schedules: Optional[FeeScheduleProvider] = None,
        state_machine: Optional[ClaimStateMachine] = None,
    ):
        super().__init__(store, settings=settings, audit=audit, clock=clock)
        self.scrubber = scrubber or ScrubbingEngine(ScrubConfig.from_settings(self.settings))
        self.payer_rules = payer_rules or StorePayerRuleProvider(store)
        self.fee_schedules = fee_schedules or StoreFeeScheduleProvider(store)
        self.state_machine = state_machine or get_claim_state_machine()

    def _transition(
        self,
        claim: Claim,
        event: TransitionEvent,
        target: ClaimStatus,
        triggered_by: Optional[str] = None,
    ) -> None:
        """
        Validate a status change against the state machine.

        Raises:
            InvalidStateError: If the transition is not allowed
        """
        result = self.state_machine.execute_transition(
            TransitionContext(
                claim_id=claim.id,
                current_status=claim.status,
                target_status=target,
                event=event,
                triggered_by=triggered_by,
                timestamp=self.now(),
            )
        )
        if not result.success:
            raise InvalidStateError(result.error, {"claim_id": claim.id, "status": claim.status.value})

    # =========================================================================
    # Claim Number Generation
    # =========================================================================

    async def _generate_claim_number(self, tenant_id: str) -> str:
        """
        Generate a claim number unique within the tenant.

        Format: CLM-{YEAR}-{SEQUENCE:06d}
        Example: CLM-2025-000001
        """
        year = self.now().year
        prefix = f"CLM-{year}-"

        existing = {
            doc.get("claim_number")
            for doc in await self.store.find(Table.CLAIMS, tenant_id)
        }
        sequences = []
        for number in existing:
            if number and number.startswith(prefix):
                try:
                    sequences.append(int(number.split("-")[-1]))
                except ValueError:
                    continue

        next_seq = max(sequences, default=0) + 1
        return f"{prefix}{next_seq:06d}"

    # =========================================================================
    # Create
    # =========================================================================

    async def create(self, tenant_id: str, data: ClaimCreate) -> Claim:
        """
        Create a draft claim.

        Raises:
            NotFoundError: If the practice, patient or appointment is missing
                or owned by another tenant
        """
        tenant_id = require_tenant(tenant_id)

        references = [
            (Table.PRACTICES, data.practice_id, "Practice"),
            (Table.PATIENTS, data.patient_id, "Patient"),
        ]
        if data.appointment_id:
            references.append((Table.APPOINTMENTS, data.appointment_id, "Appointment"))

        for table, doc_id, label in references:
            if await self.store.get_owned(table, doc_id, tenant_id) is None:
                raise NotFoundError(label)

        now = self.now()
        async with self.store.transaction():
            claim = Claim(
                tenant_id=tenant_id,
                practice_id=data.practice_id,
                patient_id=data.patient_id,
                appointment_id=data.appointment_id,
                claim_number=data.claim_number or await self._generate_claim_number(tenant_id),
                payer_id=data.payer_id,
                payer_name=data.payer_name,
                status=ClaimStatus.DRAFT,
                procedures=data.procedures,
                total_charged=data.total_charged,
                patient_portion=data.patient_portion,
                is_pre_determination=data.is_pre_determination,
                created_at=now,
                updated_at=now,
            )
            claim_id = await self.store.insert(Table.CLAIMS, claim.to_document())

        logger.info(f"Created claim {claim.claim_number} (ID: {claim_id})")
        await self._audit(
            tenant_id,
            AuditAction.CLAIM_CREATE,
            "claim",
            claim_id,
            {"claim_number": claim.claim_number, "payer_id": claim.payer_id},
        )
        return await self._load_claim(tenant_id, claim_id)

    # =========================================================================
    # Scrub
    # =========================================================================

    async def scrub(self, tenant_id: str, claim_id: str) -> ScrubResult:
        """
        Run the scrubbing engine and persist the verdict.

        The claim is marked `scrubbing` while it is evaluated, then moved to
        `ready` (no errors) or `scrub_failed`. Warnings never fail a claim.

        Raises:
            NotFoundError: If the claim is missing or owned by another tenant
            InvalidStateError: If the claim is already submitted and
                re-scrubbing is disabled
            ConcurrencyConflictError: If the claim changed concurrently
        """
        tenant_id = require_tenant(tenant_id)

        async with self.store.transaction():
            claim = await self._load_claim(tenant_id, claim_id)

            if is_pre_submission_status(claim.status):
                event = TransitionEvent.START_SCRUB
            else:
                if not self.settings.ALLOW_RESCRUB_AFTER_SUBMIT:
                    raise InvalidStateError(
                        f'Cannot scrub claim with status "{claim.status.value}" after submission',
                        {"claim_id": claim.id, "status": claim.status.value},
                    )
                logger.warning(f"Re-scrubbing claim {claim.id} in status {claim.status.value}")
                event = TransitionEvent.RESCRUB

            self._transition(claim, event, ClaimStatus.SCRUBBING)
            marked = await self.store.patch(
                Table.CLAIMS,
                claim.id,
                {"status": ClaimStatus.SCRUBBING, "updated_at": self.now()},
                expected_version=claim.version,
            )
            scrubbing = claim.model_copy(update={"status": ClaimStatus.SCRUBBING})

            rules = await self.payer_rules.lookup(tenant_id, claim.payer_id)
            schedules = await self.fee_schedules.lookup(tenant_id, claim.practice_id)
            report = self.scrubber.scrub(claim, rules, schedules)

            now = self.now()
            if report.has_errors:
                self._transition(scrubbing, TransitionEvent.SCRUB_FAILED, ClaimStatus.SCRUB_FAILED)
                updates = {
                    "status": ClaimStatus.SCRUB_FAILED,
                    "scrub_errors": report.issues,
                    "updated_at": now,
                }
            else:
                self._transition(scrubbing, TransitionEvent.SCRUB_PASSED, ClaimStatus.READY)
                updates = {
                    "status": ClaimStatus.READY,
                    "scrub_errors": report.issues or None,
                    "scrub_passed_at": now,
                    "updated_at": now,
                }
            await self.store.patch(
                Table.CLAIMS, claim.id, updates, expected_version=marked["version"]
            )

        await self._audit(
            tenant_id,
            AuditAction.CLAIM_SCRUB,
            "claim",
            claim.id,
            {"status": report.status.value, "error_count": report.error_count},
        )

        return ScrubResult(
            claim_id=claim.id,
            status=report.status,
            errors=report.issues,
            error_count=report.error_count,
            warning_count=report.warning_count,
            info_count=report.info_count,
        )

    # =========================================================================
    # Submit
    # =========================================================================

    async def submit(
        self,
        tenant_id: str,
        claim_id: str,
        submitted_by: Optional[str] = None,
    ) -> Claim:
        """
        Mark a ready claim as submitted and start its aging clock.

        Raises:
            NotFoundError: If the claim is missing or owned by another tenant
            InvalidStateError: If the claim is not `ready`
            ConcurrencyConflictError: If the claim changed concurrently
        """
        tenant_id = require_tenant(tenant_id)

        async with self.store.transaction():
            claim = await self._load_claim(tenant_id, claim_id)

            if claim.status != ClaimStatus.READY:
                logger.warning(f"Submit refused for claim {claim.id} in status {claim.status.value}")
                raise InvalidStateError(
                    f'Cannot submit claim with status "{claim.status.value}". '
                    f'Only "ready" claims can be submitted.',
                    {"claim_id": claim.id, "status": claim.status.value},
                )
            if claim.total_charged <= 0:
                raise InvalidStateError(
                    "Cannot submit claim without a positive total charged",
                    {"claim_id": claim.id},
                )

            self._transition(claim, TransitionEvent.SUBMIT, ClaimStatus.SUBMITTED, submitted_by)
            now = self.now()
            await self.store.patch(
                Table.CLAIMS,
                claim.id,
                {
                    "status": ClaimStatus.SUBMITTED,
                    "submitted_at": now,
                    "submitted_by": submitted_by,
                    "age_in_days": 0,
                    "age_bucket": AgeBucket.DAYS_0_30,
                    "updated_at": now,
                },
                expected_version=claim.version,
            )

        logger.info(f"Claim {claim.claim_number} submitted")
        await self._audit(
            tenant_id,
            AuditAction.CLAIM_SUBMIT,
            "claim",
            claim.id,
            {"claim_number": claim.claim_number},
            actor_id=submitted_by,
        )
        return await self._load_claim(tenant_id, claim.id)

    # =========================================================================
    # Status Update
    # =========================================================================

    async def update_status(
        self,
        tenant_id: str,
        claim_id: str,
        update: ClaimStatusUpdate,
    ) -> Claim:
        """
        Move a claim to a downstream status.

        No predecessor check is made: this is a manual override used for
        payer-reported outcomes.

        Raises:
            NotFoundError: If the claim is missing or owned by another tenant
            ValidationFailedError: If the target is not a downstream status
        """
        tenant_id = require_tenant(tenant_id)

        try:
            event = status_update_event(update.status)
        except ValueError as e:
            raise ValidationFailedError(str(e), [{"field": "status", "value": update.status.value}]) from e

        async with self.store.transaction():
            claim = await self._load_claim(tenant_id, claim_id)
            previous = claim.status
            self._transition(claim, event, update.status)

            now = self.now()
            updates: dict = {"status": update.status, "updated_at": now}
            if update.status == ClaimStatus.ACCEPTED:
                updates["accepted_at"] = now
            if update.status == ClaimStatus.PAID:
                updates["paid_at"] = now
                if update.paid_amount is not None:
                    updates["total_paid"] = update.paid_amount
            if update.adjustments is not None:
                updates["adjustments"] = update.adjustments

            await self.store.patch(Table.CLAIMS, claim.id, updates)

        logger.info(
            f"Claim {claim.claim_number} status updated: {previous.value} -> {update.status.value}"
        )
        await self._audit(
            tenant_id,
            AuditAction.CLAIM_STATUS_UPDATE,
            "claim",
            claim.id,
            {"from": previous.value, "to": update.status.value},
        )
        return await self._load_claim(tenant_id, claim.id)

    # =========================================================================
    # Aging
    # =========================================================================

    async def recalculate_age(self, tenant_id: str, claim_id: str) -> ClaimAge:
        """
        Recompute days outstanding since submission.

        Unsubmitted claims report age 0. Paid and denied claims keep their
        stored age.
        """
        tenant_id = require_tenant(tenant_id)
        claim = await self._load_claim(tenant_id, claim_id)

        if claim.submitted_at is None:
            return ClaimAge(age_in_days=0, age_bucket=AgeBucket.DAYS_0_30)

        if is_aging_terminal_status(claim.status):
            return ClaimAge(
                age_in_days=claim.age_in_days or 0,
                age_bucket=claim.age_bucket or AgeBucket.DAYS_0_30,
            )

        now = self.now()
        age_in_days = days_between(claim.submitted_at, now)
        age_bucket = bucket_for_age(age_in_days)

        await self.store.patch(
            Table.CLAIMS,
            claim.id,
            {"age_in_days": age_in_days, "age_bucket": age_bucket, "updated_at": now},
        )
        return ClaimAge(age_in_days=age_in_days, age_bucket=age_bucket)

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_claim(self, tenant_id: str, claim_id: str) -> Claim:
        """Get a claim by ID."""
        return await self._load_claim(require_tenant(tenant_id), claim_id)

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
        """
        List claims newest first with cursor pagination.

        The cursor is the ID of the last claim of the previous page.
        """
        tenant_id = require_tenant(tenant_id)

        filters = {
            key: value
            for key, value in {
                "status": status,
                "payer_id": payer_id,
                "age_bucket": age_bucket,
                "practice_id": practice_id,
            }.items()
            if value is not None
        }
        documents = await self.store.find(Table.CLAIMS, tenant_id, **filters)
        claims = _newest_first([Claim.model_validate(doc) for doc in documents])

        start = 0
        if cursor:
            index = next((i for i, c in enumerate(claims) if c.id == cursor), None)
            if index is not None:
                start = index + 1

        page = claims[start:start + limit]
        has_more = len(page) == limit and start + limit < len(claims)
        return ClaimPage(
            claims=page,
            next_cursor=page[-1].id if has_more else None,
            total_count=len(claims),
        )

    async def get_claims_by_patient(self, tenant_id: str, patient_id: str) -> list[Claim]:
        """All claims of a patient, newest first."""
        tenant_id = require_tenant(tenant_id)
        documents = await self.store.find(Table.CLAIMS, tenant_id, patient_id=patient_id)
        return _newest_first([Claim.model_validate(doc) for doc in documents])

    async def get_scrub_errors(self, tenant_id: str, claim_id: str) -> list[ScrubIssue]:
        """Stored findings of the last scrub."""
        claim = await self._load_claim(require_tenant(tenant_id), claim_id)
        return claim.scrub_errors or []

    async def get_claim_stats(self, tenant_id: str) -> ClaimStats:
        """
        Tenant-wide claim statistics.

        The clean claim rate is the share of scrubbed claims that passed and
        are not currently `scrub_failed`.
        """
        tenant_id = require_tenant(tenant_id)
        claims = [
            Claim.model_validate(doc) for doc in await self.store.find(Table.CLAIMS, tenant_id)
        ]

        status_counts: dict[str, int] = {}
        for claim in claims:
            status_counts[claim.status.value] = status_counts.get(claim.status.value, 0) + 1

        scrubbed = [
            c for c in claims if c.scrub_passed_at or c.status == ClaimStatus.SCRUB_FAILED
        ]
        passed = [
            c for c in claims if c.scrub_passed_at and c.status != ClaimStatus.SCRUB_FAILED
        ]

        in_flight = [c for c in claims if c.status in IN_FLIGHT_STATUSES]
        now = self.now()
        total_age = 0
        for claim in in_flight:
            if claim.age_in_days is not None:
                total_age += claim.age_in_days
            elif claim.submitted_at is not None:
                total_age += days_between(claim.submitted_at, now)
        avg_age = round_int(Decimal(total_age) / len(in_flight)) if in_flight else 0

        return ClaimStats(
            total_claims=len(claims),
            status_counts=status_counts,
            clean_claim_rate=percentage(len(passed), len(scrubbed)),
            open_claims_count=len(in_flight),
            avg_age_in_days=avg_age,
        )


def _newest_first(claims: list[Claim]) -> list[Claim]:
    return sorted(
        claims,
        key=lambda c: ensure_utc(c.created_at) if c.created_at else _EPOCH,
        reverse=True,
    )
