"""
Remittance Reconciliation Service.

Provides:
- ERA ingestion with claim matching by claim number
- Duplicate remittance detection
- Manual and bulk exception resolution with payment posting
- Batch listing and reconciliation summary
- Patient statements queued as billing tasks

Match outcome per line item:
- claim found, charged amount equal and paid + adjustment equal to charged -> matched
- claim found, amounts differ -> exception
- no claim -> unmatched
"""

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from rcm_core.core.config import RCMSettings
from rcm_core.core.enums import (
    AuditAction,
    ClaimStatus,
    ExceptionResolution,
    MatchStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    TaskPriority,
)
from rcm_core.db.store import DocumentStore, Table
from rcm_core.schemas.claim import Claim
from rcm_core.schemas.records import FollowUpTask, PaymentRecord
from rcm_core.schemas.remittance import (
    BatchExceptions,
    BatchListing,
    BulkResolveItem,
    BulkResolveResult,
    EnrichedLineItem,
    ExceptionListing,
    ExceptionResolutionRequest,
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
from rcm_core.services.base import TenantScopedService, require_tenant
from rcm_core.services.sinks import (
    AuditSink,
    PaymentSink,
    StorePaymentSink,
    StoreTaskSink,
    TaskSink,
)
from rcm_core.utils.dates import Clock, ensure_utc
from rcm_core.utils.errors import (
    InvalidStateError,
    NotFoundError,
    RCMError,
    ValidationFailedError,
)
from rcm_core.utils.money import ZERO, amounts_match, percentage, round_money, to_decimal

logger = logging.getLogger(__name__)

_ERA_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_RESOLVABLE = (MatchStatus.EXCEPTION, MatchStatus.UNMATCHED)
_POSTING_RESOLUTIONS = (ExceptionResolution.ACCEPT, ExceptionResolution.ADJUST)
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def match_rate(line_items: list[RemittanceLineItem]) -> Decimal:
    """Percentage of matched line items, 2 decimals (0 for an empty batch)."""
    matched = sum(1 for item in line_items if item.match_status == MatchStatus.MATCHED)
    return percentage(matched, len(line_items))


def _patient_name(patient: dict) -> str:
    name = " ".join(p for p in (patient.get("first_name"), patient.get("last_name")) if p)
    return name or patient["id"]


def dedupe_key(payer_id: str, check_number: Optional[str]) -> Optional[str]:
    """Idempotency key of a remittance (none without a check number)."""
    if not check_number:
        return None
    return f"{payer_id}:{check_number}"


class RemittanceReconciler(TenantScopedService):
    """Matches remittance line items to claims and posts payments."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[RCMSettings] = None,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        payments: Optional[PaymentSink] = None,
        tasks: Optional[TaskSink] = None,
    ):
        super().__init__(store, settings=settings, audit=audit, clock=clock)
        self.payments = payments or StorePaymentSink(store)
        self.tasks = tasks or StoreTaskSink(store)

    def _generate_era_id(self) -> str:
        """Format: ERA-{epoch millis}-{6 random chars}"""
        millis = int(self.now().timestamp() * 1000)
        suffix = "".join(secrets.choice(_ERA_SUFFIX_ALPHABET) for _ in range(6))
        return f"ERA-{millis}-{suffix}"

    # =========================================================================
    # Matching
    # =========================================================================

    async def _match_line_item(
        self,
        tenant_id: str,
        item: RemittanceLineItemInput,
    ) -> tuple[RemittanceLineItem, Optional[Claim]]:
        """Classify one line item against the tenant's claims."""
        candidates = await self.store.find(
            Table.CLAIMS, tenant_id, claim_number=item.claim_number
        )

        if not candidates:
            return RemittanceLineItem(**item.model_dump(), match_status=MatchStatus.UNMATCHED), None

        if len(candidates) > 1 and self.settings.AMBIGUOUS_CLAIM_NUMBER_AS_EXCEPTION:
            logger.warning(
                f"Claim number {item.claim_number} matches {len(candidates)} claims; "
                f"flagging line item as exception"
            )
            return RemittanceLineItem(**item.model_dump(), match_status=MatchStatus.EXCEPTION), None

        claim = Claim.model_validate(candidates[0])
        tolerance = self.settings.MONEY_TOLERANCE
        charged_matches = amounts_match(claim.total_charged, item.charged_amount, tolerance)
        total_accounted = item.paid_amount + to_decimal(item.adjustment_amount)
        reconciles = charged_matches and amounts_match(
            total_accounted, item.charged_amount, tolerance
        )

        line_item = RemittanceLineItem(
            **item.model_dump(),
            matched_claim_id=claim.id,
            match_status=MatchStatus.MATCHED if reconciles else MatchStatus.EXCEPTION,
        )
        return line_item, claim

    # =========================================================================
    # Ingest
    # =========================================================================

    async def ingest(self, tenant_id: str, remittance: RemittanceIngest) -> IngestResult:
        """
        Ingest an ERA, match its line items and mark matched claims paid.

        The whole batch commits in one transaction. A remittance with the
        same payer and check number as a stored batch is not re-applied;
        the stored batch's result is returned with `duplicate=True`.
        """
        tenant_id = require_tenant(tenant_id)
        key = dedupe_key(remittance.payer_id, remittance.check_number)

        async with self.store.transaction():
            if key and self.settings.REMITTANCE_DEDUPE_ENABLED:
                existing = await self.store.first(
                    Table.REMITTANCE_BATCHES, tenant_id, dedupe_key=key
                )
                if existing is not None:
                    batch = RemittanceBatch.model_validate(existing)
                    logger.warning(f"Duplicate remittance {key}; returning batch {batch.id}")
                    return self._ingest_result(batch, duplicate=True)

            line_items = []
            matched_claims: list[tuple[RemittanceLineItem, Claim]] = []
            for item in remittance.line_items:
                line_item, claim = await self._match_line_item(tenant_id, item)
                line_items.append(line_item)
                if line_item.match_status == MatchStatus.MATCHED:
                    matched_claims.append((line_item, claim))

            now = self.now()
            batch = RemittanceBatch(
                tenant_id=tenant_id,
                era_id=self._generate_era_id(),
                payer_id=remittance.payer_id,
                payer_name=remittance.payer_name,
                check_number=remittance.check_number,
                check_date=remittance.check_date,
                check_amount=remittance.check_amount,
                line_items=line_items,
                match_rate=match_rate(line_items),
                dedupe_key=key,
                processed_at=now,
                created_at=now,
                updated_at=now,
            )
            batch.id = await self.store.insert(Table.REMITTANCE_BATCHES, batch.to_document())

            for line_item, claim in matched_claims:
                await self.store.patch(
                    Table.CLAIMS,
                    claim.id,
                    {
                        "status": ClaimStatus.PAID,
                        "total_paid": line_item.paid_amount,
                        "adjustments": line_item.adjustment_amount,
                        "paid_at": now,
                        "updated_at": now,
                    },
                )

        result = self._ingest_result(batch)
        logger.info(
            f"Ingested {batch.era_id}: {result.matched} matched, "
            f"{result.unmatched} unmatched, {result.exceptions} exceptions"
        )
        await self._audit(
            tenant_id,
            AuditAction.ERA_INGEST,
            "remittance_batch",
            batch.id,
            {"era_id": batch.era_id, "payer_id": batch.payer_id, "match_rate": str(batch.match_rate)},
        )
        return result

    @staticmethod
    def _ingest_result(batch: RemittanceBatch, duplicate: bool = False) -> IngestResult:
        return IngestResult(
            batch_id=batch.id,
            era_id=batch.era_id,
            match_rate=batch.match_rate,
            matched=batch.count(MatchStatus.MATCHED),
            unmatched=batch.count(MatchStatus.UNMATCHED),
            exceptions=batch.count(MatchStatus.EXCEPTION),
            duplicate=duplicate,
        )

    # =========================================================================
    # Exception Resolution
    # =========================================================================

    async def _resolve_line_item(
        self,
        tenant_id: str,
        batch_id: str,
        line_item_index: int,
        claim_id: str,
        resolution: ExceptionResolution,
        adjusted_amount: Optional[Decimal],
        bulk: bool = False,
    ) -> ResolutionResult:
        """
        Link one line item to a claim and post the payment when accepted.

        Raises:
            NotFoundError: If the batch or claim is missing or owned by another tenant
            ValidationFailedError: If the index is out of range
            InvalidStateError: If the line item is not an exception or unmatched
            ConcurrencyConflictError: If the batch changed concurrently
        """
        async with self.store.transaction():
            document = await self.store.get_owned(Table.REMITTANCE_BATCHES, batch_id, tenant_id)
            if document is None:
                raise NotFoundError("Remittance batch")
            batch = RemittanceBatch.model_validate(document)
            claim = await self._load_claim(tenant_id, claim_id)

            if line_item_index < 0 or line_item_index >= len(batch.line_items):
                raise ValidationFailedError(
                    "Invalid line item index",
                    [{"field": "line_item_index", "value": line_item_index}],
                )

            line_item = batch.line_items[line_item_index]
            if line_item.match_status not in _RESOLVABLE:
                raise InvalidStateError(
                    "Line item is not an exception or unmatched",
                    {"batch_id": batch.id, "line_item_index": line_item_index},
                )

            line_items = list(batch.line_items)
            line_items[line_item_index] = line_item.model_copy(
                update={"matched_claim_id": claim.id, "match_status": MatchStatus.MATCHED}
            )
            rate = match_rate(line_items)
            now = self.now()

            await self.store.patch(
                Table.REMITTANCE_BATCHES,
                batch.id,
                {"line_items": line_items, "match_rate": rate, "updated_at": now},
                expected_version=batch.version,
            )

            payment_id = None
            if resolution in _POSTING_RESOLUTIONS:
                amount = (
                    adjusted_amount
                    if resolution == ExceptionResolution.ADJUST and adjusted_amount is not None
                    else line_item.paid_amount
                )
                await self.store.patch(
                    Table.CLAIMS,
                    claim.id,
                    {
                        "status": ClaimStatus.PAID,
                        "total_paid": amount,
                        "adjustments": line_item.adjustment_amount,
                        "paid_at": now,
                        "updated_at": now,
                    },
                )

                if bulk:
                    notes = f"Bulk ERA resolution: {resolution.value}. ERA ID: {batch.era_id}"
                else:
                    notes = (
                        f"ERA resolution: {resolution.value}. ERA ID: {batch.era_id}, "
                        f"Check #{batch.check_number or 'N/A'}"
                    )
                payment_id = await self.payments.post(
                    PaymentRecord(
                        tenant_id=tenant_id,
                        patient_id=claim.patient_id,
                        claim_id=claim.id,
                        amount=amount,
                        type=PaymentType.INSURANCE,
                        method=PaymentMethod.INSURANCE,
                        status=PaymentStatus.COMPLETED,
                        paid_at=now,
                        notes=notes,
                        created_at=now,
                        updated_at=now,
                    )
                )

        logger.info(
            f"Resolved line item {line_item_index} of {batch.era_id} "
            f"({resolution.value}) to claim {claim.id}"
        )
        return ResolutionResult(
            batch_id=batch.id,
            resolution=resolution,
            line_item_index=line_item_index,
            match_rate=rate,
            payment_id=payment_id,
        )

    async def resolve_exception(
        self,
        tenant_id: str,
        request: ExceptionResolutionRequest,
    ) -> ResolutionResult:
        """Resolve one exception or unmatched line item."""
        tenant_id = require_tenant(tenant_id)
        result = await self._resolve_line_item(
            tenant_id,
            request.batch_id,
            request.line_item_index,
            request.claim_id,
            request.resolution,
            request.adjusted_amount,
        )
        await self._audit(
            tenant_id,
            AuditAction.ERA_RESOLVE,
            "remittance_batch",
            result.batch_id,
            {
                "line_item_index": result.line_item_index,
                "claim_id": request.claim_id,
                "resolution": result.resolution.value,
            },
        )
        return result

    async def bulk_resolve(
        self,
        tenant_id: str,
        items: list[BulkResolveItem],
        resolution: ExceptionResolution,
        adjusted_amount: Optional[Decimal] = None,
    ) -> BulkResolveResult:
        """
        Apply one resolution to many line items, best effort.

        Items that cannot be resolved are skipped and not counted.
        """
        tenant_id = require_tenant(tenant_id)
        resolved = 0

        for item in items:
            try:
                await self._resolve_line_item(
                    tenant_id,
                    item.batch_id,
                    item.line_item_index,
                    item.claim_id,
                    resolution,
                    adjusted_amount,
                    bulk=True,
                )
            except RCMError as e:
                logger.debug(
                    f"Skipped line item {item.line_item_index} of batch {item.batch_id}: {e.code}"
                )
                continue
            resolved += 1

        await self._audit(
            tenant_id,
            AuditAction.ERA_BULK_RESOLVE,
            "remittance_batch",
            None,
            {"resolution": resolution.value, "resolved": resolved, "total": len(items)},
        )
        return BulkResolveResult(resolved_count=resolved, total=len(items))

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def _batches(self, tenant_id: str) -> list[RemittanceBatch]:
        """All batches of the tenant, newest first."""
        documents = await self.store.find(Table.REMITTANCE_BATCHES, tenant_id)
        batches = [RemittanceBatch.model_validate(doc) for doc in documents]
        return sorted(
            batches,
            key=lambda b: ensure_utc(b.created_at) if b.created_at else _EPOCH,
            reverse=True,
        )

    async def list_batches(
        self,
        tenant_id: str,
        match_status: Optional[MatchStatus] = None,
        limit: int = 50,
    ) -> BatchListing:
        """Batches with at least one line item in the given status."""
        batches = await self._batches(require_tenant(tenant_id))
        if match_status is not None:
            batches = [b for b in batches if b.count(match_status) > 0]
        return BatchListing(batches=batches[:limit], total_count=len(batches))

    async def get_batch(self, tenant_id: str, batch_id: str) -> RemittanceBatchDetail:
        """Batch with each matched line item's claim resolved."""
        tenant_id = require_tenant(tenant_id)
        document = await self.store.get_owned(Table.REMITTANCE_BATCHES, batch_id, tenant_id)
        if document is None:
            raise NotFoundError("Remittance batch")
        batch = RemittanceBatch.model_validate(document)

        enriched = []
        for item in batch.line_items:
            summary = None
            if item.matched_claim_id:
                claim_doc = await self.store.get_owned(Table.CLAIMS, item.matched_claim_id, tenant_id)
                if claim_doc is not None:
                    claim = Claim.model_validate(claim_doc)
                    summary = LinkedClaimSummary(
                        id=claim.id,
                        claim_number=claim.claim_number,
                        status=claim.status,
                        total_charged=claim.total_charged,
                        total_paid=claim.total_paid,
                        patient_id=claim.patient_id,
                    )
            enriched.append(EnrichedLineItem(**item.model_dump(), matched_claim=summary))

        return RemittanceBatchDetail(batch=batch, line_items=enriched)

    async def get_exceptions(self, tenant_id: str, limit: int = 50) -> ExceptionListing:
        """Batches with exception line items, newest first."""
        batches = [
            b
            for b in await self._batches(require_tenant(tenant_id))
            if b.count(MatchStatus.EXCEPTION) > 0
        ]
        exceptions = [
            BatchExceptions(
                batch=batch,
                exceptions=[
                    IndexedLineItem(line_item_index=i, line_item=item)
                    for i, item in enumerate(batch.line_items)
                    if item.match_status == MatchStatus.EXCEPTION
                ],
            )
            for batch in batches[:limit]
        ]
        return ExceptionListing(exceptions=exceptions, total_count=len(batches))

    async def get_reconciliation_summary(self, tenant_id: str) -> ReconciliationSummary:
        """Line-item counts and paid amounts per match status."""
        batches = await self._batches(require_tenant(tenant_id))

        counts = {status: 0 for status in MatchStatus}
        amounts = {status: ZERO for status in MatchStatus}
        total_items = 0
        for batch in batches:
            for item in batch.line_items:
                total_items += 1
                counts[item.match_status] += 1
                amounts[item.match_status] += item.paid_amount

        def total(status: MatchStatus) -> MatchStatusTotal:
            return MatchStatusTotal(count=counts[status], amount=round_money(amounts[status]))

        return ReconciliationSummary(
            total_batches=len(batches),
            total_line_items=total_items,
            matched=total(MatchStatus.MATCHED),
            unmatched=total(MatchStatus.UNMATCHED),
            exception=total(MatchStatus.EXCEPTION),
            auto_match_rate=percentage(counts[MatchStatus.MATCHED], total_items),
        )

    # =========================================================================
    # Patient Statements
    # =========================================================================

    async def generate_statement(
        self,
        tenant_id: str,
        request: StatementRequest,
    ) -> PatientStatement:
        """
        Total what a patient owes across claims and queue the statement.

        Per claim the patient owes their portion less what insurance paid,
        never below zero. Delivery is a billing task with a fixed SLA, raised
        to high priority for large balances.

        Raises:
            NotFoundError: If the patient or any claim is missing or owned by another tenant
        """
        tenant_id = require_tenant(tenant_id)

        async with self.store.transaction():
            patient = await self.store.get_owned(Table.PATIENTS, request.patient_id, tenant_id)
            if patient is None:
                raise NotFoundError("Patient")

            lines = []
            for claim_id in request.claim_ids:
                claim = await self._load_claim(tenant_id, claim_id)
                portion = round_money(claim.patient_portion)
                insurance_paid = round_money(claim.total_paid)
                lines.append(
                    StatementLine(
                        claim_id=claim.id,
                        claim_number=claim.claim_number or "N/A",
                        procedures=claim.procedures,
                        total_charged=round_money(claim.total_charged),
                        insurance_paid=insurance_paid,
                        adjustments=round_money(claim.adjustments),
                        patient_portion=portion,
                        patient_owes=round_money(max(ZERO, portion - insurance_paid)),
                    )
                )

            total = round_money(sum((line.patient_owes for line in lines), ZERO))
            name = _patient_name(patient)
            now = self.now()
            task_id = await self.tasks.enqueue(
                FollowUpTask(
                    tenant_id=tenant_id,
                    title=f"Send statement to {name} - ${total}",
                    description=(
                        f"Generate and send patient statement. Total patient responsibility: "
                        f"${total} across {len(lines)} claim(s)."
                    ),
                    resource_type="payment",
                    resource_id=request.patient_id,
                    assigned_role="billing",
                    priority=(
                        TaskPriority.HIGH
                        if total > self.settings.STATEMENT_HIGH_PRIORITY_AMOUNT
                        else TaskPriority.MEDIUM
                    ),
                    status="open",
                    sla_deadline=now + timedelta(hours=self.settings.STATEMENT_SLA_HOURS),
                    work_packet={
                        "action": "send_statement",
                        "patient_id": request.patient_id,
                        "patient_name": name,
                        "patient_email": patient.get("email"),
                        "patient_phone": patient.get("phone"),
                        "claims": [line.model_dump(mode="json") for line in lines],
                        "total_amount": str(total),
                    },
                    created_at=now,
                    updated_at=now,
                )
            )

        logger.info(
            f"Statement for patient {request.patient_id} queued: ${total} over {len(lines)} claim(s)"
        )
        await self._audit(
            tenant_id,
            AuditAction.ERA_STATEMENT,
            "patient",
            request.patient_id,
            {"claim_count": len(lines), "total_patient_owes": str(total), "task_id": task_id},
            phi_accessed=True,
        )

        return PatientStatement(
            patient_id=request.patient_id,
            patient_name=name,
            claim_count=len(lines),
            total_patient_owes=total,
            claims=lines,
            generated_at=now,
            task_id=task_id,
        )
