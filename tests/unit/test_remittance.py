"""
Unit tests for remittance reconciliation.
"""

import asyncio
import re
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from rcm_core.core.enums import AuditAction, ClaimStatus, ExceptionResolution, MatchStatus
from rcm_core.db.store import Table
from rcm_core.schemas.remittance import (
    BulkResolveItem,
    ExceptionResolutionRequest,
    RemittanceIngest,
    RemittanceLineItemInput,
    StatementRequest,
)
from rcm_core.services.remittance import RemittanceReconciler, dedupe_key
from rcm_core.services.sinks import PaymentSink
from rcm_core.utils.errors import InvalidStateError, NotFoundError, ValidationFailedError

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


class GatewayDownPaymentSink(PaymentSink):
    async def post(self, payment):
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        raise ConnectionError("payment gateway unavailable")


def line(claim_number, charged, paid, adjustment=None) -> RemittanceLineItemInput:
    return RemittanceLineItemInput(
        claim_number=claim_number,
        charged_amount=Decimal(str(charged)),
        paid_amount=Decimal(str(paid)),
        adjustment_amount=Decimal(str(adjustment)) if adjustment is not None else None,
    )


def era(*items, check_number="CHK-1001") -> RemittanceIngest:
    return RemittanceIngest(
        payer_id="payer-1",
        payer_name="Delta Dental",
        check_number=check_number,
        check_amount=sum((i.paid_amount for i in items), Decimal("0")),
        line_items=list(items),
    )


@pytest.fixture
def submitted_claim(seed_claim):
    """Submitted $300 claim numbered CLM-300."""
    return seed_claim(
        claim_number="CLM-300",
        status=ClaimStatus.SUBMITTED,
        total_charged=Decimal("300.00"),
        procedures=[{"code": "D2750", "fee": "300.00", "tooth": "3"}],
    )


async def load_batch(store, batch_id):
    return await store.get(Table.REMITTANCE_BATCHES, batch_id)


class TestIngest:
    """Tests for ERA ingestion and matching."""

    @pytest.mark.asyncio
    async def test_matched_line_marks_claim_paid(self, reconciler, lifecycle, submitted_claim, clock):
        """Paid plus adjustment equal to the charge matches and pays the claim."""
        result = await reconciler.ingest(TENANT, era(line("CLM-300", "300.00", "250.00", "50.00")))

        assert result.matched == 1
        assert result.unmatched == 0
        assert result.exceptions == 0
        assert result.match_rate == Decimal("100.00")
        assert result.duplicate is False

        claim = await lifecycle.get_claim(TENANT, submitted_claim)
        assert claim.status == ClaimStatus.PAID
        assert claim.total_paid == Decimal("250")
        assert claim.adjustments == Decimal("50")
        assert claim.paid_at == clock()

    @pytest.mark.asyncio
    async def test_unknown_claim_number_is_unmatched(self, reconciler, store, submitted_claim):
        """A claim number with no claim is unmatched and mutates nothing."""
        before = await store.get(Table.CLAIMS, submitted_claim)

        result = await reconciler.ingest(TENANT, era(line("CLM-404", "120.00", "100.00")))

        assert result.unmatched == 1
        assert result.match_rate == Decimal("0.00")
        assert await store.get(Table.CLAIMS, submitted_claim) == before
        batch = await load_batch(store, result.batch_id)
        assert batch["line_items"][0]["match_status"] == "unmatched"
        assert batch["line_items"][0]["matched_claim_id"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "charged,paid,adjustment",
        [
            ("280.00", "230.00", "50.00"),  # charged differs from claim
            ("300.00", "200.00", "50.00"),  # does not reconcile
            ("300.00", "250.00", None),
        ],
    )
    async def test_amount_differences_are_exceptions(
        self, reconciler, store, submitted_claim, charged, paid, adjustment
    ):
        """Found claims whose amounts do not reconcile become exceptions."""
        result = await reconciler.ingest(TENANT, era(line("CLM-300", charged, paid, adjustment)))

        assert result.exceptions == 1
        batch = await load_batch(store, result.batch_id)
        assert batch["line_items"][0]["match_status"] == "exception"
        assert batch["line_items"][0]["matched_claim_id"] == submitted_claim
        assert (await store.get(Table.CLAIMS, submitted_claim))["status"] == "submitted"

    @pytest.mark.asyncio
    async def test_cent_tolerance(self, reconciler, submitted_claim):
        """Sub-cent differences still match."""
        result = await reconciler.ingest(TENANT, era(line("CLM-300", "300.005", "250.00", "50.00")))

        assert result.matched == 1

    @pytest.mark.asyncio
    async def test_match_rate_over_mixed_batch(self, reconciler, seed_claim, submitted_claim):
        """Match rate is matched / total, two decimals."""
        seed_claim(claim_number="CLM-150", status=ClaimStatus.SUBMITTED)

        result = await reconciler.ingest(
            TENANT,
            era(
                line("CLM-300", "300.00", "300.00"),
                line("CLM-150", "150.00", "100.00"),
                line("CLM-999", "80.00", "80.00"),
            ),
        )

        assert (result.matched, result.exceptions, result.unmatched) == (1, 1, 1)
        assert result.match_rate == Decimal("33.33")

    @pytest.mark.asyncio
    async def test_empty_batch(self, reconciler):
        """An ERA without line items has a zero match rate."""
        result = await reconciler.ingest(TENANT, era())

        assert result.match_rate == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_other_tenant_claims_not_matched(self, reconciler, submitted_claim):
        """Claims of another tenant are never linked."""
        result = await reconciler.ingest(OTHER_TENANT, era(line("CLM-300", "300.00", "300.00")))

        assert result.unmatched == 1

    @pytest.mark.asyncio
    async def test_era_id_and_audit(self, reconciler, audit, clock, submitted_claim):
        """ERA IDs embed the ingest time; ingestion is audited."""
        result = await reconciler.ingest(TENANT, era(line("CLM-300", "300.00", "300.00")))

        millis = int(clock().timestamp() * 1000)
        assert re.fullmatch(rf"ERA-{millis}-[A-Z0-9]{{6}}", result.era_id)
        events = audit.get_events(AuditAction.ERA_INGEST, result.batch_id)
        assert events[0].details["era_id"] == result.era_id

    @pytest.mark.asyncio
    async def test_ingest_is_atomic(self, reconciler, store, submitted_claim, monkeypatch):
        """A failure while paying claims leaves no batch behind."""

        async def failing_patch(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(store, "patch", failing_patch)

        with pytest.raises(RuntimeError):
            await reconciler.ingest(TENANT, era(line("CLM-300", "300.00", "300.00")))

        assert store.count(Table.REMITTANCE_BATCHES) == 0


class TestAmbiguousClaimNumbers:
    """Tests for claim numbers shared by several claims."""

    @pytest.mark.asyncio
    async def test_shared_number_is_exception(self, reconciler, store, seed_claim):
        """Multiple candidates are flagged instead of picking one."""
        seed_claim(claim_number="CLM-DUP", status=ClaimStatus.SUBMITTED)
        seed_claim(claim_number="CLM-DUP", status=ClaimStatus.SUBMITTED)

        result = await reconciler.ingest(TENANT, era(line("CLM-DUP", "150.00", "150.00")))

        assert result.exceptions == 1
        batch = await load_batch(store, result.batch_id)
        assert batch["line_items"][0]["matched_claim_id"] is None

    @pytest.mark.asyncio
    async def test_first_match_when_configured(self, store, settings, audit, clock, seed_claim):
        """First-match linking can be re-enabled."""
        first = seed_claim(claim_number="CLM-DUP", status=ClaimStatus.SUBMITTED)
        seed_claim(claim_number="CLM-DUP", status=ClaimStatus.SUBMITTED)
        reconciler = RemittanceReconciler(
            store,
            settings=settings.model_copy(update={"AMBIGUOUS_CLAIM_NUMBER_AS_EXCEPTION": False}),
            audit=audit,
            clock=clock,
        )

        result = await reconciler.ingest(TENANT, era(line("CLM-DUP", "150.00", "150.00")))

        assert result.matched == 1
        assert (await store.get(Table.CLAIMS, first))["status"] == "paid"


class TestDedupe:
    """Tests for duplicate remittance detection."""

    def test_dedupe_key(self):
        assert dedupe_key("payer-1", "CHK-1") == "payer-1:CHK-1"
        assert dedupe_key("payer-1", None) is None

    @pytest.mark.asyncio
    async def test_reingest_returns_stored_batch(self, reconciler, store, submitted_claim):
        """Re-ingesting the same check applies nothing twice."""
        first = await reconciler.ingest(TENANT, era(line("CLM-300", "300.00", "300.00")))
        second = await reconciler.ingest(TENANT, era(line("CLM-300", "300.00", "300.00")))

        assert second.duplicate is True
        assert second.batch_id == first.batch_id
        assert second.matched == 1
        assert store.count(Table.REMITTANCE_BATCHES) == 1

    @pytest.mark.asyncio
    async def test_no_check_number_no_dedupe(self, reconciler, store):
        """Remittances without a check number are always ingested."""
        await reconciler.ingest(TENANT, era(line("CLM-1", "10", "10"), check_number=None))
        await reconciler.ingest(TENANT, era(line("CLM-1", "10", "10"), check_number=None))

        assert store.count(Table.REMITTANCE_BATCHES) == 2

    @pytest.mark.asyncio
    async def test_dedupe_is_per_tenant(self, reconciler, store):
        """The same check number from another tenant is a new batch."""
        await reconciler.ingest(TENANT, era(line("CLM-1", "10", "10")))
        result = await reconciler.ingest(OTHER_TENANT, era(line("CLM-1", "10", "10")))

        assert result.duplicate is False
        assert store.count(Table.REMITTANCE_BATCHES) == 2


class TestResolveException:
    """Tests for manual exception resolution."""

    @pytest_asyncio.fixture
    async def unmatched_batch(self, reconciler):
        result = await reconciler.ingest(
            TENANT,
            era(line("CLM-LOST", "300.00", "240.00", "60.00"), line("CLM-ALSO", "90.00", "90.00")),
        )
        return result.batch_id

    @pytest.mark.asyncio
    async def test_accept_posts_payment(self, reconciler, store, lifecycle, unmatched_batch, submitted_claim):
        """Accepting links the item, pays the claim and posts a payment."""
        result = await reconciler.resolve_exception(
            TENANT,
            ExceptionResolutionRequest(
                batch_id=unmatched_batch,
                line_item_index=0,
                claim_id=submitted_claim,
                resolution=ExceptionResolution.ACCEPT,
            ),
        )

        assert result.match_rate == Decimal("50.00")
        assert result.payment_id is not None

        batch = await load_batch(store, unmatched_batch)
        assert batch["line_items"][0]["match_status"] == "matched"
        assert batch["line_items"][0]["matched_claim_id"] == submitted_claim
        assert batch["match_rate"] == "50.00"

        claim = await lifecycle.get_claim(TENANT, submitted_claim)
        assert claim.status == ClaimStatus.PAID
        assert claim.total_paid == Decimal("240")

        payment = await store.get(Table.PAYMENTS, result.payment_id)
        assert payment["amount"] == "240.00"
        assert payment["type"] == "insurance"
        assert payment["method"] == "insurance"
        assert payment["status"] == "completed"
        assert payment["notes"] == f"ERA resolution: accept. ERA ID: {batch['era_id']}, Check #CHK-1001"

    @pytest.mark.asyncio
    async def test_adjust_uses_adjusted_amount(self, reconciler, store, lifecycle, unmatched_batch, submitted_claim):
        """Adjusting pays the adjusted amount."""
        result = await reconciler.resolve_exception(
            TENANT,
            ExceptionResolutionRequest(
                batch_id=unmatched_batch,
                line_item_index=0,
                claim_id=submitted_claim,
                resolution=ExceptionResolution.ADJUST,
                adjusted_amount=Decimal("275.00"),
            ),
        )

        claim = await lifecycle.get_claim(TENANT, submitted_claim)
        assert claim.total_paid == Decimal("275.00")
        assert (await store.get(Table.PAYMENTS, result.payment_id))["amount"] == "275.00"

    @pytest.mark.asyncio
    async def test_reject_links_without_payment(self, reconciler, store, unmatched_batch, submitted_claim):
        """Rejecting links the item but posts nothing."""
        before = await store.get(Table.CLAIMS, submitted_claim)

        result = await reconciler.resolve_exception(
            TENANT,
            ExceptionResolutionRequest(
                batch_id=unmatched_batch,
                line_item_index=1,
                claim_id=submitted_claim,
                resolution=ExceptionResolution.REJECT,
            ),
        )

        assert result.payment_id is None
        assert store.count(Table.PAYMENTS) == 0
        assert await store.get(Table.CLAIMS, submitted_claim) == before
        batch = await load_batch(store, unmatched_batch)
        assert batch["line_items"][1]["match_status"] == "matched"

    @pytest.mark.asyncio
    async def test_already_matched_item_refused(self, reconciler, unmatched_batch, submitted_claim):
        """Only exception or unmatched items can be resolved."""
        request = ExceptionResolutionRequest(
            batch_id=unmatched_batch,
            line_item_index=0,
            claim_id=submitted_claim,
            resolution=ExceptionResolution.REJECT,
        )
        await reconciler.resolve_exception(TENANT, request)

        with pytest.raises(InvalidStateError, match="Line item is not an exception or unmatched"):
            await reconciler.resolve_exception(TENANT, request)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [-1, 2, 10])
    async def test_index_out_of_range(self, reconciler, unmatched_batch, submitted_claim, index):
        """Out-of-range indexes are rejected."""
        with pytest.raises(ValidationFailedError, match="Invalid line item index"):
            await reconciler.resolve_exception(
                TENANT,
                ExceptionResolutionRequest(
                    batch_id=unmatched_batch,
                    line_item_index=index,
                    claim_id=submitted_claim,
                    resolution=ExceptionResolution.ACCEPT,
                ),
            )

    @pytest.mark.asyncio
    async def test_other_tenant_batch_not_found(self, reconciler, unmatched_batch, seed_claim):
        """Batches of another tenant are not found."""
        foreign_claim = seed_claim(tenant_id=OTHER_TENANT, practice_id="practice-b")

        with pytest.raises(NotFoundError, match="Remittance batch not found"):
            await reconciler.resolve_exception(
                OTHER_TENANT,
                ExceptionResolutionRequest(
                    batch_id=unmatched_batch,
                    line_item_index=0,
                    claim_id=foreign_claim,
                    resolution=ExceptionResolution.ACCEPT,
                ),
            )

    @pytest.mark.asyncio
    async def test_missing_claim_not_found(self, reconciler, store, unmatched_batch):
        """An unknown claim leaves the batch untouched."""
        with pytest.raises(NotFoundError, match="Claim not found"):
            await reconciler.resolve_exception(
                TENANT,
                ExceptionResolutionRequest(
                    batch_id=unmatched_batch,
                    line_item_index=0,
                    claim_id="claim-404",
                    resolution=ExceptionResolution.ACCEPT,
                ),
            )

        batch = await load_batch(store, unmatched_batch)
        assert batch["line_items"][0]["match_status"] == "unmatched"

    @pytest.mark.asyncio
    async def test_failed_payment_does_not_undo_concurrent_submit(
        self, store, settings, audit, clock, lifecycle, unmatched_batch, submitted_claim, seed_claim
    ):
        """A resolution rolled back by its payment sink leaves a concurrent submit in place."""
        ready_claim = seed_claim(status=ClaimStatus.READY)
        reconciler = RemittanceReconciler(
            store, settings=settings, audit=audit, clock=clock, payments=GatewayDownPaymentSink()
        )

        async def submit_later():
            await asyncio.sleep(0)
            return await lifecycle.submit(TENANT, ready_claim)

        resolved, submitted = await asyncio.gather(
            reconciler.resolve_exception(
                TENANT,
                ExceptionResolutionRequest(
                    batch_id=unmatched_batch,
                    line_item_index=0,
                    claim_id=submitted_claim,
                    resolution=ExceptionResolution.ACCEPT,
                ),
            ),
            submit_later(),
            return_exceptions=True,
        )

        assert isinstance(resolved, ConnectionError)
        assert submitted.status == ClaimStatus.SUBMITTED
        assert (await lifecycle.get_claim(TENANT, ready_claim)).status == ClaimStatus.SUBMITTED
        assert (await lifecycle.get_claim(TENANT, submitted_claim)).status == ClaimStatus.SUBMITTED
        batch = await load_batch(store, unmatched_batch)
        assert batch["line_items"][0]["match_status"] == "unmatched"
        assert store.count(Table.PAYMENTS) == 0


class TestBulkResolve:
    """Tests for best-effort bulk resolution."""

    @pytest.mark.asyncio
    async def test_failures_are_skipped(self, reconciler, store, seed_claim, audit):
        """Bad entries are skipped and not counted."""
        first = seed_claim(status=ClaimStatus.SUBMITTED)
        second = seed_claim(status=ClaimStatus.SUBMITTED)
        ingest = await reconciler.ingest(
            TENANT,
            era(line("X-1", "100", "100"), line("X-2", "200", "180"), line("X-3", "50", "50")),
        )
        batch_id = ingest.batch_id

        result = await reconciler.bulk_resolve(
            TENANT,
            [
                BulkResolveItem(batch_id=batch_id, line_item_index=0, claim_id=first),
                BulkResolveItem(batch_id=batch_id, line_item_index=1, claim_id=second),
                BulkResolveItem(batch_id=batch_id, line_item_index=0, claim_id=second),  # now matched
                BulkResolveItem(batch_id=batch_id, line_item_index=9, claim_id=first),
                BulkResolveItem(batch_id="batch-404", line_item_index=0, claim_id=first),
                BulkResolveItem(batch_id=batch_id, line_item_index=2, claim_id="claim-404"),
            ],
            ExceptionResolution.ACCEPT,
        )

        assert result.resolved_count == 2
        assert result.total == 6

        batch = await load_batch(store, batch_id)
        assert [i["match_status"] for i in batch["line_items"]] == ["matched", "matched", "unmatched"]
        assert batch["match_rate"] == "66.67"

        payments = await store.find(Table.PAYMENTS, TENANT)
        assert len(payments) == 2
        assert payments[0]["notes"] == f"Bulk ERA resolution: accept. ERA ID: {batch['era_id']}"

        details = audit.get_events(AuditAction.ERA_BULK_RESOLVE)[0].details
        assert details == {"resolution": "accept", "resolved": 2, "total": 6}


class TestReads:
    """Tests for batch listing and summaries."""

    @pytest.mark.asyncio
    async def test_listing_and_summary(self, reconciler, clock, submitted_claim):
        """Batch listing, detail, exceptions and summary."""
        matched = await reconciler.ingest(
            TENANT, era(line("CLM-300", "300.00", "300.00"), check_number="A")
        )
        clock.advance(seconds=60)
        mixed = await reconciler.ingest(
            TENANT,
            era(line("CLM-300", "300.00", "100.00"), line("CLM-9", "40.00", "40.00"), check_number="B"),
        )

        listing = await reconciler.list_batches(TENANT)
        assert [b.id for b in listing.batches] == [mixed.batch_id, matched.batch_id]

        with_exceptions = await reconciler.list_batches(TENANT, match_status=MatchStatus.EXCEPTION)
        assert [b.id for b in with_exceptions.batches] == [mixed.batch_id]

        detail = await reconciler.get_batch(TENANT, matched.batch_id)
        assert detail.line_items[0].matched_claim.id == submitted_claim
        assert detail.line_items[0].matched_claim.status == ClaimStatus.PAID

        exceptions = await reconciler.get_exceptions(TENANT)
        assert exceptions.total_count == 1
        assert [e.line_item_index for e in exceptions.exceptions[0].exceptions] == [0]

        summary = await reconciler.get_reconciliation_summary(TENANT)
        assert summary.total_batches == 2
        assert summary.total_line_items == 3
        assert summary.matched.count == 1
        assert summary.matched.amount == Decimal("300.00")
        assert summary.exception.amount == Decimal("100.00")
        assert summary.unmatched.count == 1
        assert summary.auto_match_rate == Decimal("33.33")

    @pytest.mark.asyncio
    async def test_get_batch_other_tenant(self, reconciler):
        """Batches are tenant-scoped."""
        result = await reconciler.ingest(TENANT, era(line("CLM-1", "10", "10")))

        with pytest.raises(NotFoundError):
            await reconciler.get_batch(OTHER_TENANT, result.batch_id)


class TestPatientStatements:
    """Tests for patient statement generation."""

    @pytest.fixture
    def statement_patient(self, store):
        store.seed_documents(
            Table.PATIENTS,
            [
                {
                    "id": "patient-s",
                    "tenant_id": TENANT,
                    "first_name": "Ana",
                    "last_name": "Lopez",
                    "email": "ana@example.com",
                    "phone": "555-0100",
                }
            ],
        )
        return "patient-s"

    @pytest.mark.asyncio
    async def test_statement_totals_and_task(self, reconciler, store, audit, clock, seed_claim, statement_patient):
        """Patient owes their portion less insurance paid, floored at zero per claim."""
        first = seed_claim(
            patient_id=statement_patient,
            claim_number="CLM-A",
            patient_portion=Decimal("400.00"),
            total_paid=Decimal("150.00"),
            adjustments=Decimal("20.00"),
        )
        second = seed_claim(patient_id=statement_patient, claim_number="CLM-B", patient_portion=Decimal("300.00"))
        covered = seed_claim(
            patient_id=statement_patient,
            claim_number="CLM-C",
            patient_portion=Decimal("50.00"),
            total_paid=Decimal("120.00"),
        )

        statement = await reconciler.generate_statement(
            TENANT, StatementRequest(patient_id=statement_patient, claim_ids=[first, second, covered])
        )

        assert statement.patient_name == "Ana Lopez"
        assert statement.claim_count == 3
        assert [line.claim_number for line in statement.claims] == ["CLM-A", "CLM-B", "CLM-C"]
        assert [line.patient_owes for line in statement.claims] == [
            Decimal("250.00"),
            Decimal("300.00"),
            Decimal("0.00"),
        ]
        assert statement.claims[0].insurance_paid == Decimal("150.00")
        assert statement.claims[0].adjustments == Decimal("20.00")
        assert statement.claims[1].insurance_paid == Decimal("0.00")
        assert statement.total_patient_owes == Decimal("550.00")
        assert statement.generated_at == clock()

        task = await store.get(Table.TASKS, statement.task_id)
        assert task["title"] == "Send statement to Ana Lopez - $550.00"
        assert task["description"] == (
            "Generate and send patient statement. Total patient responsibility: "
            "$550.00 across 3 claim(s)."
        )
        assert task["resource_type"] == "payment"
        assert task["resource_id"] == statement_patient
        assert task["assigned_role"] == "billing"
        assert task["priority"] == "high"
        assert task["sla_deadline"] == (clock() + timedelta(hours=48)).isoformat().replace("+00:00", "Z")
        assert task["work_packet"]["action"] == "send_statement"
        assert task["work_packet"]["patient_email"] == "ana@example.com"
        assert task["work_packet"]["total_amount"] == "550.00"
        assert [c["claim_id"] for c in task["work_packet"]["claims"]] == [first, second, covered]

        [entry] = audit.get_events(AuditAction.ERA_STATEMENT)
        assert entry.resource_id == statement_patient
        assert entry.phi_accessed is True

    @pytest.mark.asyncio
    async def test_priority_threshold(self, reconciler, store, seed_claim, statement_patient):
        """A balance of exactly $500 stays medium priority."""
        claim_id = seed_claim(patient_id=statement_patient, patient_portion=Decimal("500.00"))

        statement = await reconciler.generate_statement(
            TENANT, StatementRequest(patient_id=statement_patient, claim_ids=[claim_id])
        )

        assert (await store.get(Table.TASKS, statement.task_id))["priority"] == "medium"

    @pytest.mark.asyncio
    async def test_name_falls_back_to_patient_id(self, reconciler, seed_claim):
        claim_id = seed_claim(claim_number=None, patient_portion=Decimal("10.00"))

        statement = await reconciler.generate_statement(
            TENANT, StatementRequest(patient_id="patient-1", claim_ids=[claim_id])
        )

        assert statement.patient_name == "patient-1"
        assert statement.claims[0].claim_number == "N/A"

    @pytest.mark.asyncio
    async def test_other_tenant_patient_not_found(self, reconciler, store):
        with pytest.raises(NotFoundError, match="Patient not found"):
            await reconciler.generate_statement(
                OTHER_TENANT, StatementRequest(patient_id="patient-1", claim_ids=[])
            )

        assert store.count(Table.TASKS) == 0

    @pytest.mark.asyncio
    async def test_other_tenant_claim_not_found(self, reconciler, store, seed_claim, statement_patient):
        """One foreign claim fails the whole statement and queues nothing."""
        own = seed_claim(patient_id=statement_patient, patient_portion=Decimal("100.00"))
        foreign = seed_claim(tenant_id=OTHER_TENANT, patient_id="patient-b")

        with pytest.raises(NotFoundError, match="Claim not found"):
            await reconciler.generate_statement(
                TENANT, StatementRequest(patient_id=statement_patient, claim_ids=[own, foreign])
            )

        assert store.count(Table.TASKS) == 0
