"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count

import pytest

from rcm_core.core.config import RCMSettings
from rcm_core.core.enums import ClaimStatus
from rcm_core.db.store import InMemoryDocumentStore, Table
from rcm_core.services.aging import AgingAndPrioritizationEngine
from rcm_core.services.claim_lifecycle import ClaimLifecycleManager
from rcm_core.services.operations import RevenueCycleOperations
from rcm_core.services.remittance import RemittanceReconciler
from rcm_core.services.sinks import InMemoryAuditSink

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, days: int = 0, seconds: int = 0) -> None:
        self.current = self.current + timedelta(days=days, seconds=seconds)


@pytest.fixture
def settings():
    """Settings with defaults only (no .env)."""
    return RCMSettings(_env_file=None)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def audit():
    return InMemoryAuditSink()


@pytest.fixture
def store():
    """In-memory store seeded with reference entities for two tenants."""
    store = InMemoryDocumentStore()
    store.seed_documents(
        Table.PRACTICES,
        [
            {"id": "practice-1", "tenant_id": TENANT, "name": "Smile Dental"},
            {"id": "practice-2", "tenant_id": TENANT, "name": "Bright Teeth"},
            {"id": "practice-b", "tenant_id": OTHER_TENANT, "name": "Other Practice"},
        ],
    )
    store.seed_documents(
        Table.PATIENTS,
        [
            {"id": "patient-1", "tenant_id": TENANT},
            {"id": "patient-2", "tenant_id": TENANT},
            {"id": "patient-b", "tenant_id": OTHER_TENANT},
        ],
    )
    store.seed_documents(
        Table.APPOINTMENTS,
        [
            {"id": "appt-1", "tenant_id": TENANT, "patient_id": "patient-1"},
            {"id": "appt-b", "tenant_id": OTHER_TENANT, "patient_id": "patient-b"},
        ],
    )
    return store


@pytest.fixture
def seed_claim(store):
    """
    Factory inserting a claim document directly.

    Returns the claim ID. Keyword arguments override the defaults.
    """
    sequence = count(1)

    def _seed(**overrides) -> str:
        number = next(sequence)
        document = {
            "tenant_id": TENANT,
            "practice_id": "practice-1",
            "patient_id": "patient-1",
            "payer_id": "payer-1",
            "payer_name": "Delta Dental",
            "claim_number": f"CLM-2025-{number:06d}",
            "status": ClaimStatus.DRAFT,
            "procedures": [
                {"code": "D2140", "description": "Amalgam, one surface", "fee": "150.00", "tooth": "14"}
            ],
            "total_charged": Decimal("150.00"),
            "is_pre_determination": False,
            "created_at": NOW - timedelta(minutes=number),
            "updated_at": NOW - timedelta(minutes=number),
        }
        document.update(overrides)
        return store.seed_documents(Table.CLAIMS, [document])[0]

    return _seed


@pytest.fixture
def lifecycle(store, settings, audit, clock):
    return ClaimLifecycleManager(store, settings=settings, audit=audit, clock=clock)


@pytest.fixture
def reconciler(store, settings, audit, clock):
    return RemittanceReconciler(store, settings=settings, audit=audit, clock=clock)


@pytest.fixture
def aging(store, settings, audit, clock):
    return AgingAndPrioritizationEngine(store, settings=settings, audit=audit, clock=clock)


@pytest.fixture
def operations(store, settings, audit, clock):
    return RevenueCycleOperations(store, settings=settings, audit=audit, clock=clock)


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
