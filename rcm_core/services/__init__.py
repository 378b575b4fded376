"""
Services Layer for the Revenue Cycle Core.

Exports claim lifecycle, scrubbing, remittance reconciliation and A/R
aging services, their collaborators and the operations facade.
"""

from rcm_core.services.aging import AgingAndPrioritizationEngine, priority_from_age
from rcm_core.services.base import TenantScopedService, require_tenant
from rcm_core.services.claim_lifecycle import ClaimLifecycleManager
from rcm_core.services.claim_state_machine import (
    ClaimStateMachine,
    TransitionContext,
    TransitionEvent,
    TransitionResult,
    get_claim_state_machine,
)
from rcm_core.services.operations import (
    RevenueCycleOperations,
    create_store,
    validate_input,
)
from rcm_core.services.reference_data import (
    FeeScheduleProvider,
    PayerRuleProvider,
    StoreFeeScheduleProvider,
    StorePayerRuleProvider,
)
from rcm_core.services.remittance import RemittanceReconciler, dedupe_key, match_rate
from rcm_core.services.scrubbing import (
    ScrubConfig,
    ScrubReport,
    ScrubbingEngine,
    select_fee_schedule,
)
from rcm_core.services.sinks import (
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    NotificationSink,
    PaymentSink,
    StoreNotificationSink,
    StorePaymentSink,
    StoreTaskSink,
    TaskSink,
    emit_audit,
)

__all__ = [
    # Operations
    "RevenueCycleOperations",
    "create_store",
    "validate_input",
    # Services
    "AgingAndPrioritizationEngine",
    "ClaimLifecycleManager",
    "RemittanceReconciler",
    "ScrubbingEngine",
    "ScrubConfig",
    "ScrubReport",
    "TenantScopedService",
    "require_tenant",
    "priority_from_age",
    "select_fee_schedule",
    "dedupe_key",
    "match_rate",
    # State machine
    "ClaimStateMachine",
    "TransitionContext",
    "TransitionEvent",
    "TransitionResult",
    "get_claim_state_machine",
    # Reference data
    "FeeScheduleProvider",
    "PayerRuleProvider",
    "StoreFeeScheduleProvider",
    "StorePayerRuleProvider",
    # Sinks
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "NotificationSink",
    "PaymentSink",
    "StoreNotificationSink",
    "StorePaymentSink",
    "StoreTaskSink",
    "TaskSink",
    "emit_audit",
]
