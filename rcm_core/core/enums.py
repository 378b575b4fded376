"""
Core Enumerations for the Revenue Cycle Core.
Closed status vocabularies for claims, denials, appeals and remittances.
"""

from enum import Enum


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    DRAFT | SCRUB_FAILED | READY -> SCRUBBING
    SCRUBBING -> READY | SCRUB_FAILED
    READY -> SUBMITTED
    any -> ACCEPTED | REJECTED | PAID | DENIED | APPEALED (manual update)
    """

    DRAFT = "draft"
    SCRUBBING = "scrubbing"
    SCRUB_FAILED = "scrub_failed"
    READY = "ready"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PAID = "paid"
    DENIED = "denied"
    APPEALED = "appealed"


class AgeBucket(str, Enum):
    """Days-outstanding bucket used for A/R reporting."""

    DAYS_0_30 = "0-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_91_120 = "91-120"
    DAYS_120_PLUS = "120+"


class PreDeterminationStatus(str, Enum):
    """Payer response to a pre-determination request."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    PARTIAL = "partial"


class ScrubSeverity(str, Enum):
    """Severity level of a scrub finding."""

    ERROR = "error"  # Blocks submission
    WARNING = "warning"  # Flags for review but doesn't block
    INFO = "info"  # Informational only


class PayerRuleType(str, Enum):
    """Kinds of payer-specific scrubbing rules."""

    PROCEDURE_COMBO = "procedure_combo"
    ATTACHMENT_REQUIRED = "attachment_required"
    FREQUENCY_LIMIT = "frequency_limit"
    AGE_LIMIT = "age_limit"
    PRE_AUTH_REQUIRED = "pre_auth_required"
    MISSING_DATA = "missing_data"


# =============================================================================
# Denial / Appeal Enums
# =============================================================================


class DenialStatus(str, Enum):
    """Denial work status."""

    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    APPEALING = "appealing"
    APPEALED = "appealed"
    WON = "won"
    LOST = "lost"
    PARTIAL = "partial"
    WRITTEN_OFF = "written_off"


class DenialCategory(str, Enum):
    """Root-cause category of a denial."""

    ELIGIBILITY = "eligibility"
    CODING = "coding"
    DOCUMENTATION = "documentation"
    AUTHORIZATION = "authorization"
    TIMELY_FILING = "timely_filing"
    DUPLICATE = "duplicate"
    OTHER = "other"


class AppealStatus(str, Enum):
    """Appeal status."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    SUBMITTED = "submitted"
    WON = "won"
    LOST = "lost"
    PARTIAL = "partial"


# =============================================================================
# Remittance Enums
# =============================================================================


class MatchStatus(str, Enum):
    """Outcome of matching a remittance line item to a claim."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"
    EXCEPTION = "exception"


class ExceptionResolution(str, Enum):
    """Manual resolution applied to an exception line item."""

    ACCEPT = "accept"
    REJECT = "reject"
    ADJUST = "adjust"


# =============================================================================
# Payment / Task Enums
# =============================================================================


class PaymentType(str, Enum):
    """Payment source."""

    INSURANCE = "insurance"
    PATIENT = "patient"


class PaymentMethod(str, Enum):
    """Payment method values."""

    INSURANCE = "insurance"
    CHECK = "check"
    ACH = "ach"
    CARD = "card"
    CASH = "cash"


class PaymentStatus(str, Enum):
    """Payment status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class FollowUpAction(str, Enum):
    """Collections follow-up action."""

    CALL = "call"
    LETTER = "letter"
    NOTE = "note"


class TaskPriority(str, Enum):
    """Work-item priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AuditAction(str, Enum):
    """Audited core actions."""

    CLAIM_CREATE = "claim.create"
    CLAIM_SCRUB = "claim.scrub"
    CLAIM_SUBMIT = "claim.submit"
    CLAIM_STATUS_UPDATE = "claim.status_update"
    CLAIM_WRITE_OFF = "write_off"
    ERA_INGEST = "era.ingest"
    ERA_RESOLVE = "era.resolve"
    ERA_BULK_RESOLVE = "era.bulk_resolve"
    ERA_STATEMENT = "era.statement"
    PAYER_ALERT = "payer.alert"


class StoreMode(str, Enum):
    """Document store binding."""

    DEMO = "demo"  # In-memory store
    LIVE = "live"  # SQLAlchemy-backed store
