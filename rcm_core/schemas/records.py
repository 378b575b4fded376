"""
Pydantic Schemas for records emitted to downstream sinks.

Payments, follow-up tasks, notifications and audit entries are written by the core and
consumed elsewhere; the core never reads them back.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from rcm_core.core.enums import (
    AuditAction,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    TaskPriority,
)
from rcm_core.schemas.base import TenantDocument
from rcm_core.utils.dates import utc_now


class PaymentRecord(TenantDocument):
    """Posted payment."""

    patient_id: Optional[str] = None
    claim_id: Optional[str] = None
    amount: Decimal
    type: PaymentType = PaymentType.INSURANCE
    method: PaymentMethod = PaymentMethod.INSURANCE
    status: PaymentStatus = PaymentStatus.COMPLETED
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None


class FollowUpTask(TenantDocument):
    """Work item for the billing team."""

    title: str
    description: str = ""
    resource_type: str = "claim"
    resource_id: Optional[str] = None
    assigned_role: str = "billing"
    priority: TaskPriority = TaskPriority.MEDIUM
    status: str = "open"
    sla_deadline: Optional[datetime] = None
    work_packet: dict[str, Any] = Field(
        default_factory=dict, description="Structured payload for whoever picks up the task"
    )


class Notification(TenantDocument):
    """In-app alert addressed to every user holding one of the roles."""

    title: str
    message: str
    type: str = "warning"
    resource_type: str
    resource_id: Optional[str] = None
    recipient_roles: list[str] = Field(default_factory=list)
    is_read: bool = False


class AuditEntry(BaseModel):
    """Append-only audit record."""

    tenant_id: str
    action: AuditAction
    resource_type: str
    resource_id: Optional[str] = None
    actor_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    phi_accessed: bool = False
    timestamp: datetime = Field(default_factory=utc_now)
