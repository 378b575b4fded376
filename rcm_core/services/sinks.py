"""
Downstream Sinks.

Provides:
- Audit sink (fire-and-forget)
- Payment sink
- Follow-up task sink
- Notification sink

The core writes to these and never reads the records back.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from rcm_core.core.enums import AuditAction
from rcm_core.db.store import DocumentStore, Table
from rcm_core.schemas.records import AuditEntry, FollowUpTask, Notification, PaymentRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Audit
# =============================================================================


class AuditSink(ABC):
    """Append-only audit log."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> None:
        """Append one entry."""


class InMemoryAuditSink(AuditSink):
    """Audit sink keeping recent entries in memory."""

    def __init__(self, max_events: int = 100000):
        self._max_events = max_events
        self._events: list[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> None:
        self._events.append(entry)
        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

    def get_events(
        self,
        action: Optional[AuditAction] = None,
        resource_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Recorded entries, optionally filtered."""
        events = self._events.copy()
        if action:
            events = [e for e in events if e.action == action]
        if resource_id:
            events = [e for e in events if e.resource_id == resource_id]
        return events

    def clear_events(self) -> None:
        """Clear all events (for testing)."""
        self._events.clear()


class LoggingAuditSink(AuditSink):
    """Audit sink writing entries to the log."""

    async def append(self, entry: AuditEntry) -> None:
        logger.info(
            f"AUDIT {entry.action.value} {entry.resource_type}/{entry.resource_id} "
            f"tenant={entry.tenant_id} phi={entry.phi_accessed}"
        )


async def emit_audit(
    sink: AuditSink,
    tenant_id: str,
    action: AuditAction,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    phi_accessed: bool = False,
    actor_id: Optional[str] = None,
) -> None:
    """Append an audit entry; a failing sink never fails the caller."""
    entry = AuditEntry(
        tenant_id=tenant_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
        details=details or {},
        phi_accessed=phi_accessed,
    )
    try:
        await sink.append(entry)
    except Exception as e:
        logger.error(f"Audit sink failed for {action.value} {resource_type}/{resource_id}: {e}")


# =============================================================================
# Payments / Tasks / Notifications
# =============================================================================


class PaymentSink(ABC):
    """Destination for posted payments."""

    @abstractmethod
    async def post(self, payment: PaymentRecord) -> str:
        """Post a payment and return its ID."""


class TaskSink(ABC):
    """Destination for follow-up work items."""

    @abstractmethod
    async def enqueue(self, task: FollowUpTask) -> str:
        """Enqueue a task and return its ID."""


class NotificationSink(ABC):
    """Destination for user-facing alerts."""

    @abstractmethod
    async def notify(self, notification: Notification) -> str:
        """Deliver a notification and return its ID."""


class StorePaymentSink(PaymentSink):
    """Payments written to the `payments` table."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def post(self, payment: PaymentRecord) -> str:
        payment_id = await self._store.insert(Table.PAYMENTS, payment.to_document())
        logger.info(f"Posted {payment.type.value} payment {payment_id} for claim {payment.claim_id}")
        return payment_id


class StoreTaskSink(TaskSink):
    """Tasks written to the `tasks` table."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def enqueue(self, task: FollowUpTask) -> str:
        task_id = await self._store.insert(Table.TASKS, task.to_document())
        logger.info(f"Enqueued {task.priority.value} task {task_id} for {task.resource_type}/{task.resource_id}")
        return task_id


class StoreNotificationSink(NotificationSink):
    """Notifications written to the `notifications` table."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def notify(self, notification: Notification) -> str:
        notification_id = await self._store.insert(Table.NOTIFICATIONS, notification.to_document())
        logger.info(
            f"Notified {','.join(notification.recipient_roles) or 'nobody'} about "
            f"{notification.resource_type}/{notification.resource_id}"
        )
        return notification_id
