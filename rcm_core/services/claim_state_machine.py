"""
Claim status rules.

Scrubbing and submission are guarded: a claim scrubs from any
pre-submission status (or re-scrubs once it has gone out) and is only
submitted from READY. Payer outcomes (accepted, rejected, paid, denied,
appealed) arrive from clearinghouse feeds and staff overrides, so they
may be set from any status.

    DRAFT | SCRUB_FAILED | READY | SCRUBBING --start_scrub--> SCRUBBING
    any post-submission status --rescrub--> SCRUBBING
    SCRUBBING --scrub_passed--> READY
    SCRUBBING --scrub_failed--> SCRUB_FAILED
    READY --submit--> SUBMITTED
    any --accept|reject|mark_paid|deny|appeal--> payer outcome
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional

from rcm_core.core.enums import ClaimStatus

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    """What happened to the claim."""

    START_SCRUB = "start_scrub"
    RESCRUB = "rescrub"
    SCRUB_PASSED = "scrub_passed"
    SCRUB_FAILED = "scrub_failed"
    SUBMIT = "submit"
    ACCEPT = "accept"
    REJECT = "reject"
    MARK_PAID = "mark_paid"
    DENY = "deny"
    APPEAL = "appeal"


@dataclass(frozen=True)
class Transition:
    """One allowed edge of the claim status graph."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    auto_transition: bool = False  # scrub outcome, never requested directly
    manual_override: bool = False  # payer outcome, ignores the current status


@dataclass
class TransitionContext:
    """A requested status change for one claim."""

    claim_id: str
    current_status: ClaimStatus
    target_status: ClaimStatus
    event: TransitionEvent
    triggered_by: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TransitionResult:
    success: bool
    from_status: ClaimStatus
    to_status: Optional[ClaimStatus] = None
    error: Optional[str] = None
    transition: Optional[Transition] = None


# =============================================================================
# Status Groups
# =============================================================================


PRE_SUBMISSION_STATUSES = frozenset(
    {
        ClaimStatus.DRAFT,
        ClaimStatus.SCRUBBING,
        ClaimStatus.SCRUB_FAILED,
        ClaimStatus.READY,
    }
)

POST_SUBMISSION_STATUSES = frozenset(set(ClaimStatus) - PRE_SUBMISSION_STATUSES)

OPEN_AR_STATUSES = frozenset(
    {
        ClaimStatus.SUBMITTED,
        ClaimStatus.ACCEPTED,
        ClaimStatus.DENIED,
        ClaimStatus.APPEALED,
    }
)

# Age stops growing once the claim is settled one way or the other
AGING_TERMINAL_STATUSES = frozenset({ClaimStatus.PAID, ClaimStatus.DENIED})

# Counted as "in flight" by claim statistics
IN_FLIGHT_STATUSES = frozenset(
    {
        ClaimStatus.SUBMITTED,
        ClaimStatus.ACCEPTED,
        ClaimStatus.REJECTED,
        ClaimStatus.APPEALED,
    }
)

STATUS_UPDATE_EVENTS: dict[ClaimStatus, TransitionEvent] = {
    ClaimStatus.ACCEPTED: TransitionEvent.ACCEPT,
    ClaimStatus.REJECTED: TransitionEvent.REJECT,
    ClaimStatus.PAID: TransitionEvent.MARK_PAID,
    ClaimStatus.DENIED: TransitionEvent.DENY,
    ClaimStatus.APPEALED: TransitionEvent.APPEAL,
}


# =============================================================================
# Status Graph
# =============================================================================


def _edges(
    sources: Iterable[ClaimStatus],
    event: TransitionEvent,
    target: ClaimStatus,
    **flags: bool,
) -> list[Transition]:
    return [Transition(source, target, event, **flags) for source in sources]


VALID_TRANSITIONS: list[Transition] = [
    *_edges(PRE_SUBMISSION_STATUSES, TransitionEvent.START_SCRUB, ClaimStatus.SCRUBBING),
    *_edges(POST_SUBMISSION_STATUSES, TransitionEvent.RESCRUB, ClaimStatus.SCRUBBING),
    *_edges(
        [ClaimStatus.SCRUBBING],
        TransitionEvent.SCRUB_PASSED,
        ClaimStatus.READY,
        auto_transition=True,
    ),
    *_edges(
        [ClaimStatus.SCRUBBING],
        TransitionEvent.SCRUB_FAILED,
        ClaimStatus.SCRUB_FAILED,
        auto_transition=True,
    ),
    *_edges([ClaimStatus.READY], TransitionEvent.SUBMIT, ClaimStatus.SUBMITTED),
    *(
        edge
        for target, event in STATUS_UPDATE_EVENTS.items()
        for edge in _edges(ClaimStatus, event, target, manual_override=True)
    ),
]


class ClaimStateMachine:
    """Looks up and checks claim status changes against the status graph."""

    def __init__(self, transitions: Optional[Iterable[Transition]] = None):
        self._by_event: dict[tuple[ClaimStatus, TransitionEvent], Transition] = {}
        self._by_source: dict[ClaimStatus, list[Transition]] = defaultdict(list)

        for transition in transitions if transitions is not None else VALID_TRANSITIONS:
            self._by_event[(transition.from_status, transition.event)] = transition
            self._by_source[transition.from_status].append(transition)

    def get_valid_transitions(self, status: ClaimStatus) -> list[Transition]:
        return list(self._by_source.get(status, ()))

    def get_valid_events(self, status: ClaimStatus) -> list[TransitionEvent]:
        return [t.event for t in self.get_valid_transitions(status)]

    def can_transition(self, from_status: ClaimStatus, to_status: ClaimStatus) -> bool:
        """True when some event moves a claim from one status to the other."""
        return any(t.to_status == to_status for t in self.get_valid_transitions(from_status))

    def get_transition(
        self, from_status: ClaimStatus, event: TransitionEvent
    ) -> Optional[Transition]:
        return self._by_event.get((from_status, event))

    def validate_transition(self, context: TransitionContext) -> TransitionResult:
        """
        Check a requested change without side effects.

        The event must be allowed from the current status and must lead
        to the requested target.
        """
        current = context.current_status
        transition = self.get_transition(current, context.event)

        if transition is None:
            error = f"Cannot {context.event.value} a claim in status {current.value}"
        elif transition.to_status != context.target_status:
            error = (
                f"{context.event.value} moves a claim to {transition.to_status.value}, "
                f"not {context.target_status.value}"
            )
        else:
            return TransitionResult(
                success=True,
                from_status=current,
                to_status=transition.to_status,
                transition=transition,
            )

        return TransitionResult(success=False, from_status=current, error=error)

    def execute_transition(self, context: TransitionContext) -> TransitionResult:
        """Validate a change and log it; the caller persists the new status."""
        result = self.validate_transition(context)

        if result.success:
            logger.info(
                f"Claim {context.claim_id}: {context.current_status.value} -> "
                f"{result.to_status.value} on {context.event.value}"
            )
        else:
            logger.warning(f"Claim {context.claim_id} rejected status change: {result.error}")

        return result


# =============================================================================
# Status Helpers
# =============================================================================


def is_pre_submission_status(status: ClaimStatus) -> bool:
    """Not yet sent to the payer."""
    return status in PRE_SUBMISSION_STATUSES


def is_open_ar_status(status: ClaimStatus) -> bool:
    return status in OPEN_AR_STATUSES


def is_aging_terminal_status(status: ClaimStatus) -> bool:
    return status in AGING_TERMINAL_STATUSES


def status_update_event(target: ClaimStatus) -> TransitionEvent:
    """
    Event behind a manual status update.

    Raises:
        ValueError: If target is not a payer outcome
    """
    try:
        return STATUS_UPDATE_EVENTS[target]
    except KeyError:
        raise ValueError(f"{target.value} is not a manual status update target") from None


_state_machine: Optional[ClaimStateMachine] = None


def get_claim_state_machine() -> ClaimStateMachine:
    """Shared machine built from the default status graph."""
    global _state_machine
    if _state_machine is None:
        _state_machine = ClaimStateMachine()
    return _state_machine
