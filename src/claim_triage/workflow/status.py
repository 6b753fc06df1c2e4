"""Claim status state machine."""

from claim_triage.exceptions import InvalidStatusTransitionError
from claim_triage.models.claim import ClaimStatus

TERMINAL_STATUSES = frozenset({ClaimStatus.CLOSED})

# Statuses a human or the orchestrator may divert to from any non-terminal status
SIDE_BRANCHES = frozenset({ClaimStatus.FLAGGED_FRAUD, ClaimStatus.ESCALATED_TO_HUMAN})

# Statuses from which a claim may be reset to SUBMITTED and run again
REPROCESSABLE_STATUSES = frozenset(
    {
        ClaimStatus.SUBMITTED,
        ClaimStatus.INCOMPLETE,
        ClaimStatus.INVALID,
        ClaimStatus.ESCALATED_TO_HUMAN,
    }
)

_FORWARD: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.SUBMITTED: frozenset(
        {ClaimStatus.UNDER_REVIEW, ClaimStatus.INCOMPLETE, ClaimStatus.INVALID}
    ),
    ClaimStatus.INCOMPLETE: frozenset({ClaimStatus.SUBMITTED}),
    ClaimStatus.INVALID: frozenset({ClaimStatus.SUBMITTED}),
    ClaimStatus.UNDER_REVIEW: frozenset({ClaimStatus.INVESTIGATING}),
    ClaimStatus.INVESTIGATING: frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED}),
    ClaimStatus.APPROVED: frozenset({ClaimStatus.PAID}),
    ClaimStatus.REJECTED: frozenset({ClaimStatus.CLOSED}),
    ClaimStatus.PAID: frozenset({ClaimStatus.CLOSED}),
    ClaimStatus.ESCALATED_TO_HUMAN: frozenset(
        {
            ClaimStatus.UNDER_REVIEW,
            ClaimStatus.APPROVED,
            ClaimStatus.REJECTED,
            ClaimStatus.SUBMITTED,
        }
    ),
    ClaimStatus.FLAGGED_FRAUD: frozenset({ClaimStatus.REJECTED}),
    ClaimStatus.CLOSED: frozenset(),
}


def allowed_transitions(status: ClaimStatus) -> frozenset[ClaimStatus]:
    """Every status reachable in one step from ``status``."""
    status = ClaimStatus(status)
    if status in TERMINAL_STATUSES:
        return frozenset()
    return (_FORWARD[status] | SIDE_BRANCHES) - {status}


def can_transition(old: ClaimStatus, new: ClaimStatus) -> bool:
    return ClaimStatus(new) in allowed_transitions(old)


def validate_transition(old: ClaimStatus, new: ClaimStatus) -> None:
    """Raise InvalidStatusTransitionError unless ``old -> new`` is allowed."""
    if not can_transition(old, new):
        raise InvalidStatusTransitionError(ClaimStatus(old).value, ClaimStatus(new).value)
