"""Exception hierarchy for claim triage.

Scoring code is pure and does not raise these; they are raised at the seams
where claims enter the system, where collaborators are called, and where
claim state is persisted.
"""

from typing import Any


class ClaimTriageError(Exception):
    """Base class for all claim triage errors."""


class ClaimValidationError(ClaimTriageError):
    """Submitted claim failed intake validation.

    ``status`` is the status the claim is held at: ``INCOMPLETE`` when
    required data is missing, ``INVALID`` when data is present but wrong.
    """

    def __init__(self, errors: list[str], status: str):
        self.errors = list(errors)
        self.status = status
        super().__init__(f"Claim validation failed ({status}): {'; '.join(self.errors)}")


class ClaimNotFoundError(ClaimTriageError):
    """No claim exists with the given ID."""

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Claim not found: {claim_id}")


class ClaimAlreadyProcessingError(ClaimTriageError):
    """Another orchestration run currently owns this claim."""

    def __init__(self, claim_id: str, active_run_id: str | None = None):
        self.claim_id = claim_id
        self.active_run_id = active_run_id
        detail = f" (run {active_run_id})" if active_run_id else ""
        super().__init__(f"Claim {claim_id} is already being processed{detail}")


class InvalidStatusTransitionError(ClaimTriageError):
    """Requested claim status change is not allowed by the status machine."""

    def __init__(self, old_status: str, new_status: str):
        self.old_status = old_status
        self.new_status = new_status
        super().__init__(f"Invalid status transition: {old_status} -> {new_status}")


class ExternalSourceError(ClaimTriageError):
    """An external collaborator (pricing, watchlist, OCR, ...) failed or timed out."""

    def __init__(self, source: str, cause: Any = None):
        self.source = source
        self.cause = cause
        message = f"External source '{source}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class StateRulesError(ClaimTriageError):
    """State rule table could not be loaded or is malformed."""


class AuditDeliveryError(ClaimTriageError):
    """CRITICAL audit events could not be persisted."""

    def __init__(self, undelivered: int):
        self.undelivered = undelivered
        super().__init__(f"{undelivered} critical audit event(s) could not be persisted")
