"""Submission validation.

Raw submissions are sanitized and parsed into records here; a stored claim is
checked against its policy before phase 1. Failures are validation errors
reported to the caller, never escalations.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from claim_triage.exceptions import ClaimValidationError
from claim_triage.models.claim import ClaimDocument, ClaimRecord, ClaimStatus
from claim_triage.models.policy import PolicyRecord
from claim_triage.utils.sanitization import sanitize_claim_data
from claim_triage.utils.validation import missing_fields, vin_errors

REQUIRED_CLAIM_FIELDS = (
    "policy_number",
    "claimant_name",
    "claim_type",
    "loss_date",
    "report_date",
    "loss_description",
    "location.state",
    "vehicle.vin",
    "vehicle.year",
    "vehicle.make",
    "vehicle.model",
)

REQUIRED_POLICY_FIELDS = (
    "policy_number",
    "named_insured",
    "effective_date",
    "expiration_date",
)


def _pydantic_errors(e: ValidationError, prefix: str = "") -> list[str]:
    errors = []
    for err in e.errors():
        location = ".".join(str(p) for p in err["loc"])
        errors.append(f"{prefix}{location}: {err['msg']}")
    return errors


def parse_claim(data: dict[str, Any]) -> ClaimRecord:
    """Sanitize and parse a raw claim submission.

    Raises ClaimValidationError with status INCOMPLETE when required fields are
    missing, INVALID when they are present but malformed.
    """
    if not isinstance(data, dict):
        raise ClaimValidationError(["Claim submission must be a JSON object"], ClaimStatus.INVALID.value)
    sanitized = sanitize_claim_data(data)
    missing = missing_fields(sanitized, REQUIRED_CLAIM_FIELDS)
    if missing:
        raise ClaimValidationError(
            [f"Missing required field: {name}" for name in missing], ClaimStatus.INCOMPLETE.value
        )
    try:
        return ClaimRecord.model_validate(sanitized)
    except ValidationError as e:
        raise ClaimValidationError(_pydantic_errors(e, "claim."), ClaimStatus.INVALID.value) from e


def parse_policy(data: Optional[dict[str, Any]]) -> PolicyRecord:
    if not data:
        raise ClaimValidationError(["Policy not found"], ClaimStatus.INCOMPLETE.value)
    missing = missing_fields(data, REQUIRED_POLICY_FIELDS)
    if missing:
        raise ClaimValidationError(
            [f"Missing required policy field: {name}" for name in missing],
            ClaimStatus.INCOMPLETE.value,
        )
    try:
        return PolicyRecord.model_validate(data)
    except ValidationError as e:
        raise ClaimValidationError(_pydantic_errors(e, "policy."), ClaimStatus.INVALID.value) from e


def parse_documents(items: Optional[list[dict[str, Any]]]) -> list[ClaimDocument]:
    try:
        return [ClaimDocument.model_validate(item) for item in items or []]
    except ValidationError as e:
        raise ClaimValidationError(_pydantic_errors(e, "documents."), ClaimStatus.INVALID.value) from e


def parse_submission(submission: dict[str, Any]) -> tuple[ClaimRecord, PolicyRecord]:
    """Parse a ``{"claim": ..., "policy": ..., "documents": [...]}`` submission."""
    if not isinstance(submission, dict):
        raise ClaimValidationError(["Submission must be a JSON object"], ClaimStatus.INVALID.value)
    claim = parse_claim(submission.get("claim") or {})
    policy = parse_policy(submission.get("policy"))
    documents = parse_documents(submission.get("documents"))
    if documents:
        claim = claim.model_copy(update={"documents": claim.documents + documents})
    return claim, policy


def claim_errors(claim: ClaimRecord, policy: Optional[PolicyRecord], now: datetime) -> list[str]:
    """Business checks on a parsed claim against its policy. Empty means valid."""
    errors = list(vin_errors(claim.vehicle.vin))
    if not claim.loss_description.strip():
        errors.append("Loss description is required")
    if policy is None:
        errors.append(f"Policy {claim.policy_number} not found")
        return errors
    if policy.policy_number.strip().upper() != claim.policy_number.strip().upper():
        errors.append(
            f"Policy number mismatch: claim {claim.policy_number}, policy {policy.policy_number}"
        )
    if policy.vehicles and claim.vehicle.vin and not policy.lists_vin(claim.vehicle.vin):
        errors.append(f"Vehicle {claim.vehicle.vin} is not on policy {policy.policy_number}")
    if claim.report_date < claim.loss_date:
        errors.append("Report date is before loss date")
    if claim.loss_date > now:
        errors.append("Loss date is in the future")
    return errors


def validation_status(errors: list[str]) -> ClaimStatus:
    """INCOMPLETE when something is missing or not found, otherwise INVALID."""
    if any("required" in e or "not found" in e for e in errors):
        return ClaimStatus.INCOMPLETE
    return ClaimStatus.INVALID


def validate_claim(claim: ClaimRecord, policy: Optional[PolicyRecord], now: datetime) -> None:
    """Raise ClaimValidationError unless ``claim`` passes every intake check."""
    errors = claim_errors(claim, policy, now)
    if errors:
        raise ClaimValidationError(errors, validation_status(errors).value)
