"""Coverage validation: policy window, applicable coverages, exclusions and gaps."""

from typing import Optional

from claim_triage.models.claim import ClaimRecord, ClaimType, DamageSeverity
from claim_triage.models.policy import (
    CoverageApplicability,
    CoverageResult,
    CoverageType,
    PolicyRecord,
    PolicyStatus,
)
from claim_triage.observability.logger import get_logger

logger = get_logger(__name__)

# Candidate coverages per claim type, in priority order (first applicable sets the deductible)
CLAIM_TYPE_COVERAGES: dict[ClaimType, tuple[CoverageType, ...]] = {
    ClaimType.COLLISION: (CoverageType.COLLISION, CoverageType.COMPREHENSIVE),
    ClaimType.COMPREHENSIVE: (CoverageType.COMPREHENSIVE,),
    ClaimType.LIABILITY: (
        CoverageType.PROPERTY_DAMAGE_LIABILITY,
        CoverageType.BODILY_INJURY_LIABILITY,
    ),
    ClaimType.UNINSURED_MOTORIST: (CoverageType.UNINSURED_MOTORIST,),
    ClaimType.MEDICAL_PAYMENTS: (CoverageType.MEDICAL_PAYMENTS,),
    ClaimType.THEFT: (CoverageType.COMPREHENSIVE,),
    ClaimType.GLASS: (CoverageType.GLASS, CoverageType.COMPREHENSIVE),
    ClaimType.VANDALISM: (CoverageType.COMPREHENSIVE,),
}

_INACTIVE_POLICY_STATUSES = {
    PolicyStatus.CANCELLED,
    PolicyStatus.SUSPENDED,
    PolicyStatus.LAPSED,
}


def find_exclusions(claim: ClaimRecord, policy: PolicyRecord) -> list[str]:
    """Policy exclusions triggered by the loss circumstances."""
    c = claim.circumstances
    exclusions = []
    if c.racing:
        exclusions.append("Racing or speed contest exclusion")
    if c.intentional_damage:
        exclusions.append("Intentional damage exclusion")
    if c.commercial_use and policy.use_type == "personal":
        exclusions.append("Commercial use on a personal auto policy")
    if c.unlicensed_driver:
        exclusions.append("Unlicensed driver exclusion")
    if c.intoxicated_driver:
        exclusions.append("Intoxicated driver exclusion")
    return exclusions


def find_gaps(
    claim: ClaimRecord, policy: PolicyRecord, vehicle_value: Optional[float] = None
) -> list[str]:
    """Needs the claim has that the policy does not cover. Gaps are not failures."""
    gaps = []
    if claim.injuries.any_injuries and not (
        policy.has_active_coverage(CoverageType.MEDICAL_PAYMENTS)
        or policy.has_active_coverage(CoverageType.BODILY_INJURY_LIABILITY)
    ):
        gaps.append("Injuries reported but no medical coverage on policy")
    if claim.damage.needs_rental and not policy.has_active_coverage(CoverageType.RENTAL):
        gaps.append("Rental needed but no rental reimbursement coverage")
    needs_tow = claim.damage.needs_towing or not claim.damage.drivable
    if needs_tow and not policy.has_active_coverage(CoverageType.ROADSIDE):
        gaps.append("Towing needed but no roadside assistance coverage")
    loan = claim.vehicle.loan_balance
    value = vehicle_value if vehicle_value is not None else claim.estimated_amount
    if (
        claim.damage.severity == DamageSeverity.TOTAL_LOSS
        and loan
        and value is not None
        and loan > value
        and not policy.has_active_coverage(CoverageType.GAP)
    ):
        gaps.append(
            f"Loan balance ${loan:,.2f} exceeds vehicle value ${value:,.2f} without GAP coverage"
        )
    return gaps


def _policy_errors(claim: ClaimRecord, policy: PolicyRecord) -> list[str]:
    errors = []
    if policy.status in _INACTIVE_POLICY_STATUSES:
        errors.append(f"Policy {policy.policy_number} is {policy.status.value.lower()}")
    loss_day = claim.loss_date.date()
    if loss_day < policy.effective_date or loss_day > policy.expiration_date:
        errors.append(
            f"Loss date {loss_day.isoformat()} is outside the policy period "
            f"{policy.effective_date.isoformat()} to {policy.expiration_date.isoformat()}"
        )
    return errors


def validate_coverage(
    claim: ClaimRecord,
    policy: PolicyRecord,
    vehicle_value: Optional[float] = None,
) -> CoverageResult:
    """Evaluate which coverages apply to ``claim`` under ``policy``.

    Never mutates the policy. A policy that was not in force at the loss date
    yields ``coverage_applies=False`` with errors and no applicability entries.
    """
    errors = _policy_errors(claim, policy)
    if errors:
        logger.info("Policy not in force at loss: %s", "; ".join(errors))
        return CoverageResult(coverage_applies=False, policy_valid_at_loss=False, errors=errors)

    warnings = []
    if claim.vehicle.vin and not policy.lists_vin(claim.vehicle.vin):
        warnings.append(f"Vehicle {claim.vehicle.vin} is not listed on the policy")

    exclusions = find_exclusions(claim, policy)
    applicability: dict[str, CoverageApplicability] = {}
    primary_deductible: Optional[float] = None
    net_available = 0.0

    for coverage_type in CLAIM_TYPE_COVERAGES.get(claim.claim_type, ()):
        coverage = policy.get_coverage(coverage_type)
        if coverage is None:
            continue
        remaining = max(0.0, coverage.limit - coverage.used_amount)
        if not coverage.active:
            applicable, reason = False, "Coverage is not active"
        elif exclusions:
            applicable, reason = False, f"Excluded: {exclusions[0]}"
        elif remaining <= 0:
            applicable, reason = False, "Coverage limit exhausted"
        else:
            applicable, reason = True, f"{coverage_type.value.replace('_', ' ').title()} applies"
        applicability[coverage_type.value] = CoverageApplicability(
            coverage_type=coverage_type,
            applicable=applicable,
            limit=coverage.limit,
            deductible=coverage.deductible,
            remaining_balance=remaining,
            reason=reason,
        )
        if applicable:
            net_available += remaining
            if primary_deductible is None:
                primary_deductible = coverage.deductible

    coverage_applies = any(a.applicable for a in applicability.values())
    if not applicability:
        errors.append(f"Policy carries no coverage for {claim.claim_type.value} claims")
    elif not coverage_applies and not exclusions:
        errors.append("No candidate coverage applies")

    return CoverageResult(
        coverage_applies=coverage_applies,
        policy_valid_at_loss=True,
        applicability=applicability,
        exclusions=exclusions,
        gaps=find_gaps(claim, policy, vehicle_value),
        warnings=warnings,
        errors=errors,
        net_coverage_available=round(net_available, 2),
        primary_deductible=primary_deductible or 0.0,
    )
