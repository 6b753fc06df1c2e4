"""Settlement drafting: itemized components, limit scaling, eligibility and payment.

A draft is always recomputed from scratch from the reserve, coverage and fraud
inputs; nothing is patched in place.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from claim_triage.config.settings import (
    get_auto_approval_config,
    get_reserve_config,
    get_settlement_config,
)
from claim_triage.models.claim import ClaimRecord, ClaimType
from claim_triage.models.policy import CoverageResult
from claim_triage.models.review import LiabilityAnalysis
from claim_triage.models.settlement import (
    NegotiationRange,
    PaymentDetails,
    PaymentSplit,
    ReserveRecommendation,
    SettlementComponent,
    SettlementDraft,
)
from claim_triage.models.valuation import ValuationResult
from claim_triage.observability.logger import get_logger

logger = get_logger(__name__)


def build_components(
    claim: ClaimRecord, reserve: ReserveRecommendation, cfg: dict[str, Any]
) -> list[SettlementComponent]:
    """Payable components from the reserve breakdown. Legal defense is not paid to the claimant."""
    breakdown = reserve.breakdown
    components = []
    if breakdown.vehicle_damage is not None:
        components.append(
            SettlementComponent(
                name="Property Damage",
                amount=breakdown.vehicle_damage.recommended,
                basis="; ".join(breakdown.vehicle_damage.factors),
            )
        )
    if breakdown.bodily_injury is not None:
        general = max(0.0, breakdown.bodily_injury.recommended - breakdown.lost_wages)
        components.append(
            SettlementComponent(
                name="Medical Expenses",
                amount=round(general * cfg["medical_share"], 2),
                basis="Medical bills and projected treatment",
            )
        )
        components.append(
            SettlementComponent(
                name="Pain and Suffering",
                amount=round(general * cfg["pain_suffering_share"], 2),
                basis="Multiplier method based on injury severity",
            )
        )
    if breakdown.rental is not None:
        components.append(
            SettlementComponent(
                name="Loss of Use",
                amount=breakdown.rental.recommended,
                basis="; ".join(breakdown.rental.factors),
            )
        )
    if breakdown.towing is not None:
        components.append(
            SettlementComponent(
                name="Towing & Storage",
                amount=breakdown.towing.recommended,
                basis="Standard towing and storage rates",
            )
        )
    if breakdown.lost_wages > 0:
        components.append(
            SettlementComponent(
                name="Lost Wages",
                amount=breakdown.lost_wages,
                basis="Claimed lost wages pending employment verification",
            )
        )
    return components


def scale_to_limit(
    components: list[SettlementComponent], limit: float
) -> tuple[list[SettlementComponent], bool]:
    """Scale components proportionally so they sum to exactly ``min(total, limit)``.

    Rounding residue is assigned to the largest component. Returns the
    components and whether scaling happened.
    """
    total = round(sum(c.amount for c in components), 2)
    limit = max(0.0, limit)
    if total <= limit or not components:
        return components, False

    ratio = limit / total
    scaled = [
        c.model_copy(
            update={
                "amount": round(c.amount * ratio, 2),
                "basis": f"{c.basis} (adjusted to policy limits)",
            }
        )
        for c in components
    ]
    residue = round(limit - sum(c.amount for c in scaled), 2)
    if residue:
        largest = max(range(len(scaled)), key=lambda i: scaled[i].amount)
        scaled[largest] = scaled[largest].model_copy(
            update={"amount": round(scaled[largest].amount + residue, 2)}
        )
    return scaled, True


def eligibility_failures(
    claim: ClaimRecord,
    net_amount: float,
    fraud_score: int,
    coverage: CoverageResult,
    config: Optional[dict[str, Any]] = None,
) -> list[str]:
    """Reasons the draft cannot be auto-approved. Empty means eligible."""
    cfg = config or get_auto_approval_config()
    failures = []
    if net_amount > cfg["max_amount"]:
        failures.append(f"Amount ${net_amount:,.2f} exceeds ${cfg['max_amount']:,.2f}")
    if fraud_score > cfg["eligibility_fraud_threshold"]:
        failures.append(f"Fraud score {fraud_score} exceeds {cfg['eligibility_fraud_threshold']}")
    if claim.injuries.any_injuries:
        failures.append("Injury claims require review")
    if coverage.gaps:
        failures.append("Coverage gaps present")
    if claim.claim_type.value not in cfg["allowed_claim_types"]:
        failures.append(f"Claim type {claim.claim_type.value} not eligible for auto-approval")
    return failures


def negotiation_range(
    base: float,
    claim: ClaimRecord,
    liability: Optional[LiabilityAnalysis],
    cfg: dict[str, Any],
) -> NegotiationRange:
    minimum = cfg["negotiation_min_default"]
    if liability is not None and liability.other_party_percent > cfg["strong_liability_percent"]:
        minimum = cfg["negotiation_min_strong_liability"]
    if claim.circumstances.liability_disputed:
        minimum = cfg["negotiation_min_disputed"]
    return NegotiationRange(
        minimum=round(base * minimum, 2),
        target=round(base * cfg["negotiation_target"], 2),
        maximum=round(base, 2),
    )


def payment_details(
    claim: ClaimRecord, net_amount: float, total_loss: bool, cfg: dict[str, Any]
) -> PaymentDetails:
    method = "ACH" if net_amount > cfg["ach_threshold"] else "CHECK"
    vehicle = claim.vehicle
    if total_loss and vehicle.lienholder and vehicle.loan_balance:
        to_lienholder = round(min(vehicle.loan_balance, net_amount), 2)
        return PaymentDetails(
            payee=f"{claim.claimant_name} AND {vehicle.lienholder}",
            method=method,
            amount=net_amount,
            splits=[
                PaymentSplit(payee=vehicle.lienholder, amount=to_lienholder),
                PaymentSplit(payee=claim.claimant_name, amount=round(net_amount - to_lienholder, 2)),
            ],
        )
    return PaymentDetails(payee=claim.claimant_name, method=method, amount=net_amount)


def release_required(claim: ClaimRecord, total_loss: bool) -> bool:
    return (
        claim.claim_type == ClaimType.LIABILITY
        or claim.injuries.any_injuries
        or bool(claim.other_parties)
        or total_loss
    )


def _confidence(components: list[SettlementComponent]) -> float:
    if not components:
        return 0.5
    confidence = 0.6 + min(len(components) * 0.05, 0.2)
    with_basis = sum(1 for c in components if c.basis)
    confidence += with_basis / len(components) * 0.1
    return round(min(confidence, 0.95), 3)


def _recommendations(draft: SettlementDraft, total_loss: bool, adjuster_authority: float) -> list[str]:
    recommendations = []
    if draft.auto_approval_eligible:
        recommendations.append("Eligible for auto-approval - proceed with settlement")
    else:
        recommendations.append("Manual review required before issuing settlement")
    if draft.limit_scaled:
        recommendations.append("Settlement reduced to available policy limits")
    if draft.release_required:
        recommendations.append("Obtain signed release before payment disbursement")
    if draft.payment_details.splits:
        recommendations.append("Issue split payments to policyholder and lienholder")
    if total_loss:
        recommendations.append("Arrange salvage title transfer and vehicle pickup")
    if draft.net_amount > adjuster_authority:
        recommendations.append("Supervisor review required before final approval")
    recommendations.append(f"Offer expires {draft.expires_at.date().isoformat()}")
    return recommendations


def draft_settlement(
    claim: ClaimRecord,
    coverage: CoverageResult,
    reserve: ReserveRecommendation,
    fraud_score: int,
    now: datetime,
    valuation: Optional[ValuationResult] = None,
    liability: Optional[LiabilityAnalysis] = None,
    config: Optional[dict[str, Any]] = None,
) -> SettlementDraft:
    """Itemized settlement offer fitted to the coverage available."""
    cfg = config or get_settlement_config()
    total_loss = valuation is not None and valuation.total_loss.is_total_loss

    components = build_components(claim, reserve, cfg)
    original_total = round(sum(c.amount for c in components), 2)
    components, scaled = scale_to_limit(components, coverage.net_coverage_available)
    gross = round(sum(c.amount for c in components), 2)
    deductible = coverage.primary_deductible
    net = round(max(0.0, gross - deductible), 2)
    if scaled:
        logger.log_event(
            "settlement_limit_scaled",
            original_total=original_total,
            net_coverage_available=coverage.net_coverage_available,
        )

    failures = eligibility_failures(claim, net, fraud_score, coverage)
    draft = SettlementDraft(
        claim_id=claim.claim_id,
        components=components,
        original_total=original_total,
        gross_amount=gross,
        limit_scaled=scaled,
        net_coverage_available=coverage.net_coverage_available,
        deductible=deductible,
        net_amount=net,
        negotiation_range=negotiation_range(net, claim, liability, cfg),
        auto_approval_eligible=not failures,
        eligibility_failures=failures,
        payment_details=payment_details(claim, net, total_loss, cfg),
        release_required=release_required(claim, total_loss),
        issued_at=now,
        expires_at=now + timedelta(days=cfg["offer_valid_days"]),
        confidence=_confidence(components),
    )
    adjuster_authority = get_reserve_config()["adjuster_authority"]
    draft = draft.model_copy(
        update={"recommendations": _recommendations(draft, total_loss, adjuster_authority)}
    )
    logger.log_event(
        "settlement_drafted",
        gross=gross,
        net=net,
        eligible=draft.auto_approval_eligible,
        scaled=scaled,
    )
    return draft
