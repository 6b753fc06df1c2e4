"""Reserve recommendation by cost category, scaled by the state cost-of-living multiplier."""

from typing import Any, Optional

from claim_triage.config.settings import get_reserve_config
from claim_triage.config.state_rules import StateRule
from claim_triage.models.claim import ClaimRecord, ClaimType, InjuryDetail, InjurySeverity
from claim_triage.models.scoring import Severity
from claim_triage.models.settlement import ReserveBreakdown, ReserveCategory, ReserveRecommendation
from claim_triage.models.valuation import ValuationResult
from claim_triage.observability.logger import get_logger

logger = get_logger(__name__)


def authority_level(amount: float, config: Optional[dict[str, Any]] = None) -> str:
    """Who may approve ``amount``: ADJUSTER, SUPERVISOR or MANAGER."""
    cfg = config or get_reserve_config()
    if amount > cfg["supervisor_authority"]:
        return "MANAGER"
    if amount > cfg["adjuster_authority"]:
        return "SUPERVISOR"
    return "ADJUSTER"


def authority_severity(amount: float, config: Optional[dict[str, Any]] = None) -> Optional[Severity]:
    """Trigger severity for an amount beyond adjuster authority, or None when within it."""
    level = authority_level(amount, config)
    if level == "MANAGER":
        return Severity.HIGH
    if level == "SUPERVISOR":
        return Severity.MEDIUM
    return None


def vehicle_damage_reserve(
    claim: ClaimRecord, valuation: Optional[ValuationResult], cfg: dict[str, Any]
) -> ReserveCategory:
    if valuation is None or valuation.repair is None:
        return ReserveCategory(
            category="vehicle_damage",
            minimum=0.0,
            maximum=5000.0,
            recommended=2500.0,
            confidence=0.5,
            factors=["No valuation available", "Using average collision damage"],
        )

    total_loss = valuation.total_loss.is_total_loss
    if total_loss:
        basis = valuation.acv.value
        multiplier = cfg["vehicle_severity_multipliers"]["total_loss"]
        factors = [f"Total loss at ACV ${basis:,.2f}"]
    else:
        basis = valuation.repair.total
        multiplier = cfg["vehicle_severity_multipliers"][claim.damage.severity.value]
        factors = [f"Repair estimate ${basis:,.2f} ({valuation.repair.source.lower()})"]
    factors.append(f"Severity multiplier {multiplier}")

    min_factor = cfg["vehicle_min_factor"]
    confidence = 0.6
    if valuation.repair.source == "SHOP_ESTIMATE":
        confidence += 0.2
    if valuation.acv.method == "MARKET_AVERAGE":
        confidence += 0.1
    if claim.damage.structural_damage:
        factors.append("Structural damage")
    return ReserveCategory(
        category="vehicle_damage",
        minimum=round(basis * min_factor, 2),
        maximum=round(basis * multiplier, 2),
        recommended=round(basis * (min_factor + multiplier) / 2, 2),
        confidence=min(confidence, 0.95),
        factors=factors,
    )


def _injury_details(claim: ClaimRecord) -> list[InjuryDetail]:
    if claim.injuries.injuries:
        return claim.injuries.injuries
    severity = claim.injuries.severity
    if claim.injuries.fatality:
        severity = InjurySeverity.FATAL
    elif severity == InjurySeverity.NONE:
        severity = InjurySeverity.MINOR
    return [InjuryDetail(person=claim.claimant_name, severity=severity)]


def bodily_injury_reserve(claim: ClaimRecord, cfg: dict[str, Any]) -> Optional[ReserveCategory]:
    """Sum of base cost by injury type times the severity factor range, plus lost wages."""
    if not claim.injuries.any_injuries:
        return None
    base_costs = cfg["injury_base_costs"]
    severity_factors = cfg["injury_severity_factors"]
    minimum = maximum = 0.0
    factors = []
    for injury in _injury_details(claim):
        severity = injury.severity
        if severity == InjurySeverity.NONE:
            severity = InjurySeverity.MINOR
        low, high = severity_factors[severity.value]
        base = base_costs.get(injury.injury_type.lower(), base_costs["default"])
        minimum += base * low
        maximum += base * high
        factors.append(f"{injury.injury_type}: {severity.value} severity")

    wages = claim.injuries.lost_wages_estimate
    if wages > 0:
        minimum += wages
        maximum += wages * 1.5
        factors.append("Lost wages claim included")
    return ReserveCategory(
        category="bodily_injury",
        minimum=round(minimum, 2),
        maximum=round(maximum, 2),
        recommended=round((minimum + maximum) / 2, 2),
        confidence=0.7,
        factors=factors,
    )


def rental_reserve(claim: ClaimRecord, cfg: dict[str, Any]) -> Optional[ReserveCategory]:
    if not claim.damage.needs_rental:
        return None
    days = cfg["rental_days"][claim.damage.severity.value]
    rate = cfg["rental_daily_rate"]
    return ReserveCategory(
        category="rental",
        minimum=round(days * rate * 0.8, 2),
        maximum=round(days * 1.5 * rate, 2),
        recommended=round(days * rate, 2),
        confidence=0.75,
        factors=[f"Estimated {days} days at ${rate:,.2f}/day"],
    )


def towing_reserve(claim: ClaimRecord, cfg: dict[str, Any]) -> Optional[ReserveCategory]:
    if not (claim.damage.needs_towing or not claim.damage.drivable):
        return None
    low, recommended, high = cfg["towing_range"]
    return ReserveCategory(
        category="towing",
        minimum=low,
        maximum=high,
        recommended=recommended,
        confidence=0.8,
        factors=["Standard towing and initial storage"],
    )


def legal_defense_reserve(claim: ClaimRecord, cfg: dict[str, Any]) -> Optional[ReserveCategory]:
    injuries = claim.injuries
    fatal = injuries.fatality or any(i.severity == InjurySeverity.FATAL for i in injuries.injuries)
    liability_injury = claim.claim_type == ClaimType.LIABILITY and injuries.any_injuries
    if not (liability_injury or fatal):
        return None
    low, recommended, high = cfg["legal_defense_range"]
    return ReserveCategory(
        category="legal_defense",
        minimum=low,
        maximum=high,
        recommended=recommended,
        confidence=0.6,
        factors=["Potential litigation defense costs"],
    )


def recommend_reserve(
    claim: ClaimRecord,
    valuation: Optional[ValuationResult],
    rule: StateRule,
    config: Optional[dict[str, Any]] = None,
) -> ReserveRecommendation:
    """Category-wise reserve totals scaled by the state's cost-of-living multiplier."""
    cfg = config or get_reserve_config()
    breakdown = ReserveBreakdown(
        vehicle_damage=vehicle_damage_reserve(claim, valuation, cfg),
        bodily_injury=bodily_injury_reserve(claim, cfg),
        rental=rental_reserve(claim, cfg),
        towing=towing_reserve(claim, cfg),
        legal_defense=legal_defense_reserve(claim, cfg),
        lost_wages=claim.injuries.lost_wages_estimate if claim.injuries.any_injuries else 0.0,
    )
    categories = breakdown.categories()
    multiplier = rule.cost_of_living_multiplier
    total_min = round(sum(c.minimum for c in categories) * multiplier, 2)
    total_max = round(sum(c.maximum for c in categories) * multiplier, 2)
    total_rec = round(sum(c.recommended for c in categories) * multiplier, 2)
    confidence = round(sum(c.confidence for c in categories) / len(categories), 3)

    factors = [f"{rule.state_code} cost-of-living multiplier {multiplier}"]
    for category in categories:
        factors.extend(category.factors)

    level = authority_level(total_rec, cfg)
    logger.log_event(
        "reserve_recommended",
        recommended=total_rec,
        categories=[c.category for c in categories],
        authority=level,
    )
    return ReserveRecommendation(
        breakdown=breakdown,
        total_minimum=total_min,
        total_maximum=total_max,
        total_recommended=total_rec,
        cost_of_living_multiplier=multiplier,
        confidence=confidence,
        authority_level=level,
        factors=factors,
    )
