"""Severity scoring: weighted property, injury, complexity and litigation sub-scores."""

from typing import Any, Optional

from claim_triage.config.settings import (
    SENSOR_ZONE_KEYWORDS,
    get_auto_approval_config,
    get_severity_config,
)
from claim_triage.models.claim import ClaimRecord, DamageSeverity, InjurySeverity
from claim_triage.models.policy import CoverageResult
from claim_triage.models.scoring import Route, SeverityScore


def detect_sensor_zone(claim: ClaimRecord) -> bool:
    """Damage to an area that typically houses driver-assistance sensors."""
    text = " ".join([*claim.damage.damaged_areas, claim.loss_description]).lower()
    return any(keyword in text for keyword in SENSOR_ZONE_KEYWORDS)


def _bump(score: int, amount: int) -> int:
    return min(100, score + amount)


def _property_damage(claim: ClaimRecord, cfg: dict[str, Any], flags: list[str]) -> int:
    damage = claim.damage
    score = cfg["property_damage_base"][damage.severity.value]
    if damage.severity == DamageSeverity.TOTAL_LOSS:
        flags.append("Total loss")
    if damage.airbag_deployed:
        score = _bump(score, cfg["airbag_bump"])
        flags.append("Airbag deployment")
    if damage.structural_damage:
        score = _bump(score, cfg["structural_bump"])
        flags.append("Structural damage")
    if not damage.drivable:
        score = _bump(score, cfg["not_drivable_bump"])
        flags.append("Not drivable")
    return score


def _bodily_injury(claim: ClaimRecord, cfg: dict[str, Any], flags: list[str]) -> int:
    injuries = claim.injuries
    if not injuries.any_injuries:
        return 0
    tier = injuries.severity
    if tier == InjurySeverity.NONE:
        tier = InjurySeverity.MINOR
    if injuries.fatality:
        tier = InjurySeverity.FATAL
    score = cfg["bodily_injury_base"][tier.value]
    if tier == InjurySeverity.FATAL:
        flags.append("Fatality")
    elif tier == InjurySeverity.SEVERE:
        flags.append("Severe injuries")
    elif tier == InjurySeverity.MODERATE:
        flags.append("Moderate injuries")
    if injuries.medical_treatment:
        score = _bump(score, cfg["medical_treatment_bump"])
    return score


def _complexity(
    claim: ClaimRecord, coverage: CoverageResult, cfg: dict[str, Any], flags: list[str]
) -> int:
    score = cfg["complexity_base"]
    parties = len(claim.other_parties)
    if parties > 1:
        score += 20
        flags.append("Multiple parties")
    if parties > 2:
        score += 20
        flags.append("Multi-vehicle accident")
    if not coverage.coverage_applies:
        score += 30
        flags.append("Coverage unclear")
    if coverage.exclusions:
        score += 20
        flags.append("Potential exclusions")
    return min(100, score)


def _litigation(claim: ClaimRecord, property_damage: int, bodily_injury: int, cfg: dict[str, Any]) -> int:
    score = cfg["litigation_base"]
    if bodily_injury > 50:
        score += 30
    if claim.injuries.any_injuries and (
        claim.injuries.fatality or claim.injuries.severity == InjurySeverity.FATAL
    ):
        score += 40
    if len(claim.other_parties) > 1:
        score += 10
    if property_damage > 80:
        score += 10
    return min(100, score)


def _route(
    claim: ClaimRecord,
    overall: int,
    bodily_injury: int,
    complexity: int,
    coverage: CoverageResult,
    cfg: dict[str, Any],
    max_amount: float,
) -> tuple[Route, str]:
    # Order matters: earlier rules win
    estimated = claim.estimated_amount or claim.damage.shop_estimate
    if claim.injuries.any_injuries or bodily_injury > 0:
        return Route.FULL_ADJUSTER, "Bodily injury requires human review"
    if overall >= cfg["full_adjuster_threshold"]:
        return Route.FULL_ADJUSTER, "High severity score requires adjuster"
    if overall >= cfg["express_desk_threshold"]:
        return Route.EXPRESS_DESK, "Moderate severity - express desk"
    if complexity > cfg["complexity_express_threshold"]:
        return Route.EXPRESS_DESK, "Complexity requires adjuster review"
    if estimated is not None and estimated > max_amount:
        return Route.FULL_ADJUSTER, f"Exceeds auto-approval limit of ${max_amount:,.0f}"
    if overall < cfg["auto_approve_threshold"] and not coverage.warnings:
        return Route.AUTO_APPROVE, "Low severity, straightforward claim"
    return Route.EXPRESS_DESK, "Standard review"


def score_severity(
    claim: ClaimRecord,
    coverage: CoverageResult,
    config: Optional[dict[str, Any]] = None,
) -> SeverityScore:
    """Deterministic severity score with a routing suggestion. Advisory only."""
    cfg = config or get_severity_config()
    approval = get_auto_approval_config()
    flags: list[str] = []

    property_damage = _property_damage(claim, cfg, flags)
    bodily_injury = _bodily_injury(claim, cfg, flags)
    complexity = _complexity(claim, coverage, cfg, flags)
    litigation = _litigation(claim, property_damage, bodily_injury, cfg)

    w = cfg["weights"]
    overall = round(
        property_damage * w["property_damage"]
        + bodily_injury * w["bodily_injury"]
        + complexity * w["complexity"]
        + litigation * w["litigation"]
    )
    overall = max(0, min(100, overall))
    routing, reason = _route(
        claim, overall, bodily_injury, complexity, coverage, cfg, approval["max_amount"]
    )

    return SeverityScore(
        property_damage=property_damage,
        bodily_injury=bodily_injury,
        complexity=complexity,
        litigation_risk=litigation,
        overall=overall,
        routing_suggestion=routing,
        routing_reason=reason,
        flags=flags,
        sensor_zone_damage=detect_sensor_zone(claim),
        recent_vehicle=claim.vehicle_age() <= approval["sensor_zone_max_vehicle_age"],
    )
