"""Fraud detection: rule flags, watchlists, pattern detectors and score aggregation.

No single signal is authoritative. Rule flags are summed and capped, then the
external scoring signal, watchlist hits and pattern matches are added on top:

    score = min(sum(rule weights), cap)
            + ml_weight * ml_score
            + watchlist_points * watchlist_hits
            + pattern_points * pattern_count

scaled by the network-risk multiplier and clamped to 0-100.
"""

import calendar
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from claim_triage.config.settings import ACCIDENT_TYPE_KEYWORDS, get_fraud_config
from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.claim import ClaimRecord
from claim_triage.models.policy import PolicyRecord
from claim_triage.models.scoring import (
    FraudFlag,
    FraudFlagType,
    FraudPattern,
    FraudScore,
    RiskTier,
    Severity,
    SIUBriefing,
)
from claim_triage.observability.logger import bound_context, current_claim_context, get_logger
from claim_triage.observability.metrics import get_metrics
from claim_triage.sources.base import ExternalSources, VehicleHistory, call_source

logger = get_logger(__name__)

BRANDED_TITLES = ("salvage", "rebuilt", "flood", "junk", "reconstructed")

_MEDICAL_FLAGS = {
    FraudFlagType.EXCESSIVE_MEDICAL_BILLING,
    FraudFlagType.EXCESSIVE_MEDICAL_LINE_ITEMS,
}


def _months_before(moment: datetime, months: int) -> datetime:
    year, month = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def _first_accident_type(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lowered = text.lower()
    for keyword in ACCIDENT_TYPE_KEYWORDS:
        if keyword in lowered:
            return keyword
    return None


def _flag(
    flag_type: FraudFlagType,
    severity: Severity,
    weight: int,
    description: str,
    evidence: list[str],
    now: datetime,
) -> FraudFlag:
    return FraudFlag(
        flag_type=flag_type,
        severity=severity,
        weight=weight,
        description=description,
        evidence=evidence,
        detected_at=now,
    )


# ---------------------------------------------------------------------------
# Rule-based checks
# ---------------------------------------------------------------------------

def check_rapid_policy_purchase(
    claim: ClaimRecord, policy: PolicyRecord, cfg: dict[str, Any], now: datetime
) -> Optional[FraudFlag]:
    days = (claim.loss_date.date() - policy.effective_date).days
    if days >= cfg["rapid_policy_days"]:
        return None
    return _flag(
        FraudFlagType.RAPID_POLICY_PURCHASE,
        Severity.HIGH,
        cfg["rapid_policy_weight"],
        f"Policy purchased {days} days before the loss",
        [
            f"Policy effective: {policy.effective_date.isoformat()}",
            f"Loss date: {claim.loss_date.date().isoformat()}",
        ],
        now,
    )


def check_suspicious_timing(
    claim: ClaimRecord, cfg: dict[str, Any], now: datetime
) -> Optional[FraudFlag]:
    hour = claim.loss_date.hour
    overnight = hour >= cfg["suspicious_hour_start"] or hour <= cfg["suspicious_hour_end"]
    weekend = claim.loss_date.weekday() >= 5
    if not (overnight or weekend):
        return None
    return _flag(
        FraudFlagType.SUSPICIOUS_TIMING,
        Severity.MEDIUM,
        cfg["suspicious_timing_weight"],
        "Loss occurred overnight or on a weekend",
        [f"Loss time: {claim.loss_date.isoformat()}"],
        now,
    )


def check_inconsistent_statements(
    claim: ClaimRecord, cfg: dict[str, Any], now: datetime
) -> Optional[FraudFlag]:
    """Accident type in the claimant's narrative differs from the police report."""
    stated = _first_accident_type(claim.loss_description)
    reported = _first_accident_type(claim.police_report_narrative)
    if stated is None or reported is None or stated == reported:
        return None
    return _flag(
        FraudFlagType.INCONSISTENT_STATEMENTS,
        Severity.HIGH,
        cfg["inconsistent_statements_weight"],
        "Claimant narrative does not match the police report",
        [f"Claimant: {stated}", f"Police report: {reported}"],
        now,
    )


def check_vehicle_history(
    claim: ClaimRecord, history: Optional[VehicleHistory], cfg: dict[str, Any], now: datetime
) -> list[FraudFlag]:
    if history is None:
        return []
    vehicle = claim.vehicle
    flags = []

    mismatches = []
    if history.year is not None and history.year != vehicle.year:
        mismatches.append(f"Year on record {history.year}, claimed {vehicle.year}")
    if history.make and history.make.lower() != vehicle.make.lower():
        mismatches.append(f"Make on record {history.make}, claimed {vehicle.make}")
    if history.model and history.model.lower() != vehicle.model.lower():
        mismatches.append(f"Model on record {history.model}, claimed {vehicle.model}")
    if (
        history.last_odometer is not None
        and vehicle.mileage is not None
        and vehicle.mileage < history.last_odometer
    ):
        mismatches.append(
            f"Odometer {vehicle.mileage} is below last recorded {history.last_odometer}"
        )
    if mismatches:
        flags.append(
            _flag(
                FraudFlagType.VEHICLE_HISTORY_MISMATCH,
                Severity.HIGH,
                cfg["vehicle_history_weight"],
                "Vehicle details do not match history records",
                mismatches,
                now,
            )
        )

    prior = list(history.prior_damage_records)
    if history.title_brand and history.title_brand.lower() in BRANDED_TITLES:
        prior.insert(0, f"Title branded {history.title_brand}")
    if prior:
        flags.append(
            _flag(
                FraudFlagType.PRIOR_DAMAGE,
                Severity.MEDIUM,
                cfg["prior_damage_weight"],
                "Vehicle history shows prior damage",
                prior,
                now,
            )
        )
    return flags


def check_declared_prior_damage(
    claim: ClaimRecord, cfg: dict[str, Any], now: datetime
) -> Optional[FraudFlag]:
    if not claim.damage.prior_damage:
        return None
    return _flag(
        FraudFlagType.PRIOR_DAMAGE,
        Severity.MEDIUM,
        cfg["prior_damage_weight"],
        "Claimant declared prior damage to the vehicle",
        ["Prior damage declared on submission"],
        now,
    )


def check_medical_billing(
    claim: ClaimRecord, cfg: dict[str, Any], now: datetime
) -> list[FraudFlag]:
    bills = claim.injuries.medical_bills
    if not bills:
        return []
    flags = []
    total = sum(bills)
    if total > cfg["medical_total_threshold"]:
        flags.append(
            _flag(
                FraudFlagType.EXCESSIVE_MEDICAL_BILLING,
                Severity.HIGH,
                cfg["medical_total_weight"],
                "Excessive medical billing",
                [f"Total medical bills: ${total:,.2f}"],
                now,
            )
        )
    if len(bills) > cfg["medical_line_item_threshold"]:
        flags.append(
            _flag(
                FraudFlagType.EXCESSIVE_MEDICAL_LINE_ITEMS,
                Severity.MEDIUM,
                cfg["medical_line_item_weight"],
                "Unusually many medical billing line items",
                [f"{len(bills)} line items"],
                now,
            )
        )
    return flags


def check_repair_costs(
    claim: ClaimRecord, cfg: dict[str, Any], now: datetime
) -> Optional[FraudFlag]:
    items = claim.damage.repair_line_items
    if items:
        average = sum(items) / len(items)
    elif claim.damage.shop_estimate is not None:
        average = claim.damage.shop_estimate
    else:
        return None
    if average <= cfg["repair_average_threshold"]:
        return None
    return _flag(
        FraudFlagType.INFLATED_REPAIR_COSTS,
        Severity.MEDIUM,
        cfg["repair_average_weight"],
        "Repair estimate appears inflated",
        [f"Average repair estimate: ${average:,.2f}"],
        now,
    )


def run_rule_checks(
    claim: ClaimRecord,
    policy: PolicyRecord,
    history: Optional[VehicleHistory],
    now: datetime,
    config: Optional[dict[str, Any]] = None,
) -> list[FraudFlag]:
    """All rule-based checks. Pure given the vehicle history."""
    cfg = config or get_fraud_config()
    flags: list[FraudFlag] = []
    for flag in (
        check_rapid_policy_purchase(claim, policy, cfg, now),
        check_suspicious_timing(claim, cfg, now),
        check_inconsistent_statements(claim, cfg, now),
    ):
        if flag is not None:
            flags.append(flag)
    flags.extend(check_vehicle_history(claim, history, cfg, now))
    if not any(f.flag_type == FraudFlagType.PRIOR_DAMAGE for f in flags):
        declared = check_declared_prior_damage(claim, cfg, now)
        if declared is not None:
            flags.append(declared)
    flags.extend(check_medical_billing(claim, cfg, now))
    repair = check_repair_costs(claim, cfg, now)
    if repair is not None:
        flags.append(repair)
    return flags


# ---------------------------------------------------------------------------
# External lookups
# ---------------------------------------------------------------------------

@dataclass
class FraudLookups:
    """Answers from the watchlist, vehicle-history and claim-history sources."""

    vehicle_history: Optional[VehicleHistory]
    listed: list[tuple[str, str]]
    prior_claims: int
    since: datetime


def watchlist_entities(claim: ClaimRecord) -> list[tuple[str, str]]:
    """(name, category) pairs screened against watchlists."""
    entities = [(claim.claimant_name, "claimant")]
    if claim.repair_shop:
        entities.append((claim.repair_shop, "shop"))
    entities.extend((provider, "provider") for provider in claim.medical_providers)
    if claim.attorney_name:
        entities.append((claim.attorney_name, "attorney"))
    return entities


def _await_lookup(source: str, future: Future, timeout: float, deadline: float) -> Any:
    try:
        return future.result(timeout=max(0.0, deadline - time.monotonic()))
    except FuturesTimeoutError as e:
        future.cancel()
        claim_id = current_claim_context().get("claim_id")
        if claim_id:
            get_metrics().record_external_call(
                claim_id, source, timeout * 1000, "timeout", "no response within timeout"
            )
        raise ExternalSourceError(source, f"no response within {timeout}s") from e
    except ExternalSourceError:
        raise
    except Exception as e:
        raise ExternalSourceError(source, f"{type(e).__name__}: {e}") from e


def fetch_lookups(claim: ClaimRecord, sources: ExternalSources, cfg: dict[str, Any]) -> FraudLookups:
    """Issue every watchlist and history lookup at once, each bounded by the lookup timeout.

    Raises ExternalSourceError naming the source that failed or did not answer.
    """
    entities = watchlist_entities(claim)
    since = _months_before(claim.loss_date, cfg["repeat_claim_months"])
    timeout = cfg["lookup_timeout_seconds"]
    executor = ThreadPoolExecutor(max_workers=len(entities) + 2, thread_name_prefix="fraud")
    try:
        history_future = None
        if claim.vehicle.vin:
            history_future = executor.submit(
                bound_context(call_source),
                "vehicle_history",
                sources.vehicle_history.get_history,
                claim.vehicle.vin,
            )
        watchlist_futures = [
            executor.submit(
                bound_context(call_source), "watchlist", sources.watchlist.is_listed, name, category
            )
            for name, category in entities
        ]
        count_future = executor.submit(
            bound_context(call_source),
            "claim_history",
            sources.claim_history.count_prior_claims,
            claim.claimant_name,
            since,
            claim.claim_id,
        )
        deadline = time.monotonic() + timeout

        history = None
        if history_future is not None:
            history = _await_lookup("vehicle_history", history_future, timeout, deadline)
        listed = [
            entity
            for entity, future in zip(entities, watchlist_futures)
            if _await_lookup("watchlist", future, timeout, deadline)
        ]
        prior_claims = _await_lookup("claim_history", count_future, timeout, deadline)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return FraudLookups(
        vehicle_history=history, listed=listed, prior_claims=prior_claims, since=since
    )


# ---------------------------------------------------------------------------
# Watchlists and patterns
# ---------------------------------------------------------------------------

def watchlist_flags(
    listed: list[tuple[str, str]], cfg: dict[str, Any], now: datetime
) -> list[FraudFlag]:
    return [
        _flag(
            FraudFlagType.PRIOR_FRAUD_INDICATOR,
            Severity.CRITICAL,
            cfg["watchlist_flag_weight"],
            f"Entity on {category} watchlist: {name}",
            [f"Watchlist category: {category}"],
            now,
        )
        for name, category in listed
    ]


def detect_repeated_claimant(lookups: FraudLookups, cfg: dict[str, Any]) -> Optional[FraudPattern]:
    months = cfg["repeat_claim_months"]
    count = lookups.prior_claims
    if count < cfg["repeat_claim_threshold"]:
        return None
    return FraudPattern(
        pattern_type="repeated_claimant",
        confidence=85,
        description=f"Claimant has filed {count} prior claims in {months} months",
        indicators=[f"{count} prior claims since {lookups.since.date().isoformat()}"],
    )


def detect_staged_accident(claim: ClaimRecord, cfg: dict[str, Any]) -> Optional[FraudPattern]:
    indicators = []
    if len(claim.participants) == 2:
        indicators.append("Two-party incident")
    if "rear-end" in claim.loss_description.lower():
        indicators.append("Rear-end collision")
    if not claim.has_police_report():
        indicators.append("No police report")
    if len(indicators) < cfg["staged_indicator_threshold"]:
        return None
    return FraudPattern(
        pattern_type="staged_accident",
        confidence=70,
        description="Claim matches staged accident indicators",
        indicators=indicators,
    )


def _pattern_flag(pattern: FraudPattern, now: datetime) -> FraudFlag:
    return _flag(
        FraudFlagType(pattern.pattern_type),
        Severity.HIGH if pattern.confidence > 80 else Severity.MEDIUM,
        round(pattern.confidence / 5),
        pattern.description,
        [f"Confidence: {pattern.confidence}%", *pattern.indicators],
        now,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate_fraud_score(
    rule_weights: Iterable[int],
    ml_score: float = 0.0,
    watchlist_hits: int = 0,
    pattern_count: int = 0,
    config: Optional[dict[str, Any]] = None,
) -> tuple[int, int]:
    """Return ``(overall_score, capped_rule_score)``.

    Non-decreasing in every argument: adding a positive-weight flag, a watchlist
    hit or a pattern never lowers the score.
    """
    cfg = config or get_fraud_config()
    rule_score = min(sum(rule_weights), cfg["rule_score_cap"])
    raw = (
        rule_score
        + ml_score * cfg["ml_weight"]
        + watchlist_hits * cfg["watchlist_points"]
        + pattern_count * cfg["pattern_points"]
    )
    raw *= cfg["network_risk_multiplier"]
    return max(0, min(100, round(raw))), rule_score


def risk_tier(score: int, config: Optional[dict[str, Any]] = None) -> RiskTier:
    cfg = config or get_fraud_config()
    if score >= cfg["critical_risk_threshold"]:
        return RiskTier.CRITICAL
    if score >= cfg["high_risk_threshold"]:
        return RiskTier.HIGH
    if score >= cfg["medium_risk_threshold"]:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def _confidence(flags: list[FraudFlag], ml_score: float) -> int:
    if not flags and ml_score == 0:
        return 50
    if len(flags) >= 3 and ml_score > 50:
        return 95
    if len(flags) >= 2 or ml_score > 30:
        return 80
    return 70


def _recommendations(
    flags: list[FraudFlag], patterns: list[FraudPattern], score: int, siu_threshold: int
) -> list[str]:
    types = {f.flag_type for f in flags}
    recommendations = []
    if score >= siu_threshold:
        recommendations.append("Immediate SIU referral required")
        recommendations.append("Suspend payment pending investigation")
    if types & _MEDICAL_FLAGS:
        recommendations.append("Request detailed medical records")
        recommendations.append("Conduct medical provider interview")
    if FraudFlagType.STAGED_ACCIDENT in types:
        recommendations.append("Obtain recorded statements from all parties")
        recommendations.append("Request cell phone records for time of loss")
    if any(p.pattern_type == "repeated_claimant" for p in patterns):
        recommendations.append("Review all prior claims for same claimant")
    if FraudFlagType.INFLATED_REPAIR_COSTS in types:
        recommendations.append("Obtain independent repair estimate")
        recommendations.append("Conduct vehicle inspection")
    return recommendations


def _ml_score(claim: ClaimRecord, sources: ExternalSources, degraded: list[str]) -> float:
    if sources.fraud_signal is None:
        return 0.0
    try:
        value = call_source("fraud_signal", sources.fraud_signal.score, claim)
    except Exception as e:
        logger.log_event(
            "fraud_signal_failed", level=logging.WARNING, error=f"{type(e).__name__}: {e}"
        )
        degraded.append("fraud_signal")
        return 0.0
    return max(0.0, min(100.0, float(value)))


def detect_fraud(
    claim: ClaimRecord,
    policy: PolicyRecord,
    sources: ExternalSources,
    now: datetime,
    config: Optional[dict[str, Any]] = None,
) -> FraudScore:
    """Score ``claim`` for fraud.

    The external ML signal falls back to zero when its source fails. Watchlist,
    vehicle-history and claim-history failures and timeouts propagate as
    ExternalSourceError.
    """
    cfg = config or get_fraud_config()
    degraded: list[str] = []

    lookups = fetch_lookups(claim, sources, cfg)
    rule_flags = run_rule_checks(claim, policy, lookups.vehicle_history, now, cfg)
    ml_score = _ml_score(claim, sources, degraded)
    listed_flags = watchlist_flags(lookups.listed, cfg, now)

    patterns = [
        p
        for p in (detect_repeated_claimant(lookups, cfg), detect_staged_accident(claim, cfg))
        if p is not None
    ]

    overall, rule_score = aggregate_fraud_score(
        [f.weight for f in rule_flags],
        ml_score,
        len(listed_flags),
        len(patterns),
        cfg,
    )
    tier = risk_tier(overall, cfg)
    flags = rule_flags + listed_flags + [_pattern_flag(p, now) for p in patterns]
    requires_siu = overall >= cfg["siu_threshold"] or tier in (RiskTier.HIGH, RiskTier.CRITICAL)

    logger.log_event(
        "fraud_scored",
        score=overall,
        tier=tier.value,
        flags=len(flags),
        patterns=len(patterns),
        siu=requires_siu,
    )
    return FraudScore(
        overall_score=overall,
        risk_tier=tier,
        rule_score=rule_score,
        ml_score=ml_score,
        watchlist_hits=len(listed_flags),
        flags=flags,
        patterns=patterns,
        requires_siu_review=requires_siu,
        confidence=_confidence(flags, ml_score),
        recommendations=_recommendations(flags, patterns, overall, cfg["siu_threshold"]),
        degraded_sources=degraded,
    )


# ---------------------------------------------------------------------------
# SIU referral
# ---------------------------------------------------------------------------

def siu_priority(score: int) -> str:
    if score >= 75:
        return "urgent"
    if score >= 60:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def build_siu_briefing(claim: ClaimRecord, fraud: FraudScore) -> SIUBriefing:
    """Referral package for the special investigations unit."""
    key_indicators = [f.description for f in fraud.flags[:3]]
    summary = (
        f"Claim {claim.claim_id or '(unassigned)'} flagged with fraud score "
        f"{fraud.overall_score}/100 ({fraud.risk_tier.value} risk)."
    )
    if key_indicators:
        summary += f" Key indicators: {'; '.join(key_indicators)}"

    recommendations = [
        "Conduct thorough investigation before payment",
        "Obtain recorded statements from all parties",
        "Review claim file documentation for inconsistencies",
    ]
    if any(f.flag_type in _MEDICAL_FLAGS for f in fraud.flags):
        recommendations.append("Audit medical billing and treatment records")
    if any(p.pattern_type == "staged_accident" for p in fraud.patterns):
        recommendations.append("Consider surveillance and scene investigation")

    estimated = 0.0
    if fraud.risk_tier != RiskTier.LOW:
        estimated = round((claim.estimated_amount or 0.0) * fraud.overall_score / 100, 2)

    return SIUBriefing(
        claim_id=claim.claim_id,
        priority=siu_priority(fraud.overall_score),
        fraud_score=fraud.overall_score,
        risk_tier=fraud.risk_tier,
        summary=summary,
        key_indicators=key_indicators,
        recommendations=recommendations,
        estimated_fraud_amount=estimated,
    )
