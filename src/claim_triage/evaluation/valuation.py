"""Vehicle valuation: ACV, salvage, repair estimate and the state total-loss test.

Pricing sources and the salvage bid lookup are fanned out on a thread pool with
a shared timeout. A pricing source that fails or times out is dropped; when all
of them fail the internal depreciation model is used instead. Salvage falls back
to a percentage of ACV when fewer than the minimum number of bids come back.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Optional

from claim_triage.config.settings import (
    PREMIUM_OPTIONS,
    REPAIR_KEYWORD_COSTS,
    get_valuation_config,
)
from claim_triage.config.state_rules import StateRule
from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.claim import ClaimRecord, DamageSeverity, VehicleRecord
from claim_triage.models.valuation import (
    ACVResult,
    PricingQuote,
    RepairEstimate,
    SalvageEstimate,
    TotalLossAnalysis,
    TotalLossSettlement,
    ValuationAdjustments,
    ValuationResult,
)
from claim_triage.observability.logger import bound_context, current_claim_context, get_logger
from claim_triage.observability.metrics import get_metrics
from claim_triage.sources.base import ExternalSources, call_source

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Total-loss test (pure)
# ---------------------------------------------------------------------------

def determine_total_loss(
    repair_cost: float,
    acv: float,
    salvage_value: float,
    threshold: float,
    formula: str = "percentage_of_acv",
) -> tuple[bool, float]:
    """Return ``(is_total_loss, repair cost as a percentage of ACV)``.

    - percentage_of_acv: repair >= threshold * ACV
    - repair_plus_salvage: repair + salvage >= threshold * ACV
    - hybrid: either test
    """
    if acv <= 0:
        return True, 100.0
    percentage = round(repair_cost / acv * 100, 2)
    by_percentage = repair_cost >= acv * threshold
    by_formula = repair_cost + salvage_value >= acv * threshold
    if formula == "repair_plus_salvage":
        return by_formula, percentage
    if formula == "hybrid":
        return by_percentage or by_formula, percentage
    return by_percentage, percentage


def total_loss_settlement(
    acv: float,
    salvage_value: float,
    rule: StateRule,
    deductible: float = 0.0,
    owner_retains_salvage: bool = False,
) -> TotalLossSettlement:
    """ACV plus state tax and fees, less retained salvage and the deductible, floored at zero."""
    retains = owner_retains_salvage and rule.owner_retain_salvage_allowed
    sales_tax = round(acv * rule.sales_tax_rate, 2)
    fees = round(rule.title_fee + rule.other_fees, 2)
    salvage_deduction = salvage_value if retains else 0.0
    net = acv + sales_tax + fees - salvage_deduction - deductible
    return TotalLossSettlement(
        acv=acv,
        salvage_deduction=salvage_deduction,
        owner_retains_salvage=retains,
        sales_tax=sales_tax,
        title_and_fees=fees,
        deductible=deductible,
        net_settlement=round(max(0.0, net), 2),
    )


# ---------------------------------------------------------------------------
# ACV
# ---------------------------------------------------------------------------

def _options_value(vehicle: VehicleRecord, cfg: dict[str, Any]) -> float:
    count = 0
    for option in vehicle.options:
        lowered = option.lower()
        if any(premium in lowered for premium in PREMIUM_OPTIONS):
            count += 1
    return count * cfg["premium_option_value"]


def internal_acv(
    vehicle: VehicleRecord,
    age: int,
    prior_damage: bool = False,
    config: Optional[dict[str, Any]] = None,
) -> ACVResult:
    """Depreciation model used when no pricing source answers."""
    cfg = config or get_valuation_config()
    depreciated = cfg["internal_base_value"] * (1 - cfg["depreciation_rate"]) ** age

    mileage_adj = 0.0
    if vehicle.mileage is not None:
        expected = age * cfg["expected_miles_per_year"]
        mileage_adj = (vehicle.mileage - expected) / 1000 * cfg["mileage_rate_per_1000"]
    condition_adj = cfg["condition_adjustments"].get(vehicle.condition, 0.0)
    options_adj = _options_value(vehicle, cfg)
    prior_adj = -depreciated * cfg["prior_damage_penalty"] if prior_damage else 0.0

    value = depreciated + mileage_adj + condition_adj + options_adj + prior_adj
    value = max(value, cfg["minimum_value"])
    return ACVResult(
        value=round(value, 2),
        method="INTERNAL_MODEL",
        confidence=cfg["fallback_confidence"],
        adjustments=ValuationAdjustments(
            base_value=cfg["internal_base_value"],
            depreciated_value=round(depreciated, 2),
            mileage_adjustment=round(mileage_adj, 2),
            condition_adjustment=condition_adj,
            options_adjustment=options_adj,
            prior_damage_adjustment=round(prior_adj, 2),
        ),
    )


def market_acv(quotes: list[PricingQuote], failed: list[str]) -> ACVResult:
    value = sum(q.value for q in quotes) / len(quotes)
    confidence = round(sum(q.confidence for q in quotes) / len(quotes))
    return ACVResult(
        value=round(value, 2),
        method="MARKET_AVERAGE",
        confidence=confidence,
        quotes=quotes,
        failed_sources=failed,
    )


def _collect_quotes(
    futures: dict[str, Future], timeout: float
) -> tuple[list[PricingQuote], list[str]]:
    done, _ = wait(futures.values(), timeout=timeout)
    quotes: list[PricingQuote] = []
    failed: list[str] = []
    claim_id = current_claim_context().get("claim_id")
    for name, future in futures.items():
        if future not in done:
            future.cancel()
            failed.append(name)
            logger.log_event(
                "pricing_source_failed", level=logging.WARNING, source=name, error="timeout"
            )
            if claim_id:
                get_metrics().record_external_call(
                    claim_id, name, timeout * 1000, "timeout", "no response within timeout"
                )
            continue
        try:
            quotes.append(future.result())
        except ExternalSourceError as e:
            failed.append(name)
            logger.log_event("pricing_source_failed", level=logging.WARNING, source=name, error=str(e))
        except Exception as e:
            failed.append(name)
            logger.log_event(
                "pricing_source_failed",
                level=logging.WARNING,
                source=name,
                error=f"{type(e).__name__}: {e}",
            )
    return quotes, failed


def _fetch_salvage_bids(future: Optional[Future], timeout: float, warnings: list[str]) -> list[float]:
    if future is None:
        return []
    done, _ = wait([future], timeout=timeout)
    if future not in done:
        future.cancel()
        warnings.append("Salvage bid lookup timed out")
        return []
    try:
        return list(future.result())
    except ExternalSourceError as e:
        warnings.append(f"Salvage bid lookup failed: {e}")
        return []
    except Exception as e:
        logger.log_event(
            "salvage_lookup_failed", level=logging.WARNING, error=f"{type(e).__name__}: {e}"
        )
        warnings.append(f"Salvage bid lookup failed: {type(e).__name__}: {e}")
        return []


def _start_lookups(
    executor: ThreadPoolExecutor, vehicle: VehicleRecord, sources: ExternalSources
) -> tuple[dict[str, Future], Future]:
    pricing_futures: dict[str, Future] = {}
    for source in sources.pricing:
        pricing_futures[source.name] = executor.submit(
            bound_context(call_source), source.name, source.get_acv, vehicle
        )
    salvage_future = executor.submit(
        bound_context(call_source), "salvage_bids", sources.salvage.get_bids, vehicle
    )
    return pricing_futures, salvage_future


# ---------------------------------------------------------------------------
# Salvage and repair
# ---------------------------------------------------------------------------

def salvage_type(acv: float, age: int, config: Optional[dict[str, Any]] = None) -> str:
    cfg = config or get_valuation_config()
    if acv > cfg["rebuildable_min_acv"] and age < cfg["rebuildable_max_age"]:
        return "REBUILDABLE"
    if acv > cfg["parts_only_min_acv"] and age < cfg["parts_only_max_age"]:
        return "PARTS_ONLY"
    return "SCRAP"


def estimate_salvage(
    acv: float, age: int, bids: list[float], config: Optional[dict[str, Any]] = None
) -> SalvageEstimate:
    cfg = config or get_valuation_config()
    if len(bids) >= cfg["salvage_min_bids"]:
        value = sum(bids) / len(bids)
        method = "BID_AVERAGE"
    else:
        value = acv * cfg["salvage_percentage"]
        method = "PERCENTAGE_ACV"
    value = round(value, 2)
    return SalvageEstimate(
        value=value,
        method=method,
        salvage_type=salvage_type(acv, age, cfg),
        bid_count=len(bids),
        bid_range_low=round(value * 0.8, 2),
        bid_range_high=round(value * 1.2, 2),
    )


def keyword_repair_estimate(text: str, config: Optional[dict[str, Any]] = None) -> float:
    """Base estimate plus a fixed amount for each damage keyword found in ``text``."""
    cfg = config or get_valuation_config()
    lowered = text.lower()
    estimate = cfg["repair_base_estimate"]
    for keyword, cost in REPAIR_KEYWORD_COSTS.items():
        if keyword in lowered:
            estimate += cost
    return estimate


def _supplement_probability(cost: float, age: int, source: str) -> int:
    probability = 30
    if cost > 10000:
        probability += 20
    if cost > 20000:
        probability += 15
    if age <= 3:
        probability += 10
    if source == "SHOP_ESTIMATE":
        probability -= 10
    return min(probability, 85)


def estimate_repair(claim: ClaimRecord, config: Optional[dict[str, Any]] = None) -> RepairEstimate:
    damage = claim.damage
    if damage.shop_estimate and damage.shop_estimate > 0:
        total, source = damage.shop_estimate, "SHOP_ESTIMATE"
    elif damage.repair_line_items:
        total, source = sum(damage.repair_line_items), "SHOP_ESTIMATE"
    else:
        text = " ".join([claim.loss_description, *damage.damaged_areas])
        total, source = keyword_repair_estimate(text, config), "KEYWORD_ESTIMATOR"

    age = claim.vehicle_age()
    probability = _supplement_probability(total, age, source)
    return RepairEstimate(
        total=round(total, 2),
        source=source,
        parts=round(total * 0.50, 2),
        labor=round(total * 0.35, 2),
        paint=round(total * 0.12, 2),
        other=round(total * 0.03, 2),
        supplement_probability=probability,
        supplement_reserve=round(total * probability / 100 * 0.3, 2),
    )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def _recommendation(total_loss: bool, acv: ACVResult, repair: Optional[RepairEstimate]) -> str:
    if total_loss:
        return "TOTAL_LOSS"
    if repair is None or repair.total <= 0:
        return "HUMAN_REVIEW"
    if acv.method == "INTERNAL_MODEL" and repair.source == "KEYWORD_ESTIMATOR":
        return "HUMAN_REVIEW"
    return "REPAIR"


def evaluate_vehicle(
    claim: ClaimRecord,
    rule: StateRule,
    sources: ExternalSources,
    deductible: float = 0.0,
    owner_retains_salvage: bool = False,
    config: Optional[dict[str, Any]] = None,
) -> ValuationResult:
    """Value the claim vehicle and apply the state's total-loss test."""
    cfg = config or get_valuation_config()
    vehicle = claim.vehicle
    age = claim.vehicle_age()
    timeout = cfg["pricing_timeout_seconds"]
    warnings: list[str] = []

    start = time.perf_counter()
    executor = ThreadPoolExecutor(
        max_workers=max(1, len(sources.pricing) + 1), thread_name_prefix="valuation"
    )
    try:
        pricing_futures, salvage_future = _start_lookups(executor, vehicle, sources)
        quotes, failed = _collect_quotes(pricing_futures, timeout)
        remaining = max(0.0, timeout - (time.perf_counter() - start))
        bids = _fetch_salvage_bids(salvage_future, remaining, warnings)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if quotes:
        acv = market_acv(quotes, failed)
    else:
        acv = internal_acv(vehicle, age, claim.damage.prior_damage, cfg)
        acv = acv.model_copy(update={"failed_sources": failed})
        logger.log_event(
            "valuation_fallback_used",
            level=logging.WARNING,
            failed_sources=failed,
            value=acv.value,
        )
        warnings.append("No pricing source available; ACV from internal depreciation model")

    salvage = estimate_salvage(acv.value, age, bids, cfg)
    repair = estimate_repair(claim, cfg)

    is_total, percentage = determine_total_loss(
        repair.total, acv.value, salvage.value, rule.total_loss_threshold, rule.total_loss_formula
    )
    settlement = None
    if is_total:
        settlement = total_loss_settlement(
            acv.value, salvage.value, rule, deductible, owner_retains_salvage
        )
    elif claim.damage.severity == DamageSeverity.TOTAL_LOSS:
        warnings.append("Damage reported as total loss but repair cost is below the state threshold")
    if not is_total and percentage > 60:
        warnings.append("Repair cost approaching total-loss threshold")

    result = ValuationResult(
        state_code=rule.state_code,
        acv=acv,
        salvage=salvage,
        repair=repair,
        total_loss=TotalLossAnalysis(
            is_total_loss=is_total,
            threshold=rule.total_loss_threshold,
            formula=rule.total_loss_formula,
            percentage=percentage,
            settlement=settlement,
        ),
        recommendation=_recommendation(is_total, acv, repair),
        warnings=warnings,
    )
    logger.log_event(
        "vehicle_valued",
        acv=acv.value,
        method=acv.method,
        repair=repair.total,
        percentage=percentage,
        total_loss=is_total,
    )
    return result
