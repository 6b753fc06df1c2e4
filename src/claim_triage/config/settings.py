"""Centralized configuration from environment variables with defaults."""

import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def _str_list(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(key)
    if raw is None:
        return default
    parts = tuple(p.strip().upper() for p in raw.split(",") if p.strip())
    return parts or default


# ---------------------------------------------------------------------------
# Auto-approval gate (phase 7 and settlement eligibility)
# ---------------------------------------------------------------------------

def get_auto_approval_config() -> dict[str, Any]:
    """Ceilings and floors a claim must satisfy to be approved without a human."""
    return {
        "max_amount": _float("AUTO_APPROVAL_MAX_AMOUNT", 2500.0),
        "min_confidence": _float("AUTO_APPROVAL_MIN_CONFIDENCE", 0.80),
        "fraud_score_ceiling": _int("AUTO_APPROVAL_FRAUD_SCORE_CEILING", 50),
        "eligibility_fraud_threshold": _int("AUTO_APPROVAL_ELIGIBILITY_FRAUD_THRESHOLD", 25),
        "allowed_claim_types": _str_list(
            "AUTO_APPROVAL_ALLOWED_CLAIM_TYPES", ("COLLISION", "COMPREHENSIVE", "GLASS")
        ),
        "sensor_zone_max_vehicle_age": _int("AUTO_APPROVAL_SENSOR_ZONE_MAX_VEHICLE_AGE", 10),
    }


SENSOR_ZONE_KEYWORDS = (
    "front bumper",
    "rear bumper",
    "windshield",
    "front grille",
    "side mirror",
    "camera",
    "radar",
    "lidar",
    "sensor",
)


# ---------------------------------------------------------------------------
# Severity scoring
# ---------------------------------------------------------------------------

def get_severity_config() -> dict[str, Any]:
    """Sub-score tiers, bumps and routing cut-offs for the severity scorer."""
    return {
        "property_damage_base": {
            "minor": 25,
            "moderate": 50,
            "severe": 75,
            "total_loss": 100,
        },
        "airbag_bump": _int("SEVERITY_AIRBAG_BUMP", 20),
        "structural_bump": _int("SEVERITY_STRUCTURAL_BUMP", 15),
        "not_drivable_bump": _int("SEVERITY_NOT_DRIVABLE_BUMP", 10),
        "bodily_injury_base": {
            "none": 0,
            "minor": 30,
            "moderate": 50,
            "severe": 80,
            "fatal": 100,
        },
        "medical_treatment_bump": _int("SEVERITY_MEDICAL_TREATMENT_BUMP", 10),
        "complexity_base": _int("SEVERITY_COMPLEXITY_BASE", 20),
        "litigation_base": _int("SEVERITY_LITIGATION_BASE", 10),
        "weights": {
            "property_damage": _float("SEVERITY_WEIGHT_PROPERTY_DAMAGE", 0.3),
            "bodily_injury": _float("SEVERITY_WEIGHT_BODILY_INJURY", 0.4),
            "complexity": _float("SEVERITY_WEIGHT_COMPLEXITY", 0.2),
            "litigation": _float("SEVERITY_WEIGHT_LITIGATION", 0.1),
        },
        "full_adjuster_threshold": _int("SEVERITY_FULL_ADJUSTER_THRESHOLD", 80),
        "express_desk_threshold": _int("SEVERITY_EXPRESS_DESK_THRESHOLD", 60),
        "complexity_express_threshold": _int("SEVERITY_COMPLEXITY_EXPRESS_THRESHOLD", 50),
        "auto_approve_threshold": _int("SEVERITY_AUTO_APPROVE_THRESHOLD", 40),
    }


# ---------------------------------------------------------------------------
# Fraud detection
# ---------------------------------------------------------------------------

def get_fraud_config() -> dict[str, Any]:
    """Fraud rule weights, aggregation terms and tier cut-offs."""
    return {
        "rapid_policy_days": _int("FRAUD_RAPID_POLICY_DAYS", 30),
        "rapid_policy_weight": _int("FRAUD_RAPID_POLICY_WEIGHT", 15),
        "suspicious_timing_weight": _int("FRAUD_SUSPICIOUS_TIMING_WEIGHT", 8),
        "suspicious_hour_start": _int("FRAUD_SUSPICIOUS_HOUR_START", 23),
        "suspicious_hour_end": _int("FRAUD_SUSPICIOUS_HOUR_END", 5),
        "inconsistent_statements_weight": _int("FRAUD_INCONSISTENT_STATEMENTS_WEIGHT", 12),
        "vehicle_history_weight": _int("FRAUD_VEHICLE_HISTORY_WEIGHT", 14),
        "prior_damage_weight": _int("FRAUD_PRIOR_DAMAGE_WEIGHT", 10),
        "medical_total_threshold": _float("FRAUD_MEDICAL_TOTAL_THRESHOLD", 50000.0),
        "medical_total_weight": _int("FRAUD_MEDICAL_TOTAL_WEIGHT", 12),
        "medical_line_item_threshold": _int("FRAUD_MEDICAL_LINE_ITEM_THRESHOLD", 10),
        "medical_line_item_weight": _int("FRAUD_MEDICAL_LINE_ITEM_WEIGHT", 8),
        "repair_average_threshold": _float("FRAUD_REPAIR_AVERAGE_THRESHOLD", 15000.0),
        "repair_average_weight": _int("FRAUD_REPAIR_AVERAGE_WEIGHT", 8),
        "rule_score_cap": _int("FRAUD_RULE_SCORE_CAP", 50),
        "ml_weight": _float("FRAUD_ML_WEIGHT", 0.3),
        "watchlist_points": _int("FRAUD_WATCHLIST_POINTS", 10),
        "watchlist_flag_weight": _int("FRAUD_WATCHLIST_FLAG_WEIGHT", 20),
        "pattern_points": _int("FRAUD_PATTERN_POINTS", 5),
        "repeat_claim_threshold": _int("FRAUD_REPEAT_CLAIM_THRESHOLD", 3),
        "repeat_claim_months": _int("FRAUD_REPEAT_CLAIM_MONTHS", 24),
        "staged_indicator_threshold": _int("FRAUD_STAGED_INDICATOR_THRESHOLD", 2),
        "medium_risk_threshold": _int("FRAUD_MEDIUM_RISK_THRESHOLD", 25),
        "high_risk_threshold": _int("FRAUD_HIGH_RISK_THRESHOLD", 50),
        "critical_risk_threshold": _int("FRAUD_CRITICAL_RISK_THRESHOLD", 75),
        "siu_threshold": _int("FRAUD_SIU_THRESHOLD", 50),
        "network_risk_multiplier": _float("FRAUD_NETWORK_RISK_MULTIPLIER", 1.0),
        "lookup_timeout_seconds": _float("FRAUD_LOOKUP_TIMEOUT_SECONDS", 5.0),
    }


ACCIDENT_TYPE_KEYWORDS = ("rear-end", "side-impact", "head-on", "single-vehicle")


# ---------------------------------------------------------------------------
# Vehicle valuation
# ---------------------------------------------------------------------------

def get_valuation_config() -> dict[str, Any]:
    """Internal depreciation model, salvage and repair estimation parameters."""
    return {
        "internal_base_value": _float("VALUATION_INTERNAL_BASE_VALUE", 20000.0),
        "depreciation_rate": _float("VALUATION_DEPRECIATION_RATE", 0.15),
        "expected_miles_per_year": _int("VALUATION_EXPECTED_MILES_PER_YEAR", 12000),
        "mileage_rate_per_1000": _float("VALUATION_MILEAGE_RATE_PER_1000", -25.0),
        "condition_adjustments": {
            "excellent": 500.0,
            "good": 0.0,
            "fair": -500.0,
            "poor": -1500.0,
        },
        "premium_option_value": _float("VALUATION_PREMIUM_OPTION_VALUE", 500.0),
        "prior_damage_penalty": _float("VALUATION_PRIOR_DAMAGE_PENALTY", 0.10),
        "minimum_value": _float("VALUATION_MINIMUM_VALUE", 500.0),
        "fallback_confidence": _int("VALUATION_FALLBACK_CONFIDENCE", 70),
        "salvage_min_bids": _int("VALUATION_SALVAGE_MIN_BIDS", 3),
        "salvage_percentage": _float("VALUATION_SALVAGE_PERCENTAGE", 0.25),
        "rebuildable_min_acv": _float("VALUATION_REBUILDABLE_MIN_ACV", 10000.0),
        "rebuildable_max_age": _int("VALUATION_REBUILDABLE_MAX_AGE", 10),
        "parts_only_min_acv": _float("VALUATION_PARTS_ONLY_MIN_ACV", 5000.0),
        "parts_only_max_age": _int("VALUATION_PARTS_ONLY_MAX_AGE", 15),
        "pricing_timeout_seconds": _float("VALUATION_PRICING_TIMEOUT_SECONDS", 5.0),
        "pricing_cache_ttl_seconds": _float("VALUATION_PRICING_CACHE_TTL_SECONDS", 3600.0),
        "pricing_cache_max_entries": _int("VALUATION_PRICING_CACHE_MAX_ENTRIES", 1000),
        "repair_base_estimate": _float("VALUATION_REPAIR_BASE_ESTIMATE", 2000.0),
    }


PREMIUM_OPTIONS = ("navigation", "leather", "sunroof", "premium sound", "awd", "4wd")

# Keyword weights for estimating repair cost from a free-text loss description
REPAIR_KEYWORD_COSTS: dict[str, float] = {
    "minor": 1500.0,
    "moderate": 4000.0,
    "major": 8000.0,
    "severe": 12000.0,
    "front": 5000.0,
    "rear": 3500.0,
    "side": 4500.0,
    "bumper": 1200.0,
    "fender": 800.0,
    "door": 1500.0,
    "hood": 1000.0,
    "airbag": 3000.0,
}


# ---------------------------------------------------------------------------
# Reserves
# ---------------------------------------------------------------------------

def get_reserve_config() -> dict[str, Any]:
    """Reserve multipliers, injury cost tables and authority limits."""
    return {
        "vehicle_severity_multipliers": {
            "minor": 1.1,
            "moderate": 1.15,
            "severe": 1.3,
            "total_loss": 1.0,
        },
        "vehicle_min_factor": _float("RESERVE_VEHICLE_MIN_FACTOR", 0.9),
        "injury_severity_factors": {
            "minor": (1.0, 1.5),
            "moderate": (1.5, 3.0),
            "severe": (7.0, 15.0),
            "fatal": (15.0, 30.0),
        },
        "injury_base_costs": {
            "whiplash": 3500.0,
            "soft_tissue": 2500.0,
            "fracture": 15000.0,
            "laceration": 2000.0,
            "concussion": 8000.0,
            "spinal": 50000.0,
            "internal": 30000.0,
            "burn": 20000.0,
            "default": 5000.0,
        },
        "rental_daily_rate": _float("RESERVE_RENTAL_DAILY_RATE", 45.0),
        "rental_days": {"minor": 3, "moderate": 7, "severe": 14, "total_loss": 10},
        "towing_range": (150.0, 300.0, 500.0),
        "legal_defense_range": (5000.0, 10000.0, 25000.0),
        "adjuster_authority": _float("RESERVE_ADJUSTER_AUTHORITY", 25000.0),
        "supervisor_authority": _float("RESERVE_SUPERVISOR_AUTHORITY", 100000.0),
    }


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def get_settlement_config() -> dict[str, Any]:
    """Settlement component split, negotiation range and offer terms."""
    return {
        "medical_share": _float("SETTLEMENT_MEDICAL_SHARE", 0.6),
        "pain_suffering_share": _float("SETTLEMENT_PAIN_SUFFERING_SHARE", 0.4),
        "negotiation_min_default": _float("SETTLEMENT_NEGOTIATION_MIN_DEFAULT", 0.85),
        "negotiation_min_strong_liability": _float(
            "SETTLEMENT_NEGOTIATION_MIN_STRONG_LIABILITY", 0.90
        ),
        "negotiation_min_disputed": _float("SETTLEMENT_NEGOTIATION_MIN_DISPUTED", 0.75),
        "negotiation_target": _float("SETTLEMENT_NEGOTIATION_TARGET", 0.95),
        "strong_liability_percent": _int("SETTLEMENT_STRONG_LIABILITY_PERCENT", 80),
        "offer_valid_days": _int("SETTLEMENT_OFFER_VALID_DAYS", 30),
        "ach_threshold": _float("SETTLEMENT_ACH_THRESHOLD", 10000.0),
        "max_reasonable_amount": _float("SETTLEMENT_MAX_REASONABLE_AMOUNT", 100000.0),
    }


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def get_orchestrator_config() -> dict[str, Any]:
    """Thread pool sizing, per-document timeouts and repeat-failure escalation."""
    return {
        "max_workers": _int("ORCHESTRATOR_MAX_WORKERS", 8),
        "document_timeout_seconds": _float("ORCHESTRATOR_DOCUMENT_TIMEOUT_SECONDS", 10.0),
        "repeat_validation_failures_to_escalate": _int(
            "ORCHESTRATOR_REPEAT_VALIDATION_FAILURES", 3
        ),
        "statute_warning_years": _float("ORCHESTRATOR_STATUTE_WARNING_YEARS", 0.5),
    }


# ---------------------------------------------------------------------------
# External sources
# ---------------------------------------------------------------------------

EXTERNAL_RETRY_ATTEMPTS = _int("CLAIM_TRIAGE_EXTERNAL_RETRY_ATTEMPTS", 3)
EXTERNAL_RETRY_MIN_WAIT = _float("CLAIM_TRIAGE_EXTERNAL_RETRY_MIN_WAIT", 0.5)
EXTERNAL_RETRY_MAX_WAIT = _float("CLAIM_TRIAGE_EXTERNAL_RETRY_MAX_WAIT", 4.0)
HTTP_TIMEOUT_SECONDS = _float("CLAIM_TRIAGE_HTTP_TIMEOUT_SECONDS", 5.0)
AUDIT_STRICT_CRITICAL = _bool("CLAIM_TRIAGE_AUDIT_STRICT_CRITICAL", True)
