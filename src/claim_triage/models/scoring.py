"""Pydantic models for severity and fraud scoring."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Severity tier shared by fraud flags and escalation triggers."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class Route(str, Enum):
    """Outcome queues a claim can be routed to."""

    AUTO_APPROVE = "auto_approve"
    EXPRESS_DESK = "express_desk"
    FULL_ADJUSTER = "full_adjuster"
    SPECIALIST = "specialist"
    SIU = "siu"
    ESCALATE = "escalate"


class SeverityScore(BaseModel):
    """Severity and complexity sub-scores (0-100) with a routing suggestion."""

    property_damage: int = Field(..., ge=0, le=100)
    bodily_injury: int = Field(..., ge=0, le=100)
    complexity: int = Field(..., ge=0, le=100)
    litigation_risk: int = Field(..., ge=0, le=100)
    overall: int = Field(..., ge=0, le=100, description="Weighted overall score")
    routing_suggestion: Route
    routing_reason: str = ""
    flags: list[str] = Field(default_factory=list)
    sensor_zone_damage: bool = Field(default=False)
    recent_vehicle: bool = Field(default=False)


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FraudFlagType(str, Enum):
    RAPID_POLICY_PURCHASE = "rapid_policy_purchase"
    SUSPICIOUS_TIMING = "suspicious_timing"
    INCONSISTENT_STATEMENTS = "inconsistent_statements"
    VEHICLE_HISTORY_MISMATCH = "vehicle_history_mismatch"
    PRIOR_DAMAGE = "prior_damage"
    EXCESSIVE_MEDICAL_BILLING = "excessive_medical_billing"
    EXCESSIVE_MEDICAL_LINE_ITEMS = "excessive_medical_line_items"
    INFLATED_REPAIR_COSTS = "inflated_repair_costs"
    PRIOR_FRAUD_INDICATOR = "prior_fraud_indicator"
    REPEATED_CLAIMANT = "repeated_claimant"
    STAGED_ACCIDENT = "staged_accident"


class FraudFlag(BaseModel):
    """A single fraud indicator and its weighted contribution."""

    flag_type: FraudFlagType
    severity: Severity
    weight: int = Field(..., ge=0)
    description: str
    evidence: list[str] = Field(default_factory=list)
    detected_at: datetime


class FraudPattern(BaseModel):
    """A multi-claim or multi-signal pattern match."""

    pattern_type: Literal["repeated_claimant", "staged_accident"]
    confidence: int = Field(..., ge=0, le=100)
    description: str
    indicators: list[str] = Field(default_factory=list)


class FraudScore(BaseModel):
    """Aggregate fraud assessment for a claim."""

    overall_score: int = Field(..., ge=0, le=100)
    risk_tier: RiskTier
    rule_score: int = Field(..., description="Rule-flag contribution after the cap")
    ml_score: float = Field(default=0.0, description="External scoring signal 0-100")
    watchlist_hits: int = Field(default=0)
    flags: list[FraudFlag] = Field(default_factory=list)
    patterns: list[FraudPattern] = Field(default_factory=list)
    requires_siu_review: bool = Field(default=False)
    confidence: int = Field(default=50)
    recommendations: list[str] = Field(default_factory=list)
    degraded_sources: list[str] = Field(
        default_factory=list, description="Sources that failed and were scored as zero"
    )


class SIUBriefing(BaseModel):
    """Referral package for the special investigations unit."""

    claim_id: Optional[str] = None
    priority: Literal["low", "medium", "high", "urgent"]
    fraud_score: int
    risk_tier: RiskTier
    summary: str
    key_indicators: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    estimated_fraud_amount: float = 0.0
