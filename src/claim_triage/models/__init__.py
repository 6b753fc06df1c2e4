"""Pydantic models for claims, policies, scoring and orchestration."""

from claim_triage.models.claim import (
    ClaimDocument,
    ClaimLifecycle,
    ClaimRecord,
    ClaimStatus,
    ClaimType,
    DamageInfo,
    DamageSeverity,
    DocumentType,
    InjuryDetail,
    InjuryInfo,
    InjurySeverity,
    Location,
    LossCircumstances,
    Participant,
    VehicleRecord,
)
from claim_triage.models.policy import (
    Coverage,
    CoverageApplicability,
    CoverageResult,
    CoverageType,
    PolicyRecord,
    PolicyStatus,
    PolicyVehicle,
)
from claim_triage.models.scoring import (
    FraudFlag,
    FraudFlagType,
    FraudPattern,
    FraudScore,
    RiskTier,
    Route,
    Severity,
    SeverityScore,
    SIUBriefing,
)
from claim_triage.models.workflow import (
    ClaimDecisionResult,
    EscalationTrigger,
    Phase,
    PhaseResult,
    RoutingDecision,
    TriggerType,
    WorkflowState,
)

__all__ = [
    "ClaimDecisionResult",
    "ClaimDocument",
    "ClaimLifecycle",
    "ClaimRecord",
    "ClaimStatus",
    "ClaimType",
    "Coverage",
    "CoverageApplicability",
    "CoverageResult",
    "CoverageType",
    "DamageInfo",
    "DamageSeverity",
    "DocumentType",
    "EscalationTrigger",
    "FraudFlag",
    "FraudFlagType",
    "FraudPattern",
    "FraudScore",
    "InjuryDetail",
    "InjuryInfo",
    "InjurySeverity",
    "Location",
    "LossCircumstances",
    "Participant",
    "Phase",
    "PhaseResult",
    "PolicyRecord",
    "PolicyStatus",
    "PolicyVehicle",
    "RiskTier",
    "Route",
    "RoutingDecision",
    "Severity",
    "SeverityScore",
    "SIUBriefing",
    "TriggerType",
    "VehicleRecord",
    "WorkflowState",
]
