"""Pydantic models for orchestration: phases, triggers, checklist and results."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from claim_triage.models.claim import ClaimRecord, ClaimStatus
from claim_triage.models.policy import CoverageResult, PolicyRecord
from claim_triage.models.review import (
    ComplianceResult,
    FinalValidation,
    InvestigationResult,
    QAReview,
)
from claim_triage.models.scoring import FraudScore, Route, Severity, SeverityScore, SIUBriefing
from claim_triage.models.settlement import ReserveRecommendation, SettlementDraft
from claim_triage.models.valuation import ValuationResult


class Phase(str, Enum):
    """The seven orchestration phases, in execution order."""

    INTAKE_TRIAGE = "intake_triage"
    INVESTIGATION_FRAUD = "investigation_fraud"
    EVALUATION_SETTLEMENT = "evaluation_settlement"
    COMMUNICATIONS_COMPLIANCE = "communications_compliance"
    QUALITY_ASSURANCE = "quality_assurance"
    FINAL_VALIDATION = "final_validation"
    SUBMISSION_ROUTING = "submission_routing"

    @property
    def number(self) -> int:
        return PHASE_ORDER.index(self) + 1


PHASE_ORDER: list[Phase] = list(Phase)


class TriggerType(str, Enum):
    FRAUD_DETECTED = "FRAUD_DETECTED"
    COVERAGE_ISSUE = "COVERAGE_ISSUE"
    COVERAGE_GAP = "COVERAGE_GAP"
    COMPLIANCE_ISSUE = "COMPLIANCE_ISSUE"
    QA_FAILURE = "QA_FAILURE"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    BODILY_INJURY = "BODILY_INJURY"
    TOTAL_LOSS = "TOTAL_LOSS"
    LIABILITY_REVIEW = "LIABILITY_REVIEW"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    HIGH_RESERVE = "HIGH_RESERVE"
    AUTHORITY_REQUIRED = "AUTHORITY_REQUIRED"


class EscalationTrigger(BaseModel):
    """A recorded reason the claim needs a human. Immutable once raised."""

    trigger_type: TriggerType
    reason: str = Field(..., min_length=1)
    severity: Severity
    phase: Optional[Phase] = None
    created_at: datetime

    model_config = {"frozen": True}

    @property
    def short_circuits(self) -> bool:
        return self.severity in (Severity.HIGH, Severity.CRITICAL)


class PhaseResult(BaseModel):
    """What a phase function hands back to the orchestrator."""

    phase: Phase
    success: bool
    new_triggers: list[EscalationTrigger] = Field(default_factory=list)
    error: Optional[str] = None
    summary: dict[str, Any] = Field(default_factory=dict)


class OrchestratorChecklistStatus(BaseModel):
    """Per-run phase completion flags and log."""

    started_at: datetime
    completed: dict[str, bool] = Field(
        default_factory=lambda: {p.value: False for p in PHASE_ORDER}
    )
    completed_log: list[str] = Field(default_factory=list)
    current_phase: Optional[Phase] = None

    def start(self, phase: Phase) -> None:
        self.current_phase = phase

    def mark_complete(self, phase: Phase) -> None:
        self.completed[phase.value] = True
        self.completed_log.append(phase.value)

    def all_complete(self, through: Optional[Phase] = None) -> bool:
        phases = PHASE_ORDER if through is None else PHASE_ORDER[: through.number]
        return all(self.completed[p.value] for p in phases)


class RoutingDecision(BaseModel):
    decision: Route
    reason: str = Field(..., min_length=1)
    priority: Literal["low", "medium", "high", "critical"] = "low"


class AutoApprovalCheck(BaseModel):
    """The phase-7 AND gate, one entry per criterion."""

    criteria: dict[str, bool] = Field(default_factory=dict)
    approved: bool = False
    failures: list[str] = Field(default_factory=list)


class WorkflowState(BaseModel):
    """Phase outputs carried through one orchestration run."""

    claim: ClaimRecord
    policy: PolicyRecord
    coverage: Optional[CoverageResult] = None
    severity: Optional[SeverityScore] = None
    fraud: Optional[FraudScore] = None
    siu_briefing: Optional[SIUBriefing] = None
    investigation: Optional[InvestigationResult] = None
    valuation: Optional[ValuationResult] = None
    reserve: Optional[ReserveRecommendation] = None
    settlement: Optional[SettlementDraft] = None
    compliance: Optional[ComplianceResult] = None
    qa: Optional[QAReview] = None
    final_validation: Optional[FinalValidation] = None
    auto_approval: Optional[AutoApprovalCheck] = None
    degraded_sources: list[str] = Field(default_factory=list)


class ClaimDecisionResult(BaseModel):
    """Result of one orchestration run, as returned to the caller and persisted."""

    claim_id: str
    run_id: str
    status: ClaimStatus
    routing: Optional[RoutingDecision] = Field(
        default=None, description="None when the claim is held at intake"
    )
    triggers: list[EscalationTrigger] = Field(default_factory=list)
    checklist: OrchestratorChecklistStatus
    coverage: Optional[CoverageResult] = None
    severity: Optional[SeverityScore] = None
    fraud: Optional[FraudScore] = None
    siu_briefing: Optional[SIUBriefing] = None
    investigation: Optional[InvestigationResult] = None
    valuation: Optional[ValuationResult] = None
    reserve: Optional[ReserveRecommendation] = None
    settlement: Optional[SettlementDraft] = None
    compliance: Optional[ComplianceResult] = None
    qa: Optional[QAReview] = None
    final_validation: Optional[FinalValidation] = None
    auto_approval: Optional[AutoApprovalCheck] = None
    validation_errors: list[str] = Field(default_factory=list)
    degraded_sources: list[str] = Field(default_factory=list)
    audit_complete: bool = True
    started_at: datetime
    completed_at: datetime
