"""The seven orchestration phases.

Each phase reads the run state and the triggers raised so far, stores its
outputs on the state, and returns a PhaseResult carrying only the triggers it
raised itself. The orchestrator folds those into the running list.

Collaborator failures without a local fallback surface here as ExternalSourceError
and become a HIGH SYSTEM_ERROR trigger plus a phase failure.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from claim_triage.config.settings import get_orchestrator_config
from claim_triage.config.state_rules import StateRuleTable
from claim_triage.evaluation.compliance import validate_compliance
from claim_triage.evaluation.coverage import validate_coverage
from claim_triage.evaluation.fraud import build_siu_briefing, detect_fraud
from claim_triage.evaluation.investigation import investigate
from claim_triage.evaluation.quality import final_validation, review_quality
from claim_triage.evaluation.reserves import authority_level, authority_severity, recommend_reserve
from claim_triage.evaluation.settlement import draft_settlement
from claim_triage.evaluation.severity import score_severity
from claim_triage.evaluation.valuation import evaluate_vehicle
from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.review import ComplianceStatus
from claim_triage.models.scoring import RiskTier, Severity
from claim_triage.models.workflow import (
    EscalationTrigger,
    Phase,
    PhaseResult,
    TriggerType,
    WorkflowState,
)
from claim_triage.observability.logger import bound_context, get_logger
from claim_triage.sources.base import ExternalSources

logger = get_logger(__name__)


@dataclass
class PhaseContext:
    """Collaborators and settings shared by every phase of one run."""

    sources: ExternalSources
    rules: StateRuleTable
    now: datetime
    clock: Callable[[], datetime]
    audit_entries: Callable[[], int] = lambda: 0
    config: dict[str, Any] = field(default_factory=get_orchestrator_config)

    def trigger(
        self, trigger_type: TriggerType, reason: str, severity: Severity, phase: Phase
    ) -> EscalationTrigger:
        return EscalationTrigger(
            trigger_type=trigger_type,
            reason=reason,
            severity=severity,
            phase=phase,
            created_at=self.clock(),
        )


def _system_error(ctx: PhaseContext, phase: Phase, error: ExternalSourceError) -> PhaseResult:
    return PhaseResult(
        phase=phase,
        success=False,
        new_triggers=[
            ctx.trigger(
                TriggerType.SYSTEM_ERROR,
                f"{error.source} unavailable: {error}",
                Severity.HIGH,
                phase,
            )
        ],
        error=str(error),
    )


# ---------------------------------------------------------------------------
# Phase 1: intake and triage
# ---------------------------------------------------------------------------

def intake_triage(
    ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    """Acknowledge the claim, validate coverage and score severity.

    Severity is not computed when coverage does not apply.
    """
    phase = Phase.INTAKE_TRIAGE
    claim = state.claim
    if claim.lifecycle.acknowledged_at is None:
        lifecycle = claim.lifecycle.model_copy(update={"acknowledged_at": ctx.now})
        state.claim = claim = claim.model_copy(update={"lifecycle": lifecycle})

    coverage = validate_coverage(claim, state.policy)
    state.coverage = coverage
    if not coverage.coverage_applies:
        reason = "; ".join(coverage.errors + coverage.exclusions) or "Coverage does not apply"
        return PhaseResult(
            phase=phase,
            success=True,
            new_triggers=[
                ctx.trigger(TriggerType.COVERAGE_ISSUE, reason, Severity.HIGH, phase)
            ],
            summary={"coverage_applies": False},
        )

    new = []
    for gap in coverage.gaps:
        new.append(ctx.trigger(TriggerType.COVERAGE_GAP, gap, Severity.MEDIUM, phase))

    severity = score_severity(claim, coverage)
    state.severity = severity
    if claim.injuries.any_injuries:
        new.append(
            ctx.trigger(
                TriggerType.BODILY_INJURY,
                f"Bodily injury reported ({claim.injuries.severity.value})",
                Severity.MEDIUM,
                phase,
            )
        )
    return PhaseResult(
        phase=phase,
        success=True,
        new_triggers=new,
        summary={
            "coverage_applies": True,
            "gaps": len(coverage.gaps),
            "severity": severity.overall,
            "suggestion": severity.routing_suggestion.value,
        },
    )


# ---------------------------------------------------------------------------
# Phase 2: investigation and fraud, in parallel
# ---------------------------------------------------------------------------

def _fraud_trigger(ctx: PhaseContext, state: WorkflowState, phase: Phase) -> EscalationTrigger:
    fraud = state.fraud
    severity = Severity.CRITICAL if fraud.risk_tier == RiskTier.CRITICAL else Severity.HIGH
    return ctx.trigger(
        TriggerType.FRAUD_DETECTED,
        f"Fraud score {fraud.overall_score} ({fraud.risk_tier.value} risk) requires SIU review",
        severity,
        phase,
    )


def investigation_fraud(
    ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    """Run the investigation and fraud sub-pipelines concurrently and join them."""
    phase = Phase.INVESTIGATION_FRAUD
    claim = state.claim
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="phase2") as executor:
        investigation_future = executor.submit(
            bound_context(investigate), claim, ctx.sources.extractor, ctx.config
        )
        fraud_future = executor.submit(
            bound_context(detect_fraud), claim, state.policy, ctx.sources, ctx.now
        )
        state.investigation = investigation_future.result()
        try:
            state.fraud = fraud_future.result()
        except ExternalSourceError as e:
            return _system_error(ctx, phase, e)

    state.degraded_sources.extend(s for s in state.fraud.degraded_sources if s not in state.degraded_sources)
    new = []
    if state.fraud.requires_siu_review:
        state.siu_briefing = build_siu_briefing(claim, state.fraud)
        new.append(_fraud_trigger(ctx, state, phase))
    liability = state.investigation.liability
    if liability.requires_human_review:
        new.append(
            ctx.trigger(
                TriggerType.LIABILITY_REVIEW,
                "Liability review: " + "; ".join(liability.review_reasons),
                Severity.MEDIUM,
                phase,
            )
        )
    return PhaseResult(
        phase=phase,
        success=True,
        new_triggers=new,
        summary={
            "fraud_score": state.fraud.overall_score,
            "risk_tier": state.fraud.risk_tier.value,
            "completeness": state.investigation.evidence.completeness_score,
            "failed_documents": len(state.investigation.evidence.failed_documents),
        },
    )


# ---------------------------------------------------------------------------
# Phase 3: valuation, reserve and settlement
# ---------------------------------------------------------------------------

def _authority_trigger(
    ctx: PhaseContext, trigger_type: TriggerType, amount: float, label: str, phase: Phase
) -> Optional[EscalationTrigger]:
    severity = authority_severity(amount)
    if severity is None:
        return None
    return ctx.trigger(
        trigger_type,
        f"{label} ${amount:,.2f} requires {authority_level(amount).lower()} authority",
        severity,
        phase,
    )


def evaluation_settlement(
    ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    """Value the vehicle, set reserves and draft the settlement from scratch."""
    phase = Phase.EVALUATION_SETTLEMENT
    claim = state.claim
    rule = ctx.rules.get(claim.state_code)
    new = []

    valuation = evaluate_vehicle(
        claim,
        rule,
        ctx.sources,
        deductible=state.coverage.primary_deductible,
        owner_retains_salvage=claim.damage.owner_retains_salvage,
    )
    state.valuation = valuation
    if valuation.total_loss.is_total_loss:
        new.append(
            ctx.trigger(
                TriggerType.TOTAL_LOSS,
                f"Total loss: repair at {valuation.total_loss.percentage}% of ACV "
                f"${valuation.acv.value:,.2f}",
                Severity.MEDIUM,
                phase,
            )
        )
        # Loan balances can only be compared once the vehicle value is known
        known_gaps = set(state.coverage.gaps)
        state.coverage = validate_coverage(claim, state.policy, valuation.acv.value)
        for gap in state.coverage.gaps:
            if gap not in known_gaps:
                new.append(ctx.trigger(TriggerType.COVERAGE_GAP, gap, Severity.MEDIUM, phase))

    reserve = recommend_reserve(claim, valuation, rule)
    state.reserve = reserve
    reserve_trigger = _authority_trigger(
        ctx, TriggerType.HIGH_RESERVE, reserve.total_recommended, "Reserve", phase
    )
    if reserve_trigger:
        new.append(reserve_trigger)

    liability = state.investigation.liability if state.investigation else None
    settlement = draft_settlement(
        claim,
        state.coverage,
        reserve,
        state.fraud.overall_score,
        ctx.now,
        valuation=valuation,
        liability=liability,
    )
    state.settlement = settlement
    authority_trigger = _authority_trigger(
        ctx, TriggerType.AUTHORITY_REQUIRED, settlement.net_amount, "Settlement", phase
    )
    if authority_trigger:
        new.append(authority_trigger)

    return PhaseResult(
        phase=phase,
        success=True,
        new_triggers=new,
        summary={
            "acv": valuation.acv.value,
            "total_loss": valuation.total_loss.is_total_loss,
            "reserve": reserve.total_recommended,
            "settlement": settlement.net_amount,
            "limit_scaled": settlement.limit_scaled,
        },
    )


# ---------------------------------------------------------------------------
# Phase 4: communications and compliance
# ---------------------------------------------------------------------------

def communications_compliance(
    ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    phase = Phase.COMMUNICATIONS_COMPLIANCE
    compliance = validate_compliance(
        state.claim,
        ctx.rules,
        ctx.now,
        fraud=state.fraud,
        valuation=state.valuation,
        settlement=state.settlement,
        audit_entries=ctx.audit_entries(),
        warning_years=ctx.config["statute_warning_years"],
    )
    state.compliance = compliance
    new = []
    if compliance.overall_status == ComplianceStatus.NON_COMPLIANT:
        failed = ", ".join(c.name for c in compliance.failed_checks())
        new.append(
            ctx.trigger(
                TriggerType.COMPLIANCE_ISSUE,
                f"{compliance.state_code} compliance failures: {failed}",
                Severity.HIGH,
                phase,
            )
        )
    return PhaseResult(
        phase=phase,
        success=True,
        new_triggers=new,
        summary={"compliance": compliance.overall_status.value},
    )


# ---------------------------------------------------------------------------
# Phase 5: quality assurance
# ---------------------------------------------------------------------------

def quality_assurance(
    ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    phase = Phase.QUALITY_ASSURANCE
    qa = review_quality(state)
    state.qa = qa
    if qa.status == "APPROVED":
        return PhaseResult(phase=phase, success=True, summary={"qa": qa.status, "score": qa.score})
    failed = [c.name for c in qa.checks if c.status == "FAIL"]
    reason = f"QA review {qa.status.lower()}: {', '.join(failed)}"
    return PhaseResult(
        phase=phase,
        success=False,
        new_triggers=[ctx.trigger(TriggerType.QA_FAILURE, reason, Severity.HIGH, phase)],
        error=reason,
        summary={"qa": qa.status, "score": qa.score},
    )


# ---------------------------------------------------------------------------
# Phase 6: final validation
# ---------------------------------------------------------------------------

def final_validation_phase(
    ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    phase = Phase.FINAL_VALIDATION
    result = final_validation(state, triggers)
    state.final_validation = result
    summary = {"approved": result.approved, "confidence": result.confidence}
    if result.approved:
        return PhaseResult(phase=phase, success=True, summary=summary)
    return PhaseResult(
        phase=phase,
        success=False,
        new_triggers=[
            ctx.trigger(
                TriggerType.VALIDATION_FAILURE, result.rejection_reason, Severity.MEDIUM, phase
            )
        ],
        error=result.rejection_reason,
        summary=summary,
    )


PhaseFunction = Callable[[PhaseContext, WorkflowState, list[EscalationTrigger]], PhaseResult]

# Phase 7 is the routing gate and is run by the orchestrator itself
PHASE_FUNCTIONS: dict[Phase, PhaseFunction] = {
    Phase.INTAKE_TRIAGE: intake_triage,
    Phase.INVESTIGATION_FRAUD: investigation_fraud,
    Phase.EVALUATION_SETTLEMENT: evaluation_settlement,
    Phase.COMMUNICATIONS_COMPLIANCE: communications_compliance,
    Phase.QUALITY_ASSURANCE: quality_assurance,
    Phase.FINAL_VALIDATION: final_validation_phase,
}


def run_phase(
    phase: Phase, ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
) -> PhaseResult:
    """Run one phase, converting collaborator failures into a SYSTEM_ERROR failure."""
    try:
        return PHASE_FUNCTIONS[phase](ctx, state, list(triggers))
    except ExternalSourceError as e:
        logger.warning("Phase %s lost collaborator %s: %s", phase.value, e.source, e)
        return _system_error(ctx, phase, e)
