"""Phase 7: the auto-approval gate and human-queue routing."""

from typing import Any, Optional

from claim_triage.config.settings import get_auto_approval_config
from claim_triage.models.claim import ClaimStatus
from claim_triage.models.scoring import Route, Severity
from claim_triage.models.workflow import (
    AutoApprovalCheck,
    EscalationTrigger,
    RoutingDecision,
    TriggerType,
    WorkflowState,
)

BODILY_INJURY_REASON = "Bodily injury requires adjuster review"

# Trigger types that send a claim to the general escalation queue at HIGH severity
ESCALATE_TRIGGER_TYPES = frozenset(
    {
        TriggerType.SYSTEM_ERROR,
        TriggerType.COVERAGE_ISSUE,
        TriggerType.COMPLIANCE_ISSUE,
        TriggerType.QA_FAILURE,
        TriggerType.VALIDATION_FAILURE,
        TriggerType.AUTHORITY_REQUIRED,
        TriggerType.HIGH_RESERVE,
    }
)


def _coverage_disputed(state: WorkflowState) -> bool:
    coverage = state.coverage
    if coverage is None:
        return True
    return not coverage.coverage_applies or bool(coverage.exclusions) or bool(coverage.gaps)


def decision_confidence(state: WorkflowState) -> float:
    """Final-validation confidence, capped by the confidence of the ACV the settlement rests on."""
    if state.final_validation is None:
        return 0.0
    confidence = state.final_validation.confidence
    if state.valuation is not None:
        confidence = min(confidence, state.valuation.acv.confidence)
    return confidence / 100


def auto_approval_check(
    state: WorkflowState,
    triggers: list[EscalationTrigger],
    config: Optional[dict[str, Any]] = None,
) -> AutoApprovalCheck:
    """AND over every auto-approval criterion. Missing phase outputs fail their criterion."""
    cfg = config or get_auto_approval_config()
    claim = state.claim
    settlement = state.settlement
    severity = state.severity
    net = settlement.net_amount if settlement is not None else None
    confidence = decision_confidence(state)

    criteria = {
        "amount_within_ceiling": net is not None and net <= cfg["max_amount"],
        "fraud_below_ceiling": state.fraud is not None
        and state.fraud.overall_score < cfg["fraud_score_ceiling"],
        "no_escalation_triggers": not triggers,
        "confidence_floor": confidence >= cfg["min_confidence"],
        "not_total_loss": state.valuation is not None
        and not state.valuation.total_loss.is_total_loss,
        "no_sensor_zone_on_recent_vehicle": severity is not None
        and not (severity.sensor_zone_damage and severity.recent_vehicle),
        "no_bodily_injury": not claim.injuries.any_injuries,
        "no_coverage_dispute": not _coverage_disputed(state),
        "settlement_eligible": settlement is not None and settlement.auto_approval_eligible,
    }
    return AutoApprovalCheck(
        criteria=criteria,
        approved=all(criteria.values()),
        failures=[name for name, ok in criteria.items() if not ok],
    )


def route_priority(triggers: list[EscalationTrigger]) -> str:
    if not triggers:
        return "low"
    return max(triggers, key=lambda t: t.severity.rank).severity.value.lower()


def _first(triggers: list[EscalationTrigger], types) -> Optional[EscalationTrigger]:
    return next((t for t in triggers if t.trigger_type in types), None)


def decide_route(
    state: WorkflowState,
    triggers: list[EscalationTrigger],
    phase_failed: bool = False,
    config: Optional[dict[str, Any]] = None,
) -> RoutingDecision:
    """Name the human queue for a claim that did not auto-approve.

    Precedence: siu, escalate, specialist, full_adjuster, then the severity
    suggestion (with auto_approve downgraded to express_desk).
    """
    cfg = config or get_auto_approval_config()
    priority = route_priority(triggers)

    fraud_trigger = _first(triggers, {TriggerType.FRAUD_DETECTED})
    if fraud_trigger or (state.fraud is not None and state.fraud.requires_siu_review):
        reason = fraud_trigger.reason if fraud_trigger else "Fraud score requires SIU review"
        return RoutingDecision(decision=Route.SIU, reason=reason, priority=priority)

    blocking = [
        t for t in triggers
        if t.trigger_type in ESCALATE_TRIGGER_TYPES and t.severity.rank >= Severity.HIGH.rank
    ]
    if blocking:
        return RoutingDecision(decision=Route.ESCALATE, reason=blocking[0].reason, priority=priority)
    if phase_failed:
        reason = triggers[-1].reason if triggers else "Processing did not complete"
        return RoutingDecision(decision=Route.ESCALATE, reason=reason, priority=priority)

    if state.valuation is not None and state.valuation.total_loss.is_total_loss:
        total_loss = _first(triggers, {TriggerType.TOTAL_LOSS})
        reason = total_loss.reason if total_loss else "Total loss requires specialist handling"
        return RoutingDecision(decision=Route.SPECIALIST, reason=reason, priority=priority)

    if state.claim.injuries.any_injuries:
        return RoutingDecision(
            decision=Route.FULL_ADJUSTER, reason=BODILY_INJURY_REASON, priority=priority
        )

    suggestion = state.severity.routing_suggestion if state.severity else Route.FULL_ADJUSTER
    reason = state.severity.routing_reason if state.severity else ""
    if suggestion == Route.AUTO_APPROVE:
        suggestion = Route.EXPRESS_DESK
    net = state.settlement.net_amount if state.settlement is not None else 0.0
    if suggestion == Route.EXPRESS_DESK and net > cfg["max_amount"]:
        suggestion = Route.FULL_ADJUSTER
        reason = f"Settlement ${net:,.2f} exceeds express ceiling ${cfg['max_amount']:,.2f}"
    if not reason:
        reason = triggers[0].reason if triggers else "Auto-approval criteria not met"
    return RoutingDecision(decision=suggestion, reason=reason, priority=priority)


def route_claim(
    state: WorkflowState,
    triggers: list[EscalationTrigger],
    phase_failed: bool = False,
    config: Optional[dict[str, Any]] = None,
) -> tuple[RoutingDecision, ClaimStatus]:
    """Run the gate and return the routing decision plus the status it implies.

    The gate is only evaluated when every earlier phase completed without a
    failure; otherwise the claim goes straight to a human queue.
    """
    cfg = config or get_auto_approval_config()
    if not phase_failed:
        check = auto_approval_check(state, triggers, cfg)
        state.auto_approval = check
        if check.approved:
            return (
                RoutingDecision(
                    decision=Route.AUTO_APPROVE,
                    reason="All auto-approval criteria met",
                    priority="low",
                ),
                ClaimStatus.APPROVED,
            )
    routing = decide_route(state, triggers, phase_failed, cfg)
    status = ClaimStatus.FLAGGED_FRAUD if routing.decision == Route.SIU else ClaimStatus.ESCALATED_TO_HUMAN
    return routing, status
