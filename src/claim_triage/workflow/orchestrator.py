"""Claim orchestrator: drives one claim through the seven phases.

Phases run strictly in order. A phase failure or a HIGH/CRITICAL trigger
short-circuits straight to routing, which names the human queue. Triggers are
an explicit accumulator: each phase sees the list raised before it and returns
only its own.

Usage:
    orchestrator = ClaimOrchestrator(sources)
    claim_id = orchestrator.submit(claim, policy)
    result = orchestrator.process(claim_id)
"""

import logging
import sqlite3
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from claim_triage.config.settings import get_orchestrator_config
from claim_triage.config.state_rules import StateRuleTable, load_state_rules
from claim_triage.db.constants import (
    ACTION_DECISION,
    ACTION_PHASE_COMPLETED,
    ACTION_PHASE_FAILED,
    ACTION_PHASE_STARTED,
    ACTION_RESET_FOR_REPROCESS,
    ACTION_TRIGGER_RAISED,
    ACTION_VALIDATION_FAILED,
    ACTION_WORKFLOW_STARTED,
)
from claim_triage.db.repository import ClaimRepository
from claim_triage.exceptions import AuditDeliveryError, ClaimTriageError
from claim_triage.models.claim import ClaimRecord, ClaimStatus
from claim_triage.models.policy import PolicyRecord
from claim_triage.models.scoring import Route, Severity
from claim_triage.models.workflow import (
    PHASE_ORDER,
    ClaimDecisionResult,
    EscalationTrigger,
    OrchestratorChecklistStatus,
    Phase,
    PhaseResult,
    RoutingDecision,
    TriggerType,
    WorkflowState,
)
from claim_triage.observability.logger import claim_context, get_logger
from claim_triage.observability.metrics import get_metrics
from claim_triage.sources.base import ExternalSources
from claim_triage.workflow.audit import AuditTrail
from claim_triage.workflow.intake import claim_errors, validation_status
from claim_triage.workflow.phases import PhaseContext, run_phase
from claim_triage.workflow.routing import route_claim, route_priority
from claim_triage.workflow.status import REPROCESSABLE_STATUSES

logger = get_logger(__name__)

# Status a claim moves to once the phase completes
PHASE_STATUS = {
    Phase.INTAKE_TRIAGE: ClaimStatus.UNDER_REVIEW,
    Phase.INVESTIGATION_FRAUD: ClaimStatus.INVESTIGATING,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClaimOrchestrator:
    """Runs claims through the pipeline with at most one active run per claim."""

    def __init__(
        self,
        sources: ExternalSources,
        repository: Optional[ClaimRepository] = None,
        state_rules: Optional[StateRuleTable] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[dict[str, Any]] = None,
    ):
        self.sources = sources
        self.repository = repository or ClaimRepository()
        self.state_rules = state_rules or load_state_rules()
        self.clock = clock or _utc_now
        self.config = config or get_orchestrator_config()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def submit(self, claim: ClaimRecord, policy: Optional[PolicyRecord] = None) -> str:
        """Store a new claim (and its policy snapshot) at SUBMITTED. Returns the claim ID."""
        if policy is not None:
            self.repository.save_policy(policy)
        claim_id = self.repository.create_claim(claim)
        logger.log_event("claim_submitted", claim_id=claim_id, claim_type=claim.claim_type.value)
        return claim_id

    def process(self, claim_id: str, policy: Optional[PolicyRecord] = None) -> ClaimDecisionResult:
        """Run the pipeline for a stored claim.

        Raises ClaimNotFoundError for an unknown ID and ClaimAlreadyProcessingError
        when another run owns the claim. Everything else ends in a result.
        """
        run_id = uuid.uuid4().hex[:12]
        self.repository.acquire_run_lock(claim_id, run_id)
        try:
            # Read under the lock so a run that just finished is seen in its final status
            claim = self.repository.get_claim_record(claim_id)
            with claim_context(
                claim_id,
                claim_type=claim.claim_type.value,
                policy_number=claim.policy_number,
            ):
                return self._run(claim, policy, run_id)
        finally:
            self.repository.release_run_lock(claim_id, run_id)

    def submit_and_process(
        self, claim: ClaimRecord, policy: Optional[PolicyRecord] = None
    ) -> ClaimDecisionResult:
        return self.process(self.submit(claim, policy))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _trigger(
        self, trigger_type: TriggerType, reason: str, severity: Severity, phase: Optional[Phase]
    ) -> EscalationTrigger:
        return EscalationTrigger(
            trigger_type=trigger_type,
            reason=reason,
            severity=severity,
            phase=phase,
            created_at=self.clock(),
        )

    def _run(
        self, claim: ClaimRecord, policy: Optional[PolicyRecord], run_id: str
    ) -> ClaimDecisionResult:
        claim_id = claim.claim_id
        started = self.clock()
        metrics = get_metrics()
        metrics.start_claim(claim_id)
        audit = AuditTrail(claim_id, self.repository)
        checklist = OrchestratorChecklistStatus(started_at=started)
        audit.record(ACTION_WORKFLOW_STARTED, details={"run_id": run_id, "status": claim.status.value})
        logger.log_event("workflow_started", run_id=run_id, status=claim.status.value)

        state: Optional[WorkflowState] = None
        triggers: list[EscalationTrigger] = []
        try:
            if policy is not None:
                self.repository.save_policy(policy)
            else:
                policy = self.repository.get_policy(claim.policy_number)

            if claim.status not in REPROCESSABLE_STATUSES:
                error = f"Claim {claim_id} is {claim.status.value} and cannot be reprocessed"
                return self._finish_held(claim, run_id, checklist, audit, started, [error], claim.status)
            claim = self._reset_for_reprocess(claim)

            errors = claim_errors(claim, policy, started)
            if errors:
                return self._hold(claim, run_id, checklist, audit, started, errors)

            state = WorkflowState(claim=claim, policy=policy)
            routing, status = self._run_phases(state, triggers, checklist, audit)
        except Exception as e:
            # Boundary: unexpected failures escalate, they never escape the run
            logger.exception("Workflow failed for claim %s", claim_id)
            trigger = self._trigger(
                TriggerType.SYSTEM_ERROR,
                f"Unexpected error: {type(e).__name__}: {e}",
                Severity.HIGH,
                checklist.current_phase,
            )
            triggers.append(trigger)
            audit.record(ACTION_TRIGGER_RAISED, details=trigger.model_dump(mode="json"), critical=True)
            routing = RoutingDecision(
                decision=Route.ESCALATE, reason=trigger.reason, priority=route_priority(triggers)
            )
            status = self._force_escalation(claim_id, routing)
            logger.log_event("workflow_failed", level=logging.ERROR, error=str(e))
            if state is None:
                state = WorkflowState(claim=claim, policy=policy) if policy else None

        return self._finish(claim, state, run_id, routing, status, triggers, checklist, audit, started)

    def _reset_for_reprocess(self, claim: ClaimRecord) -> ClaimRecord:
        if claim.status == ClaimStatus.SUBMITTED:
            return claim
        self.repository.update_claim_status(
            claim.claim_id,
            ClaimStatus.SUBMITTED,
            details=f"Reprocessing from {claim.status.value}",
            action=ACTION_RESET_FOR_REPROCESS,
        )
        logger.log_event("reset_for_reprocess", previous_status=claim.status.value)
        return claim.model_copy(update={"status": ClaimStatus.SUBMITTED})

    def _force_escalation(self, claim_id: str, routing: RoutingDecision) -> ClaimStatus:
        """Best-effort move to ESCALATED_TO_HUMAN after an unexpected failure."""
        try:
            self.repository.update_claim_status(
                claim_id, ClaimStatus.ESCALATED_TO_HUMAN, details=routing.reason
            )
        except (ClaimTriageError, sqlite3.Error) as e:
            logger.log_event("status_update_failed", level=logging.ERROR, error=str(e))
        return ClaimStatus.ESCALATED_TO_HUMAN

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _execute_phase(
        self, phase: Phase, ctx: PhaseContext, state: WorkflowState, triggers: list[EscalationTrigger]
    ) -> PhaseResult:
        try:
            return run_phase(phase, ctx, state, triggers)
        except Exception as e:
            logger.exception("Phase %s raised", phase.value)
            reason = f"Unexpected error in {phase.value}: {type(e).__name__}: {e}"
            return PhaseResult(
                phase=phase,
                success=False,
                new_triggers=[self._trigger(TriggerType.SYSTEM_ERROR, reason, Severity.HIGH, phase)],
                error=reason,
            )

    def _run_phases(
        self,
        state: WorkflowState,
        triggers: list[EscalationTrigger],
        checklist: OrchestratorChecklistStatus,
        audit: AuditTrail,
    ) -> tuple[RoutingDecision, ClaimStatus]:
        claim_id = state.claim.claim_id
        metrics = get_metrics()
        ctx = PhaseContext(
            sources=self.sources,
            rules=self.state_rules,
            now=checklist.started_at,
            clock=self.clock,
            audit_entries=lambda: len(self.repository.get_claim_history(claim_id)),
            config=self.config,
        )

        phase_failed = False
        current = state.claim.status
        for phase in PHASE_ORDER[:-1]:
            checklist.start(phase)
            audit.record(
                ACTION_PHASE_STARTED,
                phase=phase.value,
                details={
                    "status": current.value,
                    "triggers": len(triggers),
                    "completed_phases": list(checklist.completed_log),
                },
            )
            logger.log_event("phase_started", phase=phase.value, number=phase.number)
            start = time.perf_counter()
            result = self._execute_phase(phase, ctx, state, triggers)
            duration_ms = (time.perf_counter() - start) * 1000
            metrics.record_phase(claim_id, phase.value, duration_ms, result.success)

            for trigger in result.new_triggers:
                triggers.append(trigger)
                audit.record(
                    ACTION_TRIGGER_RAISED,
                    phase=phase.value,
                    details=trigger.model_dump(mode="json"),
                    critical=trigger.short_circuits,
                )
                logger.log_event(
                    "trigger_raised",
                    level=logging.WARNING,
                    phase=phase.value,
                    trigger=trigger.trigger_type.value,
                    severity=trigger.severity.value,
                    reason=trigger.reason,
                )

            if not result.success:
                phase_failed = True
                audit.record(
                    ACTION_PHASE_FAILED,
                    phase=phase.value,
                    details={"error": result.error, "summary": result.summary},
                    critical=True,
                )
                logger.log_event(
                    "phase_failed", level=logging.WARNING, phase=phase.value, error=result.error,
                    duration_ms=round(duration_ms, 1),
                )
                break

            checklist.mark_complete(phase)
            audit.record(ACTION_PHASE_COMPLETED, phase=phase.value, details=result.summary)
            logger.log_event(
                "phase_completed", phase=phase.value, duration_ms=round(duration_ms, 1),
                triggers=len(result.new_triggers),
            )
            if phase == Phase.INTAKE_TRIAGE:
                self.repository.update_claim_payload(state.claim)
            if phase in PHASE_STATUS:
                self.repository.update_claim_status(
                    claim_id, PHASE_STATUS[phase], details=result.summary, phase=phase.value
                )
                current = PHASE_STATUS[phase]
            if any(t.short_circuits for t in result.new_triggers):
                logger.log_event("workflow_short_circuited", phase=phase.value)
                break

        return self._route(state, triggers, phase_failed, checklist)

    def _route(
        self,
        state: WorkflowState,
        triggers: list[EscalationTrigger],
        phase_failed: bool,
        checklist: OrchestratorChecklistStatus,
    ) -> tuple[RoutingDecision, ClaimStatus]:
        phase = Phase.SUBMISSION_ROUTING
        checklist.start(phase)
        start = time.perf_counter()
        # The gate only runs when phases 1-6 all completed
        gate_open = not phase_failed and checklist.all_complete(through=Phase.FINAL_VALIDATION)
        routing, status = route_claim(state, triggers, phase_failed=not gate_open)
        if status == ClaimStatus.APPROVED:
            lifecycle = state.claim.lifecycle.model_copy(update={"decided_at": self.clock()})
            state.claim = state.claim.model_copy(update={"lifecycle": lifecycle})
            self.repository.update_claim_payload(state.claim)
        self.repository.update_claim_status(
            state.claim.claim_id, status, details=routing.reason, phase=phase.value
        )
        checklist.mark_complete(phase)
        get_metrics().record_phase(
            state.claim.claim_id, phase.value, (time.perf_counter() - start) * 1000, True
        )
        return routing, status

    # ------------------------------------------------------------------
    # Held claims
    # ------------------------------------------------------------------

    def _hold(
        self,
        claim: ClaimRecord,
        run_id: str,
        checklist: OrchestratorChecklistStatus,
        audit: AuditTrail,
        started: datetime,
        errors: list[str],
    ) -> ClaimDecisionResult:
        """Hold a claim that failed intake, escalating once failures repeat."""
        claim_id = claim.claim_id
        status = validation_status(errors)
        self.repository.update_claim_status(
            claim_id, status, details={"errors": errors}, action=ACTION_VALIDATION_FAILED
        )
        failures = self.repository.count_audit_actions(claim_id, ACTION_VALIDATION_FAILED)
        limit = self.config["repeat_validation_failures_to_escalate"]
        if failures < limit:
            return self._finish_held(claim, run_id, checklist, audit, started, errors, status)

        trigger = self._trigger(
            TriggerType.VALIDATION_FAILURE,
            f"Claim failed validation {failures} times: {'; '.join(errors)}",
            Severity.MEDIUM,
            None,
        )
        audit.record(ACTION_TRIGGER_RAISED, details=trigger.model_dump(mode="json"))
        routing = RoutingDecision(decision=Route.ESCALATE, reason=trigger.reason, priority="medium")
        self.repository.update_claim_status(
            claim_id, ClaimStatus.ESCALATED_TO_HUMAN, details=routing.reason
        )
        return self._finish(
            claim, None, run_id, routing, ClaimStatus.ESCALATED_TO_HUMAN, [trigger],
            checklist, audit, started, validation_errors=errors,
        )

    def _finish_held(
        self,
        claim: ClaimRecord,
        run_id: str,
        checklist: OrchestratorChecklistStatus,
        audit: AuditTrail,
        started: datetime,
        errors: list[str],
        status: ClaimStatus,
    ) -> ClaimDecisionResult:
        logger.log_event("workflow_held", level=logging.WARNING, status=status.value, errors=errors)
        get_metrics().end_claim(claim.claim_id, status="held")
        result = ClaimDecisionResult(
            claim_id=claim.claim_id,
            run_id=run_id,
            status=status,
            checklist=checklist,
            validation_errors=errors,
            audit_complete=self._flush(audit),
            started_at=started,
            completed_at=self.clock(),
        )
        self._save(result)
        return result

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _flush(self, audit: AuditTrail) -> bool:
        try:
            return audit.flush()
        except AuditDeliveryError as e:
            logger.log_event("audit_incomplete", level=logging.CRITICAL, undelivered=e.undelivered)
            return False

    def _save(self, result: ClaimDecisionResult) -> None:
        try:
            self.repository.save_workflow_result(result)
        except sqlite3.Error as e:
            logger.log_event(
                "workflow_result_not_saved", level=logging.ERROR, run_id=result.run_id, error=str(e)
            )

    def _persist_fields(self, state: WorkflowState, routing: RoutingDecision) -> None:
        fields: dict[str, Any] = {"routing_decision": routing.decision.value}
        if state.severity is not None:
            fields["severity_score"] = state.severity.overall
        if state.fraud is not None:
            fields["fraud_score"] = state.fraud.overall_score
        if state.settlement is not None:
            fields["settlement_amount"] = state.settlement.net_amount
        try:
            self.repository.update_claim_fields(state.claim.claim_id, **fields)
        except sqlite3.Error as e:
            logger.log_event("claim_fields_not_saved", level=logging.ERROR, error=str(e))

    def _finish(
        self,
        claim: ClaimRecord,
        state: Optional[WorkflowState],
        run_id: str,
        routing: RoutingDecision,
        status: ClaimStatus,
        triggers: list[EscalationTrigger],
        checklist: OrchestratorChecklistStatus,
        audit: AuditTrail,
        started: datetime,
        validation_errors: Optional[list[str]] = None,
    ) -> ClaimDecisionResult:
        claim_id = claim.claim_id
        audit.record(
            ACTION_DECISION,
            phase=Phase.SUBMISSION_ROUTING.value,
            details={
                **routing.model_dump(mode="json"),
                "status": status.value,
                "triggers": [t.trigger_type.value for t in triggers],
            },
            critical=True,
        )
        if state is not None:
            self._persist_fields(state, routing)

        event = "workflow_approved" if routing.decision == Route.AUTO_APPROVE else "workflow_escalated"
        logger.log_event(
            event,
            decision=routing.decision.value,
            priority=routing.priority,
            status=status.value,
            triggers=len(triggers),
            reason=routing.reason,
        )
        get_metrics().end_claim(
            claim_id,
            status="completed" if status == ClaimStatus.APPROVED else "escalated",
            decision=routing.decision.value,
        )

        outputs: dict[str, Any] = {}
        if state is not None:
            outputs = {
                "coverage": state.coverage,
                "severity": state.severity,
                "fraud": state.fraud,
                "siu_briefing": state.siu_briefing,
                "investigation": state.investigation,
                "valuation": state.valuation,
                "reserve": state.reserve,
                "settlement": state.settlement,
                "compliance": state.compliance,
                "qa": state.qa,
                "final_validation": state.final_validation,
                "auto_approval": state.auto_approval,
                "degraded_sources": state.degraded_sources,
            }
        result = ClaimDecisionResult(
            claim_id=claim_id,
            run_id=run_id,
            status=status,
            routing=routing,
            triggers=triggers,
            checklist=checklist,
            validation_errors=validation_errors or [],
            audit_complete=self._flush(audit),
            started_at=started,
            completed_at=self.clock(),
            **outputs,
        )
        self._save(result)
        return result
