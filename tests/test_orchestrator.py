"""End-to-end tests for ClaimOrchestrator against a temporary database."""

import json
import sqlite3
from unittest.mock import patch

import pytest

from claim_triage.exceptions import ClaimAlreadyProcessingError, ClaimNotFoundError, ExternalSourceError
from claim_triage.models.claim import ClaimStatus
from claim_triage.models.scoring import Route
from claim_triage.models.workflow import TriggerType
from claim_triage.observability.metrics import get_metrics
from claim_triage.sources.base import FraudSignalSource, WatchlistSource
from claim_triage.sources.static import StaticFraudSignal
from claim_triage.workflow.orchestrator import ClaimOrchestrator

BAD_CHECK_DIGIT_VIN = "1HGCM82633A004353"


class DownWatchlist(WatchlistSource):
    def is_listed(self, name, category):
        raise ExternalSourceError("watchlist", "timeout")


class DownFraudSignal(FraudSignalSource):
    def score(self, claim):
        raise ConnectionError("connection refused")


@pytest.fixture
def orchestrator_for(repo, rules, clock, make_sources):
    def _make(**source_overrides):
        return ClaimOrchestrator(
            make_sources(**source_overrides), repository=repo, state_rules=rules, clock=clock
        )

    return _make


@pytest.fixture
def orchestrator(orchestrator_for):
    return orchestrator_for()


def _status_path(repo, claim_id):
    return [h["new_status"] for h in repo.get_claim_history(claim_id) if h["new_status"]]


class TestHappyPath:
    def test_clean_claim_is_auto_approved(self, orchestrator, repo, make_claim, make_policy):
        result = orchestrator.submit_and_process(make_claim(), make_policy())

        assert result.routing.decision == Route.AUTO_APPROVE
        assert result.status == ClaimStatus.APPROVED
        assert result.triggers == []
        assert result.settlement.net_amount == 700
        assert result.auto_approval.approved
        assert result.audit_complete
        assert result.checklist.all_complete()

        row = repo.get_claim(result.claim_id)
        assert row["status"] == "APPROVED"
        assert row["routing_decision"] == "auto_approve"
        assert row["settlement_amount"] == 700
        assert _status_path(repo, result.claim_id) == [
            "SUBMITTED",
            "UNDER_REVIEW",
            "INVESTIGATING",
            "APPROVED",
        ]

    def test_lifecycle_and_run_are_persisted(self, orchestrator, repo, make_claim, make_policy, now):
        result = orchestrator.submit_and_process(make_claim(), make_policy())
        record = repo.get_claim_record(result.claim_id)
        assert record.lifecycle.acknowledged_at == now
        assert record.lifecycle.decided_at == now

        runs = repo.get_workflow_runs(result.claim_id)
        assert len(runs) == 1
        assert runs[0]["run_id"] == result.run_id
        assert runs[0]["decision"] == "auto_approve"
        assert repo.get_active_run(result.claim_id) is None

    def test_metrics_are_recorded(self, orchestrator, make_claim, make_policy):
        result = orchestrator.submit_and_process(make_claim(), make_policy())
        summary = get_metrics().get_claim_summary(result.claim_id)
        assert summary.decision == "auto_approve"
        assert summary.phases_completed == 7
        assert summary.phases_failed == 0

    def test_unknown_claim(self, orchestrator, repo):
        with pytest.raises(ClaimNotFoundError):
            orchestrator.process("CLM-MISSING")
        assert repo.get_active_run("CLM-MISSING") is None

    def test_phase_started_records_inputs(self, orchestrator, repo, make_claim, make_policy):
        result = orchestrator.submit_and_process(make_claim(), make_policy())
        started = [
            h for h in repo.get_claim_history(result.claim_id) if h["action"] == "phase_started"
        ]
        assert [h["phase"] for h in started][:3] == [
            "intake_triage",
            "investigation_fraud",
            "evaluation_settlement",
        ]
        first, third = json.loads(started[0]["details"]), json.loads(started[2]["details"])
        assert first == {"status": "SUBMITTED", "triggers": 0, "completed_phases": []}
        assert third["status"] == "INVESTIGATING"
        assert third["completed_phases"] == ["intake_triage", "investigation_fraud"]

    def test_retained_salvage_reduces_total_loss_settlement(
        self, orchestrator, make_claim, make_policy
    ):
        damage = {"severity": "severe", "shop_estimate": 13000.0}
        kept = orchestrator.submit_and_process(
            make_claim(damage={**damage, "owner_retains_salvage": True}), make_policy()
        )
        surrendered = orchestrator.submit_and_process(make_claim(damage=damage), make_policy())

        settlement = kept.valuation.total_loss.settlement
        assert kept.valuation.total_loss.is_total_loss
        assert settlement.owner_retains_salvage is True
        assert settlement.salvage_deduction == kept.valuation.salvage.value
        assert surrendered.valuation.total_loss.settlement.salvage_deduction == 0
        assert settlement.net_settlement == pytest.approx(
            surrendered.valuation.total_loss.settlement.net_settlement
            - kept.valuation.salvage.value
        )


class TestEscalation:
    def test_injury_claim_goes_to_adjuster(self, orchestrator, make_claim, make_policy, injuries):
        result = orchestrator.submit_and_process(make_claim(injuries=injuries), make_policy())
        assert result.routing.decision == Route.FULL_ADJUSTER
        assert result.routing.priority == "medium"
        assert result.status == ClaimStatus.ESCALATED_TO_HUMAN
        assert TriggerType.BODILY_INJURY in {t.trigger_type for t in result.triggers}

    def test_cancelled_policy_short_circuits(self, orchestrator, repo, make_claim, make_policy):
        result = orchestrator.submit_and_process(make_claim(), make_policy(status="CANCELLED"))
        assert result.routing.decision == Route.ESCALATE
        assert result.routing.priority == "high"
        assert result.severity is None
        assert result.fraud is None
        assert result.status == ClaimStatus.ESCALATED_TO_HUMAN
        assert repo.get_claim(result.claim_id)["status"] == "ESCALATED_TO_HUMAN"

    def test_suspected_fraud_goes_to_siu(self, orchestrator_for, make_claim, make_policy):
        orchestrator = orchestrator_for(fraud_signal=StaticFraudSignal(default=100.0))
        claim = make_claim(loss_date="2026-03-10T02:00:00Z")
        result = orchestrator.submit_and_process(claim, make_policy(effective_date="2026-03-01"))
        assert result.fraud.overall_score == 53
        assert result.routing.decision == Route.SIU
        assert result.status == ClaimStatus.FLAGGED_FRAUD
        assert result.siu_briefing is not None
        assert result.valuation is None

    def test_watchlist_outage_escalates(self, orchestrator_for, make_claim, make_policy):
        result = orchestrator_for(watchlist=DownWatchlist()).submit_and_process(
            make_claim(), make_policy()
        )
        system_errors = [t for t in result.triggers if t.trigger_type == TriggerType.SYSTEM_ERROR]
        assert system_errors[0].reason.startswith("watchlist unavailable")
        assert result.routing.decision == Route.ESCALATE
        assert result.status == ClaimStatus.ESCALATED_TO_HUMAN

    def test_fraud_signal_outage_degrades(self, orchestrator_for, make_claim, make_policy):
        result = orchestrator_for(fraud_signal=DownFraudSignal()).submit_and_process(
            make_claim(), make_policy()
        )
        assert result.degraded_sources == ["fraud_signal"]
        assert result.fraud.ml_score == 0.0
        assert result.routing.decision == Route.AUTO_APPROVE

    def test_unexpected_error_escalates(self, orchestrator, repo, make_claim, make_policy):
        with patch(
            "claim_triage.workflow.orchestrator.route_claim", side_effect=RuntimeError("boom")
        ):
            result = orchestrator.submit_and_process(make_claim(), make_policy())
        assert result.routing.decision == Route.ESCALATE
        assert result.triggers[-1].trigger_type == TriggerType.SYSTEM_ERROR
        assert result.triggers[-1].reason == "Unexpected error: RuntimeError: boom"
        assert repo.get_claim(result.claim_id)["status"] == "ESCALATED_TO_HUMAN"
        assert repo.get_active_run(result.claim_id) is None


class TestHeldClaims:
    def test_invalid_claim_is_held(self, orchestrator, repo, make_claim, make_policy):
        claim = make_claim(vehicle={"vin": BAD_CHECK_DIGIT_VIN})
        result = orchestrator.submit_and_process(claim, make_policy())
        assert result.status == ClaimStatus.INVALID
        assert result.routing is None
        assert result.validation_errors[0].startswith("VIN check digit mismatch")
        assert repo.get_claim(result.claim_id)["status"] == "INVALID"

    def test_repeated_failures_escalate(self, orchestrator, make_claim, make_policy):
        claim = make_claim(vehicle={"vin": BAD_CHECK_DIGIT_VIN})
        claim_id = orchestrator.submit(claim, make_policy())
        first = orchestrator.process(claim_id)
        second = orchestrator.process(claim_id)
        third = orchestrator.process(claim_id)
        assert first.routing is None
        assert second.routing is None
        assert third.routing.decision == Route.ESCALATE
        assert third.routing.priority == "medium"
        assert third.status == ClaimStatus.ESCALATED_TO_HUMAN
        assert third.triggers[0].trigger_type == TriggerType.VALIDATION_FAILURE

    def test_missing_policy_is_incomplete(self, orchestrator, make_claim):
        result = orchestrator.submit_and_process(make_claim())
        assert result.status == ClaimStatus.INCOMPLETE
        assert result.routing is None


class TestReprocessing:
    def test_approved_claim_is_not_reprocessed(self, orchestrator, repo, make_claim, make_policy):
        first = orchestrator.submit_and_process(make_claim(), make_policy())
        again = orchestrator.process(first.claim_id)
        assert again.status == ClaimStatus.APPROVED
        assert again.routing is None
        assert again.validation_errors == [
            f"Claim {first.claim_id} is APPROVED and cannot be reprocessed"
        ]
        assert repo.get_claim(first.claim_id)["status"] == "APPROVED"

    def test_escalated_claim_can_be_rerun(self, orchestrator, repo, make_claim, make_policy, injuries):
        first = orchestrator.submit_and_process(make_claim(injuries=injuries), make_policy())
        second = orchestrator.process(first.claim_id)
        assert second.routing.decision == Route.FULL_ADJUSTER
        assert second.run_id != first.run_id
        assert len(repo.get_workflow_runs(first.claim_id)) == 2
        actions = [h["action"] for h in repo.get_claim_history(first.claim_id)]
        assert "reset_for_reprocess" in actions

    def test_claim_is_read_under_the_lock(self, orchestrator, repo, make_claim, make_policy):
        """A run that finishes just before this one takes the lock is not repeated."""
        claim_id = orchestrator.submit(make_claim(), make_policy())
        acquire = repo.acquire_run_lock
        pending = [True]

        def acquire_after_other_run(cid, run_id):
            if pending:
                pending.pop()
                orchestrator.process(cid)
            acquire(cid, run_id)

        with patch.object(repo, "acquire_run_lock", side_effect=acquire_after_other_run):
            late = orchestrator.process(claim_id)

        assert late.status == ClaimStatus.APPROVED
        assert late.routing is None
        assert repo.get_claim(claim_id)["status"] == "APPROVED"
        assert _status_path(repo, claim_id) == [
            "SUBMITTED",
            "UNDER_REVIEW",
            "INVESTIGATING",
            "APPROVED",
        ]
        assert repo.get_active_run(claim_id) is None

    def test_concurrent_run_is_rejected(self, orchestrator, repo, make_claim, make_policy):
        claim_id = orchestrator.submit(make_claim(), make_policy())
        repo.acquire_run_lock(claim_id, "other")
        with pytest.raises(ClaimAlreadyProcessingError):
            orchestrator.process(claim_id)
        assert repo.get_active_run(claim_id) == "other"
        assert repo.get_claim(claim_id)["status"] == "SUBMITTED"


def test_undelivered_decision_marks_audit_incomplete(orchestrator, repo, make_claim, make_policy):
    original = repo.append_audit_event

    def flaky(claim_id, action, **kwargs):
        if action == "decision":
            raise sqlite3.OperationalError("database is locked")
        return original(claim_id, action, **kwargs)

    with patch.object(repo, "append_audit_event", side_effect=flaky):
        result = orchestrator.submit_and_process(make_claim(), make_policy())
    assert result.routing.decision == Route.AUTO_APPROVE
    assert result.audit_complete is False
