"""Tests for QA review and final validation."""

from claim_triage.evaluation.quality import (
    documentation_checks,
    final_validation,
    qa_status,
    review_quality,
)
from claim_triage.models.review import QACategory, QACheck
from claim_triage.models.scoring import Severity
from claim_triage.models.workflow import EscalationTrigger, TriggerType, WorkflowState


def _qa(status, severity=Severity.MEDIUM):
    return QACheck(name="x", category=QACategory.PROCESSING, status=status, severity=severity)


class TestQAStatus:
    def test_warnings_do_not_block(self):
        assert qa_status([_qa("PASS"), _qa("WARNING", Severity.HIGH)]) == "APPROVED"

    def test_high_failure_needs_review(self):
        assert qa_status([_qa("FAIL", Severity.HIGH)]) == "NEEDS_REVIEW"

    def test_many_medium_failures_need_review(self):
        assert qa_status([_qa("FAIL")] * 2) == "APPROVED"
        assert qa_status([_qa("FAIL")] * 3) == "NEEDS_REVIEW"

    def test_critical_failure_rejects(self):
        assert qa_status([_qa("FAIL", Severity.CRITICAL), _qa("FAIL", Severity.HIGH)]) == "REJECTED"


class TestReviewQuality:
    def test_clean_claim_passes_every_check(self, build_state):
        state, _ = build_state()
        review = review_quality(state)
        assert review.status == "APPROVED"
        assert review.score == 100.0
        assert review.failure_count == 0

    def test_missing_phase_outputs_fail(self, make_claim, make_policy):
        state = WorkflowState(claim=make_claim(claim_id="CLM-TEST0001"), policy=make_policy())
        review = review_quality(state)
        assert review.status == "NEEDS_REVIEW"
        failed = [c for c in review.checks if c.status == "FAIL"]
        assert failed[0].name == "All processing steps completed"
        assert "coverage" in failed[0].message

    def test_estimate_variance(self, build_state, make_claim):
        state, _ = build_state(claim=make_claim(claim_id="CLM-TEST0001", estimated_amount=500.0))
        review = review_quality(state)
        variance = next(c for c in review.checks if c.name == "Property damage within estimate variance")
        assert variance.status == "FAIL"
        assert review.status == "APPROVED"

    def test_theft_needs_police_report(self, make_claim, make_policy):
        claim = make_claim(
            claim_type="THEFT",
            police_report_number=None,
            documents=[{"document_id": "DOC-1", "document_type": "photo"}],
        )
        checks = documentation_checks(WorkflowState(claim=claim, policy=make_policy()))
        theft = next(c for c in checks if c.name == "Police report provided for theft")
        assert theft.status == "FAIL"
        assert theft.severity == Severity.HIGH


class TestFinalValidation:
    def test_clean_claim_is_approved(self, build_state):
        state, triggers = build_state()
        result = final_validation(state, triggers)
        assert result.approved is True
        assert result.confidence == 100
        assert all(result.checks.values())

    def test_fraud_trigger_rejects_outright(self, build_state, now):
        state, _ = build_state()
        trigger = EscalationTrigger(
            trigger_type=TriggerType.FRAUD_DETECTED,
            reason="Fraud score 80 (critical risk) requires SIU review",
            severity=Severity.CRITICAL,
            created_at=now,
        )
        result = final_validation(state, [trigger])
        assert result.approved is False
        assert result.confidence == 0
        assert result.checks["no_fraud_indicators"] is False

    def test_missing_claim_number(self, build_state, make_claim):
        state, triggers = build_state(claim=make_claim())
        result = final_validation(state, triggers)
        assert result.confidence == 80
        assert result.rejection_reason == "Incomplete claim data"
        assert result.issues == ["Missing: Claim number"]

    def test_high_fraud_score_without_trigger(self, build_state):
        state, triggers = build_state()
        state.fraud = state.fraud.model_copy(update={"overall_score": 60})
        result = final_validation(state, triggers)
        assert result.confidence == 75
        assert result.rejection_reason == "Fraud indicators detected"
