"""Tests for structured logging and claim metrics."""

import json
import logging
import threading

from claim_triage.observability.logger import (
    HumanReadableFormatter,
    StructuredFormatter,
    bound_context,
    claim_context,
    current_claim_context,
    get_logger,
)
from claim_triage.observability.metrics import ClaimMetrics, _percentile, get_metrics, reset_metrics


def _record(msg="hello", **attrs):
    record = logging.LogRecord("claim_triage.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestClaimContext:
    def test_context_is_restored(self):
        assert current_claim_context() == {}
        with claim_context(claim_id="CLM-1", claim_type="COLLISION"):
            assert current_claim_context()["claim_id"] == "CLM-1"
            with claim_context(claim_id="CLM-2"):
                assert current_claim_context()["claim_id"] == "CLM-2"
            assert current_claim_context()["claim_id"] == "CLM-1"
        assert current_claim_context() == {}

    def test_bound_context_carries_into_threads(self):
        seen = {}

        def worker():
            seen["claim_id"] = current_claim_context().get("claim_id")

        with claim_context(claim_id="CLM-7"):
            runner = bound_context(worker)
        thread = threading.Thread(target=runner)
        thread.start()
        thread.join()
        assert seen["claim_id"] == "CLM-7"


class TestFormatters:
    def test_structured_formatter_includes_context(self):
        with claim_context(claim_id="CLM-9", claim_type="THEFT"):
            line = StructuredFormatter().format(_record(extra_data={"event": "phase_started"}))
        payload = json.loads(line)
        assert payload["claim_id"] == "CLM-9"
        assert payload["claim_type"] == "THEFT"
        assert payload["data"] == {"event": "phase_started"}
        assert payload["message"] == "hello"

    def test_record_claim_id_wins_over_context(self):
        with claim_context(claim_id="CLM-9"):
            line = HumanReadableFormatter().format(_record(claim_id="CLM-BOUND"))
        assert "[claim=CLM-BOUND]" in line
        assert line.endswith("claim_triage.test: hello")


def test_log_event_message(caplog):
    logger = get_logger("claim_triage.test_events").bind("CLM-3")
    logging.getLogger("claim_triage").propagate = True
    try:
        with caplog.at_level(logging.INFO, logger="claim_triage"):
            logger.log_event("phase_completed", phase="fraud_detection", duration_ms=12)
    finally:
        logging.getLogger("claim_triage").propagate = False
    record = caplog.records[-1]
    assert record.getMessage() == "[phase_completed] phase=fraud_detection, duration_ms=12"
    assert record.claim_id == "CLM-3"
    assert record.extra_data["event"] == "phase_completed"


class TestMetrics:
    def test_percentile(self):
        assert _percentile([], 50) == 0.0
        assert _percentile([10.0, 20.0, 30.0, 40.0], 50) == 25.0
        assert _percentile([5.0], 99) == 5.0

    def test_claim_summary(self):
        metrics = ClaimMetrics()
        metrics.start_claim("CLM-1")
        metrics.record_phase("CLM-1", "intake_triage", 10.0, True)
        metrics.record_phase("CLM-1", "fraud_detection", 30.0, False)
        metrics.record_external_call("CLM-1", "watchlist", 5.0, "error", "down")
        metrics.end_claim("CLM-1", status="completed", decision="escalate")
        summary = metrics.get_claim_summary("CLM-1")
        assert summary.phases_completed == 1
        assert summary.phases_failed == 1
        assert summary.total_phase_ms == 40.0
        assert summary.external_failures == 1
        assert summary.to_dict()["decision"] == "escalate"
        assert metrics.get_claim_summary("CLM-404") is None

    def test_global_stats(self):
        metrics = ClaimMetrics()
        for claim_id, decision in (("A", "auto_approve"), ("B", "escalate"), ("C", "siu"), ("D", "auto_approve")):
            metrics.start_claim(claim_id)
            metrics.end_claim(claim_id, decision=decision)
        stats = metrics.get_global_stats()
        assert stats["total_claims"] == 4
        assert stats["decisions"] == {"auto_approve": 2, "escalate": 1, "siu": 1}
        assert stats["escalation_rate"] == 0.5

    def test_export_json(self):
        metrics = ClaimMetrics()
        assert json.loads(metrics.export_json("CLM-X")) == {"error": "Claim not found: CLM-X"}
        metrics.start_claim("CLM-X")
        exported = json.loads(metrics.export_json())
        assert exported["global_stats"]["total_claims"] == 1
        assert exported["claims"][0]["claim_id"] == "CLM-X"

    def test_global_instance_resets(self):
        first = get_metrics()
        assert get_metrics() is first
        reset_metrics()
        assert get_metrics() is not first
