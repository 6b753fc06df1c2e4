"""Tests for fraud detection and score aggregation."""

import threading
from datetime import datetime, timezone

import pytest

from claim_triage.evaluation.fraud import (
    aggregate_fraud_score,
    build_siu_briefing,
    detect_fraud,
    detect_staged_accident,
    risk_tier,
    run_rule_checks,
)
from claim_triage.config.settings import get_fraud_config
from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.scoring import FraudFlagType, RiskTier
from claim_triage.sources.base import FraudSignalSource, VehicleHistory, WatchlistSource
from claim_triage.sources.static import (
    StaticClaimHistory,
    StaticFraudSignal,
    StaticWatchlist,
)

VIN = "1HGCM82633A004352"


class BrokenSignal(FraudSignalSource):
    def score(self, claim):
        raise OSError("connection reset")


class BrokenWatchlist(WatchlistSource):
    def is_listed(self, name, category):
        raise ExternalSourceError("watchlist", "service unavailable")


class HangingWatchlist(WatchlistSource):
    """Never answers until released."""

    def __init__(self):
        self.release = threading.Event()

    def is_listed(self, name, category):
        self.release.wait(5)
        return False


def _types(flags):
    return {f.flag_type for f in flags}


class TestAggregation:
    def test_worked_example(self):
        """Three rule flags and one watchlist hit."""
        assert aggregate_fraud_score([15, 12, 10], 0, 1, 0) == (47, 37)

    def test_rule_score_is_capped(self):
        overall, rule_score = aggregate_fraud_score([30, 30])
        assert rule_score == 50
        assert overall == 50

    def test_score_is_clamped_to_100(self):
        overall, _ = aggregate_fraud_score([50], 100, 5, 5)
        assert overall == 100

    def test_monotonic_in_every_input(self):
        """Adding a flag, a hit, a pattern or signal never lowers the score."""
        base = ([8, 10], 20.0, 0, 0)
        baseline, _ = aggregate_fraud_score(*base)
        assert aggregate_fraud_score([8, 10, 15], 20.0, 0, 0)[0] >= baseline
        assert aggregate_fraud_score([8, 10], 60.0, 0, 0)[0] >= baseline
        assert aggregate_fraud_score([8, 10], 20.0, 1, 0)[0] >= baseline
        assert aggregate_fraud_score([8, 10], 20.0, 0, 1)[0] >= baseline

    @pytest.mark.parametrize(
        "score,tier",
        [(0, RiskTier.LOW), (24, RiskTier.LOW), (25, RiskTier.MEDIUM), (50, RiskTier.HIGH), (75, RiskTier.CRITICAL)],
    )
    def test_risk_tiers(self, score, tier):
        assert risk_tier(score) == tier


class TestRuleChecks:
    def test_clean_claim_has_no_flags(self, make_claim, make_policy, now):
        assert run_rule_checks(make_claim(), make_policy(), None, now) == []

    def test_rapid_policy_purchase(self, make_claim, make_policy, now):
        flags = run_rule_checks(make_claim(), make_policy(effective_date="2026-03-01"), None, now)
        assert FraudFlagType.RAPID_POLICY_PURCHASE in _types(flags)

    def test_overnight_loss_is_suspicious(self, make_claim, make_policy, now):
        claim = make_claim(loss_date="2026-03-10T02:15:00Z")
        assert FraudFlagType.SUSPICIOUS_TIMING in _types(run_rule_checks(claim, make_policy(), None, now))

    def test_weekend_loss_is_suspicious(self, make_claim, make_policy, now):
        claim = make_claim(loss_date="2026-03-07T12:00:00Z")
        assert FraudFlagType.SUSPICIOUS_TIMING in _types(run_rule_checks(claim, make_policy(), None, now))

    def test_narrative_mismatch(self, make_claim, make_policy, now):
        claim = make_claim(
            loss_description="I was rear-end hit at a stop light by a pickup truck.",
            police_report_narrative="Officer observed a side-impact collision at the intersection.",
        )
        flags = run_rule_checks(claim, make_policy(), None, now)
        assert FraudFlagType.INCONSISTENT_STATEMENTS in _types(flags)

    def test_vehicle_history_mismatch(self, make_claim, make_policy, now):
        history = VehicleHistory(vin=VIN, year=2003, make="Honda", model="Accord", last_odometer=142000)
        flags = run_rule_checks(make_claim(), make_policy(), history, now)
        mismatch = next(f for f in flags if f.flag_type == FraudFlagType.VEHICLE_HISTORY_MISMATCH)
        assert any("Year on record 2003" in e for e in mismatch.evidence)
        assert any("Odometer" in e for e in mismatch.evidence)

    def test_branded_title_is_prior_damage(self, make_claim, make_policy, now):
        history = VehicleHistory(vin=VIN, year=2020, make="Honda", model="Accord", title_brand="salvage")
        flags = run_rule_checks(make_claim(), make_policy(), history, now)
        assert _types(flags) == {FraudFlagType.PRIOR_DAMAGE}

    def test_declared_prior_damage_counted_once(self, make_claim, make_policy, now):
        history = VehicleHistory(vin=VIN, prior_damage_records=["2022 rear collision"])
        claim = make_claim(damage={"prior_damage": True})
        flags = run_rule_checks(claim, make_policy(), history, now)
        assert sum(1 for f in flags if f.flag_type == FraudFlagType.PRIOR_DAMAGE) == 1

    def test_excessive_medical_billing(self, make_claim, make_policy, now, injuries):
        claim = make_claim(injuries={**injuries, "medical_bills": [5000.0] * 12})
        flags = run_rule_checks(claim, make_policy(), None, now)
        assert FraudFlagType.EXCESSIVE_MEDICAL_BILLING in _types(flags)
        assert FraudFlagType.EXCESSIVE_MEDICAL_LINE_ITEMS in _types(flags)


class TestPatterns:
    def test_staged_accident_needs_two_indicators(self, make_claim):
        cfg = get_fraud_config()
        staged = make_claim(
            participants=[
                {"name": "Dana Reyes", "role": "insured"},
                {"name": "Lee Park", "role": "other_driver"},
            ],
            loss_description="Other car stopped short and I rear-end it on the frontage road.",
            police_report_number=None,
            documents=[{"document_id": "DOC-1", "document_type": "photo"}],
        )
        pattern = detect_staged_accident(staged, cfg)
        assert pattern is not None
        assert len(pattern.indicators) == 3
        assert detect_staged_accident(make_claim(), cfg) is None


class TestDetectFraud:
    def test_clean_claim_scores_from_signal_only(self, make_claim, make_policy, make_sources, now):
        fraud = detect_fraud(make_claim(), make_policy(), make_sources(), now)
        assert fraud.overall_score == 10
        assert fraud.risk_tier == RiskTier.LOW
        assert fraud.flags == []
        assert fraud.requires_siu_review is False

    def test_watchlist_hit(self, make_claim, make_policy, make_sources, now):
        sources = make_sources(watchlist=StaticWatchlist({"claimant": ["dana reyes"]}))
        fraud = detect_fraud(make_claim(), make_policy(), sources, now)
        assert fraud.watchlist_hits == 1
        assert FraudFlagType.PRIOR_FRAUD_INDICATOR in _types(fraud.flags)
        assert fraud.overall_score == 20

    def test_repeated_claimant(self, make_claim, make_policy, make_sources, now):
        prior = [datetime(2025, m, 1, tzinfo=timezone.utc) for m in (2, 6, 11)]
        sources = make_sources(claim_history=StaticClaimHistory({"Dana Reyes": prior}))
        fraud = detect_fraud(make_claim(), make_policy(), sources, now)
        assert [p.pattern_type for p in fraud.patterns] == ["repeated_claimant"]
        assert fraud.overall_score == 15

    def test_signal_failure_degrades_to_zero(self, make_claim, make_policy, make_sources, now):
        sources = make_sources(fraud_signal=BrokenSignal())
        fraud = detect_fraud(make_claim(), make_policy(), sources, now)
        assert fraud.ml_score == 0
        assert fraud.degraded_sources == ["fraud_signal"]

    def test_signal_is_clamped(self, make_claim, make_policy, make_sources, now):
        sources = make_sources(fraud_signal=StaticFraudSignal(default=150))
        fraud = detect_fraud(make_claim(), make_policy(), sources, now)
        assert fraud.ml_score == 100
        assert fraud.overall_score == 30

    def test_watchlist_failure_propagates(self, make_claim, make_policy, make_sources, now):
        sources = make_sources(watchlist=BrokenWatchlist())
        with pytest.raises(ExternalSourceError):
            detect_fraud(make_claim(), make_policy(), sources, now)

    def test_hanging_watchlist_times_out(self, make_claim, make_policy, make_sources, now):
        watchlist = HangingWatchlist()
        config = {**get_fraud_config(), "lookup_timeout_seconds": 0.1}
        try:
            with pytest.raises(ExternalSourceError) as exc_info:
                detect_fraud(make_claim(), make_policy(), make_sources(watchlist=watchlist), now, config)
        finally:
            watchlist.release.set()
        assert exc_info.value.source == "watchlist"
        assert "no response within 0.1s" in str(exc_info.value)

    def test_high_score_requires_siu(self, make_claim, make_policy, make_sources, now):
        claim = make_claim(loss_date="2026-03-10T02:15:00Z")
        policy = make_policy(effective_date="2026-03-01")
        sources = make_sources(fraud_signal=StaticFraudSignal(default=100))
        fraud = detect_fraud(claim, policy, sources, now)
        assert fraud.overall_score == 53
        assert fraud.risk_tier == RiskTier.HIGH
        assert fraud.requires_siu_review is True
        assert "Immediate SIU referral required" in fraud.recommendations

        briefing = build_siu_briefing(claim, fraud)
        assert briefing.priority == "medium"
        assert briefing.fraud_score == 53
        assert briefing.estimated_fraud_amount == pytest.approx(636.0)
