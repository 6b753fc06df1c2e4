"""Tests for settlement drafting."""

from datetime import timedelta

import pytest

from claim_triage.config.settings import get_settlement_config
from claim_triage.evaluation.coverage import validate_coverage
from claim_triage.evaluation.reserves import recommend_reserve
from claim_triage.evaluation.settlement import (
    draft_settlement,
    eligibility_failures,
    payment_details,
    scale_to_limit,
)
from claim_triage.evaluation.valuation import evaluate_vehicle
from claim_triage.models.settlement import SettlementComponent


@pytest.fixture
def draft_for(rules, make_policy, make_sources, now):
    def _draft(claim, policy=None, fraud_score=10):
        rule = rules.get(claim.state_code)
        coverage = validate_coverage(claim, policy or make_policy())
        valuation = evaluate_vehicle(claim, rule, make_sources(), coverage.primary_deductible)
        reserve = recommend_reserve(claim, valuation, rule)
        return draft_settlement(claim, coverage, reserve, fraud_score, now, valuation)

    return _draft


class TestDraft:
    def test_clean_claim_is_eligible(self, make_claim, draft_for, now):
        draft = draft_for(make_claim())
        assert [c.name for c in draft.components] == ["Property Damage"]
        assert draft.gross_amount == 1200.0
        assert draft.deductible == 500.0
        assert draft.net_amount == 700.0
        assert draft.auto_approval_eligible is True
        assert draft.payment_details.method == "CHECK"
        assert draft.release_required is False
        assert draft.expires_at == now + timedelta(days=30)

    def test_injury_claim_components(self, make_claim, draft_for, injuries):
        """Injury reserve splits 60/40 into medical and pain and suffering."""
        draft = draft_for(make_claim(injuries=injuries))
        amounts = {c.name: c.amount for c in draft.components}
        assert amounts["Medical Expenses"] == 4725.0
        assert amounts["Pain and Suffering"] == 3150.0
        assert draft.gross_amount == 9075.0
        assert draft.net_amount == 8575.0
        assert draft.auto_approval_eligible is False
        assert "Injury claims require review" in draft.eligibility_failures
        assert draft.release_required is True

    def test_scaled_to_policy_limit(self, make_claim, make_policy, draft_for):
        policy = make_policy(
            coverages=[{"coverage_type": "COLLISION", "limit": 1000, "deductible": 250}]
        )
        draft = draft_for(make_claim(), policy)
        assert draft.limit_scaled is True
        assert draft.original_total == 1200.0
        assert draft.gross_amount == 1000.0
        assert draft.net_amount == 750.0
        assert "Settlement reduced to available policy limits" in draft.recommendations

    def test_disputed_liability_widens_negotiation(self, make_claim, draft_for):
        draft = draft_for(make_claim(circumstances={"liability_disputed": True}))
        assert draft.negotiation_range.minimum == pytest.approx(700 * 0.75)
        assert draft.negotiation_range.maximum == 700.0


class TestScaleToLimit:
    @pytest.mark.parametrize(
        "amounts,limit",
        [
            ([333.33, 333.33, 333.34], 500.0),
            ([1200.0, 4725.0, 3150.0], 5000.0),
            ([0.01, 0.01, 999.99], 7.77),
            ([100.0], 99.99),
        ],
    )
    def test_scaled_components_sum_to_limit(self, amounts, limit):
        components = [SettlementComponent(name=f"c{i}", amount=a) for i, a in enumerate(amounts)]
        scaled, was_scaled = scale_to_limit(components, limit)
        assert was_scaled is True
        assert round(sum(c.amount for c in scaled), 2) == limit

    def test_under_limit_is_untouched(self):
        components = [SettlementComponent(name="a", amount=100.0)]
        scaled, was_scaled = scale_to_limit(components, 500.0)
        assert was_scaled is False
        assert scaled == components


class TestEligibility:
    def test_fraud_score_above_threshold(self, make_claim, make_policy):
        claim = make_claim()
        coverage = validate_coverage(claim, make_policy())
        failures = eligibility_failures(claim, 700.0, 30, coverage)
        assert failures == ["Fraud score 30 exceeds 25"]

    def test_amount_and_claim_type(self, make_claim, make_policy):
        claim = make_claim(claim_type="VANDALISM")
        coverage = validate_coverage(claim, make_policy())
        failures = eligibility_failures(claim, 3000.0, 0, coverage)
        assert any("exceeds $2,500.00" in f for f in failures)
        assert any("VANDALISM not eligible" in f for f in failures)


class TestPayment:
    def test_lienholder_split_on_total_loss(self, make_claim):
        claim = make_claim(vehicle={"lienholder": "First Auto Credit", "loan_balance": 8000.0})
        details = payment_details(claim, 12000.0, True, get_settlement_config())
        assert details.method == "ACH"
        assert details.payee == "Dana Reyes AND First Auto Credit"
        assert [(s.payee, s.amount) for s in details.splits] == [
            ("First Auto Credit", 8000.0),
            ("Dana Reyes", 4000.0),
        ]

    def test_no_split_on_repair(self, make_claim):
        claim = make_claim(vehicle={"lienholder": "First Auto Credit", "loan_balance": 8000.0})
        details = payment_details(claim, 700.0, False, get_settlement_config())
        assert details.splits == []
        assert details.method == "CHECK"
