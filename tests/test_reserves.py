"""Tests for reserve recommendation."""

import pytest

from claim_triage.evaluation.reserves import authority_level, authority_severity, recommend_reserve
from claim_triage.evaluation.valuation import evaluate_vehicle
from claim_triage.models.scoring import Severity


@pytest.fixture
def reserve_for(rules, make_sources):
    def _reserve(claim, state="FL", with_valuation=True):
        rule = rules.get(state)
        valuation = evaluate_vehicle(claim, rule, make_sources()) if with_valuation else None
        return recommend_reserve(claim, valuation, rule)

    return _reserve


class TestVehicleDamage:
    def test_repair_reserve_scaled_by_cost_of_living(self, make_claim, reserve_for):
        """Minor repair: 0.9x to 1.1x the estimate, then the FL multiplier."""
        reserve = reserve_for(make_claim())
        vehicle = reserve.breakdown.vehicle_damage
        assert vehicle.minimum == 1080.0
        assert vehicle.maximum == 1320.0
        assert vehicle.recommended == 1200.0
        assert reserve.cost_of_living_multiplier == 1.15
        assert reserve.total_recommended == pytest.approx(1380.0)
        assert reserve.authority_level == "ADJUSTER"

    def test_default_state_has_no_adjustment(self, make_claim, reserve_for):
        reserve = reserve_for(make_claim(location={"state": "ZZ"}), state="ZZ")
        assert reserve.total_recommended == pytest.approx(1200.0)

    def test_without_valuation_uses_average(self, make_claim, reserve_for):
        reserve = reserve_for(make_claim(), with_valuation=False)
        vehicle = reserve.breakdown.vehicle_damage
        assert vehicle.recommended == 2500.0
        assert vehicle.confidence == 0.5


class TestInjuryAndExtras:
    def test_injury_reserve(self, make_claim, reserve_for, injuries):
        """Whiplash at moderate severity: 1.5x to 3.0x the base cost."""
        reserve = reserve_for(make_claim(injuries=injuries))
        bi = reserve.breakdown.bodily_injury
        assert bi.minimum == 5250.0
        assert bi.maximum == 10500.0
        assert bi.recommended == 7875.0
        assert reserve.total_recommended == pytest.approx((1200 + 7875) * 1.15)

    def test_lost_wages_widen_the_range(self, make_claim, reserve_for, injuries):
        reserve = reserve_for(make_claim(injuries={**injuries, "lost_wages_estimate": 2000.0}))
        bi = reserve.breakdown.bodily_injury
        assert bi.minimum == 7250.0
        assert bi.maximum == 13500.0
        assert reserve.breakdown.lost_wages == 2000.0

    def test_rental_and_towing(self, make_claim, reserve_for):
        reserve = reserve_for(make_claim(damage={"needs_rental": True, "drivable": False}))
        assert reserve.breakdown.rental.recommended == 135.0
        assert reserve.breakdown.towing.recommended == 300.0

    def test_legal_defense_for_liability_injury(self, make_claim, reserve_for, injuries):
        reserve = reserve_for(make_claim(claim_type="LIABILITY", injuries=injuries))
        assert reserve.breakdown.legal_defense is not None
        assert reserve.breakdown.legal_defense.recommended == 10000.0

    def test_no_legal_defense_for_collision_injury(self, make_claim, reserve_for, injuries):
        assert reserve_for(make_claim(injuries=injuries)).breakdown.legal_defense is None


class TestAuthority:
    @pytest.mark.parametrize(
        "amount,level",
        [(25000, "ADJUSTER"), (25000.01, "SUPERVISOR"), (100000, "SUPERVISOR"), (100001, "MANAGER")],
    )
    def test_authority_levels(self, amount, level):
        assert authority_level(amount) == level

    def test_authority_severity(self):
        assert authority_severity(1000) is None
        assert authority_severity(30000) == Severity.MEDIUM
        assert authority_severity(250000) == Severity.HIGH
