"""Tests for vehicle valuation and the total-loss test."""

import pytest

from claim_triage.evaluation.valuation import (
    determine_total_loss,
    estimate_repair,
    estimate_salvage,
    evaluate_vehicle,
    internal_acv,
    keyword_repair_estimate,
    salvage_type,
    total_loss_settlement,
)
from claim_triage.sources.base import PricingSource, SalvageBidSource
from claim_triage.sources.static import StaticPricingSource, StaticSalvageBidSource

VIN = "1HGCM82633A004352"


class MalformedPricing(PricingSource):
    name = "guide_feed"

    def get_acv(self, vehicle):
        return {}["price"]


class MalformedSalvage(SalvageBidSource):
    def get_bids(self, vehicle):
        raise KeyError("bids")


class TestTotalLossTest:
    def test_florida_threshold(self, rules):
        """Repair at 85% of ACV is a total loss at 0.75 and 0.80 but not at 0.90."""
        fl = rules.get("FL")
        assert determine_total_loss(8500, 10000, 2500, fl.total_loss_threshold) == (True, 85.0)
        assert determine_total_loss(8500, 10000, 2500, 0.75) == (True, 85.0)
        assert determine_total_loss(8500, 10000, 2500, 0.90) == (False, 85.0)

    def test_repair_plus_salvage_formula(self, rules):
        ca = rules.get("CA")
        is_total, pct = determine_total_loss(
            8000, 10000, 2500, ca.total_loss_threshold, ca.total_loss_formula
        )
        assert is_total is True
        assert pct == 80.0
        assert determine_total_loss(8000, 10000, 2500, 1.0)[0] is False

    def test_hybrid_takes_either_test(self):
        assert determine_total_loss(7000, 10000, 1500, 0.80, "hybrid")[0] is True
        assert determine_total_loss(6000, 10000, 1500, 0.80, "hybrid")[0] is False

    def test_zero_acv_is_total_loss(self):
        assert determine_total_loss(500, 0, 0, 0.75) == (True, 100.0)


class TestTotalLossSettlement:
    def test_florida_owner_retains_salvage(self, rules):
        result = total_loss_settlement(10000, 2500, rules.get("FL"), 500, owner_retains_salvage=True)
        assert result.owner_retains_salvage is True
        assert result.sales_tax == 600.0
        assert result.title_and_fees == pytest.approx(127.25)
        assert result.net_settlement == pytest.approx(7727.25)

    def test_retention_ignored_where_not_allowed(self, rules):
        result = total_loss_settlement(10000, 2500, rules.get("DEFAULT"), 500, owner_retains_salvage=True)
        assert result.owner_retains_salvage is False
        assert result.salvage_deduction == 0.0
        assert result.net_settlement == pytest.approx(10000 + 600 + 100 - 500)

    def test_net_is_floored_at_zero(self, rules):
        result = total_loss_settlement(600, 0, rules.get("DEFAULT"), 1000)
        assert result.net_settlement == 0.0


class TestACVAndSalvage:
    def test_internal_model(self, make_claim):
        """Six-year-old car at 30k miles: depreciation plus a low-mileage credit."""
        claim = make_claim()
        acv = internal_acv(claim.vehicle, claim.vehicle_age())
        assert acv.method == "INTERNAL_MODEL"
        assert acv.confidence == 70
        assert acv.adjustments.mileage_adjustment == pytest.approx(1050.0)
        assert acv.value == pytest.approx(20000 * 0.85**6 + 1050, abs=0.01)

    def test_internal_model_minimum(self, make_claim):
        claim = make_claim(vehicle={"year": 1990, "mileage": 400000, "condition": "poor"})
        assert internal_acv(claim.vehicle, claim.vehicle_age()).value == 500.0

    def test_salvage_from_bids(self):
        salvage = estimate_salvage(15000, 6, [3000, 3200, 3400])
        assert salvage.method == "BID_AVERAGE"
        assert salvage.value == 3200.0
        assert salvage.salvage_type == "REBUILDABLE"

    def test_salvage_percentage_fallback(self):
        salvage = estimate_salvage(8000, 12, [3000])
        assert salvage.method == "PERCENTAGE_ACV"
        assert salvage.value == 2000.0
        assert salvage.salvage_type == "PARTS_ONLY"

    def test_salvage_type_scrap(self):
        assert salvage_type(4000, 3) == "SCRAP"
        assert salvage_type(20000, 16) == "SCRAP"


class TestRepairEstimate:
    def test_shop_estimate_wins(self, make_claim):
        repair = estimate_repair(make_claim())
        assert repair.total == 1200.0
        assert repair.source == "SHOP_ESTIMATE"

    def test_line_items_summed(self, make_claim):
        claim = make_claim(damage={"shop_estimate": None, "repair_line_items": [400.0, 650.0]})
        assert estimate_repair(claim).total == 1050.0

    def test_keyword_estimate(self):
        assert keyword_repair_estimate("Front bumper pushed in") == 2000 + 5000 + 1200


class TestEvaluateVehicle:
    def test_repairable_vehicle(self, make_claim, make_sources, rules):
        result = evaluate_vehicle(make_claim(), rules.get("FL"), make_sources(), deductible=500)
        assert result.acv.method == "MARKET_AVERAGE"
        assert result.acv.value == 15000.0
        assert result.salvage.value == 3750.0
        assert result.total_loss.is_total_loss is False
        assert result.total_loss.percentage == 8.0
        assert result.recommendation == "REPAIR"

    def test_total_loss_vehicle(self, make_claim, make_sources, rules):
        claim = make_claim(damage={"severity": "severe", "shop_estimate": 13000.0})
        sources = make_sources(salvage=StaticSalvageBidSource({VIN: [3000, 3200, 3400]}))
        result = evaluate_vehicle(claim, rules.get("FL"), sources, deductible=500)
        assert result.total_loss.is_total_loss is True
        assert result.recommendation == "TOTAL_LOSS"
        assert result.salvage.method == "BID_AVERAGE"
        settlement = result.total_loss.settlement
        assert settlement.net_settlement == pytest.approx(15000 + 900 + 127.25 - 500)

    def test_pricing_failure_falls_back_to_internal_model(self, make_claim, make_sources, rules):
        sources = make_sources(pricing=[StaticPricingSource("market", {})])
        result = evaluate_vehicle(make_claim(), rules.get("FL"), sources)
        assert result.acv.method == "INTERNAL_MODEL"
        assert result.acv.failed_sources == ["market"]
        assert "No pricing source available; ACV from internal depreciation model" in result.warnings
        assert result.recommendation == "REPAIR"

    def test_malformed_pricing_source_is_dropped(self, make_claim, make_sources, rules):
        sources = make_sources(pricing=[MalformedPricing()])
        result = evaluate_vehicle(make_claim(), rules.get("FL"), sources)
        assert result.acv.method == "INTERNAL_MODEL"
        assert result.acv.failed_sources == ["guide_feed"]

    def test_malformed_source_does_not_hide_good_quotes(self, make_claim, make_sources, rules):
        sources = make_sources(
            pricing=[MalformedPricing(), StaticPricingSource("market", {VIN: 15000.0})]
        )
        acv = evaluate_vehicle(make_claim(), rules.get("FL"), sources).acv
        assert acv.method == "MARKET_AVERAGE"
        assert acv.value == 15000.0
        assert acv.failed_sources == ["guide_feed"]

    def test_malformed_salvage_falls_back_to_percentage(self, make_claim, make_sources, rules):
        sources = make_sources(salvage=MalformedSalvage())
        result = evaluate_vehicle(make_claim(), rules.get("FL"), sources)
        assert result.salvage.method == "PERCENTAGE_ACV"
        assert result.salvage.value == 3750.0
        assert any(w.startswith("Salvage bid lookup failed: KeyError") for w in result.warnings)

    def test_internal_value_and_keyword_repair_need_review(self, make_claim, make_sources, rules):
        claim = make_claim(damage={"shop_estimate": None})
        sources = make_sources(pricing=[StaticPricingSource("market", {})])
        result = evaluate_vehicle(claim, rules.get("FL"), sources)
        assert result.repair.source == "KEYWORD_ESTIMATOR"
        assert result.recommendation == "HUMAN_REVIEW"

    def test_quotes_are_averaged(self, make_claim, make_sources, rules):
        sources = make_sources(
            pricing=[
                StaticPricingSource("market", {VIN: 14000.0}),
                StaticPricingSource("dealer", {VIN: 16000.0}, confidence=75),
            ]
        )
        acv = evaluate_vehicle(make_claim(), rules.get("FL"), sources).acv
        assert acv.value == 15000.0
        assert acv.confidence == 80
        assert len(acv.quotes) == 2
