"""Tests for coverage validation."""

from claim_triage.evaluation.coverage import find_exclusions, validate_coverage


class TestPolicyInForce:
    """Policy status and policy period checks."""

    def test_active_policy_applies_collision(self, make_claim, make_policy):
        """Collision coverage applies and sets the primary deductible."""
        result = validate_coverage(make_claim(), make_policy())
        assert result.coverage_applies is True
        assert result.policy_valid_at_loss is True
        assert result.applicable_types() == ["COLLISION"]
        assert result.primary_deductible == 500
        assert result.net_coverage_available == 25000
        assert result.errors == []

    def test_cancelled_policy_does_not_apply(self, make_claim, make_policy):
        """A cancelled policy yields no coverage and no applicability entries."""
        result = validate_coverage(make_claim(), make_policy(status="CANCELLED"))
        assert result.coverage_applies is False
        assert result.policy_valid_at_loss is False
        assert result.applicability == {}
        assert any("cancelled" in e for e in result.errors)

    def test_lapsed_and_suspended_policies_do_not_apply(self, make_claim, make_policy):
        for status in ("LAPSED", "SUSPENDED"):
            result = validate_coverage(make_claim(), make_policy(status=status))
            assert result.coverage_applies is False

    def test_loss_outside_policy_period(self, make_claim, make_policy):
        """Loss after expiration is not covered."""
        result = validate_coverage(make_claim(), make_policy(expiration_date="2026-03-01"))
        assert result.coverage_applies is False
        assert result.policy_valid_at_loss is False
        assert "outside the policy period" in result.errors[0]

    def test_policy_is_not_mutated(self, make_claim, make_policy):
        policy = make_policy()
        before = policy.model_dump()
        validate_coverage(make_claim(), policy)
        assert policy.model_dump() == before


class TestApplicability:
    """Which coverage lines apply to the claim type."""

    def test_exhausted_limit_does_not_apply(self, make_claim, make_policy):
        policy = make_policy(
            coverages=[
                {"coverage_type": "COLLISION", "limit": 25000, "deductible": 500, "used_amount": 25000}
            ]
        )
        result = validate_coverage(make_claim(), policy)
        assert result.coverage_applies is False
        assert result.applicability["COLLISION"].reason == "Coverage limit exhausted"
        assert "No candidate coverage applies" in result.errors

    def test_claim_type_without_matching_coverage(self, make_claim, make_policy):
        """A theft claim on a policy with no comprehensive coverage has nothing to apply."""
        result = validate_coverage(make_claim(claim_type="THEFT"), make_policy())
        assert result.coverage_applies is False
        assert result.policy_valid_at_loss is True
        assert "carries no coverage for THEFT" in result.errors[0]

    def test_collision_falls_back_to_comprehensive(self, make_claim, make_policy):
        policy = make_policy(
            coverages=[{"coverage_type": "COMPREHENSIVE", "limit": 10000, "deductible": 250}]
        )
        result = validate_coverage(make_claim(), policy)
        assert result.coverage_applies is True
        assert result.primary_deductible == 250

    def test_vehicle_not_on_policy_is_a_warning(self, make_claim, make_policy):
        policy = make_policy(vehicles=[{"vin": "11111111111111111", "year": 2019}])
        result = validate_coverage(make_claim(), policy)
        assert result.coverage_applies is True
        assert any("not listed" in w for w in result.warnings)


class TestExclusions:
    """Loss circumstances that exclude coverage."""

    def test_racing_excludes_coverage(self, make_claim, make_policy):
        claim = make_claim(circumstances={"racing": True})
        result = validate_coverage(claim, make_policy())
        assert result.coverage_applies is False
        assert result.policy_valid_at_loss is True
        assert result.exclusions == ["Racing or speed contest exclusion"]

    def test_commercial_use_only_excluded_on_personal_policy(self, make_claim, make_policy):
        claim = make_claim(circumstances={"commercial_use": True})
        assert find_exclusions(claim, make_policy())
        assert find_exclusions(claim, make_policy(use_type="commercial")) == []


class TestGaps:
    """Needs the policy does not cover."""

    def test_injury_without_medical_coverage_is_a_gap(self, make_claim, make_policy, injuries):
        policy = make_policy(
            coverages=[{"coverage_type": "COLLISION", "limit": 25000, "deductible": 500}]
        )
        result = validate_coverage(make_claim(injuries=injuries), policy)
        assert result.coverage_applies is True
        assert "Injuries reported but no medical coverage on policy" in result.gaps

    def test_injury_with_bodily_injury_coverage_has_no_gap(self, make_claim, make_policy, injuries):
        result = validate_coverage(make_claim(injuries=injuries), make_policy())
        assert result.gaps == []

    def test_rental_and_towing_gaps(self, make_claim, make_policy):
        claim = make_claim(damage={"needs_rental": True, "drivable": False})
        result = validate_coverage(claim, make_policy())
        assert "Rental needed but no rental reimbursement coverage" in result.gaps
        assert "Towing needed but no roadside assistance coverage" in result.gaps

    def test_roadside_coverage_closes_towing_gap(self, make_claim, make_policy):
        policy = make_policy(
            coverages=[
                {"coverage_type": "COLLISION", "limit": 25000, "deductible": 500},
                {"coverage_type": "ROADSIDE", "limit": 500},
            ]
        )
        result = validate_coverage(make_claim(damage={"needs_towing": True}), policy)
        assert result.gaps == []

    def test_loan_above_value_on_total_loss_without_gap_coverage(self, make_claim, make_policy):
        claim = make_claim(
            damage={"severity": "total_loss"},
            vehicle={"lienholder": "First Auto Credit", "loan_balance": 18000.0},
        )
        result = validate_coverage(claim, make_policy(), vehicle_value=15000.0)
        assert any("exceeds vehicle value" in g for g in result.gaps)

        covered = make_policy(
            coverages=[
                {"coverage_type": "COLLISION", "limit": 25000, "deductible": 500},
                {"coverage_type": "GAP", "limit": 10000},
            ]
        )
        assert validate_coverage(claim, covered, vehicle_value=15000.0).gaps == []
