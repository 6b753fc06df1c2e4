"""Shared pytest fixtures for all test files."""

import copy
import os
import tempfile
from datetime import datetime, timezone
from typing import Any

import pytest

from claim_triage.config.state_rules import load_state_rules
from claim_triage.db.database import init_db
from claim_triage.db.repository import ClaimRepository
from claim_triage.models.claim import ClaimRecord
from claim_triage.models.policy import PolicyRecord
from claim_triage.models.workflow import PHASE_ORDER, Phase, WorkflowState
from claim_triage.observability.metrics import reset_metrics
from claim_triage.sources.base import ExternalSources
from claim_triage.sources.static import (
    MetadataExtractor,
    StaticClaimHistory,
    StaticFraudSignal,
    StaticPricingSource,
    StaticSalvageBidSource,
    StaticVehicleHistory,
    StaticWatchlist,
)
from claim_triage.workflow.phases import PhaseContext, run_phase

VIN = "1HGCM82633A004352"
# Tuesday afternoon, reported the next morning, processed the day after
LOSS_DATE = datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)
REPORT_DATE = datetime(2026, 3, 11, 9, 0, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 12, 10, 0, tzinfo=timezone.utc)

CLAIM_DATA: dict[str, Any] = {
    "policy_number": "POL-FL-100234",
    "claimant_name": "Dana Reyes",
    "claim_type": "COLLISION",
    "loss_date": LOSS_DATE.isoformat(),
    "report_date": REPORT_DATE.isoformat(),
    "loss_description": "Vehicle was struck on the driver door while parked in a grocery store lot.",
    "location": {"address": "410 Palm Ave", "city": "Tampa", "state": "FL", "zip_code": "33602"},
    "vehicle": {"vin": VIN, "year": 2020, "make": "Honda", "model": "Accord", "mileage": 30000},
    "participants": [{"name": "Dana Reyes", "role": "insured", "phone": "813-555-0142"}],
    "damage": {"severity": "minor", "damaged_areas": ["driver door"], "shop_estimate": 1200.0},
    "police_report_number": "TPD-26-00831",
    "estimated_amount": 1200.0,
    "documents": [
        {"document_id": "DOC-1", "document_type": "photo", "metadata": {"damage_areas": ["driver door"]}},
        {"document_id": "DOC-2", "document_type": "estimate", "metadata": {"total": 1200}},
        {"document_id": "DOC-3", "document_type": "police_report", "metadata": {"report_number": "TPD-26-00831"}},
    ],
}

POLICY_DATA: dict[str, Any] = {
    "policy_number": "POL-FL-100234",
    "named_insured": "Dana Reyes",
    "effective_date": "2025-06-01",
    "expiration_date": "2026-06-01",
    "status": "ACTIVE",
    "vehicles": [{"vin": VIN, "year": 2020, "make": "Honda", "model": "Accord"}],
    "coverages": [
        {"coverage_type": "COLLISION", "limit": 25000, "deductible": 500},
        {"coverage_type": "BODILY_INJURY_LIABILITY", "limit": 100000, "deductible": 0},
    ],
}

INJURIES = {
    "any_injuries": True,
    "severity": "moderate",
    "injuries": [{"person": "Dana Reyes", "injury_type": "whiplash", "severity": "moderate"}],
}


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


@pytest.fixture(autouse=True)
def temp_db():
    """Use a temporary SQLite DB for tests."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    init_db(path)
    prev = os.environ.get("CLAIMS_DB_PATH")
    os.environ["CLAIMS_DB_PATH"] = path
    try:
        yield path
    finally:
        if prev is None:
            os.environ.pop("CLAIMS_DB_PATH", None)
        else:
            os.environ["CLAIMS_DB_PATH"] = prev
        try:
            os.unlink(path)
        except OSError:
            pass


@pytest.fixture(autouse=True)
def reset_global_metrics():
    """Reset the global ClaimMetrics singleton before and after each test."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def repo(temp_db):
    return ClaimRepository(db_path=temp_db)


@pytest.fixture
def rules():
    return load_state_rules()


@pytest.fixture
def claim_data():
    """Raw submission dict for a clean FL collision claim."""
    return copy.deepcopy(CLAIM_DATA)


@pytest.fixture
def make_claim():
    """Build a ClaimRecord from the clean FL collision, with nested overrides."""

    def _make(**overrides: Any) -> ClaimRecord:
        return ClaimRecord.model_validate(_merge(CLAIM_DATA, overrides))

    return _make


@pytest.fixture
def make_policy():
    def _make(**overrides: Any) -> PolicyRecord:
        return PolicyRecord.model_validate(_merge(POLICY_DATA, overrides))

    return _make


@pytest.fixture
def make_sources():
    """Deterministic collaborators; keyword arguments replace individual sources."""

    def _make(**overrides: Any) -> ExternalSources:
        sources = {
            "pricing": [StaticPricingSource("market", {VIN: 15000.0})],
            "salvage": StaticSalvageBidSource(),
            "watchlist": StaticWatchlist(),
            "vehicle_history": StaticVehicleHistory(),
            "claim_history": StaticClaimHistory(),
            "extractor": MetadataExtractor(),
            "fraud_signal": StaticFraudSignal(default=34.0),
        }
        sources.update(overrides)
        return ExternalSources(**sources)

    return _make


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def injuries():
    """Injury section for a moderate whiplash claim."""
    return copy.deepcopy(INJURIES)


@pytest.fixture
def build_state(rules, make_claim, make_policy, make_sources, now, clock):
    """Run phases in order up to ``through`` and return ``(state, triggers)``."""

    def _build(claim=None, policy=None, sources=None, through=Phase.COMMUNICATIONS_COMPLIANCE):
        ctx = PhaseContext(
            sources=sources or make_sources(),
            rules=rules,
            now=now,
            clock=clock,
            audit_entries=lambda: 3,
        )
        state = WorkflowState(
            claim=claim or make_claim(claim_id="CLM-TEST0001"),
            policy=policy or make_policy(),
        )
        triggers: list = []
        for phase in PHASE_ORDER[: through.number]:
            triggers.extend(run_phase(phase, ctx, state, triggers).new_triggers)
        return state, triggers

    return _build
