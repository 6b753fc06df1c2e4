"""Per-state claim handling rules, loaded from JSON data.

- STATE_RULES_PATH env or the packaged data/state_rules.json.
- Unknown states resolve to the DEFAULT entry; callers can tell via ``StateRuleTable.has_state``.
"""

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from claim_triage.exceptions import StateRulesError

DEFAULT_STATE = "DEFAULT"

TotalLossFormula = Literal["percentage_of_acv", "repair_plus_salvage", "hybrid"]


class StateRule(BaseModel):
    """Claim handling rules for one state."""

    state_code: str = Field(default=DEFAULT_STATE, description="Two-letter state code or DEFAULT")
    state_name: str = Field(..., description="Human-readable state name")
    total_loss_threshold: float = Field(..., description="Repair/ACV ratio at which a vehicle is a total loss")
    total_loss_formula: TotalLossFormula = Field(
        default="percentage_of_acv", description="How the total-loss test is applied"
    )
    acknowledgment_days: int = Field(..., description="Days allowed to acknowledge a claim")
    decision_days: int = Field(..., description="Days allowed to accept or deny a claim")
    payment_days: int = Field(..., description="Days allowed to pay after a decision")
    fraud_reporting_required: bool = Field(default=True)
    fraud_reporting_days: int = Field(default=60)
    cost_of_living_multiplier: float = Field(default=1.0, ge=0.85, le=1.25)
    sales_tax_rate: float = Field(default=0.06)
    title_fee: float = Field(default=50.0)
    other_fees: float = Field(default=50.0)
    owner_retain_salvage_allowed: bool = Field(default=False)
    comparative_negligence: str = Field(default="modified_50")
    statute_of_limitations_years: float = Field(default=3)


def _packaged_rules_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "state_rules.json"


def _resolve_rules_path() -> Path:
    path = os.environ.get("STATE_RULES_PATH")
    if path:
        return Path(path)
    return _packaged_rules_path()


class StateRuleTable:
    """Lookup table of StateRule keyed by state code."""

    def __init__(self, rules: dict[str, StateRule]):
        if DEFAULT_STATE not in rules:
            raise StateRulesError("State rule table must define a DEFAULT entry")
        self._rules = rules

    @classmethod
    def from_dict(cls, data: dict) -> "StateRuleTable":
        rules: dict[str, StateRule] = {}
        for code, entry in data.items():
            key = code.upper()
            try:
                rules[key] = StateRule.model_validate({**entry, "state_code": key})
            except ValidationError as e:
                raise StateRulesError(f"Invalid rules for state {key}: {e}") from e
        return cls(rules)

    def has_state(self, state_code: str | None) -> bool:
        return bool(state_code) and state_code.upper() in self._rules

    def get(self, state_code: str | None) -> StateRule:
        """Rules for ``state_code``, or the DEFAULT rules when the state is not on file."""
        if state_code and state_code.upper() in self._rules:
            return self._rules[state_code.upper()]
        return self._rules[DEFAULT_STATE]

    def states(self) -> list[str]:
        return sorted(code for code in self._rules if code != DEFAULT_STATE)


def load_state_rules(path: str | Path | None = None) -> StateRuleTable:
    """Load the state rule table from JSON. Raises StateRulesError if missing or malformed."""
    rules_path = Path(path) if path else _resolve_rules_path()
    try:
        with open(rules_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise StateRulesError(f"Cannot load state rules from {rules_path}: {e}") from e
    if not isinstance(data, dict):
        raise StateRulesError(f"State rules in {rules_path} must be a JSON object")
    return StateRuleTable.from_dict(data)
