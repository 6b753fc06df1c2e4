"""Pydantic models for the policy and its coverage evaluation."""

from datetime import date
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class PolicyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"
    LAPSED = "LAPSED"


class CoverageType(str, Enum):
    COLLISION = "COLLISION"
    COMPREHENSIVE = "COMPREHENSIVE"
    BODILY_INJURY_LIABILITY = "BODILY_INJURY_LIABILITY"
    PROPERTY_DAMAGE_LIABILITY = "PROPERTY_DAMAGE_LIABILITY"
    UNINSURED_MOTORIST = "UNINSURED_MOTORIST"
    MEDICAL_PAYMENTS = "MEDICAL_PAYMENTS"
    RENTAL = "RENTAL"
    ROADSIDE = "ROADSIDE"
    GAP = "GAP"
    GLASS = "GLASS"


class Coverage(BaseModel):
    """One coverage line on the policy."""

    coverage_type: CoverageType
    limit: float = Field(..., description="Coverage limit in dollars")
    deductible: float = Field(default=0.0)
    active: bool = Field(default=True)
    used_amount: float = Field(default=0.0, description="Already paid against this limit")


class PolicyVehicle(BaseModel):
    """Vehicle listed on the policy."""

    vin: str
    year: int
    make: str = ""
    model: str = ""


class PolicyRecord(BaseModel):
    """Policy in force for the claim. Read-only during processing."""

    policy_number: str = Field(..., description="Insurance policy number")
    named_insured: str = Field(..., description="Primary named insured")
    effective_date: date
    expiration_date: date
    status: PolicyStatus = Field(default=PolicyStatus.ACTIVE)
    use_type: Literal["personal", "commercial"] = Field(default="personal")
    vehicles: list[PolicyVehicle] = Field(default_factory=list)
    coverages: list[Coverage] = Field(default_factory=list)
    policy_limit: Optional[float] = Field(
        default=None, description="Aggregate policy limit across coverages"
    )

    model_config = {"frozen": True}

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        return v.upper() if isinstance(v, str) else v

    def get_coverage(self, coverage_type: CoverageType) -> Optional[Coverage]:
        for coverage in self.coverages:
            if coverage.coverage_type == coverage_type:
                return coverage
        return None

    def has_active_coverage(self, coverage_type: CoverageType) -> bool:
        coverage = self.get_coverage(coverage_type)
        return coverage is not None and coverage.active

    def lists_vin(self, vin: str) -> bool:
        target = vin.strip().upper()
        return any(v.vin.strip().upper() == target for v in self.vehicles)


class CoverageApplicability(BaseModel):
    """Whether one coverage type applies to the claim, and how much of it is left."""

    coverage_type: CoverageType
    applicable: bool
    limit: float = 0.0
    deductible: float = 0.0
    remaining_balance: float = 0.0
    reason: str = ""


class CoverageResult(BaseModel):
    """Snapshot of a coverage evaluation."""

    coverage_applies: bool
    policy_valid_at_loss: bool
    applicability: dict[str, CoverageApplicability] = Field(default_factory=dict)
    exclusions: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    net_coverage_available: float = 0.0
    primary_deductible: float = 0.0

    def applicable_types(self) -> list[str]:
        return [k for k, v in self.applicability.items() if v.applicable]
