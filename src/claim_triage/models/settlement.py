"""Pydantic models for reserves and settlement drafts."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ReserveCategory(BaseModel):
    """Min/max/recommended reserve for one cost category."""

    category: Literal["vehicle_damage", "bodily_injury", "rental", "towing", "legal_defense"]
    minimum: float
    maximum: float
    recommended: float
    confidence: float = Field(..., ge=0, le=1)
    factors: list[str] = Field(default_factory=list)


class ReserveBreakdown(BaseModel):
    vehicle_damage: Optional[ReserveCategory] = None
    bodily_injury: Optional[ReserveCategory] = None
    rental: Optional[ReserveCategory] = None
    towing: Optional[ReserveCategory] = None
    legal_defense: Optional[ReserveCategory] = None
    lost_wages: float = Field(default=0.0, description="Lost wages included in bodily injury")

    def categories(self) -> list[ReserveCategory]:
        return [
            c
            for c in (
                self.vehicle_damage,
                self.bodily_injury,
                self.rental,
                self.towing,
                self.legal_defense,
            )
            if c is not None
        ]


class ReserveRecommendation(BaseModel):
    """Reserve totals after the state cost-of-living adjustment."""

    breakdown: ReserveBreakdown
    total_minimum: float
    total_maximum: float
    total_recommended: float
    cost_of_living_multiplier: float = 1.0
    confidence: float = Field(..., ge=0, le=1)
    authority_level: Literal["ADJUSTER", "SUPERVISOR", "MANAGER"] = "ADJUSTER"
    factors: list[str] = Field(default_factory=list)


class SettlementComponent(BaseModel):
    name: str
    amount: float
    basis: str = ""


class NegotiationRange(BaseModel):
    minimum: float
    target: float
    maximum: float


class PaymentSplit(BaseModel):
    payee: str
    amount: float


class PaymentDetails(BaseModel):
    """Payment instruction stub. Execution happens outside this system."""

    payee: str
    method: Literal["ACH", "CHECK"]
    amount: float
    splits: list[PaymentSplit] = Field(default_factory=list)


class SettlementDraft(BaseModel):
    """Itemized settlement offer. Recomputed wholesale whenever inputs change."""

    claim_id: Optional[str] = None
    components: list[SettlementComponent] = Field(default_factory=list)
    original_total: float = Field(..., description="Component total before limit scaling")
    gross_amount: float = Field(..., description="Component total after limit scaling")
    limit_scaled: bool = False
    net_coverage_available: float = 0.0
    deductible: float = 0.0
    net_amount: float = Field(..., description="Gross amount less deductible, floored at zero")
    negotiation_range: NegotiationRange
    auto_approval_eligible: bool = False
    eligibility_failures: list[str] = Field(default_factory=list)
    payment_details: PaymentDetails
    release_required: bool = False
    issued_at: datetime
    expires_at: datetime
    confidence: float = Field(default=0.6, ge=0, le=1)
    recommendations: list[str] = Field(default_factory=list)
