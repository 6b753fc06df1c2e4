"""Pydantic models for vehicle valuation and total-loss analysis."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class PricingQuote(BaseModel):
    """A value returned by one pricing source."""

    source: str
    value: float = Field(..., gt=0)
    confidence: int = Field(default=85, ge=0, le=100)


class ValuationAdjustments(BaseModel):
    """How the internal depreciation model arrived at its value."""

    base_value: float
    depreciated_value: float
    mileage_adjustment: float = 0.0
    condition_adjustment: float = 0.0
    options_adjustment: float = 0.0
    prior_damage_adjustment: float = 0.0


class ACVResult(BaseModel):
    """Actual cash value of the vehicle."""

    value: float
    method: Literal["MARKET_AVERAGE", "INTERNAL_MODEL"]
    confidence: int = Field(..., ge=0, le=100)
    quotes: list[PricingQuote] = Field(default_factory=list)
    adjustments: Optional[ValuationAdjustments] = None
    failed_sources: list[str] = Field(default_factory=list)


class SalvageEstimate(BaseModel):
    value: float
    method: Literal["BID_AVERAGE", "PERCENTAGE_ACV"]
    salvage_type: Literal["REBUILDABLE", "PARTS_ONLY", "SCRAP"]
    bid_count: int = 0
    bid_range_low: float = 0.0
    bid_range_high: float = 0.0


class RepairEstimate(BaseModel):
    """Repair cost with its breakdown and supplement exposure."""

    total: float
    source: Literal["SHOP_ESTIMATE", "KEYWORD_ESTIMATOR"]
    parts: float = 0.0
    labor: float = 0.0
    paint: float = 0.0
    other: float = 0.0
    supplement_probability: int = Field(default=0, ge=0, le=100)
    supplement_reserve: float = 0.0


class TotalLossSettlement(BaseModel):
    """Settlement on a total-loss vehicle, net of salvage and deductible."""

    acv: float
    salvage_deduction: float = 0.0
    owner_retains_salvage: bool = False
    sales_tax: float = 0.0
    title_and_fees: float = 0.0
    deductible: float = 0.0
    net_settlement: float = 0.0


class TotalLossAnalysis(BaseModel):
    is_total_loss: bool
    threshold: float = Field(..., description="State threshold as a fraction of ACV")
    formula: str
    percentage: float = Field(..., description="Repair cost as a percentage of ACV")
    settlement: Optional[TotalLossSettlement] = None


class ValuationResult(BaseModel):
    """Everything the valuation engine produced for one claim."""

    state_code: str
    acv: ACVResult
    salvage: SalvageEstimate
    repair: Optional[RepairEstimate] = None
    total_loss: TotalLossAnalysis
    recommendation: Literal["TOTAL_LOSS", "REPAIR", "HUMAN_REVIEW"]
    warnings: list[str] = Field(default_factory=list)
