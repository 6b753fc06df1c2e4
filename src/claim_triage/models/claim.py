"""Pydantic models for the claim record and its submission."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with the run clock."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ClaimType(str, Enum):
    """Line of coverage the claim is filed under."""

    COLLISION = "COLLISION"
    COMPREHENSIVE = "COMPREHENSIVE"
    LIABILITY = "LIABILITY"
    UNINSURED_MOTORIST = "UNINSURED_MOTORIST"
    MEDICAL_PAYMENTS = "MEDICAL_PAYMENTS"
    THEFT = "THEFT"
    GLASS = "GLASS"
    VANDALISM = "VANDALISM"


class ClaimStatus(str, Enum):
    """Claim lifecycle status. Transitions are enforced by workflow.status."""

    SUBMITTED = "SUBMITTED"
    INCOMPLETE = "INCOMPLETE"
    INVALID = "INVALID"
    UNDER_REVIEW = "UNDER_REVIEW"
    INVESTIGATING = "INVESTIGATING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"
    CLOSED = "CLOSED"
    FLAGGED_FRAUD = "FLAGGED_FRAUD"
    ESCALATED_TO_HUMAN = "ESCALATED_TO_HUMAN"


class DamageSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    TOTAL_LOSS = "total_loss"


class InjurySeverity(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    FATAL = "fatal"


class DocumentType(str, Enum):
    PHOTO = "photo"
    ESTIMATE = "estimate"
    POLICE_REPORT = "police_report"
    WITNESS_STATEMENT = "witness_statement"
    MEDICAL_RECORDS = "medical_records"
    STATEMENT = "statement"
    OTHER = "other"


class Location(BaseModel):
    """Where the loss happened."""

    address: str = Field(default="", description="Street address")
    city: str = Field(default="", description="City")
    state: str = Field(..., description="Two-letter state code of the loss location")
    zip_code: str = Field(default="", description="Postal code")

    @field_validator("state")
    @classmethod
    def _upper_state(cls, v: str) -> str:
        return v.strip().upper()


class VehicleRecord(BaseModel):
    """The insured vehicle involved in the loss."""

    vin: str = Field(..., description="Vehicle identification number")
    year: int = Field(..., description="Model year")
    make: str = Field(..., description="Vehicle manufacturer")
    model: str = Field(..., description="Vehicle model")
    mileage: Optional[int] = Field(default=None, description="Odometer reading at loss")
    condition: Literal["excellent", "good", "fair", "poor"] = Field(
        default="good", description="Pre-loss condition"
    )
    options: list[str] = Field(default_factory=list, description="Installed options")
    lienholder: Optional[str] = Field(default=None, description="Lienholder name if financed")
    loan_balance: Optional[float] = Field(default=None, description="Outstanding loan balance")


class Participant(BaseModel):
    """A person involved in the loss."""

    name: str = Field(..., description="Full name")
    role: Literal["insured", "claimant", "other_driver", "passenger", "witness"] = Field(
        default="other_driver", description="Role in the loss"
    )
    phone: Optional[str] = Field(default=None, description="Contact number")
    insurer: Optional[str] = Field(default=None, description="Other party's insurer")


class InjuryDetail(BaseModel):
    """One injured person and the nature of the injury."""

    person: str = Field(default="", description="Injured person")
    injury_type: str = Field(default="default", description="e.g. whiplash, fracture, concussion")
    severity: InjurySeverity = Field(default=InjurySeverity.MINOR)


class InjuryInfo(BaseModel):
    """Injury section of the first notice of loss."""

    any_injuries: bool = Field(default=False, description="Whether anyone was injured")
    severity: InjurySeverity = Field(default=InjurySeverity.NONE, description="Worst injury tier")
    fatality: bool = Field(default=False)
    medical_treatment: bool = Field(default=False, description="Medical treatment confirmed")
    injuries: list[InjuryDetail] = Field(default_factory=list)
    medical_bills: list[float] = Field(
        default_factory=list, description="Medical billing line items in dollars"
    )
    lost_wages_estimate: float = Field(default=0.0, description="Claimed lost wages")


class DamageInfo(BaseModel):
    """Vehicle damage reported with the claim."""

    severity: DamageSeverity = Field(default=DamageSeverity.MINOR)
    damaged_areas: list[str] = Field(default_factory=list, description="e.g. front bumper, hood")
    airbag_deployed: bool = Field(default=False)
    structural_damage: bool = Field(default=False)
    drivable: bool = Field(default=True)
    prior_damage: bool = Field(default=False, description="Claimant declared prior damage")
    shop_estimate: Optional[float] = Field(
        default=None, description="Repair estimate from a body shop, if one was obtained"
    )
    repair_line_items: list[float] = Field(
        default_factory=list, description="Repair estimate line items in dollars"
    )
    needs_rental: bool = Field(default=False)
    needs_towing: bool = Field(default=False)
    owner_retains_salvage: bool = Field(
        default=False, description="Owner asked to keep the vehicle if it is declared a total loss"
    )


class LossCircumstances(BaseModel):
    """Facts about the loss that drive exclusions and liability."""

    racing: bool = Field(default=False, description="Racing or speed contest")
    intentional_damage: bool = Field(default=False)
    commercial_use: bool = Field(default=False, description="Vehicle used commercially")
    unlicensed_driver: bool = Field(default=False)
    intoxicated_driver: bool = Field(default=False)
    insured_ran_red_light: bool = Field(default=False)
    liability_disputed: bool = Field(default=False)


class ClaimLifecycle(BaseModel):
    """Timestamps the regulatory checks are measured against."""

    acknowledged_at: Optional[datetime] = Field(default=None)
    decided_at: Optional[datetime] = Field(default=None)
    denied: bool = Field(default=False)
    denial_notice_sent_at: Optional[datetime] = Field(default=None)
    payment_issued_at: Optional[datetime] = Field(default=None)

    @field_validator("acknowledged_at", "decided_at", "denial_notice_sent_at", "payment_issued_at")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None


class ClaimDocument(BaseModel):
    """A document blob submitted with the claim."""

    document_id: str = Field(..., description="Document identifier")
    document_type: DocumentType = Field(..., description="Declared document type")
    filename: Optional[str] = Field(default=None)
    content: str = Field(default="", description="Document body or base64 blob")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ClaimRecord(BaseModel):
    """A first-notice-of-loss auto claim."""

    claim_id: Optional[str] = Field(default=None, description="Assigned claim ID")
    policy_number: str = Field(..., description="Insurance policy number")
    claimant_name: str = Field(..., description="Person filing the claim")
    claim_type: ClaimType = Field(..., description="Line of coverage claimed")
    loss_date: datetime = Field(..., description="When the loss occurred")
    report_date: datetime = Field(..., description="When the loss was reported")
    loss_description: str = Field(..., description="Free-text description of the loss")
    location: Location
    vehicle: VehicleRecord
    participants: list[Participant] = Field(default_factory=list)
    injuries: InjuryInfo = Field(default_factory=InjuryInfo)
    damage: DamageInfo = Field(default_factory=DamageInfo)
    circumstances: LossCircumstances = Field(default_factory=LossCircumstances)
    lifecycle: ClaimLifecycle = Field(default_factory=ClaimLifecycle)
    documents: list[ClaimDocument] = Field(default_factory=list)
    police_report_number: Optional[str] = Field(default=None)
    police_report_narrative: Optional[str] = Field(
        default=None, description="Accident narrative from the police report"
    )
    medical_providers: list[str] = Field(default_factory=list)
    attorney_name: Optional[str] = Field(default=None)
    repair_shop: Optional[str] = Field(default=None)
    estimated_amount: Optional[float] = Field(
        default=None, description="Claimed or estimated loss amount in dollars"
    )
    status: ClaimStatus = Field(default=ClaimStatus.SUBMITTED)
    severity_score: Optional[int] = Field(default=None)
    fraud_score: Optional[int] = Field(default=None)
    settlement_amount: Optional[float] = Field(default=None)
    routing_decision: Optional[str] = Field(default=None)

    @field_validator("loss_date", "report_date")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def state_code(self) -> str:
        return self.location.state

    @property
    def other_parties(self) -> list[Participant]:
        """Participants other than the insured, passengers and witnesses."""
        return [p for p in self.participants if p.role in ("other_driver", "claimant")]

    def vehicle_age(self) -> int:
        return max(0, self.loss_date.year - self.vehicle.year)

    def has_police_report(self) -> bool:
        if self.police_report_number or self.police_report_narrative:
            return True
        return any(d.document_type == DocumentType.POLICE_REPORT for d in self.documents)
