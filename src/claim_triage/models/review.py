"""Pydantic models for investigation, compliance and quality review."""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from claim_triage.models.scoring import Severity


class ExtractionResult(BaseModel):
    """Output of one document extraction."""

    document_id: str
    document_type: str
    success: bool
    structured_fields: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.0
    error: Optional[str] = None


class EvidencePackage(BaseModel):
    """Aggregated evidence across all documents, including partial failures."""

    extractions: list[ExtractionResult] = Field(default_factory=list)
    damage_areas: list[str] = Field(default_factory=list)
    present_types: list[str] = Field(default_factory=list)
    missing_required: list[str] = Field(default_factory=list)
    missing_recommended: list[str] = Field(default_factory=list)
    failed_documents: list[str] = Field(default_factory=list)
    completeness_score: int = Field(default=0, ge=0, le=100)


class LiabilityFactor(BaseModel):
    name: str
    weight: int
    direction: Literal["increases", "decreases"]
    description: str = ""


class LiabilityScenario(BaseModel):
    name: str
    insured_percent: int
    description: str = ""


class LiabilityAnalysis(BaseModel):
    """Advisory fault split. Never authoritative."""

    insured_fault_percent: int = Field(..., ge=0, le=100)
    other_party_percent: int = Field(..., ge=0, le=100)
    factors: list[LiabilityFactor] = Field(default_factory=list)
    scenarios: list[LiabilityScenario] = Field(default_factory=list)
    requires_human_review: bool = False
    review_reasons: list[str] = Field(default_factory=list)


class InvestigationResult(BaseModel):
    evidence: EvidencePackage
    liability: LiabilityAnalysis


class ComplianceStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class ComplianceCheck(BaseModel):
    name: str
    status: ComplianceStatus
    citation: str = ""
    details: str = ""
    remediation: Optional[str] = None


class ComplianceResult(BaseModel):
    """Outcome of the state regulatory checks."""

    state_code: str
    state_rules_on_file: bool = True
    overall_status: ComplianceStatus
    checks: list[ComplianceCheck] = Field(default_factory=list)

    def failed_checks(self) -> list[ComplianceCheck]:
        return [c for c in self.checks if c.status == ComplianceStatus.NON_COMPLIANT]


class QACategory(str, Enum):
    DOCUMENTATION = "DOCUMENTATION"
    PROCESSING = "PROCESSING"
    FINANCIAL = "FINANCIAL"
    DATA_QUALITY = "DATA_QUALITY"


class QACheck(BaseModel):
    name: str
    category: QACategory
    status: Literal["PASS", "WARNING", "FAIL"]
    severity: Severity = Severity.LOW
    message: str = ""


class QAReview(BaseModel):
    status: Literal["APPROVED", "NEEDS_REVIEW", "REJECTED"]
    score: float = Field(..., ge=0, le=100)
    checks: list[QACheck] = Field(default_factory=list)
    failure_count: int = 0


class FinalValidation(BaseModel):
    """Last automated gate before routing."""

    approved: bool
    confidence: int = Field(..., ge=0, le=100)
    checks: dict[str, bool] = Field(default_factory=dict)
    rejection_reason: Optional[str] = None
    issues: list[str] = Field(default_factory=list)
