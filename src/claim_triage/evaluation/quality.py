"""QA review (phase 5) and final validation (phase 6)."""

from typing import Any, Optional

from claim_triage.config.settings import get_auto_approval_config, get_settlement_config
from claim_triage.models.claim import ClaimType, DocumentType
from claim_triage.models.review import (
    ComplianceStatus,
    FinalValidation,
    QACategory,
    QACheck,
    QAReview,
)
from claim_triage.models.scoring import Severity
from claim_triage.models.workflow import EscalationTrigger, TriggerType, WorkflowState
from claim_triage.observability.logger import get_logger

logger = get_logger(__name__)

ESTIMATE_VARIANCE_PASS = 0.2
ESTIMATE_VARIANCE_WARN = 0.5
RESERVE_TOLERANCE = 1.1
MIN_DESCRIPTION_LENGTH = 50


def _check(
    name: str,
    category: QACategory,
    passed: bool,
    message: str,
    severity: Severity = Severity.MEDIUM,
    on_fail: str = "WARNING",
) -> QACheck:
    return QACheck(
        name=name,
        category=category,
        status="PASS" if passed else on_fail,
        severity=severity,
        message=message,
    )


def documentation_checks(state: WorkflowState) -> list[QACheck]:
    claim = state.claim
    types = {d.document_type for d in claim.documents}
    checks = [
        _check(
            "Supporting documentation on file",
            QACategory.DOCUMENTATION,
            bool(claim.documents),
            f"{len(claim.documents)} documents on file",
        ),
        _check(
            "Damage photos provided",
            QACategory.DOCUMENTATION,
            DocumentType.PHOTO in types,
            "Photos on file" if DocumentType.PHOTO in types else "No damage photos found",
        ),
    ]
    if claim.claim_type == ClaimType.THEFT:
        checks.append(
            _check(
                "Police report provided for theft",
                QACategory.DOCUMENTATION,
                claim.has_police_report(),
                claim.police_report_number or "Police report required but not provided",
                severity=Severity.HIGH,
                on_fail="FAIL",
            )
        )
    if claim.claim_type in (ClaimType.COLLISION, ClaimType.COMPREHENSIVE):
        has_estimate = (
            DocumentType.ESTIMATE in types
            or claim.damage.shop_estimate is not None
            or bool(claim.damage.repair_line_items)
        )
        checks.append(
            _check(
                "Repair estimate provided",
                QACategory.DOCUMENTATION,
                has_estimate,
                "Estimate on file" if has_estimate else "No formal estimate",
            )
        )
    return checks


def processing_checks(state: WorkflowState) -> list[QACheck]:
    steps = {
        "coverage": state.coverage,
        "severity": state.severity,
        "fraud": state.fraud,
        "investigation": state.investigation,
        "valuation": state.valuation,
        "reserve": state.reserve,
        "settlement": state.settlement,
    }
    missing = [name for name, value in steps.items() if value is None]
    checks = [
        _check(
            "All processing steps completed",
            QACategory.PROCESSING,
            not missing,
            "All processing complete" if not missing else f"Missing: {', '.join(missing)}",
            severity=Severity.HIGH,
            on_fail="FAIL",
        ),
        _check(
            "External sources available",
            QACategory.PROCESSING,
            not state.degraded_sources,
            "All sources responded"
            if not state.degraded_sources
            else f"Degraded: {', '.join(state.degraded_sources)}",
            severity=Severity.LOW,
        ),
    ]
    if state.investigation is not None:
        failed = state.investigation.evidence.failed_documents
        checks.append(
            _check(
                "Document extraction succeeded",
                QACategory.PROCESSING,
                not failed,
                f"{len(failed)} documents could not be read",
            )
        )
    return checks


def financial_checks(state: WorkflowState) -> list[QACheck]:
    settlement = state.settlement
    if settlement is None:
        return []
    checks = []
    component_sum = round(sum(c.amount for c in settlement.components), 2)
    checks.append(
        _check(
            "Components sum to gross amount",
            QACategory.FINANCIAL,
            abs(component_sum - settlement.gross_amount) <= 0.01,
            f"Components ${component_sum:,.2f}, gross ${settlement.gross_amount:,.2f}",
            severity=Severity.HIGH,
            on_fail="FAIL",
        )
    )
    expected_net = round(max(0.0, settlement.gross_amount - settlement.deductible), 2)
    checks.append(
        _check(
            "Deductible properly applied",
            QACategory.FINANCIAL,
            settlement.deductible >= 0 and abs(expected_net - settlement.net_amount) <= 0.01,
            f"Deductible ${settlement.deductible:,.2f}",
            severity=Severity.HIGH,
            on_fail="FAIL",
        )
    )

    estimated = state.claim.estimated_amount
    property_damage = next(
        (c.amount for c in settlement.components if c.name == "Property Damage"), None
    )
    if estimated and property_damage is not None:
        variance = abs(property_damage - estimated) / estimated
        if variance <= ESTIMATE_VARIANCE_PASS:
            status = "PASS"
        elif variance <= ESTIMATE_VARIANCE_WARN:
            status = "WARNING"
        else:
            status = "FAIL"
        checks.append(
            QACheck(
                name="Property damage within estimate variance",
                category=QACategory.FINANCIAL,
                status=status,
                severity=Severity.MEDIUM,
                message=f"Variance {variance * 100:.1f}%",
            )
        )

    if state.reserve is not None:
        ceiling = state.reserve.total_recommended * RESERVE_TOLERANCE
        checks.append(
            _check(
                "Settlement within reserve",
                QACategory.FINANCIAL,
                settlement.gross_amount <= ceiling,
                f"Reserve ${state.reserve.total_recommended:,.2f}, "
                f"settlement ${settlement.gross_amount:,.2f}",
            )
        )
    return checks


def data_quality_checks(state: WorkflowState) -> list[QACheck]:
    claim = state.claim
    vehicle = claim.vehicle
    has_contact = any(p.phone for p in claim.participants)
    return [
        _check(
            "Contact information on file",
            QACategory.DATA_QUALITY,
            has_contact,
            "Contact info on file" if has_contact else "No participant phone number",
            severity=Severity.LOW,
        ),
        _check(
            "Vehicle information complete",
            QACategory.DATA_QUALITY,
            bool(vehicle.vin and vehicle.year and vehicle.make and vehicle.model),
            f"{vehicle.year} {vehicle.make} {vehicle.model}",
        ),
        _check(
            "Loss description adequate",
            QACategory.DATA_QUALITY,
            len(claim.loss_description) > MIN_DESCRIPTION_LENGTH,
            f"{len(claim.loss_description)} characters",
            severity=Severity.LOW,
        ),
    ]


def qa_status(checks: list[QACheck]) -> str:
    failures = [c for c in checks if c.status == "FAIL"]
    if any(c.severity == Severity.CRITICAL for c in failures):
        return "REJECTED"
    if any(c.severity == Severity.HIGH for c in failures) or len(failures) > 2:
        return "NEEDS_REVIEW"
    return "APPROVED"


def review_quality(state: WorkflowState) -> QAReview:
    """Run every QA check over the phase outputs gathered so far."""
    checks = (
        documentation_checks(state)
        + processing_checks(state)
        + financial_checks(state)
        + data_quality_checks(state)
    )
    passed = sum(1 for c in checks if c.status == "PASS")
    review = QAReview(
        status=qa_status(checks),
        score=round(passed / len(checks) * 100, 1),
        checks=checks,
        failure_count=sum(1 for c in checks if c.status == "FAIL"),
    )
    logger.log_event(
        "qa_reviewed", status=review.status, score=review.score, failures=review.failure_count
    )
    return review


# ---------------------------------------------------------------------------
# Final validation
# ---------------------------------------------------------------------------

_DEDUCTIONS = {
    "data_complete": 20,
    "policy_valid": 30,
    "amount_reasonable": 15,
    "no_fraud_indicators": 25,
    "compliance_pass": 10,
}

_REJECTION_REASONS = (
    ("no_fraud_indicators", "Fraud indicators detected"),
    ("policy_valid", "Policy validation failed"),
    ("data_complete", "Incomplete claim data"),
    ("amount_reasonable", "Settlement amount requires review"),
    ("compliance_pass", "Compliance check failed"),
)


def _missing_data(state: WorkflowState) -> list[str]:
    claim = state.claim
    missing = []
    if not claim.claim_id:
        missing.append("Claim number")
    if not claim.loss_date:
        missing.append("Loss date")
    if not claim.loss_description.strip():
        missing.append("Description")
    return missing


def final_validation(
    state: WorkflowState,
    triggers: list[EscalationTrigger],
    config: Optional[dict[str, Any]] = None,
) -> FinalValidation:
    """Last automated gate. Any FRAUD_DETECTED trigger rejects outright."""
    cfg = config or get_auto_approval_config()
    if any(t.trigger_type == TriggerType.FRAUD_DETECTED for t in triggers):
        return FinalValidation(
            approved=False,
            confidence=0,
            checks={name: name != "no_fraud_indicators" for name in _DEDUCTIONS},
            rejection_reason="Fraud indicators present - requires human review",
            issues=["Fraud detection triggered"],
        )

    missing = _missing_data(state)
    max_amount = get_settlement_config()["max_reasonable_amount"]
    net = state.settlement.net_amount if state.settlement is not None else None
    fraud_score = state.fraud.overall_score if state.fraud is not None else 0
    checks = {
        "data_complete": not missing,
        "policy_valid": state.coverage is not None and state.coverage.policy_valid_at_loss,
        "amount_reasonable": net is None or 0 <= net <= max_amount,
        "no_fraud_indicators": fraud_score < cfg["fraud_score_ceiling"],
        "compliance_pass": state.compliance is None
        or state.compliance.overall_status != ComplianceStatus.NON_COMPLIANT,
    }
    confidence = 100 - sum(_DEDUCTIONS[name] for name, ok in checks.items() if not ok)
    approved = all(checks.values())
    reason = None
    if not approved:
        reason = next(text for name, text in _REJECTION_REASONS if not checks[name])

    result = FinalValidation(
        approved=approved,
        confidence=max(0, confidence),
        checks=checks,
        rejection_reason=reason,
        issues=[f"Missing: {m}" for m in missing],
    )
    logger.log_event(
        "final_validation", approved=approved, confidence=result.confidence, reason=reason
    )
    return result
