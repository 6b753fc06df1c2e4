"""Regulatory validation against the per-state rule table.

Each check reports COMPLIANT, NON_COMPLIANT, NEEDS_REVIEW or NOT_APPLICABLE
with a citation, and a remediation step when it fails. Timeliness is measured
from the report date against the injected clock.
"""

from datetime import datetime, timedelta
from typing import Optional

from claim_triage.config.state_rules import StateRule, StateRuleTable
from claim_triage.models.claim import ClaimRecord
from claim_triage.models.review import ComplianceCheck, ComplianceResult, ComplianceStatus
from claim_triage.models.scoring import FraudScore
from claim_triage.models.settlement import SettlementDraft
from claim_triage.models.valuation import ValuationResult
from claim_triage.observability.logger import get_logger

logger = get_logger(__name__)

_DAYS_PER_YEAR = 365.25


def _days(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 86400


def overall_status(checks: list[ComplianceCheck]) -> ComplianceStatus:
    statuses = {c.status for c in checks}
    if ComplianceStatus.NON_COMPLIANT in statuses:
        return ComplianceStatus.NON_COMPLIANT
    if ComplianceStatus.NEEDS_REVIEW in statuses:
        return ComplianceStatus.NEEDS_REVIEW
    return ComplianceStatus.COMPLIANT


def check_state_rules_on_file(state_code: str, on_file: bool) -> ComplianceCheck:
    if on_file:
        return ComplianceCheck(
            name="State rules on file",
            status=ComplianceStatus.COMPLIANT,
            citation=f"{state_code} Insurance Code",
            details=f"Claim handling rules loaded for {state_code}",
        )
    return ComplianceCheck(
        name="State rules on file",
        status=ComplianceStatus.NEEDS_REVIEW,
        citation="Default claim handling rules",
        details=f"No rules on file for {state_code or 'unknown state'}; default deadlines applied",
        remediation="Confirm state-specific deadlines with compliance",
    )


def check_acknowledgment(claim: ClaimRecord, rule: StateRule, now: datetime) -> ComplianceCheck:
    deadline = rule.acknowledgment_days
    citation = f"{rule.state_code} Insurance Code - Claim Acknowledgment"
    acknowledged = claim.lifecycle.acknowledged_at
    if acknowledged is not None:
        days = _days(claim.report_date, acknowledged)
        ok = days <= deadline
        return ComplianceCheck(
            name="Acknowledgment deadline",
            status=ComplianceStatus.COMPLIANT if ok else ComplianceStatus.NON_COMPLIANT,
            citation=citation,
            details=f"Acknowledged in {days:.1f} days (limit {deadline})",
            remediation=None if ok else "Document reason for delayed acknowledgment",
        )
    elapsed = _days(claim.report_date, now)
    if elapsed > deadline:
        return ComplianceCheck(
            name="Acknowledgment deadline",
            status=ComplianceStatus.NON_COMPLIANT,
            citation=citation,
            details=f"Not acknowledged after {elapsed:.1f} days (limit {deadline})",
            remediation="Send acknowledgment immediately",
        )
    return ComplianceCheck(
        name="Acknowledgment deadline",
        status=ComplianceStatus.NEEDS_REVIEW,
        citation=citation,
        details=f"Acknowledgment pending, {deadline - elapsed:.1f} days remaining",
    )


def check_decision(claim: ClaimRecord, rule: StateRule, now: datetime) -> ComplianceCheck:
    deadline = rule.decision_days
    citation = f"{rule.state_code} Insurance Code - Claim Decision"
    decided = claim.lifecycle.decided_at
    days = _days(claim.report_date, decided or now)
    if days <= deadline:
        details = (
            f"Decision made in {days:.1f} days"
            if decided
            else f"Decision pending, {deadline - days:.1f} days remaining"
        )
        return ComplianceCheck(
            name="Decision deadline",
            status=ComplianceStatus.COMPLIANT,
            citation=citation,
            details=details,
        )
    return ComplianceCheck(
        name="Decision deadline",
        status=ComplianceStatus.NON_COMPLIANT,
        citation=citation,
        details=f"{'Decided' if decided else 'Undecided'} after {days:.1f} days (limit {deadline})",
        remediation="Document valid extensions or complexity factors",
    )


def check_payment(claim: ClaimRecord, rule: StateRule) -> ComplianceCheck:
    paid = claim.lifecycle.payment_issued_at
    citation = f"{rule.state_code} Prompt Payment Law"
    if paid is None:
        return ComplianceCheck(
            name="Payment deadline",
            status=ComplianceStatus.NOT_APPLICABLE,
            citation=citation,
            details="No payment issued",
        )
    start = claim.lifecycle.decided_at or claim.report_date
    days = _days(start, paid)
    ok = days <= rule.payment_days
    return ComplianceCheck(
        name="Payment deadline",
        status=ComplianceStatus.COMPLIANT if ok else ComplianceStatus.NON_COMPLIANT,
        citation=citation,
        details=f"Paid {days:.1f} days after decision (limit {rule.payment_days})",
        remediation=None if ok else "Document cause of late payment and pay any statutory interest",
    )


def check_fraud_reporting(rule: StateRule, fraud: Optional[FraudScore]) -> ComplianceCheck:
    citation = f"{rule.state_code} Insurance Fraud Prevention Act"
    if fraud is None or not fraud.requires_siu_review or not rule.fraud_reporting_required:
        return ComplianceCheck(
            name="Fraud reporting",
            status=ComplianceStatus.NOT_APPLICABLE,
            citation=citation,
            details="No suspected fraud requiring a report",
        )
    return ComplianceCheck(
        name="Fraud reporting",
        status=ComplianceStatus.NEEDS_REVIEW,
        citation=citation,
        details=(
            f"Fraud score {fraud.overall_score} requires a state fraud bureau report "
            f"within {rule.fraud_reporting_days} days"
        ),
        remediation="File fraud bureau report and SIU referral",
    )


def check_denial_notice(claim: ClaimRecord, rule: StateRule) -> ComplianceCheck:
    citation = f"{rule.state_code} Insurance Code - Claim Denial Requirements"
    if not claim.lifecycle.denied:
        return ComplianceCheck(
            name="Written denial notice",
            status=ComplianceStatus.NOT_APPLICABLE,
            citation=citation,
            details="Claim not denied",
        )
    if claim.lifecycle.denial_notice_sent_at is not None:
        return ComplianceCheck(
            name="Written denial notice",
            status=ComplianceStatus.COMPLIANT,
            citation=citation,
            details="Denial letter sent",
        )
    return ComplianceCheck(
        name="Written denial notice",
        status=ComplianceStatus.NON_COMPLIANT,
        citation=citation,
        details="Denied without written notice",
        remediation="Send written denial with specific reasons",
    )


def check_total_loss_valuation(rule: StateRule, valuation: Optional[ValuationResult]) -> ComplianceCheck:
    citation = f"{rule.state_code} Total Loss Regulations"
    if valuation is None or not valuation.total_loss.is_total_loss:
        return ComplianceCheck(
            name="Total loss valuation source",
            status=ComplianceStatus.NOT_APPLICABLE,
            citation=citation,
            details="Not a total loss",
        )
    if valuation.acv.method == "MARKET_AVERAGE":
        sources = ", ".join(q.source for q in valuation.acv.quotes)
        return ComplianceCheck(
            name="Total loss valuation source",
            status=ComplianceStatus.COMPLIANT,
            citation=citation,
            details=f"Valuation sources: {sources}",
        )
    return ComplianceCheck(
        name="Total loss valuation source",
        status=ComplianceStatus.NEEDS_REVIEW,
        citation=citation,
        details="ACV from internal model; no market valuation source documented",
        remediation="Obtain a market valuation report",
    )


def check_lienholder(
    claim: ClaimRecord,
    rule: StateRule,
    valuation: Optional[ValuationResult],
    settlement: Optional[SettlementDraft],
) -> ComplianceCheck:
    citation = f"{rule.state_code} Insurance Code - Lienholder Requirements"
    lienholder = claim.vehicle.lienholder
    total_loss = valuation is not None and valuation.total_loss.is_total_loss
    if not (lienholder and total_loss):
        return ComplianceCheck(
            name="Lienholder on payment",
            status=ComplianceStatus.NOT_APPLICABLE,
            citation=citation,
            details="No lienholder interest in a total loss",
        )
    named = settlement is not None and (
        lienholder in settlement.payment_details.payee
        or any(s.payee == lienholder for s in settlement.payment_details.splits)
    )
    return ComplianceCheck(
        name="Lienholder on payment",
        status=ComplianceStatus.COMPLIANT if named else ComplianceStatus.NON_COMPLIANT,
        citation=citation,
        details=f"Lienholder {lienholder} {'named' if named else 'missing'} on payment",
        remediation=None if named else "Reissue payment with lienholder as co-payee",
    )


def check_statute_of_limitations(
    claim: ClaimRecord, rule: StateRule, now: datetime, warning_years: float = 0.5
) -> ComplianceCheck:
    citation = f"{rule.state_code} Statute of Limitations"
    expires = claim.loss_date + timedelta(days=rule.statute_of_limitations_years * _DAYS_PER_YEAR)
    remaining = _days(now, expires)
    if remaining < 0:
        return ComplianceCheck(
            name="Statute of limitations",
            status=ComplianceStatus.NON_COMPLIANT,
            citation=citation,
            details=f"Limitations period expired {expires.date().isoformat()}",
            remediation="Refer to counsel before any further action",
        )
    if remaining < warning_years * _DAYS_PER_YEAR:
        return ComplianceCheck(
            name="Statute of limitations",
            status=ComplianceStatus.NEEDS_REVIEW,
            citation=citation,
            details=f"Limitations period expires {expires.date().isoformat()}",
            remediation="Resolve or secure a tolling agreement before expiry",
        )
    return ComplianceCheck(
        name="Statute of limitations",
        status=ComplianceStatus.COMPLIANT,
        citation=citation,
        details=f"Limitations period runs to {expires.date().isoformat()}",
    )


def check_documentation(rule: StateRule, audit_entries: int) -> ComplianceCheck:
    ok = audit_entries > 0
    return ComplianceCheck(
        name="Claim file documentation",
        status=ComplianceStatus.COMPLIANT if ok else ComplianceStatus.NEEDS_REVIEW,
        citation=f"{rule.state_code} Record Retention Requirements",
        details=f"{audit_entries} audit log entries",
        remediation=None if ok else "Reconstruct claim file activity log",
    )


def validate_compliance(
    claim: ClaimRecord,
    rules: StateRuleTable,
    now: datetime,
    fraud: Optional[FraudScore] = None,
    valuation: Optional[ValuationResult] = None,
    settlement: Optional[SettlementDraft] = None,
    audit_entries: int = 0,
    warning_years: float = 0.5,
) -> ComplianceResult:
    """Run every regulatory check for the loss state."""
    state = claim.state_code
    on_file = rules.has_state(state)
    rule = rules.get(state)
    checks = [
        check_state_rules_on_file(state, on_file),
        check_acknowledgment(claim, rule, now),
        check_decision(claim, rule, now),
        check_payment(claim, rule),
        check_fraud_reporting(rule, fraud),
        check_denial_notice(claim, rule),
        check_total_loss_valuation(rule, valuation),
        check_lienholder(claim, rule, valuation, settlement),
        check_statute_of_limitations(claim, rule, now, warning_years),
        check_documentation(rule, audit_entries),
    ]
    result = ComplianceResult(
        state_code=state,
        state_rules_on_file=on_file,
        overall_status=overall_status(checks),
        checks=checks,
    )
    logger.log_event(
        "compliance_checked",
        state=state,
        status=result.overall_status.value,
        failed=[c.name for c in result.failed_checks()],
    )
    return result
