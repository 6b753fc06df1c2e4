"""Audit log constants.

Claim statuses themselves live on models.claim.ClaimStatus; the actions below are
the values written to claim_audit_log.action.
"""

ACTION_CREATED = "created"
ACTION_STATUS_CHANGED = "status_changed"
ACTION_VALIDATION_FAILED = "validation_failed"
ACTION_RESET_FOR_REPROCESS = "reset_for_reprocess"
ACTION_WORKFLOW_STARTED = "workflow_started"
ACTION_PHASE_STARTED = "phase_started"
ACTION_PHASE_COMPLETED = "phase_completed"
ACTION_PHASE_FAILED = "phase_failed"
ACTION_TRIGGER_RAISED = "trigger_raised"
ACTION_DECISION = "decision"

AUDIT_SEVERITY_INFO = "INFO"
AUDIT_SEVERITY_CRITICAL = "CRITICAL"

# Claim columns that may be updated directly besides status
UPDATABLE_CLAIM_FIELDS = (
    "severity_score",
    "fraud_score",
    "settlement_amount",
    "routing_decision",
)
