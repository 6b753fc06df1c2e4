"""Claim repository: CRUD, audit logging, workflow runs, search and run locks."""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from claim_triage.db.constants import (
    ACTION_CREATED,
    ACTION_STATUS_CHANGED,
    AUDIT_SEVERITY_INFO,
    UPDATABLE_CLAIM_FIELDS,
)
from claim_triage.db.database import get_connection
from claim_triage.exceptions import ClaimAlreadyProcessingError, ClaimNotFoundError
from claim_triage.models.claim import ClaimRecord, ClaimStatus
from claim_triage.models.policy import PolicyRecord
from claim_triage.models.workflow import ClaimDecisionResult
from claim_triage.workflow.status import validate_transition


def _generate_claim_id(prefix: str = "CLM") -> str:
    """Generate a unique claim ID."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def _utc_iso(value: datetime) -> str:
    """ISO timestamp normalised to UTC so stored dates compare as strings."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _details_text(details: Any) -> str:
    if details is None:
        return ""
    if isinstance(details, str):
        return details
    return json.dumps(details, default=str)


class ClaimRepository:
    """Repository for claim persistence and audit logging."""

    def __init__(self, db_path: Optional[str] = None):
        self._db_path = db_path

    def create_claim(self, claim: ClaimRecord) -> str:
        """Insert a new claim at SUBMITTED with a generated ID and a 'created' audit row."""
        claim_id = _generate_claim_id()
        record = claim.model_copy(update={"claim_id": claim_id, "status": ClaimStatus.SUBMITTED})
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO claims (
                    id, policy_number, claimant_name, vin, claim_type, loss_state,
                    loss_date, status, payload
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    claim_id,
                    record.policy_number,
                    record.claimant_name,
                    record.vehicle.vin,
                    record.claim_type.value,
                    record.location.state,
                    _utc_iso(record.loss_date),
                    ClaimStatus.SUBMITTED.value,
                    record.model_dump_json(),
                ),
            )
            conn.execute(
                """
                INSERT INTO claim_audit_log (claim_id, action, new_status, details)
                VALUES (?, ?, ?, ?)
                """,
                (claim_id, ACTION_CREATED, ClaimStatus.SUBMITTED.value, "Claim record created"),
            )
        return claim_id

    def get_claim(self, claim_id: str) -> Optional[dict[str, Any]]:
        """Fetch the claim row by ID, with the payload decoded."""
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT * FROM claims WHERE id = ?", (claim_id,)).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["payload"] = json.loads(data["payload"]) if data.get("payload") else None
        return data

    def get_claim_record(self, claim_id: str) -> ClaimRecord:
        """Rebuild the ClaimRecord with its current status and computed fields."""
        row = self.get_claim(claim_id)
        if row is None:
            raise ClaimNotFoundError(claim_id)
        record = ClaimRecord.model_validate(row["payload"])
        return record.model_copy(
            update={
                "claim_id": claim_id,
                "status": ClaimStatus(row["status"]),
                "severity_score": row["severity_score"],
                "fraud_score": row["fraud_score"],
                "settlement_amount": row["settlement_amount"],
                "routing_decision": row["routing_decision"],
            }
        )

    def update_claim_status(
        self,
        claim_id: str,
        new_status: ClaimStatus,
        details: Any = None,
        phase: Optional[str] = None,
        action: str = ACTION_STATUS_CHANGED,
    ) -> ClaimStatus:
        """Move the claim to ``new_status`` if the status machine allows it. Returns the old status."""
        new_status = ClaimStatus(new_status)
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT status FROM claims WHERE id = ?", (claim_id,)).fetchone()
            if row is None:
                raise ClaimNotFoundError(claim_id)
            old_status = ClaimStatus(row["status"])
            validate_transition(old_status, new_status)
            conn.execute(
                "UPDATE claims SET status = ?, updated_at = datetime('now') WHERE id = ?",
                (new_status.value, claim_id),
            )
            conn.execute(
                """
                INSERT INTO claim_audit_log (claim_id, action, phase, old_status, new_status, details)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (claim_id, action, phase, old_status.value, new_status.value, _details_text(details)),
            )
        return old_status

    def update_claim_payload(self, claim: ClaimRecord) -> None:
        """Overwrite the stored ClaimRecord JSON (lifecycle timestamps, documents)."""
        if not claim.claim_id:
            raise ValueError("claim_id is required to update a claim payload")
        with get_connection(self._db_path) as conn:
            cursor = conn.execute(
                "UPDATE claims SET payload = ?, updated_at = datetime('now') WHERE id = ?",
                (claim.model_dump_json(), claim.claim_id),
            )
            if cursor.rowcount == 0:
                raise ClaimNotFoundError(claim.claim_id)

    def update_claim_fields(self, claim_id: str, **fields: Any) -> None:
        """Update computed columns (scores, settlement amount, routing decision)."""
        unknown = set(fields) - set(UPDATABLE_CLAIM_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update claim fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [*fields.values(), claim_id]
        with get_connection(self._db_path) as conn:
            cursor = conn.execute(
                f"UPDATE claims SET {assignments}, updated_at = datetime('now') WHERE id = ?",
                params,
            )
            if cursor.rowcount == 0:
                raise ClaimNotFoundError(claim_id)

    def append_audit_event(
        self,
        claim_id: str,
        action: str,
        phase: Optional[str] = None,
        severity: str = AUDIT_SEVERITY_INFO,
        details: Any = None,
        old_status: Optional[str] = None,
        new_status: Optional[str] = None,
    ) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO claim_audit_log
                    (claim_id, action, phase, severity, old_status, new_status, details)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (claim_id, action, phase, severity, old_status, new_status, _details_text(details)),
            )

    def get_claim_history(self, claim_id: str) -> list[dict[str, Any]]:
        """Audit log entries for a claim, oldest first."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, claim_id, action, phase, severity, old_status, new_status,
                       details, created_at
                FROM claim_audit_log
                WHERE claim_id = ?
                ORDER BY id ASC
                """,
                (claim_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def count_audit_actions(self, claim_id: str, action: str) -> int:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM claim_audit_log WHERE claim_id = ? AND action = ?",
                (claim_id, action),
            ).fetchone()
        return int(row["n"])

    def save_workflow_result(self, result: ClaimDecisionResult) -> None:
        """Persist one orchestration run."""
        routing = result.routing
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO workflow_runs (
                    run_id, claim_id, status, decision, reason, priority,
                    triggers, checklist, result
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.run_id,
                    result.claim_id,
                    result.status.value,
                    routing.decision.value if routing else None,
                    routing.reason if routing else None,
                    routing.priority if routing else None,
                    json.dumps([t.model_dump(mode="json") for t in result.triggers]),
                    result.checklist.model_dump_json(),
                    result.model_dump_json(),
                ),
            )

    def get_workflow_runs(self, claim_id: str) -> list[dict[str, Any]]:
        """Workflow runs for a claim, oldest first. JSON columns are decoded."""
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT run_id, claim_id, status, decision, reason, priority,
                       triggers, checklist, created_at
                FROM workflow_runs
                WHERE claim_id = ?
                ORDER BY id ASC
                """,
                (claim_id,),
            ).fetchall()
        runs = []
        for r in rows:
            run = dict(r)
            run["triggers"] = json.loads(run["triggers"]) if run["triggers"] else []
            run["checklist"] = json.loads(run["checklist"]) if run["checklist"] else None
            runs.append(run)
        return runs

    def search_claims(
        self,
        claimant_name: Optional[str] = None,
        vin: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Search claims by claimant name (case-insensitive) and/or VIN. Returns [] with no criteria."""
        clauses: list[str] = []
        params: list[Any] = []
        if claimant_name and claimant_name.strip():
            clauses.append("LOWER(claimant_name) = LOWER(?)")
            params.append(claimant_name.strip())
        if vin and vin.strip():
            clauses.append("UPPER(vin) = UPPER(?)")
            params.append(vin.strip())
        if not clauses:
            return []
        with get_connection(self._db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT id, policy_number, claimant_name, vin, claim_type, loss_state,
                       loss_date, status, routing_decision, created_at
                FROM claims WHERE {' AND '.join(clauses)}
                ORDER BY loss_date ASC
                """,
                params,
            ).fetchall()
        return [dict(r) for r in rows]

    def count_prior_claims(
        self,
        claimant_name: str,
        since: datetime,
        exclude_claim_id: Optional[str] = None,
    ) -> int:
        """Claims filed by ``claimant_name`` with a loss date on or after ``since``."""
        query = """
            SELECT COUNT(*) AS n FROM claims
            WHERE LOWER(claimant_name) = LOWER(?) AND loss_date >= ?
        """
        params: list[Any] = [claimant_name.strip(), _utc_iso(since)]
        if exclude_claim_id:
            query += " AND id != ?"
            params.append(exclude_claim_id)
        with get_connection(self._db_path) as conn:
            row = conn.execute(query, params).fetchone()
        return int(row["n"])

    def save_policy(self, policy: PolicyRecord) -> None:
        """Store or replace the policy snapshot for its policy number."""
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO policies (policy_number, payload) VALUES (?, ?)
                ON CONFLICT(policy_number) DO UPDATE SET
                    payload = excluded.payload, updated_at = datetime('now')
                """,
                (policy.policy_number, policy.model_dump_json()),
            )

    def get_policy(self, policy_number: str) -> Optional[PolicyRecord]:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT payload FROM policies WHERE policy_number = ?", (policy_number,)
            ).fetchone()
        if row is None:
            return None
        return PolicyRecord.model_validate_json(row["payload"])

    def acquire_run_lock(self, claim_id: str, run_id: str) -> None:
        """Take the exclusive run lock for ``claim_id`` or raise ClaimAlreadyProcessingError."""
        try:
            with get_connection(self._db_path) as conn:
                conn.execute(
                    "INSERT INTO active_runs (claim_id, run_id) VALUES (?, ?)",
                    (claim_id, run_id),
                )
        except sqlite3.IntegrityError as e:
            raise ClaimAlreadyProcessingError(claim_id, self.get_active_run(claim_id)) from e

    def release_run_lock(self, claim_id: str, run_id: str) -> None:
        """Release the lock if ``run_id`` still owns it."""
        with get_connection(self._db_path) as conn:
            conn.execute(
                "DELETE FROM active_runs WHERE claim_id = ? AND run_id = ?",
                (claim_id, run_id),
            )

    def get_active_run(self, claim_id: str) -> Optional[str]:
        with get_connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT run_id FROM active_runs WHERE claim_id = ?", (claim_id,)
            ).fetchone()
        return row["run_id"] if row else None
