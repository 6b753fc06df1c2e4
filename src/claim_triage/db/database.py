"""SQLite connection and schema initialization."""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

# Database paths whose schema has already been applied in this process
_schema_initialized: set[str] = set()
_schema_lock = threading.Lock()

SCHEMA_SQL = """
-- Claims (one row per claim; payload holds the full ClaimRecord JSON)
CREATE TABLE IF NOT EXISTS claims (
    id TEXT PRIMARY KEY,
    policy_number TEXT NOT NULL,
    claimant_name TEXT NOT NULL,
    vin TEXT,
    claim_type TEXT NOT NULL,
    loss_state TEXT,
    loss_date TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'SUBMITTED',
    severity_score INTEGER,
    fraud_score INTEGER,
    settlement_amount REAL,
    routing_decision TEXT,
    payload TEXT NOT NULL,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Audit log (append-only: status changes, phase transitions, triggers, decisions)
CREATE TABLE IF NOT EXISTS claim_audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    claim_id TEXT NOT NULL,
    action TEXT NOT NULL,
    phase TEXT,
    severity TEXT NOT NULL DEFAULT 'INFO',
    old_status TEXT,
    new_status TEXT,
    details TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Workflow runs (one row per orchestration run)
CREATE TABLE IF NOT EXISTS workflow_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL UNIQUE,
    claim_id TEXT NOT NULL,
    status TEXT,
    decision TEXT,
    reason TEXT,
    priority TEXT,
    triggers TEXT,
    checklist TEXT,
    result TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    FOREIGN KEY (claim_id) REFERENCES claims(id)
);

-- Policies (resolved policy snapshot per policy number, used on reprocess)
CREATE TABLE IF NOT EXISTS policies (
    policy_number TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Exclusive per-claim run lock
CREATE TABLE IF NOT EXISTS active_runs (
    claim_id TEXT PRIMARY KEY,
    run_id TEXT NOT NULL,
    acquired_at TEXT DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_claims_vin ON claims(vin);
CREATE INDEX IF NOT EXISTS idx_claims_claimant ON claims(claimant_name);
CREATE INDEX IF NOT EXISTS idx_audit_claim ON claim_audit_log(claim_id);
"""


def get_db_path() -> str:
    """Path to the SQLite database from CLAIMS_DB_PATH, default data/claims.db."""
    return os.environ.get("CLAIMS_DB_PATH", "data/claims.db")


def init_db(path: Optional[str] = None) -> None:
    """Create tables if they do not exist."""
    db_path = path or get_db_path()
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.executescript(SCHEMA_SQL)
    with _schema_lock:
        _schema_initialized.add(db_path)


def _ensure_schema(db_path: str) -> None:
    with _schema_lock:
        if db_path in _schema_initialized:
            return
    init_db(db_path)


@contextmanager
def get_connection(path: Optional[str] = None):
    """Yield a connection that commits on success. Applies the schema once per path."""
    db_path = path or get_db_path()
    _ensure_schema(db_path)
    conn = sqlite3.connect(db_path, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()
