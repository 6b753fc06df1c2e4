"""SQLite persistence for claims, audit log, workflow runs and run locks."""

from claim_triage.db.database import get_connection, get_db_path, init_db
from claim_triage.db.repository import ClaimRepository

__all__ = [
    "ClaimRepository",
    "get_connection",
    "get_db_path",
    "init_db",
]
