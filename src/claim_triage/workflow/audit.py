"""Durable audit trail for one orchestration run.

Non-critical events are fire-and-forget. CRITICAL events are retried with
backoff, buffered in memory if they still fail, and re-sent on ``flush()``;
they are never dropped silently.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Optional

from claim_triage.config.settings import AUDIT_STRICT_CRITICAL
from claim_triage.db.constants import AUDIT_SEVERITY_CRITICAL, AUDIT_SEVERITY_INFO
from claim_triage.db.repository import ClaimRepository
from claim_triage.exceptions import AuditDeliveryError
from claim_triage.observability.logger import get_logger
from claim_triage.utils.retry import with_retry

logger = get_logger(__name__)

AUDIT_WRITE_ERRORS: tuple[type[BaseException], ...] = (sqlite3.Error, OSError)


@dataclass
class AuditEvent:
    action: str
    phase: Optional[str] = None
    severity: str = AUDIT_SEVERITY_INFO
    details: Any = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None

    @property
    def critical(self) -> bool:
        return self.severity == AUDIT_SEVERITY_CRITICAL


class AuditTrail:
    """Writes audit events for one claim through the repository."""

    def __init__(
        self,
        claim_id: str,
        repository: ClaimRepository,
        strict_critical: bool = AUDIT_STRICT_CRITICAL,
        max_attempts: int = 3,
        min_wait: float = 0.05,
        max_wait: float = 0.5,
    ):
        self.claim_id = claim_id
        self._repo = repository
        self._strict = strict_critical
        self._pending: list[AuditEvent] = []
        self.written = 0
        self._write_with_retry = with_retry(
            max_attempts=max_attempts,
            min_wait=min_wait,
            max_wait=max_wait,
            exceptions=AUDIT_WRITE_ERRORS,
        )(self._write)

    @property
    def pending(self) -> int:
        """CRITICAL events waiting for redelivery."""
        return len(self._pending)

    def _write(self, event: AuditEvent) -> None:
        self._repo.append_audit_event(
            self.claim_id,
            event.action,
            phase=event.phase,
            severity=event.severity,
            details=event.details,
            old_status=event.old_status,
            new_status=event.new_status,
        )
        self.written += 1

    def record(
        self,
        action: str,
        phase: Optional[str] = None,
        details: Any = None,
        critical: bool = False,
        old_status: Optional[str] = None,
        new_status: Optional[str] = None,
    ) -> bool:
        """Write one event. Returns whether it was persisted."""
        event = AuditEvent(
            action=action,
            phase=phase,
            severity=AUDIT_SEVERITY_CRITICAL if critical else AUDIT_SEVERITY_INFO,
            details=details,
            old_status=old_status,
            new_status=new_status,
        )
        if not event.critical:
            try:
                self._write(event)
            except AUDIT_WRITE_ERRORS as e:
                logger.log_event(
                    "audit_write_failed", level=logging.WARNING, action=action, error=str(e)
                )
                return False
            return True

        try:
            self._write_with_retry(event)
        except AUDIT_WRITE_ERRORS as e:
            self._pending.append(event)
            logger.log_event(
                "audit_write_failed",
                level=logging.CRITICAL,
                action=action,
                error=str(e),
                buffered=len(self._pending),
            )
            return False
        return True

    def flush(self) -> bool:
        """Re-send buffered CRITICAL events.

        Returns True when nothing is left undelivered. When events remain, raises
        AuditDeliveryError in strict mode, otherwise logs them at CRITICAL level
        and returns False.
        """
        remaining: list[AuditEvent] = []
        for event in self._pending:
            try:
                self._write_with_retry(event)
            except AUDIT_WRITE_ERRORS as e:
                remaining.append(event)
                logger.log_event(
                    "audit_write_failed",
                    level=logging.CRITICAL,
                    action=event.action,
                    error=str(e),
                )
        self._pending = remaining
        if not remaining:
            return True
        if self._strict:
            raise AuditDeliveryError(len(remaining))
        return False
