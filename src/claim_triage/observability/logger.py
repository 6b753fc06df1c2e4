"""Structured logging with claim context.

- ClaimLogger: LoggerAdapter that stamps claim fields onto every record and logs domain events
- claim_context: thread-local context for a block of work on one claim
- current_claim_context / bound_context: carry the context into worker threads
"""

import json
import logging
import os
import sys
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

_context = threading.local()

_CONTEXT_FIELDS = ("claim_id", "claim_type", "policy_number")


def current_claim_context() -> dict[str, Any]:
    """Snapshot of the calling thread's claim context."""
    return dict(getattr(_context, "claim_data", {}))


def _set_claim_context(data: dict[str, Any]) -> None:
    _context.claim_data = data


def _record_field(record: logging.LogRecord, name: str, ctx: dict[str, Any]) -> Any:
    return getattr(record, name, None) or ctx.get(name)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = current_claim_context()
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for name in _CONTEXT_FIELDS:
            value = _record_field(record, name, ctx)
            if value:
                payload[name] = value
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["data"] = extra_data
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Timestamped line with a [claim=..., type=...] prefix."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        ctx = current_claim_context()
        parts = []
        claim_id = _record_field(record, "claim_id", ctx)
        if claim_id:
            parts.append(f"claim={claim_id}")
        claim_type = _record_field(record, "claim_type", ctx)
        if claim_type:
            parts.append(f"type={claim_type}")
        prefix = f" [{', '.join(parts)}]" if parts else ""
        line = f"{timestamp} {record.levelname:8}{prefix} {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ClaimLogger(logging.LoggerAdapter):
    """Logger adapter that adds claim fields and supports structured events."""

    def __init__(self, logger: logging.Logger, claim_id: Optional[str] = None):
        super().__init__(logger, {})
        self._claim_id = claim_id

    def bind(self, claim_id: str) -> "ClaimLogger":
        """Return a logger pinned to ``claim_id`` regardless of thread context."""
        return ClaimLogger(self.logger, claim_id)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = kwargs.setdefault("extra", {})
        if self._claim_id and "claim_id" not in extra:
            extra["claim_id"] = self._claim_id
        return msg, kwargs

    def log_event(self, event: str, level: int = logging.INFO, **data: Any) -> None:
        """Log a named domain event, e.g. ``phase_completed``, with key=value details."""
        details = ", ".join(f"{k}={v}" for k, v in data.items())
        message = f"[{event}] {details}" if details else f"[{event}]"
        self.log(level, message, extra={"extra_data": {"event": event, **data}})


def _configure(logger: logging.Logger, structured: Optional[bool]) -> None:
    if structured is None:
        structured = os.environ.get("CLAIM_TRIAGE_LOG_FORMAT", "human").lower() == "json"
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if structured else HumanReadableFormatter())
    logger.addHandler(handler)
    level = os.environ.get("CLAIM_TRIAGE_LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level, logging.INFO))
    logger.propagate = False


def configure_logging(structured: Optional[bool] = None, level: Optional[str] = None) -> None:
    """(Re)configure the package root logger. Used by the CLI for --json/--debug."""
    root = logging.getLogger("claim_triage")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    _configure(root, structured)
    if level:
        root.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str, claim_id: Optional[str] = None) -> ClaimLogger:
    """ClaimLogger for ``name``. Handlers live on the ``claim_triage`` root logger."""
    root = logging.getLogger("claim_triage")
    if not root.handlers:
        _configure(root, None)
    return ClaimLogger(logging.getLogger(name), claim_id)


@contextmanager
def claim_context(
    claim_id: str,
    claim_type: Optional[str] = None,
    policy_number: Optional[str] = None,
    **extra: Any,
):
    """Attach claim fields to every log line emitted by this thread inside the block.

    Usage:
        with claim_context(claim_id="CLM-123", claim_type="COLLISION"):
            logger.info("Scoring severity")
    """
    previous = current_claim_context()
    _set_claim_context(
        {"claim_id": claim_id, "claim_type": claim_type, "policy_number": policy_number, **extra}
    )
    try:
        yield
    finally:
        _set_claim_context(previous)


def bound_context(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Wrap ``fn`` so it runs under the caller's claim context in a worker thread."""
    snapshot = current_claim_context()

    def runner(*args: Any, **kwargs: Any) -> Any:
        if not snapshot.get("claim_id"):
            return fn(*args, **kwargs)
        with claim_context(**snapshot):
            return fn(*args, **kwargs)

    return runner
