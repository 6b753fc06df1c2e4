"""Observability for claim processing.

- Structured logging with claim ID context
- Phase latency and external-call metrics per claim
"""

from claim_triage.observability.logger import (
    ClaimLogger,
    bound_context,
    claim_context,
    configure_logging,
    current_claim_context,
    get_logger,
)
from claim_triage.observability.metrics import (
    ClaimMetrics,
    ClaimMetricsSummary,
    get_metrics,
    reset_metrics,
)

__all__ = [
    # Logger
    "ClaimLogger",
    "bound_context",
    "claim_context",
    "configure_logging",
    "current_claim_context",
    "get_logger",
    # Metrics
    "ClaimMetrics",
    "ClaimMetricsSummary",
    "get_metrics",
    "reset_metrics",
]
