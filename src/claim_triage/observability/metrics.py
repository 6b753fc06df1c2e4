"""Per-claim processing metrics.

- ClaimMetrics: thread-safe collector for run, phase and external-call measurements
- Latency percentiles per claim and global decision/escalation statistics
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from claim_triage.observability.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PhaseMetric:
    """Timing and outcome for one phase of one run."""

    phase: str
    duration_ms: float
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ExternalCallMetric:
    """One call to an external collaborator (pricing, watchlist, extractor, ...)."""

    source: str
    latency_ms: float
    status: str
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ClaimMetricsSummary:
    """Summary of metrics for a single claim."""

    claim_id: str
    start_time: datetime
    end_time: Optional[datetime]
    status: str
    decision: Optional[str]
    phases_completed: int
    phases_failed: int
    total_phase_ms: float
    p50_phase_ms: float
    p95_phase_ms: float
    p99_phase_ms: float
    external_calls: int
    external_failures: int
    sources_used: list[str]

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "status": self.status,
            "decision": self.decision,
            "phases_completed": self.phases_completed,
            "phases_failed": self.phases_failed,
            "total_phase_ms": self.total_phase_ms,
            "p50_phase_ms": self.p50_phase_ms,
            "p95_phase_ms": self.p95_phase_ms,
            "p99_phase_ms": self.p99_phase_ms,
            "external_calls": self.external_calls,
            "external_failures": self.external_failures,
            "sources_used": self.sources_used,
        }


def _percentile(values: list[float], p: float) -> float:
    """Linear-interpolated p-th percentile."""
    if not values:
        return 0.0
    ordered = sorted(values)
    k = (len(ordered) - 1) * p / 100
    lo = int(k)
    hi = lo + 1
    if hi >= len(ordered):
        return ordered[-1]
    return ordered[lo] + (k - lo) * (ordered[hi] - ordered[lo])


class ClaimMetrics:
    """Collects phase timings, external-call outcomes and decisions per claim."""

    def __init__(self):
        self._lock = threading.RLock()
        self._claims: dict[str, dict[str, Any]] = {}

    def _entry(self, claim_id: str) -> dict[str, Any]:
        if claim_id not in self._claims:
            self._claims[claim_id] = {
                "start_time": datetime.now(timezone.utc),
                "end_time": None,
                "status": "processing",
                "decision": None,
                "phases": [],
                "external_calls": [],
            }
        return self._claims[claim_id]

    def start_claim(self, claim_id: str) -> None:
        """Begin a run. A rerun of the same claim resets its timing window."""
        with self._lock:
            entry = self._entry(claim_id)
            entry["start_time"] = datetime.now(timezone.utc)
            entry["end_time"] = None
            entry["status"] = "processing"
            entry["decision"] = None

    def end_claim(
        self, claim_id: str, status: str = "completed", decision: Optional[str] = None
    ) -> None:
        with self._lock:
            entry = self._entry(claim_id)
            entry["end_time"] = datetime.now(timezone.utc)
            entry["status"] = status
            entry["decision"] = decision
        logger.debug("Finished tracking claim %s: status=%s decision=%s", claim_id, status, decision)

    def record_phase(self, claim_id: str, phase: str, duration_ms: float, success: bool) -> None:
        with self._lock:
            self._entry(claim_id)["phases"].append(PhaseMetric(phase, duration_ms, success))

    def record_external_call(
        self,
        claim_id: str,
        source: str,
        latency_ms: float,
        status: str = "success",
        error: Optional[str] = None,
    ) -> None:
        """Record a collaborator call. ``status`` is success, error or timeout."""
        with self._lock:
            self._entry(claim_id)["external_calls"].append(
                ExternalCallMetric(source, latency_ms, status, error)
            )
        if status != "success":
            logger.debug("External source %s %s after %.0fms", source, status, latency_ms)

    def get_claim_summary(self, claim_id: str) -> Optional[ClaimMetricsSummary]:
        with self._lock:
            if claim_id not in self._claims:
                return None
            entry = self._claims[claim_id]
            phases: list[PhaseMetric] = list(entry["phases"])
            calls: list[ExternalCallMetric] = list(entry["external_calls"])
            durations = [p.duration_ms for p in phases]
            return ClaimMetricsSummary(
                claim_id=claim_id,
                start_time=entry["start_time"],
                end_time=entry["end_time"],
                status=entry["status"],
                decision=entry["decision"],
                phases_completed=sum(1 for p in phases if p.success),
                phases_failed=sum(1 for p in phases if not p.success),
                total_phase_ms=sum(durations),
                p50_phase_ms=_percentile(durations, 50),
                p95_phase_ms=_percentile(durations, 95),
                p99_phase_ms=_percentile(durations, 99),
                external_calls=len(calls),
                external_failures=sum(1 for c in calls if c.status != "success"),
                sources_used=sorted({c.source for c in calls}),
            )

    def get_all_summaries(self) -> list[ClaimMetricsSummary]:
        with self._lock:
            claim_ids = list(self._claims.keys())
        return [s for s in (self.get_claim_summary(cid) for cid in claim_ids) if s]

    def get_global_stats(self) -> dict[str, Any]:
        summaries = self.get_all_summaries()
        if not summaries:
            return {
                "total_claims": 0,
                "decisions": {},
                "escalation_rate": 0.0,
                "external_failures": 0,
                "avg_duration_ms": 0.0,
            }
        decisions: dict[str, int] = {}
        for s in summaries:
            if s.decision:
                decisions[s.decision] = decisions.get(s.decision, 0) + 1
        decided = sum(decisions.values())
        auto = decisions.get("auto_approve", 0)
        return {
            "total_claims": len(summaries),
            "decisions": decisions,
            "escalation_rate": (decided - auto) / decided if decided else 0.0,
            "external_failures": sum(s.external_failures for s in summaries),
            "avg_duration_ms": sum(s.duration_ms for s in summaries) / len(summaries),
        }

    def export_json(self, claim_id: Optional[str] = None) -> str:
        if claim_id:
            summary = self.get_claim_summary(claim_id)
            if not summary:
                return json.dumps({"error": f"Claim not found: {claim_id}"})
            return json.dumps(summary.to_dict(), indent=2, default=str)
        return json.dumps(
            {
                "global_stats": self.get_global_stats(),
                "claims": [s.to_dict() for s in self.get_all_summaries()],
            },
            indent=2,
            default=str,
        )


_global_metrics: Optional[ClaimMetrics] = None
_metrics_lock = threading.Lock()


def get_metrics() -> ClaimMetrics:
    """Process-wide ClaimMetrics instance."""
    global _global_metrics
    with _metrics_lock:
        if _global_metrics is None:
            _global_metrics = ClaimMetrics()
        return _global_metrics


def reset_metrics() -> None:
    """Drop all collected metrics (tests, long-lived workers)."""
    global _global_metrics
    with _metrics_lock:
        _global_metrics = None
