"""CLI entry point for claim triage.

Commands print JSON on stdout. Errors go to stderr with exit code 1. Logs go
to stderr in human-readable or JSON format (``--json``).
"""

import json
import sys
from pathlib import Path
from typing import Any, Optional

from claim_triage.config.settings import get_valuation_config
from claim_triage.db.repository import ClaimRepository
from claim_triage.exceptions import ClaimTriageError, ClaimValidationError
from claim_triage.observability.logger import configure_logging
from claim_triage.observability.metrics import get_metrics
from claim_triage.sources.base import ExternalSources
from claim_triage.sources.cache import CachingPricingSource
from claim_triage.sources.history import RepositoryClaimHistory
from claim_triage.sources.http import http_fraud_signal_from_env, http_pricing_sources_from_env
from claim_triage.sources.static import build_reference_sources, load_reference_data
from claim_triage.workflow.intake import parse_submission
from claim_triage.workflow.orchestrator import ClaimOrchestrator


def _usage() -> str:
    return """Usage:
  claim-triage process <submission.json>   Validate and process a new claim
  claim-triage status <claim_id>           Get claim status
  claim-triage history <claim_id>          Get claim audit log
  claim-triage runs <claim_id>             Get workflow runs for a claim
  claim-triage reprocess <claim_id>        Re-run the pipeline for a stored claim
  claim-triage metrics [claim_id]          Show metrics (optionally for one claim)

Options:
  --debug                                  Enable debug logging
  --json                                   Use JSON log format
"""


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_sources(repository: ClaimRepository) -> ExternalSources:
    """Reference-data collaborators, with HTTP pricing and fraud signal when configured."""
    sources = build_reference_sources(load_reference_data(), RepositoryClaimHistory(repository))
    cfg = get_valuation_config()
    http_pricing = http_pricing_sources_from_env()
    if http_pricing:
        sources.pricing = [
            CachingPricingSource(
                source,
                ttl_seconds=cfg["pricing_cache_ttl_seconds"],
                max_entries=cfg["pricing_cache_max_entries"],
            )
            for source in http_pricing
        ]
    fraud_signal = http_fraud_signal_from_env()
    if fraud_signal is not None:
        sources.fraud_signal = fraud_signal
    return sources


def _orchestrator(repository: ClaimRepository) -> ClaimOrchestrator:
    return ClaimOrchestrator(build_sources(repository), repository=repository)


def cmd_process(submission_path: Path) -> None:
    """Process a new claim from a submission JSON file."""
    if not submission_path.exists():
        _fail(f"File not found: {submission_path}")
    try:
        with open(submission_path, encoding="utf-8") as f:
            submission = json.load(f)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {submission_path}: {e}")
    try:
        claim, policy = parse_submission(submission)
    except ClaimValidationError as e:
        _print({"status": e.status, "validation_errors": e.errors})
        _fail(f"Claim rejected at intake ({e.status})")
    repository = ClaimRepository()
    try:
        result = _orchestrator(repository).submit_and_process(claim, policy)
    except ClaimTriageError as e:
        _fail(f"Claim processing failed: {e}")
    print(result.model_dump_json(indent=2))


def _require_claim(repository: ClaimRepository, claim_id: str) -> dict[str, Any]:
    claim = repository.get_claim(claim_id)
    if claim is None:
        _fail(f"Claim not found: {claim_id}")
    return claim


def cmd_status(claim_id: str) -> None:
    repository = ClaimRepository()
    claim = _require_claim(repository, claim_id)
    claim.pop("payload", None)
    _print(claim)


def cmd_history(claim_id: str) -> None:
    """Print the claim audit log."""
    repository = ClaimRepository()
    _require_claim(repository, claim_id)
    _print(repository.get_claim_history(claim_id))


def cmd_runs(claim_id: str) -> None:
    repository = ClaimRepository()
    _require_claim(repository, claim_id)
    _print(repository.get_workflow_runs(claim_id))


def cmd_reprocess(claim_id: str) -> None:
    """Re-run the pipeline for a stored claim against its stored policy."""
    repository = ClaimRepository()
    _require_claim(repository, claim_id)
    try:
        result = _orchestrator(repository).process(claim_id)
    except ClaimTriageError as e:
        _fail(str(e))
    print(result.model_dump_json(indent=2))


def cmd_metrics(claim_id: Optional[str] = None) -> None:
    """Display metrics for claims processed in this session."""
    metrics = get_metrics()
    if claim_id and metrics.get_claim_summary(claim_id) is None:
        _fail(f"No metrics found for claim: {claim_id}")
    print(metrics.export_json(claim_id))


def main() -> None:
    """Run the claim triage CLI: process, status, history, runs, reprocess or metrics."""
    argv = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    options = [arg for arg in sys.argv[1:] if arg.startswith("--")]

    configure_logging(
        structured=True if "--json" in options else None,
        level="DEBUG" if "--debug" in options else None,
    )

    if not argv:
        print(_usage(), file=sys.stderr)
        sys.exit(1)

    command = argv[0].lower()

    if command in ("status", "history", "runs", "reprocess"):
        if len(argv) < 2:
            print(f"Error: {command} requires <claim_id>", file=sys.stderr)
            print(_usage(), file=sys.stderr)
            sys.exit(1)
        handler = {
            "status": cmd_status,
            "history": cmd_history,
            "runs": cmd_runs,
            "reprocess": cmd_reprocess,
        }[command]
        handler(argv[1])
        return

    if command == "metrics":
        cmd_metrics(argv[1] if len(argv) > 1 else None)
        return

    if command == "process":
        if len(argv) < 2:
            print("Error: process requires <submission.json>", file=sys.stderr)
            print(_usage(), file=sys.stderr)
            sys.exit(1)
        cmd_process(Path(argv[1]))
        return

    print(f"Error: Unknown command: {command}", file=sys.stderr)
    print(_usage(), file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
