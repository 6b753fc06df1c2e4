"""Evidence collection and advisory liability analysis for phase 2.

Each document is extracted on its own worker. A document that fails or times
out is recorded as failed and counted missing; its siblings are unaffected.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Optional

from claim_triage.config.settings import get_orchestrator_config
from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.claim import ClaimDocument, ClaimRecord, DocumentType
from claim_triage.models.review import (
    EvidencePackage,
    ExtractionResult,
    InvestigationResult,
    LiabilityAnalysis,
    LiabilityFactor,
    LiabilityScenario,
)
from claim_triage.observability.logger import bound_context, get_logger
from claim_triage.sources.base import DocumentExtractor, call_source

logger = get_logger(__name__)

REQUIRED_DOCUMENTS = (DocumentType.PHOTO, DocumentType.ESTIMATE, DocumentType.POLICE_REPORT)
RECOMMENDED_DOCUMENTS = (DocumentType.WITNESS_STATEMENT, DocumentType.MEDICAL_RECORDS)

REAR_END_WEIGHT = 80
RED_LIGHT_WEIGHT = 90
INTOXICATION_WEIGHT = 95
FACTOR_SCALE = 0.3
SCENARIO_SPREAD = 20


# ---------------------------------------------------------------------------
# Evidence collection
# ---------------------------------------------------------------------------

def _failed(document: ClaimDocument, error: str) -> ExtractionResult:
    return ExtractionResult(
        document_id=document.document_id,
        document_type=document.document_type.value,
        success=False,
        error=error,
    )


def extract_documents(
    documents: list[ClaimDocument],
    extractor: DocumentExtractor,
    timeout: float,
    max_workers: int = 8,
) -> list[ExtractionResult]:
    """Extract every document concurrently, preserving input order."""
    if not documents:
        return []
    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(documents))), thread_name_prefix="extract"
    )
    try:
        futures: list[Future] = [
            executor.submit(bound_context(call_source), "extractor", extractor.extract, doc)
            for doc in documents
        ]
        done, _ = wait(futures, timeout=timeout)
        results = []
        for document, future in zip(documents, futures):
            if future not in done:
                future.cancel()
                error = f"extraction timed out after {timeout}s"
            else:
                try:
                    results.append(future.result())
                    continue
                except ExternalSourceError as e:
                    error = str(e)
                except Exception as e:
                    error = f"{type(e).__name__}: {e}"
            logger.log_event(
                "extraction_failed",
                level=logging.WARNING,
                document_id=document.document_id,
                document_type=document.document_type.value,
                error=error,
            )
            results.append(_failed(document, error))
        return results
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def completeness_score(present: set[str]) -> int:
    """70 points for required documents and 30 for recommended, pro rata."""
    required = sum(1 for t in REQUIRED_DOCUMENTS if t.value in present)
    recommended = sum(1 for t in RECOMMENDED_DOCUMENTS if t.value in present)
    return round(required / len(REQUIRED_DOCUMENTS) * 70 + recommended / len(RECOMMENDED_DOCUMENTS) * 30)


def _damage_areas(claim: ClaimRecord, extractions: list[ExtractionResult]) -> list[str]:
    areas = list(claim.damage.damaged_areas)
    for extraction in extractions:
        if extraction.success and extraction.document_type == DocumentType.PHOTO.value:
            for area in extraction.structured_fields.get("damage_areas", []):
                if area not in areas:
                    areas.append(area)
    return areas


def collect_evidence(
    claim: ClaimRecord,
    extractor: DocumentExtractor,
    config: Optional[dict[str, Any]] = None,
) -> EvidencePackage:
    cfg = config or get_orchestrator_config()
    extractions = extract_documents(
        claim.documents, extractor, cfg["document_timeout_seconds"], cfg["max_workers"]
    )
    present = {e.document_type for e in extractions if e.success}
    return EvidencePackage(
        extractions=extractions,
        damage_areas=_damage_areas(claim, extractions),
        present_types=sorted(present),
        missing_required=[t.value for t in REQUIRED_DOCUMENTS if t.value not in present],
        missing_recommended=[t.value for t in RECOMMENDED_DOCUMENTS if t.value not in present],
        failed_documents=[e.document_id for e in extractions if not e.success],
        completeness_score=completeness_score(present),
    )


# ---------------------------------------------------------------------------
# Liability
# ---------------------------------------------------------------------------

def _is_rear_end(claim: ClaimRecord) -> bool:
    text = claim.loss_description.lower()
    return "rear-end" in text or "rear end" in text or "rear-ended" in text


def liability_factors(claim: ClaimRecord) -> list[LiabilityFactor]:
    factors = []
    if _is_rear_end(claim):
        direction = "decreases" if claim.other_parties else "increases"
        factors.append(
            LiabilityFactor(
                name="Rear-end collision",
                weight=REAR_END_WEIGHT,
                direction=direction,
                description="Following driver is presumed at fault",
            )
        )
    if claim.circumstances.insured_ran_red_light:
        factors.append(
            LiabilityFactor(
                name="Traffic signal violation",
                weight=RED_LIGHT_WEIGHT,
                direction="increases",
                description="Insured entered the intersection against a red light",
            )
        )
    if claim.circumstances.intoxicated_driver:
        factors.append(
            LiabilityFactor(
                name="Driver impairment",
                weight=INTOXICATION_WEIGHT,
                direction="increases",
                description="Insured driver was impaired",
            )
        )
    return factors


def analyze_liability(claim: ClaimRecord) -> LiabilityAnalysis:
    """Advisory fault split starting from 50/50. Never authoritative."""
    factors = liability_factors(claim)
    insured = 50.0
    for factor in factors:
        delta = factor.weight * FACTOR_SCALE
        insured += delta if factor.direction == "increases" else -delta
    insured_pct = int(round(min(100.0, max(0.0, insured))))

    scenarios = [
        LiabilityScenario(name="Base case", insured_percent=insured_pct),
        LiabilityScenario(
            name="Favorable",
            insured_percent=max(0, insured_pct - SCENARIO_SPREAD),
            description="Witness statements support the insured",
        ),
        LiabilityScenario(
            name="Unfavorable",
            insured_percent=min(100, insured_pct + SCENARIO_SPREAD),
            description="Additional evidence against the insured",
        ),
    ]

    reasons = []
    if claim.injuries.any_injuries:
        reasons.append("Injuries reported")
    if len(claim.other_parties) > 1:
        reasons.append("Multiple other parties involved")
    if any(f.weight > 80 for f in factors):
        reasons.append("High-weight liability factor present")
    if insured_pct > 75:
        reasons.append(f"Insured fault at {insured_pct}%")

    return LiabilityAnalysis(
        insured_fault_percent=insured_pct,
        other_party_percent=100 - insured_pct,
        factors=factors,
        scenarios=scenarios,
        requires_human_review=bool(reasons),
        review_reasons=reasons,
    )


def investigate(
    claim: ClaimRecord,
    extractor: DocumentExtractor,
    config: Optional[dict[str, Any]] = None,
) -> InvestigationResult:
    evidence = collect_evidence(claim, extractor, config)
    liability = analyze_liability(claim)
    logger.log_event(
        "investigation_completed",
        completeness=evidence.completeness_score,
        failed_documents=evidence.failed_documents,
        insured_fault=liability.insured_fault_percent,
        liability_review=liability.requires_human_review,
    )
    return InvestigationResult(evidence=evidence, liability=liability)
