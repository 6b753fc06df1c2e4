"""Deterministic in-memory collaborators, and loading them from reference data."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.claim import ClaimDocument, ClaimRecord, VehicleRecord
from claim_triage.models.review import ExtractionResult
from claim_triage.models.valuation import PricingQuote
from claim_triage.sources.base import (
    WATCHLIST_CATEGORIES,
    ClaimHistorySource,
    DocumentExtractor,
    ExternalSources,
    FraudSignalSource,
    PricingSource,
    SalvageBidSource,
    VehicleHistory,
    VehicleHistorySource,
    WatchlistSource,
)


def vehicle_key(vehicle: VehicleRecord) -> str:
    """Fallback lookup key when a VIN has no entry: year_make_model, lower-cased."""
    return f"{vehicle.year}_{vehicle.make}_{vehicle.model}".lower().replace(" ", "_")


class StaticPricingSource(PricingSource):
    """Quotes from a fixed VIN (or year_make_model) table."""

    def __init__(self, name: str, values: dict[str, float], confidence: int = 85):
        self.name = name
        # VINs and year_make_model keys share one case-insensitive table
        self._values = {k.lower(): v for k, v in values.items()}
        self._confidence = confidence

    def get_acv(self, vehicle: VehicleRecord) -> PricingQuote:
        value = self._values.get(vehicle.vin.lower()) or self._values.get(vehicle_key(vehicle))
        if not value:
            raise ExternalSourceError(self.name, f"no quote for {vehicle.vin}")
        return PricingQuote(source=self.name, value=value, confidence=self._confidence)


class StaticSalvageBidSource(SalvageBidSource):
    def __init__(self, bids: Optional[dict[str, list[float]]] = None):
        self._bids = {k.upper(): list(v) for k, v in (bids or {}).items()}

    def get_bids(self, vehicle: VehicleRecord) -> list[float]:
        return list(self._bids.get(vehicle.vin.upper(), []))


class StaticWatchlist(WatchlistSource):
    """Case-insensitive name lists per category (claimant, provider, attorney, shop)."""

    def __init__(self, entries: Optional[dict[str, list[str]]] = None):
        entries = entries or {}
        self._entries = {
            category: {n.strip().lower() for n in entries.get(category, [])}
            for category in WATCHLIST_CATEGORIES
        }

    def is_listed(self, name: str, category: str) -> bool:
        if not name:
            return False
        return name.strip().lower() in self._entries.get(category, set())


class StaticVehicleHistory(VehicleHistorySource):
    def __init__(self, histories: Optional[dict[str, VehicleHistory]] = None):
        self._histories = {k.upper(): v for k, v in (histories or {}).items()}

    def get_history(self, vin: str) -> Optional[VehicleHistory]:
        return self._histories.get(vin.upper())


class StaticClaimHistory(ClaimHistorySource):
    """Prior-claim loss dates per claimant."""

    def __init__(self, loss_dates: Optional[dict[str, list[datetime]]] = None):
        self._loss_dates = {k.strip().lower(): list(v) for k, v in (loss_dates or {}).items()}

    def count_prior_claims(
        self, claimant_name: str, since: datetime, exclude_claim_id: Optional[str] = None
    ) -> int:
        dates = self._loss_dates.get(claimant_name.strip().lower(), [])
        return sum(1 for d in dates if d >= since)


class StaticFraudSignal(FraudSignalSource):
    """Fixed external fraud signal per claimant; ``default`` for everyone else."""

    def __init__(self, scores: Optional[dict[str, float]] = None, default: float = 0.0):
        self._scores = {k.strip().lower(): v for k, v in (scores or {}).items()}
        self._default = default

    def score(self, claim: ClaimRecord) -> float:
        return self._scores.get(claim.claimant_name.strip().lower(), self._default)


class MetadataExtractor(DocumentExtractor):
    """Reads structured fields already attached to the document's metadata.

    A document whose metadata sets ``unreadable`` fails extraction.
    """

    def extract(self, document: ClaimDocument) -> ExtractionResult:
        metadata = dict(document.metadata)
        if metadata.pop("unreadable", False):
            raise ExternalSourceError("extractor", f"document {document.document_id} is unreadable")
        confidence = float(metadata.pop("confidence", 0.9))
        return ExtractionResult(
            document_id=document.document_id,
            document_type=document.document_type.value,
            success=True,
            structured_fields=metadata,
            confidence=confidence,
        )


def _reference_data_path() -> Path:
    path = os.environ.get("REFERENCE_DATA_PATH")
    if path:
        return Path(path)
    return Path(__file__).resolve().parent.parent / "data" / "reference_data.json"


def load_reference_data(path: Optional[str] = None) -> dict[str, Any]:
    """Load the reference data JSON. Raises ExternalSourceError if it cannot be read."""
    data_path = Path(path) if path else _reference_data_path()
    try:
        with open(data_path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ExternalSourceError("reference_data", e) from e


def build_reference_sources(
    data: dict[str, Any], claim_history: ClaimHistorySource
) -> ExternalSources:
    """Wire static collaborators from reference data; claim history is supplied by the caller."""
    pricing = [
        StaticPricingSource(name, values)
        for name, values in data.get("pricing_sources", {}).items()
    ]
    histories = {
        vin: VehicleHistory.model_validate({"vin": vin, **entry})
        for vin, entry in data.get("vehicle_histories", {}).items()
    }
    return ExternalSources(
        pricing=pricing,
        salvage=StaticSalvageBidSource(data.get("salvage_bids", {})),
        watchlist=StaticWatchlist(data.get("watchlists", {})),
        vehicle_history=StaticVehicleHistory(histories),
        claim_history=claim_history,
        extractor=MetadataExtractor(),
        fraud_signal=StaticFraudSignal(data.get("fraud_signals", {})),
    )
