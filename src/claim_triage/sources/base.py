"""Contracts for external collaborators.

Every lookup that feeds a score goes through one of these interfaces so that
scoring stays deterministic: tests plug in static doubles, the CLI plugs in
reference data, and production plugs in the HTTP adapters.

Implementations raise ExternalSourceError when the collaborator fails.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.claim import ClaimDocument, ClaimRecord, VehicleRecord
from claim_triage.models.review import ExtractionResult
from claim_triage.models.valuation import PricingQuote
from claim_triage.observability.logger import current_claim_context
from claim_triage.observability.metrics import get_metrics

T = TypeVar("T")

WATCHLIST_CATEGORIES = ("claimant", "provider", "attorney", "shop")


class VehicleHistory(BaseModel):
    """Title and damage history for a VIN."""

    vin: str
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    last_odometer: Optional[int] = None
    title_brand: Optional[str] = Field(default=None, description="e.g. salvage, rebuilt, flood")
    prior_damage_records: list[str] = Field(default_factory=list)


class PricingSource(ABC):
    """Market value lookup for a vehicle."""

    name: str = "pricing"

    @abstractmethod
    def get_acv(self, vehicle: VehicleRecord) -> PricingQuote:
        """Return the actual cash value quote for ``vehicle``."""


class SalvageBidSource(ABC):
    @abstractmethod
    def get_bids(self, vehicle: VehicleRecord) -> list[float]:
        """Historical salvage bids for comparable vehicles; may be empty."""


class WatchlistSource(ABC):
    @abstractmethod
    def is_listed(self, name: str, category: str) -> bool:
        """Whether ``name`` appears on the ``category`` watchlist."""


class VehicleHistorySource(ABC):
    @abstractmethod
    def get_history(self, vin: str) -> Optional[VehicleHistory]:
        """History for ``vin``, or None if the VIN has no record."""


class ClaimHistorySource(ABC):
    @abstractmethod
    def count_prior_claims(
        self, claimant_name: str, since: datetime, exclude_claim_id: Optional[str] = None
    ) -> int:
        """Number of claims by ``claimant_name`` with a loss on or after ``since``."""


class FraudSignalSource(ABC):
    @abstractmethod
    def score(self, claim: ClaimRecord) -> float:
        """External fraud signal in 0-100."""


class DocumentExtractor(ABC):
    """OCR / vision extraction for one document."""

    @abstractmethod
    def extract(self, document: ClaimDocument) -> ExtractionResult:
        """Structured fields and confidence for ``document``."""


@dataclass
class ExternalSources:
    """The collaborators one orchestration run talks to."""

    pricing: list[PricingSource]
    salvage: SalvageBidSource
    watchlist: WatchlistSource
    vehicle_history: VehicleHistorySource
    claim_history: ClaimHistorySource
    extractor: DocumentExtractor
    fraud_signal: Optional[FraudSignalSource] = None


def call_source(source: str, fn: Callable[..., T], *args: Any) -> T:
    """Invoke a collaborator, recording latency and outcome against the current claim.

    I/O and value errors are wrapped as ExternalSourceError. Anything else is
    recorded as an error and re-raised unchanged.
    """
    claim_id = current_claim_context().get("claim_id")
    start = time.perf_counter()
    status, error = "success", None
    try:
        return fn(*args)
    except ExternalSourceError as e:
        status, error = "error", str(e)
        raise
    except (OSError, ValueError) as e:
        status, error = "error", str(e)
        raise ExternalSourceError(source, e) from e
    except Exception as e:
        status, error = "error", f"{type(e).__name__}: {e}"
        raise
    finally:
        if claim_id:
            get_metrics().record_external_call(
                claim_id, source, (time.perf_counter() - start) * 1000, status, error
            )
