"""Pluggable external collaborators: interfaces, static doubles, HTTP adapters."""

from claim_triage.sources.base import (
    call_source,
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
from claim_triage.sources.cache import CachingPricingSource

__all__ = [
    "call_source",
    "CachingPricingSource",
    "ClaimHistorySource",
    "DocumentExtractor",
    "ExternalSources",
    "FraudSignalSource",
    "PricingSource",
    "SalvageBidSource",
    "VehicleHistory",
    "VehicleHistorySource",
    "WatchlistSource",
]
