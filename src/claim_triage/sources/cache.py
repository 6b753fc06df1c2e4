"""TTL cache in front of a pricing source."""

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from claim_triage.models.claim import VehicleRecord
from claim_triage.models.valuation import PricingQuote
from claim_triage.sources.base import PricingSource


class CachingPricingSource(PricingSource):
    """Caches successful quotes keyed by (VIN, mileage). Failures are never cached."""

    def __init__(
        self,
        inner: PricingSource,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1000,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.name = inner.name
        self._inner = inner
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: OrderedDict[tuple[str, Optional[int]], tuple[float, PricingQuote]] = (
            OrderedDict()
        )

    def get_acv(self, vehicle: VehicleRecord) -> PricingQuote:
        key = (vehicle.vin.upper(), vehicle.mileage)
        now = self._clock()
        with self._lock:
            hit = self._entries.get(key)
            if hit is not None and now - hit[0] < self._ttl:
                self._entries.move_to_end(key)
                return hit[1]
        quote = self._inner.get_acv(vehicle)
        with self._lock:
            self._entries[key] = (now, quote)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return quote

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
