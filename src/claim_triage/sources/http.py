"""HTTP adapters for pricing and fraud-signal services."""

import os
from typing import Any, Optional

import requests

from claim_triage.config.settings import HTTP_TIMEOUT_SECONDS
from claim_triage.exceptions import ExternalSourceError
from claim_triage.models.claim import ClaimRecord, VehicleRecord
from claim_triage.models.valuation import PricingQuote
from claim_triage.observability.logger import get_logger
from claim_triage.sources.base import FraudSignalSource, PricingSource
from claim_triage.utils.retry import with_retry

logger = get_logger(__name__)


class HttpSourceError(OSError):
    """Retryable transport or 5xx failure from an HTTP collaborator."""


def _headers(api_key: Optional[str]) -> dict[str, str]:
    headers = {"Accept": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _check_response(resp: requests.Response, source: str) -> dict[str, Any]:
    if resp.status_code >= 500:
        raise HttpSourceError(f"{source} returned {resp.status_code}")
    if resp.status_code >= 400:
        raise ExternalSourceError(source, f"HTTP {resp.status_code}: {resp.text[:200]}")
    try:
        return resp.json()
    except ValueError as e:
        raise ExternalSourceError(source, "response is not JSON") from e


class HttpPricingSource(PricingSource):
    """GET {base_url}/acv?vin=...&year=...&make=...&model=...&mileage=...

    Expects ``{"value": float, "confidence": int}``.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @with_retry()
    def _fetch(self, params: dict[str, Any]) -> dict[str, Any]:
        resp = requests.get(
            f"{self._base_url}/acv",
            params=params,
            headers=_headers(self._api_key),
            timeout=self._timeout,
        )
        return _check_response(resp, self.name)

    def get_acv(self, vehicle: VehicleRecord) -> PricingQuote:
        params = {
            "vin": vehicle.vin,
            "year": vehicle.year,
            "make": vehicle.make,
            "model": vehicle.model,
        }
        if vehicle.mileage is not None:
            params["mileage"] = vehicle.mileage
        try:
            data = self._fetch(params)
        except OSError as e:
            raise ExternalSourceError(self.name, e) from e
        try:
            return PricingQuote(
                source=self.name,
                value=float(data["value"]),
                confidence=int(data.get("confidence", 85)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalSourceError(self.name, f"unexpected response: {data}") from e


class HttpFraudSignalSource(FraudSignalSource):
    """POST {url} with a claim summary; expects ``{"score": float}`` in 0-100."""

    name = "fraud_signal"

    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout

    @with_retry()
    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        resp = requests.post(
            self._url, json=body, headers=_headers(self._api_key), timeout=self._timeout
        )
        return _check_response(resp, self.name)

    def score(self, claim: ClaimRecord) -> float:
        body = {
            "claim_id": claim.claim_id,
            "claim_type": claim.claim_type.value,
            "loss_date": claim.loss_date.isoformat(),
            "state": claim.state_code,
            "vin": claim.vehicle.vin,
            "estimated_amount": claim.estimated_amount,
            "injuries": claim.injuries.any_injuries,
            "participant_count": len(claim.participants),
        }
        try:
            data = self._post(body)
            value = float(data["score"])
        except OSError as e:
            raise ExternalSourceError(self.name, e) from e
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalSourceError(self.name, "unexpected response") from e
        return max(0.0, min(100.0, value))


def http_pricing_sources_from_env() -> list[PricingSource]:
    """Pricing adapters from PRICING_SOURCE_URLS ("name=url,name=url") and PRICING_API_KEY."""
    raw = os.environ.get("PRICING_SOURCE_URLS", "")
    api_key = os.environ.get("PRICING_API_KEY") or None
    sources: list[PricingSource] = []
    for entry in raw.split(","):
        if "=" not in entry:
            continue
        name, url = entry.split("=", 1)
        if name.strip() and url.strip():
            sources.append(HttpPricingSource(name.strip(), url.strip(), api_key))
    if sources:
        logger.info("Configured %d HTTP pricing source(s)", len(sources))
    return sources


def http_fraud_signal_from_env() -> Optional[FraudSignalSource]:
    url = os.environ.get("FRAUD_SIGNAL_URL")
    if not url:
        return None
    return HttpFraudSignalSource(url, os.environ.get("FRAUD_SIGNAL_API_KEY") or None)
