"""Claim history backed by the claims database."""

from datetime import datetime
from typing import Optional

from claim_triage.db.repository import ClaimRepository
from claim_triage.sources.base import ClaimHistorySource


class RepositoryClaimHistory(ClaimHistorySource):
    """Counts prior claims from the SQLite claims table."""

    def __init__(self, repository: Optional[ClaimRepository] = None):
        self._repo = repository or ClaimRepository()

    def count_prior_claims(
        self, claimant_name: str, since: datetime, exclude_claim_id: Optional[str] = None
    ) -> int:
        return self._repo.count_prior_claims(claimant_name, since, exclude_claim_id)
