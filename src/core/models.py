"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the feed's wire format. All of them are immutable once built.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Candidate:
    """One listing fetched from the feed in a given cycle."""

    id: int
    owner_id: int
    submitted_at: int
    title: str
    description: str
    currency_code: str
    currency_sign: str
    budget_min: float
    budget_max: Optional[float]
    bid_count: int
    bid_avg: float
    skills: Tuple[str, ...]
    seo_url: str


@dataclass(frozen=True)
class Actor:
    """The account that posted a candidate."""

    id: int
    username: str
    registered_at: int
    country: Optional[str]
    reputation: float
    deposit_made: bool
    payment_verified: bool

    @property
    def is_verified(self) -> bool:
        return self.deposit_made or self.payment_verified


@dataclass(frozen=True)
class DedupeEntry:
    """Persisted notification state for one candidate id."""

    candidate_id: int
    notified: bool
