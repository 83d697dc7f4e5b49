"""Ports (interfaces) used by the dispatch loop.

Ports define the minimal contracts for the feed, storage, notification, and
scheduling adapters so that the core can be reused with different backends
and driven by fakes in tests.
"""

from __future__ import annotations

from typing import Dict, List, Protocol, Tuple

from core.models import Actor, Candidate, DedupeEntry


class FeedPort(Protocol):
    """Source of candidates plus the owner side-table for one cycle."""

    async def fetch(self) -> Tuple[List[Candidate], Dict[int, Actor]]:
        ...


class DedupeStorePort(Protocol):
    """Durable record of which candidate ids were already reported."""

    def find_or_create(self, candidate_id: int) -> Tuple[DedupeEntry, bool]:
        ...

    def mark_notified(self, candidate_id: int) -> None:
        ...


class NotifierPort(Protocol):
    """Delivery of one rendered message to the configured channel."""

    async def verify(self) -> None:
        ...

    async def send(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...


class SchedulerPort(Protocol):
    async def sleep(self, seconds: float) -> None:
        ...
