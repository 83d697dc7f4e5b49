"""Core dispatch loop.

Each cycle follows a strict order:
1) Fetch candidates and the owner side-table from the feed
2) Drop candidates that fail qualification (never touching the store)
3) Sort survivors by submission time, earliest first
4) For each survivor: dedupe check, render, send, mark notified
5) Sleep the inter-cycle delay and start over

Candidates are handled one at a time so the check-send-persist sequence never
races with itself and the messaging channel's rate limit is respected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set

from core.config import FilterConfig, ScheduleConfig
from core.errors import MalformedResponseError, PersistenceError, SendError, TransientFetchError
from core.models import Actor, Candidate
from core.ports import DedupeStorePort, FeedPort, NotifierPort, SchedulerPort
from core.qualification import qualification_failures

LOGGER = logging.getLogger(__name__)

Formatter = Callable[[Candidate, Actor], str]


@dataclass
class CycleReport:
    """Counters collected during one cycle, logged when it completes."""

    fetched: int = 0
    qualified: int = 0
    sent: int = 0
    already_notified: int = 0
    failed: int = 0
    malformed: int = 0

    def summary(self) -> str:
        return (
            f"fetched={self.fetched}, qualified={self.qualified}, sent={self.sent}, "
            f"already_notified={self.already_notified}, failed={self.failed}, "
            f"malformed={self.malformed}"
        )


def order_for_dispatch(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Sort by submission time ascending; ties keep feed order (sorted is stable)."""

    return sorted(candidates, key=lambda candidate: candidate.submitted_at)


def _owner_of(candidate: Candidate, actors: Dict[int, Actor]) -> Actor:
    actor = actors.get(candidate.owner_id)
    if actor is None:
        raise MalformedResponseError(
            f"owner {candidate.owner_id} of project {candidate.id} missing from feed users"
        )
    return actor


class DispatchLoop:
    """Orchestrates fetch, qualification, dedupe, delivery, and persistence."""

    def __init__(
        self,
        feed: FeedPort,
        store: DedupeStorePort,
        notifier: NotifierPort,
        formatter: Formatter,
        rules: FilterConfig,
        schedule: ScheduleConfig,
        scheduler: SchedulerPort,
    ) -> None:
        self._feed = feed
        self._store = store
        self._notifier = notifier
        self._formatter = formatter
        self._rules = rules
        self._schedule = schedule
        self._scheduler = scheduler
        # Delivered ids whose mark_notified failed; retried without resending.
        self._unpersisted: Set[int] = set()

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles back to back until cancelled (or ``max_cycles`` is reached)."""

        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            try:
                report = await self.run_cycle()
                LOGGER.info("Cycle complete: %s", report.summary())
            except (TransientFetchError, MalformedResponseError) as exc:
                LOGGER.warning("Cycle aborted: %s", exc)
            except Exception:
                LOGGER.exception("Unexpected error during cycle")
            cycles += 1
            await self._scheduler.sleep(self._schedule.cycle_delay_seconds)

    async def run_cycle(self) -> CycleReport:
        """Run one fetch-filter-sort-notify pass.

        Fetch-level errors propagate to the caller; everything that concerns a
        single candidate is handled here so one bad record never stops the rest.
        """

        LOGGER.info("Fetching projects...")
        candidates, actors = await self._feed.fetch()
        report = CycleReport(fetched=len(candidates))

        qualified: List[Candidate] = []
        for candidate in candidates:
            try:
                actor = _owner_of(candidate, actors)
            except MalformedResponseError as exc:
                LOGGER.warning("Skipping project %s: %s", candidate.id, exc)
                report.malformed += 1
                continue
            failures = qualification_failures(candidate, actor, self._rules)
            if failures:
                LOGGER.debug("Project %s not qualified: %s", candidate.id, "; ".join(failures))
                continue
            qualified.append(candidate)

        report.qualified = len(qualified)
        LOGGER.info("Qualified projects: %s", report.qualified)

        for candidate in order_for_dispatch(qualified):
            await self._dispatch(candidate, actors[candidate.owner_id], report)
        return report

    async def _dispatch(self, candidate: Candidate, actor: Actor, report: CycleReport) -> None:
        try:
            entry, created = self._store.find_or_create(candidate.id)
        except PersistenceError:
            LOGGER.exception("Dedupe lookup failed for project %s; skipping this cycle", candidate.id)
            report.failed += 1
            return

        if entry.notified:
            LOGGER.info("Notified already: %s", candidate.id)
            report.already_notified += 1
            return

        if candidate.id in self._unpersisted:
            # Delivered earlier in this process; only the bookkeeping is missing.
            report.already_notified += 1
            self._persist(candidate.id)
            return

        if not created:
            LOGGER.info("Retrying project %s (previous delivery did not complete)", candidate.id)

        text = self._formatter(candidate, actor)
        try:
            await self._notifier.send(text)
        except SendError as exc:
            LOGGER.error("Failed to notify project %s: %s", candidate.id, exc)
            report.failed += 1
            return

        LOGGER.info("Notified project: %s", candidate.id)
        report.sent += 1
        self._persist(candidate.id)
        await self._scheduler.sleep(self._schedule.message_delay_seconds)

    def _persist(self, candidate_id: int) -> None:
        try:
            self._store.mark_notified(candidate_id)
        except PersistenceError as exc:
            self._unpersisted.add(candidate_id)
            LOGGER.warning(
                "Project %s was delivered but could not be marked notified (%s); "
                "it may be sent again after a restart",
                candidate_id,
                exc,
            )
            return
        self._unpersisted.discard(candidate_id)
