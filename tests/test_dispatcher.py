from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from core.config import FilterConfig, ScheduleConfig
from core.dispatcher import DispatchLoop, order_for_dispatch
from core.errors import PersistenceError, SendError, TransientFetchError
from core.models import Actor, Candidate, DedupeEntry


def _candidate(candidate_id: int, *, submitted_at: int = 100, owner_id: int = 1, currency: str = "USD",
               skills: Tuple[str, ...] = ("A", "B")) -> Candidate:
    return Candidate(
        id=candidate_id,
        owner_id=owner_id,
        submitted_at=submitted_at,
        title=f"Project {candidate_id}",
        description="desc",
        currency_code=currency,
        currency_sign="$",
        budget_min=10.0,
        budget_max=30.0,
        bid_count=1,
        bid_avg=20.0,
        skills=skills,
        seo_url=f"p/{candidate_id}",
    )


def _actor(actor_id: int = 1, *, deposit_made: bool = True, payment_verified: bool = False) -> Actor:
    return Actor(
        id=actor_id,
        username=f"user{actor_id}",
        registered_at=0,
        country="India",
        reputation=4.5,
        deposit_made=deposit_made,
        payment_verified=payment_verified,
    )


class FakeFeed:
    def __init__(self, batches: List[object]) -> None:
        self._batches = list(batches)
        self.calls = 0

    async def fetch(self):
        batch = self._batches[min(self.calls, len(self._batches) - 1)]
        self.calls += 1
        if isinstance(batch, Exception):
            raise batch
        return batch


class FakeStore:
    def __init__(self) -> None:
        self.entries: Dict[int, bool] = {}
        self.lookups: List[int] = []
        self.marked: List[int] = []
        self.fail_mark = False
        self.fail_lookup = False

    def find_or_create(self, candidate_id: int) -> Tuple[DedupeEntry, bool]:
        if self.fail_lookup:
            raise PersistenceError("db locked")
        self.lookups.append(candidate_id)
        created = candidate_id not in self.entries
        self.entries.setdefault(candidate_id, False)
        return DedupeEntry(candidate_id, self.entries[candidate_id]), created

    def mark_notified(self, candidate_id: int) -> None:
        self.marked.append(candidate_id)
        if self.fail_mark:
            raise PersistenceError("disk full")
        self.entries[candidate_id] = True


class FakeNotifier:
    def __init__(self, fail_ids: Optional[Set[int]] = None) -> None:
        self.sent: List[str] = []
        self.fail_ids = fail_ids or set()

    async def verify(self) -> None:
        return None

    async def send(self, text: str) -> None:
        if int(text) in self.fail_ids:
            raise SendError("channel rejected message")
        self.sent.append(text)

    async def close(self) -> None:
        return None


class RecordingScheduler:
    def __init__(self) -> None:
        self.sleeps: List[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def _loop(feed, store, notifier, scheduler, max_skills: int = 5) -> DispatchLoop:
    return DispatchLoop(
        feed=feed,
        store=store,
        notifier=notifier,
        formatter=lambda candidate, actor: str(candidate.id),
        rules=FilterConfig(max_skills=max_skills, excluded_currency="INR"),
        schedule=ScheduleConfig(message_delay_seconds=2.0, cycle_delay_seconds=60.0),
        scheduler=scheduler,
    )


def test_order_for_dispatch_sorts_by_submission_and_keeps_ties_stable() -> None:
    ordered = order_for_dispatch(
        [_candidate(1, submitted_at=50), _candidate(2, submitted_at=10), _candidate(3, submitted_at=30),
         _candidate(4, submitted_at=10)]
    )
    assert [c.id for c in ordered] == [2, 4, 3, 1]


def test_sends_in_ascending_submission_order() -> None:
    batch = ([_candidate(50, submitted_at=50), _candidate(10, submitted_at=10), _candidate(30, submitted_at=30)],
             {1: _actor()})
    notifier = FakeNotifier()
    loop = _loop(FakeFeed([batch]), FakeStore(), notifier, RecordingScheduler())

    asyncio.run(loop.run_cycle())

    assert notifier.sent == ["10", "30", "50"]


def test_unqualified_candidates_never_touch_the_store() -> None:
    batch = (
        [
            _candidate(1, currency="INR"),
            _candidate(2, skills=("A", "B", "C", "D", "E", "F")),
            _candidate(3, owner_id=2),
        ],
        {1: _actor(1), 2: _actor(2, deposit_made=False, payment_verified=False)},
    )
    store = FakeStore()
    notifier = FakeNotifier()
    loop = _loop(FakeFeed([batch]), store, notifier, RecordingScheduler())

    report = asyncio.run(loop.run_cycle())

    assert store.lookups == []
    assert store.marked == []
    assert notifier.sent == []
    assert report.fetched == 3
    assert report.qualified == 0


def test_end_to_end_second_cycle_skips_already_notified() -> None:
    batch = ([_candidate(7, skills=("A", "B"))], {1: _actor(1, deposit_made=True, payment_verified=True)})
    store = FakeStore()
    notifier = FakeNotifier()
    scheduler = RecordingScheduler()
    loop = _loop(FakeFeed([batch, batch]), store, notifier, scheduler)

    asyncio.run(loop.run_forever(max_cycles=2))

    assert notifier.sent == ["7"]
    assert store.marked == [7]
    assert store.lookups == [7, 7]
    assert store.entries[7] is True
    # one message delay after the send, one cycle delay per cycle
    assert scheduler.sleeps == [2.0, 60.0, 60.0]


def test_failed_send_is_left_unnotified_and_retried_next_cycle() -> None:
    batch = ([_candidate(1, submitted_at=1), _candidate(2, submitted_at=2)], {1: _actor()})
    store = FakeStore()
    notifier = FakeNotifier(fail_ids={1})
    scheduler = RecordingScheduler()
    loop = _loop(FakeFeed([batch, batch]), store, notifier, scheduler)

    first = asyncio.run(loop.run_cycle())
    assert first.failed == 1
    assert first.sent == 1
    assert store.entries == {1: False, 2: True}
    # the failure does not stop the cycle and is not followed by a message delay
    assert notifier.sent == ["2"]
    assert scheduler.sleeps == [2.0]

    notifier.fail_ids.clear()
    second = asyncio.run(loop.run_cycle())

    assert second.sent == 1
    assert second.already_notified == 1
    assert notifier.sent == ["2", "1"]
    assert store.entries == {1: True, 2: True}


def test_persistence_failure_after_send_is_logged_and_not_resent(caplog) -> None:
    batch = ([_candidate(5)], {1: _actor()})
    store = FakeStore()
    store.fail_mark = True
    notifier = FakeNotifier()
    loop = _loop(FakeFeed([batch, batch]), store, notifier, RecordingScheduler())

    with caplog.at_level(logging.WARNING):
        asyncio.run(loop.run_cycle())
    assert notifier.sent == ["5"]
    assert "could not be marked notified" in caplog.text

    store.fail_mark = False
    asyncio.run(loop.run_cycle())

    assert notifier.sent == ["5"]
    assert store.marked == [5, 5]
    assert store.entries[5] is True


def test_lookup_failure_skips_candidate_without_sending() -> None:
    batch = ([_candidate(1)], {1: _actor()})
    store = FakeStore()
    store.fail_lookup = True
    notifier = FakeNotifier()
    loop = _loop(FakeFeed([batch]), store, notifier, RecordingScheduler())

    report = asyncio.run(loop.run_cycle())

    assert notifier.sent == []
    assert report.failed == 1


def test_missing_owner_skips_only_that_candidate() -> None:
    batch = ([_candidate(1, owner_id=99), _candidate(2, owner_id=1)], {1: _actor(1)})
    store = FakeStore()
    notifier = FakeNotifier()
    loop = _loop(FakeFeed([batch]), store, notifier, RecordingScheduler())

    report = asyncio.run(loop.run_cycle())

    assert report.malformed == 1
    assert notifier.sent == ["2"]
    assert store.lookups == [2]


def test_fetch_error_is_contained_and_next_cycle_runs() -> None:
    batch = ([_candidate(3)], {1: _actor()})
    feed = FakeFeed([TransientFetchError("timeout"), batch])
    notifier = FakeNotifier()
    scheduler = RecordingScheduler()
    loop = _loop(feed, FakeStore(), notifier, scheduler)

    asyncio.run(loop.run_forever(max_cycles=2))

    assert feed.calls == 2
    assert notifier.sent == ["3"]
    assert scheduler.sleeps == [60.0, 2.0, 60.0]


def test_unexpected_error_does_not_stop_the_loop() -> None:
    feed = FakeFeed([RuntimeError("boom"), ([], {})])
    scheduler = RecordingScheduler()
    loop = _loop(feed, FakeStore(), FakeNotifier(), scheduler)

    asyncio.run(loop.run_forever(max_cycles=2))

    assert feed.calls == 2
    assert scheduler.sleeps == [60.0, 60.0]


def test_entry_created_earlier_but_unnotified_is_sent() -> None:
    batch = ([_candidate(4)], {1: _actor()})
    store = FakeStore()
    store.entries[4] = False
    notifier = FakeNotifier()
    loop = _loop(FakeFeed([batch]), store, notifier, RecordingScheduler())

    asyncio.run(loop.run_cycle())

    assert notifier.sent == ["4"]
    assert store.entries[4] is True
