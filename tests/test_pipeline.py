from __future__ import annotations

import sqlite3
import threading
import unittest
from unittest.mock import patch

from scoresquare.errors import SourceUnavailable
from scoresquare.fixtures import fixture_games
from scoresquare.leaderboard_cache import MemoryStore, ResultCache
from scoresquare.models import Address, GameRecord, Identity, TicketRecord
from scoresquare.pipeline import (
    STALE_MESSAGE,
    UNAVAILABLE_MESSAGE,
    LeaderboardService,
    run_pipeline,
)

TTL = 24 * 60 * 60
T0 = 1_735_700_000.0


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class InMemoryLedger:
    def __init__(self, games=None, error=None):
        self.games = list(games or [])
        self.error = error
        self.calls = 0

    def fetch_all_games(self, page_size=1000, max_pages=50):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.games)


class InMemoryResolver:
    def __init__(self, identities=None):
        self.identities = dict(identities or {})
        self.requested = []

    def resolve(self, addresses, stop_event=None):
        wanted = {Address(a) for a in addresses}
        self.requested.append(wanted)
        return {a: i for a, i in self.identities.items() if a in wanted}


class LockedStore(MemoryStore):
    """MemoryStore whose writes can be made to fail like a busy SQLite file."""

    def __init__(self):
        super().__init__()
        self.locked = False

    def set_many(self, items):
        if self.locked:
            raise sqlite3.OperationalError("database is locked")
        super().set_many(items)


def _games():
    return [
        GameRecord(
            game_id="1",
            event_id="evt_1",
            deployer_address=Address("0xAA"),
            square_price_wei=100,
            tickets=(
                TicketRecord("1", Address("0xBB"), 0),
                TicketRecord("1", Address("0xBB"), 1),
                TicketRecord("1", Address("0xCC"), 2),
            ),
        )
    ]


class TestRunPipeline(unittest.TestCase):
    def test_end_to_end_ranking(self):
        bb = Address("0xbb")
        resolver = InMemoryResolver({bb: Identity(requested_address=bb, fid=7, username="bee")})

        result = run_pipeline(InMemoryLedger(_games()), resolver)

        self.assertFalse(result.used_fixtures)
        self.assertEqual([e.address for e in result.entries], ["0xbb", "0xcc", "0xaa"])
        self.assertEqual(result.entries[0].username, "bee")
        self.assertEqual(resolver.requested, [{"0xaa", "0xbb", "0xcc"}])

    def test_source_unavailable_propagates(self):
        with self.assertRaises(SourceUnavailable):
            run_pipeline(InMemoryLedger(error=SourceUnavailable("down")), InMemoryResolver())

    def test_fixtures_only_when_allowed(self):
        result = run_pipeline(InMemoryLedger(error=SourceUnavailable("down")),
                              InMemoryResolver(), allow_fixtures=True)

        self.assertTrue(result.used_fixtures)
        self.assertEqual(len(result.entries), 5)
        self.assertEqual(len(result.entries), len({e.address for e in result.entries}))

    def test_empty_ledger_gives_empty_board(self):
        result = run_pipeline(InMemoryLedger([]), InMemoryResolver())
        self.assertEqual(result.entries, [])


class TestLeaderboardService(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock(T0)
        self.cache = ResultCache(MemoryStore(), ttl_seconds=TTL,
                                 privileged_fids=(4163,), clock=self.clock)

    def _service(self, ledger, resolver=None):
        return LeaderboardService(ledger, resolver or InMemoryResolver(), self.cache,
                                  allow_fixtures=False)

    def test_first_read_computes_then_serves_cache(self):
        ledger = InMemoryLedger(_games())
        service = self._service(ledger)

        first = service.get_leaderboard()
        second = service.get_leaderboard()

        self.assertEqual(first.status, "fresh")
        self.assertEqual(second.status, "cached")
        self.assertEqual(ledger.calls, 1)
        self.assertEqual(first.entries, second.entries)
        self.assertEqual(first.snapshot.computed_at, T0)

    def test_expired_snapshot_is_recomputed(self):
        ledger = InMemoryLedger(_games())
        service = self._service(ledger)
        service.get_leaderboard()

        self.clock.now = T0 + TTL + 1
        view = service.get_leaderboard()

        self.assertEqual(view.status, "fresh")
        self.assertEqual(ledger.calls, 2)

    def test_failed_refresh_serves_last_known_snapshot(self):
        ledger = InMemoryLedger(_games())
        service = self._service(ledger)
        good = service.get_leaderboard()

        self.clock.now = T0 + TTL + 1
        ledger.error = SourceUnavailable("subgraph removed")
        view = service.get_leaderboard()

        self.assertEqual(view.status, "stale")
        self.assertEqual(view.message, STALE_MESSAGE)
        self.assertEqual(view.entries, good.entries)
        self.assertEqual(self.cache.last_known().computed_at, T0)

    def test_failed_cache_write_still_serves_fresh_board(self):
        store = LockedStore()
        cache = ResultCache(store, ttl_seconds=TTL, privileged_fids=(4163,), clock=self.clock)
        ledger = InMemoryLedger(_games())
        service = LeaderboardService(ledger, InMemoryResolver(), cache, allow_fixtures=False)
        first = service.get_leaderboard()
        self.assertEqual(first.status, "fresh")

        self.clock.now = T0 + TTL + 1
        store.locked = True
        view = service.get_leaderboard()

        self.assertEqual(view.status, "fresh")
        self.assertEqual(view.entries, first.entries)
        self.assertEqual(view.snapshot.computed_at, T0 + TTL + 1)
        self.assertEqual(ledger.calls, 2)
        self.assertEqual(cache.last_known().computed_at, T0)

    def test_unexpected_refresh_error_serves_last_known_snapshot(self):
        ledger = InMemoryLedger(_games())
        service = self._service(ledger)
        good = service.get_leaderboard()

        self.clock.now = T0 + TTL + 1
        ledger.error = ValueError("Address must not be empty")
        view = service.get_leaderboard()

        self.assertEqual(view.status, "stale")
        self.assertEqual(view.entries, good.entries)

    def test_unexpected_refresh_error_without_history_is_unavailable(self):
        service = self._service(InMemoryLedger(error=RuntimeError("boom")))

        view = service.get_leaderboard()

        self.assertEqual(view.status, "unavailable")
        self.assertEqual(view.message, UNAVAILABLE_MESSAGE)

    def test_failed_refresh_without_history_is_unavailable(self):
        service = self._service(InMemoryLedger(error=SourceUnavailable("down")))

        view = service.get_leaderboard()

        self.assertEqual(view.status, "unavailable")
        self.assertEqual(view.message, UNAVAILABLE_MESSAGE)
        self.assertEqual(view.entries, ())
        self.assertIsNone(view.snapshot)

    def test_privileged_invalidate_forces_recompute(self):
        ledger = InMemoryLedger(_games())
        service = self._service(ledger)
        service.get_leaderboard()

        service.invalidate(1)
        self.assertEqual(service.get_leaderboard().status, "cached")

        service.invalidate(4163)
        self.assertEqual(service.get_leaderboard().status, "fresh")
        self.assertEqual(ledger.calls, 2)

    def test_concurrent_refreshes_share_one_run(self):
        started = threading.Event()
        release = threading.Event()
        joined = threading.Event()

        class BlockingLedger(InMemoryLedger):
            def fetch_all_games(self, page_size=1000, max_pages=50):
                self.calls += 1
                started.set()
                release.wait(5)
                return list(self.games)

        ledger = BlockingLedger(_games())
        service = self._service(ledger)
        results = []

        def worker():
            results.append(service.refresh())

        def note_join(msg, *args):
            if "joining" in msg:
                joined.set()

        with patch("scoresquare.pipeline.logger") as logger:
            logger.debug.side_effect = note_join
            owner = threading.Thread(target=worker)
            owner.start()
            self.assertTrue(started.wait(5))

            follower = threading.Thread(target=worker)
            follower.start()
            self.assertTrue(joined.wait(5))

            release.set()
            owner.join(5)
            follower.join(5)

        self.assertEqual(ledger.calls, 1)
        self.assertEqual(len(results), 2)
        self.assertIs(results[0], results[1])

    def test_shutdown_stops_identity_lookups(self):
        seen = []

        class RecordingResolver(InMemoryResolver):
            def resolve(self, addresses, stop_event=None):
                seen.append(stop_event.is_set())
                return {}

        service = self._service(InMemoryLedger(fixture_games()), RecordingResolver())
        service.shutdown()
        service.refresh()

        self.assertEqual(seen, [True])


if __name__ == "__main__":
    unittest.main()
