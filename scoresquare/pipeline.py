import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field

from scoresquare import config
from scoresquare.aggregate_data import aggregate_participation
from scoresquare.errors import SourceUnavailable
from scoresquare.fixtures import fixture_games
from scoresquare.leaderboard import build_leaderboard
from scoresquare.models import STALE, Address, CacheSnapshot, LeaderboardEntry, ParticipationStats

logger = logging.getLogger(__name__)

STALE_MESSAGE = "Leaderboard temporarily unavailable, showing last known results."
UNAVAILABLE_MESSAGE = "Leaderboard temporarily unavailable. Please try again later."


@dataclass
class PipelineResult:
    entries: list[LeaderboardEntry]
    stats: dict[Address, ParticipationStats]
    used_fixtures: bool = False


@dataclass
class LeaderboardView:
    snapshot: CacheSnapshot | None
    status: str  # fresh | cached | stale | unavailable
    message: str | None = None
    entries: tuple = field(init=False)

    def __post_init__(self):
        self.entries = self.snapshot.entries if self.snapshot else ()


def run_pipeline(ledger, resolver, *, page_size=None, allow_fixtures=False,
                 stop_event: threading.Event | None = None) -> PipelineResult:
    """
    fetch -> aggregate -> resolve -> build, in order.

    SourceUnavailable propagates unless allow_fixtures is set, in which
    case the deterministic fixture ledger is used instead (dev/test only).
    """
    used_fixtures = False
    try:
        games = ledger.fetch_all_games(page_size=page_size or config.LEDGER_PAGE_SIZE)
    except SourceUnavailable as e:
        if not allow_fixtures:
            raise
        logger.warning("[pipeline] ledger unavailable (%s); using FIXTURE data", e)
        games = fixture_games()
        used_fixtures = True

    addresses, stats = aggregate_participation(games)
    logger.info("[pipeline] %d games -> %d unique addresses", len(games), len(addresses))

    identities = resolver.resolve(addresses, stop_event=stop_event)
    entries = build_leaderboard(addresses, stats, identities)
    return PipelineResult(entries=entries, stats=stats, used_fixtures=used_fixtures)


class LeaderboardService:
    """
    Serves the cached leaderboard and recomputes it when stale.

    Concurrent refreshes share one in-flight run: the first caller computes,
    later callers wait on the same Future. A failed refresh leaves the last
    good snapshot in the cache.
    """

    def __init__(self, ledger, resolver, cache, *, allow_fixtures=None, page_size=None):
        self.ledger = ledger
        self.resolver = resolver
        self.cache = cache
        self.allow_fixtures = config.DEV_FIXTURES if allow_fixtures is None else allow_fixtures
        self.page_size = page_size
        self._lock = threading.Lock()
        self._inflight: Future | None = None
        self._stop = threading.Event()

    def compute(self) -> CacheSnapshot:
        result = run_pipeline(
            self.ledger, self.resolver,
            page_size=self.page_size,
            allow_fixtures=self.allow_fixtures,
            stop_event=self._stop,
        )
        return CacheSnapshot(
            entries=tuple(result.entries),
            computed_at=self.cache.clock(),
            ttl_seconds=self.cache.ttl_seconds,
        )

    def refresh(self) -> CacheSnapshot:
        with self._lock:
            fut = self._inflight
            owner = fut is None
            if owner:
                fut = Future()
                self._inflight = fut

        if not owner:
            logger.debug("[pipeline] joining in-flight refresh")
            return fut.result()

        try:
            snapshot = self.compute()
            try:
                self.cache.put(snapshot)
            except Exception:
                logger.exception("[pipeline] could not store snapshot; serving it uncached")
            fut.set_result(snapshot)
            return snapshot
        except BaseException as e:
            fut.set_exception(e)
            raise
        finally:
            with self._lock:
                self._inflight = None

    def get_leaderboard(self) -> LeaderboardView:
        cached = self.cache.get()
        if cached is not STALE:
            return LeaderboardView(cached, "cached")

        try:
            return LeaderboardView(self.refresh(), "fresh")
        except SourceUnavailable as e:
            logger.error("[pipeline] refresh failed: %s", e)
        except Exception:
            logger.exception("[pipeline] refresh failed unexpectedly")

        last = self.cache.last_known()
        if last is not None:
            return LeaderboardView(last, "stale", STALE_MESSAGE)
        return LeaderboardView(None, "unavailable", UNAVAILABLE_MESSAGE)

    def invalidate(self, caller_fid) -> None:
        self.cache.invalidate(caller_fid)

    def shutdown(self) -> None:
        self._stop.set()
