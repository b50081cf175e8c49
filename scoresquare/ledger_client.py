import logging

import requests
from pydantic import ValidationError

from scoresquare import config
from scoresquare.errors import SourceUnavailable
from scoresquare.http_client import make_session
from scoresquare.models import Address, GameRecord, TicketRecord
from scoresquare.schemas import LedgerGame, LedgerResponse

logger = logging.getLogger(__name__)

GAMES_QUERY = """
query GetScoreSquarePlayers($first: Int = 1000, $skip: Int = 0) {
  games(
    first: $first
    skip: $skip
    orderBy: createdAt
    orderDirection: desc
    where: { refunded: false }
  ) {
    id
    gameId
    eventId
    deployer
    squarePrice
    createdAt
    refunded
    prizeClaimed
    tickets {
      buyer
      squareIndex
      purchasedAt
    }
  }
}
"""

# Status codes that mean the subgraph deployment is gone rather than busy.
REMOVED_STATUSES = (404, 410)

# Hosted graph-node rejects queries with skip above this.
MAX_SKIP = 5000


def _to_game_record(game: LedgerGame) -> GameRecord:
    tickets = []
    seen_squares = set()
    for t in game.tickets:
        if not t.buyer:
            continue
        if t.squareIndex in seen_squares:
            logger.warning("[ledger] game %s: duplicate square %s dropped",
                           game.gameId, t.squareIndex)
            continue
        seen_squares.add(t.squareIndex)
        tickets.append(TicketRecord(
            game_id=game.gameId,
            buyer_address=Address(t.buyer),
            square_index=t.squareIndex,
            purchased_at=t.purchasedAt,
        ))

    return GameRecord(
        game_id=game.gameId,
        event_id=game.eventId,
        deployer_address=Address(game.deployer) if game.deployer else None,
        created_at=game.createdAt,
        refunded=game.refunded,
        prize_claimed=game.prizeClaimed,
        square_price_wei=game.squarePrice,
        tickets=tuple(tickets),
    )


class GameLedgerClient:
    """Reads ScoreSquare games and their tickets from the subgraph."""

    def __init__(self, url=None, *, session=None, timeout=None):
        self.url = url or config.SUBGRAPH_URL
        self.session = session or make_session(pool=2, headers={"Content-Type": "application/json"})
        self.timeout = timeout or config.TIMEOUT_LEDGER

    def _post(self, variables: dict) -> LedgerResponse:
        try:
            resp = self.session.post(
                self.url,
                json={"query": GAMES_QUERY, "variables": variables},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SourceUnavailable(f"ledger unreachable: {e}") from e

        if resp.status_code in REMOVED_STATUSES:
            raise SourceUnavailable(
                f"ledger endpoint not found (status {resp.status_code})")
        if not resp.ok:
            raise SourceUnavailable(f"ledger returned status {resp.status_code}")

        try:
            payload = LedgerResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise SourceUnavailable(f"ledger returned an invalid payload: {e}") from e

        if payload.errors:
            messages = "; ".join(err.message for err in payload.errors)
            raise SourceUnavailable(f"ledger query failed: {messages}")
        if payload.data is None:
            raise SourceUnavailable("ledger response had no data")
        return payload

    def fetch_games(self, limit: int = 1000, offset: int = 0) -> list[GameRecord]:
        """
        One page of games, newest first. Games with a non-positive square
        price are dropped here; refunded games are kept on the record and
        left to the aggregator.
        """
        payload = self._post({"first": int(limit), "skip": int(offset)})

        games = []
        skipped = 0
        for raw in payload.data.games:
            if raw.squarePrice <= 0:
                skipped += 1
                continue
            games.append(_to_game_record(raw))

        games.sort(key=lambda g: g.created_at, reverse=True)
        logger.debug("[ledger] page first=%s skip=%s -> %d games (%d free games skipped)",
                     limit, offset, len(games), skipped)
        return games

    def fetch_all_games(self, page_size: int = 1000, max_pages: int = 50,
                        max_skip: int = MAX_SKIP) -> list[GameRecord]:
        games: list[GameRecord] = []
        seen: set[str] = set()
        for page in range(max_pages):
            offset = page * page_size
            if offset > max_skip:
                logger.warning("[ledger] skip %d exceeds the subgraph limit of %d; "
                               "returning the newest %d games", offset, max_skip, len(games))
                break
            # Short pages are detected on the raw count, before the price filter.
            payload = self._post({"first": page_size, "skip": offset})
            raw_games = payload.data.games
            for raw in raw_games:
                if raw.squarePrice <= 0 or raw.gameId in seen:
                    continue
                seen.add(raw.gameId)
                games.append(_to_game_record(raw))
            if len(raw_games) < page_size:
                break
        else:
            logger.warning("[ledger] stopped after %d pages; results may be truncated", max_pages)

        games.sort(key=lambda g: g.created_at, reverse=True)
        logger.info("[ledger] fetched %d games", len(games))
        return games
