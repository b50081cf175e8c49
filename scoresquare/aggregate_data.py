import logging
from typing import Iterable

from scoresquare.models import Address, GameRecord, ParticipationStats

logger = logging.getLogger(__name__)

# Folding on-chain games and tickets into per-address participation stats


def _new_tally():
    return {"tickets": 0, "deployed": 0, "value_wei": 0, "game_ids": set()}


def aggregate_participation(
    games: Iterable[GameRecord],
) -> tuple[set[Address], dict[Address, ParticipationStats]]:
    """
    Count tickets, distinct games and deployments per address.

    Refunded games contribute nothing. A game counts once towards
    games_participated per address, whether that address deployed it,
    bought squares in it, or both.
    """
    tallies: dict[Address, dict] = {}
    refunded = 0

    for game in games:
        if game.refunded:
            refunded += 1
            continue

        # Deployer
        if game.deployer_address:
            addr = Address(game.deployer_address)
            t = tallies.setdefault(addr, _new_tally())
            t["deployed"] += 1
            t["game_ids"].add(game.game_id)

        # Ticket buyers
        for ticket in game.tickets:
            addr = Address(ticket.buyer_address)
            t = tallies.setdefault(addr, _new_tally())
            t["tickets"] += 1
            t["value_wei"] += game.square_price_wei
            t["game_ids"].add(game.game_id)

    stats = {
        addr: ParticipationStats(
            tickets_purchased=t["tickets"],
            games_participated=len(t["game_ids"]),
            games_deployed=t["deployed"],
            ticket_value_wei=t["value_wei"],
            game_ids=tuple(sorted(t["game_ids"])),
        )
        for addr, t in tallies.items()
    }

    logger.debug("[aggregate] %d addresses, %d refunded games skipped",
                 len(stats), refunded)
    return set(stats), stats
