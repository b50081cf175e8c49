import logging
from dataclasses import replace
from typing import Iterable, Mapping

from scoresquare.models import Address, Identity, LeaderboardEntry, ParticipationStats

logger = logging.getLogger(__name__)

SHARE_TEMPLATE = "🎮 {label} is ranked #{rank} on the ScoreSquare leaderboard with {points} points! 🏆"


def _sort_key(entry: LeaderboardEntry):
    # points desc, deployed desc, participated desc, address asc
    return (-entry.points, -entry.games_deployed, -entry.games_participated, str(entry.address))


def build_leaderboard(
    addresses: Iterable[str],
    stats: Mapping[Address, ParticipationStats],
    identities: Mapping[Address, Identity],
) -> list[LeaderboardEntry]:
    """
    Join participation stats with resolved identities and rank everyone.

    points is the unscaled ticket count. Ties fall through to games
    deployed, then games participated, then the address, so the order is
    total and every rank is distinct.
    """
    unranked = []
    for raw in addresses:
        addr = Address(raw)
        s = stats.get(addr) or ParticipationStats()
        ident = identities.get(addr)
        unranked.append(LeaderboardEntry(
            address=addr,
            has_identity=ident is not None,
            fid=ident.fid if ident else None,
            username=ident.username if ident else None,
            display_name=ident.display_name if ident else None,
            follower_count=ident.follower_count if ident else None,
            following_count=ident.following_count if ident else None,
            avatar_url=ident.avatar_url if ident else None,
            custody_address=ident.custody_address if ident else None,
            tickets_purchased=s.tickets_purchased,
            games_participated=s.games_participated,
            games_deployed=s.games_deployed,
            ticket_value_wei=s.ticket_value_wei,
            points=s.tickets_purchased,
            rank=0,
        ))

    ranked = []
    for position, entry in enumerate(sorted(unranked, key=_sort_key), start=1):
        ranked.append(replace(entry, rank=position))
    logger.debug("[leaderboard] ranked %d players", len(ranked))
    return ranked


def summarize(entries: Iterable[LeaderboardEntry]) -> dict:
    entries = list(entries)
    with_identity = [e for e in entries if e.has_identity]
    total_followers = sum(e.follower_count or 0 for e in with_identity)
    return {
        "totalTickets": sum(e.tickets_purchased for e in entries),
        "totalGames": sum(e.games_participated for e in entries),
        "totalDeployed": sum(e.games_deployed for e in entries),
        "totalPoints": sum(e.points for e in entries),
        "totalFollowers": total_followers,
        "avgFollowers": round(total_followers / len(with_identity)) if with_identity else 0,
    }


def share_text(entry: LeaderboardEntry) -> str:
    return SHARE_TEMPLATE.format(label=entry.label, rank=entry.rank, points=entry.display_points)


def activity_badge(entry: LeaderboardEntry) -> str:
    if entry.tickets_purchased > 50:
        return "🔥"
    if entry.tickets_purchased > 10:
        return "⭐"
    if entry.tickets_purchased > 0:
        return "📈"
    return "👀"
