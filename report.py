#!/usr/bin/env python3
import os
import sys
import json
import logging
import argparse
from datetime import datetime, timezone
from pathlib import Path

from scoresquare import config
from scoresquare.errors import SourceUnavailable
from scoresquare.identity_resolver import IdentityResolver
from scoresquare.leaderboard import activity_badge, summarize
from scoresquare.ledger_client import GameLedgerClient
from scoresquare.pipeline import run_pipeline
from scoresquare.utils import eth, ordinalformat, percent, thousands

logger = logging.getLogger(__name__)


def build_artifact(result, now: datetime) -> dict:
    entries = result.entries
    with_identity = [e for e in entries if e.has_identity]
    return {
        "timestamp": now.isoformat(),
        "totalPlayers": len(entries),
        "playersWithIdentity": len(with_identity),
        "playersWithoutIdentity": len(entries) - len(with_identity),
        "allPlayers": [e.to_dict() for e in entries],
        "participationStats": {
            str(addr): stats.to_dict() for addr, stats in sorted(result.stats.items())
        },
        "summary": summarize(entries),
        "usedFixtures": result.used_fixtures,
    }


def print_report(result, top=None, out=None) -> None:
    out = out or sys.stdout
    entries = result.entries
    shown = entries if top is None else entries[:top]

    def p(line=""):
        print(line, file=out)

    if result.used_fixtures:
        p("!! Ledger unavailable: showing FIXTURE data, not real results !!")
        p()

    p(f"All ScoreSquare players (ranked, {len(entries)} total)")
    p("=" * 80)
    for e in shown:
        identity_badge = "🎭" if e.has_identity else "🚫"
        p(f"{e.rank}. {activity_badge(e)} {e.label} {identity_badge}")
        p(f"   Address: {e.address}")
        p(f"   ScoreSquare: {e.tickets_purchased} tickets, {e.games_participated} games, "
          f"{e.games_deployed} deployed ({eth(e.ticket_value_wei)} spent)")
        if e.has_identity:
            p(f"   Farcaster: @{e.username} (FID: {e.fid})")
            p(f"   Followers: {thousands(e.follower_count)} | Following: {thousands(e.following_count)}")
            if e.avatar_url:
                p(f"   PFP: {e.avatar_url}")
        else:
            p("   Farcaster: No profile found")
        p()

    summary = summarize(entries)
    with_identity = [e for e in entries if e.has_identity]
    total = len(entries)

    p("Summary:")
    p(f"- Total ScoreSquare players: {total}")
    p(f"- Players with Farcaster profiles: {len(with_identity)} ({percent(len(with_identity), total)})")
    p(f"- Players without Farcaster profiles: {total - len(with_identity)} "
      f"({percent(total - len(with_identity), total)})")
    p()
    p("Total ScoreSquare activity (all players):")
    p(f"- Total tickets purchased: {thousands(summary['totalTickets'])}")
    p(f"- Total games participated: {thousands(summary['totalGames'])}")
    p(f"- Total games deployed: {thousands(summary['totalDeployed'])}")
    leaders = ", ".join(f"{e.label} ({ordinalformat(e.rank)}, {e.tickets_purchased} tickets)"
                        for e in entries[:3])
    p(f"- Most active players: {leaders or '-'}")

    if with_identity:
        influencers = sorted(with_identity, key=lambda e: (-(e.follower_count or 0), e.rank))[:3]
        p()
        p("Farcaster stats:")
        p(f"- Total followers across Farcaster players: {thousands(summary['totalFollowers'])}")
        p(f"- Average followers per Farcaster player: {thousands(summary['avgFollowers'])}")
        p("- Top Farcaster influencers: " + ", ".join(
            f"{e.label} ({thousands(e.follower_count)} followers)" for e in influencers))

        different_custody = [e for e in with_identity
                             if e.custody_address and e.custody_address != e.address]
        if different_custody:
            p()
            p("Address mapping:")
            p(f"- {len(different_custody)} players use a Farcaster custody address "
              f"different from their ScoreSquare address")
            p(f"- {len(with_identity) - len(different_custody)} players use the same address for both")


def write_artifact(artifact: dict, output_dir: str, now: datetime) -> Path:
    path = Path(output_dir) / f"scoresquare-players-{now.date().isoformat()}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(artifact, f, indent=2, ensure_ascii=False)
    return path


def main(argv=None, *, ledger=None, resolver=None):
    parser = argparse.ArgumentParser(
        description="Fetch ScoreSquare games, resolve players to Farcaster profiles and rank them."
    )
    parser.add_argument(
        "-o", "--output-dir",
        default=".",
        help="Directory for the JSON artifact (default: current directory)"
    )
    parser.add_argument(
        "--top",
        type=int,
        default=None,
        help="Only print the first N players (the artifact always has everyone)"
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=config.LEDGER_PAGE_SIZE,
        help=f"Games per ledger request (default: {config.LEDGER_PAGE_SIZE})"
    )
    parser.add_argument(
        "--allow-fixtures",
        action="store_true",
        help="Fall back to the built-in fixture ledger if the subgraph is unavailable (dev only)"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    try:
        result = run_pipeline(
            ledger or GameLedgerClient(),
            resolver or IdentityResolver(),
            page_size=args.page_size,
            allow_fixtures=args.allow_fixtures,
        )
        now = datetime.now(timezone.utc)
        print_report(result, top=args.top)
        path = write_artifact(build_artifact(result, now), args.output_dir, now)
        print(f"\nResults saved to: {path}")
    except SourceUnavailable as e:
        print(f"Ledger unavailable: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("report failed")
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
