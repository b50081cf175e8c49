import os

SUBGRAPH_URL = os.environ.get(
    "SCORESQUARE_SUBGRAPH_URL",
    "https://api.studio.thegraph.com/query/106307/score-square-v1/version/latest",
)

NEYNAR_API_BASE = os.environ.get("NEYNAR_API_BASE", "https://api.neynar.com/v2")
NEYNAR_API_KEY = os.environ.get("NEYNAR_API_KEY", "")

DATABASE = os.environ.get("SCORESQUARE_DB", "scoresquare.db")

CACHE_TTL_SECONDS = int(os.environ.get("SCORESQUARE_CACHE_TTL_SECONDS", 24 * 60 * 60))

IDENTITY_BATCH_SIZE = int(os.environ.get("SCORESQUARE_IDENTITY_BATCH_SIZE", 100))
IDENTITY_DELAY_SECONDS = float(os.environ.get("SCORESQUARE_IDENTITY_DELAY_SECONDS", 0.1))

LEDGER_PAGE_SIZE = int(os.environ.get("SCORESQUARE_LEDGER_PAGE_SIZE", 1000))

TIMEOUT_LEDGER = (3, 15)   # connect, read
TIMEOUT_IDENTITY = (3, 10)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _split_ints(raw: str | None) -> tuple[int, ...]:
    if not raw:
        return ()
    return tuple(int(item.strip()) for item in raw.split(",") if item.strip())


PRIVILEGED_FIDS = _split_ints(os.environ.get("SCORESQUARE_PRIVILEGED_FIDS", "4163,420564"))

# Substitute the fixture ledger when the subgraph is down. Dev/test only.
DEV_FIXTURES = _env_bool("SCORESQUARE_DEV_FIXTURES")
