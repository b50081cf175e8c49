from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

USER_AGENT = "scoresquare-leaderboard/1.0"

# GraphQL reads go out as POST, so POST has to be retryable too.
RETRY_METHODS = frozenset({"GET", "POST"})
RETRY_STATUSES = (429, 500, 502, 503, 504)


def make_session(pool=10, retries=2, backoff=0.2, *, headers=None, methods=RETRY_METHODS):
    """Pooled Session that retries transient upstream failures."""
    s = Session()

    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset(m.upper() for m in methods),
        raise_on_status=False,  # the clients read resp.ok themselves
    )

    adapter = HTTPAdapter(
        pool_connections=pool,
        pool_maxsize=pool,
        max_retries=retry,
        pool_block=True,
    )

    for prefix in ("https://", "http://"):
        s.mount(prefix, adapter)

    s.headers.update({
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "Connection": "keep-alive",
    })
    if headers:
        s.headers.update(headers)
    return s
