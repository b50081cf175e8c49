import logging
import math
import threading
from typing import Callable, Iterable

import requests
from pydantic import ValidationError

from scoresquare import config
from scoresquare.batching import for_each_chunk
from scoresquare.errors import IdentityChunkFailed
from scoresquare.http_client import make_session
from scoresquare.models import Address, Identity
from scoresquare.schemas import BulkByAddressResponse, ProviderUser

logger = logging.getLogger(__name__)

BULK_BY_ADDRESS_PATH = "/farcaster/user/bulk-by-address"


def _to_identity(requested: Address, user: ProviderUser) -> Identity:
    custody = None
    if user.custody_address:
        custody = Address(user.custody_address)
    return Identity(
        requested_address=requested,
        fid=user.fid,
        username=user.username,
        display_name=user.display_name,
        follower_count=user.follower_count,
        following_count=user.following_count,
        avatar_url=user.avatar,
        custody_address=custody,
    )


class IdentityResolver:
    """
    Resolves wallet addresses to Farcaster profiles through the provider's
    bulk-by-address endpoint.

    Lookups go out in chunks of `batch_size`, one request at a time with a
    fixed pause in between, so the provider's rate limit is never hit.
    A failed chunk only loses the identities of that chunk.

    Identities are keyed by the address we asked about. The provider may
    report a different custody address for the same person; that value is
    kept on the Identity for display and is never used as a join key.
    """

    def __init__(
        self,
        api_key=None,
        *,
        base_url=None,
        session=None,
        batch_size=None,
        delay_seconds=None,
        timeout=None,
        wait: Callable[[float], bool] | None = None,
    ):
        self.api_key = config.NEYNAR_API_KEY if api_key is None else api_key
        self.base_url = (base_url or config.NEYNAR_API_BASE).rstrip("/")
        self.session = session or make_session(pool=2, methods=("GET",))
        self.batch_size = batch_size or config.IDENTITY_BATCH_SIZE
        self.delay_seconds = config.IDENTITY_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self.timeout = timeout or config.TIMEOUT_IDENTITY
        self._wait = wait

    def fetch_chunk(self, chunk: list[Address]) -> dict[Address, Identity]:
        """One bulk lookup. Raises IdentityChunkFailed on any failure."""
        url = f"{self.base_url}{BULK_BY_ADDRESS_PATH}"
        params = {"addresses": ",".join(chunk), "address_types": "ethereum"}
        headers = {"accept": "application/json", "api_key": self.api_key}
        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityChunkFailed(f"request failed: {e}", chunk) from e

        if not resp.ok:
            raise IdentityChunkFailed(f"status {resp.status_code}", chunk)

        try:
            users_by_address = BulkByAddressResponse.model_validate(resp.json()).users_by_address()
        except (ValueError, ValidationError) as e:
            raise IdentityChunkFailed(f"invalid payload: {e}", chunk) from e

        requested = set(chunk)
        found: dict[Address, Identity] = {}
        for key, users in users_by_address.items():
            try:
                addr = Address(key)
            except ValueError:
                continue
            if addr not in requested:
                logger.debug("[identity] ignoring unrequested key %s", key)
                continue
            if not users or addr in found:
                continue
            found[addr] = _to_identity(addr, users[0])
        return found

    def resolve(
        self,
        addresses: Iterable[str],
        stop_event: threading.Event | None = None,
    ) -> dict[Address, Identity]:
        """
        requested address -> Identity, for the addresses that have a profile.
        Addresses without a profile are simply absent.
        """
        wanted = sorted({Address(a) for a in addresses})
        if not wanted:
            return {}
        if not self.api_key:
            logger.warning("[identity] no API key configured; skipping lookup for %d addresses",
                           len(wanted))
            return {}

        identities: dict[Address, Identity] = {}
        total_chunks = math.ceil(len(wanted) / self.batch_size)

        def _handle(index: int, chunk: list[Address]) -> None:
            logger.debug("[identity] chunk %d/%d (%d addresses)",
                         index + 1, total_chunks, len(chunk))
            try:
                identities.update(self.fetch_chunk(chunk))
            except IdentityChunkFailed as e:
                logger.warning("[identity] chunk %d/%d failed: %s", index + 1, total_chunks, e)

        processed = for_each_chunk(
            wanted, self.batch_size, self.delay_seconds, _handle,
            stop_event=stop_event, wait=self._wait,
        )

        logger.info("[identity] resolved %d/%d addresses in %d/%d chunks",
                    len(identities), len(wanted), processed, total_chunks)
        return identities
