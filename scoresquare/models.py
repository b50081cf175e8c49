from __future__ import annotations

from dataclasses import dataclass

# Cosmetic multiplier used when points are shown on screen. Ranking never uses it.
DISPLAY_POINTS_MULTIPLIER = 1000

PROFILE_BASE_URL = "https://warpcast.com"


class Address(str):
    """
    Blockchain address normalized to lower case.
    Building one at every ingestion point keeps checksum-cased and
    lower-cased spellings of the same wallet from becoming two map keys.
    """

    def __new__(cls, value):
        if isinstance(value, Address):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Address must be a string, got {type(value).__name__}")
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("Address must not be empty")
        return super().__new__(cls, normalized)

    def short(self, length: int = 8) -> str:
        return f"{self[:length]}..."


@dataclass(frozen=True)
class TicketRecord:
    game_id: str
    buyer_address: Address
    square_index: int
    purchased_at: int = 0


@dataclass(frozen=True)
class GameRecord:
    game_id: str
    event_id: str
    deployer_address: Address | None
    created_at: int = 0
    refunded: bool = False
    prize_claimed: bool = False
    square_price_wei: int = 0
    tickets: tuple[TicketRecord, ...] = ()


@dataclass(frozen=True)
class ParticipationStats:
    tickets_purchased: int = 0
    games_participated: int = 0
    games_deployed: int = 0
    ticket_value_wei: int = 0
    game_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "ticketsPurchased": self.tickets_purchased,
            "gamesParticipated": self.games_participated,
            "gamesDeployed": self.games_deployed,
            "ticketValueWei": str(self.ticket_value_wei),
            "gameIds": list(self.game_ids),
        }


@dataclass(frozen=True)
class Identity:
    requested_address: Address
    fid: int
    username: str | None = None
    display_name: str | None = None
    follower_count: int = 0
    following_count: int = 0
    avatar_url: str | None = None
    custody_address: Address | None = None


@dataclass(frozen=True)
class LeaderboardEntry:
    address: Address
    has_identity: bool
    fid: int | None
    username: str | None
    display_name: str | None
    follower_count: int | None
    following_count: int | None
    avatar_url: str | None
    custody_address: Address | None
    tickets_purchased: int
    games_participated: int
    games_deployed: int
    points: int
    rank: int
    ticket_value_wei: int = 0

    @property
    def label(self) -> str:
        if self.has_identity and (self.display_name or self.username):
            return self.display_name or self.username
        return f"Anon ({self.address.short()})"

    @property
    def display_points(self) -> int:
        return self.points * DISPLAY_POINTS_MULTIPLIER

    @property
    def profile_url(self) -> str | None:
        if not self.has_identity:
            return None
        if self.username:
            return f"{PROFILE_BASE_URL}/{self.username}"
        return f"{PROFILE_BASE_URL}/user/{self.fid}"

    def to_dict(self) -> dict:
        return {
            "address": str(self.address),
            "hasIdentity": self.has_identity,
            "fid": self.fid,
            "username": self.username,
            "displayName": self.display_name,
            "followerCount": self.follower_count,
            "followingCount": self.following_count,
            "avatarUrl": self.avatar_url,
            "custodyAddress": str(self.custody_address) if self.custody_address else None,
            "ticketsPurchased": self.tickets_purchased,
            "gamesParticipated": self.games_participated,
            "gamesDeployed": self.games_deployed,
            "ticketValueWei": str(self.ticket_value_wei),
            "points": self.points,
            "displayPoints": self.display_points,
            "rank": self.rank,
            "label": self.label,
            "profileUrl": self.profile_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LeaderboardEntry":
        """Strict inverse of to_dict(); raises KeyError/TypeError/ValueError on bad rows."""
        custody = data["custodyAddress"]
        fid = data["fid"]
        return cls(
            address=Address(data["address"]),
            has_identity=bool(data["hasIdentity"]),
            fid=int(fid) if fid is not None else None,
            username=data["username"],
            display_name=data["displayName"],
            follower_count=data["followerCount"],
            following_count=data["followingCount"],
            avatar_url=data["avatarUrl"],
            custody_address=Address(custody) if custody else None,
            tickets_purchased=int(data["ticketsPurchased"]),
            games_participated=int(data["gamesParticipated"]),
            games_deployed=int(data["gamesDeployed"]),
            points=int(data["points"]),
            rank=int(data["rank"]),
            ticket_value_wei=int(data.get("ticketValueWei", 0)),
        )


@dataclass(frozen=True)
class CacheSnapshot:
    entries: tuple[LeaderboardEntry, ...]
    computed_at: float
    ttl_seconds: float = 24 * 60 * 60

    def is_valid(self, now: float) -> bool:
        return now - self.computed_at < self.ttl_seconds


class _Stale:
    """Sentinel returned by the cache when a snapshot can't be served."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "STALE"


STALE = _Stale()
