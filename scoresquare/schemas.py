"""
Wire schemas for the two upstream APIs.

Raw JSON is validated here and converted into the frozen records from
scoresquare.models right away; nothing past the client modules sees a
provider dict.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator


# ---------------------------------------------------------------------------
# Ledger (subgraph GraphQL)
# ---------------------------------------------------------------------------


class LedgerTicket(BaseModel):
    buyer: str | None = None
    squareIndex: int = Field(ge=0, le=24)
    purchasedAt: int = 0

    model_config = ConfigDict(extra="ignore")


class LedgerGame(BaseModel):
    id: str
    gameId: str
    eventId: str = ""
    deployer: str | None = None
    squarePrice: int = 0
    createdAt: int = 0
    refunded: bool = False
    prizeClaimed: bool = False
    tickets: list[LedgerTicket] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("tickets", mode="before")
    @classmethod
    def _null_tickets(cls, value):
        return value or []


class LedgerData(BaseModel):
    games: list[LedgerGame] = Field(default_factory=list)

    @field_validator("games", mode="before")
    @classmethod
    def _null_games(cls, value):
        return value or []


class GraphQLError(BaseModel):
    message: str = ""

    model_config = ConfigDict(extra="allow")


class LedgerResponse(BaseModel):
    data: LedgerData | None = None
    errors: list[GraphQLError] | None = None

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Identity provider (bulk-by-address)
# ---------------------------------------------------------------------------


class ProviderProfile(BaseModel):
    avatar_url: str | None = None

    model_config = ConfigDict(extra="ignore")


class ProviderUser(BaseModel):
    fid: int
    username: str | None = None
    display_name: str | None = None
    follower_count: int = 0
    following_count: int = 0
    pfp_url: str | None = None
    profile: ProviderProfile | None = None
    custody_address: str | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def avatar(self) -> str | None:
        if self.pfp_url:
            return self.pfp_url
        if self.profile and self.profile.avatar_url:
            return self.profile.avatar_url
        return None


class BulkByAddressResponse(RootModel[dict[str, Any]]):
    """address -> [user, ...]. Non-list values are ignored, not rejected."""

    def users_by_address(self) -> dict[str, list[ProviderUser]]:
        out: dict[str, list[ProviderUser]] = {}
        for key, value in self.root.items():
            if not isinstance(value, list):
                continue
            out[key] = [ProviderUser.model_validate(u) for u in value]
        return out
