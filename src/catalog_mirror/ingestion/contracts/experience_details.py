"""
Data contracts for experience enrichment.

The games detail endpoint answers a batch of universe ids in one call;
game icons share the thumbnail entry shape of the asset thumbnails
endpoint.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_mirror.ingestion.contracts.common import as_dict_list, validate_items


class GameCreator(BaseModel):
    """Creator block of a game detail."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    name: str | None = None
    type: str | None = None
    has_verified_badge: bool | None = Field(default=None, alias="hasVerifiedBadge")


class GameVotes(BaseModel):
    """Vote counters; older payloads nest them, newer ones flatten them."""

    model_config = ConfigDict(populate_by_name=True)

    up_votes: int | None = Field(default=None, alias="upVotes")
    down_votes: int | None = Field(default=None, alias="downVotes")


class GameDetail(BaseModel):
    """One experience from the games detail endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    root_place_id: int | None = Field(default=None, alias="rootPlaceId")
    name: str | None = None
    source_name: str | None = Field(default=None, alias="sourceName")
    description: str | None = None
    creator: GameCreator | None = None
    genre: str | None = None
    playing: int | None = None
    visits: int | None = None
    favorited_count: int | None = Field(default=None, alias="favoritedCount")
    votes: GameVotes | None = None
    past_day_votes: GameVotes | None = Field(default=None, alias="pastDayVotes")
    total_up_votes: int | None = Field(default=None, alias="totalUpVotes")
    total_down_votes: int | None = Field(default=None, alias="totalDownVotes")

    @field_validator("creator", "votes", "past_day_votes", mode="before")
    @classmethod
    def coerce_blocks(cls, v: Any) -> dict[str, Any] | None:
        return v if isinstance(v, dict) else None

    @property
    def up_votes(self) -> int | None:
        block = self.votes or self.past_day_votes
        if block is not None and block.up_votes is not None:
            return block.up_votes
        return self.total_up_votes

    @property
    def down_votes(self) -> int | None:
        block = self.votes or self.past_day_votes
        if block is not None and block.down_votes is not None:
            return block.down_votes
        return self.total_down_votes

    @property
    def vote_totals(self) -> tuple[int | None, float | None]:
        """(total votes, upvote percent), None where unknown."""
        up = self.up_votes
        if up is None:
            return None, None
        total = up + (self.down_votes or 0)
        return total, round(up * 100 / total, 2) if total else None


class GameDetailsResponse(BaseModel):
    """
    Response from the games detail endpoint.

    Endpoint: games v1/games?universeIds=1,2,3
    """

    data: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def coerce_data(cls, v: Any) -> list[dict[str, Any]]:
        return as_dict_list(v)

    def by_id(self) -> dict[int, tuple[dict[str, Any], GameDetail]]:
        """Valid entries keyed by universe id, with their raw body."""
        return {detail.id: (raw, detail) for raw, detail in validate_items(GameDetail, self.data)}
