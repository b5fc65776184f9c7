"""
Data contracts for the Explore API.

The API has shipped several payload shapes over time: sorts arrive
under `sorts` or `sortsV2`, sort content under `games`, `gameList` or
`content`. Each union is resolved in exactly one place below.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_mirror.catalog.models import UNKNOWN_CREATOR, UNKNOWN_TITLE, CatalogEntity
from catalog_mirror.ingestion.contracts.common import as_dict_list, clean_cursor, validate_items

CONTENT_KEYS = ("games", "gameList", "content")


class ExploreSort(BaseModel):
    """A named sort (e.g. "Top Trending") from get-sorts."""

    model_config = ConfigDict(populate_by_name=True)

    sort_id: str = Field(..., alias="sortId")
    name: str | None = None
    title: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    token: str | None = None
    sort_token: str | None = Field(default=None, alias="sortToken")

    @field_validator("sort_id", mode="before")
    @classmethod
    def coerce_sort_id(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def label(self) -> str:
        return self.title or self.display_name or self.sort_id

    @property
    def effective_token(self) -> str | None:
        return clean_cursor(self.token) or clean_cursor(self.sort_token)


class ExploreSortsResponse(BaseModel):
    """
    Response from the sorts listing endpoint.

    Endpoint: explore-api/v1/get-sorts
    """

    sorts: list[dict[str, Any]] | None = None
    sorts_v2: list[dict[str, Any]] | None = Field(default=None, alias="sortsV2")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("sorts", "sorts_v2", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> list[dict[str, Any]] | None:
        return as_dict_list(v) if isinstance(v, list) else None

    def parsed_sorts(self) -> list[ExploreSort]:
        """Sorts from whichever variant the payload used."""
        items = self.sorts if self.sorts is not None else (self.sorts_v2 or [])
        return [sort for _, sort in validate_items(ExploreSort, items)]


class ExploreGame(BaseModel):
    """One experience entry in sort content."""

    model_config = ConfigDict(populate_by_name=True)

    universe_id: int | None = Field(default=None, alias="universeId")
    root_place_id: int | None = Field(default=None, alias="rootPlaceId")
    place_id: int | None = Field(default=None, alias="placeId")
    name: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    creator_name: str | None = Field(default=None, alias="creatorName")
    creator_has_verified_badge: bool | None = Field(default=None, alias="creatorHasVerifiedBadge")
    has_verified_badge: bool | None = Field(default=None, alias="hasVerifiedBadge")
    genre: str | None = None
    likes: int | None = None
    up_votes: int | None = Field(default=None, alias="upVotes")
    down_votes: int | None = Field(default=None, alias="downVotes")
    playing: int | None = None
    player_count: int | None = Field(default=None, alias="playerCount")

    @property
    def start_place_id(self) -> int | None:
        return self.root_place_id if self.root_place_id is not None else self.place_id

    @property
    def positive_votes(self) -> int | None:
        return self.likes if self.likes is not None else self.up_votes

    @property
    def verified(self) -> bool | None:
        if self.creator_has_verified_badge is not None:
            return self.creator_has_verified_badge
        return self.has_verified_badge


class SortContentResponse(BaseModel):
    """
    Response from the sort content endpoint.

    Endpoint: explore-api/v1/get-sort-content
    """

    games: list[dict[str, Any]] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SortContentResponse":
        """Pick the game list out of whichever variant the payload used."""
        games: list[dict[str, Any]] = []
        for key in CONTENT_KEYS:
            if isinstance(payload.get(key), list):
                games = as_dict_list(payload[key])
                break
        else:
            # Unknown key: first array of objects that look like games
            for value in payload.values():
                candidates = as_dict_list(value)
                if candidates and "universeId" in candidates[0]:
                    games = candidates
                    break
        return cls(games=games, nextPageToken=clean_cursor(payload.get("nextPageToken")))

    def entries(self) -> list[tuple[int, dict[str, Any], ExploreGame]]:
        """Valid entries with their 0-based position in the raw page."""
        entries = []
        for index, raw in enumerate(self.games):
            for _, game in validate_items(ExploreGame, [raw]):
                entries.append((index, raw, game))
        return entries


def normalize_explore_game(
    raw: dict[str, Any],
    game: ExploreGame,
    *,
    position: int,
    sort_id: str,
    seen_at: datetime,
    source_tag: str,
) -> CatalogEntity | None:
    """
    Canonical record for one experience.

    Entries without a universe id or a start place cannot be linked to
    and are skipped. The position inside the sort is kept in the raw
    payload; `rank` belongs to the top chart only.
    """
    if game.universe_id is None or game.start_place_id is None:
        return None

    likes = game.positive_votes
    dislikes = game.down_votes
    total = None
    percent = None
    if likes is not None:
        total = likes + (dislikes or 0)
        percent = round(likes * 100 / total, 2) if total else None

    return CatalogEntity.observed(
        external_id=game.universe_id,
        title=(game.name or game.display_name or "").strip() or UNKNOWN_TITLE,
        creator=(game.creator_name or "").strip() or UNKNOWN_CREATOR,
        genre=(game.genre or "").strip() or None,
        source_tag=source_tag,
        vote_count=total,
        upvote_percent=percent,
        creator_verified=game.verified,
        raw_payload={
            source_tag: {
                "sort_id": sort_id,
                "position": position,
                "root_place_id": game.start_place_id,
                "playing": game.playing if game.playing is not None else game.player_count,
                "entry": raw,
            }
        },
        last_seen_at=seen_at,
    )
