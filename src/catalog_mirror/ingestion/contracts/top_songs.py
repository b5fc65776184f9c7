"""
Data contracts for the music-discovery top songs API.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_mirror.catalog.models import UNKNOWN_ARTIST, UNKNOWN_TITLE, CatalogEntity
from catalog_mirror.ingestion.contracts.common import as_dict_list, clean_cursor, validate_items


class TopSong(BaseModel):
    """One chart entry."""

    model_config = ConfigDict(populate_by_name=True)

    asset_id: int | None = Field(default=None, alias="assetId")
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    duration: float | None = None
    album_art_asset_id: int | None = Field(default=None, alias="albumArtAssetId")


class TopSongsResponse(BaseModel):
    """
    Response from the top songs endpoint.

    Endpoint: music-discovery/v1/top-songs
    """

    model_config = ConfigDict(populate_by_name=True)

    songs: list[dict[str, Any]] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")

    @field_validator("songs", mode="before")
    @classmethod
    def coerce_songs(cls, v: Any) -> list[dict[str, Any]]:
        return as_dict_list(v)

    @field_validator("next_page_token", mode="before")
    @classmethod
    def coerce_token(cls, v: Any) -> str | None:
        return clean_cursor(v)

    def entries(self) -> list[tuple[int, dict[str, Any], TopSong]]:
        """Valid entries with their 0-based position in the raw page."""
        entries = []
        for index, raw in enumerate(self.songs):
            for _, song in validate_items(TopSong, [raw]):
                entries.append((index, raw, song))
        return entries


def normalize_top_song(
    raw: dict[str, Any],
    song: TopSong,
    *,
    rank: int,
    seen_at: datetime,
    source_tag: str,
) -> CatalogEntity | None:
    """Canonical ranked record for one chart entry."""
    if song.asset_id is None:
        return None
    return CatalogEntity.observed(
        external_id=song.asset_id,
        title=(song.title or "").strip() or UNKNOWN_TITLE,
        creator=(song.artist or "").strip() or UNKNOWN_ARTIST,
        album=(song.album or "").strip() or None,
        duration_seconds=song.duration,
        media_asset_id=song.album_art_asset_id,
        rank=rank,
        source_tag=source_tag,
        raw_payload={source_tag: raw},
        last_seen_at=seen_at,
    )
