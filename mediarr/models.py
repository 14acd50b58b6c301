"""Pydantic models describing discovered media."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MediaType = Literal["movie", "show"]

MEDIA_TYPES: tuple[MediaType, ...] = ("movie", "show")

SEARCH_TYPE_NOW_PLAYING = "now_playing"
SEARCH_TYPE_UPCOMING = "upcoming"
SEARCH_TYPE_POPULAR = "popular"
SEARCH_TYPE_TRENDING = "trending"
SEARCH_TYPE_WATCHED = "watched"
SEARCH_TYPE_SCHEDULE = "schedule"
SEARCH_TYPE_PERSON = "person"
SEARCH_TYPE_LIST = "list"


class MediaItem(BaseModel):
    """Canonical, provider-agnostic view of one discovered title."""

    model_config = ConfigDict(frozen=True)

    provider: str
    tvdb_id: str = ""
    tmdb_id: str = ""
    imdb_id: str = ""
    trakt_id: str = ""
    slug: str = ""

    title: str
    release_date: date
    runtime: int = 0
    countries: tuple[str, ...] = ()
    network: str = ""
    status: str = ""
    genres: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()
    summary: str = ""
    character: str | None = None

    @field_validator("tvdb_id", "tmdb_id", "imdb_id", "trakt_id", mode="before")
    @classmethod
    def _normalise_identifier(cls, value: object) -> str:
        # Providers report missing numeric ids as 0.
        if value is None or value == 0:
            return ""
        return str(value).strip()

    @field_validator("countries", "genres", "languages", mode="before")
    @classmethod
    def _drop_blank_entries(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return tuple(str(entry) for entry in value if entry)

    @property
    def year(self) -> int:
        return self.release_date.year

    def identifiers(self) -> dict[str, str]:
        """Return the populated external identifiers keyed by catalog."""

        candidates = {
            "tvdb": self.tvdb_id,
            "tmdb": self.tmdb_id,
            "imdb": self.imdb_id,
            "trakt": self.trakt_id,
        }
        return {key: value for key, value in candidates.items() if value}

    def has_identifier(self) -> bool:
        return bool(self.identifiers())

    def display_title(self) -> str:
        """Return a log-friendly ``Title (Year)`` label."""

        title = (self.title or "").strip() or "Untitled"
        return f"{title} ({self.year})"


class MediaItemPayload(BaseModel):
    """Serialised media item returned by the HTTP surface."""

    provider: str
    title: str
    year: int
    release_date: date
    ids: dict[str, str] = Field(default_factory=dict)
    slug: str = ""
    runtime: int = 0
    countries: list[str] = Field(default_factory=list)
    network: str = ""
    status: str = ""
    genres: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    character: str | None = None

    @classmethod
    def from_item(cls, item: MediaItem) -> "MediaItemPayload":
        return cls(
            provider=item.provider,
            title=item.title,
            year=item.year,
            release_date=item.release_date,
            ids=item.identifiers(),
            slug=item.slug,
            runtime=item.runtime,
            countries=list(item.countries),
            network=item.network,
            status=item.status,
            genres=list(item.genres),
            languages=list(item.languages),
            character=item.character,
        )
