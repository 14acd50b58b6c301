"""Movie discovery backed by The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import ConfigurationError, DecodeError, HTTPStatusError
from ..models import (
    SEARCH_TYPE_NOW_PLAYING,
    SEARCH_TYPE_POPULAR,
    SEARCH_TYPE_UPCOMING,
    MediaItem,
    MediaType,
)
from ..ratelimit import TMDB_RATE_LIMIT, RateLimiterRegistry
from .base import MediaProvider, Page, parse_date
from .transport import RetryPolicy, join_url, send
from .validators import IdentifierValidator

logger = logging.getLogger(__name__)


class TMDBProvider(MediaProvider):
    """Provider for TMDB's movie lists."""

    name = "tmdb"
    rate_limit = TMDB_RATE_LIMIT
    search_types = {
        "movie": {
            SEARCH_TYPE_NOW_PLAYING: "/movie/now_playing",
            SEARCH_TYPE_UPCOMING: "/movie/upcoming",
            SEARCH_TYPE_POPULAR: "/movie/popular",
        },
    }
    param_map = {
        "country": "region",
        "language": "language",
    }

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        registry: RateLimiterRegistry,
        media_type: MediaType = "movie",
        *,
        validator: IdentifierValidator | None = None,
        retry: RetryPolicy | None = None,
    ):
        if not settings.tmdb_api_key:
            raise ConfigurationError("TMDB_API_KEY is required to search TMDB")
        super().__init__(
            settings,
            http_client,
            registry,
            media_type,
            validator=validator,
            retry=retry,
        )
        self._genres: dict[int, str] = {}

    @property
    def api_url(self) -> str:
        return str(self._settings.tmdb_api_url)

    def base_params(self) -> dict[str, Any]:
        return {"api_key": self._settings.tmdb_api_key}

    async def initialize(self) -> None:
        """Load the genre id to name table used when translating results."""

        url = join_url(self.api_url, "/genre/movie/list")
        response = await send(
            self._client,
            "GET",
            url,
            timeout=self._timeout,
            params=self.base_params(),
            retry=self._retry,
            limiter=self._limiter,
        )
        if response.status_code != 200:
            raise HTTPStatusError(
                f"Failed retrieving TMDB genres: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                url=url,
            )
        try:
            data = response.json()
            genres = {int(genre["id"]): str(genre["name"]) for genre in data["genres"]}
        except (ValueError, TypeError, KeyError) as exc:
            raise DecodeError(f"Failed decoding TMDB genres: {exc}") from exc

        self._genres = genres
        logger.info("Loaded %s TMDB genres", len(genres))

    def decode_page(self, response: httpx.Response) -> Page:
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        results = data.get("results") or []
        if not isinstance(results, list):
            raise ValueError("results is not a list")
        return Page(entries=results, total_pages=int(data.get("total_pages") or 0))

    def translate(self, entry: Any) -> MediaItem | None:
        if not isinstance(entry, dict):
            return None
        if entry.get("adult") or entry.get("video"):
            return None

        tmdb_id = entry.get("id")
        release_date = parse_date(entry.get("release_date"))
        if not tmdb_id or release_date is None:
            logger.debug("Skipping TMDB entry without id or release date: %s", entry.get("title"))
            return None

        genres = [
            self._genres[genre_id]
            for genre_id in entry.get("genre_ids") or []
            if genre_id in self._genres
        ]

        return MediaItem(
            provider=self.name,
            tmdb_id=tmdb_id,
            title=entry.get("title") or entry.get("original_title") or "",
            release_date=release_date,
            genres=genres,
            languages=[entry.get("original_language")],
            summary=entry.get("overview") or "",
        )
