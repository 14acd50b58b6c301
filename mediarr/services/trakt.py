"""Movie and show discovery backed by the Trakt API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..config import Settings
from ..errors import ConfigurationError
from ..models import (
    SEARCH_TYPE_LIST,
    SEARCH_TYPE_NOW_PLAYING,
    SEARCH_TYPE_PERSON,
    SEARCH_TYPE_POPULAR,
    SEARCH_TYPE_TRENDING,
    SEARCH_TYPE_UPCOMING,
    SEARCH_TYPE_WATCHED,
    MediaItem,
    MediaType,
)
from ..ratelimit import TRAKT_RATE_LIMIT, RateLimiterRegistry
from .base import MediaProvider, Page, parse_date
from .transport import RetryPolicy
from .validators import IdentifierValidator

logger = logging.getLogger(__name__)

PAGE_COUNT_HEADER = "X-Pagination-Page-Count"
PAGE_SIZE = 100

IGNORED_MOVIE_STATUSES = frozenset({"canceled", "rumored", "planned", "in production"})
IGNORED_SHOW_STATUSES = frozenset({"canceled", "planned", "in production"})


class TraktProvider(MediaProvider):
    """Provider for Trakt's curated movie and show lists."""

    name = "trakt"
    rate_limit = TRAKT_RATE_LIMIT
    search_types = {
        "movie": {
            SEARCH_TYPE_POPULAR: "/movies/popular",
            SEARCH_TYPE_TRENDING: "/movies/trending",
            SEARCH_TYPE_UPCOMING: "/movies/anticipated",
            SEARCH_TYPE_NOW_PLAYING: "/movies/boxoffice",
            SEARCH_TYPE_WATCHED: "/movies/watched",
            SEARCH_TYPE_PERSON: "/people/{person}/movies",
            SEARCH_TYPE_LIST: "/users/{user}/lists/{list}/items/movies",
        },
        "show": {
            SEARCH_TYPE_POPULAR: "/shows/popular",
            SEARCH_TYPE_TRENDING: "/shows/trending",
            SEARCH_TYPE_UPCOMING: "/shows/anticipated",
            SEARCH_TYPE_WATCHED: "/shows/watched",
            SEARCH_TYPE_PERSON: "/people/{person}/shows",
            SEARCH_TYPE_LIST: "/users/{user}/lists/{list}/items/shows",
        },
    }
    param_map = {
        "country": "countries",
        "language": "languages",
        "genre": "genres",
        "year": "years",
        "rating": "ratings",
        "network": "networks",
        "status": "status",
    }

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        registry: RateLimiterRegistry,
        media_type: MediaType,
        *,
        validator: IdentifierValidator | None = None,
        retry: RetryPolicy | None = None,
    ):
        if not settings.trakt_client_id:
            raise ConfigurationError("TRAKT_CLIENT_ID is required to search Trakt")
        super().__init__(
            settings,
            http_client,
            registry,
            media_type,
            validator=validator,
            retry=retry,
        )

    @property
    def api_url(self) -> str:
        return str(self._settings.trakt_api_url)

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "trakt-api-version": "2",
            "trakt-api-key": self._settings.trakt_client_id or "",
            "User-Agent": f"{self._settings.app_name} (mediarr)",
        }

    def base_params(self) -> dict[str, Any]:
        return {"extended": "full", "limit": PAGE_SIZE}

    def endpoint(self, search_type: str, params: Mapping[str, Any]) -> str:
        template = super().endpoint(search_type, params)
        kind = search_type.lower()

        if kind == SEARCH_TYPE_PERSON:
            person = str(params.get("person") or "").strip()
            if not person:
                raise ValueError("Trakt person searches require a 'person' parameter")
            return template.format(person=person)

        if kind == SEARCH_TYPE_LIST:
            user, _, slug = str(params.get("list") or "").strip().partition("/")
            if not user or not slug:
                raise ValueError("Trakt list searches require a 'list' parameter of the form user/slug")
            return template.format(user=user, list=slug)

        return template

    def decode_page(self, response: httpx.Response) -> Page:
        data = response.json()
        if isinstance(data, dict) and "cast" in data:
            # People credit endpoints wrap their entries in a cast list.
            data = data["cast"] or []
        if not isinstance(data, list):
            raise ValueError("expected a JSON array")

        raw_count = response.headers.get(PAGE_COUNT_HEADER)
        try:
            total_pages = int(raw_count) if raw_count else 0
        except ValueError:
            logger.warning("Ignoring malformed %s header: %r", PAGE_COUNT_HEADER, raw_count)
            total_pages = 0
        return Page(entries=data, total_pages=total_pages)

    def translate(self, entry: Any) -> MediaItem | None:
        if not isinstance(entry, dict):
            return None

        character = entry.get("character") or None
        media = entry.get(self.media_type)
        if not isinstance(media, dict):
            media = entry if "ids" in entry else None
        if media is None:
            return None

        ids = media.get("ids") or {}
        if not isinstance(ids, dict):
            return None
        if self.media_type == "movie":
            return self._translate_movie(media, ids, character)
        return self._translate_show(media, ids, character)

    def _translate_movie(
        self, movie: dict[str, Any], ids: dict[str, Any], character: str | None
    ) -> MediaItem | None:
        title = movie.get("title") or ""
        release_date = parse_date(movie.get("released"))
        status = str(movie.get("status") or "").lower()

        if not ids.get("slug") or not ids.get("tmdb"):
            logger.debug("Skipping Trakt movie without slug or TMDB id: %s", title)
            return None
        if not movie.get("runtime") or release_date is None:
            logger.debug("Skipping Trakt movie without runtime or release date: %s", title)
            return None
        if status in IGNORED_MOVIE_STATUSES:
            logger.debug("Skipping Trakt movie with status %s: %s", status, title)
            return None

        return MediaItem(
            provider=self.name,
            tmdb_id=ids.get("tmdb"),
            imdb_id=ids.get("imdb"),
            trakt_id=ids.get("trakt"),
            slug=ids.get("slug") or "",
            title=title,
            release_date=release_date,
            runtime=int(movie.get("runtime") or 0),
            countries=[movie.get("country")],
            status=status,
            genres=movie.get("genres") or [],
            languages=[movie.get("language")],
            summary=movie.get("overview") or "",
            character=character,
        )

    def _translate_show(
        self, show: dict[str, Any], ids: dict[str, Any], character: str | None
    ) -> MediaItem | None:
        title = show.get("title") or ""
        release_date = parse_date(show.get("first_aired"))
        status = str(show.get("status") or "").lower()

        if not ids.get("tvdb"):
            logger.debug("Skipping Trakt show without TVDB id: %s", title)
            return None
        if release_date is None:
            logger.debug("Skipping Trakt show without first aired date: %s", title)
            return None
        if status in IGNORED_SHOW_STATUSES:
            logger.debug("Skipping Trakt show with status %s: %s", status, title)
            return None

        return MediaItem(
            provider=self.name,
            tvdb_id=ids.get("tvdb"),
            tmdb_id=ids.get("tmdb"),
            imdb_id=ids.get("imdb"),
            trakt_id=ids.get("trakt"),
            slug=ids.get("slug") or "",
            title=title,
            release_date=release_date,
            runtime=int(show.get("runtime") or 0),
            countries=[show.get("country")],
            network=show.get("network") or "",
            status=status,
            genres=show.get("genres") or [],
            languages=[show.get("language")],
            summary=show.get("overview") or "",
            character=character,
        )
