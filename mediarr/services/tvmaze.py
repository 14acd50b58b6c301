"""Show discovery from the TVMaze airing schedule."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..models import SEARCH_TYPE_SCHEDULE, MediaItem
from ..ratelimit import TVMAZE_RATE_LIMIT
from .base import MediaProvider, Page, parse_date

logger = logging.getLogger(__name__)

SCHEDULE_LANGUAGE = "English"


class TVMazeProvider(MediaProvider):
    """Provider turning the full TVMaze schedule into show candidates.

    The schedule is a single unpaginated document listing episodes, so the same
    show appears many times and relies on the shared de-duplication.
    """

    name = "tvmaze"
    rate_limit = TVMAZE_RATE_LIMIT
    search_types = {"show": {SEARCH_TYPE_SCHEDULE: "/schedule/full"}}

    @property
    def api_url(self) -> str:
        return str(self._settings.tvmaze_api_url)

    def pagination_params(self, page: int) -> dict[str, Any]:
        return {}

    def decode_page(self, response: httpx.Response) -> Page:
        data = response.json()
        if not isinstance(data, list):
            raise ValueError("expected a JSON array")
        return Page(entries=data, total_pages=1)

    def translate(self, entry: Any) -> MediaItem | None:
        if not isinstance(entry, dict):
            return None
        show = (entry.get("_embedded") or {}).get("show")
        if not isinstance(show, dict):
            return None

        title = show.get("name") or ""
        externals = show.get("externals") or {}
        tvdb_id = externals.get("thetvdb")
        if not str(tvdb_id or "").strip().isdigit() or int(tvdb_id) < 1:
            logger.debug("Skipping TVMaze show without TVDB id: %s", title)
            return None
        if show.get("language") != SCHEDULE_LANGUAGE:
            return None
        release_date = parse_date(show.get("premiered"))
        if release_date is None:
            logger.debug("Skipping TVMaze show without premiere date: %s", title)
            return None

        network = show.get("network") or show.get("webChannel") or {}
        country = (network.get("country") or {}).get("code")

        return MediaItem(
            provider=self.name,
            tvdb_id=tvdb_id,
            imdb_id=externals.get("imdb"),
            title=title,
            release_date=release_date,
            runtime=int(show.get("runtime") or entry.get("runtime") or 0),
            countries=[country],
            network=network.get("name") or "",
            status=str(show.get("status") or "").lower(),
            genres=show.get("genres") or [show.get("type")],
            languages=[show.get("language")],
            summary=show.get("summary") or "",
        )
