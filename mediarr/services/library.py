"""Contract with the media library and helpers over its holdings."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Protocol

import httpx

from ..config import Settings
from ..filters import RuleSet, compile_rules
from ..models import MediaItem
from ..ratelimit import RateLimiter
from .transport import LIBRARY_DEFAULT_RETRY, LIBRARY_DEFAULT_TIMEOUT, send

logger = logging.getLogger(__name__)


class LibraryManager(Protocol):
    """What discovery needs from a library manager such as Radarr or Sonarr."""

    async def get_existing_media(self) -> dict[str, MediaItem]:
        """Return current holdings keyed by canonical identifier."""

    def should_ignore(self, item: MediaItem) -> bool:
        """Return True when the library's ignore rules reject ``item``."""

    async def add_media(self, item: MediaItem) -> None:
        """Add ``item`` to the library."""


class LibraryFilters:
    """Compiled ignore and accept rule sets for one library."""

    def __init__(self, ignore: RuleSet | None = None, accept: RuleSet | None = None):
        self.ignore = ignore if ignore is not None else RuleSet()
        self.accept = accept if accept is not None else RuleSet()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> "LibraryFilters":
        """Compile the configured expressions; raises ExpressionError on bad rules."""

        extra = {"clock": clock} if clock is not None else {}
        filters = cls(
            ignore=compile_rules(settings.ignore_expressions, **extra),
            accept=compile_rules(settings.accept_expressions, **extra),
        )
        logger.info(
            "Compiled %s ignore and %s accept expressions",
            len(filters.ignore),
            len(filters.accept),
        )
        return filters

    def should_ignore(self, item: MediaItem) -> bool:
        return self.ignore.matches(item)

    def should_accept(self, item: MediaItem) -> bool:
        return self.accept.matches(item)


def owned_predicate(existing: Mapping[str, MediaItem]) -> Callable[[MediaItem], bool]:
    """Build a check matching candidates against holdings by IMDb, TMDB or TVDB id."""

    imdb_ids: set[str] = set()
    tmdb_ids: set[str] = set()
    tvdb_ids: set[str] = set()
    for item in existing.values():
        if item.imdb_id:
            imdb_ids.add(item.imdb_id)
        if item.tmdb_id:
            tmdb_ids.add(item.tmdb_id)
        if item.tvdb_id:
            tvdb_ids.add(item.tvdb_id)

    def is_owned(item: MediaItem) -> bool:
        return (
            (bool(item.imdb_id) and item.imdb_id in imdb_ids)
            or (bool(item.tmdb_id) and item.tmdb_id in tmdb_ids)
            or (bool(item.tvdb_id) and item.tvdb_id in tvdb_ids)
        )

    return is_owned


def prune_existing_media(
    existing: Mapping[str, MediaItem],
    found: Mapping[str, MediaItem],
) -> dict[str, MediaItem]:
    """Return the entries of ``found`` whose key is not already held."""

    return {key: item for key, item in found.items() if key not in existing}


def sort_media_items(items: Iterable[MediaItem]) -> list[MediaItem]:
    """Order items by release date, newest first."""

    return sorted(items, key=lambda item: item.release_date, reverse=True)


async def send_library_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    json: Any = None,
    limiter: RateLimiter | None = None,
) -> httpx.Response:
    """Call a library manager API with its long timeout and gateway-timeout retries."""

    return await send(
        client,
        method,
        url,
        timeout=LIBRARY_DEFAULT_TIMEOUT,
        params=params,
        headers=headers,
        json=json,
        retry=LIBRARY_DEFAULT_RETRY,
        limiter=limiter,
    )
