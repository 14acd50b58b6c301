"""Remote existence checks for external identifiers."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Literal

import httpx

from ..errors import TransportError
from ..ratelimit import TMDB_RATE_LIMIT, TVDB_RATE_LIMIT, RateLimiterRegistry
from .transport import send
from .validation_cache import ValidationCache

logger = logging.getLogger(__name__)

TVDB_SERIES_URL = "https://www.thetvdb.com/dereferrer/series/{id}"
TMDB_PAGE_URL = "https://www.themoviedb.org/{kind}/{id}"

VALIDATION_TIMEOUT = 30.0


class IdentifierValidator:
    """Confirms identifiers resolve on their home site, memoised in the cache."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        registry: RateLimiterRegistry,
        cache: ValidationCache | None = None,
        *,
        ttl: timedelta | None = None,
    ):
        self._client = http_client
        self._registry = registry
        self._cache = cache
        self._ttl = ttl

    async def validate_tvdb_id(self, tvdb_id: str) -> bool:
        """Return whether the TVDB series page for ``tvdb_id`` exists."""

        return await self._validate(
            "tvdb",
            tvdb_id,
            TVDB_SERIES_URL.format(id=tvdb_id),
            TVDB_RATE_LIMIT,
        )

    async def validate_tmdb_id(self, kind: Literal["movie", "tv"], tmdb_id: str) -> bool:
        """Return whether the TMDB ``kind`` page for ``tmdb_id`` exists."""

        return await self._validate(
            "tmdb",
            tmdb_id,
            TMDB_PAGE_URL.format(kind=kind, id=tmdb_id),
            TMDB_RATE_LIMIT,
        )

    async def _validate(self, provider: str, item_id: str, url: str, rate: int) -> bool:
        if not item_id:
            return False
        if self._cache is not None and await self._cache.exists(provider, item_id):
            return True

        try:
            response = await send(
                self._client,
                "GET",
                url,
                timeout=VALIDATION_TIMEOUT,
                limiter=self._registry.acquire(provider, rate),
                follow_redirects=True,
            )
        except TransportError as exc:
            logger.debug("Failed retrieving %s details for %s: %s", provider, item_id, exc)
            return False

        if response.status_code != 200:
            logger.debug(
                "Invalid %s id %s: %s %s",
                provider,
                item_id,
                response.status_code,
                response.reason_phrase,
            )
            return False

        if self._cache is not None:
            await self._cache.add(provider, item_id, self._ttl)
        return True
