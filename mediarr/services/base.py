"""Shared fetch/paginate loop for catalog providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, ClassVar, Mapping

import httpx

from ..config import Settings
from ..errors import DecodeError, ExpressionError, HTTPStatusError
from ..models import MediaItem, MediaType
from ..ratelimit import RateLimiterRegistry
from .transport import PROVIDER_DEFAULT_RETRY, RetryPolicy, join_url, send
from .validators import IdentifierValidator

logger = logging.getLogger(__name__)

OwnedPredicate = Callable[[MediaItem], bool]
IgnorePredicate = Callable[[MediaItem], bool]


@dataclass(slots=True)
class Page:
    """Raw entries decoded from one response plus the reported page count."""

    entries: list[Any]
    total_pages: int = 0


@dataclass(slots=True)
class SearchStats:
    """Counters describing what happened to the entries of one search."""

    pages: int = 0
    accepted: int = 0
    existing: int = 0
    ignored: int = 0
    duplicates: int = 0
    invalid: int = 0
    limit_reached: bool = False


def parse_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` or ISO-8601 timestamps, returning None when unusable."""

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        if "T" in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        return None


class MediaProvider:
    """Base class driving pagination, extraction and filtering for a catalog.

    Subclasses describe their endpoints and parameter names and translate raw
    entries into :class:`MediaItem` objects; the search loop itself is shared.
    """

    name: ClassVar[str]
    rate_limit: ClassVar[float]
    search_types: ClassVar[Mapping[str, Mapping[str, str]]] = {}
    param_map: ClassVar[Mapping[str, str]] = {}

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
        if media_type not in self.search_types:
            raise ValueError(f"{self.name} does not support {media_type} searches")
        self._settings = settings
        self._client = http_client
        self.media_type: MediaType = media_type
        self._limiter = registry.acquire(self.name, self.rate_limit)
        self._retry = retry or replace(
            PROVIDER_DEFAULT_RETRY,
            max_attempts=settings.provider_retry_attempts,
            backoff_min=settings.provider_backoff_min_seconds,
            backoff_max=settings.provider_backoff_max_seconds,
        )
        self._timeout = settings.provider_timeout_seconds
        self._validator = validator
        self.last_stats = SearchStats()

    @property
    def api_url(self) -> str:
        raise NotImplementedError

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def supported_search_types(self) -> list[str]:
        return list(self.search_types[self.media_type])

    def supports(self, search_type: str) -> bool:
        return search_type.lower() in self.search_types[self.media_type]

    async def initialize(self) -> None:
        """Load any reference data the provider needs before searching."""

    def base_params(self) -> dict[str, Any]:
        return {}

    def headers(self) -> dict[str, str]:
        return {}

    def build_request_params(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """Translate generic parameter names onto this provider's query fields."""

        request_params = self.base_params()
        for key, value in (params or {}).items():
            if value is None or value == "":
                continue
            target = self.param_map.get(key.lower())
            if target:
                request_params[target] = value
        return request_params

    def endpoint(self, search_type: str, params: Mapping[str, Any]) -> str:
        endpoints = self.search_types[self.media_type]
        try:
            return endpoints[search_type.lower()]
        except KeyError:
            raise ValueError(
                f"Unsupported search type {search_type!r} for {self.name}; "
                f"valid types: {', '.join(endpoints)}"
            ) from None

    def pagination_params(self, page: int) -> dict[str, Any]:
        return {"page": page}

    def decode_page(self, response: httpx.Response) -> Page:
        raise NotImplementedError

    def translate(self, entry: Any) -> MediaItem | None:
        raise NotImplementedError

    def canonical_id(self, item: MediaItem) -> str:
        return item.tvdb_id if self.media_type == "show" else item.tmdb_id

    async def validate(self, item: MediaItem) -> bool:
        """Final acceptance check against the identifier's home site."""

        if self._validator is None or self.media_type != "show":
            return True
        return await self._validator.validate_tvdb_id(item.tvdb_id)

    async def search(
        self,
        search_type: str,
        *,
        limit: int | None = None,
        params: Mapping[str, Any] | None = None,
        owned: OwnedPredicate | None = None,
        ignore: IgnorePredicate | None = None,
    ) -> dict[str, MediaItem]:
        """Fetch pages until ``limit`` items are accepted or pages run out.

        Any transport, status or decode failure aborts the whole search; no
        partial result is returned.
        """

        params = params or {}
        url = join_url(self.api_url, self.endpoint(search_type, params))
        request_params = self.build_request_params(params)
        target = limit if limit is not None and limit > 0 else None
        logger.debug("Searching %s %s with params %s", self.name, search_type, request_params)

        items: dict[str, MediaItem] = {}
        stats = SearchStats()
        page = 1

        while True:
            response = await send(
                self._client,
                "GET",
                url,
                timeout=self._timeout,
                params={**request_params, **self.pagination_params(page)},
                headers=self.headers(),
                retry=self._retry,
                limiter=self._limiter,
            )
            if response.status_code != 200:
                raise HTTPStatusError(
                    f"Failed retrieving valid {self.name} {search_type} response: "
                    f"{response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                    url=url,
                )
            try:
                result = self.decode_page(response)
            except (ValueError, TypeError, KeyError) as exc:
                raise DecodeError(
                    f"Failed decoding {self.name} {search_type} response: {exc}"
                ) from exc

            stats.pages += 1
            stats.limit_reached = await self._process_entries(
                result.entries, items, stats, target, owned, ignore
            )

            logger.info(
                "Retrieved %s page %s/%s: accepted=%s existing=%s ignored=%s",
                self.name,
                page,
                result.total_pages,
                stats.accepted,
                stats.existing,
                stats.ignored,
            )

            if stats.limit_reached or page >= result.total_pages:
                break
            page += 1

        self.last_stats = stats
        logger.info("Accepted %s items from %s %s", len(items), self.name, search_type)
        return items

    async def _process_entries(
        self,
        entries: list[Any],
        items: dict[str, MediaItem],
        stats: SearchStats,
        limit: int | None,
        owned: OwnedPredicate | None,
        ignore: IgnorePredicate | None,
    ) -> bool:
        for entry in entries:
            try:
                item = self.translate(entry)
            except (ValueError, TypeError, KeyError) as exc:
                # pydantic ValidationError is a ValueError.
                logger.debug("Skipping malformed %s entry: %s", self.name, exc)
                stats.invalid += 1
                continue
            if item is None or not item.has_identifier():
                stats.invalid += 1
                continue

            item_id = self.canonical_id(item)
            if not item_id:
                stats.invalid += 1
                continue
            if item_id in items:
                stats.duplicates += 1
                continue

            if owned is not None and owned(item):
                logger.debug("Ignoring existing: %s", item.display_title())
                stats.existing += 1
                continue

            if ignore is not None and self._should_ignore(ignore, item):
                logger.debug("Ignoring: %s", item.display_title())
                stats.ignored += 1
                continue

            if not await self.validate(item):
                logger.debug("Ignoring, unverified id %s: %s", item_id, item.display_title())
                stats.ignored += 1
                continue

            logger.debug("Accepted: %s", item.display_title())
            items[item_id] = item
            stats.accepted += 1
            if limit is not None and stats.accepted >= limit:
                return True
        return False

    @staticmethod
    def _should_ignore(ignore: IgnorePredicate, item: MediaItem) -> bool:
        try:
            return ignore(item)
        except ExpressionError as exc:
            logger.error("Failed evaluating ignore expressions against %s: %s", item.display_title(), exc)
            return True
