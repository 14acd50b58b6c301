"""Runs provider searches against a library's holdings and rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import httpx

from ..config import Settings
from ..errors import MediarrError
from ..models import MediaItem, MediaType
from ..ratelimit import RateLimiterRegistry
from .base import MediaProvider, SearchStats
from .library import LibraryFilters, LibraryManager, owned_predicate, prune_existing_media, sort_media_items
from .providers import ProviderName, create_provider, resolve_provider_name
from .validators import IdentifierValidator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DiscoveryResult:
    """Newly discovered items for one search, newest release first."""

    provider: str
    media_type: MediaType
    search_type: str
    items: list[MediaItem] = field(default_factory=list)
    stats: SearchStats = field(default_factory=SearchStats)


class DiscoveryService:
    """Builds providers on demand and drives searches for the HTTP surface."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        registry: RateLimiterRegistry,
        *,
        filters: LibraryFilters | None = None,
        validator: IdentifierValidator | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._registry = registry
        self._filters = filters or LibraryFilters()
        self._validator = validator
        self._providers: dict[tuple[ProviderName, MediaType], MediaProvider] = {}

    @property
    def filters(self) -> LibraryFilters:
        return self._filters

    async def get_provider(self, name: str | ProviderName, media_type: MediaType) -> MediaProvider:
        """Return an initialised provider, building it on first use."""

        key = (resolve_provider_name(name), media_type)
        provider = self._providers.get(key)
        if provider is None:
            provider = create_provider(
                key[0],
                media_type,
                self._settings,
                self._client,
                self._registry,
                validator=self._validator,
            )
            await provider.initialize()
            self._providers[key] = provider
        return provider

    async def discover(
        self,
        provider_name: str | ProviderName,
        media_type: MediaType,
        search_type: str,
        *,
        limit: int | None = None,
        params: Mapping[str, Any] | None = None,
        library: LibraryManager | None = None,
    ) -> DiscoveryResult:
        """Search ``provider_name`` and return the items not already held.

        When ``library`` is given its holdings and ignore rules are used,
        otherwise the configured ignore expressions apply and nothing is owned.
        """

        provider = await self.get_provider(provider_name, media_type)
        if not provider.supports(search_type):
            raise ValueError(
                f"Unsupported search type {search_type!r}, valid types: "
                f"{', '.join(provider.supported_search_types)}"
            )

        existing: dict[str, MediaItem] = {}
        if library is not None:
            existing = await library.get_existing_media()
            logger.info("Retrieved %s existing %s items from library", len(existing), media_type)
        ignore = library.should_ignore if library is not None else self._filters.should_ignore

        found = await provider.search(
            search_type,
            limit=limit,
            params=params,
            owned=owned_predicate(existing) if existing else None,
            ignore=ignore,
        )
        new_items = prune_existing_media(existing, found)
        logger.info("Discovered %s new %s items from %s", len(new_items), media_type, provider.name)

        return DiscoveryResult(
            provider=provider.name,
            media_type=media_type,
            search_type=search_type.lower(),
            items=sort_media_items(new_items.values()),
            stats=provider.last_stats,
        )

    async def add_all(self, library: LibraryManager, items: Iterable[MediaItem]) -> int:
        """Add ``items`` to ``library``, returning how many were added."""

        added = 0
        for item in items:
            try:
                await library.add_media(item)
            except MediarrError as exc:
                logger.error("Failed adding %s to library: %s", item.display_title(), exc)
                continue
            logger.info("Added: %s", item.display_title())
            added += 1
        return added
