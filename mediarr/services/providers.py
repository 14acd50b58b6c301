"""Registry of the catalog providers known to mediarr."""

from __future__ import annotations

from enum import Enum

import httpx

from ..config import Settings
from ..models import MEDIA_TYPES, MediaType
from ..ratelimit import RateLimiterRegistry
from .base import MediaProvider
from .tmdb import TMDBProvider
from .trakt import TraktProvider
from .transport import RetryPolicy
from .tvmaze import TVMazeProvider
from .validators import IdentifierValidator


class ProviderName(str, Enum):
    TMDB = "tmdb"
    TRAKT = "trakt"
    TVMAZE = "tvmaze"


PROVIDERS: dict[ProviderName, type[MediaProvider]] = {
    ProviderName.TMDB: TMDBProvider,
    ProviderName.TRAKT: TraktProvider,
    ProviderName.TVMAZE: TVMazeProvider,
}


def resolve_provider_name(name: str | ProviderName) -> ProviderName:
    try:
        return ProviderName(str(getattr(name, "value", name)).strip().lower())
    except ValueError:
        valid = ", ".join(provider.value for provider in ProviderName)
        raise ValueError(f"Unknown provider {name!r}; valid providers: {valid}") from None


def supported_search_types() -> dict[str, dict[str, list[str]]]:
    """Return ``provider -> media type -> search types`` for every provider."""

    return {
        name.value: {
            media_type: list(provider.search_types[media_type])
            for media_type in MEDIA_TYPES
            if media_type in provider.search_types
        }
        for name, provider in PROVIDERS.items()
    }


def create_provider(
    name: str | ProviderName,
    media_type: MediaType,
    settings: Settings,
    http_client: httpx.AsyncClient,
    registry: RateLimiterRegistry,
    *,
    validator: IdentifierValidator | None = None,
    retry: RetryPolicy | None = None,
) -> MediaProvider:
    """Build the provider ``name`` for ``media_type``.

    Raises ValueError for unknown providers or unsupported media types and
    ConfigurationError when the provider's credentials are missing.
    """

    provider_cls = PROVIDERS[resolve_provider_name(name)]
    return provider_cls(
        settings,
        http_client,
        registry,
        media_type,
        validator=validator,
        retry=retry,
    )
