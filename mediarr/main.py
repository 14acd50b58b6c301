"""Entry point for the FastAPI discovery service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import asdict
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request

from .config import Settings, get_settings
from .database import Database
from .errors import ConfigurationError, DecodeError, HTTPStatusError, TransportError
from .models import MEDIA_TYPES, MediaItemPayload
from .ratelimit import RateLimiterRegistry
from .services.discovery import DiscoveryService
from .services.library import LibraryFilters
from .services.providers import supported_search_types
from .services.validation_cache import ValidationCache
from .services.validators import IdentifierValidator

logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    settings: Settings = fastapi_app.state.settings
    # Broken rules are fatal before any resource is opened.
    filters = LibraryFilters.from_settings(settings)

    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(settings.provider_timeout_seconds, connect=10.0),
            headers={"User-Agent": f"{settings.app_name} (mediarr)"},
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    registry = RateLimiterRegistry()
    cache = ValidationCache(database.session_factory, default_ttl=settings.validation_ttl)
    validator = IdentifierValidator(http_client, registry, cache, ttl=settings.validation_ttl)

    fastapi_app.state.database = database
    fastapi_app.state.discovery_service = DiscoveryService(
        settings,
        http_client,
        registry,
        filters=filters,
        validator=validator,
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Discovers new movies and shows from TMDB, Trakt and TVMaze",
        version="1.0.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings = settings

    register_routes(fastapi_app)
    return fastapi_app


def get_discovery_service(fastapi_app: FastAPI) -> DiscoveryService:
    service = getattr(fastapi_app.state, "discovery_service", None)
    if service is None:
        raise RuntimeError("Discovery service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/providers")
    async def providers() -> dict[str, dict[str, list[str]]]:
        return supported_search_types()

    @fastapi_app.get("/discover/{provider}/{media_type}/{search_type}")
    async def discover(
        request: Request,
        provider: str,
        media_type: str,
        search_type: str,
        limit: int | None = None,
    ) -> dict[str, Any]:
        if media_type not in MEDIA_TYPES:
            raise HTTPException(status_code=400, detail="Unsupported media type")
        if limit is not None and limit < 0:
            raise HTTPException(status_code=400, detail="limit must not be negative")

        params = {
            key: value for key, value in request.query_params.items() if key != "limit"
        }
        service = get_discovery_service(fastapi_app)
        try:
            result = await service.discover(
                provider,
                media_type,  # type: ignore[arg-type]
                search_type,
                limit=limit,
                params=params,
            )
        except (ValueError, ConfigurationError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (TransportError, HTTPStatusError, DecodeError) as exc:
            logger.warning("Discovery from %s failed: %s", provider, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc

        stats = asdict(result.stats)
        return {
            "provider": result.provider,
            "media_type": result.media_type,
            "search_type": result.search_type,
            "count": len(result.items),
            "stats": stats,
            "items": [
                MediaItemPayload.from_item(item).model_dump(mode="json")
                for item in result.items
            ],
        }


app = create_app()
