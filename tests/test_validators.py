"""Tests for remote identifier validation."""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from mediarr.ratelimit import RateLimiterRegistry
from mediarr.services.validators import IdentifierValidator


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class MemoryCache:
    """In-memory stand-in exposing the cache methods the validator uses."""

    def __init__(self, entries: set[tuple[str, str]] | None = None):
        self.entries = set(entries or ())
        self.added: list[tuple[str, str, timedelta | None]] = []

    async def exists(self, provider: str, item_id: str) -> bool:
        return (provider, item_id) in self.entries

    async def add(self, provider: str, item_id: str, ttl: timedelta | None = None) -> bool:
        self.entries.add((provider, item_id))
        self.added.append((provider, item_id, ttl))
        return True


@pytest.mark.anyio("asyncio")
async def test_cache_hit_skips_network() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(404)

    cache = MemoryCache({("tvdb", "81189")})
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        validator = IdentifierValidator(client, RateLimiterRegistry(), cache)  # type: ignore[arg-type]
        assert await validator.validate_tvdb_id("81189") is True

    assert requests == []


@pytest.mark.anyio("asyncio")
async def test_successful_lookup_is_cached() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text="<html></html>")

    cache = MemoryCache()
    ttl = timedelta(hours=2)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        validator = IdentifierValidator(client, RateLimiterRegistry(), cache, ttl=ttl)  # type: ignore[arg-type]
        assert await validator.validate_tmdb_id("movie", "603") is True

    assert str(requests[0].url) == "https://www.themoviedb.org/movie/603"
    assert cache.added == [("tmdb", "603", ttl)]


@pytest.mark.anyio("asyncio")
async def test_missing_series_is_rejected_and_not_cached() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/dereferrer/series/999999"
        return httpx.Response(404)

    cache = MemoryCache()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        validator = IdentifierValidator(client, RateLimiterRegistry(), cache)  # type: ignore[arg-type]
        assert await validator.validate_tvdb_id("999999") is False

    assert cache.added == []


@pytest.mark.anyio("asyncio")
async def test_transport_failure_reads_as_invalid() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        validator = IdentifierValidator(client, RateLimiterRegistry())
        assert await validator.validate_tvdb_id("81189") is False


@pytest.mark.anyio("asyncio")
async def test_validation_uses_shared_limiter() -> None:
    registry = RateLimiterRegistry()

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        validator = IdentifierValidator(client, registry)
        await validator.validate_tvdb_id("1")

    assert "tvdb" in registry
