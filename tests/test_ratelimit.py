"""Tests for the named rate limiter registry."""

from __future__ import annotations

import time

import pytest

from mediarr.ratelimit import RateLimiter, RateLimiterRegistry


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def test_registry_shares_limiter_across_case() -> None:
    """Names differing only in case must resolve to the same limiter."""

    registry = RateLimiterRegistry()

    first = registry.acquire("TVDB", 3)
    second = registry.acquire("tvdb", 3)

    assert first is second
    assert "Tvdb" in registry
    assert len(registry) == 1


def test_first_rate_wins() -> None:
    registry = RateLimiterRegistry()

    original = registry.acquire("trakt", 3)
    again = registry.acquire("trakt", 10)

    assert again is original
    assert again.rate == 3


def test_non_positive_rate_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimiter("tmdb", 0)


@pytest.mark.anyio("asyncio")
async def test_take_paces_without_burst() -> None:
    """Ten takes at 10/s must span at least 0.8 seconds."""

    limiter = RateLimiterRegistry().acquire("pace", 10)

    started = time.monotonic()
    for _ in range(10):
        await limiter.take()
    elapsed = time.monotonic() - started

    assert elapsed >= 0.8
