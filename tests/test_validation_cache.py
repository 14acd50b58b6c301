"""Tests for the persistent validated-identifier cache."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from sqlalchemy import select

from mediarr.database import Database
from mediarr.db_models import ValidatedProviderItem
from mediarr.services.validation_cache import ValidationCache


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_entry_expires_and_is_removed(tmp_path) -> None:
    """An expired entry reads as absent and is deleted by that read."""

    clock = FakeClock(datetime(2024, 1, 1, 12, 0))

    async def _run() -> tuple[bool, bool, list[ValidatedProviderItem]]:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}")
        await database.create_all()
        cache = ValidationCache(database.session_factory, clock=clock)
        try:
            assert await cache.add("tvdb", "81189", timedelta(hours=1))
            fresh = await cache.exists("tvdb", "81189")
            clock.now += timedelta(hours=2)
            stale = await cache.exists("tvdb", "81189")
            async with database.session() as session:
                remaining = list((await session.scalars(select(ValidatedProviderItem))).all())
        finally:
            await database.dispose()
        return fresh, stale, remaining

    fresh, stale, remaining = asyncio.run(_run())

    assert fresh is True
    assert stale is False
    assert remaining == []


def test_default_ttl_and_provider_case(tmp_path) -> None:
    clock = FakeClock(datetime(2024, 1, 1))

    async def _run() -> tuple[bool, bool, bool]:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}")
        await database.create_all()
        cache = ValidationCache(database.session_factory, clock=clock)
        try:
            await cache.add("TMDB", "603")
            within = await cache.exists("tmdb", "603")
            other_provider = await cache.exists("tvdb", "603")
            clock.now += timedelta(hours=169)
            after = await cache.exists("tmdb", "603")
        finally:
            await database.dispose()
        return within, other_provider, after

    within, other_provider, after = asyncio.run(_run())

    assert within is True
    assert other_provider is False
    assert after is False


def test_re_adding_refreshes_expiry(tmp_path) -> None:
    clock = FakeClock(datetime(2024, 1, 1))

    async def _run() -> bool:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}")
        await database.create_all()
        cache = ValidationCache(database.session_factory, clock=clock)
        try:
            await cache.add("tvdb", "1", timedelta(hours=1))
            clock.now += timedelta(minutes=50)
            await cache.add("tvdb", "1", timedelta(hours=1))
            clock.now += timedelta(minutes=50)
            return await cache.exists("tvdb", "1")
        finally:
            await database.dispose()

    assert asyncio.run(_run()) is True


def test_metadata_round_trip(tmp_path) -> None:
    payload = {"title": "The Matrix", "genres": ["Action", "Science Fiction"], "runtime": 136}

    async def _run() -> tuple[object, object]:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}")
        await database.create_all()
        cache = ValidationCache(database.session_factory)
        try:
            missing = await cache.get_metadata("tmdb", "603")
            assert await cache.add_metadata("tmdb", "603", payload)
            stored = await cache.get_metadata("tmdb", "603")
        finally:
            await database.dispose()
        return missing, stored

    missing, stored = asyncio.run(_run())

    assert missing is None
    assert stored == payload


def test_storage_failures_are_swallowed(tmp_path) -> None:
    """A cache without its tables degrades to misses instead of raising."""

    async def _run() -> tuple[bool, bool]:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        cache = ValidationCache(database.session_factory)
        try:
            added = await cache.add("tvdb", "1")
            exists = await cache.exists("tvdb", "1")
        finally:
            await database.dispose()
        return added, exists

    assert asyncio.run(_run()) == (False, False)
