"""Persistent memo of identifiers already proven to exist."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import ProviderItemMetadata, ValidatedProviderItem
from ..errors import CacheError

logger = logging.getLogger(__name__)

DEFAULT_VALIDATION_TTL = timedelta(hours=168)


def _utcnow() -> datetime:
    # SQLite DateTime columns round-trip naive values only.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ValidationCache:
    """Key to expiry store consulted before remote identifier validation.

    Entries expire lazily: an expired row is deleted by the read that notices
    it. Storage failures are logged and never propagate, so losing the cache
    only costs extra remote lookups.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_ttl: timedelta = DEFAULT_VALIDATION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._default_ttl = default_ttl
        self._clock = clock

    async def exists(self, provider: str, item_id: str) -> bool:
        """Return whether ``item_id`` is a live validated entry for ``provider``."""

        key = (provider.lower(), str(item_id))
        try:
            async with self._session_factory() as session:
                entry = await session.get(ValidatedProviderItem, key)
                if entry is None:
                    return False
                if entry.expires_at is not None and self._clock() < entry.expires_at:
                    return True
                await session.delete(entry)
                await session.commit()
                logger.debug("Expired validated %s item %s", *key)
                return False
        except SQLAlchemyError:
            logger.exception("Failed reading validated %s item %s", *key)
            return False

    async def add(
        self,
        provider: str,
        item_id: str,
        ttl: timedelta | None = None,
    ) -> bool:
        """Record ``item_id`` as validated until now + ``ttl``.

        Returns False when the entry could not be stored.
        """

        expires_at = self._clock() + (ttl if ttl is not None else self._default_ttl)
        entry = ValidatedProviderItem(
            provider=provider.lower(), id=str(item_id), expires_at=expires_at
        )
        try:
            await self._merge(entry)
        except CacheError as exc:
            logger.error("Failed storing validated %s item %s: %s", provider, item_id, exc)
            return False
        return True

    async def get_metadata(self, provider: str, item_id: str) -> Any | None:
        """Return the cached detail payload for an item, if any."""

        key = (provider.lower(), str(item_id))
        try:
            async with self._session_factory() as session:
                entry = await session.get(ProviderItemMetadata, key)
        except SQLAlchemyError:
            logger.exception("Failed reading %s metadata for %s", *key)
            return None
        if entry is None:
            return None
        try:
            return json.loads(entry.json)
        except ValueError:
            logger.warning("Discarding undecodable %s metadata for %s", *key)
            return None

    async def add_metadata(self, provider: str, item_id: str, payload: Any) -> bool:
        """Insert or replace the detail payload for an item."""

        try:
            serialised = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            logger.error("Failed serialising %s metadata for %s: %s", provider, item_id, exc)
            return False

        entry = ProviderItemMetadata(provider=provider.lower(), id=str(item_id), json=serialised)
        try:
            await self._merge(entry)
        except CacheError as exc:
            logger.error("Failed storing %s metadata for %s: %s", provider, item_id, exc)
            return False
        return True

    async def _merge(self, entry: ValidatedProviderItem | ProviderItemMetadata) -> None:
        try:
            async with self._session_factory() as session:
                await session.merge(entry)
                await session.commit()
        except SQLAlchemyError as exc:
            raise CacheError(str(exc)) from exc
