from __future__ import annotations

import asyncio
from datetime import datetime

from sqlalchemy import create_engine, inspect, text

from mediarr.database import Database


def _initialise_legacy_schema(database_path: str) -> None:
    """Create a validated items table from before expiry tracking existed."""

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    CREATE TABLE validated_provider_items (
                        provider VARCHAR(32) NOT NULL,
                        id VARCHAR(64) NOT NULL,
                        PRIMARY KEY (provider, id)
                    )
                    """
                )
            )
            connection.execute(
                text(
                    "INSERT INTO validated_provider_items (provider, id) "
                    "VALUES ('tvdb', '81189')"
                )
            )
    finally:
        engine.dispose()


def test_create_all_adds_expires_at_column(tmp_path) -> None:
    """Schema migrations should backfill the expires_at column."""

    database_path = tmp_path / "legacy.db"
    _initialise_legacy_schema(str(database_path))

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {
            column["name"] for column in inspector.get_columns("validated_provider_items")
        }
        tables = set(inspector.get_table_names())
        with inspector_engine.connect() as connection:
            expires_at = connection.execute(
                text("SELECT expires_at FROM validated_provider_items WHERE id = '81189'")
            ).scalar_one()
    finally:
        inspector_engine.dispose()

    assert "expires_at" in columns
    assert "provider_item_metadata" in tables
    assert datetime.fromisoformat(str(expires_at)) == datetime(1970, 1, 1)


def test_create_all_is_idempotent(tmp_path) -> None:
    database_path = tmp_path / "vault.db"

    async def _run() -> None:
        database = Database(f"sqlite+aiosqlite:///{database_path}")
        await database.create_all()
        await database.create_all()
        await database.dispose()

    asyncio.run(_run())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        columns = [
            column["name"]
            for column in inspect(inspector_engine).get_columns("validated_provider_items")
        ]
    finally:
        inspector_engine.dispose()

    assert columns == ["provider", "id", "expires_at"]
