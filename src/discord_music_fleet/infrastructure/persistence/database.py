"""aiosqlite access for the per-bot session store.

Every call opens a short-lived connection in WAL mode. `:memory:` URLs map to
a uniquely named shared-cache database that lives as long as the `Database`
object holds its anchor connection.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

from discord_music_fleet.domain.shared.constants import (
    DatabaseColumns,
    DatabaseTables,
    DatabaseURLSchemes,
    SQLPragmas,
)
from discord_music_fleet.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...config.settings import DatabaseSettings

logger = logging.getLogger(__name__)

Params = tuple[Any, ...]

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {DatabaseTables.SESSION_RECORDS} (
    {DatabaseColumns.TENANT_ID} INTEGER PRIMARY KEY,
    {DatabaseColumns.RECORD_JSON} TEXT NOT NULL,
    {DatabaseColumns.UPDATED_AT} TEXT NOT NULL
)
"""


def _path_from_url(url: str) -> str:
    prefix = DatabaseURLSchemes.SQLITE + "/"
    return url[len(prefix) :] if url.startswith(prefix) else url


class Database:
    def __init__(self, url: str, settings: DatabaseSettings | None = None) -> None:
        self._db_path = _path_from_url(url)
        self._busy_timeout_ms = settings.busy_timeout_ms if settings else 5000
        self._timeout_s = settings.connection_timeout_s if settings else 10
        self._anchor: aiosqlite.Connection | None = None
        self._initialized = False
        # Distinct per instance: two bots in one process must not share rows.
        self._memory_uri = f"file:fleet-{uuid.uuid4().hex}?mode=memory&cache=shared"

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_memory(self) -> bool:
        return self._db_path == DatabaseURLSchemes.MEMORY

    async def initialize(self) -> None:
        """Create the parent directory and schema; safe to call twice."""
        if self._initialized:
            return

        if self.is_memory:
            if self._anchor is None:
                self._anchor = await self._connect()
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        async with self.transaction() as conn:
            await conn.execute(_SCHEMA)

        self._initialized = True
        logger.info(LogTemplates.DATABASE_INITIALIZED, self._db_path)

    async def _connect(self) -> aiosqlite.Connection:
        if self.is_memory:
            conn = await aiosqlite.connect(self._memory_uri, uri=True, timeout=self._timeout_s)
        else:
            conn = await aiosqlite.connect(self._db_path, timeout=self._timeout_s)
        conn.row_factory = aiosqlite.Row
        await conn.execute(SQLPragmas.JOURNAL_MODE_WAL)
        await conn.execute(SQLPragmas.BUSY_TIMEOUT.format(timeout=self._busy_timeout_ms))
        return conn

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        conn = await self._connect()
        try:
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Commit on normal exit, roll back and re-raise otherwise."""
        async with self.connection() as conn:
            try:
                yield conn
            except Exception:
                await conn.rollback()
                raise
            await conn.commit()

    async def execute(self, sql: str, parameters: Params = ()) -> aiosqlite.Cursor:
        async with self.transaction() as conn:
            return await conn.execute(sql, parameters)

    async def fetch_one(self, sql: str, parameters: Params = ()) -> dict[str, Any] | None:
        async with self.connection() as conn:
            async with conn.execute(sql, parameters) as cursor:
                row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, parameters: Params = ()) -> list[dict[str, Any]]:
        async with self.connection() as conn:
            rows = await conn.execute_fetchall(sql, parameters)
        return [dict(row) for row in rows]

    async def close(self) -> None:
        """Release the in-memory anchor; file databases have nothing to close."""
        anchor, self._anchor = self._anchor, None
        self._initialized = False
        if anchor is not None:
            await anchor.close()
        logger.info(LogTemplates.DATABASE_CLOSED)
