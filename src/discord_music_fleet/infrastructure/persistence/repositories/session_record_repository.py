"""SQLite implementation of the session record repository."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from discord_music_fleet.domain.music.entities import PersistedSessionRecord
from discord_music_fleet.domain.music.repository import SessionRecordRepository
from discord_music_fleet.domain.shared.constants import DatabaseColumns, DatabaseTables
from discord_music_fleet.domain.shared.datetime_utils import UtcDateTime
from discord_music_fleet.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ..database import Database

logger = logging.getLogger(__name__)

_TABLE = DatabaseTables.SESSION_RECORDS
_TENANT = DatabaseColumns.TENANT_ID
_JSON = DatabaseColumns.RECORD_JSON
_UPDATED = DatabaseColumns.UPDATED_AT


class SQLiteSessionRecordRepository(SessionRecordRepository):
    """One row per tenant holding the record as JSON.

    A save is a single upsert statement, so a row is always either the old or
    the new record.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def save(self, tenant_id: int, record: PersistedSessionRecord) -> None:
        await self._db.execute(
            f"""
            INSERT INTO {_TABLE} ({_TENANT}, {_JSON}, {_UPDATED})
            VALUES (?, ?, ?)
            ON CONFLICT({_TENANT}) DO UPDATE SET
                {_JSON} = excluded.{_JSON},
                {_UPDATED} = excluded.{_UPDATED}
            """,
            (tenant_id, record.model_dump_json(), UtcDateTime(record.updated_at).iso),
        )
        logger.debug(LogTemplates.RECORD_SAVED, tenant_id)

    async def get(self, tenant_id: int) -> PersistedSessionRecord | None:
        row = await self._db.fetch_one(
            f"SELECT {_JSON} FROM {_TABLE} WHERE {_TENANT} = ?",
            (tenant_id,),
        )
        if row is None:
            return None
        return self._parse(tenant_id, row[_JSON])

    async def load_all(self) -> dict[int, PersistedSessionRecord]:
        rows = await self._db.fetch_all(
            f"SELECT {_TENANT}, {_JSON} FROM {_TABLE} ORDER BY {_TENANT}"
        )
        records: dict[int, PersistedSessionRecord] = {}
        for row in rows:
            record = self._parse(row[_TENANT], row[_JSON])
            if record is not None:
                records[row[_TENANT]] = record
        return records

    async def delete(self, tenant_id: int) -> bool:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"DELETE FROM {_TABLE} WHERE {_TENANT} = ?",
                (tenant_id,),
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.debug(LogTemplates.RECORD_DELETED, tenant_id)
        return deleted

    @staticmethod
    def _parse(tenant_id: int, payload: str | None) -> PersistedSessionRecord | None:
        if not payload:
            logger.warning(LogTemplates.RECORD_CORRUPT, tenant_id, "empty payload")
            return None
        try:
            return PersistedSessionRecord.model_validate_json(payload)
        except PydanticValidationError as exc:
            logger.warning(
                LogTemplates.RECORD_CORRUPT, tenant_id, f"{exc.error_count()} validation error(s)"
            )
            return None
