"""SQLite repository implementations."""

from discord_music_fleet.infrastructure.persistence.repositories.session_record_repository import (
    SQLiteSessionRecordRepository,
)

__all__ = [
    "SQLiteSessionRecordRepository",
]
