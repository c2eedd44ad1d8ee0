"""
Music Bounded Context

Domain model for tracks, per-tenant playback state and persisted sessions.
"""

from discord_music_fleet.domain.music.entities import PersistedSessionRecord, PlaybackState, Track
from discord_music_fleet.domain.music.repository import SessionRecordRepository
from discord_music_fleet.domain.music.value_objects import (
    OperationResult,
    Platform,
    PlaybackStatus,
    TrackId,
)

__all__ = [
    # Entities
    "Track",
    "PlaybackState",
    "PersistedSessionRecord",
    # Value Objects
    "TrackId",
    "Platform",
    "PlaybackStatus",
    "OperationResult",
    # Repository
    "SessionRecordRepository",
]
