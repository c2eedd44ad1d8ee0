"""Command and handler for playing a track from a query or URL."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, field_validator

from discord_music_fleet.domain.music.entities import Track
from discord_music_fleet.domain.shared.exceptions import (
    InvalidOperationError,
    ResolutionError,
    VoiceConnectionError,
)
from discord_music_fleet.domain.shared.types import DiscordSnowflake, NonEmptyStr, NonNegativeInt

if TYPE_CHECKING:
    from ..interfaces.voice_transport import VoiceTransport
    from ..services.connection_supervisor import ConnectionSupervisor
    from ..services.session_registry import SessionRegistry
    from ..services.track_dispatcher import TrackDispatcher


class PlayTrackStatus(Enum):
    """Status codes for play track results."""

    QUEUED = "queued"
    NOW_PLAYING = "now_playing"
    TRACK_NOT_FOUND = "track_not_found"
    RESOLUTION_ERROR = "resolution_error"
    VOICE_ERROR = "voice_error"
    QUEUE_FULL = "queue_full"
    SESSION_ENDED = "session_ended"


class PlayTrackCommand(BaseModel):
    """Request to resolve a query/URL, join the caller's channel and queue the result."""

    model_config = ConfigDict(frozen=True, strict=True)

    guild_id: DiscordSnowflake
    voice_channel_id: DiscordSnowflake
    text_channel_id: DiscordSnowflake
    user_id: DiscordSnowflake
    query: NonEmptyStr

    play_next: bool = False

    @field_validator("query", mode="before")
    @classmethod
    def _strip_query(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip()
        return v


class PlayTrackResult(BaseModel):
    """Result of a play track command."""

    model_config = ConfigDict(frozen=True)

    status: PlayTrackStatus
    message: str
    tracks: list[Track] = []
    queue_position: NonNegativeInt | None = None
    queue_length: NonNegativeInt = 0
    started_playing: bool = False
    is_playlist: bool = False

    @property
    def is_success(self) -> bool:
        return self.status in {PlayTrackStatus.QUEUED, PlayTrackStatus.NOW_PLAYING}

    @property
    def track(self) -> Track | None:
        return self.tracks[0] if self.tracks else None

    @classmethod
    def success(
        cls,
        tracks: list[Track],
        queue_position: int,
        queue_length: int,
        started_playing: bool = False,
        is_playlist: bool = False,
    ) -> PlayTrackResult:
        first = tracks[0]
        if is_playlist:
            status = PlayTrackStatus.NOW_PLAYING if started_playing else PlayTrackStatus.QUEUED
            message = f"Added {len(tracks)} tracks from playlist"
        elif started_playing:
            status = PlayTrackStatus.NOW_PLAYING
            message = f"Now playing: {first.title}"
        else:
            status = PlayTrackStatus.QUEUED
            message = f"Added to queue: {first.title} (position {queue_position})"

        return cls(
            status=status,
            message=message,
            tracks=tracks,
            queue_position=queue_position,
            queue_length=queue_length,
            started_playing=started_playing,
            is_playlist=is_playlist,
        )

    @classmethod
    def error(cls, status: PlayTrackStatus, message: str) -> PlayTrackResult:
        return cls(status=status, message=message)


class PlayTrackHandler:
    """Joins the caller's channel, resolves the query and enqueues the tracks."""

    def __init__(
        self,
        *,
        dispatcher: TrackDispatcher,
        registry: SessionRegistry,
        transport: VoiceTransport,
        supervisor: ConnectionSupervisor | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._registry = registry
        self._transport = transport
        self._supervisor = supervisor

    async def handle(self, command: PlayTrackCommand) -> PlayTrackResult:
        try:
            await self._transport.join(command.voice_channel_id, command.guild_id)
        except VoiceConnectionError as e:
            return PlayTrackResult.error(PlayTrackStatus.VOICE_ERROR, e.message)

        try:
            resolved = await self._dispatcher.resolve_query(command.query, command.guild_id)
        except ResolutionError as e:
            if e.is_retryable:
                return PlayTrackResult.error(PlayTrackStatus.RESOLUTION_ERROR, e.message)
            return PlayTrackResult.error(PlayTrackStatus.TRACK_NOT_FOUND, e.message)

        engine = self._registry.get_or_create(
            command.guild_id,
            voice_channel_id=command.voice_channel_id,
            text_channel_id=command.text_channel_id,
        )
        try:
            result = await engine.enqueue(resolved.tracks, play_now=command.play_next)
        except InvalidOperationError as e:
            # A concurrent leave closed the engine before the enqueue ran.
            if engine.is_closed:
                return PlayTrackResult.error(PlayTrackStatus.SESSION_ENDED, e.message)
            return PlayTrackResult.error(PlayTrackStatus.QUEUE_FULL, e.message)

        if self._supervisor is not None:
            self._supervisor.assign(command.guild_id, command.voice_channel_id)

        return PlayTrackResult.success(
            tracks=resolved.tracks,
            queue_position=result.position,
            queue_length=result.queue_length,
            started_playing=result.started,
            is_playlist=resolved.is_playlist,
        )
