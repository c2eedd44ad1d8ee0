"""Core domain entities for the music bounded context."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from discord_music_fleet.domain.music.value_objects import Platform, PlaybackStatus, TrackIdField
from discord_music_fleet.domain.shared.datetime_utils import utcnow
from discord_music_fleet.domain.shared.exceptions import InvalidOperationError
from discord_music_fleet.domain.shared.types import (
    ChannelIdField,
    DurationSeconds,
    HttpUrlStr,
    NonEmptyStr,
    PositionMs,
    TenantIdField,
    TrackTitleStr,
    UtcDatetimeField,
)

# Channel ids travel as strings in the persisted record.
_ChannelIdAsStr = Annotated[ChannelIdField, PlainSerializer(str, return_type=str)]


class Track(BaseModel):
    """Immutable, normalized unit of playable media."""

    model_config = ConfigDict(frozen=True)

    id: TrackIdField
    source_platform: Platform
    url: HttpUrlStr
    title: TrackTitleStr
    duration_seconds: DurationSeconds | None = None
    thumbnail_url: HttpUrlStr | None = None

    # Opaque handle for the transport: a remote stream URL or a local cache path.
    stream_locator: NonEmptyStr | None = None

    @property
    def duration_formatted(self) -> str:
        """Format duration as MM:SS or HH:MM:SS."""
        if self.duration_seconds is None:
            return "Unknown"

        hours, remainder = divmod(self.duration_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)

        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    @property
    def display_title(self) -> str:
        if self.duration_seconds:
            return f"{self.title} [{self.duration_formatted}]"
        return self.title

    @property
    def local_path(self) -> Path | None:
        """Resolved path when the locator points at a file, else None."""
        if not self.stream_locator or "://" in self.stream_locator:
            return None
        return Path(self.stream_locator).resolve()

    def with_stream(self, locator: str) -> Track:
        return self.model_copy(update={"stream_locator": locator})


class PersistedSessionRecord(BaseModel):
    """Serializable projection of a tenant's PlaybackState.

    Replaced as a whole on every write; never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    voice_channel_id: _ChannelIdAsStr
    text_channel_id: _ChannelIdAsStr | None = None
    current_track: Track | None = None
    queue: list[Track] = Field(default_factory=list)
    position_ms: PositionMs = 0
    status: PlaybackStatus = PlaybackStatus.IDLE
    updated_at: UtcDatetimeField = Field(default_factory=utcnow)

    def referenced_tracks(self) -> list[Track]:
        tracks = [self.current_track] if self.current_track else []
        return tracks + list(self.queue)

    def referenced_files(self) -> set[Path]:
        return {path for t in self.referenced_tracks() if (path := t.local_path) is not None}


class PlaybackState(BaseModel):
    """Mutable state of one tenant's session, owned by its PlaybackEngine."""

    tenant_id: TenantIdField
    status: PlaybackStatus = PlaybackStatus.IDLE
    current_track: Track | None = None
    queue: list[Track] = Field(default_factory=list)
    position_ms: PositionMs = 0
    voice_channel_id: ChannelIdField | None = None
    text_channel_id: ChannelIdField | None = None
    updated_at: UtcDatetimeField = Field(default_factory=utcnow)

    @property
    def queue_length(self) -> int:
        return len(self.queue)

    @property
    def has_tracks(self) -> bool:
        return self.current_track is not None or bool(self.queue)

    def touch(self) -> None:
        """Update last mutation timestamp."""
        self.updated_at = utcnow()

    def enqueue(self, tracks: list[Track], *, at_head: bool = False) -> None:
        if at_head:
            self.queue[0:0] = tracks
        else:
            self.queue.extend(tracks)
        self.touch()

    def dequeue(self) -> Track | None:
        if not self.queue:
            return None
        track = self.queue.pop(0)
        self.touch()
        return track

    def transition_to(self, new_status: PlaybackStatus) -> None:
        if not self.status.can_transition_to(new_status):
            raise InvalidOperationError(
                operation=f"transition to {new_status.value}",
                current_state=self.status.value,
                message=f"Cannot transition from {self.status.value} to {new_status.value}",
            )
        self.status = new_status
        if not new_status.has_current_track:
            self.current_track = None
            self.position_ms = 0
        self.touch()

    def begin(self, track: Track) -> None:
        """Make `track` current and enter RESOLVING."""
        self.transition_to(PlaybackStatus.RESOLVING)
        self.current_track = track
        self.position_ms = 0

    def replace_current(self, track: Track) -> None:
        """Swap the current track for its stream-resolved copy."""
        self.current_track = track
        self.touch()

    def clear(self, status: PlaybackStatus) -> int:
        """Drop the queue and current track, settling in `status` (IDLE or STOPPED).

        Already being in `status` is fine; an invalid transition raises before
        anything is dropped.
        """
        if status != self.status:
            self.transition_to(status)
        else:
            self.current_track = None
            self.position_ms = 0
            self.touch()
        count = len(self.queue)
        self.queue.clear()
        return count

    def to_record(self) -> PersistedSessionRecord | None:
        """Project into a persisted record; None when there is no voice channel yet."""
        if self.voice_channel_id is None:
            return None
        return PersistedSessionRecord(
            voice_channel_id=self.voice_channel_id,
            text_channel_id=self.text_channel_id,
            current_track=self.current_track,
            queue=list(self.queue),
            position_ms=self.position_ms,
            status=self.status,
            updated_at=self.updated_at,
        )
