"""Immutable value objects for the music bounded context."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from pydantic import PlainSerializer, PlainValidator

from discord_music_fleet.domain.shared.messages import ErrorMessages

_YOUTUBE_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})"),
)
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class TrackId:
    """Stable identifier of a track; also the stem of its media cache file.

    Typically a YouTube video ID, a catalog ID, or a hash of the URL.
    """

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError(ErrorMessages.EMPTY_TRACK_ID)
        if not _SAFE_ID.match(self.value):
            raise ValueError(ErrorMessages.UNSAFE_TRACK_ID.format(value=self.value))

    def __str__(self) -> str:
        return self.value

    def __hash__(self) -> int:
        return hash(self.value)

    @classmethod
    def from_url(cls, url: str) -> TrackId:
        """Extract track ID from a URL, using YouTube video ID or a URL hash as fallback."""
        for pattern in _YOUTUBE_ID_PATTERNS:
            match = pattern.search(url)
            if match:
                return cls(match.group(1))

        url_hash = hashlib.sha256(url.encode()).hexdigest()[:16]
        return cls(url_hash)


# Serializes as plain string in JSON, stores as TrackId in the model.
TrackIdField = Annotated[
    TrackId,
    PlainValidator(lambda v: TrackId(v) if isinstance(v, str) else v),
    PlainSerializer(lambda v: v.value, return_type=str),
]


class Platform(Enum):
    """Music catalog a track or query belongs to."""

    YOUTUBE = "youtube"
    SPOTIFY = "spotify"
    SOUNDCLOUD = "soundcloud"
    DIRECT = "direct"
    UNKNOWN = "unknown"


class PlaybackStatus(Enum):
    """Engine state.

    State transitions:
    - IDLE -> RESOLVING (first track enqueued)
    - STOPPED -> RESOLVING (enqueue after stop, connection kept)
    - RESOLVING -> PLAYING (stream resolved and transport started)
    - RESOLVING -> RESOLVING (failed track skipped, next one tried)
    - RESOLVING -> IDLE (queue exhausted or connection lost)
    - PLAYING <-> PAUSED
    - PLAYING/PAUSED -> RESOLVING (track ended or skipped, queue not empty)
    - PLAYING/PAUSED -> IDLE (track ended or skipped, queue empty)
    - Any -> STOPPED (stop / leave)
    - STOPPED -> IDLE (connection lost for good)
    """

    IDLE = "idle"
    RESOLVING = "resolving"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"

    def can_transition_to(self, target: PlaybackStatus) -> bool:
        """Check if transition to target state is valid."""
        valid_transitions = {
            PlaybackStatus.IDLE: {PlaybackStatus.RESOLVING, PlaybackStatus.STOPPED},
            PlaybackStatus.RESOLVING: {
                PlaybackStatus.RESOLVING,
                PlaybackStatus.PLAYING,
                PlaybackStatus.IDLE,
                PlaybackStatus.STOPPED,
            },
            PlaybackStatus.PLAYING: {
                PlaybackStatus.PAUSED,
                PlaybackStatus.RESOLVING,
                PlaybackStatus.IDLE,
                PlaybackStatus.STOPPED,
            },
            PlaybackStatus.PAUSED: {
                PlaybackStatus.PLAYING,
                PlaybackStatus.RESOLVING,
                PlaybackStatus.IDLE,
                PlaybackStatus.STOPPED,
            },
            PlaybackStatus.STOPPED: {
                PlaybackStatus.RESOLVING,
                PlaybackStatus.IDLE,
                PlaybackStatus.STOPPED,
            },
        }
        return target in valid_transitions.get(self, set())

    @property
    def has_current_track(self) -> bool:
        return self not in {PlaybackStatus.IDLE, PlaybackStatus.STOPPED}


class OperationResult(Enum):
    """Outcome of an engine operation that may legitimately do nothing."""

    APPLIED = "applied"
    NO_EFFECT = "no_effect"

    @property
    def applied(self) -> bool:
        return self == OperationResult.APPLIED
