"""
Application Commands (Write Side)

Command objects and their handlers for write operations.
Commands represent intent to change the system state.
"""

from discord_music_fleet.application.commands.play_track import (
    PlayTrackCommand,
    PlayTrackHandler,
    PlayTrackResult,
    PlayTrackStatus,
)
from discord_music_fleet.application.commands.stop_playback import (
    StopPlaybackCommand,
    StopPlaybackHandler,
    StopResult,
    StopStatus,
)

__all__ = [
    # Play
    "PlayTrackCommand",
    "PlayTrackHandler",
    "PlayTrackResult",
    "PlayTrackStatus",
    # Stop
    "StopPlaybackCommand",
    "StopPlaybackHandler",
    "StopResult",
    "StopStatus",
]
