"""Command and handler for stopping playback, optionally leaving voice."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from discord_music_fleet.domain.shared.types import DiscordSnowflake, NonNegativeInt

if TYPE_CHECKING:
    from ..interfaces.voice_transport import VoiceTransport
    from ..services.session_registry import SessionRegistry


class StopStatus(Enum):
    """Status codes for stop results."""

    SUCCESS = "success"
    NOTHING_PLAYING = "nothing_playing"


class StopPlaybackCommand(BaseModel):
    """`disconnect=False` keeps the bot joined; True also leaves and forgets the session."""

    model_config = ConfigDict(frozen=True)

    guild_id: DiscordSnowflake
    user_id: DiscordSnowflake
    disconnect: bool = False


class StopResult(BaseModel):

    status: StopStatus
    message: str
    tracks_cleared: NonNegativeInt = 0
    disconnected: bool = False

    @property
    def is_success(self) -> bool:
        return self.status == StopStatus.SUCCESS

    @classmethod
    def success(cls, tracks_cleared: int = 0, disconnected: bool = False) -> StopResult:
        if disconnected:
            message = "Stopped playback and disconnected."
        elif tracks_cleared > 0:
            message = f"Stopped playback and cleared {tracks_cleared} tracks from queue."
        else:
            message = "Stopped playback."

        return cls(
            status=StopStatus.SUCCESS,
            message=message,
            tracks_cleared=tracks_cleared,
            disconnected=disconnected,
        )

    @classmethod
    def error(cls, status: StopStatus, message: str) -> StopResult:
        return cls(status=status, message=message)


class StopPlaybackHandler:

    def __init__(self, *, registry: SessionRegistry, transport: VoiceTransport) -> None:
        self._registry = registry
        self._transport = transport

    async def handle(self, command: StopPlaybackCommand) -> StopResult:
        engine = self._registry.get(command.guild_id)

        if engine is None:
            connection = self._transport.get_connection(command.guild_id)
            if command.disconnect and connection is not None:
                await connection.destroy()
                return StopResult.success(disconnected=True)
            return StopResult.error(StopStatus.NOTHING_PLAYING, "Nothing is currently playing")

        tracks_cleared = len(engine.queue)
        if command.disconnect:
            await engine.leave()
            return StopResult.success(tracks_cleared, disconnected=True)

        await engine.stop()
        return StopResult.success(tracks_cleared)
