"""Port interface for the real-time voice transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from discord_music_fleet.domain.shared.types import ChannelIdField, DiscordSnowflake

# Invoked on the event loop when playback of a locator ends; the argument is
# the transport error, or None for a normal finish or an explicit stop.
TransportCallback = Callable[[Exception | None], None]


class VoiceConnection(ABC):
    """Handle to one tenant's live voice connection."""

    @property
    @abstractmethod
    def channel_id(self) -> ChannelIdField | None:
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def play(self, stream_locator: str, after: TransportCallback) -> None:
        """Start streaming `stream_locator`; calls `after` once it ends."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the current stream; the connection stays joined."""
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    async def destroy(self) -> None:
        """Disconnect and release the connection."""
        ...


class VoiceTransport(ABC):
    """Interface for joining voice channels and looking up live connections."""

    @abstractmethod
    async def join(
        self, channel_id: ChannelIdField, tenant_id: DiscordSnowflake
    ) -> VoiceConnection:
        """Connect (or move) to a voice channel.

        Raises:
            VoiceConnectionError: transient or permanent failure.
        """
        ...

    @abstractmethod
    def get_connection(self, tenant_id: DiscordSnowflake) -> VoiceConnection | None:
        ...
