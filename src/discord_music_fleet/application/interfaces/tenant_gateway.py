"""Port interface for looking up tenants and channels on the chat gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from discord_music_fleet.domain.shared.types import ChannelIdField, DiscordSnowflake


class ChannelKind(Enum):
    VOICE = "voice"
    TEXT = "text"
    OTHER = "other"


@dataclass(frozen=True)
class ChannelInfo:
    id: int
    kind: ChannelKind
    name: str = ""


class TenantGateway(ABC):
    """Read-only view of the gateway cache, falling back to API fetches."""

    @abstractmethod
    async def has_tenant(self, tenant_id: DiscordSnowflake) -> bool:
        """Whether the bot can currently see the tenant."""
        ...

    @abstractmethod
    async def get_channel(
        self, tenant_id: DiscordSnowflake, channel_id: ChannelIdField
    ) -> ChannelInfo | None:
        """Return channel info, or None if it does not exist (or is not visible yet)."""
        ...
