"""Discord implementation of the TenantGateway port."""

from __future__ import annotations

import logging

import discord

from discord_music_fleet.application.interfaces.tenant_gateway import (
    ChannelInfo,
    ChannelKind,
    TenantGateway,
)

logger = logging.getLogger(__name__)


def channel_kind(channel: object) -> ChannelKind:
    if isinstance(channel, discord.VoiceChannel | discord.StageChannel):
        return ChannelKind.VOICE
    if isinstance(channel, discord.TextChannel | discord.Thread):
        return ChannelKind.TEXT
    return ChannelKind.OTHER


class DiscordTenantGateway(TenantGateway):
    """Reads the client cache first and falls back to REST fetches.

    Right after READY (and across shards) guilds may not be cached yet; a
    missing entry is reported as None so callers can retry.
    """

    def __init__(self, bot: discord.Client) -> None:
        self._bot = bot

    async def _guild(self, tenant_id: int) -> discord.Guild | None:
        guild = self._bot.get_guild(tenant_id)
        if guild is not None:
            return guild
        try:
            return await self._bot.fetch_guild(tenant_id)
        except (discord.NotFound, discord.Forbidden):
            return None

    async def has_tenant(self, tenant_id: int) -> bool:
        return await self._guild(tenant_id) is not None

    async def get_channel(self, tenant_id: int, channel_id: int) -> ChannelInfo | None:
        guild = await self._guild(tenant_id)
        if guild is None:
            return None

        channel: object | None = guild.get_channel_or_thread(channel_id)
        if channel is None:
            try:
                channel = await guild.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden):
                return None

        if getattr(channel, "guild", guild).id != guild.id:
            return None
        return ChannelInfo(
            id=channel_id, kind=channel_kind(channel), name=getattr(channel, "name", "")
        )
