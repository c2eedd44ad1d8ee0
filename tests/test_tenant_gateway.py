"""Tests for DiscordTenantGateway cache lookups and REST fallbacks."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from discord_music_fleet.application.interfaces.tenant_gateway import ChannelKind
from discord_music_fleet.infrastructure.discord.adapters.tenant_gateway import (
    DiscordTenantGateway,
    channel_kind,
)

GUILD_ID = 111111111111111111
CHANNEL_ID = 222222222222222222


def _not_found() -> discord.NotFound:
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Guild")


@pytest.fixture
def guild():
    guild = MagicMock()
    guild.id = GUILD_ID
    guild.get_channel_or_thread = MagicMock(return_value=None)
    guild.fetch_channel = AsyncMock()
    return guild


@pytest.fixture
def mock_bot(guild):
    bot = MagicMock()
    bot.get_guild = MagicMock(return_value=guild)
    bot.fetch_guild = AsyncMock(return_value=guild)
    return bot


@pytest.fixture
def gateway(mock_bot):
    return DiscordTenantGateway(mock_bot)


def _channel(kind: type, guild_id: int = GUILD_ID) -> MagicMock:
    channel = MagicMock(spec=kind)
    channel.name = "music"
    channel.guild = MagicMock(id=guild_id)
    return channel


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (discord.VoiceChannel, ChannelKind.VOICE),
        (discord.StageChannel, ChannelKind.VOICE),
        (discord.TextChannel, ChannelKind.TEXT),
        (discord.Thread, ChannelKind.TEXT),
        (discord.CategoryChannel, ChannelKind.OTHER),
    ],
)
def test_channel_kind(kind, expected):
    assert channel_kind(MagicMock(spec=kind)) is expected


class TestHasTenant:
    async def test_cached_guild(self, gateway, mock_bot):
        assert await gateway.has_tenant(GUILD_ID)
        mock_bot.fetch_guild.assert_not_awaited()

    async def test_falls_back_to_fetch(self, gateway, mock_bot):
        mock_bot.get_guild.return_value = None

        assert await gateway.has_tenant(GUILD_ID)
        mock_bot.fetch_guild.assert_awaited_once_with(GUILD_ID)

    async def test_unknown_guild(self, gateway, mock_bot):
        mock_bot.get_guild.return_value = None
        mock_bot.fetch_guild.side_effect = _not_found()

        assert not await gateway.has_tenant(GUILD_ID)


class TestGetChannel:
    async def test_cached_voice_channel(self, gateway, guild):
        guild.get_channel_or_thread.return_value = _channel(discord.VoiceChannel)

        info = await gateway.get_channel(GUILD_ID, CHANNEL_ID)

        assert info.id == CHANNEL_ID
        assert info.kind is ChannelKind.VOICE
        assert info.name == "music"
        guild.fetch_channel.assert_not_awaited()

    async def test_fetched_text_channel(self, gateway, guild):
        guild.fetch_channel.return_value = _channel(discord.TextChannel)

        info = await gateway.get_channel(GUILD_ID, CHANNEL_ID)

        assert info.kind is ChannelKind.TEXT

    async def test_missing_channel(self, gateway, guild):
        guild.fetch_channel.side_effect = _not_found()

        assert await gateway.get_channel(GUILD_ID, CHANNEL_ID) is None

    async def test_channel_of_another_guild(self, gateway, guild):
        guild.fetch_channel.return_value = _channel(discord.TextChannel, guild_id=999)

        assert await gateway.get_channel(GUILD_ID, CHANNEL_ID) is None

    async def test_missing_guild(self, gateway, mock_bot):
        mock_bot.get_guild.return_value = None
        mock_bot.fetch_guild.side_effect = discord.Forbidden(
            MagicMock(status=403, reason="Forbidden"), "Missing Access"
        )

        assert await gateway.get_channel(GUILD_ID, CHANNEL_ID) is None
