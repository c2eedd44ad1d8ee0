"""Discord event listeners for gateway lifecycle, guilds and the bot's own voice state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from discord_music_fleet.domain.shared.messages import ErrorMessages

if TYPE_CHECKING:
    from ....config.container import Container

logger = logging.getLogger(__name__)


class EventCog(commands.Cog):
    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container
        self._resumed_logged_once = False

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle Events
    # ─────────────────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_connect(self) -> None:
        logger.info("[%s] WebSocket connected", self.container.profile.slug)

    @commands.Cog.listener()
    async def on_disconnect(self) -> None:
        logger.warning("[%s] WebSocket disconnected", self.container.profile.slug)

    @commands.Cog.listener()
    async def on_resumed(self) -> None:
        if not self._resumed_logged_once:
            logger.info("[%s] WebSocket session resumed", self.container.profile.slug)
            self._resumed_logged_once = True

    # ─────────────────────────────────────────────────────────────────
    # Guild Events
    # ─────────────────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info("Joined guild: %s (%s)", guild.name, guild.id)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        """Removed from a guild: the session cannot come back, so it leaves for good."""
        logger.info("Left guild: %s (%s)", guild.name, guild.id)
        self.container.connection_supervisor.release(guild.id)
        engine = self.container.session_registry.get(guild.id)
        if engine is not None:
            await engine.leave()
        else:
            await self.container.state_store.remove(guild.id)

    # ─────────────────────────────────────────────────────────────────
    # Voice Events
    # ─────────────────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_voice_state_update(
        self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState
    ) -> None:
        """Forward the bot's own moves and disconnects to the connection supervisor."""
        if self.bot.user is None or member.id != self.bot.user.id:
            return

        before_id = before.channel.id if before.channel is not None else None
        after_id = after.channel.id if after.channel is not None else None
        if before_id == after_id:
            return

        self.container.connection_supervisor.on_membership_change(
            member.guild.id, before_id, after_id
        )


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError(ErrorMessages.CONTAINER_NOT_FOUND)

    await bot.add_cog(EventCog(bot, container))
