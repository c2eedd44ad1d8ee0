"""Latency check command."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands

from discord_music_fleet.domain.shared.messages import DiscordUIMessages, ErrorMessages

if TYPE_CHECKING:
    from ....config.container import Container

logger = logging.getLogger(__name__)

LATENCY_OK_MS = 200
LATENCY_WARN_MS = 800
ONE_THOUSAND = 1000.0


class HealthCog(commands.Cog):
    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container

    async def cog_check(self, ctx: commands.Context) -> bool:  # type: ignore[override]
        if ctx.guild is None:
            return True
        return self.container.profile.is_channel_allowed(ctx.channel.id)

    def _latency_ms(self) -> float:
        return round((self.bot.latency or 0.0) * ONE_THOUSAND, 1)

    def _latency_emoji(self, ms: float) -> str:
        if ms < LATENCY_OK_MS:
            return "🟢"
        if ms < LATENCY_WARN_MS:
            return "🟠"
        return "🔴"

    @commands.command(name="ping")
    async def ping(self, ctx: commands.Context) -> None:
        """Show the reply round trip and the gateway latency."""
        sent = await ctx.reply(DiscordUIMessages.PING_MEASURING, mention_author=False)
        round_trip_ms = (sent.created_at - ctx.message.created_at).total_seconds() * ONE_THOUSAND
        lat_ms = self._latency_ms()
        await sent.edit(
            content=DiscordUIMessages.SUCCESS_PONG.format(
                emoji=self._latency_emoji(lat_ms),
                round_trip_ms=f"{round_trip_ms:.0f}",
                latency_ms=f"{lat_ms:.1f}",
            )
        )
        logger.debug("Ping: round trip %.0f ms, gateway %.1f ms", round_trip_ms, lat_ms)


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError(ErrorMessages.CONTAINER_NOT_FOUND)

    await bot.add_cog(HealthCog(bot, container))
