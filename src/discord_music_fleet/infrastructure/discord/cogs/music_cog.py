"""Prefix-command music cog delegating to the application layer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from discord_music_fleet.application.commands.play_track import (
    PlayTrackCommand,
    PlayTrackResult,
    PlayTrackStatus,
)
from discord_music_fleet.application.commands.stop_playback import (
    StopPlaybackCommand,
    StopStatus,
)
from discord_music_fleet.domain.music.value_objects import OperationResult
from discord_music_fleet.domain.shared.messages import DiscordUIMessages, ErrorMessages

if TYPE_CHECKING:
    from ....application.services.playback_engine import PlaybackEngine
    from ....config.container import Container

logger = logging.getLogger(__name__)

PLAY_ALIASES = ["p", "شغل", "ش"]
STOP_ALIASES = ["end", "halt", "وقف", "إيقاف"]

_PLAY_ERRORS = {
    PlayTrackStatus.RESOLUTION_ERROR: DiscordUIMessages.ERROR_RESOLUTION_FAILED,
    PlayTrackStatus.VOICE_ERROR: DiscordUIMessages.ERROR_CANNOT_CONNECT,
    PlayTrackStatus.QUEUE_FULL: DiscordUIMessages.ERROR_QUEUE_FULL,
    PlayTrackStatus.SESSION_ENDED: DiscordUIMessages.ERROR_SESSION_ENDED,
}


def play_reply(result: PlayTrackResult, query: str) -> str:
    """Text the searching message is edited to once the play command finished."""
    if result.status == PlayTrackStatus.TRACK_NOT_FOUND:
        return DiscordUIMessages.ERROR_NO_RESULTS.format(query=query)
    if not result.is_success:
        return _PLAY_ERRORS.get(result.status, result.message)

    if result.is_playlist:
        return DiscordUIMessages.PLAYLIST_ENQUEUED.format(count=len(result.tracks))
    title = result.track.title if result.track else query
    if result.started_playing:
        return DiscordUIMessages.TRACK_LOADING.format(title=title)
    return DiscordUIMessages.TRACK_ENQUEUED.format(title=title, position=result.queue_position)


class MusicCog(commands.Cog):
    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container

    async def cog_check(self, ctx: commands.Context) -> bool:  # type: ignore[override]
        """Commands are guild-only and limited to the profile's allowed channels."""
        if ctx.guild is None:
            await self._reply(ctx, DiscordUIMessages.ERROR_SERVER_ONLY)
            return False
        # Outside the allowed channels the bot stays silent.
        if not self.container.profile.is_channel_allowed(ctx.channel.id):
            return False
        return True

    async def _reply(self, ctx: commands.Context, content: str) -> discord.Message | None:
        try:
            return await ctx.reply(content, mention_author=False)
        except discord.HTTPException:
            logger.debug("Could not reply in channel %s", ctx.channel.id)
            return None

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """Aliases also work without the prefix, e.g. `شغل lofi` or `وقف`."""
        prefix = self.container.profile.command_prefix
        if message.author.bot or message.content.startswith(prefix):
            return
        ctx = await self.bot.get_context(message)
        ctx.view.skip_ws()
        word = ctx.view.get_word().lower()
        command = self.bot.get_command(word)
        # Full command names still need the prefix.
        if command is None or word not in command.aliases:
            return
        ctx.prefix = ""
        ctx.invoked_with = word
        ctx.command = command
        await self.bot.invoke(ctx)

    def _member_channel_id(self, ctx: commands.Context) -> int | None:
        author = ctx.author
        if not isinstance(author, discord.Member) or author.voice is None:
            return None
        channel = author.voice.channel
        return channel.id if channel is not None else None

    def _bot_channel_id(self, guild_id: int) -> int | None:
        connection = self.container.voice_transport.get_connection(guild_id)
        return connection.channel_id if connection is not None else None

    async def _engine_for_member(self, ctx: commands.Context) -> PlaybackEngine | None:
        """The guild's engine, if the author shares the bot's voice channel."""
        assert ctx.guild is not None
        engine = self.container.session_registry.get(ctx.guild.id)
        if engine is None or engine.current_track is None and not engine.queue:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOTHING_PLAYING)
            return None

        member_channel = self._member_channel_id(ctx)
        bot_channel = self._bot_channel_id(ctx.guild.id)
        if member_channel is None or (bot_channel is not None and member_channel != bot_channel):
            await self._reply(ctx, DiscordUIMessages.ERROR_SAME_CHANNEL)
            return None
        return engine

    @commands.command(name="play", aliases=PLAY_ALIASES)
    async def play(self, ctx: commands.Context, *, query: str = "") -> None:
        """Play a song by name or URL: YouTube, Spotify, SoundCloud or a direct link."""
        assert ctx.guild is not None

        if not query.strip():
            await self._reply(ctx, DiscordUIMessages.ERROR_MISSING_QUERY)
            return

        voice_channel_id = self._member_channel_id(ctx)
        if voice_channel_id is None:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOT_IN_VOICE)
            return

        # Only a busy bot is pinned to its channel; an idle one follows the caller.
        bot_channel = self._bot_channel_id(ctx.guild.id)
        engine = self.container.session_registry.get(ctx.guild.id)
        busy = engine is not None and engine.current_track is not None
        if busy and bot_channel is not None and bot_channel != voice_channel_id:
            await self._reply(ctx, DiscordUIMessages.ERROR_SAME_CHANNEL)
            return

        searching = await self._reply(ctx, DiscordUIMessages.SEARCHING.format(query=query))

        command = PlayTrackCommand(
            guild_id=ctx.guild.id,
            voice_channel_id=voice_channel_id,
            text_channel_id=ctx.channel.id,
            user_id=ctx.author.id,
            query=query,
        )
        result = await self.container.play_track_handler.handle(command)
        content = play_reply(result, query)

        if searching is None:
            await self._reply(ctx, content)
            return
        try:
            await searching.edit(content=content)
        except discord.HTTPException:
            await self._reply(ctx, content)

    @commands.command(name="stop", aliases=STOP_ALIASES)
    async def stop(self, ctx: commands.Context) -> None:
        """Stop playback and clear the queue; the bot stays in the channel."""
        if await self._engine_for_member(ctx) is None:
            return
        assert ctx.guild is not None
        result = await self.container.stop_playback_handler.handle(
            StopPlaybackCommand(guild_id=ctx.guild.id, user_id=ctx.author.id)
        )
        if result.status == StopStatus.NOTHING_PLAYING:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOTHING_PLAYING)
            return
        await self._reply(
            ctx, DiscordUIMessages.PLAYBACK_STOPPED.format(count=result.tracks_cleared)
        )

    @commands.command(name="leave", aliases=["disconnect", "dc"])
    async def leave(self, ctx: commands.Context) -> None:
        """Stop playback and leave the voice channel."""
        assert ctx.guild is not None
        member_channel = self._member_channel_id(ctx)
        bot_channel = self._bot_channel_id(ctx.guild.id)
        if bot_channel is not None and member_channel != bot_channel:
            await self._reply(ctx, DiscordUIMessages.ERROR_SAME_CHANNEL)
            return

        # Released first so the disconnect is not mistaken for a kick.
        self.container.connection_supervisor.release(ctx.guild.id)
        result = await self.container.stop_playback_handler.handle(
            StopPlaybackCommand(guild_id=ctx.guild.id, user_id=ctx.author.id, disconnect=True)
        )
        if result.is_success:
            await self._reply(ctx, DiscordUIMessages.LEFT_VOICE)
        else:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOTHING_PLAYING)

    @commands.command(name="skip", aliases=["s", "next"])
    async def skip(self, ctx: commands.Context) -> None:
        """Skip the current track."""
        engine = await self._engine_for_member(ctx)
        if engine is None:
            return
        if await engine.skip() == OperationResult.APPLIED:
            await self._reply(ctx, DiscordUIMessages.SKIPPED)
        else:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOTHING_PLAYING)

    @commands.command(name="pause")
    async def pause(self, ctx: commands.Context) -> None:
        engine = await self._engine_for_member(ctx)
        if engine is None:
            return
        if await engine.pause() == OperationResult.APPLIED:
            await self._reply(ctx, DiscordUIMessages.PAUSED)
        else:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOTHING_PLAYING)

    @commands.command(name="resume", aliases=["unpause"])
    async def resume(self, ctx: commands.Context) -> None:
        engine = await self._engine_for_member(ctx)
        if engine is None:
            return
        if await engine.resume() == OperationResult.APPLIED:
            await self._reply(ctx, DiscordUIMessages.RESUMED)
        else:
            await self._reply(ctx, DiscordUIMessages.ERROR_NOT_PAUSED)


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError(ErrorMessages.CONTAINER_NOT_FOUND)

    await bot.add_cog(MusicCog(bot, container))
