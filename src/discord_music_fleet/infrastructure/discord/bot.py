"""Discord bot class per fleet member, plus the runner that drives the whole fleet."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, Any

import discord
from discord.ext import commands

from discord_music_fleet.domain.shared.exceptions import VoiceConnectionError
from discord_music_fleet.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...config.container import Container
    from ...config.settings import BotProfile, Settings

logger = logging.getLogger(__name__)

COGS = (
    "discord_music_fleet.infrastructure.discord.cogs.music_cog",
    "discord_music_fleet.infrastructure.discord.cogs.event_cog",
    "discord_music_fleet.infrastructure.discord.cogs.health_cog",
)


class MusicBot(commands.Bot):
    def __init__(
        self,
        container: Container,
        settings: Settings,
        **kwargs: Any,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.voice_states = True
        intents.guilds = True

        self.profile: BotProfile = container.profile
        super().__init__(
            command_prefix=self.profile.command_prefix,
            intents=intents,
            help_command=None,
            **kwargs,
        )

        self.container = container
        self.settings = settings
        self._recovered = False
        self._closing = False
        container.set_bot(self)

    @property
    def slug(self) -> str:
        return self.profile.slug

    async def setup_hook(self) -> None:
        logger.info(LogTemplates.BOT_SETUP, self.slug)

        try:
            await self.container.initialize()
            logger.info(LogTemplates.BOT_CONTAINER_INITIALIZED, self.slug)
        except Exception as e:
            logger.exception(LogTemplates.BOT_CONTAINER_INIT_FAILED, e)
            raise

        await self._load_cogs()
        logger.info(LogTemplates.BOT_SETUP_COMPLETE, self.slug)

    async def _load_cogs(self) -> None:
        for cog in COGS:
            await self.load_extension(cog)
            logger.info(LogTemplates.BOT_COG_LOADED, cog)

    async def on_ready(self) -> None:
        logger.info(
            LogTemplates.BOT_READY,
            self.user,  # type: ignore
            self.user.id,  # type: ignore
        )
        logger.info(LogTemplates.BOT_CONNECTED_GUILDS, len(self.guilds))

        activity = discord.Activity(
            type=discord.ActivityType.listening, name=f"{self.profile.command_prefix}play"
        )
        await self.change_presence(activity=activity)

        # READY fires again after every gateway reconnect; recovery runs once.
        if self._recovered:
            return
        self._recovered = True
        try:
            await self.recover()
        except Exception:
            logger.exception(LogTemplates.BOT_STARTUP_RECOVERY_FAILED, self.slug)

    async def recover(self) -> None:
        """Restore persisted sessions, sweep the media cache, then auto-join."""
        await self.container.session_restorer.restore_all()
        await self.container.cache_janitor.sweep()
        await self._auto_join()

    async def _auto_join(self) -> None:
        profile = self.profile
        if not profile.has_auto_join:
            return
        guild_id = profile.auto_join_guild_id
        channel_id = profile.auto_join_channel_id
        assert guild_id is not None and channel_id is not None

        registry = self.container.session_registry
        if registry.get(guild_id) is not None:
            return

        try:
            await self.container.voice_transport.join(channel_id, guild_id)
        except VoiceConnectionError as exc:
            logger.warning(LogTemplates.BOT_AUTO_JOIN_FAILED, channel_id, guild_id, exc)
            return

        self.container.connection_supervisor.assign(guild_id, channel_id)
        registry.get_or_create(guild_id, voice_channel_id=channel_id)
        logger.info(LogTemplates.BOT_AUTO_JOINED, channel_id, guild_id)

    async def on_command_error(
        self, ctx: commands.Context, error: commands.CommandError
    ) -> None:
        if isinstance(error, commands.CommandNotFound | commands.CheckFailure):
            return
        original = getattr(error, "original", error)
        logger.error(
            LogTemplates.BOT_COMMAND_ERROR,
            getattr(ctx.command, "qualified_name", "<unknown>"),
            original,
            exc_info=original,
        )

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        logger.info(LogTemplates.BOT_SHUTTING_DOWN, self.slug)

        # Sessions are flushed before any voice connection is dropped.
        try:
            await self.container.shutdown()
        except Exception as e:
            logger.warning(LogTemplates.BOT_CONTAINER_SHUTDOWN_ERROR, e)

        await super().close()
        logger.info(LogTemplates.BOT_SHUTDOWN_COMPLETE, self.slug)

    async def run_until_closed(self, token: str) -> None:
        """Log in and serve until closed; a crash still flushes live sessions."""
        async with self:
            try:
                await self.start(token)
            except Exception:
                logger.exception(LogTemplates.BOT_FATAL_ERROR, self.slug)
                await self.container.flush_sessions()
                raise
        logger.info(LogTemplates.BOT_STOPPED, self.slug)


def create_bot(container: Container, settings: Settings) -> MusicBot:
    return MusicBot(container=container, settings=settings)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error(
        LogTemplates.BOT_UNHANDLED_TASK_ERROR,
        context.get("message", "unknown"),
        exc_info=exc,
    )


async def run_fleet(settings: Settings, *, shutdown_timeout: float = 30.0) -> int:
    """Run every bot profile that has a token, each with its own container.

    Returns the process exit code: 1 when no bot could run or any bot crashed.
    """
    from ...config.container import create_container

    bots: list[tuple[MusicBot, str]] = []
    for profile in settings.bot_profiles():
        token = settings.resolve_token(profile)
        if token is None:
            logger.warning(LogTemplates.FLEET_BOT_SKIPPED, profile.slug, profile.token_env)
            continue
        bots.append((create_bot(create_container(settings, profile), settings), token))

    if not bots:
        logger.error(LogTemplates.FLEET_NO_BOTS)
        return 1

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_log_loop_exception)

    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    tasks = [asyncio.create_task(bot.run_until_closed(token)) for bot, token in bots]
    stopper = asyncio.create_task(stop_requested.wait())
    # A crashed bot does not take the others down; serve until all finish or a signal arrives.
    pending: set[asyncio.Task[Any]] = set(tasks)
    while pending and not stop_requested.is_set():
        _, pending = await asyncio.wait({*pending, stopper}, return_when=asyncio.FIRST_COMPLETED)
        pending.discard(stopper)

    if stop_requested.is_set():
        logger.info(LogTemplates.BOT_KEYBOARD_INTERRUPT)

    async def _graceful_close(bot: MusicBot) -> None:
        try:
            await asyncio.wait_for(bot.close(), timeout=shutdown_timeout)
        except TimeoutError:
            logger.warning(LogTemplates.BOT_CONTAINER_SHUTDOWN_ERROR, "timed out")

    await asyncio.gather(*(_graceful_close(bot) for bot, _ in bots))
    stopper.cancel()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(sig)

    failed = any(isinstance(r, BaseException) for r in results)
    return 1 if failed else 0
