"""Discord voice adapter implementing the VoiceTransport port."""

from __future__ import annotations

import asyncio
import logging

import discord

from discord_music_fleet.application.interfaces.voice_transport import (
    TransportCallback,
    VoiceConnection,
    VoiceTransport,
)
from discord_music_fleet.config.settings import AudioSettings
from discord_music_fleet.domain.shared.exceptions import VoiceConnectionError
from discord_music_fleet.domain.shared.messages import ErrorMessages, LogTemplates
from discord_music_fleet.infrastructure.audio.ffmpeg_player import FFmpegSourceFactory

logger = logging.getLogger(__name__)

VoiceChannelLike = discord.VoiceChannel | discord.StageChannel


class DiscordVoiceConnection(VoiceConnection):
    """Thin wrapper over a discord.py VoiceClient.

    The `after` callback of `play` runs on discord.py's audio thread; it is
    handed back to the event loop with `call_soon_threadsafe`.
    """

    def __init__(
        self,
        voice_client: discord.VoiceClient,
        loop: asyncio.AbstractEventLoop,
        sources: FFmpegSourceFactory,
    ) -> None:
        self._vc = voice_client
        self._loop = loop
        self._sources = sources

    @property
    def voice_client(self) -> discord.VoiceClient:
        return self._vc

    @property
    def channel_id(self) -> int | None:
        channel = self._vc.channel
        return channel.id if channel is not None else None

    def is_connected(self) -> bool:
        return self._vc.is_connected()

    def play(self, stream_locator: str, after: TransportCallback) -> None:
        if self._vc.is_playing() or self._vc.is_paused():
            self._vc.stop()

        source = self._sources.create_source(stream_locator)
        guild_id = self._vc.guild.id
        loop = self._loop

        def after_callback(error: Exception | None) -> None:
            if error is not None:
                logger.warning(LogTemplates.VOICE_PLAYBACK_ERROR, guild_id, error)
            loop.call_soon_threadsafe(after, error)

        self._vc.play(source, after=after_callback)

    def stop(self) -> None:
        if self._vc.is_playing() or self._vc.is_paused():
            self._vc.stop()

    def pause(self) -> None:
        if self._vc.is_playing():
            self._vc.pause()

    def resume(self) -> None:
        if self._vc.is_paused():
            self._vc.resume()

    async def destroy(self) -> None:
        guild_id = self._vc.guild.id
        await self._vc.disconnect(force=True)
        logger.info(LogTemplates.VOICE_DISCONNECTED, guild_id)


class DiscordVoiceTransport(VoiceTransport):
    def __init__(self, bot: discord.Client, settings: AudioSettings | None = None) -> None:
        self._bot = bot
        self._settings = settings or AudioSettings()
        self._sources = FFmpegSourceFactory(self._settings)

    def _get_voice_client(self, guild_id: int) -> discord.VoiceClient | None:
        guild = self._bot.get_guild(guild_id)
        if not guild:
            return None

        vc = guild.voice_client
        return vc if isinstance(vc, discord.VoiceClient) else None

    def _wrap(self, vc: discord.VoiceClient) -> DiscordVoiceConnection:
        return DiscordVoiceConnection(vc, self._bot.loop, self._sources)

    def get_connection(self, tenant_id: int) -> VoiceConnection | None:
        vc = self._get_voice_client(tenant_id)
        if vc is None or not vc.is_connected():
            return None
        return self._wrap(vc)

    async def join(self, channel_id: int, tenant_id: int) -> VoiceConnection:
        """Connect if not connected, move if in a different channel.

        Raises:
            VoiceConnectionError: PERMANENT when the channel is gone, not a
                voice channel or not joinable; TRANSIENT for timeouts and
                gateway hiccups.
        """
        guild = self._bot.get_guild(tenant_id)
        channel = guild.get_channel(channel_id) if guild else None
        if guild is None or channel is None:
            raise VoiceConnectionError.permanent(
                channel_id, ErrorMessages.CHANNEL_NOT_FOUND.format(channel_id=channel_id)
            )
        if not isinstance(channel, VoiceChannelLike):
            raise VoiceConnectionError.permanent(
                channel_id, ErrorMessages.CHANNEL_NOT_VOICE.format(channel_id=channel_id)
            )

        vc = self._get_voice_client(tenant_id)
        if vc is not None and not vc.is_connected():
            logger.warning(LogTemplates.VOICE_STALE_CLEANUP, tenant_id)
            await vc.disconnect(force=True)
            vc = None

        try:
            async with asyncio.timeout(self._settings.connect_timeout_s):
                if vc is None:
                    vc = await channel.connect(self_deaf=self._settings.self_deafen)
                    logger.info(LogTemplates.VOICE_CONNECTED, channel.name, guild.name)
                elif vc.channel is None or vc.channel.id != channel_id:
                    await vc.move_to(channel)
                    logger.info(LogTemplates.VOICE_MOVED, channel.name)
                else:
                    return self._wrap(vc)
        except TimeoutError as exc:
            logger.error(LogTemplates.VOICE_CONNECTION_TIMEOUT, channel_id)
            raise VoiceConnectionError.transient(
                channel_id, ErrorMessages.VOICE_TIMEOUT.format(channel_id=channel_id)
            ) from exc
        except discord.Forbidden as exc:
            logger.error(LogTemplates.VOICE_NO_PERMISSION, channel_id)
            raise VoiceConnectionError.permanent(
                channel_id, ErrorMessages.NO_VOICE_PERMISSION.format(channel_id=channel_id)
            ) from exc
        except (discord.ClientException, discord.HTTPException, OSError) as exc:
            logger.error(LogTemplates.VOICE_CLIENT_ERROR, exc)
            raise VoiceConnectionError.transient(channel_id, str(exc)) from exc

        await self._ensure_self_deaf(guild, channel)
        return self._wrap(vc)

    async def _ensure_self_deaf(self, guild: discord.Guild, channel: VoiceChannelLike) -> None:
        if not self._settings.self_deafen:
            return
        try:
            await guild.change_voice_state(channel=channel, self_deaf=True)
        except (discord.HTTPException, discord.ClientException) as exc:
            logger.debug(LogTemplates.VOICE_SELF_DEAFEN_FAILED, guild.id, exc)

    async def disconnect_all(self) -> None:
        for vc in list(self._bot.voice_clients):
            try:
                await vc.disconnect(force=True)
            except (discord.ClientException, discord.HTTPException, OSError) as exc:
                logger.warning(LogTemplates.VOICE_CLIENT_ERROR, exc)
