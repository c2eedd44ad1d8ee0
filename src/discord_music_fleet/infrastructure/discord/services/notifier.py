"""Posts engine notifications to each session's text channel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from discord_music_fleet.domain.shared.events import (
    DomainEvent,
    PlaybackStopped,
    TrackFailed,
    TrackStarted,
)
from discord_music_fleet.domain.shared.messages import DiscordUIMessages, LogTemplates

if TYPE_CHECKING:
    from discord.ext import commands

    from ....domain.shared.events import EventBus

logger = logging.getLogger(__name__)


class ChannelNotifier:
    """Event-bus subscriber that turns engine events into plain chat messages.

    Command replies already cover enqueue/stop/leave/pause/resume, so only
    the transitions nobody asked for are announced here.
    """

    def __init__(self, bot: commands.Bot, event_bus: EventBus) -> None:
        self._bot = bot
        self._event_bus = event_bus
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._event_bus.subscribe(TrackStarted, self._on_track_started)
        self._event_bus.subscribe(TrackFailed, self._on_track_failed)
        self._event_bus.subscribe(PlaybackStopped, self._on_playback_stopped)
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self._event_bus.unsubscribe(TrackStarted, self._on_track_started)
        self._event_bus.unsubscribe(TrackFailed, self._on_track_failed)
        self._event_bus.unsubscribe(PlaybackStopped, self._on_playback_stopped)
        self._started = False

    async def _on_track_started(self, event: TrackStarted) -> None:
        await self._send(event, DiscordUIMessages.NOW_PLAYING.format(title=event.track.title))

    async def _on_track_failed(self, event: TrackFailed) -> None:
        await self._send(event, DiscordUIMessages.TRACK_FAILED.format(title=event.track.title))

    async def _on_playback_stopped(self, event: PlaybackStopped) -> None:
        if event.reason == "queue_end":
            await self._send(event, DiscordUIMessages.QUEUE_FINISHED)

    async def _send(self, event: DomainEvent, content: str) -> None:
        if event.text_channel_id is None:
            return
        channel = self._bot.get_channel(event.text_channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            return
        try:
            await channel.send(content)
        except discord.HTTPException as exc:
            logger.warning(LogTemplates.NOTIFY_SEND_FAILED, event.text_channel_id, exc)
