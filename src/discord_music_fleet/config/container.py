"""Dependency Injection Container

Manages one bot's dependency graph, providing lazy initialization and
lifecycle management for its services, repositories, adapters, and handlers.
Every bot of the fleet gets its own container, so nothing here is shared
between bots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from ..application.commands.play_track import PlayTrackHandler
    from ..application.commands.stop_playback import StopPlaybackHandler
    from ..application.services.cache_janitor import CacheJanitor
    from ..application.services.connection_supervisor import ConnectionSupervisor
    from ..application.services.playback_engine import PlaybackEngine
    from ..application.services.session_registry import SessionRegistry
    from ..application.services.session_restorer import SessionRestorer
    from ..application.services.state_store import StateStore
    from ..application.services.track_dispatcher import TrackDispatcher
    from ..domain.music.repository import SessionRecordRepository
    from ..domain.shared.events import EventBus
    from ..infrastructure.audio.direct_link_resolver import DirectLinkResolver
    from ..infrastructure.audio.spotify_resolver import SpotifyResolver
    from ..infrastructure.audio.ytdlp_resolver import YtDlpResolver
    from ..infrastructure.discord.adapters.tenant_gateway import DiscordTenantGateway
    from ..infrastructure.discord.adapters.voice_adapter import DiscordVoiceTransport
    from ..infrastructure.discord.services.notifier import ChannelNotifier
    from ..infrastructure.persistence.database import Database
    from .settings import BotProfile, Settings


@dataclass
class Container:
    """Dependency injection container for a single bot.

    Components are lazily initialized when first accessed.
    """

    settings: Settings
    profile: BotProfile
    _bot: Bot | None = None

    # Persistence layer
    _database: Database | None = None
    _session_record_repository: SessionRecordRepository | None = None
    _state_store: StateStore | None = None

    # Infrastructure adapters
    _youtube_resolver: YtDlpResolver | None = None
    _soundcloud_resolver: YtDlpResolver | None = None
    _spotify_resolver: SpotifyResolver | None = None
    _direct_link_resolver: DirectLinkResolver | None = None
    _voice_transport: DiscordVoiceTransport | None = None
    _tenant_gateway: DiscordTenantGateway | None = None

    # Application services
    _event_bus: EventBus | None = None
    _track_dispatcher: TrackDispatcher | None = None
    _session_registry: SessionRegistry | None = None
    _connection_supervisor: ConnectionSupervisor | None = None
    _session_restorer: SessionRestorer | None = None
    _cache_janitor: CacheJanitor | None = None

    # Discord interaction helpers
    _notifier: ChannelNotifier | None = None

    # Command handlers
    _play_track_handler: PlayTrackHandler | None = None
    _stop_playback_handler: StopPlaybackHandler | None = None

    def set_bot(self, bot: Bot) -> None:
        """Set the Discord bot instance."""
        self._bot = bot

    @property
    def bot(self) -> Bot:
        """Get the Discord bot instance."""
        if self._bot is None:
            raise RuntimeError("Bot not initialized. Call set_bot() first.")
        return self._bot

    @property
    def cache_dir(self) -> Path:
        return self.settings.cache.dir_for_bot(self.profile.slug)

    # === Database ===

    @property
    def database(self) -> Database:
        """Get the database connection manager."""
        if self._database is None:
            from ..infrastructure.persistence.database import Database

            self._database = Database(
                self.settings.database.url_for_bot(self.profile.slug),
                settings=self.settings.database,
            )
        return self._database

    # === Repositories ===

    @property
    def session_record_repository(self) -> SessionRecordRepository:
        """Get the session record repository."""
        if self._session_record_repository is None:
            from ..infrastructure.persistence.repositories.session_record_repository import (
                SQLiteSessionRecordRepository,
            )

            self._session_record_repository = SQLiteSessionRecordRepository(self.database)
        return self._session_record_repository

    @property
    def state_store(self) -> StateStore:
        """Get the debounced session state store."""
        if self._state_store is None:
            from ..application.services.state_store import StateStore

            self._state_store = StateStore(
                self.session_record_repository,
                debounce_seconds=self.settings.persistence.debounce_seconds,
            )
        return self._state_store

    # === Infrastructure Adapters ===

    @property
    def youtube_resolver(self) -> YtDlpResolver:
        if self._youtube_resolver is None:
            from ..domain.music.value_objects import Platform
            from ..infrastructure.audio.ytdlp_resolver import YtDlpResolver

            self._youtube_resolver = YtDlpResolver(self.settings.audio, platform=Platform.YOUTUBE)
        return self._youtube_resolver

    @property
    def soundcloud_resolver(self) -> YtDlpResolver:
        if self._soundcloud_resolver is None:
            from ..domain.music.value_objects import Platform
            from ..infrastructure.audio.ytdlp_resolver import YtDlpResolver

            self._soundcloud_resolver = YtDlpResolver(
                self.settings.audio, platform=Platform.SOUNDCLOUD
            )
        return self._soundcloud_resolver

    @property
    def spotify_resolver(self) -> SpotifyResolver:
        if self._spotify_resolver is None:
            from ..infrastructure.audio.spotify_resolver import SpotifyResolver

            self._spotify_resolver = SpotifyResolver(
                self.settings.spotify,
                self.youtube_resolver,
                max_tracks=self.settings.playback.max_queue_size,
            )
        return self._spotify_resolver

    @property
    def direct_link_resolver(self) -> DirectLinkResolver:
        if self._direct_link_resolver is None:
            from ..infrastructure.audio.direct_link_resolver import DirectLinkResolver

            self._direct_link_resolver = DirectLinkResolver(
                self.cache_dir, timeout=self.settings.cache.download_timeout_s
            )
        return self._direct_link_resolver

    @property
    def voice_transport(self) -> DiscordVoiceTransport:
        """Get the voice transport."""
        if self._voice_transport is None:
            from ..infrastructure.discord.adapters.voice_adapter import DiscordVoiceTransport

            self._voice_transport = DiscordVoiceTransport(self.bot, self.settings.audio)
        return self._voice_transport

    @property
    def tenant_gateway(self) -> DiscordTenantGateway:
        if self._tenant_gateway is None:
            from ..infrastructure.discord.adapters.tenant_gateway import DiscordTenantGateway

            self._tenant_gateway = DiscordTenantGateway(self.bot)
        return self._tenant_gateway

    # === Application Services ===

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import EventBus

            self._event_bus = EventBus()
        return self._event_bus

    @property
    def track_dispatcher(self) -> TrackDispatcher:
        """Get the resolver registry, one variant per platform."""
        if self._track_dispatcher is None:
            from ..application.services.track_dispatcher import TrackDispatcher

            self._track_dispatcher = TrackDispatcher(
                [
                    self.youtube_resolver,
                    self.soundcloud_resolver,
                    self.spotify_resolver,
                    self.direct_link_resolver,
                ]
            )
        return self._track_dispatcher

    def build_engine(
        self, tenant_id: int, voice_channel_id: int | None, text_channel_id: int | None
    ) -> PlaybackEngine:
        """Engine factory handed to the SessionRegistry."""
        from ..application.services.playback_engine import PlaybackEngine

        playback = self.settings.playback
        return PlaybackEngine(
            tenant_id,
            transport=self.voice_transport,
            stream_resolver=self.track_dispatcher,
            store=self.state_store,
            event_bus=self.event_bus,
            voice_channel_id=voice_channel_id,
            text_channel_id=text_channel_id,
            stream_resolve_attempts=playback.stream_resolve_attempts,
            stream_retry_delay=playback.stream_retry_delay_s,
            max_queue_size=playback.max_queue_size,
            on_teardown=self.session_registry.unregister,
        )

    @property
    def session_registry(self) -> SessionRegistry:
        if self._session_registry is None:
            from ..application.services.session_registry import SessionRegistry

            self._session_registry = SessionRegistry(self.build_engine)
        return self._session_registry

    @property
    def connection_supervisor(self) -> ConnectionSupervisor:
        if self._connection_supervisor is None:
            from ..application.services.connection_supervisor import ConnectionSupervisor

            self._connection_supervisor = ConnectionSupervisor(
                transport=self.voice_transport,
                registry=self.session_registry,
                rejoin_delay=self.settings.supervisor.rejoin_delay_s,
            )
        return self._connection_supervisor

    @property
    def session_restorer(self) -> SessionRestorer:
        if self._session_restorer is None:
            from ..application.services.retry import BoundedRetry
            from ..application.services.session_restorer import SessionRestorer

            restore = self.settings.restore
            self._session_restorer = SessionRestorer(
                store=self.state_store,
                registry=self.session_registry,
                gateway=self.tenant_gateway,
                transport=self.voice_transport,
                lookup_retry=BoundedRetry(
                    max_attempts=restore.lookup_attempts, delay_seconds=restore.lookup_delay_s
                ),
                supervisor=self.connection_supervisor,
            )
        return self._session_restorer

    @property
    def cache_janitor(self) -> CacheJanitor:
        if self._cache_janitor is None:
            from ..application.services.cache_janitor import CacheJanitor

            self._cache_janitor = CacheJanitor(self.cache_dir, self.state_store)
        return self._cache_janitor

    # === Discord Helpers ===

    @property
    def notifier(self) -> ChannelNotifier:
        if self._notifier is None:
            from ..infrastructure.discord.services.notifier import ChannelNotifier

            self._notifier = ChannelNotifier(self.bot, self.event_bus)
        return self._notifier

    # === Command Handlers ===

    @property
    def play_track_handler(self) -> PlayTrackHandler:
        """Get the play track command handler."""
        if self._play_track_handler is None:
            from ..application.commands.play_track import PlayTrackHandler

            self._play_track_handler = PlayTrackHandler(
                dispatcher=self.track_dispatcher,
                registry=self.session_registry,
                transport=self.voice_transport,
                supervisor=self.connection_supervisor,
            )
        return self._play_track_handler

    @property
    def stop_playback_handler(self) -> StopPlaybackHandler:
        """Get the stop playback command handler."""
        if self._stop_playback_handler is None:
            from ..application.commands.stop_playback import StopPlaybackHandler

            self._stop_playback_handler = StopPlaybackHandler(
                registry=self.session_registry,
                transport=self.voice_transport,
            )
        return self._stop_playback_handler

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Initialize all async resources."""
        await self.database.initialize()
        # Registers the supervisor as a discard listener before any engine exists.
        _ = self.connection_supervisor
        self.notifier.start()

    async def flush_sessions(self) -> None:
        """Write every live session now, bounded by the shutdown flush timeout."""
        if self._session_registry is None:
            return
        await self._session_registry.flush_all(
            self.settings.persistence.shutdown_flush_timeout_s
        )

    async def shutdown(self) -> None:
        """Flush live sessions and release all resources.

        Records are kept so the next start can restore them.
        """
        if self._connection_supervisor is not None:
            await self._connection_supervisor.stop()

        await self.flush_sessions()

        if self._session_registry is not None:
            await self._session_registry.close_all()
        if self._state_store is not None:
            await self._state_store.close()
        if self._notifier is not None:
            self._notifier.stop()
        if self._event_bus is not None:
            await self._event_bus.drain()
        if self._voice_transport is not None:
            await self._voice_transport.disconnect_all()

        for resolver in (self._spotify_resolver, self._direct_link_resolver):
            if resolver is not None:
                try:
                    await resolver.close()
                except Exception as exc:
                    logger.warning(LogTemplates.BOT_CONTAINER_SHUTDOWN_ERROR, exc)

        if self._database is not None:
            await self._database.close()


def create_container(settings: Settings, profile: BotProfile | None = None) -> Container:
    """Create a new dependency injection container."""
    if profile is None:
        profile = settings.bot_profiles()[0]
    return Container(settings, profile)
