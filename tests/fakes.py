"""In-memory stand-ins for the voice transport, gateway, resolvers and repository."""

import asyncio

from discord_music_fleet.application.interfaces.tenant_gateway import (
    ChannelInfo,
    ChannelKind,
    TenantGateway,
)
from discord_music_fleet.application.interfaces.track_resolver import (
    PlaylistExpansion,
    TrackResolver,
)
from discord_music_fleet.application.interfaces.voice_transport import (
    VoiceConnection,
    VoiceTransport,
)
from discord_music_fleet.domain.music.entities import PersistedSessionRecord, Track
from discord_music_fleet.domain.music.repository import SessionRecordRepository
from discord_music_fleet.domain.music.value_objects import Platform, TrackId

TENANT_ID = 111111111111111111
VOICE_CHANNEL_ID = 222222222222222222
TEXT_CHANNEL_ID = 333333333333333333


class FakeConnection(VoiceConnection):
    """Records what the engine asked the transport to do."""

    def __init__(self, transport: "FakeTransport", tenant_id: int, channel_id: int) -> None:
        self._transport = transport
        self.tenant_id = tenant_id
        self._channel_id = channel_id
        self.played: list[str] = []
        self.stop_calls = 0
        self.paused = False
        self.destroyed = False
        self.play_error: Exception | None = None
        self._after = None

    @property
    def channel_id(self) -> int | None:
        return self._channel_id

    def is_connected(self) -> bool:
        return not self.destroyed

    def play(self, stream_locator, after) -> None:
        if self.play_error is not None:
            error, self.play_error = self.play_error, None
            raise error
        self.played.append(stream_locator)
        self._after = after

    def stop(self) -> None:
        # Like discord's VoiceClient, stopping fires the after-callback.
        self.stop_calls += 1
        after, self._after = self._after, None
        if after is not None:
            after(None)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    async def destroy(self) -> None:
        self.destroyed = True
        self._transport.connections.pop(self.tenant_id, None)

    def finish(self, error: Exception | None = None) -> None:
        """Simulate the end of the current stream."""
        after, self._after = self._after, None
        assert after is not None, "nothing is playing"
        after(error)


class FakeTransport(VoiceTransport):
    def __init__(self) -> None:
        self.connections: dict[int, FakeConnection] = {}
        self.joins: list[tuple[int, int]] = []
        self.join_errors: list[Exception] = []

    async def join(self, channel_id: int, tenant_id: int) -> FakeConnection:
        self.joins.append((tenant_id, channel_id))
        if self.join_errors:
            raise self.join_errors.pop(0)
        connection = self.connections.get(tenant_id)
        if connection is None:
            connection = FakeConnection(self, tenant_id, channel_id)
            self.connections[tenant_id] = connection
        else:
            connection._channel_id = channel_id
        return connection

    def get_connection(self, tenant_id: int) -> FakeConnection | None:
        return self.connections.get(tenant_id)


class FakeGateway(TenantGateway):
    def __init__(self) -> None:
        self.tenants: set[int] = set()
        self.channels: dict[tuple[int, int], ChannelInfo] = {}

    def add_tenant(self, tenant_id: int, voice_channel_id: int, text_channel_id: int | None = None):
        self.tenants.add(tenant_id)
        self.channels[(tenant_id, voice_channel_id)] = ChannelInfo(
            id=voice_channel_id, kind=ChannelKind.VOICE, name="Music"
        )
        if text_channel_id is not None:
            self.channels[(tenant_id, text_channel_id)] = ChannelInfo(
                id=text_channel_id, kind=ChannelKind.TEXT, name="general"
            )

    async def has_tenant(self, tenant_id: int) -> bool:
        return tenant_id in self.tenants

    async def get_channel(self, tenant_id: int, channel_id: int) -> ChannelInfo | None:
        return self.channels.get((tenant_id, channel_id))


class FakeResolver(TrackResolver):
    """Resolver variant answering from dictionaries.

    `gates` holds an Event per track id; stream resolution for that track
    waits until the event is set.
    """

    def __init__(self, platforms=(Platform.YOUTUBE,)) -> None:
        self.platforms = tuple(platforms)
        self.results: dict[str, list[Track]] = {}
        self.playlists: dict[str, list[Track]] = {}
        self.locators: dict[str, str] = {}
        self.stream_errors: dict[str, list[Exception]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.search_calls: list[str] = []
        self.resolved: list[str] = []
        self.search_error: Exception | None = None

    async def search(self, query, limit, tenant_id):
        self.search_calls.append(query)
        if self.search_error is not None:
            raise self.search_error
        return list(self.results.get(query, []))[:limit]

    async def get_playlist(self, url, tenant_id):
        if url not in self.playlists:
            return None
        return PlaylistExpansion(tracks=list(self.playlists[url]))

    async def resolve_stream(self, track):
        key = str(track.id)
        self.resolved.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        errors = self.stream_errors.get(key)
        if errors:
            raise errors.pop(0)
        return track.with_stream(self.locators.get(key, f"https://stream.example.com/{key}"))

    def is_playlist_url(self, url):
        return url in self.playlists


class InMemoryRecordRepository(SessionRecordRepository):
    def __init__(self) -> None:
        self.records: dict[int, PersistedSessionRecord] = {}
        self.writes: list[tuple[int, PersistedSessionRecord]] = []
        self.deletes: list[int] = []
        self.save_errors: list[Exception] = []
        self.delete_gate: asyncio.Event | None = None

    async def save(self, tenant_id, record):
        if self.save_errors:
            raise self.save_errors.pop(0)
        self.writes.append((tenant_id, record))
        self.records[tenant_id] = record

    async def load_all(self):
        return dict(self.records)

    async def delete(self, tenant_id):
        self.deletes.append(tenant_id)
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        return self.records.pop(tenant_id, None) is not None


def make_track(name: str, platform: Platform = Platform.YOUTUBE, **kwargs) -> Track:
    return Track(
        id=TrackId(name),
        source_platform=platform,
        url=kwargs.pop("url", f"https://www.youtube.com/watch?v={name}"),
        title=kwargs.pop("title", f"Song {name}"),
        **kwargs,
    )


def queue_excludes_current(engine) -> bool:
    current = engine.current_track
    return current is None or all(t.id != current.id for t in engine.queue)


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and short tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


