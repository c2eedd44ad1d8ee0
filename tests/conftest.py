import pytest
import pytest_asyncio

from discord_music_fleet.domain.music.value_objects import Platform
from fakes import (
    TENANT_ID,
    TEXT_CHANNEL_ID,
    VOICE_CHANNEL_ID,
    FakeGateway,
    FakeResolver,
    FakeTransport,
    InMemoryRecordRepository,
)

# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def in_memory_database():
    """Create an in-memory SQLite database for testing."""
    from discord_music_fleet.infrastructure.persistence.database import Database

    db = Database(":memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def record_repository(in_memory_database):
    from discord_music_fleet.infrastructure.persistence.repositories.session_record_repository import (
        SQLiteSessionRecordRepository,
    )

    return SQLiteSessionRecordRepository(in_memory_database)


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def youtube():
    return FakeResolver((Platform.YOUTUBE,))


@pytest.fixture
def dispatcher(youtube):
    from discord_music_fleet.application.services.track_dispatcher import TrackDispatcher

    return TrackDispatcher([youtube])


@pytest.fixture
def repository():
    return InMemoryRecordRepository()


@pytest_asyncio.fixture
async def state_store(repository):
    from discord_music_fleet.application.services.state_store import StateStore

    store = StateStore(repository, debounce_seconds=60.0)
    yield store
    await store.close()


@pytest.fixture
def event_bus():
    from discord_music_fleet.domain.shared.events import EventBus

    return EventBus()


@pytest.fixture
def published(event_bus):
    """Every event published on the bus, in delivery order."""
    from discord_music_fleet.domain.shared.events import (
        PlaybackPaused,
        PlaybackResumed,
        PlaybackStopped,
        QueueChanged,
        TrackEnded,
        TrackFailed,
        TrackStarted,
    )

    events = []

    async def record(event):
        events.append(event)

    for event_type in (
        TrackStarted,
        TrackEnded,
        TrackFailed,
        QueueChanged,
        PlaybackPaused,
        PlaybackResumed,
        PlaybackStopped,
    ):
        event_bus.subscribe(event_type, record)
    return events


@pytest_asyncio.fixture
async def make_engine(transport, dispatcher, state_store, event_bus):
    from discord_music_fleet.application.services.playback_engine import PlaybackEngine

    engines = []

    def factory(
        tenant_id=TENANT_ID,
        voice_channel_id=VOICE_CHANNEL_ID,
        text_channel_id=TEXT_CHANNEL_ID,
        **kwargs,
    ):
        kwargs.setdefault("stream_retry_delay", 0)
        engine = PlaybackEngine(
            tenant_id,
            transport=transport,
            stream_resolver=dispatcher,
            store=state_store,
            event_bus=event_bus,
            voice_channel_id=voice_channel_id,
            text_channel_id=text_channel_id,
            **kwargs,
        )
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        await engine.close()
    await event_bus.drain()


@pytest.fixture
def registry(make_engine):
    from discord_music_fleet.application.services.session_registry import SessionRegistry

    def factory(tenant_id, voice_channel_id, text_channel_id):
        return make_engine(
            tenant_id, voice_channel_id, text_channel_id, on_teardown=registry.unregister
        )

    registry = SessionRegistry(factory)
    return registry


@pytest_asyncio.fixture
async def joined(transport):
    """The bot already sits in VOICE_CHANNEL_ID for TENANT_ID."""
    return await transport.join(VOICE_CHANNEL_ID, TENANT_ID)
