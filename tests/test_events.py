"""Tests for the EventBus delivery semantics."""

from unittest.mock import AsyncMock

from discord_music_fleet.domain.shared.events import EventBus, PlaybackStopped, TrackStarted
from fakes import TENANT_ID, make_track


def _started() -> TrackStarted:
    return TrackStarted(tenant_id=TENANT_ID, track=make_track("a"))


class TestEventBus:
    async def test_publish_reaches_subscribers_of_that_type(self):
        bus = EventBus()
        started, stopped = AsyncMock(), AsyncMock()
        bus.subscribe(TrackStarted, started)
        bus.subscribe(PlaybackStopped, stopped)

        event = _started()
        await bus.publish(event)

        started.assert_awaited_once_with(event)
        stopped.assert_not_awaited()

    async def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        bus.subscribe(TrackStarted, broken)
        bus.subscribe(TrackStarted, healthy)

        await bus.publish(_started())

        healthy.assert_awaited_once()

    async def test_publish_nowait_then_drain(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(TrackStarted, handler)

        bus.publish_nowait(_started())
        handler.assert_not_awaited()
        await bus.drain()

        handler.assert_awaited_once()

    async def test_unsubscribe(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(TrackStarted, handler)
        bus.unsubscribe(TrackStarted, handler)

        await bus.publish(_started())

        handler.assert_not_awaited()
