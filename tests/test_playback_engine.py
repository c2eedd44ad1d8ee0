"""
Unit Tests for PlaybackEngine

Covers the per-tenant state machine against an in-memory voice transport:
enqueue/advance/skip/pause/resume/stop/leave, stream failures, stale results
and the queue/current-track invariant.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from discord_music_fleet.domain.music.entities import PersistedSessionRecord
from discord_music_fleet.domain.music.value_objects import OperationResult, PlaybackStatus
from discord_music_fleet.domain.shared.events import (
    PlaybackStopped,
    TrackEnded,
    TrackFailed,
    TrackStarted,
)
from discord_music_fleet.domain.shared.exceptions import InvalidOperationError, ResolutionError
from fakes import (
    TENANT_ID,
    TEXT_CHANNEL_ID,
    VOICE_CHANNEL_ID,
    make_track,
    queue_excludes_current,
    settle,
)


class TestEnqueue:
    async def test_first_track_starts_playing(self, make_engine, joined, published, event_bus):
        engine = make_engine()
        track = make_track("aaa")

        result = await engine.enqueue(track)
        await engine.drain()
        await event_bus.drain()

        assert result.started is True
        assert result.position == 0
        assert engine.status == PlaybackStatus.PLAYING
        assert engine.current_track.id == track.id
        assert joined.played == ["https://stream.example.com/aaa"]
        assert any(isinstance(e, TrackStarted) for e in published)

    async def test_later_tracks_queue_behind_current(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        result = await engine.enqueue(make_track("ccc"))

        assert result.started is False
        assert result.position == 2
        assert [t.id.value for t in engine.queue] == ["bbb", "ccc"]
        assert queue_excludes_current(engine)

    async def test_play_now_goes_to_queue_head(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        result = await engine.enqueue(make_track("ccc"), play_now=True)

        assert result.position == 1
        assert [t.id.value for t in engine.queue] == ["ccc", "bbb"]

    async def test_queue_full_raises(self, make_engine, joined):
        engine = make_engine(max_queue_size=2)

        with pytest.raises(InvalidOperationError):
            await engine.enqueue([make_track("aaa"), make_track("bbb"), make_track("ccc")])

        assert engine.status == PlaybackStatus.IDLE
        assert engine.queue == ()

    async def test_enqueue_after_stop_restarts(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()
        await engine.stop()

        result = await engine.enqueue(make_track("bbb"))
        await engine.drain()

        assert result.started is True
        assert engine.status == PlaybackStatus.PLAYING
        assert engine.current_track.id.value == "bbb"

    async def test_enqueue_requests_debounced_save(self, make_engine, joined, state_store):
        engine = make_engine()

        await engine.enqueue([make_track("aaa"), make_track("bbb")])

        assert TENANT_ID in state_store.pending_tenants


class TestAdvance:
    async def test_finished_track_moves_to_next(self, make_engine, joined, published, event_bus):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        joined.finish()
        await engine.drain()
        await event_bus.drain()

        assert engine.current_track.id.value == "bbb"
        assert engine.queue == ()
        assert joined.played[-1] == "https://stream.example.com/bbb"
        ended = [e for e in published if isinstance(e, TrackEnded)]
        assert ended[0].track.id.value == "aaa"
        assert ended[0].was_skipped is False

    async def test_last_track_finishing_settles_idle(
        self, make_engine, joined, published, event_bus
    ):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        joined.finish()
        await engine.drain()
        await event_bus.drain()

        assert engine.status == PlaybackStatus.IDLE
        assert engine.current_track is None
        stopped = [e for e in published if isinstance(e, PlaybackStopped)]
        assert stopped[-1].reason == "queue_end"
        assert stopped[-1].text_channel_id == TEXT_CHANNEL_ID

    async def test_transport_error_still_advances(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        joined.finish(RuntimeError("ffmpeg exited"))
        await engine.drain()

        assert engine.current_track.id.value == "bbb"

    async def test_advance_without_track_has_no_effect(self, make_engine):
        engine = make_engine()

        assert await engine.advance() == OperationResult.NO_EFFECT


class TestSkip:
    async def test_skip_plays_next_once(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb"), make_track("ccc")])
        await engine.drain()

        # Stopping the transport fires the old completion callback; it must be ignored.
        assert await engine.skip() == OperationResult.APPLIED
        await engine.drain()

        assert engine.current_track.id.value == "bbb"
        assert [t.id.value for t in engine.queue] == ["ccc"]
        assert queue_excludes_current(engine)

    async def test_skip_when_idle_has_no_effect(self, make_engine):
        engine = make_engine()

        assert await engine.skip() == OperationResult.NO_EFFECT

    async def test_skip_while_resolving_discards_stale_result(self, make_engine, joined, youtube):
        engine = make_engine()
        youtube.gates["aaa"] = asyncio.Event()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await settle()
        assert engine.status == PlaybackStatus.RESOLVING

        await engine.skip()
        await settle()
        youtube.gates["aaa"].set()
        await engine.drain()

        assert joined.played == ["https://stream.example.com/bbb"]
        assert engine.current_track.id.value == "bbb"
        assert engine.status == PlaybackStatus.PLAYING


class TestPauseResume:
    async def test_pause_and_resume(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        assert await engine.pause() == OperationResult.APPLIED
        assert engine.status == PlaybackStatus.PAUSED
        assert joined.paused is True

        assert await engine.resume() == OperationResult.APPLIED
        assert engine.status == PlaybackStatus.PLAYING
        assert joined.paused is False

    async def test_pause_when_idle_has_no_effect(self, make_engine):
        engine = make_engine()

        assert await engine.pause() == OperationResult.NO_EFFECT

    async def test_resume_when_not_paused_has_no_effect(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        assert await engine.resume() == OperationResult.NO_EFFECT

    async def test_position_freezes_while_paused(self, make_engine, joined):
        now = [100.0]
        engine = make_engine(clock=lambda: now[0])
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        now[0] = 102.5
        assert engine.position_ms == 2500

        await engine.pause()
        now[0] = 110.0
        assert engine.position_ms == 2500

        await engine.resume()
        now[0] = 111.0
        assert engine.position_ms == 3500


class TestStopAndLeave:
    async def test_stop_keeps_connection(self, make_engine, transport, joined):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        assert await engine.stop() == OperationResult.APPLIED

        assert engine.status == PlaybackStatus.STOPPED
        assert engine.current_track is None
        assert engine.queue == ()
        assert transport.get_connection(TENANT_ID) is joined
        assert joined.destroyed is False
        assert joined.stop_calls >= 1

    async def test_leave_after_stop_releases_connection(
        self, make_engine, transport, joined, repository
    ):
        teardown = MagicMock()
        engine = make_engine(on_teardown=teardown)
        await engine.enqueue(make_track("aaa"))
        await engine.drain()
        await engine.stop()

        assert await engine.leave() == OperationResult.APPLIED

        assert transport.get_connection(TENANT_ID) is None
        assert joined.destroyed is True
        assert engine.is_closed
        assert TENANT_ID in repository.deletes
        teardown.assert_called_once_with(engine)

    async def test_leave_twice_has_no_effect(self, make_engine, joined):
        engine = make_engine()
        await engine.leave()

        assert await engine.leave() == OperationResult.NO_EFFECT

    async def test_enqueue_after_leave_is_rejected(self, make_engine, joined):
        engine = make_engine()
        await engine.leave()

        with pytest.raises(InvalidOperationError):
            await engine.enqueue(make_track("aaa"))

    async def test_left_engine_drops_pending_write(
        self, make_engine, joined, state_store, repository
    ):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        await engine.leave()
        await state_store.flush_all()

        assert repository.records == {}
        assert TENANT_ID not in state_store.pending_tenants


class TestStreamFailures:
    async def test_no_results_skips_to_next_without_retry(
        self, make_engine, joined, youtube, published, event_bus
    ):
        engine = make_engine()
        youtube.stream_errors["aaa"] = [ResolutionError.no_results("Song aaa")]
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()
        await event_bus.drain()

        assert youtube.resolved.count("aaa") == 1
        assert engine.current_track.id.value == "bbb"
        failed = [e for e in published if isinstance(e, TrackFailed)]
        assert failed[0].track.id.value == "aaa"

    async def test_provider_failure_is_retried(self, make_engine, joined, youtube):
        engine = make_engine(stream_resolve_attempts=2)
        youtube.stream_errors["aaa"] = [ResolutionError.provider_failure("youtube", "HTTP 503")]
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        assert youtube.resolved.count("aaa") == 2
        assert engine.status == PlaybackStatus.PLAYING

    async def test_every_track_failing_settles_idle(self, make_engine, joined, youtube):
        engine = make_engine(stream_resolve_attempts=1)
        youtube.stream_errors["aaa"] = [ResolutionError.provider_failure("youtube", "down")]
        youtube.stream_errors["bbb"] = [ResolutionError.provider_failure("youtube", "down")]
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        assert engine.status == PlaybackStatus.IDLE
        assert engine.current_track is None
        assert engine.queue == ()

    async def test_transport_start_failure_skips_track(self, make_engine, joined):
        engine = make_engine()
        joined.play_error = RuntimeError("not connected to voice")
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        assert engine.current_track.id.value == "bbb"


class TestConnectionLoss:
    async def test_missing_connection_parks_track(self, make_engine, published, event_bus):
        engine = make_engine()

        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()
        await event_bus.drain()

        assert engine.status == PlaybackStatus.IDLE
        assert engine.current_track is None
        assert [t.id.value for t in engine.queue] == ["aaa", "bbb"]
        stopped = [e for e in published if isinstance(e, PlaybackStopped)]
        assert stopped[-1].reason == "not connected"

    async def test_resume_queue_after_rejoin(self, make_engine, transport):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        connection = await transport.join(VOICE_CHANNEL_ID, TENANT_ID)
        assert await engine.resume_queue() == OperationResult.APPLIED
        await engine.drain()

        assert engine.status == PlaybackStatus.PLAYING
        assert connection.played == ["https://stream.example.com/aaa"]

    async def test_resume_queue_when_playing_has_no_effect(self, make_engine, joined):
        engine = make_engine()
        await engine.enqueue(make_track("aaa"))
        await engine.drain()

        assert await engine.resume_queue() == OperationResult.NO_EFFECT

    async def test_settle_idle_drops_playback(self, make_engine, joined, published, event_bus):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()

        await engine.settle_idle("missing permissions")
        await event_bus.drain()

        assert engine.status == PlaybackStatus.IDLE
        assert engine.current_track is None
        assert not engine.is_closed
        assert any(isinstance(e, TrackFailed) for e in published)

    async def test_settle_idle_on_parked_engine(self, make_engine, published, event_bus):
        engine = make_engine()
        await engine.enqueue([make_track("aaa"), make_track("bbb")])
        await engine.drain()
        assert engine.status == PlaybackStatus.IDLE

        await engine.settle_idle("channel deleted")
        await event_bus.drain()

        assert engine.status == PlaybackStatus.IDLE
        assert engine.queue == ()
        assert engine.snapshot().to_record().queue == []
        reasons = [e.reason for e in published if isinstance(e, PlaybackStopped)]
        assert reasons[-1] == "channel deleted"

    async def test_settle_idle_after_stopped_restore(self, make_engine, joined):
        engine = make_engine()
        await engine.restore(
            PersistedSessionRecord(
                voice_channel_id=VOICE_CHANNEL_ID,
                queue=[make_track("bbb")],
                status=PlaybackStatus.STOPPED,
            )
        )

        await engine.settle_idle("channel deleted")

        assert engine.status == PlaybackStatus.IDLE
        assert engine.queue == ()


class TestRestore:
    async def test_restore_replays_current_from_start(self, make_engine, joined):
        engine = make_engine()
        record = PersistedSessionRecord(
            voice_channel_id=VOICE_CHANNEL_ID,
            text_channel_id=TEXT_CHANNEL_ID,
            current_track=make_track("aaa"),
            queue=[make_track("bbb"), make_track("ccc")],
            position_ms=95_000,
            status=PlaybackStatus.PLAYING,
        )

        await engine.restore(record)
        await engine.drain()

        assert engine.current_track.id.value == "aaa"
        assert [t.id.value for t in engine.queue] == ["bbb", "ccc"]
        assert engine.status == PlaybackStatus.PLAYING
        assert engine.position_ms < 95_000
        assert queue_excludes_current(engine)

    async def test_restore_stopped_record_stays_idle(self, make_engine, joined, youtube):
        engine = make_engine()
        record = PersistedSessionRecord(
            voice_channel_id=VOICE_CHANNEL_ID,
            queue=[make_track("bbb")],
            status=PlaybackStatus.STOPPED,
        )

        await engine.restore(record)
        await engine.drain()

        assert engine.current_track is None
        assert [t.id.value for t in engine.queue] == ["bbb"]
        assert youtube.resolved == []


class TestInvariant:
    async def test_queue_never_holds_current_track(self, make_engine, joined):
        engine = make_engine()
        tracks = [make_track(f"t{i:02d}") for i in range(6)]

        steps = [
            lambda: engine.enqueue(tracks[:3]),
            lambda: engine.skip(),
            lambda: engine.enqueue(tracks[3], play_now=True),
            lambda: engine.pause(),
            lambda: engine.resume(),
            lambda: engine.advance(),
            lambda: engine.enqueue(tracks[4:]),
            lambda: engine.skip(),
            lambda: engine.stop(),
        ]
        for step in steps:
            await step()
            await engine.drain()
            assert queue_excludes_current(engine)


class TestSerialization:
    async def test_concurrent_operations_run_in_submission_order(
        self, make_engine, joined, published, event_bus
    ):
        engine = make_engine()
        finished = []

        async def submit(name, operation):
            result = await operation
            finished.append(name)
            assert queue_excludes_current(engine)
            return result

        results = await asyncio.gather(
            submit("enqueue a", engine.enqueue(make_track("aaa"))),
            submit("skip", engine.skip()),
            submit("enqueue b", engine.enqueue(make_track("bbb"))),
            submit("stop", engine.stop()),
        )
        await engine.drain()
        await event_bus.drain()

        assert finished == ["enqueue a", "skip", "enqueue b", "stop"]
        assert results[0].started is True
        assert results[1] == OperationResult.APPLIED
        assert results[2].started is True
        assert results[3] == OperationResult.APPLIED

        assert engine.status == PlaybackStatus.STOPPED
        assert engine.current_track is None
        assert engine.queue == ()
        # Both starts were superseded before they reached the transport.
        assert joined.played == []
        assert not any(isinstance(e, TrackStarted) for e in published)

        ended = [e.track.id.value for e in published if isinstance(e, TrackEnded)]
        assert ended == ["aaa", "bbb"]
        reasons = [e.reason for e in published if isinstance(e, PlaybackStopped)]
        assert reasons == ["queue_end", "stopped"]
