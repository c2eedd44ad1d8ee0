"""Per-tenant playback state machine driving the voice transport."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ...domain.music.entities import PlaybackState, Track
from ...domain.music.value_objects import OperationResult, PlaybackStatus
from ...domain.shared.events import (
    DomainEvent,
    PlaybackPaused,
    PlaybackResumed,
    PlaybackStopped,
    QueueChanged,
    TrackEnded,
    TrackFailed,
    TrackStarted,
)
from ...domain.shared.exceptions import InvalidOperationError, ResolutionError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from .retry import BoundedRetry

if TYPE_CHECKING:
    from ...domain.music.entities import PersistedSessionRecord
    from ...domain.shared.events import EventBus
    from ..interfaces.voice_transport import VoiceConnection, VoiceTransport
    from .state_store import StateStore
    from .track_dispatcher import TrackDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnqueueResult:
    added: int
    queue_length: int
    started: bool
    # 1-based queue position of the first added track; 0 when it starts right away.
    position: int


class PlaybackEngine:
    """Owns one tenant's queue and drives its voice connection.

    Mutating operations run one at a time under a FIFO lock, in submission
    order. Stream resolution happens outside the lock; every operation that
    changes the current track bumps a generation counter, so a resolution or
    transport callback belonging to an older generation is discarded on
    arrival. Each committed transition publishes a notification
    (fire-and-forget) and requests a debounced save.
    """

    def __init__(
        self,
        tenant_id: int,
        *,
        transport: VoiceTransport,
        stream_resolver: TrackDispatcher,
        store: StateStore,
        event_bus: EventBus,
        voice_channel_id: int | None = None,
        text_channel_id: int | None = None,
        stream_resolve_attempts: int = 2,
        stream_retry_delay: float = 0.5,
        max_queue_size: int = 200,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Coroutine[Any, Any, None]] = asyncio.sleep,
        on_teardown: Callable[[PlaybackEngine], object] | None = None,
    ) -> None:
        self._state = PlaybackState(
            tenant_id=tenant_id,
            voice_channel_id=voice_channel_id,
            text_channel_id=text_channel_id,
        )
        self._transport = transport
        self._stream_resolver = stream_resolver
        self._store = store
        self._event_bus = event_bus
        self._retry = BoundedRetry(
            max_attempts=stream_resolve_attempts, delay_seconds=stream_retry_delay, sleep=sleep
        )
        self._max_queue_size = max_queue_size
        self._clock = clock
        self._on_teardown = on_teardown

        self._lock = asyncio.Lock()
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

        # Position tracking: accumulated ms plus the clock reading when playback last (re)started.
        self._position_base_ms = 0
        self._playing_since: float | None = None

    # ── Read-only view ──────────────────────────────────────────────

    @property
    def tenant_id(self) -> int:
        return self._state.tenant_id

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def current_track(self) -> Track | None:
        return self._state.current_track

    @property
    def queue(self) -> tuple[Track, ...]:
        return tuple(self._state.queue)

    @property
    def voice_channel_id(self) -> int | None:
        return self._state.voice_channel_id

    @property
    def text_channel_id(self) -> int | None:
        return self._state.text_channel_id

    @property
    def position_ms(self) -> int:
        elapsed = 0
        if self._playing_since is not None:
            elapsed = int((self._clock() - self._playing_since) * 1000)
        return self._position_base_ms + elapsed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def snapshot(self) -> PlaybackState:
        state = self._state.model_copy(deep=True)
        state.position_ms = self.position_ms
        return state

    def set_channels(
        self, *, voice_channel_id: int | None = None, text_channel_id: int | None = None
    ) -> None:
        if voice_channel_id is not None:
            self._state.voice_channel_id = voice_channel_id
        if text_channel_id is not None:
            self._state.text_channel_id = text_channel_id

    # ── Operations ──────────────────────────────────────────────────

    async def enqueue(
        self, tracks: Track | Sequence[Track], *, play_now: bool = False
    ) -> EnqueueResult:
        """Add tracks to the queue; from IDLE or STOPPED the first one starts.

        Returns as soon as the queue is updated. Playback starts in the background.

        Raises:
            InvalidOperationError: the queue would exceed its maximum size.
        """
        items = [tracks] if isinstance(tracks, Track) else list(tracks)
        async with self._lock:
            state = self._state
            if self._closed:
                raise InvalidOperationError(operation="enqueue", current_state="closed")
            if len(state.queue) + len(items) > self._max_queue_size:
                raise InvalidOperationError(
                    operation="enqueue",
                    current_state=state.status.value,
                    message=ErrorMessages.QUEUE_FULL.format(max_size=self._max_queue_size),
                )
            if not items:
                return EnqueueResult(0, len(state.queue), started=False, position=0)

            position = 1 if play_now else len(state.queue) + 1
            state.enqueue(items, at_head=play_now)

            started = state.status in (PlaybackStatus.IDLE, PlaybackStatus.STOPPED)
            if started:
                self._begin_next()
                position = 0

            logger.info(
                LogTemplates.ENGINE_ENQUEUED, len(items), self.tenant_id, play_now, len(state.queue)
            )
            await self._commit(
                QueueChanged(**self._event_base(), queue_length=len(state.queue), added=items)
            )
            return EnqueueResult(len(items), len(state.queue), started=started, position=position)

    async def advance(self) -> OperationResult:
        """Move on to the next queued track, or settle IDLE when the queue is empty."""
        async with self._lock:
            if self._state.current_track is None:
                return OperationResult.NO_EFFECT
            await self._advance_locked(was_skipped=False)
            return OperationResult.APPLIED

    async def skip(self) -> OperationResult:
        async with self._lock:
            current = self._state.current_track
            if current is None:
                return OperationResult.NO_EFFECT
            logger.info(LogTemplates.ENGINE_SKIPPED, current.title, self.tenant_id)
            await self._advance_locked(was_skipped=True)
            return OperationResult.APPLIED

    async def pause(self) -> OperationResult:
        async with self._lock:
            state = self._state
            if state.status != PlaybackStatus.PLAYING or state.current_track is None:
                return OperationResult.NO_EFFECT
            connection = self._connection()
            if connection is not None:
                connection.pause()
            self._freeze_position()
            state.transition_to(PlaybackStatus.PAUSED)
            logger.info(LogTemplates.ENGINE_PAUSED, self.tenant_id)
            await self._commit(PlaybackPaused(**self._event_base(), track=state.current_track))
            return OperationResult.APPLIED

    async def resume(self) -> OperationResult:
        async with self._lock:
            state = self._state
            if state.status != PlaybackStatus.PAUSED or state.current_track is None:
                return OperationResult.NO_EFFECT
            connection = self._connection()
            if connection is not None:
                connection.resume()
            state.transition_to(PlaybackStatus.PLAYING)
            self._playing_since = self._clock()
            logger.info(LogTemplates.ENGINE_RESUMED, self.tenant_id)
            await self._commit(PlaybackResumed(**self._event_base(), track=state.current_track))
            return OperationResult.APPLIED

    async def stop(self) -> OperationResult:
        """Clear queue and current track; the voice connection stays joined."""
        async with self._lock:
            previous = self._halt(PlaybackStatus.STOPPED)
            logger.info(LogTemplates.ENGINE_STOPPED, self.tenant_id)
            if previous is not None:
                self._notify(TrackEnded(**self._event_base(), track=previous, was_skipped=True))
            await self._commit(PlaybackStopped(**self._event_base(), reason="stopped"))
            return OperationResult.APPLIED

    async def leave(self) -> OperationResult:
        """Stop, release the voice connection, delete the record and unregister."""
        async with self._lock:
            if self._closed:
                return OperationResult.NO_EFFECT
            previous = self._halt(PlaybackStatus.STOPPED)
            connection = self._connection()
            if connection is not None:
                await connection.destroy()
            self._closed = True
            logger.info(LogTemplates.ENGINE_LEFT, self.tenant_id)
            if previous is not None:
                self._notify(TrackEnded(**self._event_base(), track=previous, was_skipped=True))
            self._notify(PlaybackStopped(**self._event_base(), reason="left", left_voice=True))

        await self._store.remove(self.tenant_id)
        self._run_teardown_callback()
        return OperationResult.APPLIED

    async def settle_idle(self, reason: str) -> None:
        """Drop playback after the connection is gone for good; the engine stays registered."""
        async with self._lock:
            if self._closed:
                return
            previous = self._halt(PlaybackStatus.IDLE)
            logger.warning(LogTemplates.ENGINE_SETTLED_IDLE, self.tenant_id, reason)
            if previous is not None:
                self._notify(TrackFailed(**self._event_base(), track=previous, reason=reason))
            await self._commit(PlaybackStopped(**self._event_base(), reason=reason))

    async def restore(self, record: PersistedSessionRecord) -> None:
        """Rebuild from a persisted record; the current track restarts from the beginning."""
        async with self._lock:
            state = self._state
            state.voice_channel_id = record.voice_channel_id
            state.text_channel_id = record.text_channel_id
            state.queue = list(record.queue)

            resume = record.current_track
            if record.status != PlaybackStatus.STOPPED:
                if resume is not None:
                    state.queue.insert(0, resume)
                if state.queue:
                    self._begin_next()
            state.touch()

            logger.info(
                LogTemplates.ENGINE_RESTORED,
                self.tenant_id,
                resume.title if resume else None,
                len(state.queue),
            )
            await self._commit(QueueChanged(**self._event_base(), queue_length=len(state.queue)))

    async def resume_queue(self) -> OperationResult:
        """Start the queue head if the engine sits IDLE with tracks waiting."""
        async with self._lock:
            if self._closed or self._state.status != PlaybackStatus.IDLE or not self._state.queue:
                return OperationResult.NO_EFFECT
            self._begin_next()
            await self._commit(
                QueueChanged(**self._event_base(), queue_length=len(self._state.queue))
            )
            return OperationResult.APPLIED

    async def persist(self, *, immediate: bool = False) -> bool:
        """Hand the current snapshot to the StateStore."""
        if self._closed:
            return False
        record = self.snapshot().to_record()
        if record is None:
            return False
        return await self._store.save(self.tenant_id, record, immediate=immediate)

    async def close(self) -> None:
        """Cancel background work without touching the stored record."""
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        await self.drain()

    async def drain(self) -> None:
        """Wait until no background start or completion task is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Internals (call with the lock held) ─────────────────────────

    def _begin_next(self) -> Track | None:
        """Pop the queue head into RESOLVING and schedule its start."""
        track = self._state.dequeue()
        if track is None:
            return None
        self._generation += 1
        self._reset_position()
        self._state.begin(track)
        self._spawn(self._start_current(self._generation, track))
        return track

    async def _advance_locked(self, *, was_skipped: bool) -> None:
        state = self._state
        previous = state.current_track
        self._generation += 1
        self._stop_transport()

        if previous is not None:
            logger.info(LogTemplates.ENGINE_TRACK_ENDED, previous.title, self.tenant_id)
            self._notify(TrackEnded(**self._event_base(), track=previous, was_skipped=was_skipped))

        if self._begin_next() is None:
            self._reset_position()
            state.transition_to(PlaybackStatus.IDLE)
            logger.info(LogTemplates.ENGINE_QUEUE_EXHAUSTED, self.tenant_id)
            await self._commit(PlaybackStopped(**self._event_base(), reason="queue_end"))
        else:
            await self._commit(QueueChanged(**self._event_base(), queue_length=len(state.queue)))

    def _halt(self, status: PlaybackStatus) -> Track | None:
        previous = self._state.current_track
        self._generation += 1
        self._stop_transport()
        self._reset_position()
        if self._state.status != status or self._state.queue:
            self._state.clear(status)
        return previous

    async def _start_current(self, generation: int, track: Track) -> None:
        error: Exception | None = None
        resolved: Track | None = None
        try:
            resolved = await self._retry.run(
                lambda: self._stream_resolver.resolve_stream(track),
                label=f"resolve stream for {track.id}",
                should_retry=lambda exc: not isinstance(exc, ResolutionError) or exc.is_retryable,
            )
        except Exception as exc:
            error = exc

        async with self._lock:
            if generation != self._generation or self._closed:
                logger.debug(
                    LogTemplates.ENGINE_STALE_RESULT, self.tenant_id, generation, self._generation
                )
                return

            if resolved is None or not resolved.stream_locator:
                if error is not None:
                    reason = str(error)
                else:
                    reason = ErrorMessages.NO_STREAM_LOCATOR.format(title=track.title)
                await self._fail_current(track, reason, LogTemplates.ENGINE_STREAM_RESOLVE_FAILED)
                return

            connection = self._connection()
            if connection is None:
                # Park the track at the head; a rejoin calls resume_queue().
                logger.warning(LogTemplates.ENGINE_NO_CONNECTION, self.tenant_id)
                self._generation += 1
                self._reset_position()
                self._state.transition_to(PlaybackStatus.IDLE)
                self._state.enqueue([track], at_head=True)
                await self._commit(PlaybackStopped(**self._event_base(), reason="not connected"))
                return

            self._state.replace_current(resolved)
            try:
                connection.play(resolved.stream_locator, self._completion_callback(generation))
            except Exception as exc:
                await self._fail_current(
                    track, str(exc), LogTemplates.ENGINE_TRANSPORT_START_FAILED
                )
                return

            self._state.transition_to(PlaybackStatus.PLAYING)
            self._playing_since = self._clock()
            logger.info(LogTemplates.ENGINE_TRACK_STARTED, resolved.title, self.tenant_id)
            await self._commit(TrackStarted(**self._event_base(), track=resolved))

    async def _fail_current(self, track: Track, reason: str, template: str) -> None:
        logger.warning(template, track.title, self.tenant_id, reason)
        self._notify(TrackFailed(**self._event_base(), track=track, reason=reason))
        self._generation += 1
        if self._begin_next() is None:
            self._reset_position()
            self._state.transition_to(PlaybackStatus.IDLE)
            logger.info(LogTemplates.ENGINE_QUEUE_EXHAUSTED, self.tenant_id)
            await self._commit(PlaybackStopped(**self._event_base(), reason="queue_end"))
        else:
            await self._commit(
                QueueChanged(**self._event_base(), queue_length=len(self._state.queue))
            )

    def _completion_callback(self, generation: int) -> Callable[[Exception | None], None]:
        def after(error: Exception | None) -> None:
            if generation != self._generation or self._closed:
                return
            self._spawn(self._on_transport_finished(generation, error))

        return after

    async def _on_transport_finished(self, generation: int, error: Exception | None) -> None:
        async with self._lock:
            if generation != self._generation or self._closed:
                return
            current = self._state.current_track
            if error is not None and current is not None:
                logger.warning(
                    LogTemplates.ENGINE_TRANSPORT_ERROR, current.title, self.tenant_id, error
                )
            await self._advance_locked(was_skipped=False)

    async def _commit(self, event: DomainEvent) -> None:
        self._notify(event)
        if self._closed:
            return
        self._state.position_ms = self.position_ms
        self._state.touch()
        record = self._state.to_record()
        if record is not None:
            await self._store.save(self.tenant_id, record)

    def _notify(self, event: DomainEvent) -> None:
        try:
            self._event_bus.publish_nowait(event)
        except Exception:
            logger.exception(
                LogTemplates.ENGINE_NOTIFY_FAILED, type(event).__name__, self.tenant_id
            )

    def _event_base(self) -> dict[str, Any]:
        return {"tenant_id": self.tenant_id, "text_channel_id": self._state.text_channel_id}

    def _connection(self) -> VoiceConnection | None:
        return self._transport.get_connection(self.tenant_id)

    def _stop_transport(self) -> None:
        connection = self._connection()
        if connection is not None:
            connection.stop()

    def _freeze_position(self) -> None:
        self._position_base_ms = self.position_ms
        self._playing_since = None

    def _reset_position(self) -> None:
        self._position_base_ms = 0
        self._playing_since = None

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _run_teardown_callback(self) -> None:
        if self._on_teardown is None:
            return
        try:
            self._on_teardown(self)
        except Exception:
            logger.exception(LogTemplates.ENGINE_TEARDOWN_CALLBACK_FAILED, self.tenant_id)
