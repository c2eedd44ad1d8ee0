"""Playback notifications and the one-directional bus that delivers them."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from discord_music_fleet.domain.music.entities import Track
from discord_music_fleet.domain.shared.datetime_utils import utcnow
from discord_music_fleet.domain.shared.types import (
    DiscordSnowflake,
    NonEmptyStr,
    NonNegativeInt,
    UtcDatetimeField,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="DomainEvent")
EventHandler = Callable[[T], Awaitable[None]]


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True)

    event_id: NonEmptyStr = Field(default_factory=lambda: str(uuid4()))
    occurred_at: UtcDatetimeField = Field(default_factory=utcnow)
    tenant_id: DiscordSnowflake
    text_channel_id: DiscordSnowflake | None = None


class TrackStarted(DomainEvent):
    track: Track


class TrackEnded(DomainEvent):
    track: Track
    was_skipped: bool = False


class TrackFailed(DomainEvent):
    track: Track
    reason: str = ""


class QueueChanged(DomainEvent):
    queue_length: NonNegativeInt = 0
    added: list[Track] = Field(default_factory=list)


class PlaybackPaused(DomainEvent):
    track: Track


class PlaybackResumed(DomainEvent):
    track: Track


class PlaybackStopped(DomainEvent):
    """Playback ended: explicit stop, leave, or the queue ran out."""

    reason: str = "stopped"
    left_voice: bool = False


class EventBus:
    """In-memory pub/sub bus from engines to UI collaborators.

    Handlers are called concurrently. Exceptions in handlers are logged
    but do not prevent other handlers from running and never reach the
    publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[EventHandler[Any]]] = defaultdict(list)
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed handler to: %s", event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed handler from %s", event_type.__name__)

    async def publish(self, event: DomainEvent) -> None:
        event_type = type(event)
        handlers = list(self._handlers.get(event_type, []))

        if not handlers:
            logger.debug("No handlers for %s", event_type.__name__)
            return

        logger.debug("Publishing %s to %d handlers", event_type.__name__, len(handlers))

        async def safe_call(handler: EventHandler[Any]) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.exception("Error in handler for %s: %s", event_type.__name__, e)

        async with asyncio.TaskGroup() as tg:
            for handler in handlers:
                tg.create_task(safe_call(handler))

    def publish_nowait(self, event: DomainEvent) -> None:
        """Schedule delivery without waiting for handlers (fire-and-forget)."""
        task = asyncio.get_running_loop().create_task(self.publish(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")
