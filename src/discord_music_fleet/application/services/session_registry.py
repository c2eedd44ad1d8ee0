"""The tenant → PlaybackEngine mapping owned by one bot."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from .playback_engine import PlaybackEngine

logger = logging.getLogger(__name__)

EngineFactory = Callable[[int, int | None, int | None], "PlaybackEngine"]


class SessionRegistry:
    """Single owner of live engines; at most one engine per tenant.

    Entries are added when an engine is created and removed on teardown;
    discard listeners (the ConnectionSupervisor) hear about removals.
    """

    def __init__(self, engine_factory: EngineFactory) -> None:
        self._engine_factory = engine_factory
        self._engines: dict[int, PlaybackEngine] = {}
        self._on_discard: list[Callable[[int], None]] = []

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._engines

    def add_discard_listener(self, listener: Callable[[int], None]) -> None:
        self._on_discard.append(listener)

    def get(self, tenant_id: int) -> PlaybackEngine | None:
        return self._engines.get(tenant_id)

    def all(self) -> list[PlaybackEngine]:
        return list(self._engines.values())

    def create(
        self,
        tenant_id: int,
        *,
        voice_channel_id: int | None = None,
        text_channel_id: int | None = None,
    ) -> PlaybackEngine:
        """Build and register a fresh engine, replacing nothing.

        Raises:
            ValueError: an engine is already registered for the tenant.
        """
        if tenant_id in self._engines:
            raise ValueError(f"Engine already registered for tenant {tenant_id}")
        engine = self._engine_factory(tenant_id, voice_channel_id, text_channel_id)
        self._engines[tenant_id] = engine
        logger.debug(LogTemplates.REGISTRY_REGISTERED, tenant_id)
        return engine

    def get_or_create(
        self,
        tenant_id: int,
        *,
        voice_channel_id: int | None = None,
        text_channel_id: int | None = None,
    ) -> PlaybackEngine:
        engine = self._engines.get(tenant_id)
        if engine is not None and not engine.is_closed:
            engine.set_channels(voice_channel_id=voice_channel_id, text_channel_id=text_channel_id)
            return engine
        if engine is not None:
            self.discard(tenant_id)
        return self.create(
            tenant_id, voice_channel_id=voice_channel_id, text_channel_id=text_channel_id
        )

    def unregister(self, engine: PlaybackEngine) -> bool:
        """Remove `engine` only while it is still the one registered for its tenant.

        A torn-down engine may finish after a successor took its slot; the
        successor stays registered.
        """
        if self._engines.get(engine.tenant_id) is not engine:
            return False
        self.discard(engine.tenant_id)
        return True

    def discard(self, tenant_id: int) -> PlaybackEngine | None:
        """Remove the tenant's engine. Safe to call for unknown tenants."""
        engine = self._engines.pop(tenant_id, None)
        if engine is None:
            return None
        logger.debug(LogTemplates.REGISTRY_DISCARDED, tenant_id)
        for listener in self._on_discard:
            listener(tenant_id)
        return engine

    async def flush_all(self, timeout: float) -> None:
        """Write every live session immediately, bounded by `timeout` seconds."""
        engines = self.all()
        if not engines:
            return
        logger.info(LogTemplates.REGISTRY_FLUSHING, len(engines), timeout)

        async def flush(engine: PlaybackEngine) -> None:
            try:
                await engine.persist(immediate=True)
            except Exception:
                logger.exception(LogTemplates.REGISTRY_FLUSH_FAILED, engine.tenant_id)

        try:
            async with asyncio.timeout(timeout):
                await asyncio.gather(*(flush(e) for e in engines))
        except TimeoutError:
            logger.error(LogTemplates.REGISTRY_FLUSH_TIMEOUT, timeout)

    async def close_all(self) -> None:
        """Stop background work of every engine; records are left in place."""
        await asyncio.gather(*(e.close() for e in self.all()), return_exceptions=True)
