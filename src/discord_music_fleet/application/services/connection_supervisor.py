"""Rejoins the assigned voice channel after platform-initiated moves or disconnects."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from ...domain.shared.exceptions import VoiceConnectionError
from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ..interfaces.voice_transport import VoiceTransport
    from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class ConnectionSupervisor:
    """Watches the bot's own voice membership per tenant.

    A tenant is supervised while it has an assignment (the channel the bot is
    expected to be in). Each tenant has at most one pending rejoin; a newer
    membership event replaces it. Transient join failures are logged and
    dropped until the next event; permanent ones release the assignment and
    settle the tenant's engine to IDLE.
    """

    def __init__(
        self,
        *,
        transport: VoiceTransport,
        registry: SessionRegistry,
        rejoin_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._rejoin_delay = rejoin_delay
        self._sleep = sleep

        self._assignments: dict[int, int] = {}
        self._pending: dict[int, asyncio.Task[None]] = {}

        registry.add_discard_listener(self.release)

    @property
    def pending_rejoins(self) -> set[int]:
        return {t for t, task in self._pending.items() if not task.done()}

    def expected_channel(self, tenant_id: int) -> int | None:
        return self._assignments.get(tenant_id)

    def assign(self, tenant_id: int, channel_id: int) -> None:
        if self._assignments.get(tenant_id) != channel_id:
            self._assignments[tenant_id] = channel_id
            logger.debug(LogTemplates.SUPERVISOR_ASSIGNED, tenant_id, channel_id)

    def release(self, tenant_id: int) -> None:
        self._cancel_pending(tenant_id)
        if self._assignments.pop(tenant_id, None) is not None:
            logger.debug(LogTemplates.SUPERVISOR_RELEASED, tenant_id)

    def on_membership_change(
        self, tenant_id: int, before_channel_id: int | None, after_channel_id: int | None
    ) -> bool:
        """Handle a voice-state change of the bot itself.

        Returns True when a rejoin was scheduled.
        """
        expected = self._assignments.get(tenant_id)
        if expected is None:
            return False

        if after_channel_id == expected:
            self._cancel_pending(tenant_id)
            return False

        if after_channel_id is None:
            if before_channel_id is None:
                return False
            logger.warning(
                LogTemplates.SUPERVISOR_DISCONNECTED,
                before_channel_id,
                tenant_id,
                self._rejoin_delay,
            )
        else:
            logger.warning(
                LogTemplates.SUPERVISOR_MOVED,
                before_channel_id,
                after_channel_id,
                tenant_id,
                self._rejoin_delay,
            )

        if self._cancel_pending(tenant_id):
            logger.debug(LogTemplates.SUPERVISOR_REJOIN_REPLACED, tenant_id)
        self._pending[tenant_id] = asyncio.create_task(self._rejoin_later(tenant_id, expected))
        return True

    async def stop(self) -> None:
        tasks = [t for t in self._pending.values() if not t.done()]
        for task in tasks:
            task.cancel()
        self._pending.clear()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(LogTemplates.SUPERVISOR_STOPPED, len(tasks))

    def _cancel_pending(self, tenant_id: int) -> bool:
        task = self._pending.pop(tenant_id, None)
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    async def _rejoin_later(self, tenant_id: int, channel_id: int) -> None:
        await self._sleep(self._rejoin_delay)
        if self._pending.get(tenant_id) is asyncio.current_task():
            del self._pending[tenant_id]
        if self._assignments.get(tenant_id) != channel_id:
            return

        try:
            await self._transport.join(channel_id, tenant_id)
        except VoiceConnectionError as exc:
            if not exc.is_permanent:
                logger.warning(LogTemplates.SUPERVISOR_REJOIN_TRANSIENT, tenant_id, exc.message)
                return
            logger.error(LogTemplates.SUPERVISOR_REJOIN_PERMANENT, tenant_id, exc.message)
            self.release(tenant_id)
            engine = self._registry.get(tenant_id)
            if engine is not None:
                await engine.settle_idle(exc.message)
            return
        except Exception as exc:
            logger.warning(LogTemplates.SUPERVISOR_REJOIN_TRANSIENT, tenant_id, exc)
            return

        logger.info(LogTemplates.SUPERVISOR_REJOINED, channel_id, tenant_id)
        engine = self._registry.get(tenant_id)
        if engine is not None:
            await engine.resume_queue()
