"""Debounced, per-tenant ordered persistence of session snapshots."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING

from ...domain.shared.exceptions import PersistenceError
from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...domain.music.entities import PersistedSessionRecord
    from ...domain.music.repository import SessionRecordRepository

logger = logging.getLogger(__name__)


class StateStore:
    """Coalesces rapid snapshots per tenant into one write.

    Each tenant has a pending snapshot and a timer task. `save` replaces the
    snapshot and restarts the timer; `save(immediate=True)` cancels the timer
    and writes right away. Writes for one tenant run under that tenant's lock
    so they are totally ordered; tenants never share a lock.
    """

    def __init__(
        self,
        repository: SessionRecordRepository,
        *,
        debounce_seconds: float = 1.0,
    ) -> None:
        self._repository = repository
        self._debounce_seconds = debounce_seconds

        self._pending: dict[int, PersistedSessionRecord] = {}
        self._timers: dict[int, asyncio.Task[None]] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

        # Latest known record per tenant: loaded at startup, replaced on save.
        self._latest: dict[int, PersistedSessionRecord] = {}

    @property
    def pending_tenants(self) -> set[int]:
        return set(self._pending)

    async def save(
        self, tenant_id: int, record: PersistedSessionRecord, *, immediate: bool = False
    ) -> bool:
        """Queue `record` as the tenant's next write.

        Returns True when a write happened during this call (immediate mode only).
        """
        self._latest[tenant_id] = record
        self._pending[tenant_id] = record
        self._cancel_timer(tenant_id)

        if immediate:
            return await self._write(tenant_id)

        self._timers[tenant_id] = asyncio.create_task(self._write_after_window(tenant_id))
        logger.debug(LogTemplates.STORE_SAVE_SCHEDULED, tenant_id, self._debounce_seconds)
        return False

    async def load_all(self) -> dict[int, PersistedSessionRecord]:
        records = await self._repository.load_all()
        self._latest.update(records)
        logger.info(LogTemplates.STORE_LOADED, len(records))
        return dict(records)

    async def remove(self, tenant_id: int) -> None:
        """Drop any pending write and delete the stored record. Idempotent."""
        self._cancel_timer(tenant_id)
        self._pending.pop(tenant_id, None)
        self._latest.pop(tenant_id, None)

        async with self._locks[tenant_id]:
            try:
                await self._repository.delete(tenant_id)
            except Exception as exc:
                error = PersistenceError(tenant_id, str(exc))
                logger.warning(LogTemplates.STORE_REMOVE_FAILED, tenant_id, error.message)

    def get_protected_cache_files(self) -> set[Path]:
        """Files referenced by any live or not-yet-restored session.

        Reads the in-memory snapshots only; never waits on a lock.
        """
        protected: set[Path] = set()
        for record in list(self._latest.values()):
            protected |= record.referenced_files()
        return protected

    async def flush(self, tenant_id: int) -> bool:
        """Write the tenant's pending snapshot now, if any."""
        self._cancel_timer(tenant_id)
        return await self._write(tenant_id)

    async def flush_all(self) -> None:
        tenants = list(self._pending)
        if not tenants:
            return
        logger.info(LogTemplates.STORE_FLUSH_ALL, len(tenants))
        await asyncio.gather(*(self.flush(t) for t in tenants))

    async def close(self) -> None:
        await self.flush_all()
        for tenant_id in list(self._timers):
            self._cancel_timer(tenant_id)

    def _cancel_timer(self, tenant_id: int) -> None:
        timer = self._timers.pop(tenant_id, None)
        if timer is not None and not timer.done():
            timer.cancel()

    async def _write_after_window(self, tenant_id: int) -> None:
        await asyncio.sleep(self._debounce_seconds)
        # From here on the write must not be cancelled by a newer save.
        if self._timers.get(tenant_id) is asyncio.current_task():
            del self._timers[tenant_id]
        await self._write(tenant_id)

    async def _write(self, tenant_id: int) -> bool:
        async with self._locks[tenant_id]:
            record = self._pending.pop(tenant_id, None)
            if record is None:
                return False
            try:
                await self._repository.save(tenant_id, record)
            except Exception as exc:
                # A newer snapshot may have arrived while writing; keep whichever is latest.
                self._pending.setdefault(tenant_id, record)
                error = PersistenceError(tenant_id, str(exc))
                logger.warning(LogTemplates.STORE_WRITE_FAILED, tenant_id, error.message)
                return False

        logger.debug(LogTemplates.STORE_WRITTEN, tenant_id, record.status.value, len(record.queue))
        return True
