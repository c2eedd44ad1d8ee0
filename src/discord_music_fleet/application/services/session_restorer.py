"""Startup reconstruction of engines from persisted session records."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ...domain.shared.exceptions import RestoreError, VoiceConnectionError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ..interfaces.tenant_gateway import ChannelInfo, ChannelKind

if TYPE_CHECKING:
    from ...domain.music.entities import PersistedSessionRecord
    from ..interfaces.tenant_gateway import TenantGateway
    from ..interfaces.voice_transport import VoiceConnection, VoiceTransport
    from .connection_supervisor import ConnectionSupervisor
    from .playback_engine import PlaybackEngine
    from .retry import BoundedRetry
    from .session_registry import SessionRegistry
    from .state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class RestoreReport:
    restored: list[int] = field(default_factory=list)
    discarded: list[int] = field(default_factory=list)


class SessionRestorer:
    """Runs once after the gateway is ready.

    Every tenant is handled independently: a failure is logged, whatever was
    built for that tenant is torn down, its record is removed, and the other
    tenants carry on.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        registry: SessionRegistry,
        gateway: TenantGateway,
        transport: VoiceTransport,
        lookup_retry: BoundedRetry,
        supervisor: ConnectionSupervisor | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._gateway = gateway
        self._transport = transport
        self._lookup_retry = lookup_retry
        self._supervisor = supervisor

    async def restore_all(self) -> RestoreReport:
        report = RestoreReport()
        records = await self._store.load_all()
        if not records:
            logger.info(LogTemplates.RESTORE_NOTHING)
            return report

        logger.info(LogTemplates.RESTORE_STARTED, len(records))
        tenants = list(records)
        outcomes = await asyncio.gather(*(self._restore_one(t, records[t]) for t in tenants))
        for tenant_id, ok in zip(tenants, outcomes, strict=True):
            (report.restored if ok else report.discarded).append(tenant_id)

        logger.info(LogTemplates.RESTORE_SUMMARY, len(report.restored), len(report.discarded))
        return report

    async def _restore_one(self, tenant_id: int, record: PersistedSessionRecord) -> bool:
        try:
            await self._restore_tenant(tenant_id, record)
        except RestoreError as exc:
            logger.warning(LogTemplates.RESTORE_TENANT_FAILED, tenant_id, exc.message)
        except Exception:
            logger.exception(LogTemplates.RESTORE_TENANT_CRASHED, tenant_id)
        else:
            logger.info(LogTemplates.RESTORE_TENANT_OK, tenant_id)
            return True

        await self._store.remove(tenant_id)
        return False

    async def _restore_tenant(self, tenant_id: int, record: PersistedSessionRecord) -> None:
        if self._registry.get(tenant_id) is not None:
            # A live session was started before restore reached this tenant.
            return

        if not await self._lookup_retry.run(
            lambda: self._tenant_visible(tenant_id),
            label=f"lookup tenant {tenant_id}",
            retry_on_none=True,
        ):
            raise RestoreError(
                tenant_id, ErrorMessages.RESTORE_GUILD_MISSING.format(tenant_id=tenant_id)
            )

        voice = await self._lookup_channel(tenant_id, record.voice_channel_id)
        if voice is None or voice.kind != ChannelKind.VOICE:
            raise RestoreError(
                tenant_id,
                ErrorMessages.RESTORE_VOICE_CHANNEL_INVALID.format(
                    channel_id=record.voice_channel_id
                ),
            )

        if record.text_channel_id is not None:
            text = await self._lookup_channel(tenant_id, record.text_channel_id)
            if text is None or text.kind != ChannelKind.TEXT:
                raise RestoreError(
                    tenant_id,
                    ErrorMessages.RESTORE_TEXT_CHANNEL_INVALID.format(
                        channel_id=record.text_channel_id
                    ),
                )

        try:
            connection = await self._transport.join(voice.id, tenant_id)
        except VoiceConnectionError as exc:
            raise RestoreError(tenant_id, exc.message) from exc

        if self._registry.get(tenant_id) is not None:
            return

        engine = self._registry.create(
            tenant_id,
            voice_channel_id=voice.id,
            text_channel_id=record.text_channel_id,
        )
        try:
            if self._supervisor is not None:
                self._supervisor.assign(tenant_id, voice.id)
            await engine.restore(record)
        except BaseException:
            await self._teardown(engine, connection)
            raise

    async def _tenant_visible(self, tenant_id: int) -> bool | None:
        return True if await self._gateway.has_tenant(tenant_id) else None

    async def _lookup_channel(self, tenant_id: int, channel_id: int) -> ChannelInfo | None:
        return await self._lookup_retry.run(
            lambda: self._gateway.get_channel(tenant_id, channel_id),
            label=f"lookup channel {channel_id}",
            retry_on_none=True,
        )

    async def _teardown(self, engine: PlaybackEngine, connection: VoiceConnection) -> None:
        self._registry.unregister(engine)
        await engine.close()
        try:
            await connection.destroy()
        except Exception:
            logger.exception(LogTemplates.RESTORE_TENANT_CRASHED, engine.tenant_id)
