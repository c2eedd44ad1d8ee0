"""
Music Domain Repository Interfaces

Abstract base classes defining the contracts for data persistence.
Implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod

from discord_music_fleet.domain.music.entities import PersistedSessionRecord


class SessionRecordRepository(ABC):
    """Durable key-value store of one PersistedSessionRecord per tenant.

    Implementations must replace records atomically so that a reader never
    observes a half-written record.
    """

    @abstractmethod
    async def save(self, tenant_id: int, record: PersistedSessionRecord) -> None:
        """Insert or replace the record for a tenant.

        Args:
            tenant_id: The Discord guild ID.
            record: The complete snapshot to store.
        """
        ...

    @abstractmethod
    async def load_all(self) -> dict[int, PersistedSessionRecord]:
        """Load every readable record.

        Records that fail to parse are skipped, not raised.

        Returns:
            Mapping of tenant ID to record.
        """
        ...

    @abstractmethod
    async def delete(self, tenant_id: int) -> bool:
        """Delete a tenant's record.

        Args:
            tenant_id: The Discord guild ID.

        Returns:
            True if a record was deleted, False if none existed.
        """
        ...
