"""UTC datetime helpers shared by persisted records and events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from ...domain.shared.messages import ErrorMessages


@dataclass(frozen=True, slots=True)
class UtcDateTime:
    """Timezone-aware datetime normalized to UTC; naive values are rejected."""

    dt: datetime

    def __post_init__(self) -> None:
        if self.dt.tzinfo is None:
            raise ValueError(ErrorMessages.TIMEZONE_REQUIRED_UTC_DATETIME)
        object.__setattr__(self, "dt", self.dt.astimezone(UTC))

    @property
    def iso(self) -> str:
        """ISO8601 with an explicit +00:00 offset, as stored in `updated_at`."""
        return self.dt.isoformat()


def utcnow() -> datetime:
    return datetime.now(UTC)
