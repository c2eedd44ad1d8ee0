"""Annotated pydantic types shared by domain models, settings and DTOs."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BeforeValidator, Field

from discord_music_fleet.domain.shared.messages import ErrorMessages

# Discord ids
DiscordSnowflake = Annotated[int, Field(gt=0, lt=2**64)]
TenantIdField = DiscordSnowflake
ChannelIdField = DiscordSnowflake

# Numbers
NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveInt = Annotated[int, Field(gt=0)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]

DurationSeconds = Annotated[int, Field(ge=0, le=86_400)]
"""Up to 24 hours; longer live streams report no duration."""

PositionMs = Annotated[int, Field(ge=0)]

# Strings
NonEmptyStr = Annotated[str, Field(min_length=1)]
TrackTitleStr = Annotated[str, Field(min_length=1, max_length=500)]
HttpUrlStr = Annotated[str, Field(pattern=r"^https?://")]

BotSlugStr = Annotated[str, Field(min_length=1, max_length=32, pattern=r"^[a-z0-9_-]+$")]
"""Used in database and cache file names, so kept path-safe."""


def _as_utc(value: Any) -> Any:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise ValueError(ErrorMessages.TIMEZONE_REQUIRED_UTC_DATETIME)
        return value.astimezone(UTC)
    return value


UtcDatetimeField = Annotated[datetime, BeforeValidator(_as_utc)]
