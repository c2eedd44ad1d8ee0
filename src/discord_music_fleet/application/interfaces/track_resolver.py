"""Port interface for turning queries and URLs into playable tracks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from discord_music_fleet.domain.shared.types import HttpUrlStr, NonEmptyStr, PositiveInt

if TYPE_CHECKING:
    from ...domain.music.entities import Track
    from ...domain.music.value_objects import Platform


@dataclass(frozen=True)
class PlaylistExpansion:
    """Tracks of a playlist in source order."""

    tracks: list[Track] = field(default_factory=list)
    is_playlist: bool = True


class TrackResolver(ABC):
    """One resolver variant, registered for one or more platforms.

    Failures are reported as ``ResolutionError``: ``NO_RESULTS`` when the
    provider answered but had nothing, ``PROVIDER_FAILURE`` when it could not
    answer.
    """

    # Platforms this variant serves; may be narrowed per instance.
    platforms: tuple[Platform, ...] = ()

    @abstractmethod
    async def search(
        self, query: NonEmptyStr, limit: PositiveInt, tenant_id: int
    ) -> list[Track]:
        """Search for tracks matching a query (or a single-item URL)."""
        ...

    @abstractmethod
    async def get_playlist(self, url: HttpUrlStr, tenant_id: int) -> PlaylistExpansion | None:
        """Expand a playlist URL; None when the URL is not a playlist."""
        ...

    @abstractmethod
    async def resolve_stream(self, track: Track) -> Track:
        """Return a copy of `track` whose stream_locator the transport can play."""
        ...

    def is_playlist_url(self, url: str) -> bool:
        return False
