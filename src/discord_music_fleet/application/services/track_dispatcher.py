"""Platform detection and the registry of resolver variants."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from ...domain.music.value_objects import Platform
from ...domain.shared.constants import AudioConstants
from ...domain.shared.exceptions import ResolutionError
from ...domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from ...domain.music.entities import Track
    from ..interfaces.track_resolver import PlaylistExpansion, TrackResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_PLATFORM_HOSTS: tuple[tuple[re.Pattern[str], Platform], ...] = (
    (re.compile(r"(^|\.)(youtube\.com|youtu\.be)$"), Platform.YOUTUBE),
    (re.compile(r"(^|\.)spotify\.com$"), Platform.SPOTIFY),
    (re.compile(r"(^|\.)soundcloud\.com$"), Platform.SOUNDCLOUD),
)
_HOST_PATTERN = re.compile(r"^https?://([^/:?#]+)", re.IGNORECASE)


def is_url(query: str) -> bool:
    return bool(_URL_PATTERN.match(query.strip()))


def detect_platform(query: str) -> Platform:
    """Classify a query by URL pattern.

    Plain text and unrecognised links are UNKNOWN, which the dispatcher
    sends to the default search provider.
    """
    text = query.strip()
    host_match = _HOST_PATTERN.match(text)
    if host_match is None:
        return Platform.UNKNOWN

    host = host_match.group(1).lower()
    for pattern, platform in _PLATFORM_HOSTS:
        if pattern.search(host):
            return platform

    path = text.split("?", 1)[0].split("#", 1)[0].lower()
    if path.endswith(AudioConstants.DIRECT_AUDIO_SUFFIXES):
        return Platform.DIRECT
    return Platform.UNKNOWN


@dataclass(frozen=True)
class ResolvedQuery:
    tracks: list[Track] = field(default_factory=list)
    is_playlist: bool = False


class TrackDispatcher:
    """Routes queries and stream lookups to the variant registered for a platform.

    Adding a platform means registering another `TrackResolver`; UNKNOWN
    always goes to the default platform's variant.
    """

    def __init__(
        self,
        resolvers: Iterable[TrackResolver] = (),
        *,
        default_platform: Platform = Platform.YOUTUBE,
    ) -> None:
        self._variants: dict[Platform, TrackResolver] = {}
        self._default_platform = default_platform
        for resolver in resolvers:
            self.register(resolver)

    def register(self, resolver: TrackResolver) -> None:
        for platform in resolver.platforms:
            self._variants[platform] = resolver

    @property
    def platforms(self) -> set[Platform]:
        return set(self._variants)

    def detect_platform(self, query: str) -> Platform:
        return detect_platform(query)

    def variant_for(self, platform: Platform) -> TrackResolver:
        if platform == Platform.UNKNOWN:
            platform = self._default_platform
        variant = self._variants.get(platform)
        if variant is None:
            message = ErrorMessages.NO_RESOLVER_FOR_PLATFORM.format(platform=platform.value)
            raise ResolutionError.provider_failure(platform.value, message)
        return variant

    async def search(
        self, query: str, limit: int, tenant_id: int, *, platform: Platform | None = None
    ) -> list[Track]:
        variant = self.variant_for(platform or self.detect_platform(query))
        return await self._guard(variant, variant.search(query, limit, tenant_id))

    async def get_playlist(self, url: str, tenant_id: int) -> PlaylistExpansion | None:
        variant = self.variant_for(self.detect_platform(url))
        if not variant.is_playlist_url(url):
            return None
        return await self._guard(variant, variant.get_playlist(url, tenant_id))

    async def resolve_query(self, query: str, tenant_id: int, *, limit: int = 1) -> ResolvedQuery:
        """Turn user input into tracks.

        Playlists keep their source order; a playlist that yields nothing
        falls back to a plain search with the same text.

        Raises:
            ResolutionError: NO_RESULTS or PROVIDER_FAILURE.
        """
        query = query.strip()
        platform = self.detect_platform(query)
        logger.debug(LogTemplates.DISPATCH_RESOLVING, query, platform.value)

        if is_url(query):
            expansion = await self.get_playlist(query, tenant_id)
            if expansion is not None:
                if expansion.tracks:
                    return ResolvedQuery(list(expansion.tracks), is_playlist=True)
                logger.info(LogTemplates.DISPATCH_PLAYLIST_EMPTY, query)
                platform = self._default_platform

        tracks = await self.search(query, limit, tenant_id, platform=platform)
        if not tracks:
            raise ResolutionError.no_results(query)
        return ResolvedQuery(tracks[:limit], is_playlist=False)

    async def resolve_stream(self, track: Track) -> Track:
        """Return `track` with a playable stream locator.

        A locator that points at an existing cached file is reused as is.
        """
        path = track.local_path
        if path is not None and path.is_file():
            logger.debug(LogTemplates.DISPATCH_CACHED_STREAM, track.title, path)
            return track
        variant = self.variant_for(track.source_platform)
        return await self._guard(variant, variant.resolve_stream(track))

    @staticmethod
    async def _guard(variant: TrackResolver, call: Awaitable[T]) -> T:
        try:
            return await call
        except ResolutionError:
            raise
        except Exception as exc:
            raise ResolutionError.provider_failure(type(variant).__name__, exc) from exc
