"""TrackResolver variant for plain audio file links (.mp3, .wav, .ogg).

The file is downloaded into the bot's media cache as `<track_id><suffix>` and
the local path becomes the stream locator, which is what the CacheJanitor
protects for live and persisted sessions.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath
from typing import Final
from urllib.parse import unquote, urlsplit

import httpx

from discord_music_fleet.application.interfaces.track_resolver import (
    PlaylistExpansion,
    TrackResolver,
)
from discord_music_fleet.domain.music.entities import Track
from discord_music_fleet.domain.music.value_objects import Platform, TrackId
from discord_music_fleet.domain.shared.constants import AudioConstants
from discord_music_fleet.domain.shared.exceptions import ResolutionError
from discord_music_fleet.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX: Final[str] = AudioConstants.PARTIAL_SUFFIX


def cache_suffix_for(url: str) -> str:
    suffix = PurePosixPath(urlsplit(url).path).suffix.lower()
    if suffix in AudioConstants.DIRECT_AUDIO_SUFFIXES:
        return suffix
    return AudioConstants.DEFAULT_CACHE_SUFFIX


def title_for(url: str) -> str:
    name = PurePosixPath(unquote(urlsplit(url).path)).name
    return name or url


class DirectLinkResolver(TrackResolver):
    platforms = (Platform.DIRECT,)

    def __init__(
        self,
        cache_dir: Path,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._cache_dir = cache_dir
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def cache_path(self, track: Track) -> Path:
        return self._cache_dir / f"{track.id}{cache_suffix_for(track.url)}"

    async def search(self, query: str, limit: int, tenant_id: int) -> list[Track]:
        if not query.lower().startswith(("http://", "https://")):
            return []
        return [
            Track(
                id=TrackId.from_url(query),
                source_platform=Platform.DIRECT,
                url=query,
                title=title_for(query)[:500],
            )
        ]

    async def get_playlist(self, url: str, tenant_id: int) -> PlaylistExpansion | None:
        return None

    async def resolve_stream(self, track: Track) -> Track:
        target = self.cache_path(track)
        if await asyncio.to_thread(target.is_file):
            return track.with_stream(str(target.resolve()))

        await asyncio.to_thread(self._cache_dir.mkdir, parents=True, exist_ok=True)
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        try:
            size = await self._download(track.url, partial)
            await asyncio.to_thread(partial.replace, target)
        except (httpx.HTTPError, OSError) as exc:
            logger.warning(LogTemplates.DIRECT_DOWNLOAD_FAILED, track.url, exc)
            await asyncio.to_thread(partial.unlink, missing_ok=True)
            raise ResolutionError.provider_failure(Platform.DIRECT.value, exc) from exc

        logger.info(LogTemplates.DIRECT_DOWNLOADED, track.url, target, size)
        return track.with_stream(str(target.resolve()))

    async def _download(self, url: str, destination: Path) -> int:
        size = 0
        async with self._client.stream("GET", url) as response:
            response.raise_for_status()
            fh = await asyncio.to_thread(destination.open, "wb")
            try:
                async for chunk in response.aiter_bytes():
                    await asyncio.to_thread(fh.write, chunk)
                    size += len(chunk)
            finally:
                await asyncio.to_thread(fh.close)
        return size
