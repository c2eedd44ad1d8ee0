"""TrackResolver variant backed by yt-dlp (YouTube and SoundCloud)."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Final, cast

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from discord_music_fleet.application.interfaces.track_resolver import (
    PlaylistExpansion,
    TrackResolver,
)
from discord_music_fleet.config.settings import AudioSettings
from discord_music_fleet.domain.music.entities import Track
from discord_music_fleet.domain.music.value_objects import Platform, TrackId
from discord_music_fleet.domain.shared.exceptions import ResolutionError
from discord_music_fleet.domain.shared.messages import ErrorMessages, LogTemplates
from discord_music_fleet.infrastructure.audio.models import (
    CACHE_MAX_SIZE,
    CACHE_TTL,
    LOG_URL_TRUNCATE,
    AudioFormatInfo,
    CacheEntry,
    YtDlpOpts,
    YtDlpTrackInfo,
)

logger = logging.getLogger(__name__)

SEARCH_PREFIXES: Final[dict[Platform, str]] = {
    Platform.YOUTUBE: "ytsearch",
    Platform.SOUNDCLOUD: "scsearch",
}

URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^https?://", re.IGNORECASE)

PLAYLIST_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"[?&]list="),
    re.compile(r"/playlist\?"),
    re.compile(r"/sets/"),
]

YOUTUBE_WATCH_URL: Final[str] = "https://www.youtube.com/watch?v={video_id}"

_YTDLP_ERRORS = (DownloadError, ExtractorError)


class YtDlpResolver(TrackResolver):
    """One instance serves one platform; register a YouTube and a SoundCloud one.

    Blocking yt-dlp calls run in worker threads. Library errors become
    PROVIDER_FAILURE; an extraction that simply finds nothing returns empty.
    """

    def __init__(
        self,
        settings: AudioSettings | None = None,
        *,
        platform: Platform = Platform.YOUTUBE,
    ) -> None:
        if platform not in SEARCH_PREFIXES:
            message = ErrorMessages.NO_RESOLVER_FOR_PLATFORM.format(platform=platform.value)
            raise ValueError(message)
        self._settings = settings or AudioSettings()
        self._platform = platform
        self.platforms = (platform,)
        self._search_prefix = SEARCH_PREFIXES[platform]
        self._base_opts = YtDlpOpts(
            format=self._settings.ytdlp_format,
            default_search=self._search_prefix,
        )
        self._info_cache: dict[str, CacheEntry] = {}

    @property
    def platform(self) -> Platform:
        return self._platform

    def _get_opts(self, **overrides: Any) -> YtDlpOpts:
        if overrides:
            return self._base_opts.model_copy(update=overrides)
        return self._base_opts

    def _get_playlist_opts(self) -> YtDlpOpts:
        return self._get_opts(noplaylist=False, extract_flat="in_playlist")

    # ── Conversion ─────────────────────────────────────────────────────

    def _info_to_track(self, info: YtDlpTrackInfo, *, with_stream: bool) -> Track | None:
        url = self._extract_webpage_url(info)
        if not url:
            logger.warning(LogTemplates.YTDLP_NO_URL_IN_INFO_DICT)
            return None

        stream_url = self._extract_stream_url(info) if with_stream else None
        try:
            return Track(
                id=TrackId.from_url(url),
                source_platform=self._platform,
                url=url,
                title=info.title[:500],
                duration_seconds=info.duration,
                thumbnail_url=info.thumbnail,
                stream_locator=stream_url,
            )
        except ValueError:
            logger.exception(LogTemplates.YTDLP_FAILED_INFO_TO_TRACK)
            return None

    def _extract_webpage_url(self, info: YtDlpTrackInfo) -> str | None:
        if info.webpage_url:
            return info.webpage_url
        if info.url and URL_PATTERN.match(info.url):
            return info.url
        # Flat YouTube playlist entries may carry only the video id.
        if info.id and self._platform == Platform.YOUTUBE:
            return YOUTUBE_WATCH_URL.format(video_id=info.id)
        return None

    def _extract_stream_url(self, info: YtDlpTrackInfo) -> str | None:
        if info.url and info.url != info.webpage_url:
            return info.url
        return self._extract_stream_from_formats(info.formats)

    @staticmethod
    def _extract_stream_from_formats(formats: list[AudioFormatInfo]) -> str | None:
        if not formats:
            return None
        audio_formats = [f for f in formats if f.acodec != "none" and f.url]
        if audio_formats:
            return audio_formats[-1].url
        return None

    @staticmethod
    def _parse_info(data: dict[str, Any]) -> YtDlpTrackInfo:
        """Parse a raw yt-dlp info dict into a typed model."""
        return YtDlpTrackInfo.model_validate(data)

    # ── Blocking yt-dlp calls (worker threads) ─────────────────────────

    def _remember(self, url: str, info: YtDlpTrackInfo | None, now: float) -> None:
        self._info_cache[url] = CacheEntry(info=info, cached_at=now)
        if len(self._info_cache) > CACHE_MAX_SIZE:
            expired = [
                k for k, entry in self._info_cache.items() if now - entry.cached_at >= CACHE_TTL
            ]
            for k in expired:
                self._info_cache.pop(k, None)

    def _extract_info_sync(self, url: str) -> YtDlpTrackInfo | None:
        now = time.time()
        cached = self._info_cache.get(url)
        if cached is not None:
            if now - cached.cached_at < CACHE_TTL and cached.info is not None:
                return cached.info
            self._info_cache.pop(url, None)

        with YoutubeDL(params=cast(Any, self._get_opts().model_dump())) as ydl:
            data = ydl.extract_info(url, download=False)

        result = self._parse_info(dict(data)) if isinstance(data, dict) else None
        self._remember(url, result, now)
        return result

    def _search_sync(self, query: str, limit: int) -> list[YtDlpTrackInfo]:
        search_query = f"{self._search_prefix}{limit}:{query}"
        with YoutubeDL(params=cast(Any, self._get_opts().model_dump())) as ydl:
            data = ydl.extract_info(search_query, download=False)

        if not isinstance(data, dict):
            return []
        entries = data.get("entries") or []
        if not isinstance(entries, list):
            return []

        now = time.time()
        results = [self._parse_info(dict(e)) for e in entries if isinstance(e, dict)]
        for info in results:
            if info.webpage_url:
                self._remember(info.webpage_url, info, now)
        return results

    def _extract_playlist_sync(self, url: str) -> list[YtDlpTrackInfo]:
        with YoutubeDL(params=cast(Any, self._get_playlist_opts().model_dump())) as ydl:
            data = ydl.extract_info(url, download=False)

        if not isinstance(data, dict):
            return []
        entries = data.get("entries") or []
        if not isinstance(entries, list):
            return []
        return [self._parse_info(dict(e)) for e in entries if isinstance(e, dict)]

    # ── TrackResolver ──────────────────────────────────────────────────

    async def search(self, query: str, limit: int, tenant_id: int) -> list[Track]:
        """Search by text, or look up a single item when `query` is a URL."""
        try:
            if URL_PATTERN.match(query):
                info = await asyncio.to_thread(self._extract_info_sync, query)
                results = [info] if info is not None else []
            else:
                results = await asyncio.to_thread(self._search_sync, query, limit)
        except _YTDLP_ERRORS as exc:
            logger.warning(LogTemplates.YTDLP_FAILED_SEARCH, query[:LOG_URL_TRUNCATE])
            raise ResolutionError.provider_failure(self._platform.value, exc) from exc

        tracks: list[Track] = []
        for info in results:
            track = self._info_to_track(info, with_stream=True)
            if track is not None:
                tracks.append(track)
        return tracks[:limit]

    async def get_playlist(self, url: str, tenant_id: int) -> PlaylistExpansion | None:
        if not self.is_playlist_url(url):
            return None
        try:
            entries = await asyncio.to_thread(self._extract_playlist_sync, url)
        except _YTDLP_ERRORS as exc:
            logger.warning(LogTemplates.YTDLP_FAILED_EXTRACT_PLAYLIST, url[:LOG_URL_TRUNCATE])
            raise ResolutionError.provider_failure(self._platform.value, exc) from exc

        # Flat entries carry metadata only; streams are resolved at play time.
        tracks = [
            track
            for entry in entries
            if (track := self._info_to_track(entry, with_stream=False)) is not None
        ]
        return PlaylistExpansion(tracks=tracks)

    async def resolve_stream(self, track: Track) -> Track:
        try:
            info = await asyncio.to_thread(self._extract_info_sync, track.url)
        except _YTDLP_ERRORS as exc:
            logger.warning(LogTemplates.YTDLP_FAILED_EXTRACT_INFO, track.url[:LOG_URL_TRUNCATE])
            raise ResolutionError.provider_failure(self._platform.value, exc) from exc

        stream_url = self._extract_stream_url(info) if info is not None else None
        if not stream_url:
            raise ResolutionError.provider_failure(
                self._platform.value,
                ErrorMessages.NO_STREAM_URL_FOR_TRACK.format(title=track.title),
            )
        return track.with_stream(stream_url)

    def is_playlist_url(self, url: str) -> bool:
        return any(pattern.search(url) for pattern in PLAYLIST_PATTERNS)
