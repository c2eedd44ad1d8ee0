"""Pydantic models for external media payloads and resolver configuration.

These are infrastructure-specific models for parsing yt-dlp info dicts and
Spotify Web API responses, caching extraction results, and configuring
yt-dlp options.
"""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from discord_music_fleet.domain.shared.types import (
    HttpUrlStr,
    NonEmptyStr,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveInt,
)

CACHE_TTL: Final[int] = 3600
CACHE_MAX_SIZE: Final[int] = 500
DEFAULT_RETRIES: Final[int] = 3
DEFAULT_SOCKET_TIMEOUT: Final[int] = 10
DEFAULT_HTTP_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB
LOG_URL_TRUNCATE: Final[int] = 60
UNKNOWN_TITLE: Final[str] = "Unknown Title"


def _non_negative_int_or_none(v: Any) -> int | None:
    if v is None:
        return None
    try:
        val = int(v)
    except (TypeError, ValueError):
        return None
    return val if val >= 0 else None


# ── Pydantic models for yt-dlp data ────────────────────────────────────


class AudioFormatInfo(BaseModel):
    """A single audio format entry from yt-dlp extraction."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: NonEmptyStr | None = None
    acodec: NonEmptyStr | None = None


class YtDlpTrackInfo(BaseModel):
    """Trimmed yt-dlp extraction result for caching and track conversion.

    Extra fields from yt-dlp are silently ignored, keeping memory usage low.
    Before-validators coerce garbage from external yt-dlp data gracefully.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: NonEmptyStr | None = None
    webpage_url: HttpUrlStr | None = None
    url: NonEmptyStr | None = None
    title: NonEmptyStr = UNKNOWN_TITLE
    duration: NonNegativeInt | None = None
    thumbnail: HttpUrlStr | None = None
    formats: list[AudioFormatInfo] = Field(default_factory=list)

    @field_validator("id", "webpage_url", "url", "thumbnail", mode="before")
    @classmethod
    def _coerce_empty_to_none(cls, v: Any) -> str | None:
        """Convert empty / whitespace-only / non-string values to None."""
        if not isinstance(v, str) or not v.strip():
            return None
        return v

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, v: Any) -> str:
        """Fall back to default when yt-dlp sends empty or non-string title."""
        if not isinstance(v, str) or not v.strip():
            return UNKNOWN_TITLE
        return v

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, v: Any) -> int | None:
        """Coerce to non-negative int; return None for garbage values."""
        return _non_negative_int_or_none(v)


class CacheEntry(BaseModel):
    """Cached yt-dlp extraction result with expiry timestamp."""

    model_config = ConfigDict(frozen=True)

    info: YtDlpTrackInfo | None = None
    cached_at: NonNegativeFloat


# ── yt-dlp option models ───────────────────────────────────────────────


class YtDlpOpts(BaseModel):
    """Typed yt-dlp configuration options passed to YoutubeDL."""

    model_config = ConfigDict(frozen=True)

    quiet: bool = True
    noprogress: bool = True
    noplaylist: bool = True
    default_search: NonEmptyStr = "ytsearch"
    forceipv4: bool = True
    retries: PositiveInt = DEFAULT_RETRIES
    socket_timeout: PositiveInt = DEFAULT_SOCKET_TIMEOUT
    http_chunk_size: PositiveInt = DEFAULT_HTTP_CHUNK_SIZE
    format: NonEmptyStr | None = None
    skip_download: bool = True
    extract_flat: NonEmptyStr | bool = False


# ── Spotify Web API payloads ───────────────────────────────────────────


class SpotifyToken(BaseModel):
    """Client-credentials token response."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: NonEmptyStr
    expires_in: PositiveInt = 3600


class SpotifyArtist(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: NonEmptyStr


class SpotifyImage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    url: HttpUrlStr


class SpotifyAlbum(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    images: list[SpotifyImage] = Field(default_factory=list)


class SpotifyTrackInfo(BaseModel):
    """The subset of a Spotify track object used to find a playable match."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: NonEmptyStr
    name: NonEmptyStr
    duration_ms: NonNegativeInt | None = None
    artists: list[SpotifyArtist] = Field(default_factory=list)
    album: SpotifyAlbum | None = None
    external_urls: dict[str, str] = Field(default_factory=dict)

    @field_validator("duration_ms", mode="before")
    @classmethod
    def _coerce_duration(cls, v: Any) -> int | None:
        return _non_negative_int_or_none(v)

    @property
    def artist_names(self) -> str:
        return ", ".join(a.name for a in self.artists)

    @property
    def display_title(self) -> str:
        if self.artists:
            return f"{self.name} - {self.artist_names}"
        return self.name

    @property
    def thumbnail_url(self) -> str | None:
        if self.album and self.album.images:
            return self.album.images[0].url
        return None

    @property
    def duration_seconds(self) -> int | None:
        if self.duration_ms is None:
            return None
        return self.duration_ms // 1000


class SpotifyPage(BaseModel):
    """One page of a Spotify paging object (playlist items or album tracks)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    items: list[dict[str, Any]] = Field(default_factory=list)
    next: HttpUrlStr | None = None
