"""TrackResolver variant for Spotify links.

Spotify only supplies metadata; the playable stream is found by searching the
stream provider (the YouTube variant) with the track's title.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from typing import Any, Final

import httpx
from pydantic import ValidationError as PydanticValidationError

from discord_music_fleet.application.interfaces.track_resolver import (
    PlaylistExpansion,
    TrackResolver,
)
from discord_music_fleet.config.settings import SpotifySettings
from discord_music_fleet.domain.music.entities import Track
from discord_music_fleet.domain.music.value_objects import Platform, TrackId
from discord_music_fleet.domain.shared.exceptions import ResolutionError
from discord_music_fleet.domain.shared.messages import ErrorMessages, LogTemplates
from discord_music_fleet.infrastructure.audio.models import (
    SpotifyPage,
    SpotifyToken,
    SpotifyTrackInfo,
)

logger = logging.getLogger(__name__)

SPOTIFY_URL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^https?://open\.spotify\.com/(?:intl-[a-z-]+/)?(track|album|playlist)/([A-Za-z0-9]+)",
    re.IGNORECASE,
)
TRACK_URL: Final[str] = "https://open.spotify.com/track/{track_id}"
TOKEN_EXPIRY_MARGIN: Final[int] = 60
DEFAULT_MAX_TRACKS: Final[int] = 200
PAGE_SIZE: Final[int] = 100


def parse_spotify_url(url: str) -> tuple[str, str] | None:
    """Return (kind, id) for a track/album/playlist link, else None."""
    match = SPOTIFY_URL_PATTERN.match(url.strip())
    if match is None:
        return None
    return match.group(1).lower(), match.group(2)


class SpotifyResolver(TrackResolver):
    """Metadata from the Spotify Web API, audio from the stream resolver."""

    platforms = (Platform.SPOTIFY,)

    def __init__(
        self,
        settings: SpotifySettings,
        stream_resolver: TrackResolver,
        *,
        client: httpx.AsyncClient | None = None,
        max_tracks: int = DEFAULT_MAX_TRACKS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._stream_resolver = stream_resolver
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_s)
        self._max_tracks = max_tracks
        self._clock = clock

        self._token: str | None = None
        self._token_expires_at = 0.0

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── Web API ────────────────────────────────────────────────────────

    async def _access_token(self) -> str:
        if not self._settings.is_configured:
            raise ResolutionError.provider_failure(
                Platform.SPOTIFY.value, ErrorMessages.SPOTIFY_NOT_CONFIGURED
            )
        if self._token is not None and self._clock() < self._token_expires_at:
            return self._token

        response = await self._client.post(
            self._settings.token_url,
            data={"grant_type": "client_credentials"},
            auth=(self._settings.client_id, self._settings.client_secret.get_secret_value()),
        )
        response.raise_for_status()
        token = SpotifyToken.model_validate(response.json())

        self._token = token.access_token
        self._token_expires_at = self._clock() + max(token.expires_in - TOKEN_EXPIRY_MARGIN, 0)
        logger.debug(LogTemplates.SPOTIFY_TOKEN_REFRESHED, token.expires_in)
        return self._token

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """GET a Web API resource; None when Spotify answers 404.

        Raises:
            ResolutionError: PROVIDER_FAILURE for transport/auth/server errors.
        """
        if not url.startswith("http"):
            url = f"{self._settings.api_base_url}{url}"
        try:
            token = await self._access_token()
            response = await self._client.get(
                url, params=params, headers={"Authorization": f"Bearer {token}"}
            )
            if response.status_code == httpx.codes.NOT_FOUND:
                return None
            response.raise_for_status()
            return response.json()
        except ResolutionError:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(LogTemplates.SPOTIFY_REQUEST_FAILED, url, exc)
            raise ResolutionError.provider_failure(Platform.SPOTIFY.value, exc) from exc

    # ── Conversion ─────────────────────────────────────────────────────

    @staticmethod
    def _to_track(info: SpotifyTrackInfo) -> Track:
        return Track(
            id=TrackId(info.id),
            source_platform=Platform.SPOTIFY,
            url=info.external_urls.get("spotify") or TRACK_URL.format(track_id=info.id),
            title=info.display_title[:500],
            duration_seconds=info.duration_seconds,
            thumbnail_url=info.thumbnail_url,
        )

    @staticmethod
    def _parse_track(data: dict[str, Any] | None) -> SpotifyTrackInfo | None:
        if not data:
            return None
        try:
            return SpotifyTrackInfo.model_validate(data)
        except PydanticValidationError:
            # Local files and removed tracks come back without an id.
            return None

    # ── TrackResolver ──────────────────────────────────────────────────

    async def search(self, query: str, limit: int, tenant_id: int) -> list[Track]:
        parsed = parse_spotify_url(query)
        if parsed is not None:
            kind, item_id = parsed
            if kind != "track":
                raise ResolutionError.provider_failure(
                    Platform.SPOTIFY.value,
                    ErrorMessages.UNSUPPORTED_SPOTIFY_URL.format(url=query),
                )
            info = self._parse_track(await self._get(f"/tracks/{item_id}"))
            return [self._to_track(info)] if info is not None else []

        data = await self._get("/search", params={"q": query, "type": "track", "limit": limit})
        items = ((data or {}).get("tracks") or {}).get("items") or []
        infos = [info for raw in items if (info := self._parse_track(raw)) is not None]
        return [self._to_track(info) for info in infos[:limit]]

    async def get_playlist(self, url: str, tenant_id: int) -> PlaylistExpansion | None:
        parsed = parse_spotify_url(url)
        if parsed is None or parsed[0] == "track":
            return None
        kind, item_id = parsed

        next_url: str | None = f"/{kind}s/{item_id}/tracks"
        params: dict[str, Any] | None = {"limit": PAGE_SIZE}
        tracks: list[Track] = []
        while next_url and len(tracks) < self._max_tracks:
            data = await self._get(next_url, params=params)
            if data is None:
                break
            page = SpotifyPage.model_validate(data)
            for raw in page.items:
                info = self._parse_track(raw.get("track") if kind == "playlist" else raw)
                if info is not None:
                    tracks.append(self._to_track(info))
            # `next` already carries the paging query string.
            next_url, params = page.next, None

        return PlaylistExpansion(tracks=tracks[: self._max_tracks])

    async def resolve_stream(self, track: Track) -> Track:
        matches = await self._stream_resolver.search(track.title, 1, 0)
        if not matches:
            logger.info(LogTemplates.SPOTIFY_NO_MATCH, track.title)
            raise ResolutionError.no_results(track.title)

        match = matches[0]
        if not match.stream_locator:
            match = await self._stream_resolver.resolve_stream(match)
        if not match.stream_locator:
            raise ResolutionError.provider_failure(
                Platform.SPOTIFY.value,
                ErrorMessages.NO_STREAM_URL_FOR_TRACK.format(title=track.title),
            )
        return track.with_stream(match.stream_locator)

    def is_playlist_url(self, url: str) -> bool:
        parsed = parse_spotify_url(url)
        return parsed is not None and parsed[0] != "track"
