"""
Unit Tests for SpotifyResolver

The Web API is served by an httpx.MockTransport; stream lookups go to a
FakeResolver standing in for the YouTube variant.
"""

import httpx
import pytest
from pydantic import SecretStr

from discord_music_fleet.config.settings import SpotifySettings
from discord_music_fleet.domain.music.value_objects import Platform
from discord_music_fleet.domain.shared.exceptions import ResolutionError, ResolutionFailure
from discord_music_fleet.infrastructure.audio.spotify_resolver import (
    SpotifyResolver,
    parse_spotify_url,
)
from fakes import TENANT_ID, FakeResolver, make_track

API = "https://api.spotify.com/v1"
TRACK_ID = "4uLU6hMCjMI75M1A2tKUQC"


def _track_json(track_id: str, name: str, artist: str = "Rick Astley") -> dict:
    return {
        "id": track_id,
        "name": name,
        "duration_ms": 213_000,
        "artists": [{"name": artist}],
        "album": {"images": [{"url": f"https://i.scdn.example/{track_id}.jpg"}]},
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


class FakeSpotifyApi:
    """Routes requests by path and records every one of them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, httpx.Response] = {}
        self.pages: dict[str, list[httpx.Response]] = {}
        self.token_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "accounts.spotify.com":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer tok"
        path = request.url.path.removeprefix("/v1")
        if path in self.pages:
            return self.pages[path].pop(0)
        return self.routes.get(path, httpx.Response(404))


@pytest.fixture
def api():
    return FakeSpotifyApi()


@pytest.fixture
def settings():
    return SpotifySettings(client_id="client", client_secret=SecretStr("secret"))


@pytest.fixture
def stream_resolver():
    return FakeResolver((Platform.YOUTUBE,))


@pytest.fixture
def now():
    return [1000.0]


@pytest.fixture
def spotify(api, settings, stream_resolver, now):
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return SpotifyResolver(settings, stream_resolver, client=client, clock=lambda: now[0])


class TestParseUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            (f"https://open.spotify.com/track/{TRACK_ID}?si=abc", ("track", TRACK_ID)),
            ("https://open.spotify.com/intl-de/album/ABC123", ("album", "ABC123")),
            ("https://open.spotify.com/playlist/PL1", ("playlist", "PL1")),
            ("https://open.spotify.com/artist/XYZ", None),
            ("rick astley", None),
        ],
    )
    def test_parse(self, url, expected):
        assert parse_spotify_url(url) == expected

    def test_is_playlist_url(self, spotify):
        assert spotify.is_playlist_url("https://open.spotify.com/album/ABC123") is True
        assert spotify.is_playlist_url(f"https://open.spotify.com/track/{TRACK_ID}") is False


class TestSearch:
    async def test_track_url(self, spotify, api):
        api.routes[f"/tracks/{TRACK_ID}"] = httpx.Response(
            200, json=_track_json(TRACK_ID, "Never Gonna Give You Up")
        )

        (track,) = await spotify.search(f"https://open.spotify.com/track/{TRACK_ID}", 1, TENANT_ID)

        assert track.id.value == TRACK_ID
        assert track.source_platform == Platform.SPOTIFY
        assert track.title == "Never Gonna Give You Up - Rick Astley"
        assert track.duration_seconds == 213
        assert track.stream_locator is None

    async def test_text_search(self, spotify, api):
        api.routes["/search"] = httpx.Response(
            200, json={"tracks": {"items": [_track_json("A1", "One"), _track_json("B2", "Two")]}}
        )

        tracks = await spotify.search("rick", 1, TENANT_ID)

        assert [t.id.value for t in tracks] == ["A1"]
        search_request = api.requests[-1]
        assert search_request.url.params["q"] == "rick"
        assert search_request.url.params["type"] == "track"

    async def test_album_url_in_search_is_provider_failure(self, spotify):
        with pytest.raises(ResolutionError) as exc_info:
            await spotify.search("https://open.spotify.com/album/ABC123", 1, TENANT_ID)

        assert exc_info.value.reason == ResolutionFailure.PROVIDER_FAILURE

    async def test_unknown_track_is_empty(self, spotify):
        assert await spotify.search(f"https://open.spotify.com/track/{TRACK_ID}", 1, TENANT_ID) == []

    async def test_server_error_is_provider_failure(self, spotify, api):
        api.routes["/search"] = httpx.Response(503)

        with pytest.raises(ResolutionError) as exc_info:
            await spotify.search("rick", 1, TENANT_ID)

        assert exc_info.value.is_retryable is True

    async def test_not_configured(self, stream_resolver, api):
        client = httpx.AsyncClient(transport=httpx.MockTransport(api))
        resolver = SpotifyResolver(SpotifySettings(), stream_resolver, client=client)

        with pytest.raises(ResolutionError) as exc_info:
            await resolver.search("rick", 1, TENANT_ID)

        assert exc_info.value.reason == ResolutionFailure.PROVIDER_FAILURE
        assert api.requests == []


class TestAccessToken:
    async def test_token_reused_until_expiry(self, spotify, api, now):
        api.routes["/search"] = httpx.Response(200, json={"tracks": {"items": []}})

        await spotify.search("a", 1, TENANT_ID)
        await spotify.search("b", 1, TENANT_ID)
        assert api.token_calls == 1

        now[0] += 3600
        await spotify.search("c", 1, TENANT_ID)
        assert api.token_calls == 2


class TestPlaylist:
    async def test_playlist_pages_in_order(self, spotify, api):
        api.pages["/playlists/PL1/tracks"] = [
            httpx.Response(
                200,
                json={
                    "items": [
                        {"track": _track_json("A1", "One")},
                        {"track": None},
                        {"track": _track_json("B2", "Two")},
                    ],
                    "next": f"{API}/playlists/PL1/tracks?offset=100&limit=100",
                },
            ),
            httpx.Response(200, json={"items": [{"track": _track_json("C3", "Three")}]}),
        ]

        expansion = await spotify.get_playlist("https://open.spotify.com/playlist/PL1", TENANT_ID)

        assert [t.id.value for t in expansion.tracks] == ["A1", "B2", "C3"]
        assert api.requests[-1].url.params["offset"] == "100"

    async def test_album_items_are_tracks(self, spotify, api):
        api.routes["/albums/AL1/tracks"] = httpx.Response(
            200, json={"items": [_track_json("A1", "One")]}
        )

        expansion = await spotify.get_playlist("https://open.spotify.com/album/AL1", TENANT_ID)

        assert [t.id.value for t in expansion.tracks] == ["A1"]

    async def test_max_tracks_caps_expansion(self, api, settings, stream_resolver):
        client = httpx.AsyncClient(transport=httpx.MockTransport(api))
        resolver = SpotifyResolver(settings, stream_resolver, client=client, max_tracks=1)
        api.routes["/albums/AL1/tracks"] = httpx.Response(
            200, json={"items": [_track_json("A1", "One"), _track_json("B2", "Two")]}
        )

        expansion = await resolver.get_playlist("https://open.spotify.com/album/AL1", TENANT_ID)

        assert len(expansion.tracks) == 1

    async def test_missing_playlist_is_empty(self, spotify):
        expansion = await spotify.get_playlist("https://open.spotify.com/playlist/GONE", TENANT_ID)

        assert expansion.tracks == []

    async def test_track_url_is_not_a_playlist(self, spotify):
        assert await spotify.get_playlist(f"https://open.spotify.com/track/{TRACK_ID}", 0) is None


class TestResolveStream:
    async def test_stream_found_by_title_search(self, spotify, stream_resolver):
        track = make_track(TRACK_ID, Platform.SPOTIFY, title="Never Gonna - Rick Astley")
        stream_resolver.results["Never Gonna - Rick Astley"] = [
            make_track("yt1", stream_locator="https://stream.example.com/yt1")
        ]

        resolved = await spotify.resolve_stream(track)

        assert resolved.id == track.id
        assert resolved.stream_locator == "https://stream.example.com/yt1"

    async def test_match_without_stream_is_resolved(self, spotify, stream_resolver):
        track = make_track(TRACK_ID, Platform.SPOTIFY, title="Never Gonna")
        stream_resolver.results["Never Gonna"] = [make_track("yt1")]

        resolved = await spotify.resolve_stream(track)

        assert resolved.stream_locator == "https://stream.example.com/yt1"
        assert stream_resolver.resolved == ["yt1"]

    async def test_no_match_is_no_results(self, spotify):
        track = make_track(TRACK_ID, Platform.SPOTIFY, title="Obscure B-side")

        with pytest.raises(ResolutionError) as exc_info:
            await spotify.resolve_stream(track)

        assert exc_info.value.reason == ResolutionFailure.NO_RESULTS
