"""Tests for DirectLinkResolver downloads into the media cache."""

import httpx
import pytest

from discord_music_fleet.domain.music.value_objects import Platform
from discord_music_fleet.domain.shared.exceptions import ResolutionError, ResolutionFailure
from discord_music_fleet.infrastructure.audio.direct_link_resolver import (
    DirectLinkResolver,
    cache_suffix_for,
    title_for,
)
from fakes import TENANT_ID

SONG_URL = "https://files.example.com/music/My%20Song.mp3"
PAYLOAD = b"ID3" + b"\x00" * 2048


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def status():
    return [200]


@pytest.fixture
def resolver(tmp_path, requests_seen, status):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        return httpx.Response(status[0], content=PAYLOAD)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DirectLinkResolver(tmp_path / "cache", client=client)


@pytest.mark.parametrize(
    ("url", "suffix"),
    [
        (SONG_URL, ".mp3"),
        ("https://a.example/x.WAV?dl=1", ".wav"),
        ("https://a.example/x.ogg", ".ogg"),
        ("https://a.example/stream", ".audio"),
    ],
)
def test_cache_suffix_for(url, suffix):
    assert cache_suffix_for(url) == suffix


def test_title_is_decoded_file_name():
    assert title_for(SONG_URL) == "My Song.mp3"
    assert title_for("https://a.example/") == "https://a.example/"


class TestSearch:
    async def test_url_becomes_direct_track(self, resolver):
        (track,) = await resolver.search(SONG_URL, 1, TENANT_ID)

        assert track.source_platform == Platform.DIRECT
        assert track.title == "My Song.mp3"
        assert track.stream_locator is None

    async def test_text_query_has_no_results(self, resolver):
        assert await resolver.search("my song", 1, TENANT_ID) == []

    async def test_never_a_playlist(self, resolver):
        assert await resolver.get_playlist(SONG_URL, TENANT_ID) is None


class TestResolveStream:
    async def test_downloads_into_cache(self, resolver, tmp_path):
        (track,) = await resolver.search(SONG_URL, 1, TENANT_ID)

        resolved = await resolver.resolve_stream(track)

        target = tmp_path / "cache" / f"{track.id}.mp3"
        assert target.read_bytes() == PAYLOAD
        assert resolved.local_path == target.resolve()
        assert not list((tmp_path / "cache").glob("*.part"))

    async def test_existing_file_is_reused(self, resolver, tmp_path, requests_seen):
        (track,) = await resolver.search(SONG_URL, 1, TENANT_ID)
        cached = resolver.cache_path(track)
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"cached")

        resolved = await resolver.resolve_stream(track)

        assert requests_seen == []
        assert resolved.local_path == cached.resolve()

    async def test_http_error_removes_partial_file(self, resolver, tmp_path, status):
        status[0] = 404
        (track,) = await resolver.search(SONG_URL, 1, TENANT_ID)

        with pytest.raises(ResolutionError) as exc_info:
            await resolver.resolve_stream(track)

        assert exc_info.value.reason == ResolutionFailure.PROVIDER_FAILURE
        assert list((tmp_path / "cache").iterdir()) == []
