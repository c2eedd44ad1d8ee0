"""Tests for the startup media cache sweep."""

import os
import time
from unittest.mock import MagicMock, patch

from discord_music_fleet.application.services.cache_janitor import CacheJanitor
from discord_music_fleet.domain.music.value_objects import Platform
from fakes import TENANT_ID, FakeResolver, make_track


class TestSweep:
    async def test_creates_missing_directory(self, tmp_path, state_store):
        cache_dir = tmp_path / "cache" / "alpha"
        janitor = CacheJanitor(cache_dir, state_store)

        stats = await janitor.sweep()

        assert stats.created_directory is True
        assert cache_dir.is_dir()

    async def test_keeps_only_files_of_live_sessions(
        self, tmp_path, state_store, dispatcher, make_engine, joined
    ):
        (tmp_path / "a.audio").write_bytes(b"a")
        (tmp_path / "b.audio").write_bytes(b"b")
        direct = FakeResolver((Platform.DIRECT,))
        direct.locators["a"] = str(tmp_path / "a.audio")
        dispatcher.register(direct)

        engine = make_engine(TENANT_ID)
        await engine.enqueue(
            make_track("a", Platform.DIRECT, url="https://files.example.com/a.mp3")
        )
        await engine.drain()
        assert engine.current_track.stream_locator == str(tmp_path / "a.audio")

        stats = await CacheJanitor(tmp_path, state_store).sweep()

        assert (tmp_path / "a.audio").exists()
        assert not (tmp_path / "b.audio").exists()
        assert stats.deleted == 1
        assert stats.kept == 1

    async def test_subdirectories_are_ignored(self, tmp_path, state_store):
        (tmp_path / "nested").mkdir()
        (tmp_path / "stale.audio").write_bytes(b"x")

        stats = await CacheJanitor(tmp_path, state_store).sweep()

        assert (tmp_path / "nested").is_dir()
        assert stats.deleted == 1

    async def test_delete_failure_is_counted_and_sweep_continues(self, tmp_path, state_store):
        (tmp_path / "one.audio").write_bytes(b"1")
        (tmp_path / "two.audio").write_bytes(b"2")
        janitor = CacheJanitor(tmp_path, state_store)
        real_unlink = type(tmp_path).unlink
        calls = MagicMock()

        def flaky_unlink(path, *args, **kwargs):
            calls(path.name)
            if path.name == "one.audio":
                raise PermissionError("in use")
            return real_unlink(path, *args, **kwargs)

        with patch.object(type(tmp_path), "unlink", flaky_unlink):
            stats = await janitor.sweep()

        assert stats.failed == 1
        assert stats.deleted == 1
        assert (tmp_path / "one.audio").exists()
        assert calls.call_count == 2

    async def test_in_flight_and_fresh_files_are_kept(self, tmp_path, state_store):
        long_ago = time.time() - 3600
        stale = tmp_path / "stale.audio"
        partial = tmp_path / "download.audio.part"
        fresh = tmp_path / "fresh.audio"
        for path in (stale, partial, fresh):
            path.write_bytes(b"x")
        os.utime(stale, (long_ago, long_ago))
        os.utime(partial, (long_ago, long_ago))
        ahead = time.time() + 60
        os.utime(fresh, (ahead, ahead))

        stats = await CacheJanitor(tmp_path, state_store).sweep()

        assert not stale.exists()
        assert partial.exists()
        assert fresh.exists()
        assert stats.deleted == 1
        assert stats.kept == 2
