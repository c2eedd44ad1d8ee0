"""Audio infrastructure - track resolvers and FFmpeg sources."""

from discord_music_fleet.infrastructure.audio.direct_link_resolver import DirectLinkResolver
from discord_music_fleet.infrastructure.audio.ffmpeg_player import FFmpegConfig, FFmpegSourceFactory
from discord_music_fleet.infrastructure.audio.models import (
    AudioFormatInfo,
    CacheEntry,
    SpotifyTrackInfo,
    YtDlpOpts,
    YtDlpTrackInfo,
)
from discord_music_fleet.infrastructure.audio.spotify_resolver import SpotifyResolver
from discord_music_fleet.infrastructure.audio.ytdlp_resolver import YtDlpResolver

__all__ = [
    "AudioFormatInfo",
    "CacheEntry",
    "DirectLinkResolver",
    "FFmpegConfig",
    "FFmpegSourceFactory",
    "SpotifyResolver",
    "SpotifyTrackInfo",
    "YtDlpOpts",
    "YtDlpResolver",
    "YtDlpTrackInfo",
]
