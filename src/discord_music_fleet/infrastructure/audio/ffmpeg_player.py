"""
FFmpeg Audio Sources

Builds discord.py audio sources for a stream locator (remote URL or cached file).
"""

from __future__ import annotations

from dataclasses import dataclass

import discord

from discord_music_fleet.config.settings import AudioSettings
from discord_music_fleet.domain.shared.messages import ErrorMessages

# Make ffmpeg appear as the Android client to avoid 403s on YouTube streams.
YOUTUBE_HEADERS = (
    '-user_agent "com.google.android.youtube/19.02.39 (Linux; U; Android 14)" '
    '-referer "https://www.youtube.com/" '
    '-headers "Accept-Language: en-US,en;q=0.9"'
)


@dataclass(frozen=True)
class FFmpegConfig:
    """Configuration for FFmpeg audio processing."""

    before_options: str
    options: str
    default_volume: float = 0.5

    @classmethod
    def from_settings(cls, settings: AudioSettings) -> FFmpegConfig:
        return cls(
            before_options=settings.ffmpeg_before_options,
            options=settings.ffmpeg_options,
            default_volume=settings.default_volume,
        )

    def before_options_for(self, locator: str) -> str:
        """Reconnect flags and headers only apply to remote streams."""
        if "://" not in locator:
            return ""
        return f"{self.before_options} {YOUTUBE_HEADERS}".strip()


class FFmpegSourceFactory:
    """Creates volume-wrapped FFmpeg sources."""

    def __init__(self, settings: AudioSettings | None = None) -> None:
        self._config = FFmpegConfig.from_settings(settings or AudioSettings())

    @property
    def config(self) -> FFmpegConfig:
        return self._config

    def create_source(
        self, stream_locator: str, volume: float | None = None
    ) -> discord.PCMVolumeTransformer:
        """Create an audio source for a stream locator.

        Raises:
            ValueError: If the locator is empty.
        """
        if not stream_locator:
            raise ValueError(ErrorMessages.NO_STREAM_LOCATOR.format(title=stream_locator))

        source = discord.FFmpegPCMAudio(
            stream_locator,
            before_options=self._config.before_options_for(stream_locator) or None,
            options=self._config.options,
        )
        vol = volume if volume is not None else self._config.default_volume
        return discord.PCMVolumeTransformer(source, volume=vol)
