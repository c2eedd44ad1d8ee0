"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.constants import AudioConstants, DatabaseURLSchemes, LogLevels
from ..domain.shared.messages import ErrorMessages
from ..domain.shared.types import BotSlugStr, DiscordSnowflake

DEFAULT_BOT_SLUG = "default"


class DatabaseSettings(BaseModel):
    """Database configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    url: str = Field(
        default="sqlite:///data/sessions.db",
        validation_alias=AliasChoices("url", "database_url", "db_url"),
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=1000,
        le=30000,
        validation_alias=AliasChoices("busy_timeout_ms", "busy_timeout"),
    )
    connection_timeout_s: int = Field(
        default=10,
        ge=1,
        le=60,
        validation_alias=AliasChoices("connection_timeout_s", "connection_timeout"),
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if v != DatabaseURLSchemes.MEMORY and not v.startswith(DatabaseURLSchemes.SQLITE):
            raise ValueError(ErrorMessages.INVALID_DATABASE_URL)
        return v

    def url_for_bot(self, slug: str) -> str:
        """Per-bot database URL: `data/sessions.db` becomes `data/sessions-<slug>.db`.

        In-memory URLs are returned unchanged; every Database instance gets its
        own in-memory store anyway.
        """
        if self.url == DatabaseURLSchemes.MEMORY or slug == DEFAULT_BOT_SLUG:
            return self.url
        path = Path(self.url.removeprefix("sqlite:///"))
        return f"sqlite:///{path.with_name(f'{path.stem}-{slug}{path.suffix}')}"


class DiscordSettings(BaseModel):
    """Discord bot configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    token: SecretStr = Field(
        default=SecretStr(""), validation_alias=AliasChoices("token", "bot_token", "discord_token")
    )
    command_prefix: str = Field(
        default="!",
        min_length=1,
        max_length=5,
        validation_alias=AliasChoices("command_prefix", "prefix"),
    )
    owner_ids: tuple[DiscordSnowflake, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("owner_ids", "owners")
    )

    @field_validator("owner_ids", mode="before")
    @classmethod
    def validate_snowflake_ids(cls, v: tuple[int, ...] | list[int]) -> tuple[int, ...]:
        """Convert lists to tuples (JSON arrays from env vars)."""
        if isinstance(v, list):
            v = tuple(v)
        return v


class AudioSettings(BaseModel):
    """Audio playback and yt-dlp configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    default_volume: float = Field(default=AudioConstants.DEFAULT_VOLUME, ge=0.0, le=2.0)
    ffmpeg_before_options: str = AudioConstants.FFMPEG_BEFORE_OPTIONS_DEFAULT
    ffmpeg_options: str = AudioConstants.FFMPEG_OPTIONS_DEFAULT
    ytdlp_format: str = AudioConstants.YTDLP_FORMAT_DEFAULT
    search_limit: int = Field(default=1, ge=1, le=25)
    connect_timeout_s: float = Field(
        default=AudioConstants.CONNECT_TIMEOUT_SECONDS,
        gt=0.0,
        validation_alias=AliasChoices("connect_timeout_s", "connect_timeout"),
    )
    self_deafen: bool = True


class PlaybackSettings(BaseModel):
    """PlaybackEngine limits and stream retry policy."""

    model_config = SettingsConfigDict(frozen=True, strict=True)

    max_queue_size: int = Field(default=200, ge=1, le=5000)
    stream_resolve_attempts: int = Field(default=2, ge=1, le=10)
    stream_retry_delay_s: float = Field(default=0.5, ge=0.0)


class PersistenceSettings(BaseModel):
    """StateStore debounce and shutdown flush."""

    model_config = SettingsConfigDict(frozen=True, strict=True)

    debounce_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    shutdown_flush_timeout_s: float = Field(default=5.0, gt=0.0)


class RestoreSettings(BaseModel):
    """Gateway lookup retry used by the SessionRestorer."""

    model_config = SettingsConfigDict(frozen=True, strict=True)

    lookup_attempts: int = Field(default=3, ge=1, le=10)
    lookup_delay_s: float = Field(default=1.0, ge=0.0)


class SupervisorSettings(BaseModel):
    """ConnectionSupervisor rejoin policy."""

    model_config = SettingsConfigDict(frozen=True, strict=True)

    rejoin_delay_s: float = Field(default=5.0, ge=0.0)


class CacheSettings(BaseModel):
    """Media cache location; each bot sweeps its own subdirectory."""

    model_config = SettingsConfigDict(frozen=True, strict=True)

    root: str = "cache"
    download_timeout_s: float = Field(default=30.0, gt=0.0)

    def dir_for_bot(self, slug: str) -> Path:
        return Path(self.root) / slug


class SpotifySettings(BaseModel):
    """Spotify Web API credentials (client credentials flow)."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    client_id: str = Field(default="", validation_alias=AliasChoices("client_id", "id"))
    client_secret: SecretStr = Field(
        default=SecretStr(""), validation_alias=AliasChoices("client_secret", "secret")
    )
    api_base_url: str = "https://api.spotify.com/v1"
    token_url: str = "https://accounts.spotify.com/api/token"
    request_timeout_s: float = Field(default=10.0, gt=0.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret.get_secret_value())


class BotProfile(BaseModel):
    """One bot of the fleet.

    The token itself is never part of the profile; it is read from the
    environment variable named by `token_env`.
    """

    model_config = SettingsConfigDict(frozen=True, strict=True)

    slug: BotSlugStr
    token_env: str = Field(min_length=1)
    command_prefix: str = Field(default="!", min_length=1, max_length=5)
    auto_join_guild_id: DiscordSnowflake | None = None
    auto_join_channel_id: DiscordSnowflake | None = None
    allowed_channel_ids: tuple[DiscordSnowflake, ...] = Field(default_factory=tuple)

    @field_validator("allowed_channel_ids", mode="before")
    @classmethod
    def _listify(cls, v: tuple[int, ...] | list[int]) -> tuple[int, ...]:
        if isinstance(v, list):
            v = tuple(v)
        return v

    @model_validator(mode="after")
    def _auto_join_pair(self) -> BotProfile:
        if (self.auto_join_guild_id is None) != (self.auto_join_channel_id is None):
            raise ValueError(ErrorMessages.AUTO_JOIN_INCOMPLETE)
        return self

    @property
    def has_auto_join(self) -> bool:
        return self.auto_join_guild_id is not None and self.auto_join_channel_id is not None

    def is_channel_allowed(self, channel_id: int) -> bool:
        """An empty allow-list accepts every channel."""
        return not self.allowed_channel_ids or channel_id in self.allowed_channel_ids

    def resolve_token(self, environ: Mapping[str, str] | None = None) -> str | None:
        env = os.environ if environ is None else environ
        token = env.get(self.token_env, "").strip()
        return token or None


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - DISCORD__TOKEN, DISCORD__COMMAND_PREFIX, etc. (nested with `__`)
    - PERSISTENCE__DEBOUNCE_SECONDS, SUPERVISOR__REJOIN_DELAY_S, ...
    - BOTS (JSON array of bot profiles)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        strict=True,
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    restore: RestoreSettings = Field(default_factory=RestoreSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    bots: tuple[BotProfile, ...] = Field(default_factory=tuple)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = LogLevels.all()
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels)
            )
        return v_upper

    @field_validator("bots", mode="before")
    @classmethod
    def _listify_bots(cls, v: object) -> object:
        if isinstance(v, list):
            return tuple(v)
        return v

    @model_validator(mode="after")
    def _unique_slugs(self) -> Settings:
        seen: set[str] = set()
        for profile in self.bots:
            if profile.slug in seen:
                raise ValueError(ErrorMessages.DUPLICATE_BOT_SLUG.format(slug=profile.slug))
            seen.add(profile.slug)
        return self

    def bot_profiles(self) -> tuple[BotProfile, ...]:
        """Configured profiles, or a single default bot driven by DISCORD__TOKEN."""
        if self.bots:
            return self.bots
        return (
            BotProfile(
                slug=DEFAULT_BOT_SLUG,
                token_env="DISCORD__TOKEN",
                command_prefix=self.discord.command_prefix,
            ),
        )

    def resolve_token(self, profile: BotProfile) -> str | None:
        token = profile.resolve_token()
        if token is None and profile.slug == DEFAULT_BOT_SLUG and not self.bots:
            token = self.discord.token.get_secret_value().strip() or None
        return token


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
