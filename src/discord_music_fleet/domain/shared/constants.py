"""Centralized constants for database schema, audio and other shared values."""

from __future__ import annotations


class DatabaseTables:
    """Database table names."""

    SESSION_RECORDS = "session_records"


class DatabaseColumns:
    """Database column names."""

    TENANT_ID = "tenant_id"
    RECORD_JSON = "record_json"
    UPDATED_AT = "updated_at"


class SQLPragmas:
    """SQLite PRAGMA statements applied to each connection."""

    JOURNAL_MODE_WAL = "PRAGMA journal_mode=WAL"
    BUSY_TIMEOUT = "PRAGMA busy_timeout={timeout}"


class AudioConstants:
    """Audio, FFmpeg and media cache constants."""

    # FFmpeg Options
    FFMPEG_BEFORE_OPTIONS_DEFAULT = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
    FFMPEG_OPTIONS_DEFAULT = "-vn"  # No video

    # yt-dlp Options
    YTDLP_FORMAT_DEFAULT = "bestaudio/best"

    # Direct links recognised by suffix
    DIRECT_AUDIO_SUFFIXES = (".mp3", ".wav", ".ogg")
    DEFAULT_CACHE_SUFFIX = ".audio"
    PARTIAL_SUFFIX = ".part"

    # Audio Settings
    DEFAULT_VOLUME = 0.5
    CONNECT_TIMEOUT_SECONDS = 10.0


class DatabaseURLSchemes:
    """Valid database URL schemes for validation."""

    SQLITE = "sqlite://"
    MEMORY = ":memory:"


class LogLevels:
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def all(cls) -> set[str]:
        return {cls.DEBUG, cls.INFO, cls.WARNING, cls.ERROR, cls.CRITICAL}
