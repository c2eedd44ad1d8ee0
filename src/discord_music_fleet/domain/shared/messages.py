"""Centralized message constants for error messages, log templates, and user feedback."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Track Validation Errors
    EMPTY_TRACK_ID = "Track ID cannot be empty"
    UNSAFE_TRACK_ID = "Track ID '{value}' may only contain letters, digits, '.', '_' and '-'"
    NO_STREAM_LOCATOR = "Track '{title}' has no stream locator"

    # Queue Errors
    QUEUE_FULL = "Queue is full (max {max_size} tracks)"

    # Time/Date Validation Errors
    TIMEZONE_REQUIRED_UTC_DATETIME = "Datetime values must be timezone-aware"

    # Settings Validation Errors
    INVALID_DATABASE_URL = "Database URL must start with sqlite:// or be ':memory:'"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"
    DUPLICATE_BOT_SLUG = "Duplicate bot profile slug: {slug}"
    AUTO_JOIN_INCOMPLETE = "auto_join_guild_id and auto_join_channel_id must be set together"

    # Resolution Errors
    NO_STREAM_URL_FOR_TRACK = "No stream URL found for {title}"
    NO_RESOLVER_FOR_PLATFORM = "No resolver registered for platform '{platform}'"
    SPOTIFY_NOT_CONFIGURED = "Spotify credentials are not configured"
    UNSUPPORTED_SPOTIFY_URL = "Unsupported Spotify URL: {url}"

    # Voice Errors
    CHANNEL_NOT_FOUND = "Channel {channel_id} not found"
    CHANNEL_NOT_VOICE = "Channel {channel_id} is not a voice channel"
    NO_VOICE_PERMISSION = "No permission to connect to channel {channel_id}"
    VOICE_TIMEOUT = "Timed out connecting to channel {channel_id}"

    # Restore Errors
    RESTORE_GUILD_MISSING = "Guild {tenant_id} is not available"
    RESTORE_VOICE_CHANNEL_INVALID = "Voice channel {channel_id} is missing or not a voice channel"
    RESTORE_TEXT_CHANNEL_INVALID = "Text channel {channel_id} is missing or not a text channel"

    # Container Errors
    CONTAINER_NOT_FOUND = "Bot has no container attached"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Database Lifecycle
    DATABASE_INITIALIZED = "Database initialized at %s"
    DATABASE_CLOSED = "Database manager closed"

    # Session Record Repository
    RECORD_SAVED = "Saved session record for tenant %s"
    RECORD_DELETED = "Deleted session record for tenant %s"
    RECORD_CORRUPT = "Skipping corrupt session record for tenant %s: %s"

    # State Store
    STORE_SAVE_SCHEDULED = "Scheduled session write for tenant %s in %.2fs"
    STORE_WRITTEN = "Persisted session for tenant %s (status=%s, queue=%d)"
    STORE_WRITE_FAILED = "Session write failed for tenant %s, keeping snapshot pending: %s"
    STORE_REMOVE_FAILED = "Failed to remove session record for tenant %s: %s"
    STORE_LOADED = "Loaded %d persisted session records"
    STORE_FLUSH_ALL = "Flushing %d pending session writes"

    # Playback Engine
    ENGINE_ENQUEUED = "Enqueued %d track(s) in tenant %s (play_now=%s, queue=%d)"
    ENGINE_TRACK_STARTED = "Started playing '%s' in tenant %s"
    ENGINE_TRACK_ENDED = "Track '%s' ended in tenant %s"
    ENGINE_TRANSPORT_ERROR = "Transport reported error for '%s' in tenant %s: %s"
    ENGINE_STREAM_RESOLVE_FAILED = "Skipping '%s' in tenant %s after stream resolution failed: %s"
    ENGINE_TRANSPORT_START_FAILED = "Transport refused to play '%s' in tenant %s: %s"
    ENGINE_NO_CONNECTION = "No voice connection for tenant %s, parking queue until rejoin"
    ENGINE_QUEUE_EXHAUSTED = "Queue exhausted in tenant %s"
    ENGINE_STALE_RESULT = "Discarding superseded result in tenant %s (generation %s != %s)"
    ENGINE_PAUSED = "Paused playback in tenant %s"
    ENGINE_RESUMED = "Resumed playback in tenant %s"
    ENGINE_STOPPED = "Stopped playback in tenant %s (connection kept)"
    ENGINE_LEFT = "Left voice in tenant %s"
    ENGINE_SKIPPED = "Skipped '%s' in tenant %s"
    ENGINE_RESTORED = "Restored tenant %s: current=%s, queue=%d"
    ENGINE_SETTLED_IDLE = "Settled tenant %s to idle: %s"
    ENGINE_NOTIFY_FAILED = "Notification %s for tenant %s failed"
    ENGINE_TEARDOWN_CALLBACK_FAILED = "Teardown callback failed for tenant %s"

    # Session Registry
    REGISTRY_REGISTERED = "Registered engine for tenant %s"
    REGISTRY_DISCARDED = "Discarded engine for tenant %s"
    REGISTRY_FLUSHING = "Flushing %d live sessions (timeout=%.1fs)"
    REGISTRY_FLUSH_TIMEOUT = "Flush of live sessions timed out after %.1fs"
    REGISTRY_FLUSH_FAILED = "Flush failed for tenant %s"

    # Bounded Retry
    RETRY_ATTEMPT_FAILED = "%s: attempt %d/%d failed: %s"
    RETRY_EXHAUSTED = "%s: giving up after %d attempts"

    # Session Restorer
    RESTORE_NOTHING = "No persisted sessions to restore"
    RESTORE_STARTED = "Restoring %d persisted sessions"
    RESTORE_TENANT_OK = "Restored session for tenant %s"
    RESTORE_TENANT_FAILED = "Discarding session for tenant %s: %s"
    RESTORE_TENANT_CRASHED = "Unexpected error restoring tenant %s"
    RESTORE_SUMMARY = "Session restore complete: %d restored, %d discarded"

    # Cache Janitor
    JANITOR_CREATED_DIR = "Created media cache directory %s"
    JANITOR_DELETED = "Deleted unreferenced cache file %s"
    JANITOR_DELETE_FAILED = "Failed to delete cache file %s: %s"
    JANITOR_SUMMARY = "Cache sweep complete: %d deleted, %d kept, %d failed"

    # Connection Supervisor
    SUPERVISOR_ASSIGNED = "Tenant %s assigned to voice channel %s"
    SUPERVISOR_RELEASED = "Released voice assignment for tenant %s"
    SUPERVISOR_MOVED = "Moved from %s to %s in tenant %s, rejoining in %.1fs"
    SUPERVISOR_DISCONNECTED = "Disconnected from %s in tenant %s, rejoining in %.1fs"
    SUPERVISOR_REJOIN_REPLACED = "Replaced pending rejoin for tenant %s"
    SUPERVISOR_REJOINED = "Rejoined voice channel %s in tenant %s"
    SUPERVISOR_REJOIN_TRANSIENT = "Rejoin failed in tenant %s, waiting for next event: %s"
    SUPERVISOR_REJOIN_PERMANENT = "Rejoin failed permanently in tenant %s, releasing: %s"
    SUPERVISOR_STOPPED = "Connection supervisor stopped (%d pending rejoins cancelled)"

    # Track Dispatcher
    DISPATCH_RESOLVING = "Resolving query %r via %s"
    DISPATCH_PLAYLIST_EMPTY = "Playlist %s yielded no tracks, falling back to search"
    DISPATCH_CACHED_STREAM = "Using cached media for '%s': %s"

    # yt-dlp Resolver
    YTDLP_NO_URL_IN_INFO_DICT = "No URL found in info dict"
    YTDLP_FAILED_INFO_TO_TRACK = "Failed to convert info to track"
    YTDLP_FAILED_EXTRACT_INFO = "Failed to extract info from %s"
    YTDLP_FAILED_SEARCH = "Failed to search for %r"
    YTDLP_FAILED_EXTRACT_PLAYLIST = "Failed to extract playlist from %s"

    # Spotify Resolver
    SPOTIFY_TOKEN_REFRESHED = "Spotify access token refreshed (expires in %ss)"
    SPOTIFY_REQUEST_FAILED = "Spotify request failed for %s: %s"
    SPOTIFY_NO_MATCH = "No playable match for Spotify track '%s'"

    # Direct Link Resolver
    DIRECT_DOWNLOADED = "Downloaded %s to %s (%d bytes)"
    DIRECT_DOWNLOAD_FAILED = "Failed to download %s: %s"

    # Voice/Audio Operations
    VOICE_CONNECTED = "Connected to voice channel %s in %s"
    VOICE_DISCONNECTED = "Disconnected from voice in tenant %s"
    VOICE_MOVED = "Moved to voice channel %s"
    VOICE_CONNECTION_TIMEOUT = "Timeout connecting to channel %s"
    VOICE_NO_PERMISSION = "No permission to connect to channel %s"
    VOICE_CLIENT_ERROR = "Client error connecting: %r"
    VOICE_STALE_CLEANUP = "Found stale voice client in tenant %s, cleaning up"
    VOICE_PLAYBACK_ERROR = "Voice playback error in tenant %s: %s"
    VOICE_SELF_DEAFEN_FAILED = "Failed to self-deafen in tenant %s: %r"

    # Notifier
    NOTIFY_SEND_FAILED = "Failed to send notification to channel %s: %s"

    # Application Lifecycle
    BOT_STARTING = "Starting discord-music-fleet in {environment} mode with {count} bot(s)"
    BOT_SETUP = "Setting up bot '%s'..."
    BOT_CONTAINER_INITIALIZED = "Container initialized for bot '%s'"
    BOT_CONTAINER_INIT_FAILED = "Failed to initialize container: %s"
    BOT_SETUP_COMPLETE = "Bot '%s' setup complete"
    BOT_STOPPED = "Bot '%s' stopped"
    BOT_KEYBOARD_INTERRUPT = "Received keyboard interrupt, shutting down..."
    BOT_FATAL_ERROR = "Fatal error in bot '%s', flushing live sessions"
    BOT_SHUTTING_DOWN = "Shutting down bot '%s'..."
    BOT_CONTAINER_SHUTDOWN_ERROR = "Error during container shutdown: %s"
    BOT_SHUTDOWN_COMPLETE = "Bot '%s' shutdown complete"
    BOT_READY = "Bot ready as %s (%s)"
    BOT_CONNECTED_GUILDS = "Connected to %s guilds"
    BOT_STARTUP_RECOVERY_FAILED = "Startup recovery failed for bot '%s'"
    BOT_AUTO_JOINED = "Auto-joined channel %s in tenant %s"
    BOT_AUTO_JOIN_FAILED = "Auto-join of channel %s in tenant %s failed: %s"
    BOT_COG_LOADED = "Loaded cog: %s"
    BOT_COMMAND_ERROR = "Command error in '%s': %s"
    BOT_UNHANDLED_TASK_ERROR = "Unhandled error in background task: %s"
    FLEET_BOT_SKIPPED = "Skipping bot '%s': environment variable %s is not set"
    FLEET_NO_BOTS = "No bot profile has a token; nothing to run"


class DiscordUIMessages:
    """User-facing Discord messages and responses.

    Plain text only; keep them short.
    """

    # Playback
    NOW_PLAYING = "▶️ Now playing: **{title}**"
    TRACK_ENQUEUED = "➕ Added **{title}** to the queue (position {position})"
    PLAYLIST_ENQUEUED = "➕ Added {count} tracks to the queue"
    TRACK_FAILED = "⚠️ Could not play **{title}**, skipping"
    QUEUE_FINISHED = "✅ Queue finished"
    SEARCHING = "🔍 Searching for **{query}**..."
    TRACK_LOADING = "✅ Loading **{title}**"
    PLAYBACK_STOPPED = "⏹️ Stopped, {count} track(s) removed from the queue"
    LEFT_VOICE = "👋 Left the voice channel"
    PAUSED = "⏸️ Paused"
    RESUMED = "▶️ Resumed"
    SKIPPED = "⏭️ Skipped"

    # Errors
    ERROR_NOT_IN_VOICE = "You need to be in a voice channel."
    ERROR_NO_RESULTS = "No results found for `{query}`."
    ERROR_RESOLUTION_FAILED = "The music provider failed, try again in a moment."
    ERROR_QUEUE_FULL = "The queue is full."
    ERROR_SESSION_ENDED = "The session ended before the track was queued, try again."
    ERROR_NOTHING_PLAYING = "Nothing is playing."
    ERROR_NOT_PAUSED = "Playback is not paused."
    ERROR_CANNOT_CONNECT = "I couldn't join your voice channel."
    ERROR_MISSING_QUERY = "Tell me what to play."
    ERROR_SAME_CHANNEL = "You must be in the same voice channel as the bot."
    ERROR_SERVER_ONLY = "This command only works in a server."

    # Health
    PING_MEASURING = "🏓 Measuring..."
    SUCCESS_PONG = "{emoji} Pong: {round_trip_ms} ms round trip, {latency_ms} ms gateway"
