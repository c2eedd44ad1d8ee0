"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Persistence (SQLite session records)
- Discord (bot, cogs, voice and gateway adapters)
- Audio (yt-dlp, Spotify Web API, direct links, FFmpeg)
"""

from discord_music_fleet.infrastructure.discord.adapters.tenant_gateway import DiscordTenantGateway
from discord_music_fleet.infrastructure.discord.adapters.voice_adapter import DiscordVoiceTransport
from discord_music_fleet.infrastructure.discord.bot import create_bot, run_fleet
from discord_music_fleet.infrastructure.persistence.database import Database

__all__ = [
    "create_bot",
    "run_fleet",
    "DiscordVoiceTransport",
    "DiscordTenantGateway",
    "Database",
]
