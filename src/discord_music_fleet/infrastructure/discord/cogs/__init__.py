"""Discord cogs - command handlers and event listeners."""

from discord_music_fleet.infrastructure.discord.cogs.event_cog import EventCog
from discord_music_fleet.infrastructure.discord.cogs.music_cog import MusicCog

__all__ = [
    "MusicCog",
    "EventCog",
]
