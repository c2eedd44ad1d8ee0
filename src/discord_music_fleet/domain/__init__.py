# ruff: noqa: N999
"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting types, exceptions, messages and notifications
- music/: Tracks, per-tenant playback state and persisted session records
"""

from discord_music_fleet.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
