"""
Shared Domain Kernel

Contains value objects and exceptions shared across all bounded contexts.
"""

from discord_music_fleet.domain.shared.exceptions import (
    DomainError,
    InvalidOperationError,
    PersistenceError,
    ResolutionError,
    ResolutionFailure,
    RestoreError,
    VoiceConnectionError,
)

__all__ = [
    "DomainError",
    "InvalidOperationError",
    "ResolutionError",
    "ResolutionFailure",
    "PersistenceError",
    "RestoreError",
    "VoiceConnectionError",
]
