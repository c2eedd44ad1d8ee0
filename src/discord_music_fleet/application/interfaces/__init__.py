"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from discord_music_fleet.application.interfaces.tenant_gateway import (
    ChannelInfo,
    ChannelKind,
    TenantGateway,
)
from discord_music_fleet.application.interfaces.track_resolver import (
    PlaylistExpansion,
    TrackResolver,
)
from discord_music_fleet.application.interfaces.voice_transport import (
    TransportCallback,
    VoiceConnection,
    VoiceTransport,
)

__all__ = [
    "TrackResolver",
    "PlaylistExpansion",
    "VoiceTransport",
    "VoiceConnection",
    "TransportCallback",
    "TenantGateway",
    "ChannelInfo",
    "ChannelKind",
]
