"""
Application Layer

Contains use cases and application services.
This layer orchestrates domain objects and infrastructure to fulfill use cases.

Structure:
- commands/: Write operations (PlayTrackCommand, StopPlaybackCommand)
- services/: Playback engine, state store, restore, cache and connection services
- interfaces/: Port interfaces for infrastructure adapters
"""
