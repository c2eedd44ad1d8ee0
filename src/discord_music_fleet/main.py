#!/usr/bin/env python3
"""Main entry point for the Discord music fleet."""

from __future__ import annotations

import asyncio
import logging
import sys

from discord_music_fleet.domain.shared.messages import LogTemplates
from discord_music_fleet.utils.logging import setup_logging


def main() -> int:
    from discord_music_fleet.config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    logger = logging.getLogger(__name__)
    logger.info(
        LogTemplates.BOT_STARTING.format(
            environment=settings.environment, count=len(settings.bot_profiles())
        )
    )

    from discord_music_fleet.infrastructure.discord.bot import run_fleet

    try:
        return asyncio.run(run_fleet(settings))
    except KeyboardInterrupt:
        logger.info(LogTemplates.BOT_KEYBOARD_INTERRUPT)
        return 0


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
