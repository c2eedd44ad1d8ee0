"""One-shot sweep of the media cache against the protected file set."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ...domain.shared.constants import AudioConstants
from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from .state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepStats:
    deleted: int = 0
    kept: int = 0
    failed: int = 0
    created_directory: bool = False


class CacheJanitor:
    """Deletes cached payloads no session refers to.

    Must run after the SessionRestorer has registered every engine it keeps,
    so the protected set already covers restored sessions. In-flight downloads
    (`.part` files) and files written after the sweep started are left alone.
    """

    def __init__(self, cache_dir: Path, store: StateStore) -> None:
        self._cache_dir = cache_dir
        self._store = store

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    async def sweep(self) -> SweepStats:
        if not await asyncio.to_thread(self._cache_dir.is_dir):
            await asyncio.to_thread(self._cache_dir.mkdir, parents=True, exist_ok=True)
            logger.info(LogTemplates.JANITOR_CREATED_DIR, self._cache_dir)
            return SweepStats(created_directory=True)

        started = time.time()
        protected = self._store.get_protected_cache_files()
        files = await asyncio.to_thread(self._list_files)

        deleted = kept = failed = 0
        for path, mtime in files:
            if (
                path.suffix == AudioConstants.PARTIAL_SUFFIX
                or mtime >= started
                or path.resolve() in protected
            ):
                kept += 1
                continue
            try:
                await asyncio.to_thread(path.unlink)
            except OSError as exc:
                failed += 1
                logger.warning(LogTemplates.JANITOR_DELETE_FAILED, path, exc)
            else:
                deleted += 1
                logger.debug(LogTemplates.JANITOR_DELETED, path)

        logger.info(LogTemplates.JANITOR_SUMMARY, deleted, kept, failed)
        return SweepStats(deleted=deleted, kept=kept, failed=failed)

    def _list_files(self) -> list[tuple[Path, float]]:
        files = []
        for path in self._cache_dir.iterdir():
            try:
                if path.is_file():
                    files.append((path, path.stat().st_mtime))
            except FileNotFoundError:
                # Renamed by a finishing download.
                continue
        return files
