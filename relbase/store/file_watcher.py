"""File watcher service using watchfiles.

Monitors the vault for external edits and refreshes the document store
index for modified/added/deleted notes.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from watchfiles import awatch, Change

from relbase.store.vault import DocumentStore

logger = logging.getLogger("relbase.watcher")


class FileWatcher:
    """Background watcher that keeps a DocumentStore index current.

    Uses `watchfiles` (Rust-accelerated) for efficient watching. One watcher
    per store; it is owned by whoever owns the store.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self) -> None:
        """Start watching the vault in a background task."""
        if self._running:
            logger.warning("File watcher already running")
            return
        if not self.store.root.exists():
            logger.warning(f"Vault {self.store.root} does not exist, watcher has nothing to monitor")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(self._stop_event))
        logger.info(f"File watcher started for {self.store.root}")

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self, stop_event: asyncio.Event) -> None:
        try:
            async for changes in awatch(self.store.root, stop_event=stop_event):
                if not self._running:
                    break

                classified = self.classify_changes(changes)
                if classified:
                    logger.debug(f"Detected {len(classified)} vault changes, refreshing index")
                    try:
                        self.store.refresh_paths(classified)
                    except Exception as e:
                        logger.error(f"Error refreshing changed notes: {e}")
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False

    @staticmethod
    def classify_changes(changes: set[tuple[Change, str]]) -> list[tuple[str, Path]]:
        """Classify raw watchfiles changes into (change_type, path) pairs.

        Markdown notes and directories are relevant; deletions are passed
        through regardless of suffix since a deleted directory has none.
        """
        result = []
        for change_type, path_str in sorted(changes, key=lambda item: item[1]):
            path = Path(path_str)
            if change_type == Change.deleted:
                result.append(("deleted", path))
                continue
            if path.suffix.lower() != ".md" and not path.is_dir():
                continue
            if change_type in (Change.modified, Change.added):
                result.append(("modified", path))

        return result
