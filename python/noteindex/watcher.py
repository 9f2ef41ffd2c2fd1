"""
Watcher - Real-time note change detection.

Uses watchdog for cross-platform file system monitoring with
debouncing to batch rapid saves into one re-index.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from .config import get_config, IndexerConfig
from .filters import DocumentFilter


logger = logging.getLogger(__name__)


class ChangeType(Enum):
    """Type of file system change."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass
class NoteChange:
    """A pending note change event."""
    identity: str
    change_type: ChangeType
    timestamp: float
    old_identity: Optional[str] = None  # For MOVED events


class NoteWatcher:
    """
    Vault watcher with debouncing.

    watchdog delivers events on its observer thread; they are handed to
    the event loop with call_soon_threadsafe, so pending state is only
    touched from the loop.
    """

    def __init__(
        self,
        root: Path | None = None,
        document_filter: DocumentFilter | None = None,
        config: IndexerConfig | None = None,
    ):
        self.config = config or get_config()
        self.root = Path(root or self.config.vault_root).expanduser().resolve()
        self._filter = document_filter or DocumentFilter(self.config)

        self._observer = None
        self._pending_changes: Dict[str, NoteChange] = {}
        self._debounce_task: Optional[asyncio.Task] = None
        self._queue: asyncio.Queue[List[NoteChange]] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    def start(self) -> None:
        """Start watching the vault. Must be called from the event loop."""
        try:
            from watchdog.observers import Observer
            from watchdog.events import FileSystemEventHandler, FileSystemEvent
        except ImportError:
            logger.error("watchdog not installed. Run: pip install watchdog")
            raise

        self._loop = asyncio.get_running_loop()
        watcher = self

        class EventHandler(FileSystemEventHandler):
            def on_created(self, event: FileSystemEvent):
                if not event.is_directory:
                    watcher._post(event.src_path, ChangeType.ADDED)

            def on_modified(self, event: FileSystemEvent):
                if not event.is_directory:
                    watcher._post(event.src_path, ChangeType.MODIFIED)

            def on_deleted(self, event: FileSystemEvent):
                if not event.is_directory:
                    watcher._post(event.src_path, ChangeType.DELETED)

            def on_moved(self, event: FileSystemEvent):
                if not event.is_directory:
                    watcher._post(event.dest_path, ChangeType.MOVED, old_path=event.src_path)

        self._observer = Observer()
        self._observer.schedule(EventHandler(), str(self.root), recursive=True)
        self._running = True
        self._observer.start()
        logger.info(f"Watching: {self.root}")

    def stop(self) -> None:
        """Stop watching."""
        self._running = False

        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None

        if self._debounce_task:
            self._debounce_task.cancel()
            self._debounce_task = None

        logger.info("Note watcher stopped")

    def _post(self, path, change_type: ChangeType, old_path=None) -> None:
        """Called on the observer thread."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._queue_change, path, change_type, old_path)

    def _identity(self, path) -> Optional[str]:
        if isinstance(path, bytes):
            path = path.decode("utf-8", errors="replace")
        try:
            return Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None

    def _queue_change(self, path, change_type: ChangeType, old_path=None) -> None:
        """Queue a change for debounced processing."""
        identity = self._identity(path)
        if identity is None or self._should_skip(identity):
            return

        old_identity = self._identity(old_path) if old_path is not None else None

        # Later events for the same note override earlier ones
        self._pending_changes[identity] = NoteChange(
            identity=identity,
            change_type=change_type,
            timestamp=time.monotonic(),
            old_identity=old_identity,
        )
        self._schedule_flush()

    def _should_skip(self, identity: str) -> bool:
        if self._filter.should_skip_path(identity):
            return True
        return Path(identity).suffix.lower() not in self.config.note_extensions

    def _schedule_flush(self) -> None:
        if self._debounce_task and not self._debounce_task.done():
            return
        self._debounce_task = asyncio.ensure_future(self._flush_after_delay())

    async def _flush_after_delay(self) -> None:
        await asyncio.sleep(self.config.debounce_ms / 1000.0)
        self._flush_changes()

    def _flush_changes(self) -> None:
        if not self._pending_changes:
            return

        changes = list(self._pending_changes.values())
        self._pending_changes.clear()

        logger.info(f"Processing {len(changes)} note changes")
        self._queue.put_nowait(changes)

    def get_pending_count(self) -> int:
        return len(self._pending_changes)

    async def changes(self) -> AsyncIterator[List[NoteChange]]:
        """
        Yield debounced batches of changes until stop() is called.

        Usage:
            watcher.start()
            async for batch in watcher.changes():
                ...
        """
        while self._running or not self._queue.empty():
            try:
                batch = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except TimeoutError:
                continue
            yield batch
