"""Theme folder watcher that mirrors local changes to the FTP server.

This module provides:
- ThemeEventHandler: Translates watchdog events into FileChange records
- ThemeWatcher: Debounces changes per path and applies them one at a time
  from a single worker thread
"""

import fnmatch
import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from theme_sync.config.settings import DEFAULT_IGNORE_PATTERNS
from theme_sync.ftp.exceptions import FTPError
from theme_sync.ftp.service import FTPService
from theme_sync.utils.paths import PathTranslator

logger = logging.getLogger("theme_sync.watcher")


class ChangeType(Enum):
    """Local change, as applied to the server."""
    FILE_ADDED = "added"
    FILE_CHANGED = "changed"
    FILE_DELETED = "deleted"
    DIR_ADDED = "folder added"
    DIR_DELETED = "folder deleted"


@dataclass
class FileChange:
    """A pending change for one local path."""
    path: Path
    change_type: ChangeType


def _decode(path) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class ThemeEventHandler(FileSystemEventHandler):
    """Turns watchdog events into FileChange records for the watcher."""

    def __init__(self, on_change: Callable[[FileChange], None]):
        super().__init__()
        self._on_change = on_change

    def on_created(self, event: FileSystemEvent) -> None:
        path = Path(_decode(event.src_path))
        if isinstance(event, DirCreatedEvent):
            self._on_change(FileChange(path, ChangeType.DIR_ADDED))
        elif isinstance(event, FileCreatedEvent):
            self._on_change(FileChange(path, ChangeType.FILE_ADDED))

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory mtime changes carry no content to sync
        if isinstance(event, FileModifiedEvent):
            path = Path(_decode(event.src_path))
            self._on_change(FileChange(path, ChangeType.FILE_CHANGED))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = Path(_decode(event.src_path))
        if isinstance(event, DirDeletedEvent):
            self._on_change(FileChange(path, ChangeType.DIR_DELETED))
        elif isinstance(event, FileDeletedEvent):
            self._on_change(FileChange(path, ChangeType.FILE_DELETED))

    def on_moved(self, event: FileSystemEvent) -> None:
        src = Path(_decode(event.src_path))
        dest = Path(_decode(event.dest_path))
        if isinstance(event, DirMovedEvent):
            self._on_change(FileChange(src, ChangeType.DIR_DELETED))
            self._on_change(FileChange(dest, ChangeType.DIR_ADDED))
        elif isinstance(event, FileMovedEvent):
            self._on_change(FileChange(src, ChangeType.FILE_DELETED))
            self._on_change(FileChange(dest, ChangeType.FILE_ADDED))


class ThemeWatcher:
    """
    Watches the theme folder and synchronizes changes with the FTP server.

    Events for the same path are coalesced until the path has been quiet for
    stability_threshold seconds. Settled changes are queued and applied by a
    single worker thread, so at most one change is on the wire at a time.
    """

    def __init__(
        self,
        service: FTPService,
        translator: PathTranslator,
        stability_threshold: float = 0.3,
        ignore_patterns: Optional[List[str]] = None,
        observer_factory: Callable = Observer,
    ):
        """
        Args:
            service: Transfer service used to apply changes
            translator: Local/remote path mapping (its theme folder is watched)
            stability_threshold: Seconds a path must be quiet before syncing
            ignore_patterns: fnmatch patterns checked against each path component
            observer_factory: Creates the watchdog observer
        """
        self._service = service
        self._translator = translator
        self._stability_threshold = stability_threshold
        self._ignore_patterns = (
            list(ignore_patterns) if ignore_patterns is not None
            else list(DEFAULT_IGNORE_PATTERNS)
        )
        self._observer_factory = observer_factory

        self._observer = None
        self._handler = ThemeEventHandler(self.submit)
        self._queue: "queue.Queue[Optional[FileChange]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._timers: Dict[Path, threading.Timer] = {}
        self._lock = threading.Lock()

    @property
    def watch_path(self) -> Path:
        return self._translator.theme_folder_path

    def is_watching(self) -> bool:
        """True while the observer is running."""
        return self._observer is not None

    def should_ignore(self, path: Path) -> bool:
        """True if any component of path below the theme folder matches an ignore pattern."""
        relative = self._translator.get_relative_path(path)
        parts = Path(relative).parts if relative else ()
        return any(
            fnmatch.fnmatch(part, pattern)
            for part in parts
            for pattern in self._ignore_patterns
        )

    def start(self) -> None:
        """Start the dispatch worker and the file system observer."""
        if self._observer is not None:
            return

        logger.info(f"Monitoring changes in: {self.watch_path}")
        logger.info("Changes will be automatically synchronized with FTP")

        self._worker = threading.Thread(
            target=self._run_worker, name="theme-sync-worker", daemon=True
        )
        self._worker.start()

        observer = self._observer_factory()
        observer.schedule(self._handler, str(self.watch_path), recursive=True)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        """Stop observing, drop pending debounced events and join the worker."""
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5.0)

        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()

        if self._worker is not None:
            self._queue.put(None)
            self._worker.join(timeout=10.0)
            self._worker = None

        if observer is not None:
            logger.info("Monitoring stopped")

    def submit(self, change: FileChange) -> None:
        """Debounce a change; it is queued once its path settles."""
        if self.should_ignore(change.path):
            logger.debug(f"Ignoring change to {change.path}")
            return

        if self._stability_threshold <= 0:
            self._queue.put(change)
            return

        with self._lock:
            previous = self._timers.pop(change.path, None)
            if previous is not None:
                previous.cancel()
            timer = threading.Timer(self._stability_threshold, self._settle, (change,))
            timer.daemon = True
            self._timers[change.path] = timer
            timer.start()

    def _settle(self, change: FileChange) -> None:
        with self._lock:
            timer = self._timers.get(change.path)
            if timer is not threading.current_thread():
                # Superseded by a newer event for this path
                return
            del self._timers[change.path]
        self._queue.put(change)

    def _run_worker(self) -> None:
        while True:
            change = self._queue.get()
            try:
                if change is None:
                    return
                self.handle_change(change)
            finally:
                self._queue.task_done()

    def wait_idle(self) -> None:
        """Block until every queued change has been applied."""
        self._queue.join()

    def handle_change(self, change: FileChange) -> None:
        """
        Apply one change to the server.

        FTP failures are logged; the watcher keeps running.
        """
        relative = self._translator.get_relative_path(change.path)
        remote_path = self._translator.get_remote_path(change.path)
        change_type = change.change_type

        logger.info(f"[{change_type.value.upper()}] {relative}")

        try:
            if change_type in (ChangeType.FILE_ADDED, ChangeType.FILE_CHANGED):
                self._service.upload_file(change.path, remote_path)
            elif change_type == ChangeType.FILE_DELETED:
                self._service.delete_file(remote_path)
            elif change_type == ChangeType.DIR_ADDED:
                self._service.create_directory(remote_path)
            elif change_type == ChangeType.DIR_DELETED:
                self._service.remove_directory(remote_path)
        except FTPError as e:
            logger.error(f"Error syncing {relative} ({change_type.value}): {e}")

    def __enter__(self) -> "ThemeWatcher":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.stop()
