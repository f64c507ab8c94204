"""
File Watcher: notices external edits to the hosts file.

The parent directory is observed rather than the file itself, because an
atomic write replaces the file with a rename and a watch on the old inode
would go silent. Bursts of events (editors typically write, chmod and
rename) are coalesced into a single callback after a quiet period.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .audit_logger import AuditLogger
from .enums import LogLevel


DEFAULT_DEBOUNCE_SECONDS = 0.5


class _TargetEventHandler(FileSystemEventHandler):
    """Forwards events that touch the watched path."""

    def __init__(self, target: Path, notify: Callable[[], None]) -> None:
        super().__init__()
        self._target = os.path.normcase(os.path.abspath(target))
        self._notify = notify

    def _matches(self, raw_path) -> bool:
        if not raw_path:
            return False
        if isinstance(raw_path, bytes):
            raw_path = os.fsdecode(raw_path)
        return os.path.normcase(os.path.abspath(raw_path)) == self._target

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # Renames into place report the target as dest_path
        if self._matches(event.src_path) or self._matches(getattr(event, "dest_path", "")):
            self._notify()


class HostsFileWatcher:
    """
    Debounced watcher for a single file.

    The callback runs on a timer thread, once per burst of events. An
    exception raised by the callback is logged and the watcher keeps
    running, so the next change retries.
    """

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], None],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the watcher.

        Args:
            path: File to watch
            on_change: Called after a burst of changes has settled
            debounce_seconds: Quiet period before the callback runs
            logger: Optional audit logger
        """
        self._path = Path(path)
        self._on_change = on_change
        self._debounce_seconds = debounce_seconds
        self._logger = logger
        self._observer: Optional[Observer] = None
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._observer is not None

    def start(self) -> None:
        """Begin observing the file's directory. Calling twice is a no-op."""
        with self._lock:
            if self._observer is not None:
                return
            handler = _TargetEventHandler(self._path, self.trigger)
            observer = Observer()
            observer.schedule(handler, str(self._path.parent), recursive=False)
            observer.daemon = True
            observer.start()
            self._observer = observer
        self._log(LogLevel.INFO, "Watching hosts file", {"path": str(self._path)})

    def stop(self) -> None:
        """Stop observing and cancel any pending callback."""
        with self._lock:
            observer, self._observer = self._observer, None
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)
            self._log(LogLevel.INFO, "Stopped watching hosts file", {"path": str(self._path)})

    def trigger(self) -> None:
        """Schedule the callback, restarting the quiet period if one is pending."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._debounce_seconds, self._fire)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self._on_change()
        except Exception as e:
            if self._logger:
                self._logger.log_error(
                    "watcher",
                    "Reload after file change failed",
                    e,
                    {"path": str(self._path)},
                )

    def __enter__(self) -> "HostsFileWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "watcher", message, data)
