"""
Application State: the single owner of the hosts document, its history
and the user configuration.

Every front end talks to one AppState. It coordinates the components:
- Domain Store for the in-memory document
- History Manager for snapshot-before-commit and retention
- Commit Engine for atomic writes and the DNS flush
- Config Store for config.ini
- File Watcher for external edits

Locking: ``_hosts_lock`` guards the in-memory document, ``_commit_lock``
serializes every sequence that touches the hosts file or the history
directory, and ``_config_lock`` serializes configuration changes. Disk I/O
never runs while ``_hosts_lock`` is held, so reads and edits stay
responsive during a save.
"""

import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from .audit_logger import AuditLogger
from .blocklist_source import BlocklistSource
from .commit import CommitEngine
from .config import Configuration
from .config_store import ConfigStore
from .domain_store import DomainStore, read_hosts_bytes
from .enums import LogLevel
from .exceptions import PrivilegeError
from .history import HistoryManager
from .models import BlockedDomain, DeleteResult, HistoryEntry, Statistics
from .parser import encode_hosts
from .system import is_elevated
from .watcher import HostsFileWatcher


class AppState:
    """
    Shared application state.

    Safe to use from several threads; the file watcher calls back into
    ``reload_from_disk`` from its own thread.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        logger: Optional[AuditLogger] = None,
        commit_engine: Optional[CommitEngine] = None,
        privilege_check: Callable[[Path], bool] = is_elevated,
        blocklist_source: Optional[BlocklistSource] = None,
    ) -> None:
        """
        Initialize the application state. Nothing is read until ``load``.

        Args:
            config_path: Location of config.ini (defaults to the per-user location)
            logger: Optional audit logger shared by all components
            commit_engine: Commit engine (defaults to one that flushes DNS)
            privilege_check: Returns True if the given hosts file may be written
            blocklist_source: Fetcher used by ``import_from_url``
        """
        self._logger = logger
        self._config_store = ConfigStore(config_path, logger)
        self._store = DomainStore(logger)
        self._engine = commit_engine or CommitEngine(logger)
        self._privilege_check = privilege_check
        self._blocklist_source = blocklist_source or BlocklistSource(logger=logger)

        config = self._config_store.configuration
        self._history = HistoryManager(
            config.resolved_history_dir(), config.max_history_entries, logger
        )
        self._watcher: Optional[HostsFileWatcher] = None
        self._last_synced: Optional[bytes] = None

        self._hosts_lock = threading.RLock()
        self._commit_lock = threading.Lock()
        self._config_lock = threading.Lock()

    def load(self) -> None:
        """
        Read config.ini, index the history directory and load the hosts file.

        Raises:
            IoError: If a file exists but cannot be read
            ParseError: If config.ini or the hosts file is malformed
            ValidationError: If config.ini holds an invalid value
        """
        with self._config_lock:
            config = self._config_store.load()
            self._apply_log_level(config)
            with self._commit_lock:
                self._history = HistoryManager(
                    config.resolved_history_dir(), config.max_history_entries, self._logger
                )
                self._history.refresh()
                self._load_hosts(config.resolved_host_file_path())

    def _load_hosts(self, path: Path) -> None:
        """Load the hosts file; a missing file is an empty document."""
        if path.exists():
            data = read_hosts_bytes(path)
        else:
            data = b""
            self._log(LogLevel.WARN, "Hosts file does not exist", {"path": str(path)})
        with self._hosts_lock:
            self._store.load_bytes(data)
            self._last_synced = data
        self._log(LogLevel.INFO, "Hosts file loaded", {"path": str(path), "size": len(data)})

    # Domain operations

    def get_blocked_domains(self) -> list[BlockedDomain]:
        with self._hosts_lock:
            return self._store.list_blocked()

    def get_statistics(self) -> Statistics:
        with self._hosts_lock:
            return self._store.statistics()

    def add_domain(self, ip: str, hostname: str) -> bool:
        """
        Block a hostname in memory; call ``save_changes`` to persist.

        Returns:
            True if a mapping was added, False if it already existed

        Raises:
            ValidationError: If the address or hostname is invalid
        """
        with self._hosts_lock:
            return self._store.add(ip, hostname)

    def remove_domain(self, ip: str, hostname: str) -> None:
        """
        Unblock a hostname in memory; call ``save_changes`` to persist.

        Raises:
            ValidationError: If the address is invalid
            NotFoundError: If the pair is not mapped
        """
        with self._hosts_lock:
            self._store.remove(ip, hostname)

    def export_hosts(self) -> str:
        """The in-memory document as hosts-file text."""
        with self._hosts_lock:
            return self._store.serialize()

    def import_hosts(self, content: str) -> None:
        """
        Replace the in-memory document with ``content``.

        Raises:
            ParseError: If the content is not a hosts file (nothing changes)
        """
        with self._hosts_lock:
            self._store.load_text(content)
        self._log(LogLevel.INFO, "Imported hosts content", {"size": len(content)})

    def import_from_url(self, url: str, ip: Optional[str] = None) -> int:
        """
        Merge the blocking pairs of a remote blocklist into the document.

        Args:
            url: HTTPS URL of a hosts-format blocklist
            ip: Block address for every imported hostname (defaults to the
                address used by the list)

        Returns:
            Number of newly added pairs

        Raises:
            ValidationError: If the URL is not HTTPS or ``ip`` is not a block address
            NetworkError: If the download fails
        """
        pairs = self._blocklist_source.fetch(url)
        added = 0
        with self._hosts_lock:
            for pair in pairs:
                if self._store.add(ip or pair.ip, pair.hostname):
                    added += 1
        self._log(
            LogLevel.INFO,
            "Imported blocklist",
            {"url": url, "fetched": len(pairs), "added": added},
        )
        return added

    # Persistence

    def save_changes(self) -> HistoryEntry:
        """
        Snapshot the live hosts file, then atomically write the document.

        Returns:
            The snapshot taken of the previous content

        Raises:
            PrivilegeError: If the hosts file is not writable (nothing happens)
            IoError, AtomicRenameError: If the write fails (live file unchanged)
        """
        path = self.get_host_file_path()
        self._require_privileges(path)

        with self._commit_lock:
            with self._hosts_lock:
                data = encode_hosts(self._store.serialize())
            entry = self._history.save(data, path, self._engine)
            self._last_synced = data

        self._log(LogLevel.INFO, "Changes saved", {"path": str(path), "snapshot": entry.filename})
        return entry

    def get_history_list(self) -> list[HistoryEntry]:
        """Snapshots, newest first."""
        return self._history.list_entries()

    def rollback_to(self, filename: str) -> None:
        """
        Restore a snapshot as the live hosts file and reload the document.

        Unsaved in-memory edits are discarded.

        The pre-rollback snapshot is pruned like any save, so with
        ``max_history_entries`` set to 1 the restored snapshot is evicted
        from history once its content is live.

        Raises:
            PrivilegeError: If the hosts file is not writable
            NotFoundError: If the snapshot does not exist
            ParseError, ValidationError: If the snapshot is not a valid hosts file
        """
        path = self.get_host_file_path()
        self._require_privileges(path)

        with self._commit_lock:
            data = self._history.rollback(filename, path, self._engine)
            with self._hosts_lock:
                self._store.load_bytes(data)
            self._last_synced = data

    def delete_history_files(self, filenames: Iterable[str]) -> list[DeleteResult]:
        with self._commit_lock:
            return self._history.delete(list(filenames))

    def reload_from_disk(self) -> bool:
        """
        Reload the document if the hosts file differs from what was last
        loaded or written.

        Returns:
            True if the document was reloaded

        Raises:
            IoError: If the file cannot be read
            ParseError: If the file is malformed (the document is kept)
        """
        with self._commit_lock:
            path = self.get_host_file_path()
            data = read_hosts_bytes(path)
            if data == self._last_synced:
                return False
            with self._hosts_lock:
                self._store.load_bytes(data)
            self._last_synced = data

        self._log(LogLevel.INFO, "Reloaded hosts file after external change", {"path": str(path)})
        return True

    # Configuration

    def get_config(self) -> Configuration:
        return self._config_store.configuration

    @property
    def config_path(self) -> Path:
        return self._config_store.path

    def get_host_file_path(self) -> Path:
        return self._config_store.configuration.resolved_host_file_path()

    def update_config(self, **partial) -> Configuration:
        """
        Update and persist configuration fields, applying their side effects.

        Changing ``host_file_path`` reloads the document (and moves the
        watcher), changing ``history_dir`` re-indexes history, and lowering
        ``max_history_entries`` prunes immediately.

        Raises:
            ValidationError: If a field is unknown or a value is invalid
        """
        with self._config_lock:
            before = self._config_store.configuration
            after = self._config_store.update(**partial)

            with self._commit_lock:
                if after.resolved_history_dir() != before.resolved_history_dir():
                    self._history = HistoryManager(
                        after.resolved_history_dir(), after.max_history_entries, self._logger
                    )
                    self._history.refresh()
                    self._history.prune()
                elif after.max_history_entries != before.max_history_entries:
                    self._history.max_entries = after.max_history_entries
                    self._history.prune()

                host_path_changed = (
                    after.resolved_host_file_path() != before.resolved_host_file_path()
                )
                if host_path_changed:
                    self._load_hosts(after.resolved_host_file_path())

            if host_path_changed and self._watcher is not None:
                self.stop_watcher()
                self.start_watcher()

            self._apply_log_level(after)
        return after

    def check_admin_privileges(self) -> bool:
        return self._privilege_check(self.get_host_file_path())

    # Lifecycle

    def start_watcher(self) -> HostsFileWatcher:
        """Reload the document whenever the hosts file changes on disk."""
        if self._watcher is None:
            self._watcher = HostsFileWatcher(
                self.get_host_file_path(),
                self.reload_from_disk,
                logger=self._logger,
            )
            self._watcher.start()
        return self._watcher

    def stop_watcher(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

    def close(self) -> None:
        self.stop_watcher()

    def __enter__(self) -> "AppState":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _require_privileges(self, path: Path) -> None:
        if not self._privilege_check(path):
            raise PrivilegeError(
                code="not_elevated",
                message=f"Writing {path} requires administrator/root privileges",
                details={"path": str(path)},
            )

    def _apply_log_level(self, config: Configuration) -> None:
        if self._logger:
            self._logger.min_level = config.log_level

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "app_state", message, data)
