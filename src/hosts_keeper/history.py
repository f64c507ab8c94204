"""
History Manager: bounded, restorable snapshots of the hosts file.

Before every commit the live file's bytes are copied into the history
directory. The in-memory index mirrors the snapshot files on disk: an entry
is only listed while its file exists, and files are only removed together
with their index entry. When the index grows beyond the retention cap the
oldest snapshots are evicted.

Snapshot filenames encode their creation time with nanosecond precision,

    hosts-backup-20261018T131501-000123456-0.txt

so the index can be rebuilt from a directory listing alone.
"""

import re
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from .audit_logger import AuditLogger
from .commit import atomic_write_bytes
from .config import DEFAULT_HISTORY_ENTRIES, clamp_history_entries
from .domain_validator import MAX_HOSTNAME_LENGTH
from .enums import LogLevel
from .exceptions import HostsKeeperError, IoError, NotFoundError, ParseError, ValidationError
from .models import DeleteResult, HistoryEntry
from .parser import count_entries, decode_hosts, parse

if TYPE_CHECKING:
    from .commit import CommitEngine


FILENAME_PATTERN = re.compile(
    r"^hosts-backup-(?P<stamp>\d{8}T\d{6})-(?P<nanos>\d{9})-(?P<counter>\d+)\.txt$"
)
STAMP_FORMAT = "%Y%m%dT%H%M%S"

NANOS_PER_SECOND = 1_000_000_000


def snapshot_time_ns(filename: str) -> Optional[int]:
    """Creation time encoded in a snapshot filename, or None for foreign files."""
    match = FILENAME_PATTERN.match(filename)
    if not match:
        return None
    moment = datetime.strptime(match.group("stamp"), STAMP_FORMAT).replace(tzinfo=timezone.utc)
    return int(moment.timestamp()) * NANOS_PER_SECOND + int(match.group("nanos"))


def _age_key(filename: str) -> tuple[int, int, str]:
    """Sort key: creation time, then counter, then filename."""
    match = FILENAME_PATTERN.match(filename)
    return (snapshot_time_ns(filename) or 0, int(match.group("counter")) if match else 0, filename)


def count_snapshot_entries(text: str) -> int:
    """Mapping lines in a snapshot; falls back to a line count for unparsable content."""
    try:
        return count_entries(parse(text))
    except ParseError:
        return sum(
            1 for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")
        )


class HistoryManager:
    """
    Snapshot index over a history directory.

    Thread-safe: the index is guarded by an internal lock so listing can
    run while a save is in progress.
    """

    def __init__(
        self,
        history_dir: Path,
        max_entries: int = DEFAULT_HISTORY_ENTRIES,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the history manager.

        Args:
            history_dir: Directory holding the snapshot files
            max_entries: Retention cap, clamped to [1, 1000]
            logger: Optional audit logger
        """
        self._dir = Path(history_dir)
        self._max_entries = clamp_history_entries(max_entries)
        self._logger = logger
        self._entries: list[HistoryEntry] = []  # oldest first
        self._lock = threading.RLock()
        self._last_time_ns = 0

    @property
    def history_dir(self) -> Path:
        return self._dir

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @max_entries.setter
    def max_entries(self, value: int) -> None:
        self._max_entries = clamp_history_entries(value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def refresh(self) -> list[HistoryEntry]:
        """
        Rebuild the index from the snapshot files on disk.

        Returns:
            The entries, newest first

        Raises:
            IoError: If the directory exists but cannot be listed
        """
        entries = []
        if self._dir.is_dir():
            try:
                paths = [p for p in self._dir.iterdir() if FILENAME_PATTERN.match(p.name)]
            except OSError as e:
                raise IoError.from_os_error(e, self._dir, "list history directory")

            for path in paths:
                try:
                    data = path.read_bytes()
                except OSError as e:
                    self._log_error("Skipping unreadable snapshot", e, {"path": str(path)})
                    continue
                entries.append(self._make_entry(path, data))

        entries.sort(key=lambda entry: _age_key(entry.filename))
        with self._lock:
            self._entries = entries
            if entries:
                self._last_time_ns = max(
                    self._last_time_ns, snapshot_time_ns(entries[-1].filename) or 0
                )
        self._log(LogLevel.DEBUG, "History index rebuilt", {"entries": len(entries)})
        return self.list_entries()

    def list_entries(self) -> list[HistoryEntry]:
        """All entries, newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def get(self, filename: str) -> HistoryEntry:
        """
        Look up an entry by filename.

        Raises:
            NotFoundError: If no such entry is indexed
        """
        with self._lock:
            for entry in self._entries:
                if entry.filename == filename:
                    return entry
        raise NotFoundError(
            code="history_entry_not_found",
            message=f"History entry not found: {filename}",
            details={"filename": filename, "history_dir": str(self._dir)},
        )

    def snapshot(self, destination: Path) -> HistoryEntry:
        """
        Copy the current bytes of ``destination`` into a new snapshot.

        A missing destination is recorded as an empty snapshot, so the
        pre-save state is always restorable.

        Raises:
            IoError: If the live file cannot be read or the snapshot written
            AtomicRenameError: If the snapshot cannot be moved into place
        """
        try:
            data = Path(destination).read_bytes()
        except FileNotFoundError:
            data = b""
        except OSError as e:
            raise IoError.from_os_error(e, destination, "read hosts file for snapshot")

        return self._write_snapshot(data)

    def save(self, data: bytes, destination: Path, engine: "CommitEngine") -> HistoryEntry:
        """
        Snapshot the live file, commit ``data`` over it, then prune.

        If the snapshot fails nothing is committed. If the commit fails the
        new snapshot is discarded, so history never records a save that
        did not happen.

        Returns:
            The snapshot of the pre-save content
        """
        entry = self.snapshot(destination)
        try:
            engine.commit_bytes(data, destination)
        except HostsKeeperError:
            self._discard(entry)
            raise
        self.prune()
        return entry

    def rollback(self, filename: str, destination: Path, engine: "CommitEngine") -> bytes:
        """
        Restore a snapshot as the live file.

        The current live content is itself snapshotted first, so a rollback
        can be undone like any other save.

        The new snapshot counts against the retention cap like any other,
        so with a cap of one it replaces the snapshot being restored.

        Returns:
            The restored bytes
        """
        data = self.read_verified(filename)
        self.save(data, destination, engine)
        self._log(LogLevel.INFO, "Rolled back hosts file", {"filename": filename})
        return data

    def read_verified(self, filename: str) -> bytes:
        """
        Read a snapshot and check that it is a usable hosts file.

        Raises:
            NotFoundError: If the entry or its file is missing
            IoError: If the file cannot be read
            ParseError: If the content is not a valid hosts file
            ValidationError: If a hostname exceeds the DNS length limit
        """
        entry = self.get(filename)
        try:
            data = entry.path.read_bytes()
        except FileNotFoundError:
            self._forget(entry)
            raise NotFoundError(
                code="snapshot_missing",
                message=f"Snapshot file is missing: {filename}",
                details={"filename": filename, "path": str(entry.path)},
            )
        except OSError as e:
            raise IoError.from_os_error(e, entry.path, "read snapshot")

        for record in parse(decode_hosts(data)):
            for hostname in record.hostnames:
                if len(hostname.rstrip(".")) > MAX_HOSTNAME_LENGTH:
                    raise ValidationError(
                        code="hostname_too_long",
                        message=f"Snapshot contains an over-long hostname: {hostname[:40]}...",
                        details={"filename": filename, "length": len(hostname)},
                    )
        return data

    def prune(self) -> list[HistoryEntry]:
        """
        Evict the oldest entries until the index is within the retention cap.

        Returns:
            The evicted entries, oldest first
        """
        evicted = []
        with self._lock:
            while len(self._entries) > self._max_entries:
                oldest = self._entries[0]
                try:
                    oldest.path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    # Keep index and disk consistent; retry on the next prune
                    self._log_error("Failed to evict snapshot", e, {"path": str(oldest.path)})
                    break
                del self._entries[0]
                evicted.append(oldest)

        if evicted:
            self._log(
                LogLevel.INFO,
                "Pruned history",
                {"evicted": [e.filename for e in evicted], "max_entries": self._max_entries},
            )
        return evicted

    def delete(self, filenames: Iterable[str]) -> list[DeleteResult]:
        """
        Delete a batch of snapshots.

        Each filename is handled independently; one failure does not stop
        the rest of the batch.

        Returns:
            One DeleteResult per requested filename, in request order
        """
        results = []
        for filename in filenames:
            try:
                self._delete_one(filename)
            except HostsKeeperError as e:
                results.append(DeleteResult(filename=filename, deleted=False, error=e.message))
            else:
                results.append(DeleteResult(filename=filename, deleted=True))

        self._log(
            LogLevel.INFO,
            "Deleted history entries",
            {
                "deleted": [r.filename for r in results if r.deleted],
                "failed": [r.filename for r in results if not r.deleted],
            },
        )
        return results

    def _delete_one(self, filename: str) -> None:
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise ValidationError(
                code="invalid_filename",
                message=f"Invalid history filename: {filename!r}",
                details={"filename": filename},
            )

        entry = self.get(filename)
        try:
            entry.path.unlink()
        except FileNotFoundError:
            self._forget(entry)
            raise NotFoundError(
                code="snapshot_missing",
                message=f"Snapshot file is missing: {filename}",
                details={"filename": filename, "path": str(entry.path)},
            )
        except OSError as e:
            raise IoError.from_os_error(e, entry.path, "delete snapshot")
        self._forget(entry)

    def _write_snapshot(self, data: bytes) -> HistoryEntry:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoError.from_os_error(e, self._dir, "create history directory")

        with self._lock:
            # Strictly increasing, so filename order is creation order
            now_ns = max(time.time_ns(), self._last_time_ns + 1)
            self._last_time_ns = now_ns

            seconds, nanos = divmod(now_ns, NANOS_PER_SECOND)
            stamp = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(STAMP_FORMAT)
            counter = 0
            path = self._dir / f"hosts-backup-{stamp}-{nanos:09d}-{counter}.txt"
            while path.exists():
                counter += 1
                path = self._dir / f"hosts-backup-{stamp}-{nanos:09d}-{counter}.txt"

            atomic_write_bytes(path, data)
            entry = self._make_entry(path, data)
            self._entries.append(entry)
            self._entries.sort(key=lambda e: _age_key(e.filename))

        self._log(
            LogLevel.INFO,
            "Snapshot recorded",
            {"filename": entry.filename, "entry_count": entry.entry_count, "size": entry.file_size},
        )
        return entry

    def _make_entry(self, path: Path, data: bytes) -> HistoryEntry:
        time_ns = snapshot_time_ns(path.name) or 0
        return HistoryEntry(
            filename=path.name,
            path=path,
            entry_count=count_snapshot_entries(decode_hosts(data)),
            file_size=len(data),
            timestamp=time_ns // NANOS_PER_SECOND,
        )

    def _discard(self, entry: HistoryEntry) -> None:
        try:
            entry.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            # The file stays indexed so it is never orphaned
            self._log_error("Failed to discard snapshot", e, {"path": str(entry.path)})
            return
        self._forget(entry)

    def _forget(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._entries = [e for e in self._entries if e.filename != entry.filename]

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "history", message, data)

    def _log_error(self, message: str, error: BaseException, data: dict) -> None:
        if self._logger:
            self._logger.log_error("history", message, error, data)
