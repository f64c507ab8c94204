"""
Commit Engine: atomic replacement of the live hosts file.

Content is written to a temporary file in the destination's directory,
flushed to disk and renamed over the destination, so a crash leaves either
the old or the new file, never a mix. A DNS-cache flush follows each
successful commit on a best-effort basis.
"""

import errno
import os
import stat
import tempfile
from pathlib import Path
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .domain_store import DomainStore
from .enums import LogLevel
from .exceptions import AtomicRenameError, DnsFlushError, IoError, PrivilegeError
from .parser import encode_hosts
from .system import flush_dns_cache


def atomic_write_bytes(destination: Path, data: bytes) -> None:
    """
    Atomically replace ``destination`` with ``data``.

    A symlinked destination is followed: the file it points to is
    replaced and the link itself is left in place.

    Raises:
        PrivilegeError: If the directory or file is not writable
        IoError: If the temporary file cannot be written (e.g. disk full)
        AtomicRenameError: If the final rename fails
    """
    destination = Path(destination)
    target = destination.resolve()
    directory = target.parent

    try:
        fd, temp_name = tempfile.mkstemp(
            dir=directory,
            prefix=f".{target.name}.",
            suffix=".tmp",
        )
    except OSError as e:
        raise _write_error(e, destination, "create temporary file")

    temp_path = Path(temp_name)
    try:
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            if target.exists():
                os.chmod(temp_path, stat.S_IMODE(target.stat().st_mode))
        except OSError as e:
            raise _write_error(e, destination, "write temporary file")

        try:
            os.replace(temp_path, target)
        except OSError as e:
            raise AtomicRenameError(
                code="rename_failed",
                message=f"Failed to move new content into place: {e.strerror or e}",
                details={
                    "path": str(destination),
                    "temp_path": str(temp_path),
                    "errno": e.errno,
                    "os_error": str(e),
                },
            )
    except BaseException:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        raise

    _fsync_directory(directory)


def _write_error(error: OSError, destination: Path, action: str) -> IoError:
    if error.errno in (errno.EACCES, errno.EPERM):
        return PrivilegeError(
            code="permission_denied",
            message=f"Permission denied writing {destination}; elevated privileges are required",
            details={"path": str(destination), "errno": error.errno, "os_error": str(error)},
        )
    return IoError.from_os_error(error, destination, action)


def _fsync_directory(directory: Path) -> None:
    """Persist the rename itself; not supported on Windows."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


class CommitEngine:
    """
    Writes hosts content to its destination atomically.

    The DNS flush after a successful write is best-effort: its failure is
    logged and never turns a completed commit into an error.
    """

    def __init__(
        self,
        logger: Optional[AuditLogger] = None,
        flush_dns: bool = True,
        dns_flusher: Callable[[], str] = flush_dns_cache,
    ) -> None:
        """
        Initialize the commit engine.

        Args:
            logger: Optional audit logger
            flush_dns: Run the platform DNS flush after each commit
            dns_flusher: Flush implementation (replaced in tests)
        """
        self._logger = logger
        self._flush_dns = flush_dns
        self._dns_flusher = dns_flusher

    def commit(self, store: DomainStore, destination: Path) -> None:
        """Serialize the store and write it atomically to ``destination``."""
        self.commit_bytes(encode_hosts(store.serialize()), destination)

    def commit_bytes(self, data: bytes, destination: Path) -> None:
        """
        Atomically write already-serialized content.

        Raises:
            IoError, PrivilegeError, AtomicRenameError: Destination unchanged
        """
        try:
            atomic_write_bytes(destination, data)
        except IoError as e:
            if self._logger:
                self._logger.log_error("commit", "Commit failed", e)
            raise
        except AtomicRenameError as e:
            if self._logger:
                self._logger.log_error("commit", "Atomic rename failed", e)
            raise

        if self._logger:
            self._logger.log(
                LogLevel.INFO,
                "commit",
                "Hosts file written",
                {"path": str(destination), "size": len(data)},
            )

        if self._flush_dns:
            self.flush_dns()

    def flush_dns(self) -> None:
        try:
            used = self._dns_flusher()
        except DnsFlushError as e:
            if self._logger:
                self._logger.log_error("commit", "DNS cache flush failed", e, level=LogLevel.WARN)
            return
        if self._logger:
            self._logger.log(LogLevel.DEBUG, "commit", "DNS cache flushed", {"command": used})
