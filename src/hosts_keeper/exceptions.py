"""
Exception classes for the hosts keeper system.

All exceptions inherit from HostsKeeperError and provide structured
error information with codes, messages, and optional details.
"""

import errno
from pathlib import Path
from typing import Optional, Union


class HostsKeeperError(Exception):
    """Base exception for all hosts keeper errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class IoError(HostsKeeperError):
    """Raised when a file operation fails (permission, missing path, disk full)."""

    @classmethod
    def from_os_error(
        cls,
        error: OSError,
        path: Union[str, Path],
        action: str,
    ) -> "IoError":
        """
        Wrap an OSError with the path and the action that failed.

        Args:
            error: The underlying OS error
            path: File or directory the operation targeted
            action: Short verb phrase, e.g. "read hosts file"

        Returns:
            IoError carrying the errno and OS message in its details
        """
        code = errno.errorcode.get(error.errno, "io_error").lower() if error.errno else "io_error"
        return cls(
            code=code,
            message=f"Failed to {action}: {error.strerror or error}",
            details={
                "path": str(path),
                "errno": error.errno,
                "os_error": str(error),
            },
        )


class ParseError(HostsKeeperError):
    """Raised when a line matches none of the grammar's line shapes."""

    def __init__(
        self,
        line_number: int,
        line: str,
        message: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.line_number = line_number
        self.line = line
        merged = {"line_number": line_number, "line": line}
        merged.update(details or {})
        super().__init__(
            code="parse_error",
            message=message or f"Line {line_number}: unrecognized content {line!r}",
            details=merged,
        )


class NotFoundError(HostsKeeperError):
    """Raised when a remove, rollback, or delete target is absent."""

    pass


class ValidationError(HostsKeeperError):
    """Raised for malformed hostnames/addresses and invalid configuration values."""

    pass


class AtomicRenameError(HostsKeeperError):
    """Raised when the final rename of an atomic write fails."""

    pass


class PrivilegeError(IoError):
    """Raised when a commit is attempted without write access to the hosts file."""

    pass


class NetworkError(HostsKeeperError):
    """Raised when downloading a remote blocklist fails."""

    pass


class DnsFlushError(HostsKeeperError):
    """Raised by the platform DNS-cache flush; logged by the commit engine, never propagated."""

    pass
