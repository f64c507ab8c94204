"""
Data models for the hosts keeper system.

This module defines the line records produced by the hosts grammar, the
derived blocked-domain view, and the history metadata exposed to callers.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .enums import LineKind


@dataclass(frozen=True)
class LineRecord:
    """
    A single physical line of a hosts file.

    ``text`` is the line exactly as read (without its terminator) and ``eol``
    the terminator itself, so ``text + eol`` reproduces the original bytes.
    The ``ip``, ``hostnames`` and ``comment`` fields are only set for
    MAPPING records.
    """

    kind: LineKind
    text: str
    eol: str = "\n"
    ip: Optional[str] = None
    hostnames: tuple[str, ...] = field(default_factory=tuple)
    comment: Optional[str] = None

    @property
    def is_mapping(self) -> bool:
        return self.kind is LineKind.MAPPING

    def render(self) -> str:
        """Return the line including its terminator."""
        return self.text + self.eol


@dataclass(frozen=True)
class BlockedDomain:
    """One (ip, hostname) pair considered blocked."""

    ip: str
    hostname: str

    def to_dict(self) -> dict:
        return {"ip": self.ip, "hostname": self.hostname}


@dataclass(frozen=True)
class Statistics:
    """Aggregate counts over the blocked-domain view."""

    total_blocked: int
    unique_ips: int

    def to_dict(self) -> dict:
        return {"total_blocked": self.total_blocked, "unique_ips": self.unique_ips}


@dataclass(frozen=True)
class HistoryEntry:
    """Metadata of one immutable hosts-file snapshot."""

    filename: str
    path: Path
    entry_count: int
    file_size: int
    timestamp: int  # unix seconds

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "filename": self.filename,
            "path": str(self.path),
            "entry_count": self.entry_count,
            "file_size": self.file_size,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of deleting a single history snapshot in a batch."""

    filename: str
    deleted: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"filename": self.filename, "deleted": self.deleted, "error": self.error}
