"""
Audit Logger module for the hosts keeper system.

Provides structured logging with dual-format output (JSON and human-readable
text) so every change to the hosts file leaves a trace that is both readable
on a terminal and machine-parseable.
"""

import json
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TextIO, Union

from hosts_keeper.enums import LogFormat, LogLevel
from hosts_keeper.exceptions import HostsKeeperError


@dataclass
class LogEntry:
    """Represents a single log entry with all metadata."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class AuditLogger:
    """
    Structured logger with JSON and text output.

    Supports:
    - JSON, human-readable text, or both per entry
    - A minimum level below which entries are dropped
    - Full error context for HostsKeeperError instances
    - In-memory retention of emitted entries (used by tests)
    """

    MAX_RETAINED_ENTRIES = 1000

    def __init__(
        self,
        output_format: Union[str, LogFormat] = LogFormat.TEXT,
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
    ):
        """
        Initialize the audit logger.

        Args:
            output_format: 'json', 'text', or 'both'
            output_stream: Output stream for log entries (defaults to sys.stderr)
            min_level: Entries below this level are discarded
        """
        try:
            self._output_format = LogFormat(output_format)
        except ValueError:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_stream = output_stream or sys.stderr
        self._min_level = min_level
        self._entries: list[LogEntry] = []
        self._lock = threading.Lock()

    @property
    def output_format(self) -> LogFormat:
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @min_level.setter
    def min_level(self, level: LogLevel) -> None:
        self._min_level = level

    @property
    def entries(self) -> list[LogEntry]:
        """Get all retained entries (for testing)."""
        with self._lock:
            return self._entries.copy()

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an entry in the configured format(s).

        Args:
            level: Log severity level
            component: Component name generating the log
            message: Human-readable log message
            data: Optional additional data to include

        Returns:
            The created LogEntry, or None if filtered by level
        """
        if level.severity < self._min_level.severity:
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=dict(data or {}),
        )

        # The watcher logs from its own thread
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.MAX_RETAINED_ENTRIES:
                del self._entries[0]
            self._output_entry(entry)

        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[BaseException] = None,
        additional_data: Optional[dict] = None,
        level: LogLevel = LogLevel.ERROR,
    ) -> Optional[LogEntry]:
        """
        Log an error with full context.

        Args:
            component: Component name generating the log
            message: Human-readable error message
            error: Optional exception object
            additional_data: Optional additional context data
            level: Severity, ERROR unless the failure is tolerated

        Returns:
            The created LogEntry object
        """
        data = additional_data.copy() if additional_data else {}

        if error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__
            if isinstance(error, HostsKeeperError):
                data["error_code"] = error.code
                data["error_details"] = error.details

        return self.log(level, component, message, data)

    def _output_entry(self, entry: LogEntry) -> None:
        if self._output_format in (LogFormat.JSON, LogFormat.BOTH):
            self._output_stream.write(self._format_json(entry) + "\n")

        if self._output_format in (LogFormat.TEXT, LogFormat.BOTH):
            self._output_stream.write(self._format_text(entry) + "\n")

        self._output_stream.flush()

    def _format_json(self, entry: LogEntry) -> str:
        obj = {
            "timestamp": entry.timestamp,
            "level": entry.level.value,
            "component": entry.component,
            "message": entry.message,
            "data": entry.data,
        }
        return json.dumps(obj, ensure_ascii=False, default=str)

    def _format_text(self, entry: LogEntry) -> str:
        # Format: [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        parts = [
            f"[{entry.timestamp}]",
            entry.level.value.upper(),
            f"[{entry.component}]",
            entry.message,
        ]

        if entry.data:
            parts.append(json.dumps(entry.data, ensure_ascii=False, default=str))

        return " ".join(parts)

    def get_json_output(self, entry: LogEntry) -> str:
        """Get JSON output for an entry (for testing)."""
        return self._format_json(entry)

    def get_text_output(self, entry: LogEntry) -> str:
        """Get text output for an entry (for testing)."""
        return self._format_text(entry)

    def clear_entries(self) -> None:
        """Clear all stored log entries (for testing)."""
        self._entries.clear()
