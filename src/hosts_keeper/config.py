"""
Configuration dataclasses for the hosts keeper system.

Defines the user-editable configuration record and the rules that keep
its values in range. Parsing and persistence live in config_store.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .enums import LogFormat, LogLevel, Theme
from .system import default_history_dir, default_hosts_file_path


MIN_HISTORY_ENTRIES = 1
MAX_HISTORY_ENTRIES = 1000
DEFAULT_HISTORY_ENTRIES = 50


def clamp_history_entries(value: int) -> int:
    """Clamp a retention cap to [MIN_HISTORY_ENTRIES, MAX_HISTORY_ENTRIES]."""
    return max(MIN_HISTORY_ENTRIES, min(MAX_HISTORY_ENTRIES, int(value)))


@dataclass
class Configuration:
    """User configuration persisted in config.ini."""

    host_file_path: Optional[Path] = None
    history_dir: Optional[Path] = None
    max_history_entries: int = DEFAULT_HISTORY_ENTRIES
    theme: Theme = Theme.DARK
    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat = LogFormat.TEXT

    def __post_init__(self) -> None:
        self.max_history_entries = clamp_history_entries(self.max_history_entries)

    def resolved_host_file_path(self) -> Path:
        """The configured hosts path, or the platform default."""
        return self.host_file_path or default_hosts_file_path()

    def resolved_history_dir(self) -> Path:
        """The configured history directory, or the default under the app home."""
        return self.history_dir or default_history_dir()

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "host_file_path": str(self.host_file_path) if self.host_file_path else None,
            "history_dir": str(self.history_dir) if self.history_dir else None,
            "max_history_entries": self.max_history_entries,
            "theme": self.theme.value,
            "log_level": self.log_level.value,
            "log_format": self.log_format.value,
        }
