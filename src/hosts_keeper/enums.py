"""
Enumeration types for the hosts keeper system.

These enums provide type-safe constants for line kinds, configuration
options and log levels throughout the system.
"""

from enum import Enum


class LineKind(Enum):
    """Shape of a single physical line in a hosts file."""

    BLANK = "blank"
    COMMENT = "comment"
    MAPPING = "mapping"


class Theme(Enum):
    """User interface colour theme stored in the configuration."""

    DARK = "dark"
    LIGHT = "light"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        """Numeric rank used for level filtering."""
        return _SEVERITY[self]


_SEVERITY = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class LogFormat(Enum):
    """Output format of the audit logger."""

    JSON = "json"
    TEXT = "text"
    BOTH = "both"
