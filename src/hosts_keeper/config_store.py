"""
Config Store: format-preserving persistence of config.ini.

The file is kept as a list of typed lines (blank, comment, section header,
key/value) so that comments, ordering, unknown keys and spacing survive a
load/save cycle unchanged. Updates only rewrite the value part of the
affected lines; keys that are missing are appended to their section.

    [hosts]
    host_file_path = /etc/hosts

    [history]
    history_dir = ~/.hosts_keeper/history
    max_history_entries = 50

    [appearance]
    theme = dark

    [logging]
    level = info
    format = text
"""

import copy
import re
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from .audit_logger import AuditLogger
from .commit import atomic_write_bytes
from .config import Configuration, clamp_history_entries
from .enums import LogFormat, LogLevel, Theme
from .exceptions import IoError, ParseError, ValidationError
from .parser import STRIP_CHARS, decode_hosts, encode_hosts, split_lines
from .system import default_config_path


SECTION_PATTERN = re.compile(r"^\s*\[\s*(?P<name>[^\]]+?)\s*\]\s*(?:[#;].*)?$")
KEY_VALUE_PATTERN = re.compile(
    r"^\s*(?P<key>[^=\s\[#;][^=]*?)\s*=\s*(?P<value>.*?)\s*(?:(?<=\s)[#;].*)?$"
)

# Configuration field -> (section, key)
FIELD_KEYS = {
    "host_file_path": ("hosts", "host_file_path"),
    "history_dir": ("history", "history_dir"),
    "max_history_entries": ("history", "max_history_entries"),
    "theme": ("appearance", "theme"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
}


@dataclass
class IniLine:
    """One physical line of config.ini."""

    kind: str  # 'blank', 'comment', 'section', 'value'
    text: str
    eol: str
    section: Optional[str] = None
    key: Optional[str] = None
    value: Optional[str] = None


def parse_ini(text: str) -> list[IniLine]:
    """
    Parse config.ini text into typed lines.

    Raises:
        ParseError: If a line is neither blank, comment, section nor key/value
    """
    lines = []
    section = None
    for number, (line, eol) in enumerate(split_lines(text), start=1):
        stripped = line.strip(STRIP_CHARS)
        if not stripped:
            lines.append(IniLine("blank", line, eol, section))
        elif stripped[0] in "#;":
            lines.append(IniLine("comment", line, eol, section))
        elif (match := SECTION_PATTERN.match(_without_bom(line))):
            section = match.group("name").lower()
            lines.append(IniLine("section", line, eol, section))
        elif (match := KEY_VALUE_PATTERN.match(_without_bom(line))):
            lines.append(
                IniLine(
                    "value",
                    line,
                    eol,
                    section,
                    key=match.group("key").lower(),
                    value=match.group("value"),
                )
            )
        else:
            raise ParseError(
                number,
                line,
                message=f"config line {number}: expected [section] or key = value",
            )
    return lines


def serialize_ini(lines: list[IniLine]) -> str:
    return "".join(line.text + line.eol for line in lines)


def _without_bom(line: str) -> str:
    return line.lstrip("\ufeff")


def _with_value(line: IniLine, value: str) -> IniLine:
    """Rewrite only the value part of a key/value line."""
    body = _without_bom(line.text)
    offset = len(line.text) - len(body)
    match = KEY_VALUE_PATTERN.match(body)
    start, end = (position + offset for position in match.span("value"))
    if start == end and value:
        # "key =" with nothing but an optional comment after it
        prefix = line.text[:start].rstrip()
        rest = line.text[end:]
        separator = " " if rest and not rest[0].isspace() else ""
        return replace(line, text=f"{prefix} {value}{separator}{rest}", value=value)
    return replace(line, text=line.text[:start] + value + line.text[end:], value=value)


def _parse_path(value: str) -> Optional[Path]:
    value = value.strip()
    return Path(value).expanduser() if value else None


def _parse_enum(enum_cls, value: str, field_name: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            code="invalid_config_value",
            message=f"{field_name} must be one of: {allowed}",
            details={"field": field_name, "value": value},
        )


def _parse_max_entries(value: Any) -> int:
    if isinstance(value, bool):
        value = str(value)
    if isinstance(value, int):
        return clamp_history_entries(value)
    try:
        return clamp_history_entries(int(str(value).strip()))
    except ValueError:
        raise ValidationError(
            code="invalid_config_value",
            message="max_history_entries must be an integer",
            details={"field": "max_history_entries", "value": value},
        )


def coerce_field(field_name: str, value: Any) -> Any:
    """
    Convert a raw value (from the file, the CLI or a caller) to the field's type.

    Raises:
        ValidationError: If the field is unknown or the value is invalid
    """
    if field_name in ("host_file_path", "history_dir"):
        if value is None or isinstance(value, Path):
            return value
        return _parse_path(str(value))
    if field_name == "max_history_entries":
        return _parse_max_entries(value)
    if field_name == "theme":
        return value if isinstance(value, Theme) else _parse_enum(Theme, str(value), field_name)
    if field_name == "log_level":
        if isinstance(value, LogLevel):
            return value
        return _parse_enum(LogLevel, str(value), field_name)
    if field_name == "log_format":
        if isinstance(value, LogFormat):
            return value
        return _parse_enum(LogFormat, str(value), field_name)
    raise ValidationError(
        code="unknown_config_field",
        message=f"Unknown configuration field: {field_name}",
        details={"field": field_name, "known": sorted(FIELD_KEYS)},
    )


def format_field(value: Any) -> str:
    """Render a field value the way it is written to config.ini."""
    if value is None:
        return ""
    if isinstance(value, (Theme, LogLevel, LogFormat)):
        return value.value
    return str(value)


class ConfigStore:
    """
    Loads, updates and saves the user configuration.

    Thread-safe; AppState additionally serializes configuration changes
    with its own lock so side effects (watcher restart, re-indexing) run
    in order.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the config store.

        Args:
            path: Location of config.ini (defaults to the per-user location)
            logger: Optional audit logger
        """
        self._path = Path(path) if path else default_config_path()
        self._logger = logger
        self._lines: list[IniLine] = []
        self._config = Configuration()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def configuration(self) -> Configuration:
        """A copy of the current configuration."""
        with self._lock:
            return copy.deepcopy(self._config)

    def load(self, path: Optional[Path] = None) -> Configuration:
        """
        Load config.ini; a missing file yields defaults and is not created.

        Raises:
            IoError: If the file exists but cannot be read
            ParseError: If a line is malformed
            ValidationError: If a known key holds an invalid value
        """
        if path is not None:
            self._path = Path(path)

        try:
            text = decode_hosts(self._path.read_bytes())
        except FileNotFoundError:
            with self._lock:
                self._lines = []
                self._config = Configuration()
            self._log(LogLevel.DEBUG, "No config file, using defaults", {"path": str(self._path)})
            return self.configuration
        except OSError as e:
            raise IoError.from_os_error(e, self._path, "read config file")

        lines = parse_ini(text)
        values = {}
        for line in lines:
            if line.kind != "value":
                continue
            for field_name, (section, key) in FIELD_KEYS.items():
                if line.section == section and line.key == key:
                    values[field_name] = coerce_field(field_name, line.value)

        with self._lock:
            self._lines = lines
            self._config = Configuration(**values)
        self._log(LogLevel.INFO, "Configuration loaded", {"path": str(self._path)})
        return self.configuration

    def save(self, path: Optional[Path] = None) -> None:
        """
        Write the configuration atomically.

        Raises:
            IoError: If the directory or file cannot be written
            AtomicRenameError: If the final rename fails
        """
        if path is not None:
            self._path = Path(path)

        with self._lock:
            self._sync_lines()
            text = serialize_ini(self._lines)

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoError.from_os_error(e, self._path.parent, "create config directory")

        atomic_write_bytes(self._path, encode_hosts(text))
        self._log(LogLevel.DEBUG, "Configuration saved", {"path": str(self._path)})

    def update(self, **partial: Any) -> Configuration:
        """
        Merge, validate and persist changed fields.

        Nothing is changed when any value is invalid.

        Returns:
            The updated configuration

        Raises:
            ValidationError: If a field is unknown or a value is invalid
        """
        coerced = {name: coerce_field(name, value) for name, value in partial.items()}

        with self._lock:
            previous = self._config
            self._config = replace(previous, **coerced)
        try:
            self.save()
        except Exception:
            with self._lock:
                self._config = previous
            raise

        self._log(
            LogLevel.INFO,
            "Configuration updated",
            {name: format_field(value) for name, value in coerced.items()},
        )
        return self.configuration

    def _sync_lines(self) -> None:
        """Bring the line list in step with the configuration values."""
        for field_name, (section, key) in FIELD_KEYS.items():
            current = getattr(self._config, field_name)
            value = format_field(current)
            index = self._find_key(section, key)
            if index is not None:
                # Compare parsed values so "~/x" is not rewritten as "/home/u/x"
                if coerce_field(field_name, self._lines[index].value) != current:
                    self._lines[index] = _with_value(self._lines[index], value)
                continue
            if value == format_field(getattr(Configuration(), field_name)):
                # Defaults are left implicit unless the file already has them
                continue
            self._insert_key(section, key, value)

    def _find_key(self, section: str, key: str) -> Optional[int]:
        """Index of the last line setting the key; the last one wins on load."""
        found = None
        for index, line in enumerate(self._lines):
            if line.kind == "value" and line.section == section and line.key == key:
                found = index
        return found

    def _insert_key(self, section: str, key: str, value: str) -> None:
        eol = self._line_ending()
        new_line = IniLine("value", f"{key} = {value}", eol, section, key, value)

        last_in_section = None
        for index, line in enumerate(self._lines):
            if line.section == section and line.kind in ("section", "value"):
                last_in_section = index

        if last_in_section is None:
            if self._lines and self._lines[-1].eol == "":
                self._lines[-1] = replace(self._lines[-1], eol=eol)
            if self._lines and self._lines[-1].kind != "blank":
                self._lines.append(IniLine("blank", "", eol, self._lines[-1].section))
            self._lines.append(IniLine("section", f"[{section}]", eol, section))
            self._lines.append(new_line)
            return

        anchor = self._lines[last_in_section]
        if anchor.eol == "":
            self._lines[last_in_section] = replace(anchor, eol=eol)
        self._lines.insert(last_in_section + 1, new_line)

    def _line_ending(self) -> str:
        for line in reversed(self._lines):
            if line.eol:
                return line.eol
        return "\n"

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "config", message, data)
