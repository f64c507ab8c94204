"""
Domain Store module: the in-memory model of a hosts file.

Holds the ordered line records of the document and derives the
blocked-domain view from them. All mutations stay in memory until the
caller commits the store through the commit engine.
"""

from pathlib import Path
from typing import Optional

from .audit_logger import AuditLogger
from .domain_validator import (
    HostnameValidator,
    is_block_address,
    is_blocking_pair,
    is_local_hostname,
    normalize_ip,
    parse_ip,
)
from .enums import LogLevel
from .exceptions import IoError, NotFoundError, ValidationError
from .models import BlockedDomain, LineRecord, Statistics
from .parser import decode_hosts, drop_hostname, make_mapping, parse, serialize


def read_hosts_bytes(path: Path) -> bytes:
    """
    Read a hosts file.

    Raises:
        IoError: If the file cannot be read
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise IoError.from_os_error(e, path, "read hosts file")


class DomainStore:
    """
    In-memory hosts document.

    Not thread-safe on its own; AppState serializes access to it.
    """

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._records: list[LineRecord] = []
        self._validator = HostnameValidator()
        self._logger = logger

    def load(self, path: Path) -> bytes:
        """
        Replace the document with the contents of a file.

        Args:
            path: Hosts file to read

        Returns:
            The raw bytes that were loaded

        Raises:
            IoError: If the file cannot be read
            ParseError: If the content is not a valid hosts file
        """
        data = read_hosts_bytes(path)
        self.load_bytes(data)
        self._log(LogLevel.DEBUG, "Loaded hosts file", {"path": str(path), "size": len(data)})
        return data

    def load_bytes(self, data: bytes) -> None:
        self.load_text(decode_hosts(data))

    def load_text(self, text: str) -> None:
        """Parse first, then swap, so a ParseError leaves the old records in place."""
        records = parse(text)
        self._records = records

    def clear(self) -> None:
        self._records = []

    @property
    def records(self) -> tuple[LineRecord, ...]:
        return tuple(self._records)

    def serialize(self) -> str:
        return serialize(self._records)

    def add(self, ip: str, hostname: str) -> bool:
        """
        Append a mapping for (ip, hostname) unless it already exists.

        A hostname already present under another spelling (different case,
        or Unicode versus its IDNA form) counts as the same pair.

        Args:
            ip: Block address (loopback or unspecified)
            hostname: Hostname to block

        Returns:
            True if a record was appended, False if the pair was already mapped

        Raises:
            ValidationError: If the address or hostname is malformed, the
                address is not a block address, or the hostname names the
                local machine
        """
        ip, hostname = self._validate_pair(ip, hostname)
        if is_local_hostname(hostname):
            raise ValidationError(
                code="local_hostname",
                message=f"{hostname} names the local machine and cannot be blocked",
                details={"ip": ip, "hostname": hostname},
            )

        if self._find(ip, hostname) is not None:
            return False

        eol = self._line_ending()
        if self._records and self._records[-1].eol == "":
            last = self._records[-1]
            self._records[-1] = LineRecord(
                kind=last.kind,
                text=last.text,
                eol=eol,
                ip=last.ip,
                hostnames=last.hostnames,
                comment=last.comment,
            )
        self._records.append(make_mapping(ip, hostname, eol))
        self._log(LogLevel.INFO, "Added blocked domain", {"ip": ip, "hostname": hostname})
        return True

    def remove(self, ip: str, hostname: str) -> None:
        """
        Remove the mapping for (ip, hostname).

        The hostname is matched as it appears in the file, so any pair
        reported by ``list_blocked`` can be passed back, even one the
        validator would reject for ``add``. A record that maps several
        hostnames keeps the others. Duplicate mappings of the same pair
        (possible in hand-edited files) are all removed so the pair is
        absent afterwards.

        Raises:
            ValidationError: If the address is malformed or not a block address
            NotFoundError: If no record maps the pair
        """
        ip = self._validate_address(ip)
        hostname = (hostname or "").strip()

        found = self._find(ip, hostname) if hostname else None
        if found is None:
            raise NotFoundError(
                code="domain_not_found",
                message=f"{hostname} is not mapped to {ip}",
                details={"ip": ip, "hostname": hostname},
            )

        while found is not None:
            index, token = found
            edited = drop_hostname(self._records[index], token)
            if edited is None:
                del self._records[index]
            else:
                self._records[index] = edited
            found = self._find(ip, hostname)

        self._log(LogLevel.INFO, "Removed blocked domain", {"ip": ip, "hostname": hostname})

    def list_blocked(self) -> list[BlockedDomain]:
        """Blocked (ip, hostname) pairs in insertion order, without duplicates."""
        seen: set[tuple[str, str]] = set()
        result: list[BlockedDomain] = []
        for record in self._records:
            if not record.is_mapping:
                continue
            for hostname in record.hostnames:
                if not is_blocking_pair(record.ip, hostname):
                    continue
                key = (str(parse_ip(record.ip)), self._hostname_key(hostname))
                if key in seen:
                    continue
                seen.add(key)
                result.append(BlockedDomain(ip=record.ip, hostname=hostname))
        return result

    def statistics(self) -> Statistics:
        blocked = self.list_blocked()
        unique_ips = {str(parse_ip(entry.ip)) for entry in blocked}
        return Statistics(total_blocked=len(blocked), unique_ips=len(unique_ips))

    def _validate_address(self, ip: str) -> str:
        ip = normalize_ip(ip)
        if not is_block_address(ip):
            raise ValidationError(
                code="not_block_address",
                message=f"{ip} is not a loopback or unspecified address",
                details={"ip": ip},
            )
        return ip

    def _validate_pair(self, ip: str, hostname: str) -> tuple[str, str]:
        return self._validate_address(ip), self._validator.validate(hostname)

    def _hostname_key(self, hostname: str) -> str:
        """Lowercase IDNA form of a file token; tokens that cannot be encoded compare case-folded."""
        try:
            return self._validator.normalize_to_canonical(hostname)
        except ValidationError:
            return hostname.lower()

    def _find(self, ip: str, hostname: str) -> Optional[tuple[int, str]]:
        """Index and raw token of the first record mapping the pair."""
        target_ip = parse_ip(ip)
        target = self._hostname_key(hostname)
        for index, record in enumerate(self._records):
            if not record.is_mapping or parse_ip(record.ip) != target_ip:
                continue
            for token in record.hostnames:
                if self._hostname_key(token) == target:
                    return index, token
        return None

    def _line_ending(self) -> str:
        """Terminator used by the document, so appended lines match it."""
        for record in reversed(self._records):
            if record.eol:
                return record.eol
        return "\n"

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "domain_store", message, data)
