"""
Hostname and address validation, plus the blocking policy.

Provides normalization of user-supplied hostnames to canonical form
(lowercase, IDNA for international names), address parsing, and the
predicate that decides which hosts-file mappings count as blocked.
"""

import ipaddress
import re
from typing import Optional, Union

import idna

from hosts_keeper.exceptions import ValidationError


# Characters never valid in a hostname: control chars, whitespace, symbols.
# Underscores are tolerated because real blocklists contain them.
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)

MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63

# Loopback and null-route addresses used to sink traffic.
BLOCK_NETWORKS = (
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("0.0.0.0/32"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("::/128"),
)

LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain"})

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_ip(raw_ip: str) -> Optional[IPAddress]:
    """
    Parse an address token, ignoring an IPv6 zone suffix.

    Args:
        raw_ip: Address as written in the hosts file

    Returns:
        The parsed address, or None if the token is not an IP address
    """
    candidate = raw_ip.strip().split("%", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def normalize_ip(raw_ip: str) -> str:
    """
    Validate an address and return its compressed canonical text.

    Raises:
        ValidationError: If the value is not an IPv4/IPv6 address
    """
    parsed = parse_ip(raw_ip or "")
    if parsed is None:
        raise ValidationError(
            code="invalid_ip",
            message=f"Not a valid IP address: {raw_ip!r}",
            details={"ip": raw_ip},
        )
    return str(parsed)


def is_block_address(ip: Union[str, IPAddress, None]) -> bool:
    """Return True for loopback (127.0.0.0/8, ::1) and unspecified (0.0.0.0, ::) addresses."""
    if isinstance(ip, str):
        ip = parse_ip(ip)
    if ip is None:
        return False
    return any(ip.version == net.version and ip in net for net in BLOCK_NETWORKS)


def is_local_hostname(hostname: str) -> bool:
    """
    Check whether a hostname names the local machine.

    Single-label names (``router``, ``broadcasthost``) are treated as local,
    as are ``localhost``, ``localhost.localdomain`` and ``*.localhost``.
    """
    name = hostname.rstrip(".")
    if "." not in name:
        return True
    name = name.lower()
    return name in LOCAL_HOSTNAMES or name.endswith(".localhost")


def is_blocking_pair(ip: str, hostname: str) -> bool:
    """The blocking policy: a block address mapped to a non-local hostname."""
    return is_block_address(ip) and not is_local_hostname(hostname)


class HostnameValidator:
    """
    Validates and normalizes hostnames entered by the user.

    Handles:
    - Conversion to lowercase canonical form
    - IDNA encoding for international characters
    - Rejection of forbidden characters
    - RFC 1035 length limits for labels and the whole name
    """

    def validate(self, raw_hostname: str) -> str:
        """
        Validate a hostname and return its canonical form.

        Args:
            raw_hostname: The raw hostname string

        Returns:
            Canonical hostname (lowercase, IDNA-encoded if needed)

        Raises:
            ValidationError: If the hostname is empty or malformed
        """
        if not raw_hostname or not raw_hostname.strip():
            raise ValidationError(
                code="empty_input",
                message="Hostname is empty",
                details={"hostname": raw_hostname},
            )

        hostname = raw_hostname.strip()

        forbidden = FORBIDDEN_CHARS_PATTERN.findall(hostname)
        if forbidden:
            raise ValidationError(
                code="forbidden_chars",
                message="Hostname contains forbidden characters",
                details={"hostname": raw_hostname, "forbidden_chars": forbidden},
            )

        canonical = self.normalize_to_canonical(hostname)

        if len(canonical.rstrip(".")) > MAX_HOSTNAME_LENGTH:
            raise ValidationError(
                code="hostname_too_long",
                message=f"Hostname exceeds {MAX_HOSTNAME_LENGTH} characters",
                details={"hostname": raw_hostname, "length": len(canonical)},
            )

        for label in canonical.rstrip(".").split("."):
            self._check_label(label, raw_hostname)

        return canonical

    def normalize_to_canonical(self, hostname: str) -> str:
        """
        Convert a hostname to canonical form (lowercase, IDNA-encoded).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        lowered = hostname.lower()
        if all(ord(c) < 128 for c in lowered):
            return lowered
        try:
            return idna.encode(lowered, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code="idna_error",
                message=f"IDNA encoding failed: {e}",
                details={"hostname": hostname, "idna_error": str(e)},
            )

    def _check_label(self, label: str, raw_hostname: str) -> None:
        if not label:
            raise ValidationError(
                code="empty_label",
                message="Hostname contains an empty label",
                details={"hostname": raw_hostname},
            )
        if len(label) > MAX_LABEL_LENGTH:
            raise ValidationError(
                code="label_too_long",
                message=f"Label exceeds {MAX_LABEL_LENGTH} characters: {label}",
                details={"hostname": raw_hostname, "label": label},
            )
        if label.startswith("-") or label.endswith("-"):
            raise ValidationError(
                code="invalid_hyphen",
                message=f"Label may not start or end with a hyphen: {label}",
                details={"hostname": raw_hostname, "label": label},
            )
