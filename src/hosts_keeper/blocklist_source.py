"""
Blocklist Source: downloads published hosts-format blocklists.

Only HTTPS URLs are accepted and certificates are verified. The body is
read with the hosts grammar and reduced to its blocking pairs; lines that
do not parse, or whose hostname does not validate, are skipped and counted.
"""

from typing import Optional
from urllib.parse import urlparse

import httpx

from .audit_logger import AuditLogger
from .domain_validator import HostnameValidator, is_blocking_pair, parse_ip
from .enums import LogLevel
from .exceptions import NetworkError, ParseError, ValidationError
from .models import BlockedDomain
from .parser import parse_line, split_lines

USER_AGENT = "hosts-keeper"


def parse_blocklist(text: str) -> tuple[list[BlockedDomain], int]:
    """
    Extract blocking pairs from hosts-format text.

    Returns:
        (pairs in order of appearance without duplicates, number of skipped lines)
    """
    validator = HostnameValidator()
    pairs: list[BlockedDomain] = []
    seen: set[tuple[str, str]] = set()
    skipped = 0

    for number, (line, eol) in enumerate(split_lines(text), start=1):
        try:
            record = parse_line(line, eol, number)
        except ParseError:
            skipped += 1
            continue
        if not record.is_mapping:
            continue

        for hostname in record.hostnames:
            if not is_blocking_pair(record.ip, hostname):
                continue
            try:
                canonical = validator.validate(hostname)
            except ValidationError:
                skipped += 1
                continue
            key = (str(parse_ip(record.ip)), canonical)
            if key not in seen:
                seen.add(key)
                pairs.append(BlockedDomain(ip=record.ip, hostname=canonical))

    return pairs, skipped


class BlocklistSource:
    """Synchronous HTTPS fetcher for remote blocklists."""

    def __init__(
        self,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the blocklist source.

        Args:
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
            logger: Optional audit logger
        """
        self._timeout = timeout
        self._transport = transport
        self._logger = logger

    def _validate_url(self, url: str) -> None:
        """
        Raises:
            ValidationError: If the URL does not use HTTPS
        """
        parsed = urlparse(url)
        if parsed.scheme.lower() != "https" or not parsed.netloc:
            raise ValidationError(
                code="tls_required",
                message=f"Blocklist URL must use HTTPS: {url}",
                details={"url": url, "scheme": parsed.scheme},
            )

    def fetch_text(self, url: str) -> str:
        """
        Download the raw blocklist body.

        Raises:
            ValidationError: If the URL is not HTTPS
            NetworkError: On transport failures and non-2xx responses
        """
        self._validate_url(url)

        try:
            with httpx.Client(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.TimeoutException as e:
            raise NetworkError(
                code="timeout",
                message=f"Timed out downloading {url}",
                details={"url": url, "timeout": self._timeout, "error": str(e)},
            )
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                code="http_error",
                message=f"Server returned HTTP {e.response.status_code} for {url}",
                details={"url": url, "status_code": e.response.status_code},
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                code="connection_error",
                message=f"Failed to download {url}: {e}",
                details={"url": url, "error": str(e), "error_type": type(e).__name__},
            )

    def fetch(self, url: str) -> list[BlockedDomain]:
        """
        Download a blocklist and return its blocking pairs.

        Raises:
            ValidationError: If the URL is not HTTPS
            NetworkError: If the download fails
        """
        text = self.fetch_text(url)
        pairs, skipped = parse_blocklist(text)
        if self._logger:
            self._logger.log(
                LogLevel.WARN if skipped else LogLevel.INFO,
                "blocklist",
                "Fetched blocklist",
                {"url": url, "pairs": len(pairs), "skipped_lines": skipped},
            )
        return pairs
