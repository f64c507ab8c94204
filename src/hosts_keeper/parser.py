"""
Format-preserving grammar for hosts files.

Every physical line becomes a LineRecord tagged BLANK, COMMENT or MAPPING.
Records keep their exact text and line terminator, so ``serialize`` is the
left inverse of ``parse`` on any text ``parse`` accepts:

    serialize(parse(text)) == text

Mapping lines are an address token followed by one or more hostnames and an
optional ``#`` comment. Unrelated entries are carried through untouched.
"""

import re
from typing import Iterable, Optional

from .enums import LineKind
from .exceptions import ParseError
from .models import LineRecord


# IPv4/IPv6 characters with an optional zone id (fe80::1%eth0).
ADDRESS_TOKEN = re.compile(r"^[0-9A-Fa-f.:]+(?:%[\w.\-]+)?$")
TOKEN = re.compile(r"[^\s#]+")

# str.strip() does not treat the byte-order mark as whitespace.
STRIP_CHARS = " \t\r\f\v\ufeff"

ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


def decode_hosts(data: bytes) -> str:
    """Decode raw file bytes; undecodable bytes survive via surrogate escapes."""
    return data.decode(ENCODING, errors=ENCODING_ERRORS)


def encode_hosts(text: str) -> bytes:
    """Inverse of ``decode_hosts``."""
    return text.encode(ENCODING, errors=ENCODING_ERRORS)


def split_lines(text: str) -> Iterable[tuple[str, str]]:
    """Yield (content, terminator) pairs; only ``\\n`` and ``\\r\\n`` terminate lines."""
    pieces = text.split("\n")
    last = pieces.pop()
    for piece in pieces:
        if piece.endswith("\r"):
            yield piece[:-1], "\r\n"
        else:
            yield piece, "\n"
    if last:
        yield last, ""


def parse_line(line: str, eol: str = "\n", line_number: int = 1) -> LineRecord:
    """
    Classify a single line.

    Args:
        line: Line content without its terminator
        eol: The terminator that followed the line
        line_number: 1-based position, used for error reporting

    Returns:
        The typed LineRecord

    Raises:
        ParseError: If the line is not blank, a comment, or a mapping
    """
    stripped = line.strip(STRIP_CHARS)
    if not stripped:
        return LineRecord(kind=LineKind.BLANK, text=line, eol=eol)
    if stripped.startswith("#"):
        return LineRecord(kind=LineKind.COMMENT, text=line, eol=eol)

    body, hash_sign, comment = stripped.partition("#")
    tokens = body.split()
    if len(tokens) < 2:
        raise ParseError(
            line_number,
            line,
            message=f"Line {line_number}: mapping needs an address and at least one hostname",
        )
    if not ADDRESS_TOKEN.match(tokens[0]):
        raise ParseError(
            line_number,
            line,
            message=f"Line {line_number}: {tokens[0]!r} is not an address",
        )

    return LineRecord(
        kind=LineKind.MAPPING,
        text=line,
        eol=eol,
        ip=tokens[0],
        hostnames=tuple(tokens[1:]),
        comment=comment.strip() if hash_sign else None,
    )


def parse(text: str) -> list[LineRecord]:
    """
    Parse hosts-file text into an ordered list of line records.

    Raises:
        ParseError: On the first line that matches no line shape
    """
    return [
        parse_line(line, eol, number)
        for number, (line, eol) in enumerate(split_lines(text), start=1)
    ]


def serialize(records: Iterable[LineRecord]) -> str:
    """Reassemble records into file text."""
    return "".join(record.render() for record in records)


def make_mapping(ip: str, hostname: str, eol: str = "\n") -> LineRecord:
    """Build a new single-hostname mapping record."""
    return LineRecord(
        kind=LineKind.MAPPING,
        text=f"{ip} {hostname}",
        eol=eol,
        ip=ip,
        hostnames=(hostname,),
    )


def drop_hostname(record: LineRecord, hostname: str) -> Optional[LineRecord]:
    """
    Remove one hostname token from a mapping record.

    Every occurrence of the token is cut out together with the whitespace
    before it; everything else on the line (indentation, separators,
    comment) is kept.

    Returns:
        The edited record, or None if no hostname would remain
    """
    if not record.is_mapping:
        raise ValueError("drop_hostname requires a mapping record")

    target = hostname.lower()
    remaining = tuple(h for h in record.hostnames if h.lower() != target)
    if not remaining:
        return None
    if len(remaining) == len(record.hostnames):
        return record

    body_end = record.text.find("#")
    body = record.text if body_end < 0 else record.text[:body_end]
    spans = [m.span() for m in TOKEN.finditer(body)]

    # spans[0] is the address; walk backwards so earlier offsets stay valid
    text = record.text
    for index in range(len(spans) - 1, 0, -1):
        start, end = spans[index]
        if body[start:end].lower() == target:
            text = text[:spans[index - 1][1]] + text[end:]

    return LineRecord(
        kind=LineKind.MAPPING,
        text=text,
        eol=record.eol,
        ip=record.ip,
        hostnames=remaining,
        comment=record.comment,
    )


def count_entries(records: Iterable[LineRecord]) -> int:
    """Number of mapping records."""
    return sum(1 for record in records if record.is_mapping)
