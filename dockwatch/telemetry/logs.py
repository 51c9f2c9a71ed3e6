"""
Docker log stream demultiplexing.

Without a TTY the engine multiplexes stdout and stderr into frames:

    [stream:1][0:3][length:4 big-endian][payload:length]

With a TTY (or behind a proxy that already stripped the framing) the body is
plain text. Both are decoded into LogRecords here. Each call works on one
complete buffer; nothing is carried between calls.
"""

import logging
import re
import struct
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from dockwatch.telemetry.schemas import LogLevel, LogRecord, LogStream, parse_engine_timestamp

logger = logging.getLogger(__name__)

HEADER_SIZE = 8
DEFAULT_TAIL = 100
SEARCH_TAIL = 1000

_STREAMS = {0: LogStream.STDIN, 1: LogStream.STDOUT, 2: LogStream.STDERR}

# Prefix added by timestamps=1, e.g. "2024-05-01T10:00:00.123456789Z "
_TIMESTAMP_PREFIX = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2}))\s?"
)


def classify_level(message: str) -> LogLevel:
    """Infer severity from message text."""
    lowered = message.lower()
    if "error" in lowered:
        return LogLevel.ERROR
    if "warn" in lowered:
        return LogLevel.WARNING
    return LogLevel.INFO


def split_timestamp(line: str) -> Tuple[Optional[datetime], str]:
    """Split the engine's timestamp prefix off a line, if present."""
    match = _TIMESTAMP_PREFIX.match(line)
    if not match:
        return None, line
    return parse_engine_timestamp(match.group(1)), line[match.end() :]


def encode_frame(payload: str, stream: LogStream = LogStream.STDOUT) -> bytes:
    """Build one multiplexed frame."""
    data = payload.encode("utf-8")
    stream_byte = {v: k for k, v in _STREAMS.items()}.get(stream, 1)
    return struct.pack(">BxxxI", stream_byte, len(data)) + data


def _valid_header(buffer: bytes, offset: int) -> bool:
    if offset + HEADER_SIZE > len(buffer):
        return False
    if buffer[offset] not in _STREAMS or buffer[offset + 1 : offset + 4] != b"\x00\x00\x00":
        return False
    (length,) = struct.unpack_from(">I", buffer, offset + 4)
    return offset + HEADER_SIZE + length <= len(buffer)


def is_multiplexed(buffer: bytes) -> bool:
    """Whether a buffer starts with a multiplexed frame header."""
    return len(buffer) >= HEADER_SIZE and buffer[0] in _STREAMS and buffer[1:4] == b"\x00\x00\x00"


def iter_frames(buffer: bytes) -> Iterator[Tuple[LogStream, bytes]]:
    """
    Yield (stream, payload) for each intact frame.

    A frame whose declared length overruns the buffer is dropped. Scanning
    then resumes at the next byte that starts a valid header, so frames after
    a damaged one are still returned.
    """
    offset = 0
    skipped = 0
    while offset + HEADER_SIZE <= len(buffer):
        if not _valid_header(buffer, offset):
            offset += 1
            skipped += 1
            continue

        (length,) = struct.unpack_from(">I", buffer, offset + 4)
        start = offset + HEADER_SIZE
        yield _STREAMS[buffer[offset]], buffer[start : start + length]
        offset = start + length

    skipped += len(buffer) - offset
    if skipped:
        logger.debug(f"Dropped {skipped} bytes of truncated or malformed log frames")


def _records_from_text(
    text: str, stream: LogStream, search: Optional[str] = None
) -> List[LogRecord]:
    records = []
    needle = search.lower() if search else None
    for line in text.splitlines():
        if not line.strip():
            continue
        timestamp, message = split_timestamp(line)
        if not message.strip():
            continue
        if needle and needle not in message.lower():
            continue
        records.append(
            LogRecord(
                message=message,
                level=classify_level(message),
                timestamp=timestamp,
                stream=stream,
            )
        )
    return records


def decode_stream(raw: bytes, search: Optional[str] = None) -> List[LogRecord]:
    """
    Decode a complete log body into records.

    Args:
        raw: Response body of GET /containers/{id}/logs
        search: Optional case-insensitive substring filter

    Returns:
        Records in stream order; blank lines are skipped
    """
    if not raw:
        return []

    if not is_multiplexed(raw):
        # TTY containers and pre-demultiplexed text
        return _records_from_text(raw.decode("utf-8", errors="replace"), LogStream.UNKNOWN, search)

    records: List[LogRecord] = []
    for stream, payload in iter_frames(raw):
        records.extend(
            _records_from_text(payload.decode("utf-8", errors="replace"), stream, search)
        )
    return records


def search_stream(raw: bytes, term: str) -> List[LogRecord]:
    """Decode only the lines containing `term` (case-insensitive)."""
    return decode_stream(raw, search=term or None)
