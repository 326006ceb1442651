"""Generator-based line reading from a binary stream such as stdin."""

import logging
import re
from typing import BinaryIO, Generator

logger = logging.getLogger(__name__)

_BLANK_RE = re.compile(r"[\t\n\f\r ]*")


def is_blank(line: str) -> bool:
    return _BLANK_RE.fullmatch(line) is not None


def _chomp(raw: bytes) -> bytes:
    """Drop the trailing '\\n' and a '\\r' right before it."""
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw


def read_lines(stream: BinaryIO) -> Generator[str, None, None]:
    """Yield each non-blank line of the stream without its terminator.

    Bytes are decoded with surrogateescape so a line can be encoded back to
    exactly the bytes that were read. A read error is logged and ends the
    sequence.
    """
    while True:
        try:
            raw = stream.readline()
        except OSError as e:
            logger.error("reading standard input: %s", e)
            return
        if not raw:
            return

        line = _chomp(raw).decode("utf-8", errors="surrogateescape")
        if is_blank(line):
            continue
        yield line
