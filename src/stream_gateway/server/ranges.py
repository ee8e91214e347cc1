"""HTTP Range header parsing."""

import re
from typing import NamedTuple

RANGE_REGEX = re.compile(r"^\s*bytes\s*=\s*(?P<start>\d*)\s*-\s*(?P<end>\d*)\s*$")


class ByteRange(NamedTuple):
    """Inclusive byte window resolved against a concrete file size."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


class Unsatisfiable(Exception):
    """Requested window starts at or beyond the current file size."""

    def __init__(self, size: int):
        super().__init__(f"Range not satisfiable, size {size}")
        self.size = size


def parse_range(header: str | None, size: int) -> ByteRange | None:
    """Resolve a Range header against the file size at request time.

    Supports ``bytes=start-``, ``bytes=start-end`` and ``bytes=-suffix``.
    Anything else (other units, multiple ranges, end before start) yields
    None so the caller serves the whole file.

    Args:
        header: Raw Range header value, if any
        size: Current file size

    Returns:
        Window to serve, or None for a full-file response

    Raises:
        Unsatisfiable: If the window starts at or beyond size
    """
    if not header:
        return None

    match = RANGE_REGEX.match(header)
    if match is None:
        return None

    start_text, end_text = match.group("start"), match.group("end")

    if not start_text:
        if not end_text:
            return None
        suffix = int(end_text)
        if suffix == 0 or size == 0:
            raise Unsatisfiable(size)
        return ByteRange(max(size - suffix, 0), size - 1)

    start = int(start_text)
    if end_text:
        end = int(end_text)
        if end < start:
            return None
    else:
        end = size - 1

    if start >= size:
        raise Unsatisfiable(size)

    return ByteRange(start, min(end, size - 1))
