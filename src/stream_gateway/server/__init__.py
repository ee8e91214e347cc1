"""HTTP file server with byte-range support."""

from .app import CORS_HEADERS, RangeFileServer, guess_content_type
from .ranges import ByteRange, Unsatisfiable, parse_range

__all__ = [
    "RangeFileServer",
    "CORS_HEADERS",
    "guess_content_type",
    "ByteRange",
    "Unsatisfiable",
    "parse_range",
]
