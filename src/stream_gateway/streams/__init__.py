"""Stream tokens, models and registry."""

from .models import StreamEntry, StreamFile
from .registry import StreamRegistry
from .token import TOKEN_LENGTH, TokenCodec

__all__ = [
    "StreamEntry",
    "StreamFile",
    "StreamRegistry",
    "TokenCodec",
    "TOKEN_LENGTH",
]
