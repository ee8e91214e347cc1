"""Small helpers shared by the config, server and logging layers."""

from collections.abc import Mapping
from typing import Any

MIN_PORT = 1
MAX_PORT = 65535

SENSITIVE_KEYS = ("secret", "token", "password")
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def validate_port(port: int, port_name: str = "Port") -> None:
    """Raise ValueError unless ``port`` is an int within 1-65535."""
    if isinstance(port, int) and MIN_PORT <= port <= MAX_PORT:
        return
    raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def mask_sensitive_data(value: str | None, mask_char: str = "*", show_chars: int = 4) -> str:
    """Hide all but the last few characters of a token or secret.

    Args:
        value: Value to hide
        mask_char: Replacement character
        show_chars: How many trailing characters stay readable

    Returns:
        The masked value, ``<None>`` for an empty one
    """
    if not value:
        return "<None>"
    visible = value[-show_chars:] if len(value) > show_chars else ""
    return mask_char * (len(value) - len(visible)) + visible


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def sanitize_log_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of ``data`` with tokens and secrets masked."""
    return {
        key: mask_sensitive_data(str(value) if value else None)
        if is_sensitive_key(key)
        else value
        for key, value in data.items()
    }


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean flag from an environment-style string."""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES
