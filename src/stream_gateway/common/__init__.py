"""Common utilities and shared functionality."""

from .exceptions import (
    BinaryNotFoundError,
    ConfigurationError,
    GatewayError,
    GatewayStartupError,
    ProcessError,
    TunnelError,
    TunnelEstablishError,
)
from .logging import get_logger, setup_logging
from .process import AsyncProcessManager, resolve_binary
from .utils import (
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    parse_bool,
    sanitize_log_data,
    validate_port,
)

__all__ = [
    # Process management
    "AsyncProcessManager",
    "resolve_binary",
    # Exceptions
    "GatewayError",
    "ConfigurationError",
    "GatewayStartupError",
    "BinaryNotFoundError",
    "ProcessError",
    "TunnelError",
    "TunnelEstablishError",
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_port",
    "mask_sensitive_data",
    "sanitize_log_data",
    "parse_bool",
    "MIN_PORT",
    "MAX_PORT",
]
