"""Stream Gateway - range-aware file streaming behind a public reverse tunnel."""

from .common.exceptions import (
    BinaryNotFoundError,
    ConfigurationError,
    GatewayError,
    GatewayStartupError,
    ProcessError,
    TunnelError,
    TunnelEstablishError,
)
from .common.logging import get_logger, setup_logging
from .config import GatewayConfig, LoggingConfig
from .gateway import GatewayFacade
from .server import RangeFileServer
from .streams import StreamEntry, StreamFile, StreamRegistry, TokenCodec
from .tunnel import (
    ManagedBinaryForward,
    ProviderKind,
    SshReverseForward,
    TunnelManager,
    TunnelState,
    TunnelStatus,
    create_provider,
)

__version__ = "0.1.0"


__all__ = [
    # Composition root
    "GatewayFacade",
    "GatewayConfig",
    "LoggingConfig",
    # Streams
    "TokenCodec",
    "StreamEntry",
    "StreamFile",
    "StreamRegistry",
    "RangeFileServer",
    # Tunnel
    "TunnelManager",
    "TunnelState",
    "TunnelStatus",
    "ProviderKind",
    "SshReverseForward",
    "ManagedBinaryForward",
    "create_provider",
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
]
