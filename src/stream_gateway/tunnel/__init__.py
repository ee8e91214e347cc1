"""Reverse tunnel providers and supervision."""

from .manager import TunnelManager
from .models import ProviderKind, TunnelState, TunnelStatus
from .providers import (
    DisabledProvider,
    ManagedBinaryForward,
    SshReverseForward,
    TunnelProvider,
    create_provider,
    extract_url,
    parse_provider_kind,
)

__all__ = [
    # Models
    "ProviderKind",
    "TunnelStatus",
    "TunnelState",
    # Providers
    "TunnelProvider",
    "DisabledProvider",
    "SshReverseForward",
    "ManagedBinaryForward",
    "create_provider",
    "parse_provider_kind",
    "extract_url",
    # Manager
    "TunnelManager",
]
