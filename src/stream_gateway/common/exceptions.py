"""Custom exceptions for the streaming gateway."""


class GatewayError(Exception):
    """Base exception for all gateway errors."""
    pass


class ConfigurationError(GatewayError):
    """Raised when configuration is invalid."""
    pass


class GatewayStartupError(GatewayError):
    """Raised when the local HTTP listener cannot be bound."""
    pass


class BinaryNotFoundError(GatewayError):
    """Raised when a tunnel provider binary is not found or not executable."""
    pass


class ProcessError(GatewayError):
    """Raised when tunnel child process operations fail."""
    pass


class TunnelError(GatewayError):
    """Base exception for tunnel supervision errors."""
    pass


class TunnelEstablishError(TunnelError):
    """Raised when a tunnel does not report its public URL in time."""
    pass
