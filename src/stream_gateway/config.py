"""Gateway configuration model."""

import os
import secrets
from collections.abc import Mapping
from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .common.exceptions import ConfigurationError
from .common.logging import get_logger
from .common.utils import parse_bool, validate_port
from .tunnel.models import ProviderKind
from .tunnel.providers import parse_provider_kind

logger = get_logger(__name__)

DEFAULT_PORT = 8081
MIN_STREAM_FILE_SIZE = 1024 * 1024


class GatewayConfig(BaseModel):
    """Configuration for the HTTP listener, stream registry and tunnel."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    host: str = Field(default="0.0.0.0", min_length=1, description="Bind host")
    port: int = Field(default=DEFAULT_PORT, description="Bind port, 0 picks a free one")
    base_url: str | None = Field(
        default=None, description="Fallback public base URL when no tunnel is up"
    )
    secret: str = Field(
        default_factory=lambda: secrets.token_hex(32),
        min_length=1,
        description="Signing secret for stream tokens",
    )

    tunnel_provider: ProviderKind = Field(default=ProviderKind.NONE)
    tunnel_binary: str | None = Field(default=None, description="Provider binary override")
    tunnel_establish_timeout: float = Field(default=30.0, gt=0, le=600)
    tunnel_reconnect_backoff: float = Field(default=2.0, ge=0)
    tunnel_reconnect_backoff_max: float = Field(default=60.0, ge=0)
    tunnel_max_reconnects: int | None = Field(
        default=None, ge=0, description="None retries forever"
    )

    stream_max_age: timedelta = Field(default=timedelta(hours=24))
    stream_sweep_interval: float = Field(default=3600.0, gt=0)
    min_stream_file_size: int = Field(default=MIN_STREAM_FILE_SIZE, ge=0)

    @field_validator("port")
    @classmethod
    def validate_bind_port(cls, v: int) -> int:
        if v != 0:
            validate_port(v, "Bind port")
        return v

    @field_validator("tunnel_provider", mode="before")
    @classmethod
    def validate_provider(cls, v: object) -> ProviderKind:
        if v is None or isinstance(v, (str, ProviderKind)):
            try:
                return parse_provider_kind(v)
            except ConfigurationError as e:
                raise ValueError(str(e)) from e
        raise ValueError("Tunnel provider must be a string")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        if v is None or not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("Base URL must start with http:// or https://")
        return v.rstrip("/")

    @property
    def fallback_base_url(self) -> str:
        """Configured base URL, or one derived from the bind address."""
        if self.base_url:
            return self.base_url
        host = "localhost" if self.host in ("0.0.0.0", "::", "") else self.host
        return f"http://{host}:{self.port}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GatewayConfig":
        """Build configuration from environment variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        data: dict[str, object] = {}

        def take(var: str, field: str) -> None:
            value = env.get(var)
            if value is not None and value.strip():
                data[field] = value.strip()

        take("FILE_SERVER_HOST", "host")
        take("FILE_SERVER_PORT", "port")
        take("FILE_SERVER_BASE_URL", "base_url")
        take("FILE_SERVER_SECRET", "secret")
        take("TUNNEL_PROVIDER", "tunnel_provider")
        take("TUNNEL_BINARY", "tunnel_binary")
        take("TUNNEL_ESTABLISH_TIMEOUT", "tunnel_establish_timeout")
        take("TUNNEL_RECONNECT_BACKOFF", "tunnel_reconnect_backoff")
        take("TUNNEL_RECONNECT_BACKOFF_MAX", "tunnel_reconnect_backoff_max")
        take("TUNNEL_MAX_RECONNECTS", "tunnel_max_reconnects")
        take("STREAM_SWEEP_INTERVAL", "stream_sweep_interval")
        take("STREAM_MIN_FILE_SIZE", "min_stream_file_size")

        max_age_hours = env.get("STREAM_MAX_AGE_HOURS")
        if max_age_hours is not None and max_age_hours.strip():
            try:
                data["stream_max_age"] = timedelta(hours=float(max_age_hours))
            except ValueError as e:
                raise ConfigurationError(
                    f"STREAM_MAX_AGE_HOURS must be a number: {max_age_hours}"
                ) from e

        if "secret" not in data:
            logger.warning(
                "FILE_SERVER_SECRET not set, using a random secret; "
                "stream links will not survive a restart"
            )

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid gateway configuration: {e}") from e


class LoggingConfig(BaseModel):
    """Logging options read from the environment."""

    model_config = ConfigDict(str_strip_whitespace=True)

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    json_format: bool = Field(default=False)
    log_file: str | None = Field(default=None)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LoggingConfig":
        env = os.environ if environ is None else environ
        log_file = None
        if parse_bool(env.get("LOG_TO_FILE")):
            log_file = env.get("LOG_FILE_PATH") or "stream_gateway.log"
        try:
            return cls(
                level=(env.get("LOG_LEVEL") or "INFO").upper(),
                json_format=parse_bool(env.get("LOG_JSON")),
                log_file=log_file,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid logging configuration: {e}") from e
