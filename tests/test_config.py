"""Tests for gateway configuration."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from stream_gateway.common.exceptions import ConfigurationError
from stream_gateway.config import MIN_STREAM_FILE_SIZE, GatewayConfig, LoggingConfig
from stream_gateway.tunnel.models import ProviderKind


class TestGatewayConfig:
    """Test cases for GatewayConfig"""

    def test_defaults(self):
        config = GatewayConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8081
        assert config.tunnel_provider == ProviderKind.NONE
        assert config.tunnel_establish_timeout == 30.0
        assert config.tunnel_max_reconnects is None
        assert config.stream_max_age == timedelta(hours=24)
        assert config.min_stream_file_size == MIN_STREAM_FILE_SIZE
        assert len(config.secret) == 64

    def test_random_secret_differs_per_instance(self):
        assert GatewayConfig().secret != GatewayConfig().secret

    def test_fallback_base_url_from_bind_address(self):
        assert GatewayConfig().fallback_base_url == "http://localhost:8081"
        assert GatewayConfig(host="10.0.0.5", port=9000).fallback_base_url == "http://10.0.0.5:9000"

    def test_explicit_base_url_wins_and_loses_trailing_slash(self):
        config = GatewayConfig(base_url="https://media.example.com/")
        assert config.fallback_base_url == "https://media.example.com"

    def test_base_url_requires_scheme(self):
        with pytest.raises(ValidationError, match="http"):
            GatewayConfig(base_url="media.example.com")

    @pytest.mark.parametrize("port", [-1, 70000])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError):
            GatewayConfig(port=port)

    def test_port_zero_allowed(self):
        assert GatewayConfig(port=0).port == 0

    def test_provider_aliases(self):
        assert GatewayConfig(tunnel_provider="cf").tunnel_provider == ProviderKind.MANAGED_BINARY_FORWARD
        assert GatewayConfig(tunnel_provider="localhost.run").tunnel_provider == ProviderKind.SSH_FORWARD

    def test_unknown_provider(self):
        with pytest.raises(ValidationError, match="Unknown tunnel provider"):
            GatewayConfig(tunnel_provider="ngrok")

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            GatewayConfig(bogus=True)


class TestGatewayConfigFromEnv:
    """Test cases for GatewayConfig.from_env"""

    def test_reads_all_variables(self):
        env = {
            "FILE_SERVER_HOST": "127.0.0.1",
            "FILE_SERVER_PORT": "9090",
            "FILE_SERVER_BASE_URL": "https://files.example.com",
            "FILE_SERVER_SECRET": "s3cret",
            "TUNNEL_PROVIDER": "cloudflare",
            "TUNNEL_BINARY": "/opt/bin/cloudflared",
            "TUNNEL_ESTABLISH_TIMEOUT": "45",
            "TUNNEL_RECONNECT_BACKOFF": "1.5",
            "TUNNEL_RECONNECT_BACKOFF_MAX": "30",
            "TUNNEL_MAX_RECONNECTS": "5",
            "STREAM_MAX_AGE_HOURS": "12",
            "STREAM_SWEEP_INTERVAL": "600",
            "STREAM_MIN_FILE_SIZE": "0",
        }
        config = GatewayConfig.from_env(env)

        assert config.host == "127.0.0.1"
        assert config.port == 9090
        assert config.base_url == "https://files.example.com"
        assert config.secret == "s3cret"
        assert config.tunnel_provider == ProviderKind.MANAGED_BINARY_FORWARD
        assert config.tunnel_binary == "/opt/bin/cloudflared"
        assert config.tunnel_establish_timeout == 45.0
        assert config.tunnel_reconnect_backoff == 1.5
        assert config.tunnel_reconnect_backoff_max == 30.0
        assert config.tunnel_max_reconnects == 5
        assert config.stream_max_age == timedelta(hours=12)
        assert config.stream_sweep_interval == 600.0
        assert config.min_stream_file_size == 0

    def test_empty_environment_gives_defaults(self):
        config = GatewayConfig.from_env({})
        assert config.port == 8081
        assert config.tunnel_provider == ProviderKind.NONE

    def test_blank_values_are_ignored(self):
        config = GatewayConfig.from_env({"TUNNEL_MAX_RECONNECTS": " ", "FILE_SERVER_PORT": ""})
        assert config.tunnel_max_reconnects is None
        assert config.port == 8081

    def test_invalid_value_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid gateway configuration"):
            GatewayConfig.from_env({"FILE_SERVER_PORT": "eighty"})

    def test_invalid_max_age(self):
        with pytest.raises(ConfigurationError, match="STREAM_MAX_AGE_HOURS"):
            GatewayConfig.from_env({"STREAM_MAX_AGE_HOURS": "forever"})


class TestLoggingConfig:
    """Test cases for LoggingConfig.from_env"""

    def test_defaults(self):
        config = LoggingConfig.from_env({})
        assert config.level == "INFO"
        assert config.json_format is False
        assert config.log_file is None

    def test_file_logging(self):
        config = LoggingConfig.from_env(
            {"LOG_LEVEL": "debug", "LOG_JSON": "true", "LOG_TO_FILE": "1", "LOG_FILE_PATH": "/tmp/g.log"}
        )
        assert config.level == "DEBUG"
        assert config.json_format is True
        assert config.log_file == "/tmp/g.log"

    def test_default_log_file_path(self):
        assert LoggingConfig.from_env({"LOG_TO_FILE": "yes"}).log_file == "stream_gateway.log"

    def test_invalid_level(self):
        with pytest.raises(ConfigurationError):
            LoggingConfig.from_env({"LOG_LEVEL": "LOUD"})
