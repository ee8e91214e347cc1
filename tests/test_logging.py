"""Test logging configuration."""

import logging
from pathlib import Path

import structlog
from structlog.testing import LogCapture

from stream_gateway.common.logging import get_logger, redact_secrets, setup_logging


class TestLogging:
    """Test logging functionality."""

    def setup_method(self) -> None:
        """Reset logging configuration before each test."""
        structlog.reset_defaults()
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    def test_setup_logging_with_level(self) -> None:
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_noisy_loggers_are_quieted(self) -> None:
        setup_logging(level="INFO")
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_structured_fields_are_kept(self) -> None:
        setup_logging(json_format=True)
        logger = get_logger("test")

        cap = LogCapture()
        structlog.configure(processors=[cap])

        logger.info("stream registered", resource_id="abc123")

        assert cap.entries[0]["event"] == "stream registered"
        assert cap.entries[0]["resource_id"] == "abc123"

    def test_setup_logging_with_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "gateway.log"
        setup_logging(log_file=str(log_file))

        logging.getLogger("test_file").info("tunnel up")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "tunnel up" in log_file.read_text()

    def test_tokens_and_secrets_are_redacted(self) -> None:
        setup_logging(json_format=True)
        logger = get_logger("test")

        cap = LogCapture()
        structlog.configure(processors=[redact_secrets, cap])

        logger.info("stream registered", token="0123456789abcdef", secret="hunter22", port=8081)

        entry = cap.entries[0]
        assert entry["token"] == "************cdef"
        assert entry["secret"] == "****er22"
        assert entry["port"] == 8081
