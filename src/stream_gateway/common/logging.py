"""Structured logging for the gateway, built on structlog."""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.typing import Processor

from .utils import is_sensitive_key, mask_sensitive_data

# loggers that are chatty at INFO while a player is seeking
NOISY_LOGGERS = ("aiohttp.access", "asyncio")

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking token and secret fields before rendering."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and is_sensitive_key(key):
            event_dict[key] = mask_sensitive_data(value)
    return event_dict


def build_processors(json_format: bool, colors: bool) -> list[Processor]:
    """Processor chain shared by console and file output."""
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=colors))
    return processors


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """Configure stdlib logging and structlog for the gateway process.

    Called once by the entrypoint; importing the package leaves logging alone
    so an embedding application keeps its own setup.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Render events as JSON lines
        log_file: Optional file that receives a plain-text copy of every record
    """
    log_level = getattr(logging, level.upper())

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(logging.Formatter("%(message)s"))
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(log_level)
    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=build_processors(json_format, colors=not log_file and sys.stdout.isatty()),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
