"""
Structured logging for the automation engine.

Console output is human-readable; an optional log file receives one JSON
object per line. Every entry passes through the same processor chain:
secrets are masked (including inside environment mappings handed to the
editor), oversized process output is clipped, and the instance id bound with
``bind_instance`` is attached.
"""

import sys
import logging
from typing import Any, Mapping
from pathlib import Path

import structlog
from structlog.types import Processor


# Key fragments whose values never reach a log sink
REDACT_PATTERNS = (
    "api_key",
    "apikey",
    "secret",
    "password",
    "token",
    "credential",
    "auth",
)

REDACTED = "[REDACTED]"

# Longest string value written to a log entry
MAX_LOG_VALUE_LENGTH = 1000

# Collections longer than this are rendered with repr() and clipped
MAX_LOG_ITEMS = 50


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in REDACT_PATTERNS)


def _redact_mapping(mapping: Mapping[Any, Any]) -> dict[Any, Any]:
    return {
        k: REDACTED if isinstance(k, str) and _is_sensitive(k) else v
        for k, v in mapping.items()
    }


def redact_secrets(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask sensitive values, by key, at the top level and inside mappings such as ``env``."""
    for key, value in list(event_dict.items()):
        if key == "event":
            continue
        if _is_sensitive(key) and isinstance(value, (str, bytes)):
            event_dict[key] = REDACTED
        elif isinstance(value, Mapping):
            event_dict[key] = _redact_mapping(value)
    return event_dict


def truncate_payloads(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Clip stderr tails, key lists and other oversized values before rendering."""
    for key, value in list(event_dict.items()):
        if key == "event":
            continue
        if isinstance(value, (list, tuple, dict)) and len(value) > MAX_LOG_ITEMS:
            value = event_dict[key] = repr(value)
        if isinstance(value, str) and len(value) > MAX_LOG_VALUE_LENGTH:
            dropped = len(value) - MAX_LOG_VALUE_LENGTH
            event_dict[key] = f"{value[:MAX_LOG_VALUE_LENGTH]}...[truncated {dropped} chars]"
    return event_dict


def _handler(
    handler: logging.Handler, renderer: Processor, chain: list[Processor]
) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=chain)
    )
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
) -> None:
    """
    Route structlog and stdlib logging through the shared processor chain.

    Safe to call more than once (the CLI reconfigures after loading the
    config file); handlers are replaced and the level re-applied.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional JSON-lines log file; parent directories are created
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
        truncate_payloads,
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [
        _handler(
            logging.StreamHandler(sys.stderr),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            shared_processors,
        )
    ]
    root_logger.setLevel(getattr(logging, level.upper()))

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(
            _handler(
                logging.FileHandler(log_file),
                structlog.processors.JSONRenderer(),
                shared_processors,
            )
        )


def bind_instance(instance_id: str):
    """Context manager tagging every log entry emitted inside it with ``instance_id``."""
    return structlog.contextvars.bound_contextvars(instance_id=instance_id)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
