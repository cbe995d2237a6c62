"""Structured logging configuration.

Purpose: JSON-formatted logs with per-operation correlation ids.

Pattern: structlog with standard library integration.
"""
import logging
import sys
import uuid

import structlog

# The core logs plain key/value events and never passes exc_info
BOOKING_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.JSONRenderer(),
]


def setup_structured_logging(log_level: str = "INFO"):
    """
    Route booking events through stdlib logging as JSON lines.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)

    Raises:
        ValueError: Unknown level name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    structlog.configure(
        processors=BOOKING_PROCESSORS,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_operation_id() -> str:
    """Generate unique id for correlating the log lines of one core call."""
    return f"op-{uuid.uuid4().hex[:12]}"
