"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID propagated from the HTTP layer through a context variable
- Latency timing for expensive engine operations (aggregation, cloning)

Usage:
    from ticketflow.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Transition added", extra={"graph_id": graph_id})
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_SENSITIVE_KEYS = ("password", "api_key", "secret", "authorization")


def bind_correlation_id(correlation_id: Optional[str]) -> None:
    """Attach a correlation id to every record logged from the current context."""
    _correlation_id.set(correlation_id)


def current_correlation_id() -> Optional[str]:
    return _correlation_id.get()


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - correlation_id when available
    - environment
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        correlation_id = getattr(record, "correlation_id", None) or current_correlation_id()
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        log_record["environment"] = self._environment

        for key in list(log_record):
            lowered = key.lower()
            if any(marker in lowered for marker in _SENSITIVE_KEYS):
                log_record[key] = "***REDACTED***"
            elif "token" in lowered:
                log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    formatter = CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "breach_aggregation", tickets=len(records)):
            report = aggregator.aggregate(records, as_of)

    Args:
        logger: Logger instance
        operation: Operation name for logging
        **extra_context: Additional context to include in log
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
