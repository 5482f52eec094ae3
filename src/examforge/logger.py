"""Logging configuration for ExamForge.

Every module obtains its logger through ``get_logger(__name__)``. Loggers
emit either human-readable lines or newline-delimited JSON, and request
scoped messages carry the caller's correlation id so that all attempts of
one generation call can be grepped together.

Environment Variables:
    EXAMFORGE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                         Default: INFO
    EXAMFORGE_LOG_FORMAT: Output format ("standard" or "json").
                          Default: standard
"""

import json
import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

PACKAGE_LOGGER_NAME = "examforge"

LOG_FORMAT_STANDARD = (
    "%(asctime)s.%(msecs)03d - %(levelname)s - [%(correlation_id)s] %(message)s"
)

LOG_FORMAT_DEBUG = (
    "%(asctime)s.%(msecs)03d - %(levelname)s - [%(correlation_id)s] "
    "%(filename)s:%(lineno)d - %(name)s:%(funcName)s - %(message)s"
)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NO_CORRELATION = "-"


def _resolve_log_level(level: int | str | None) -> int:
    """Resolve a log level, falling back to environment defaults."""
    if level is None:
        level = os.getenv("EXAMFORGE_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        resolved = getattr(logging, level.upper(), logging.INFO)
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


class _CorrelationFilter(logging.Filter):
    """Guarantee every record has a correlation_id attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = _NO_CORRELATION
        return True


class JSONFormatter(logging.Formatter):
    """Format logs as newline-delimited JSON for production systems.

    Output structure includes timestamp, level, message, logger name,
    module, function, line number, correlation id, and optional exception
    stack trace.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Convert log record to single-line JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "correlation_id": getattr(record, "correlation_id", _NO_CORRELATION),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def _build_formatter(level: int, format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JSONFormatter(datefmt=DATE_FORMAT)
    if level == logging.DEBUG:
        return logging.Formatter(LOG_FORMAT_DEBUG, datefmt=DATE_FORMAT)
    return logging.Formatter(LOG_FORMAT_STANDARD, datefmt=DATE_FORMAT)


def configure_logger(
    name: str,
    level: int | str | None = None,
    format_type: str | None = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Configure a logger with ExamForge standard formatting.

    Respect environment variables EXAMFORGE_LOG_LEVEL and EXAMFORGE_LOG_FORMAT
    for runtime configuration without code changes.

    Args:
        name: Typically __name__ of the calling module.
        level: Override default level from environment.
        format_type: Either "standard" or "json".
        handler: Custom handler; defaults to StreamHandler on stderr.

    Returns:
        Configured logger instance ready for use.
    """
    logger = logging.getLogger(name)

    # Skip reconfiguration to avoid duplicate handlers
    if logger.handlers:
        return logger

    resolved_level = _resolve_log_level(level)
    logger.setLevel(resolved_level)

    if format_type is None:
        format_type = os.getenv("EXAMFORGE_LOG_FORMAT", "standard").lower()

    if handler is None:
        handler = logging.StreamHandler(sys.stderr)

    handler.setLevel(resolved_level)
    handler.addFilter(_CorrelationFilter())
    handler.setFormatter(_build_formatter(resolved_level, format_type))
    logger.addHandler(handler)

    # Prevent propagation to avoid duplicate logs in root logger
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger using default environment settings.

    Args:
        name: Typically __name__ of the calling module.

    Returns:
        Configured logger instance.
    """
    return configure_logger(name)


class CorrelationAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that stamps a correlation id on every record."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("correlation_id", (self.extra or {}).get("correlation_id"))
        kwargs["extra"] = extra
        return msg, kwargs


def bind_correlation(logger: logging.Logger, correlation_id: str) -> CorrelationAdapter:
    """Bind a request correlation id to a module logger.

    Args:
        logger: Module logger obtained with get_logger.
        correlation_id: Identifier of the request being processed.

    Returns:
        Adapter whose records carry the correlation id.
    """
    return CorrelationAdapter(logger, {"correlation_id": correlation_id})


def set_log_level(level: int | str) -> None:
    """Update log level for all ExamForge loggers dynamically.

    Module loggers do not propagate, so each configured logger in the
    package namespace is updated individually.

    Args:
        level: New log level as int constant or string name.
    """
    resolved_level = _resolve_log_level(level)
    format_type = os.getenv("EXAMFORGE_LOG_FORMAT", "standard").lower()

    names = [PACKAGE_LOGGER_NAME] + [
        name
        for name in logging.Logger.manager.loggerDict
        if name.startswith(f"{PACKAGE_LOGGER_NAME}.")
    ]

    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(resolved_level)
        for handler in logger.handlers:
            handler.setLevel(resolved_level)
            handler.setFormatter(_build_formatter(resolved_level, format_type))


def mask_sensitive(value: str, prefix_len: int = 4, suffix_len: int = 4) -> str:
    """Mask sensitive data for safe logging of credentials.

    Args:
        value: Sensitive string to mask.
        prefix_len: Characters preserved at start.
        suffix_len: Characters preserved at end.

    Returns:
        Masked string with middle replaced by asterisks.
    """
    if len(value) <= prefix_len + suffix_len:
        return "***"
    return f"{value[:prefix_len]}***{value[-suffix_len:]}"
