"""
Structured logging utilities with JSON formatting and context injection.

This module provides structured logging capabilities with:
- JSON formatted log output for machine-readable logs
- Context injection (session_id, fingerprint, severity) via LoggerAdapter
- Console reporting of classified error records
- Integration with Python's standard logging module
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging import LogRecord
from typing import TYPE_CHECKING, Any, Dict, MutableMapping, Optional

if TYPE_CHECKING:
    from error_monitor.models.error import ClassifiedErrorRecord


# Promoted to top-level keys of the JSON document
CONTEXT_FIELDS = (
    "session_id",
    "record_id",
    "fingerprint",
    "severity",
    "category",
    "component",
    "action",
)

# Attributes every LogRecord carries; anything else came in through extra
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with standard fields:
    - timestamp: ISO 8601 formatted timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - context fields (session_id, fingerprint, severity, ...) when present
    - context: Remaining extra fields
    - error: Exception details when exc_info is set
    """

    def format(self, record: LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and key not in CONTEXT_FIELDS
        }
        if extra_fields:
            log_data["context"] = extra_fields

        if record.exc_info:
            log_data["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack_trace": "".join(traceback.format_exception(*record.exc_info))
            }

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName
        }

        return json.dumps(log_data, default=str)


class LogContext:
    """
    Context manager for adding temporary context to logs.

    Usage:
        with LogContext(logger, session_id="session_1", component="checkout"):
            logger.info("Submitting order")
    """

    def __init__(self, logger: logging.LoggerAdapter, **context: Any):
        self.logger = logger
        self.context = context
        self.old_extra = None

    def __enter__(self) -> logging.LoggerAdapter:
        self.old_extra = self.logger.extra.copy() if self.logger.extra else {}
        self.logger.extra.update(self.context)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.old_extra is not None:
            self.logger.extra = self.old_extra


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that injects context fields into all log records.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        """
        Merge adapter context into the record's extra fields.

        Fields passed explicitly at the call site win over adapter context.
        """
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextLoggerAdapter":
        """
        Create a new logger adapter with additional context.

        Args:
            **context: Additional context fields

        Returns:
            New logger adapter with merged context
        """
        new_extra = self.extra.copy()
        new_extra.update(context)
        return ContextLoggerAdapter(self.logger, new_extra)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the process.

    Sets up:
    - JSON formatter for all handlers
    - Console handler with appropriate log level
    - Root logger configuration

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    formatter = JSONFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str, **context: Any) -> ContextLoggerAdapter:
    """
    Get a context-aware logger for a module.

    Args:
        name: Logger name (typically __name__)
        **context: Initial context fields (session_id, component, ...)

    Returns:
        Context logger adapter

    Example:
        logger = get_logger(__name__, session_id="session_1")
        logger.info("Monitoring started")
    """
    base_logger = logging.getLogger(name)
    return ContextLoggerAdapter(base_logger, context)


def log_error_record(logger: logging.LoggerAdapter, record: "ClassifiedErrorRecord") -> None:
    """
    Write a classified error record to the console log.

    High and critical records are logged at ERROR, the rest at WARNING.

    Args:
        logger: Logger to use
        record: Classified error record
    """
    extra = {
        "record_id": record.id,
        "session_id": record.session_id,
        "fingerprint": record.fingerprint,
        "severity": record.severity.value,
        "category": record.category.value,
        "stack_trace": record.stack_trace,
        "error_context": record.context,
        "breadcrumbs": [crumb.model_dump(mode="json") for crumb in record.breadcrumbs],
        "metadata": record.metadata,
    }
    message = f"Error [{record.severity.value.upper()}] - {record.category.value}: {record.message}"

    if record.severity.value in ("high", "critical"):
        logger.error(message, extra=extra)
    else:
        logger.warning(message, extra=extra)


def log_report_call(
    logger: logging.LoggerAdapter,
    endpoint: str,
    record_id: str,
    status_code: Optional[int] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None
) -> None:
    """
    Log an outbound error report with request/response details.

    Args:
        logger: Logger to use
        endpoint: Report endpoint URL
        record_id: Identifier of the reported record
        status_code: Response status code (if available)
        duration_ms: Request duration in milliseconds (if available)
        error: Error message (if the report failed)
    """
    extra: Dict[str, Any] = {
        "endpoint": endpoint,
        "record_id": record_id,
        "method": "POST",
    }

    if status_code is not None:
        extra["status_code"] = status_code
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    if error is not None:
        extra["error"] = error

    if error:
        logger.error(f"Failed to report error to server: {endpoint}", extra=extra)
    else:
        logger.debug(f"Error reported to server: {endpoint}", extra=extra)
