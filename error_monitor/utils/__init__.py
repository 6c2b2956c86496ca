"""
Utility modules for the error monitoring pipeline.
"""

from error_monitor.utils.logging import (
    get_logger,
    setup_logging,
    LogContext,
    JSONFormatter,
    log_error_record,
    log_report_call,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "JSONFormatter",
    "log_error_record",
    "log_report_call",
]
