"""
Error monitoring pipeline: capture, classify, aggregate and route runtime
failures to logs, remote reporting and user notifications.
"""

__version__ = "0.1.0"

from error_monitor.config import MonitoringConfig
from error_monitor.errors import ConfigurationError, MonitoringError, ReportingError
from error_monitor.models import (
    Breadcrumb,
    BreadcrumbLevel,
    ClassifiedErrorRecord,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ErrorStats,
    PerformanceSnapshot,
)
from error_monitor.services.monitor import (
    ErrorMonitor,
    add_breadcrumb,
    get_error_monitor,
    get_error_stats,
    log_error,
    report_error,
    reset_error_monitor,
    set_error_monitor,
)

__all__ = [
    "__version__",
    "MonitoringConfig",
    "MonitoringError",
    "ConfigurationError",
    "ReportingError",
    "Breadcrumb",
    "BreadcrumbLevel",
    "ClassifiedErrorRecord",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorStats",
    "PerformanceSnapshot",
    "ErrorMonitor",
    "add_breadcrumb",
    "get_error_monitor",
    "get_error_stats",
    "log_error",
    "report_error",
    "reset_error_monitor",
    "set_error_monitor",
]
