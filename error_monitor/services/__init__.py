"""Pipeline services: sanitizing, classifying, aggregating and routing errors."""

from error_monitor.services.api_errors import (
    ApiError,
    ApiErrorHandler,
    ApiRequestError,
    FormValidationError,
    parse_api_error,
)
from error_monitor.services.breadcrumbs import BreadcrumbBuffer
from error_monitor.services.classifier import (
    Classification,
    classify,
    determine_category,
    determine_severity,
    generate_fingerprint,
    generate_tags,
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
from error_monitor.services.notifications import (
    LoggingNotifier,
    NotificationGateway,
    Notifier,
    RateLimiter,
    RecordingNotifier,
)
from error_monitor.services.performance import PerformanceMonitor, measure, measure_async
from error_monitor.services.reporter import ErrorReporter
from error_monitor.services.sanitizer import REDACTED, sanitize

__all__ = [
    'ApiError',
    'ApiErrorHandler',
    'ApiRequestError',
    'FormValidationError',
    'parse_api_error',
    'BreadcrumbBuffer',
    'Classification',
    'classify',
    'determine_category',
    'determine_severity',
    'generate_fingerprint',
    'generate_tags',
    'ErrorMonitor',
    'add_breadcrumb',
    'get_error_monitor',
    'get_error_stats',
    'log_error',
    'report_error',
    'reset_error_monitor',
    'set_error_monitor',
    'LoggingNotifier',
    'NotificationGateway',
    'Notifier',
    'RateLimiter',
    'RecordingNotifier',
    'PerformanceMonitor',
    'measure',
    'measure_async',
    'ErrorReporter',
    'REDACTED',
    'sanitize',
]
