"""Data models for the error monitoring pipeline."""

from .api_response import (
    BreadcrumbRequest,
    ClearResult,
    ManualReportRequest,
    ReportAccepted,
)
from .breadcrumb import Breadcrumb, BreadcrumbLevel
from .error import (
    SEVERITY_ORDER,
    ClassifiedErrorRecord,
    ContextInput,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ErrorStats,
    RawFailureEvent,
)
from .performance import PerformanceSnapshot

__all__ = [
    # Error models
    "ErrorSeverity",
    "ErrorCategory",
    "SEVERITY_ORDER",
    "ErrorContext",
    "ContextInput",
    "RawFailureEvent",
    "ClassifiedErrorRecord",
    "ErrorStats",
    # Breadcrumb models
    "BreadcrumbLevel",
    "Breadcrumb",
    # Performance models
    "PerformanceSnapshot",
    # API models
    "ReportAccepted",
    "ClearResult",
    "ManualReportRequest",
    "BreadcrumbRequest",
]
