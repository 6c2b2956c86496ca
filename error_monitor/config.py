"""
Error monitoring configuration management.
"""

from typing import Any, List, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings

from error_monitor.models.error import ErrorSeverity


DEFAULT_SENSITIVE_KEYS = ["password", "token", "apikey", "api_key", "api-key", "secret", "credit", "ssn"]


class MonitoringConfig(BaseSettings):
    """Monitoring settings loaded from ERROR_MONITOR_* environment variables."""

    # Pipeline
    enabled: bool = True
    environment: str = "development"
    log_level: ErrorSeverity = ErrorSeverity.LOW
    max_errors_in_memory: int = 100

    # Reporting (defaults depend on environment)
    report_to_console: bool = True
    report_to_server: bool = False
    server_endpoint: Optional[str] = "/api/errors"
    server_base_url: Optional[str] = None
    report_timeout_seconds: float = 5.0

    # Context enrichment
    include_performance_metrics: bool = True
    include_breadcrumbs: bool = True
    max_breadcrumbs: int = 20
    sensitive_data_keys: List[str] = DEFAULT_SENSITIVE_KEYS

    # User notifications
    auto_notify_users: bool = True
    rate_limit_notifications: bool = True
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_entries: int = 1000

    # Capture
    chunk_path_marker: str = "/_next/static/"
    long_task_threshold_ms: float = 50.0
    high_memory_threshold_mb: float = 100.0

    # Process logging
    app_log_level: str = "INFO"

    # Diagnostics API
    diagnostics_api_key: Optional[str] = None

    class Config:
        env_prefix = "ERROR_MONITOR_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _apply_environment_defaults(cls, data: Any) -> Any:
        # Console reporting in development, server reporting in production
        if not isinstance(data, dict):
            return data
        environment = str(data.get("environment") or "development").lower()
        data.setdefault("report_to_console", environment == "development")
        data.setdefault("report_to_server", environment == "production")
        return data

    @model_validator(mode="after")
    def _check_capacities(self) -> "MonitoringConfig":
        if self.max_errors_in_memory < 1:
            raise ValueError("max_errors_in_memory must be at least 1")
        if self.max_breadcrumbs < 0:
            raise ValueError("max_breadcrumbs must not be negative")
        if self.rate_limit_max_entries < 1:
            raise ValueError("rate_limit_max_entries must be at least 1")
        return self

    @property
    def report_url(self) -> Optional[str]:
        """Absolute URL for outbound reports, if one can be formed."""
        if not self.server_endpoint:
            return None
        if self.server_endpoint.startswith(("http://", "https://")):
            return self.server_endpoint
        if not self.server_base_url:
            return None
        return self.server_base_url.rstrip("/") + "/" + self.server_endpoint.lstrip("/")
