"""
Process-wide monitoring setup.
"""

from typing import Any, Optional

from error_monitor.capture.hooks import install_global_handlers
from error_monitor.capture.source import MonitorCaptureSource
from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.error import ErrorSeverity
from error_monitor.services.monitor import ErrorMonitor, get_error_monitor
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)


def setup_monitoring(
    monitor: Optional[ErrorMonitor] = None,
    install_hooks: bool = True,
    **overrides: Any,
) -> MonitorCaptureSource:
    """
    Configure the monitor and hook it into the Python runtime.

    Monitoring is switched on and, outside development, the log threshold
    defaults to medium so low severity noise is dropped. Neither default
    replaces a value the config already sets explicitly.

    Args:
        monitor: Monitor to configure (defaults to the shared instance)
        install_hooks: Install sys/threading exception hooks
        **overrides: Config fields to set

    Returns:
        Capture source bound to the monitor
    """
    monitor = monitor or get_error_monitor()

    environment = overrides.get("environment", monitor.config.environment)
    defaults = {
        "enabled": True,
        "log_level": ErrorSeverity.LOW if environment == "development" else ErrorSeverity.MEDIUM,
    }
    # Values set explicitly, e.g. through ERROR_MONITOR_* variables, are kept
    explicit = monitor.config.model_fields_set
    changes = {key: value for key, value in defaults.items() if key not in explicit}
    changes.update(overrides)
    config = monitor.update_config(**changes)

    source = MonitorCaptureSource(monitor)
    if install_hooks:
        install_global_handlers(source)

    monitor.add_breadcrumb(
        "Global error handling initialized",
        BreadcrumbLevel.INFO,
        {"config": config.model_dump(mode="json", include=set(changes))},
    )
    logger.info(
        "Error monitoring initialized",
        extra={"session_id": monitor.session_id, "environment": config.environment},
    )
    return source
