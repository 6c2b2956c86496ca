"""
Capture source that feeds the error monitor.
"""

from typing import Any, Optional

from error_monitor.capture.base import CaptureSource, UserActionKind
from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.error import ErrorCategory, ErrorSeverity
from error_monitor.services.monitor import ErrorMonitor
from error_monitor.services.notifications import Notifier
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)

GLOBAL_COMPONENT = "global"
CLICK_TEXT_LIMIT = 50

CLICKABLE_ELEMENTS = frozenset({"BUTTON", "A"})
FOCUSABLE_ELEMENTS = frozenset({"INPUT", "TEXTAREA", "SELECT"})
SLOW_CONNECTION_TYPES = frozenset({"slow-2g", "2g"})

UPDATE_REQUIRED_MESSAGE = (
    "The application has been updated. Please refresh the page to load the latest version."
)


class ChunkLoadError(Exception):
    """A versioned asset could not be fetched."""
    pass


class ResourceLoadError(Exception):
    """A sub-resource failed to load."""
    pass


class UnhandledRejectionError(Exception):
    """An asynchronous failure whose reason was not an exception."""
    pass


class MonitorCaptureSource(CaptureSource):
    """
    Translates host events into ErrorMonitor calls.

    | event                | action               | severity | category |
    |----------------------|----------------------|----------|----------|
    | uncaught error       | javascript_error     | medium   | system   |
    | unhandled rejection  | unhandledrejection   | high     | system   |
    | resource load error  | resource_load_error  | low      | system   |
    | chunk load failure   | chunk_load_error     | medium   | system   |
    | network failure      | fetch_error          | medium   | network  |
    """

    def __init__(self, monitor: ErrorMonitor, notifier: Optional[Notifier] = None):
        """
        Initialize capture source.

        Args:
            monitor: Monitor that receives records and breadcrumbs
            notifier: Surface for capture-specific alerts (defaults to the
                monitor's notifier)
        """
        self.monitor = monitor
        self.notifier = notifier or monitor.notifier

    def _context(self, action: str, **additional_data: Any) -> dict:
        return {
            "component": GLOBAL_COMPONENT,
            "action": action,
            "additional_data": additional_data,
        }

    def on_uncaught_error(self, error, filename=None, lineno=None, colno=None) -> None:
        self.monitor.log_error(
            error,
            self._context("javascript_error", filename=filename, lineno=lineno, colno=colno),
            ErrorSeverity.MEDIUM,
            ErrorCategory.SYSTEM,
        )

    def on_unhandled_rejection(self, reason: Any) -> None:
        if isinstance(reason, BaseException):
            error = reason
        else:
            error = UnhandledRejectionError(str(reason) if reason else "Unhandled promise rejection")
        self.monitor.log_error(
            error,
            self._context("unhandledrejection", reason=reason),
            ErrorSeverity.HIGH,
            ErrorCategory.SYSTEM,
        )

    def on_resource_error(self, tag_name, src=None, element_id=None, class_name=None) -> None:
        self.monitor.log_error(
            ResourceLoadError(f"Failed to load resource: {tag_name}"),
            self._context(
                "resource_load_error",
                tag_name=tag_name,
                src=src,
                id=element_id,
                class_name=class_name,
            ),
            ErrorSeverity.LOW,
            ErrorCategory.SYSTEM,
        )

    def on_network_failure(self, error, url, method="GET") -> None:
        self.monitor.log_error(
            error,
            self._context("fetch_error", url=url, method=method),
            ErrorSeverity.MEDIUM,
            ErrorCategory.NETWORK,
        )

    def on_chunk_load_failure(self, url, status, status_text=None) -> None:
        self.monitor.log_error(
            ChunkLoadError(f"Chunk loading failed: {status}"),
            self._context("chunk_load_error", url=url, status=status, status_text=status_text),
            ErrorSeverity.MEDIUM,
            ErrorCategory.SYSTEM,
        )
        # Stale bundle: always ask for a refresh, outside the severity path
        self._notify("warning", UPDATE_REQUIRED_MESSAGE, "Update Required")

    def _notify(self, kind: str, message: str, title: str) -> None:
        try:
            getattr(self.notifier, kind)(message, title)
        except Exception as e:
            logger.error(f"Failed to show {kind} notification: {e}", exc_info=True)

    def on_long_task(self, duration_ms, start_time=None, name=None) -> None:
        if duration_ms <= self.monitor.config.long_task_threshold_ms:
            return
        data = {"duration": duration_ms, "start_time": start_time}
        if name:
            data["name"] = name
        self.monitor.add_breadcrumb("Long task detected", BreadcrumbLevel.WARNING, data)

    def on_user_action(self, kind: UserActionKind, **details: Any) -> None:
        kind = UserActionKind(kind)

        if kind == UserActionKind.NAVIGATION:
            self.monitor.add_breadcrumb("Navigation", BreadcrumbLevel.INFO, {
                "url": details.get("url"),
                "type": details.get("type", "navigate"),
            })

        elif kind == UserActionKind.CLICK:
            element = str(details.get("element", "")).upper()
            if element not in CLICKABLE_ELEMENTS:
                return
            text = details.get("text")
            self.monitor.add_breadcrumb("User click", BreadcrumbLevel.INFO, {
                "element": element,
                "text": text[:CLICK_TEXT_LIMIT] if isinstance(text, str) else text,
                "id": details.get("id"),
                "class_name": details.get("class_name"),
            })

        elif kind == UserActionKind.FORM_SUBMIT:
            self.monitor.add_breadcrumb("Form submission", BreadcrumbLevel.INFO, {
                "form_id": details.get("form_id"),
                "form_name": details.get("form_name"),
                "action": details.get("action"),
                "method": details.get("method"),
            })

        elif kind == UserActionKind.INPUT_FOCUS:
            element = str(details.get("element", "")).upper()
            if element not in FOCUSABLE_ELEMENTS:
                return
            self.monitor.add_breadcrumb("Input focus", BreadcrumbLevel.INFO, {
                "element": element,
                "name": details.get("name"),
                "type": details.get("type"),
            })

    def on_connectivity_change(self, online: bool, **details: Any) -> None:
        effective_type = details.get("effective_type")

        if effective_type is not None:
            self.monitor.add_breadcrumb("Connection changed", BreadcrumbLevel.INFO, dict(details))
            if effective_type in SLOW_CONNECTION_TYPES:
                self._notify(
                    "warning",
                    "Slow connection detected. Some features may load slowly.",
                    "Connection Quality",
                )
            return

        if online:
            self.monitor.add_breadcrumb("Network connection restored", BreadcrumbLevel.INFO)
            self._notify("success", "Connection restored", "Network Status")
        else:
            self.monitor.add_breadcrumb("Network connection lost", BreadcrumbLevel.WARNING)
            self._notify(
                "warning",
                "You appear to be offline. Some features may not work properly.",
                "Network Status",
            )
