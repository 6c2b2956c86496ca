"""
Base interface for event capture sources.

A capture source receives host-environment signals (uncaught errors,
rejected tasks, failed loads and requests, slow work, user actions) and
turns them into error records and breadcrumbs. Runtime adapters call these
methods; the aggregation engine never talks to the host directly.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional


class UserActionKind(str, Enum):
    """User actions that leave breadcrumbs."""

    NAVIGATION = "navigation"
    CLICK = "click"
    FORM_SUBMIT = "form_submit"
    INPUT_FOCUS = "input_focus"


class CaptureSource(ABC):
    """Receiver for host-environment events."""

    @abstractmethod
    def on_uncaught_error(
        self,
        error: BaseException,
        filename: Optional[str] = None,
        lineno: Optional[int] = None,
        colno: Optional[int] = None,
    ) -> None:
        """
        Handle an uncaught synchronous error.

        Args:
            error: The uncaught exception
            filename: Source file where it was raised
            lineno: Line number where it was raised
            colno: Column number, when the host reports one
        """
        pass

    @abstractmethod
    def on_unhandled_rejection(self, reason: Any) -> None:
        """
        Handle an asynchronous failure nobody awaited or caught.

        Args:
            reason: Exception or other value the task failed with
        """
        pass

    @abstractmethod
    def on_resource_error(
        self,
        tag_name: str,
        src: Optional[str] = None,
        element_id: Optional[str] = None,
        class_name: Optional[str] = None,
    ) -> None:
        """Handle a failed sub-resource load (image, script, stylesheet)."""
        pass

    @abstractmethod
    def on_network_failure(self, error: BaseException, url: str, method: str = "GET") -> None:
        """Handle a request that failed before a response arrived."""
        pass

    @abstractmethod
    def on_chunk_load_failure(self, url: str, status: int, status_text: Optional[str] = None) -> None:
        """Handle a failed versioned-asset fetch (stale deployed bundle)."""
        pass

    @abstractmethod
    def on_long_task(self, duration_ms: float, start_time: Optional[float] = None, name: Optional[str] = None) -> None:
        """Handle work that blocked the main thread / event loop."""
        pass

    @abstractmethod
    def on_user_action(self, kind: UserActionKind, **details: Any) -> None:
        """
        Handle a user action.

        Args:
            kind: Navigation, click, form submission or input focus
            **details: Action details (element, text, id, url, ...)
        """
        pass

    @abstractmethod
    def on_connectivity_change(self, online: bool, **details: Any) -> None:
        """Handle the host going online/offline or changing connection quality."""
        pass
