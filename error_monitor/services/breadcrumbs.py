"""Fixed-capacity breadcrumb trail attached to classified errors."""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Iterable, List

from error_monitor.models.breadcrumb import Breadcrumb, BreadcrumbLevel
from error_monitor.services.sanitizer import sanitize


class BreadcrumbBuffer:
    """
    Ring buffer of recent user and system actions.

    Oldest entries are evicted first once capacity is reached.
    """

    def __init__(self, capacity: int = 20):
        self._crumbs: Deque[Breadcrumb] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._crumbs.maxlen or 0

    def add(
        self,
        message: str,
        level: BreadcrumbLevel = BreadcrumbLevel.INFO,
        data: Any = None,
        sensitive_keys: Iterable[str] = (),
    ) -> Breadcrumb:
        """
        Append a breadcrumb stamped with the current time.

        Args:
            message: Human-readable description
            level: Breadcrumb level
            data: Optional payload, sanitized before storage
            sensitive_keys: Substrings marking keys to redact in data

        Returns:
            The stored breadcrumb
        """
        crumb = Breadcrumb(
            timestamp=datetime.now(timezone.utc),
            message=message,
            level=BreadcrumbLevel(level),
            data=sanitize(data, sensitive_keys) if data is not None else None,
        )
        self._crumbs.append(crumb)
        return crumb

    def snapshot(self) -> List[Breadcrumb]:
        """Copy of the current trail, oldest first."""
        return list(self._crumbs)

    def resize(self, capacity: int) -> None:
        """Change capacity, keeping the newest entries."""
        if capacity != self._crumbs.maxlen:
            self._crumbs = deque(self._crumbs, maxlen=capacity)

    def clear(self) -> None:
        self._crumbs.clear()

    def __len__(self) -> int:
        return len(self._crumbs)
