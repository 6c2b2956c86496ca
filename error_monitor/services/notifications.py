"""
User-facing notification gateway.

Decides whether a classified error is surfaced to the user and rate limits
repeated notifications for the same fingerprint.
"""

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, List, NamedTuple, Optional

from error_monitor.models.error import ClassifiedErrorRecord, ErrorSeverity
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)


CRITICAL_MESSAGE = "A critical error occurred. Please refresh the page and try again."
HIGH_MESSAGE = "An error occurred while processing your request."
MEDIUM_MESSAGE = "Something went wrong. Please try again."


class Notifier(ABC):
    """Surface through which alerts reach the user."""

    @abstractmethod
    def error(self, message: str, title: str, persistent: bool = False) -> None:
        """Show an error alert."""
        pass

    @abstractmethod
    def warning(self, message: str, title: str, persistent: bool = False) -> None:
        """Show a warning alert."""
        pass

    @abstractmethod
    def info(self, message: str, title: str, persistent: bool = False) -> None:
        """Show an informational alert."""
        pass

    @abstractmethod
    def success(self, message: str, title: str, persistent: bool = False) -> None:
        """Show a success alert."""
        pass


class LoggingNotifier(Notifier):
    """Notifier that writes alerts to the notifications log."""

    def __init__(self, logger_name: str = "error_monitor.notifications"):
        self._logger = get_logger(logger_name)

    def _emit(self, kind: str, message: str, title: str, persistent: bool) -> None:
        self._logger.info(
            f"{title}: {message}",
            extra={"notification_type": kind, "title": title, "persistent": persistent},
        )

    def error(self, message: str, title: str, persistent: bool = False) -> None:
        self._emit("error", message, title, persistent)

    def warning(self, message: str, title: str, persistent: bool = False) -> None:
        self._emit("warning", message, title, persistent)

    def info(self, message: str, title: str, persistent: bool = False) -> None:
        self._emit("info", message, title, persistent)

    def success(self, message: str, title: str, persistent: bool = False) -> None:
        self._emit("success", message, title, persistent)


class Notification(NamedTuple):
    kind: str
    message: str
    title: str
    persistent: bool


class RecordingNotifier(Notifier):
    """Notifier that keeps every alert in memory."""

    def __init__(self):
        self.notifications: List[Notification] = []

    def error(self, message: str, title: str, persistent: bool = False) -> None:
        self.notifications.append(Notification("error", message, title, persistent))

    def warning(self, message: str, title: str, persistent: bool = False) -> None:
        self.notifications.append(Notification("warning", message, title, persistent))

    def info(self, message: str, title: str, persistent: bool = False) -> None:
        self.notifications.append(Notification("info", message, title, persistent))

    def success(self, message: str, title: str, persistent: bool = False) -> None:
        self.notifications.append(Notification("success", message, title, persistent))

    def clear(self) -> None:
        self.notifications.clear()


class RateLimiter:
    """
    Last-notified timestamps per fingerprint.

    Expiry is checked lazily on lookup. The table is capped at max_entries;
    when full, expired entries are pruned first and then the least recently
    notified fingerprints are dropped.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._last_notified: "OrderedDict[str, float]" = OrderedDict()

    def is_limited(self, fingerprint: str) -> bool:
        """Return True if the fingerprint was notified within the window."""
        last = self._last_notified.get(fingerprint)
        if last is None:
            return False
        return self._clock() - last < self.window_seconds

    def record(self, fingerprint: str) -> None:
        """Store now() as the fingerprint's last notification time."""
        self._last_notified[fingerprint] = self._clock()
        self._last_notified.move_to_end(fingerprint)
        if len(self._last_notified) > self.max_entries:
            self._prune()

    def _prune(self) -> None:
        now = self._clock()
        expired = [
            fingerprint
            for fingerprint, last in self._last_notified.items()
            if now - last >= self.window_seconds
        ]
        for fingerprint in expired:
            del self._last_notified[fingerprint]
        while len(self._last_notified) > self.max_entries:
            self._last_notified.popitem(last=False)

    def last_notified(self, fingerprint: str) -> Optional[float]:
        return self._last_notified.get(fingerprint)

    def clear(self) -> None:
        self._last_notified.clear()

    def __len__(self) -> int:
        return len(self._last_notified)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._last_notified


class NotificationGateway:
    """
    Maps classified records to user alerts.

    critical -> persistent error, high -> error, medium -> warning,
    low -> nothing.
    """

    def __init__(self, notifier: Notifier, rate_limiter: RateLimiter):
        self.notifier = notifier
        self.rate_limiter = rate_limiter

    def notify(self, record: ClassifiedErrorRecord, rate_limit: bool = True) -> bool:
        """
        Surface an alert for the record unless suppressed.

        Args:
            record: Classified error record
            rate_limit: Whether to apply per-fingerprint rate limiting

        Returns:
            True if an alert was surfaced
        """
        if record.severity == ErrorSeverity.LOW:
            return False

        if rate_limit and self.rate_limiter.is_limited(record.fingerprint):
            logger.debug(
                "Notification suppressed by rate limit",
                extra={"fingerprint": record.fingerprint, "record_id": record.id},
            )
            return False

        if record.severity == ErrorSeverity.CRITICAL:
            self.notifier.error(CRITICAL_MESSAGE, "Critical Error", persistent=True)
        elif record.severity == ErrorSeverity.HIGH:
            self.notifier.error(HIGH_MESSAGE, "Error")
        else:
            self.notifier.warning(MEDIUM_MESSAGE, "Warning")

        if rate_limit:
            self.rate_limiter.record(record.fingerprint)
        return True
