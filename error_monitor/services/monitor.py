"""
Error aggregation engine.

ErrorMonitor owns the capped error log, the breadcrumb trail and the
notification rate-limit table. Every failure fed into log_error goes
through sanitize -> classify -> fingerprint -> threshold check -> log ->
report -> notify. Neither log_error nor add_breadcrumb ever raises.
"""

import json
import secrets
import string
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from error_monitor.config import MonitoringConfig
from error_monitor.errors import ConfigurationError
from error_monitor.models.breadcrumb import Breadcrumb, BreadcrumbLevel
from error_monitor.models.error import (
    ClassifiedErrorRecord,
    ContextInput,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ErrorStats,
    RawFailureEvent,
)
from error_monitor.services.breadcrumbs import BreadcrumbBuffer
from error_monitor.services.classifier import (
    determine_category,
    determine_severity,
    generate_fingerprint,
    generate_tags,
)
from error_monitor.services.environment import (
    EnvironmentInfo,
    request_environment,
    token_user_id,
)
from error_monitor.services.notifications import (
    LoggingNotifier,
    NotificationGateway,
    Notifier,
    RateLimiter,
)
from error_monitor.services.performance import PerformanceMonitor
from error_monitor.services.reporter import ErrorReporter
from error_monitor.services.sanitizer import sanitize
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)

RECENT_ERRORS_LIMIT = 10

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str) -> str:
    """Identifier of the form <prefix>_<epoch ms>_<9 base36 chars>."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class ErrorMonitor:
    """
    Aggregates, classifies and routes runtime failures.

    Construction has no side effects: no hooks are installed and no
    sampling task is started.
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        *,
        notifier: Optional[Notifier] = None,
        reporter: Optional[ErrorReporter] = None,
        performance: Optional[PerformanceMonitor] = None,
        user_id_provider: Optional[Callable[[], Optional[str]]] = None,
        environment_provider: Optional[Callable[[], EnvironmentInfo]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize error monitor.

        Args:
            config: Monitoring configuration. If None, loaded from environment.
            notifier: User notification surface (defaults to LoggingNotifier)
            reporter: Console/server reporter
            performance: Performance snapshot owner
            user_id_provider: Best-effort lookup of the current user id
            environment_provider: Best-effort lookup of user agent and URL
            clock: Monotonic clock used for the notification rate limit
        """
        self._config = config or MonitoringConfig()
        self.session_id = generate_id("session")
        self._lock = threading.RLock()

        self._errors: Deque[ClassifiedErrorRecord] = deque(maxlen=self._config.max_errors_in_memory)
        self._breadcrumbs = BreadcrumbBuffer(self._config.max_breadcrumbs)
        self._rate_limiter = RateLimiter(
            window_seconds=self._config.rate_limit_window_seconds,
            max_entries=self._config.rate_limit_max_entries,
            clock=clock,
        )

        self.notifier = notifier or LoggingNotifier()
        self._gateway = NotificationGateway(self.notifier, self._rate_limiter)
        self.reporter = reporter or ErrorReporter()
        self.performance = performance or PerformanceMonitor(
            high_memory_threshold_mb=self._config.high_memory_threshold_mb,
            on_high_memory=self._on_high_memory,
        )
        self._user_id_provider = user_id_provider or token_user_id
        self._environment_provider = environment_provider or request_environment

    @property
    def config(self) -> MonitoringConfig:
        return self._config

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def breadcrumbs(self) -> List[Breadcrumb]:
        """Snapshot of the breadcrumb trail, oldest first."""
        return self._breadcrumbs.snapshot()

    def log_error(
        self,
        error: BaseException,
        context: ContextInput = None,
        severity: Optional[Union[ErrorSeverity, str]] = None,
        category: Optional[Union[ErrorCategory, str]] = None,
        *,
        notify: bool = True,
    ) -> Optional[ClassifiedErrorRecord]:
        """
        Classify, store, report and notify a failure.

        Args:
            error: The failure
            context: Component/action/metadata describing where it happened
            severity: Severity override
            category: Category override
            notify: Set False when the caller shows its own alert

        Returns:
            The classified record, or None when monitoring is disabled, the
            severity is below the configured threshold, or the record could
            not be built
        """
        config = self._config
        if not config.enabled:
            return None

        try:
            with self._lock:
                record = self._build_record(config, error, context, severity, category)
                if record is None:
                    return None
                self._errors.appendleft(record)
        except Exception as e:
            logger.error(f"Failed to classify error: {e}", exc_info=True)
            return None

        try:
            self.reporter.report(record, config)
        except Exception as e:
            logger.error(f"Failed to report error {record.id}: {e}", exc_info=True)

        if notify and config.auto_notify_users:
            try:
                # Rate-limit check and record must not interleave across threads
                with self._lock:
                    self._gateway.notify(record, rate_limit=config.rate_limit_notifications)
            except Exception as e:
                logger.error(f"Failed to notify user of error {record.id}: {e}", exc_info=True)

        return record

    def _build_event(self, error: BaseException, context: ContextInput) -> RawFailureEvent:
        if isinstance(context, ErrorContext):
            raw_context: Dict[str, Any] = context.model_dump()
        else:
            raw_context = dict(context or {})
        # Normalize to the JSON value domain without redacting
        error_context = ErrorContext.model_validate(sanitize(raw_context, ()))
        return RawFailureEvent.from_exception(error, error_context)

    def _build_record(
        self,
        config: MonitoringConfig,
        error: BaseException,
        context: ContextInput,
        severity: Optional[Union[ErrorSeverity, str]],
        category: Optional[Union[ErrorCategory, str]],
    ) -> Optional[ClassifiedErrorRecord]:
        event = self._build_event(error, context)

        resolved_severity = ErrorSeverity(severity) if severity else determine_severity(event)
        resolved_category = ErrorCategory(category) if category else determine_category(event)

        if resolved_severity.rank < config.log_level.rank:
            return None

        fingerprint = generate_fingerprint(event)
        environment = self._current_environment()
        user_agent = environment.user_agent or event.context.user_agent
        url = environment.url or event.context.url

        metadata: Dict[str, Any] = {
            "timestamp": int(time.time() * 1000),
            "environment": config.environment,
            "user_agent": user_agent,
        }
        if config.include_performance_metrics:
            metadata["performance_metrics"] = self.performance.snapshot().model_dump(mode="json")

        return ClassifiedErrorRecord(
            id=generate_id("error"),
            message=event.message,
            stack_trace=event.stack_trace,
            error_type=event.error_type,
            context=sanitize(
                event.context.model_dump(mode="json", exclude_defaults=True),
                config.sensitive_data_keys,
            ),
            timestamp=event.timestamp,
            severity=resolved_severity,
            category=resolved_category,
            user_id=self._current_user_id() or event.context.user_id,
            session_id=self.session_id,
            user_agent=user_agent,
            url=url,
            fingerprint=fingerprint,
            breadcrumbs=self._breadcrumbs.snapshot(),
            tags=generate_tags(event, resolved_category, user_agent),
            metadata=metadata,
        )

    def _current_user_id(self) -> Optional[str]:
        try:
            return self._user_id_provider()
        except Exception as e:
            logger.debug(f"User id lookup failed: {e}")
            return None

    def _current_environment(self) -> EnvironmentInfo:
        try:
            return self._environment_provider() or EnvironmentInfo()
        except Exception as e:
            logger.debug(f"Environment lookup failed: {e}")
            return EnvironmentInfo()

    def add_breadcrumb(
        self,
        message: str,
        level: Union[BreadcrumbLevel, str] = BreadcrumbLevel.INFO,
        data: Any = None,
    ) -> None:
        """
        Record a breadcrumb for later errors.

        Args:
            message: Human-readable description
            level: info, warning or error
            data: Optional payload (sanitized before storage)
        """
        config = self._config
        if not config.enabled or not config.include_breadcrumbs:
            return
        try:
            with self._lock:
                self._breadcrumbs.add(message, level, data, config.sensitive_data_keys)
        except Exception as e:
            logger.error(f"Failed to add breadcrumb: {e}", exc_info=True)

    def _on_high_memory(self, details: Mapping[str, Any]) -> None:
        self.add_breadcrumb("High memory usage detected", BreadcrumbLevel.WARNING, dict(details))

    def get_errors(self) -> List[ClassifiedErrorRecord]:
        """All records, newest first."""
        with self._lock:
            return list(self._errors)

    def get_error(self, record_id: str) -> Optional[ClassifiedErrorRecord]:
        with self._lock:
            for record in self._errors:
                if record.id == record_id:
                    return record
        return None

    def mark_resolved(self, record_id: str) -> bool:
        """
        Flag a record as resolved.

        Returns:
            True if the record was found
        """
        record = self.get_error(record_id)
        if record is None:
            return False
        record.resolved = True
        return True

    def get_error_stats(self) -> ErrorStats:
        """Totals by severity and category plus the most recent records."""
        with self._lock:
            errors = list(self._errors)

        by_severity = {severity: 0 for severity in ErrorSeverity}
        by_category = {category: 0 for category in ErrorCategory}
        for record in errors:
            by_severity[record.severity] += 1
            by_category[record.category] += 1

        return ErrorStats(
            total=len(errors),
            by_severity=by_severity,
            by_category=by_category,
            recent_errors=errors[:RECENT_ERRORS_LIMIT],
        )

    def clear_errors(self) -> None:
        """Empty the error log, the breadcrumb trail and the rate-limit table."""
        with self._lock:
            self._errors.clear()
            self._breadcrumbs.clear()
            self._rate_limiter.clear()
        logger.info("Error log cleared", extra={"session_id": self.session_id})

    def export_errors(self) -> str:
        """Serialize the full log as an indented JSON array, newest first."""
        records = [record.model_dump(mode="json") for record in self.get_errors()]
        return json.dumps(records, indent=2)

    def update_config(self, **changes: Any) -> MonitoringConfig:
        """
        Merge changes into the configuration.

        Args:
            **changes: Config fields to change

        Returns:
            The merged configuration

        Raises:
            ConfigurationError: If a field is unknown or a value is invalid
        """
        unknown = set(changes) - set(MonitoringConfig.model_fields)
        if unknown:
            raise ConfigurationError(f"Unknown config fields: {', '.join(sorted(unknown))}")

        # Carry over only explicitly set fields so model_fields_set stays meaningful
        merged = {**self._config.model_dump(exclude_unset=True), **changes}
        try:
            config = MonitoringConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

        with self._lock:
            self._config = config
            if self._errors.maxlen != config.max_errors_in_memory:
                # Newest first: keep the head of the log
                kept = list(self._errors)[:config.max_errors_in_memory]
                self._errors = deque(kept, maxlen=config.max_errors_in_memory)
            self._breadcrumbs.resize(config.max_breadcrumbs)
            self._rate_limiter.window_seconds = config.rate_limit_window_seconds
            self._rate_limiter.max_entries = config.rate_limit_max_entries
            self.performance.high_memory_threshold_mb = config.high_memory_threshold_mb

        logger.info("Monitoring config updated", extra={"changed_fields": sorted(changes)})
        return config


_error_monitor: Optional[ErrorMonitor] = None
_instance_lock = threading.Lock()


def get_error_monitor() -> ErrorMonitor:
    """
    Get or create the shared ErrorMonitor instance.

    Returns:
        ErrorMonitor instance
    """
    global _error_monitor
    if _error_monitor is None:
        with _instance_lock:
            if _error_monitor is None:
                _error_monitor = ErrorMonitor()
    return _error_monitor


def set_error_monitor(monitor: ErrorMonitor) -> None:
    """Install an explicitly constructed monitor as the shared instance."""
    global _error_monitor
    with _instance_lock:
        _error_monitor = monitor


def reset_error_monitor() -> None:
    """Drop the shared instance; the next access builds a fresh one."""
    global _error_monitor
    with _instance_lock:
        if _error_monitor is not None:
            _error_monitor.reporter.close()
        _error_monitor = None


def log_error(
    error: BaseException,
    context: ContextInput = None,
    severity: Optional[Union[ErrorSeverity, str]] = None,
    category: Optional[Union[ErrorCategory, str]] = None,
) -> Optional[ClassifiedErrorRecord]:
    return get_error_monitor().log_error(error, context, severity, category)


def add_breadcrumb(
    message: str,
    level: Union[BreadcrumbLevel, str] = BreadcrumbLevel.INFO,
    data: Any = None,
) -> None:
    get_error_monitor().add_breadcrumb(message, level, data)


def get_error_stats() -> ErrorStats:
    return get_error_monitor().get_error_stats()


def report_error(error: BaseException, additional_data: Any = None) -> Optional[ClassifiedErrorRecord]:
    """Log an error reported manually by a user or by tooling."""
    return get_error_monitor().log_error(
        error,
        {
            "component": "manual_report",
            "action": "user_reported",
            "additional_data": {"details": additional_data} if additional_data is not None else {},
        },
        ErrorSeverity.MEDIUM,
        ErrorCategory.USER_ACTION,
    )
