"""
Handling for failed API calls, rejected form input and retried operations.

ApiErrorHandler turns an HTTP failure into an ApiError, logs it through the
ErrorMonitor and shows a status-specific alert:

| status          | severity | category       | alert                    |
|-----------------|----------|----------------|--------------------------|
| 401             | high     | authentication | warning, Session Expired |
| 403             | high     | authorization  | error, Access Denied     |
| 404             | medium   | network        | error, Not Found         |
| 429             | medium   | network        | warning, Rate Limited    |
| 500/502/503/504 | high     | system         | error, Server Error      |
| anything else   | medium   | network        | error with the message   |
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, JsonValue

from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.error import (
    ClassifiedErrorRecord,
    ContextInput,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
)
from error_monitor.services.monitor import ErrorMonitor
from error_monitor.services.notifications import Notifier
from error_monitor.services.sanitizer import sanitize
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3

REQUEST_FAILED = "Request failed"
NETWORK_ERROR_MESSAGE = "Network connection failed"
TIMEOUT_MESSAGE = "Request timed out. Please try again."
UNKNOWN_ERROR_MESSAGE = "An unexpected error occurred"
GENERIC_API_MESSAGE = "An error occurred while processing your request."


class ApiError(BaseModel):
    """Normalized description of a failed API call."""

    message: str
    code: Optional[str] = None
    status: Optional[int] = None
    field: Optional[str] = None
    details: JsonValue = None


class ApiRequestError(Exception):
    """A request to an API failed."""

    def __init__(self, api_error: ApiError):
        super().__init__(api_error.message)
        self.api_error = api_error


class FormValidationError(Exception):
    """User input was rejected by validation."""
    pass


class ApiAlert(NamedTuple):
    severity: ErrorSeverity
    category: ErrorCategory
    kind: str
    message: Optional[str]
    title: str


STATUS_ALERTS: Dict[int, ApiAlert] = {
    401: ApiAlert(
        ErrorSeverity.HIGH, ErrorCategory.AUTHENTICATION, "warning",
        "Your session has expired. Please sign in again.", "Session Expired",
    ),
    403: ApiAlert(
        ErrorSeverity.HIGH, ErrorCategory.AUTHORIZATION, "error",
        "You do not have permission to perform this action.", "Access Denied",
    ),
    404: ApiAlert(
        ErrorSeverity.MEDIUM, ErrorCategory.NETWORK, "error",
        "The requested resource was not found.", "Not Found",
    ),
    429: ApiAlert(
        ErrorSeverity.MEDIUM, ErrorCategory.NETWORK, "warning",
        "Too many requests. Please wait a moment and try again.", "Rate Limited",
    ),
}

SERVER_ERROR_ALERT = ApiAlert(
    ErrorSeverity.HIGH, ErrorCategory.SYSTEM, "error",
    "Our servers are experiencing issues. Please try again in a few minutes.", "Server Error",
)
for _status in (500, 502, 503, 504):
    STATUS_ALERTS[_status] = SERVER_ERROR_ALERT

# None means the alert shows the parsed error message
GENERIC_ALERT = ApiAlert(ErrorSeverity.MEDIUM, ErrorCategory.NETWORK, "error", None, "Error")


def _response_body(response: httpx.Response) -> Mapping[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, Mapping) else {}


def _from_response(response: httpx.Response) -> ApiError:
    body = _response_body(response)
    code = body.get("code")
    return ApiError(
        message=body.get("message") or body.get("error") or response.reason_phrase or REQUEST_FAILED,
        status=response.status_code,
        code=str(code) if code is not None else str(response.status_code),
        field=body.get("field"),
        details=body.get("details"),
    )


def parse_api_error(error: Any) -> ApiError:
    """
    Normalize a failed API call into an ApiError.

    Args:
        error: An httpx response or exception, a mapping with message/code/
            status keys, or any other exception

    Returns:
        Parsed ApiError
    """
    if isinstance(error, ApiError):
        return error
    if isinstance(error, ApiRequestError):
        return error.api_error
    if isinstance(error, httpx.Response):
        return _from_response(error)
    if isinstance(error, httpx.HTTPStatusError):
        return _from_response(error.response)
    if isinstance(error, httpx.TimeoutException):
        return ApiError(message=TIMEOUT_MESSAGE, code="TIMEOUT")
    if isinstance(error, httpx.TransportError):
        return ApiError(message=NETWORK_ERROR_MESSAGE, code="NETWORK_ERROR")
    if isinstance(error, Mapping):
        return ApiError.model_validate({
            "message": error.get("message") or UNKNOWN_ERROR_MESSAGE,
            "code": str(error["code"]) if error.get("code") is not None else "UNKNOWN_ERROR",
            "status": error.get("status"),
            "field": error.get("field"),
            "details": sanitize(error.get("details"), ()),
        })

    message = str(error)
    if isinstance(error, TimeoutError) or "timeout" in message.lower():
        return ApiError(message=TIMEOUT_MESSAGE, code="TIMEOUT")
    code = getattr(error, "code", None)
    return ApiError(
        message=message or UNKNOWN_ERROR_MESSAGE,
        code=str(code) if code is not None else "UNKNOWN_ERROR",
    )


def _with_additional_data(context: ContextInput, extra: Mapping[str, Any]) -> Dict[str, Any]:
    if isinstance(context, ErrorContext):
        merged: Dict[str, Any] = context.model_dump()
    else:
        merged = dict(context or {})
    additional = merged.get("additional_data")
    additional = dict(additional) if isinstance(additional, Mapping) else {}
    additional.update({key: value for key, value in extra.items() if value is not None})
    merged["additional_data"] = additional
    return merged


class ApiErrorHandler:
    """
    Logs API and validation failures with their own user alerts, and
    retries flaky operations with exponential backoff.
    """

    def __init__(
        self,
        monitor: ErrorMonitor,
        notifier: Optional[Notifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        sync_sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize API error handler.

        Args:
            monitor: Monitor that receives records and breadcrumbs
            notifier: Surface for alerts (defaults to the monitor's notifier)
            sleep: Awaitable delay used between async retries
            sync_sleep: Blocking delay used between sync retries
        """
        self.monitor = monitor
        self.notifier = notifier or monitor.notifier
        self._sleep = sleep
        self._sync_sleep = sync_sleep

    def _notify(self, kind: str, message: str, title: str) -> None:
        config = self.monitor.config
        if not config.enabled or not config.auto_notify_users:
            return
        try:
            getattr(self.notifier, kind)(message, title)
        except Exception as e:
            logger.error(f"Failed to show {kind} notification: {e}", exc_info=True)

    def handle_api_error(self, error: Any, context: ContextInput = None) -> ApiError:
        """
        Log a failed API call and alert the user according to its status.

        Args:
            error: Anything parse_api_error accepts
            context: Where the call was made

        Returns:
            The parsed ApiError
        """
        api_error = parse_api_error(error)
        alert = STATUS_ALERTS.get(api_error.status, GENERIC_ALERT)

        self.monitor.log_error(
            ApiRequestError(api_error),
            _with_additional_data(context, {"status": api_error.status, "code": api_error.code}),
            alert.severity,
            alert.category,
            notify=False,
        )
        self._notify(alert.kind, alert.message or api_error.message or GENERIC_API_MESSAGE, alert.title)
        return api_error

    def handle_validation_error(
        self,
        errors: Union[Iterable[str], Mapping[str, str]],
        context: ContextInput = None,
    ) -> Optional[ClassifiedErrorRecord]:
        """
        Log rejected user input as a low severity validation record.

        Args:
            errors: Messages, or a mapping of field name to message
            context: Where the input was rejected

        Returns:
            The record, or None when it fell below the log threshold
        """
        if isinstance(errors, Mapping):
            fields = {str(field): str(message) for field, message in errors.items()}
            messages: List[str] = list(fields.values())
            extra: Dict[str, Any] = {"fields": fields}
        else:
            messages = [str(message) for message in errors]
            extra = {}

        record = self.monitor.log_error(
            FormValidationError(", ".join(messages)),
            _with_additional_data(context, extra),
            ErrorSeverity.LOW,
            ErrorCategory.VALIDATION,
            notify=False,
        )

        if messages:
            summary = f"{len(messages)} validation errors found" if len(messages) > 1 else messages[0]
            self._notify("error", summary, "Validation Error")
        return record

    def _retry_delay(self, attempt: int, base_delay: float, max_delay: float) -> float:
        return min(base_delay * (2 ** attempt), max_delay)

    def _on_retry(self, operation_id: str, attempt: int, max_retries: int, delay: float, error: Exception) -> None:
        logger.warning(
            f"{operation_id} failed on attempt {attempt + 1}/{max_retries + 1}: {error}. "
            f"Retrying in {delay:.1f}s..."
        )
        self.monitor.add_breadcrumb(
            "Retrying operation",
            BreadcrumbLevel.WARNING,
            {"operation_id": operation_id, "attempt": attempt + 1, "delay_seconds": delay},
        )

    async def retry_operation(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_id: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
    ) -> T:
        """
        Run an async operation, retrying failures with exponential backoff.

        The operation runs once plus up to max_retries retries, waiting
        base_delay * 2**attempt seconds (capped at max_delay) in between.

        Args:
            operation: Zero-argument callable returning an awaitable
            operation_id: Name used in logs and breadcrumbs
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry in seconds
            max_delay: Upper bound for a single delay

        Returns:
            The operation's result

        Raises:
            Exception: The last failure once retries are exhausted
        """
        operation_id = operation_id or getattr(operation, "__name__", "operation")
        max_retries = max(0, max_retries)

        for attempt in range(max_retries + 1):
            try:
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                if attempt > 0:
                    logger.info(f"{operation_id} succeeded on attempt {attempt + 1}/{max_retries + 1}")
                return result
            except Exception as e:
                if attempt == max_retries:
                    logger.error(f"{operation_id} failed after {max_retries + 1} attempts: {e}", exc_info=True)
                    raise
                delay = self._retry_delay(attempt, base_delay, max_delay)
                self._on_retry(operation_id, attempt, max_retries, delay, e)
                await self._sleep(delay)

    def retry_operation_sync(
        self,
        operation: Callable[[], T],
        operation_id: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
    ) -> T:
        """Blocking counterpart of retry_operation."""
        operation_id = operation_id or getattr(operation, "__name__", "operation")
        max_retries = max(0, max_retries)

        for attempt in range(max_retries + 1):
            try:
                result = operation()
                if attempt > 0:
                    logger.info(f"{operation_id} succeeded on attempt {attempt + 1}/{max_retries + 1}")
                return result
            except Exception as e:
                if attempt == max_retries:
                    logger.error(f"{operation_id} failed after {max_retries + 1} attempts: {e}", exc_info=True)
                    raise
                delay = self._retry_delay(attempt, base_delay, max_delay)
                self._on_retry(operation_id, attempt, max_retries, delay, e)
                self._sync_sleep(delay)
