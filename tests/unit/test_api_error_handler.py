"""
Unit tests for API error parsing, validation errors and retries.
"""

from unittest.mock import MagicMock

import httpx
import pytest

from error_monitor.config import MonitoringConfig
from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.error import ErrorCategory, ErrorSeverity
from error_monitor.services.api_errors import (
    ApiError,
    ApiErrorHandler,
    ApiRequestError,
    parse_api_error,
)
from error_monitor.services.environment import EnvironmentInfo
from error_monitor.services.monitor import ErrorMonitor
from error_monitor.services.notifications import Notification, RecordingNotifier


class RecordingSleep:
    """Collects requested delays instead of waiting."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


class AsyncRecordingSleep(RecordingSleep):

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def monitor(notifier):
    config = MonitoringConfig(
        environment="test",
        report_to_console=False,
        report_to_server=False,
    )
    return ErrorMonitor(
        config,
        notifier=notifier,
        reporter=MagicMock(),
        user_id_provider=lambda: None,
        environment_provider=lambda: EnvironmentInfo(),
    )


@pytest.fixture
def sleep():
    return AsyncRecordingSleep()


@pytest.fixture
def sync_sleep():
    return RecordingSleep()


@pytest.fixture
def handler(monitor, sleep, sync_sleep):
    return ApiErrorHandler(monitor, sleep=sleep, sync_sleep=sync_sleep)


def test_parse_response_with_json_body():
    """Test message, code and field come from the response body."""
    response = httpx.Response(
        422,
        json={"message": "Email is taken", "code": "EMAIL_TAKEN", "field": "email", "details": {"min": 3}},
    )

    api_error = parse_api_error(response)

    assert api_error == ApiError(
        message="Email is taken",
        code="EMAIL_TAKEN",
        status=422,
        field="email",
        details={"min": 3},
    )


def test_parse_response_falls_back_to_reason_phrase():
    """Test a body without a message uses the status text and code."""
    api_error = parse_api_error(httpx.Response(404, text="<html>missing</html>"))

    assert api_error.message == "Not Found"
    assert api_error.status == 404
    assert api_error.code == "404"


def test_parse_http_status_error():
    """Test raise_for_status failures are parsed from their response."""
    request = httpx.Request("GET", "https://shop.test/api/orders")
    response = httpx.Response(503, json={"error": "Maintenance"}, request=request)
    error = httpx.HTTPStatusError("Service Unavailable", request=request, response=response)

    api_error = parse_api_error(error)

    assert api_error.message == "Maintenance"
    assert api_error.status == 503


@pytest.mark.parametrize("error,message,code", [
    (httpx.ConnectTimeout("timed out"), "Request timed out. Please try again.", "TIMEOUT"),
    (httpx.ConnectError("refused"), "Network connection failed", "NETWORK_ERROR"),
    (RuntimeError("socket timeout while reading"), "Request timed out. Please try again.", "TIMEOUT"),
    (RuntimeError("boom"), "boom", "UNKNOWN_ERROR"),
    ({"message": "Coupon expired", "code": 410, "status": 410}, "Coupon expired", "410"),
    ({}, "An unexpected error occurred", "UNKNOWN_ERROR"),
])
def test_parse_transport_and_generic_errors(error, message, code):
    """Test non-response failures map to their canned messages."""
    api_error = parse_api_error(error)

    assert api_error.message == message
    assert api_error.code == code


def test_unauthorized_logs_authentication_record(handler, monitor, notifier):
    """Test 401 is a high authentication record with a session warning."""
    api_error = handler.handle_api_error(
        httpx.Response(401, json={"message": "Token expired"}),
        {"component": "orders", "action": "load"},
    )

    record = monitor.get_errors()[0]
    assert api_error.status == 401
    assert record.message == "Token expired"
    assert record.error_type == "ApiRequestError"
    assert record.severity == ErrorSeverity.HIGH
    assert record.category == ErrorCategory.AUTHENTICATION
    assert record.context["component"] == "orders"
    assert record.context["additional_data"] == {"status": 401, "code": "401"}
    assert notifier.notifications == [
        Notification("warning", "Your session has expired. Please sign in again.", "Session Expired", False),
    ]


@pytest.mark.parametrize("status,severity,category,kind,title", [
    (403, ErrorSeverity.HIGH, ErrorCategory.AUTHORIZATION, "error", "Access Denied"),
    (404, ErrorSeverity.MEDIUM, ErrorCategory.NETWORK, "error", "Not Found"),
    (429, ErrorSeverity.MEDIUM, ErrorCategory.NETWORK, "warning", "Rate Limited"),
    (500, ErrorSeverity.HIGH, ErrorCategory.SYSTEM, "error", "Server Error"),
    (504, ErrorSeverity.HIGH, ErrorCategory.SYSTEM, "error", "Server Error"),
])
def test_status_mapping(handler, monitor, notifier, status, severity, category, kind, title):
    """Test each handled status gets its severity, category and single alert."""
    handler.handle_api_error(httpx.Response(status))

    record = monitor.get_errors()[0]
    assert record.severity == severity
    assert record.category == category
    assert len(notifier.notifications) == 1
    assert notifier.notifications[0].kind == kind
    assert notifier.notifications[0].title == title


def test_unmapped_status_shows_error_message(handler, monitor, notifier):
    """Test other statuses alert with the parsed message."""
    handler.handle_api_error(httpx.Response(409, json={"message": "Order already paid"}))

    assert monitor.get_errors()[0].category == ErrorCategory.NETWORK
    assert notifier.notifications == [Notification("error", "Order already paid", "Error", False)]


def test_existing_additional_data_is_kept(handler, monitor):
    """Test caller context is merged with status and code."""
    handler.handle_api_error({"message": "Gone", "status": 410}, {"additional_data": {"order_id": "o-1"}})

    assert monitor.get_errors()[0].context["additional_data"] == {
        "order_id": "o-1",
        "status": 410,
        "code": "UNKNOWN_ERROR",
    }


def test_alerts_follow_auto_notify_setting(handler, monitor, notifier):
    """Test API alerts are suppressed when user notifications are off."""
    monitor.update_config(auto_notify_users=False)

    handler.handle_api_error(httpx.Response(500))

    assert len(monitor.get_errors()) == 1
    assert notifier.notifications == []


def test_api_request_error_round_trips(handler):
    """Test an ApiRequestError parses to the ApiError it carries."""
    api_error = ApiError(message="Declined", code="CARD_DECLINED", status=402)

    assert parse_api_error(ApiRequestError(api_error)) is api_error


def test_validation_error_from_field_map(handler, monitor, notifier):
    """Test field errors become one low validation record and a summary alert."""
    record = handler.handle_validation_error(
        {"email": "Email is required", "zip": "Zip code is invalid"},
        {"component": "checkout_form"},
    )

    assert record.message == "Email is required, Zip code is invalid"
    assert record.error_type == "FormValidationError"
    assert record.severity == ErrorSeverity.LOW
    assert record.category == ErrorCategory.VALIDATION
    assert record.context["additional_data"] == {
        "fields": {"email": "Email is required", "zip": "Zip code is invalid"},
    }
    assert notifier.notifications == [
        Notification("error", "2 validation errors found", "Validation Error", False),
    ]


def test_single_validation_message_is_shown(handler, notifier):
    """Test a single error is shown as is."""
    handler.handle_validation_error(["Password is too short"])

    assert notifier.notifications == [
        Notification("error", "Password is too short", "Validation Error", False),
    ]


def test_validation_below_threshold_still_alerts(handler, monitor, notifier):
    """Test the user sees validation alerts even when low records are dropped."""
    monitor.update_config(log_level="medium")

    assert handler.handle_validation_error(["Name is required"]) is None
    assert monitor.get_errors() == []
    assert len(notifier.notifications) == 1


async def test_retry_operation_backs_off_until_success(handler, monitor, sleep):
    """Test failures are retried with doubling delays."""
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ConnectError("refused")
        return "ok"

    result = await handler.retry_operation(flaky, "load_cart")

    assert result == "ok"
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]
    crumbs = monitor.breadcrumbs
    assert [crumb.message for crumb in crumbs] == ["Retrying operation", "Retrying operation"]
    assert crumbs[0].level == BreadcrumbLevel.WARNING
    assert crumbs[1].data == {"operation_id": "load_cart", "attempt": 2, "delay_seconds": 2.0}


async def test_retry_operation_raises_after_max_retries(handler, sleep):
    """Test the last failure propagates after the first attempt plus three retries."""
    calls = []

    async def broken():
        calls.append(1)
        raise RuntimeError(f"attempt {len(calls)}")

    with pytest.raises(RuntimeError, match="attempt 4"):
        await handler.retry_operation(broken)

    assert len(calls) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


async def test_retry_operation_caps_delay(handler, sleep):
    """Test delays never exceed max_delay."""
    async def broken():
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        await handler.retry_operation(broken, max_retries=4, base_delay=2.0, max_delay=5.0)

    assert sleep.delays == [2.0, 4.0, 5.0, 5.0]


def test_retry_operation_sync(handler, sync_sleep):
    """Test the blocking variant retries the same way."""
    outcomes = [ValueError("first"), "done"]

    def operation():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert handler.retry_operation_sync(operation, "save_profile", base_delay=0.5) == "done"
    assert sync_sleep.delays == [0.5]
