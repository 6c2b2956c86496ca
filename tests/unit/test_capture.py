"""
Unit tests for capture sources and runtime hooks.
"""

import asyncio
import sys
import threading
from unittest.mock import MagicMock

import httpx
import pytest

from error_monitor.capture.base import UserActionKind
from error_monitor.capture.hooks import (
    AsyncMonitoredTransport,
    MonitoredTransport,
    install_asyncio_handler,
    install_global_handlers,
    track_long_task,
    uninstall_global_handlers,
)
from error_monitor.capture.source import (
    GLOBAL_COMPONENT,
    UPDATE_REQUIRED_MESSAGE,
    ChunkLoadError,
    MonitorCaptureSource,
    ResourceLoadError,
    UnhandledRejectionError,
)
from error_monitor.config import MonitoringConfig
from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.error import ErrorCategory, ErrorSeverity
from error_monitor.services.environment import EnvironmentInfo
from error_monitor.services.monitor import ErrorMonitor
from error_monitor.services.notifications import Notification, RecordingNotifier


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def monitor(notifier):
    config = MonitoringConfig(
        environment="test",
        report_to_console=False,
        report_to_server=False,
        auto_notify_users=False,
    )
    return ErrorMonitor(
        config,
        notifier=notifier,
        reporter=MagicMock(),
        user_id_provider=lambda: None,
        environment_provider=lambda: EnvironmentInfo(),
    )


@pytest.fixture
def source(monitor):
    return MonitorCaptureSource(monitor)


@pytest.fixture
def restore_hooks():
    original_excepthook = sys.excepthook
    original_threading_excepthook = threading.excepthook
    yield
    uninstall_global_handlers()
    sys.excepthook = original_excepthook
    threading.excepthook = original_threading_excepthook


def latest(monitor):
    return monitor.get_errors()[0]


def test_uncaught_error(source, monitor):
    """Test uncaught errors are medium system records."""
    source.on_uncaught_error(TypeError("x is None"), filename="app.py", lineno=10, colno=4)

    record = latest(monitor)
    assert record.severity == ErrorSeverity.MEDIUM
    assert record.category == ErrorCategory.SYSTEM
    assert record.context["component"] == GLOBAL_COMPONENT
    assert record.context["action"] == "javascript_error"
    assert record.context["additional_data"] == {"filename": "app.py", "lineno": 10, "colno": 4}


def test_unhandled_rejection_with_exception(source, monitor):
    """Test rejected tasks are high system records."""
    source.on_unhandled_rejection(ConnectionError("socket closed"))

    record = latest(monitor)
    assert record.severity == ErrorSeverity.HIGH
    assert record.error_type == "ConnectionError"
    assert record.context["action"] == "unhandledrejection"


@pytest.mark.parametrize("reason,expected", [
    ("quota exceeded", "quota exceeded"),
    (None, "Unhandled promise rejection"),
    ("", "Unhandled promise rejection"),
])
def test_unhandled_rejection_with_plain_reason(source, monitor, reason, expected):
    """Test non-exception reasons are wrapped."""
    source.on_unhandled_rejection(reason)

    record = latest(monitor)
    assert record.message == expected
    assert record.error_type == UnhandledRejectionError.__name__


def test_resource_error(source, monitor):
    """Test failed sub-resource loads are low severity."""
    source.on_resource_error("IMG", src="/logo.png", element_id="logo", class_name="brand")

    record = latest(monitor)
    assert record.message == "Failed to load resource: IMG"
    assert record.error_type == ResourceLoadError.__name__
    assert record.severity == ErrorSeverity.LOW
    assert record.context["additional_data"]["src"] == "/logo.png"
    assert record.context["additional_data"]["id"] == "logo"


def test_network_failure(source, monitor):
    """Test failed requests are medium network records."""
    source.on_network_failure(OSError("connection reset"), "https://api.test/cart", "POST")

    record = latest(monitor)
    assert record.severity == ErrorSeverity.MEDIUM
    assert record.category == ErrorCategory.NETWORK
    assert record.context["action"] == "fetch_error"
    assert record.context["additional_data"] == {"url": "https://api.test/cart", "method": "POST"}


def test_chunk_load_failure_asks_for_refresh(source, monitor, notifier):
    """Test stale bundles are logged and always prompt a refresh."""
    source.on_chunk_load_failure("https://shop.test/_next/static/chunks/main.js", 404, "Not Found")

    record = latest(monitor)
    assert record.message == "Chunk loading failed: 404"
    assert record.error_type == ChunkLoadError.__name__
    assert record.context["action"] == "chunk_load_error"
    assert notifier.notifications == [
        Notification("warning", UPDATE_REQUIRED_MESSAGE, "Update Required", False),
    ]


def test_long_task_over_threshold(source, monitor):
    """Test long tasks above the threshold leave a warning breadcrumb."""
    source.on_long_task(50)
    source.on_long_task(120.5, start_time=1.0, name="render")

    crumbs = monitor.breadcrumbs
    assert len(crumbs) == 1
    assert crumbs[0].message == "Long task detected"
    assert crumbs[0].level == BreadcrumbLevel.WARNING
    assert crumbs[0].data == {"duration": 120.5, "start_time": 1.0, "name": "render"}


def test_click_breadcrumbs_only_for_clickable_elements(source, monitor):
    """Test clicks on buttons and links are recorded, text truncated."""
    source.on_user_action(UserActionKind.CLICK, element="button", text="x" * 80, id="buy")
    source.on_user_action("click", element="DIV", text="ignored")

    crumbs = monitor.breadcrumbs
    assert len(crumbs) == 1
    assert crumbs[0].message == "User click"
    assert crumbs[0].data["element"] == "BUTTON"
    assert crumbs[0].data["text"] == "x" * 50


def test_navigation_and_form_breadcrumbs(source, monitor):
    """Test navigation and form submission breadcrumbs."""
    source.on_user_action(UserActionKind.NAVIGATION, url="https://shop.test/cart")
    source.on_user_action(UserActionKind.FORM_SUBMIT, form_id="checkout", method="post")

    crumbs = monitor.breadcrumbs
    assert crumbs[0].message == "Navigation"
    assert crumbs[0].data == {"url": "https://shop.test/cart", "type": "navigate"}
    assert crumbs[1].message == "Form submission"
    assert crumbs[1].data["form_id"] == "checkout"


def test_input_focus_only_for_inputs(source, monitor):
    """Test focus breadcrumbs are limited to form fields."""
    source.on_user_action(UserActionKind.INPUT_FOCUS, element="input", name="email", type="email")
    source.on_user_action(UserActionKind.INPUT_FOCUS, element="span")

    crumbs = monitor.breadcrumbs
    assert len(crumbs) == 1
    assert crumbs[0].data == {"element": "INPUT", "name": "email", "type": "email"}


def test_connectivity_lost_and_restored(source, monitor, notifier):
    """Test offline/online transitions."""
    source.on_connectivity_change(False)
    source.on_connectivity_change(True)

    assert [crumb.message for crumb in monitor.breadcrumbs] == [
        "Network connection lost",
        "Network connection restored",
    ]
    assert [n.kind for n in notifier.notifications] == ["warning", "success"]


def test_slow_connection_warns(source, monitor, notifier):
    """Test a slow effective connection type prompts a warning."""
    source.on_connectivity_change(True, effective_type="2g", downlink=0.2)

    assert monitor.breadcrumbs[0].message == "Connection changed"
    assert monitor.breadcrumbs[0].data == {"effective_type": "2g", "downlink": 0.2}
    assert notifier.notifications[0].title == "Connection Quality"


def test_failing_notifier_is_contained(monitor):
    """Test capture notifications never raise."""
    broken = MagicMock()
    broken.warning.side_effect = RuntimeError("no toast")
    source = MonitorCaptureSource(monitor, notifier=broken)

    source.on_chunk_load_failure("https://shop.test/_next/static/a.js", 404)

    assert len(monitor.get_errors()) == 1


def test_global_excepthook(source, monitor, restore_hooks):
    """Test uncaught main-thread exceptions reach the source and the previous hook."""
    previous = MagicMock()
    sys.excepthook = previous
    install_global_handlers(source)

    try:
        raise KeyError("missing")
    except KeyError as e:
        sys.excepthook(type(e), e, e.__traceback__)

    record = latest(monitor)
    assert record.error_type == "KeyError"
    assert record.context["additional_data"]["filename"].endswith("test_capture.py")
    previous.assert_called_once()


def test_global_excepthook_ignores_keyboard_interrupt(source, monitor, restore_hooks):
    """Test Ctrl+C is passed through without a record."""
    previous = MagicMock()
    sys.excepthook = previous
    install_global_handlers(source)

    sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)

    assert monitor.get_errors() == []
    previous.assert_called_once()


def test_threading_excepthook(source, monitor, restore_hooks):
    """Test uncaught worker-thread exceptions reach the source."""
    threading.excepthook = MagicMock()
    install_global_handlers(source)

    def work():
        raise RuntimeError("worker crashed")

    thread = threading.Thread(target=work)
    thread.start()
    thread.join()

    assert latest(monitor).message == "worker crashed"


def test_uninstall_restores_hooks(source, restore_hooks):
    """Test uninstall puts back the previous hooks."""
    previous = sys.excepthook
    install_global_handlers(source)

    uninstall_global_handlers()

    assert sys.excepthook is previous


async def test_asyncio_handler(source, monitor):
    """Test loop exception reports become unhandled rejections."""
    loop = asyncio.get_running_loop()
    previous = MagicMock()
    original = loop.get_exception_handler()
    loop.set_exception_handler(previous)
    install_asyncio_handler(loop, source)

    try:
        context = {"message": "Task exception was never retrieved", "exception": ValueError("lost")}
        loop.call_exception_handler(context)
    finally:
        loop.set_exception_handler(original)

    record = latest(monitor)
    assert record.message == "lost"
    assert record.severity == ErrorSeverity.HIGH
    previous.assert_called_once_with(loop, context)


def test_monitored_transport_reports_chunk_failures(source, monitor, notifier):
    """Test 4xx/5xx responses for versioned assets are chunk failures."""
    transport = MonitoredTransport(source, httpx.MockTransport(lambda request: httpx.Response(404)))

    with httpx.Client(transport=transport) as client:
        client.get("https://shop.test/_next/static/chunks/app.js")
        client.get("https://shop.test/api/cart")

    records = monitor.get_errors()
    assert len(records) == 1
    assert records[0].context["action"] == "chunk_load_error"
    assert records[0].context["additional_data"]["status_text"] == "Not Found"


def test_monitored_transport_reports_network_failures(source, monitor):
    """Test transport errors are reported and re-raised."""
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport = MonitoredTransport(source, httpx.MockTransport(refuse))

    with httpx.Client(transport=transport) as client:
        with pytest.raises(httpx.ConnectError):
            client.post("https://api.test/orders")

    record = latest(monitor)
    assert record.category == ErrorCategory.NETWORK
    assert record.context["additional_data"] == {"url": "https://api.test/orders", "method": "POST"}


async def test_async_monitored_transport(source, monitor):
    """Test the async transport reports chunk failures."""
    transport = AsyncMonitoredTransport(source, httpx.MockTransport(lambda request: httpx.Response(500)))

    async with httpx.AsyncClient(transport=transport) as client:
        await client.get("https://shop.test/_next/static/chunks/vendor.js")

    assert latest(monitor).message == "Chunk loading failed: 500"


def test_track_long_task(source, monitor):
    """Test blocking work is timed and passed to the source."""
    recorder = MagicMock(wraps=source)

    with track_long_task(recorder, "build report"):
        pass

    recorder.on_long_task.assert_called_once()
    duration_ms = recorder.on_long_task.call_args.args[0]
    assert duration_ms >= 0
    assert recorder.on_long_task.call_args.kwargs["name"] == "build report"
