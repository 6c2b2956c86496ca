"""
Unit tests for performance metrics collection.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from error_monitor.config import MonitoringConfig
from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.services.monitor import ErrorMonitor
from error_monitor.services.notifications import RecordingNotifier
from error_monitor.services.performance import (
    BYTES_PER_MB,
    PerformanceMonitor,
    measure,
    measure_async,
)


def fake_process(rss_mb=50, cpu=12.5):
    process = MagicMock()
    process.memory_info.return_value = SimpleNamespace(rss=rss_mb * BYTES_PER_MB)
    process.cpu_percent.return_value = cpu
    return process


@pytest.fixture
def monitor():
    config = MonitoringConfig(environment="test", report_to_console=False, report_to_server=False)
    return ErrorMonitor(config, notifier=RecordingNotifier(), reporter=MagicMock())


def test_snapshot_defaults():
    """Test a fresh monitor has only the response time set."""
    snapshot = PerformanceMonitor().snapshot()

    assert snapshot.response_time == 0
    assert snapshot.memory_usage is None
    assert snapshot.network_latency is None


def test_snapshot_is_a_copy():
    """Test callers cannot modify the held metrics."""
    performance = PerformanceMonitor()

    snapshot = performance.snapshot()
    snapshot.response_time = 999

    assert performance.snapshot().response_time == 0


def test_record_page_load():
    """Test load timings are stored together."""
    performance = PerformanceMonitor()

    performance.record_page_load(320.5, dom_content_loaded=12.0, first_contentful_paint=410.0)
    performance.record_largest_contentful_paint(980.0)

    snapshot = performance.snapshot()
    assert snapshot.response_time == 320.5
    assert snapshot.dom_content_loaded == 12.0
    assert snapshot.first_contentful_paint == 410.0
    assert snapshot.largest_contentful_paint == 980.0


def test_sample_updates_memory_and_cpu():
    """Test sampling reads RSS and CPU from the process."""
    performance = PerformanceMonitor(process=fake_process(rss_mb=50, cpu=12.5))

    snapshot = performance.sample()

    assert snapshot.memory_usage == 50 * BYTES_PER_MB
    assert snapshot.cpu_usage == 12.5


def test_sample_below_threshold_does_not_alert():
    """Test the callback only fires above the threshold."""
    callback = MagicMock()
    performance = PerformanceMonitor(100, on_high_memory=callback, process=fake_process(rss_mb=100))

    performance.sample()

    callback.assert_not_called()


def test_sample_above_threshold_alerts():
    """Test high memory details are passed to the callback."""
    callback = MagicMock()
    performance = PerformanceMonitor(100, on_high_memory=callback, process=fake_process(rss_mb=256))

    with patch("error_monitor.services.performance.psutil.virtual_memory") as virtual_memory:
        virtual_memory.return_value = SimpleNamespace(total=1024 * BYTES_PER_MB)
        performance.sample()

    callback.assert_called_once_with({"used_mb": 256, "total_mb": 1024, "percentage": 25})


def test_sample_failure_keeps_previous_snapshot():
    """Test psutil errors are logged and the snapshot is unchanged."""
    process = fake_process()
    process.memory_info.side_effect = psutil.AccessDenied()
    performance = PerformanceMonitor(process=process)

    snapshot = performance.sample()

    assert snapshot.memory_usage is None


async def test_start_and_stop_sampling():
    """Test the sampling task runs on the loop and stops cleanly."""
    process = fake_process()
    performance = PerformanceMonitor(process=process)

    task = performance.start_sampling(interval=0.01)
    assert performance.start_sampling(interval=0.01) is task
    await asyncio.sleep(0.05)

    assert performance.sampling is True
    assert process.memory_info.call_count >= 2

    await performance.stop_sampling()

    assert performance.sampling is False
    assert task.cancelled()


async def test_stop_sampling_without_start():
    """Test stopping an idle monitor is a no-op."""
    await PerformanceMonitor().stop_sampling()


def test_measure_leaves_breadcrumbs(monitor):
    """Test a successful block leaves start and completion breadcrumbs."""
    with measure(monitor, "load cart"):
        pass

    messages = [crumb.message for crumb in monitor.breadcrumbs]
    assert messages[0] == "Starting load cart"
    assert messages[1].startswith("Completed load cart in ")
    assert messages[1].endswith("ms")
    assert "duration" in monitor.breadcrumbs[1].data


def test_measure_reraises_and_records_failure(monitor):
    """Test failures are recorded at error level and re-raised."""
    with pytest.raises(ValueError):
        with measure(monitor, "load cart"):
            raise ValueError("cart missing")

    crumb = monitor.breadcrumbs[-1]
    assert crumb.message.startswith("Failed load cart after ")
    assert crumb.level == BreadcrumbLevel.ERROR
    assert crumb.data["error"] == "cart missing"


async def test_measure_async(monitor):
    """Test the async variant."""
    async with measure_async(monitor, "fetch products"):
        await asyncio.sleep(0)

    messages = [crumb.message for crumb in monitor.breadcrumbs]
    assert messages[0] == "Starting fetch products"
    assert messages[1].startswith("Completed fetch products in ")
