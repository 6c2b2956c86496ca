"""
Performance metrics collection for error context.

This module provides:
- PerformanceMonitor, which owns the latest PerformanceSnapshot and
  samples process memory/CPU on a fixed interval
- measure / measure_async context managers that leave timing breadcrumbs
"""

import asyncio
import time
from contextlib import asynccontextmanager, contextmanager
from typing import TYPE_CHECKING, Callable, Optional

import psutil

from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.performance import PerformanceSnapshot
from error_monitor.utils.logging import get_logger

if TYPE_CHECKING:
    from error_monitor.services.monitor import ErrorMonitor

logger = get_logger(__name__)

SAMPLING_INTERVAL_SECONDS = 30.0
BYTES_PER_MB = 1048576


class PerformanceMonitor:
    """
    Holds the current performance snapshot.

    Sampling only ever writes to the snapshot; readers get deep copies.
    """

    def __init__(
        self,
        high_memory_threshold_mb: float = 100.0,
        on_high_memory: Optional[Callable[[dict], None]] = None,
        process: Optional[psutil.Process] = None,
    ):
        """
        Initialize performance monitor.

        Args:
            high_memory_threshold_mb: RSS above which on_high_memory fires
            on_high_memory: Callback receiving memory details on a high sample
            process: Process to sample (defaults to the current process)
        """
        self.high_memory_threshold_mb = high_memory_threshold_mb
        self.on_high_memory = on_high_memory
        self._process = process
        self._metrics = PerformanceSnapshot()
        self._sampling_task: Optional[asyncio.Task] = None

    def snapshot(self) -> PerformanceSnapshot:
        """Deep copy of the current metrics."""
        return self._metrics.model_copy(deep=True)

    def record_page_load(
        self,
        response_time: float,
        dom_content_loaded: Optional[float] = None,
        first_contentful_paint: Optional[float] = None,
        largest_contentful_paint: Optional[float] = None,
    ) -> None:
        """
        Record one-time load timings.

        Args:
            response_time: Time from request start to response end (ms)
            dom_content_loaded: DOMContentLoaded handler duration (ms)
            first_contentful_paint: First contentful paint (ms)
            largest_contentful_paint: Largest contentful paint (ms)
        """
        self._metrics = self._metrics.model_copy(update={
            "response_time": response_time,
            "dom_content_loaded": dom_content_loaded,
            "first_contentful_paint": first_contentful_paint,
            "largest_contentful_paint": largest_contentful_paint,
        })

    def record_largest_contentful_paint(self, value: float) -> None:
        self._metrics = self._metrics.model_copy(update={"largest_contentful_paint": value})

    def record_network_latency(self, latency_ms: float) -> None:
        self._metrics = self._metrics.model_copy(update={"network_latency": latency_ms})

    def sample(self) -> PerformanceSnapshot:
        """
        Sample memory and CPU usage of the process.

        Returns:
            Copy of the updated snapshot
        """
        try:
            if self._process is None:
                self._process = psutil.Process()
            with self._process.oneshot():
                memory = self._process.memory_info()
                cpu = self._process.cpu_percent(interval=None)
        except (psutil.Error, OSError) as e:
            logger.warning(f"Performance sampling failed: {e}")
            return self.snapshot()

        self._metrics = self._metrics.model_copy(update={
            "memory_usage": memory.rss,
            "cpu_usage": cpu,
        })

        used_mb = round(memory.rss / BYTES_PER_MB)
        if used_mb > self.high_memory_threshold_mb and self.on_high_memory is not None:
            total_mb = round(psutil.virtual_memory().total / BYTES_PER_MB)
            self.on_high_memory({
                "used_mb": used_mb,
                "total_mb": total_mb,
                "percentage": round(used_mb / total_mb * 100) if total_mb else None,
            })

        return self.snapshot()

    async def _sampling_loop(self, interval: float) -> None:
        while True:
            self.sample()
            await asyncio.sleep(interval)

    def start_sampling(self, interval: float = SAMPLING_INTERVAL_SECONDS) -> asyncio.Task:
        """
        Start periodic sampling on the running event loop.

        Args:
            interval: Seconds between samples

        Returns:
            The sampling task
        """
        if self._sampling_task is None or self._sampling_task.done():
            self._sampling_task = asyncio.get_running_loop().create_task(
                self._sampling_loop(interval)
            )
            logger.info("Performance sampling started", extra={"interval_seconds": interval})
        return self._sampling_task

    async def stop_sampling(self) -> None:
        """Cancel periodic sampling and wait for the task to finish."""
        task = self._sampling_task
        self._sampling_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Performance sampling stopped")

    @property
    def sampling(self) -> bool:
        return self._sampling_task is not None and not self._sampling_task.done()


@contextmanager
def measure(monitor: "ErrorMonitor", name: str):
    """
    Time a block and leave start/finish breadcrumbs on the monitor.

    Usage:
        with measure(monitor, "load cart"):
            cart = load_cart()
    """
    start_time = time.perf_counter()
    monitor.add_breadcrumb(f"Starting {name}", BreadcrumbLevel.INFO)
    try:
        yield
    except Exception as e:
        duration = (time.perf_counter() - start_time) * 1000
        monitor.add_breadcrumb(
            f"Failed {name} after {duration:.2f}ms",
            BreadcrumbLevel.ERROR,
            {"duration": duration, "error": e},
        )
        raise
    duration = (time.perf_counter() - start_time) * 1000
    monitor.add_breadcrumb(
        f"Completed {name} in {duration:.2f}ms", BreadcrumbLevel.INFO, {"duration": duration}
    )


@asynccontextmanager
async def measure_async(monitor: "ErrorMonitor", name: str):
    """
    Async variant of measure.

    Usage:
        async with measure_async(monitor, "fetch products"):
            products = await client.get_products()
    """
    start_time = time.perf_counter()
    monitor.add_breadcrumb(f"Starting {name}", BreadcrumbLevel.INFO)
    try:
        yield
    except Exception as e:
        duration = (time.perf_counter() - start_time) * 1000
        monitor.add_breadcrumb(
            f"Failed {name} after {duration:.2f}ms",
            BreadcrumbLevel.ERROR,
            {"duration": duration, "error": e},
        )
        raise
    duration = (time.perf_counter() - start_time) * 1000
    monitor.add_breadcrumb(
        f"Completed {name} in {duration:.2f}ms", BreadcrumbLevel.INFO, {"duration": duration}
    )
