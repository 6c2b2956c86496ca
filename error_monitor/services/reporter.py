"""
Outbound error reporting.

Records are written to the console log and, when enabled, POSTed as JSON
to the configured endpoint. Delivery is fire-and-forget: on a running
asyncio loop the POST becomes a detached task, otherwise it runs on a
single background worker thread. There is no retry; failed reports are
logged and dropped.
"""

import asyncio
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Set

import httpx

from error_monitor.config import MonitoringConfig
from error_monitor.errors import ReportingError
from error_monitor.models.error import ClassifiedErrorRecord
from error_monitor.utils.logging import get_logger, log_error_record, log_report_call

logger = get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class ErrorReporter:
    """Console and server reporting for classified error records."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize reporter.

        Args:
            transport: Optional httpx transport, used by both the sync and
                async clients (tests pass an httpx.MockTransport)
        """
        self._transport = transport
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending_tasks: Set[asyncio.Task] = set()
        self._pending_futures: Set[Future] = set()
        self._console_logger = get_logger("error_monitor.console")

    def report(self, record: ClassifiedErrorRecord, config: MonitoringConfig) -> None:
        """
        Report a record according to the configuration. Never raises.

        Args:
            record: Record to report
            config: Current monitoring configuration
        """
        if config.report_to_console:
            try:
                log_error_record(self._console_logger, record)
            except Exception as e:
                logger.error(f"Console reporting failed: {e}", exc_info=True)

        if config.report_to_server:
            url = config.report_url
            if url is None:
                logger.warning(
                    "Server reporting enabled but no absolute report URL configured",
                    extra={"endpoint": config.server_endpoint},
                )
                return
            self._dispatch(record, url, config.report_timeout_seconds)

    def _dispatch(self, record: ClassifiedErrorRecord, url: str, timeout: float) -> None:
        payload = record.model_dump_json()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._send_async(url, payload, record.id, timeout))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="error-reporter")
        future = self._executor.submit(self._send_sync, url, payload, record.id, timeout)
        self._pending_futures.add(future)
        future.add_done_callback(self._pending_futures.discard)

    @staticmethod
    def _check_response(response: httpx.Response) -> None:
        if response.is_error:
            raise ReportingError(f"Report endpoint returned {response.status_code}")

    async def _send_async(self, url: str, payload: str, record_id: str, timeout: float) -> None:
        start_time = time.time()
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=timeout) as client:
                response = await client.post(url, content=payload, headers=JSON_HEADERS)
            self._check_response(response)
            log_report_call(
                logger, url, record_id,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
            )
        except Exception as e:
            log_report_call(
                logger, url, record_id,
                duration_ms=(time.time() - start_time) * 1000,
                error=str(e) or type(e).__name__,
            )

    def _send_sync(self, url: str, payload: str, record_id: str, timeout: float) -> None:
        start_time = time.time()
        try:
            with httpx.Client(transport=self._transport, timeout=timeout) as client:
                response = client.post(url, content=payload, headers=JSON_HEADERS)
            self._check_response(response)
            log_report_call(
                logger, url, record_id,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
            )
        except Exception as e:
            log_report_call(
                logger, url, record_id,
                duration_ms=(time.time() - start_time) * 1000,
                error=str(e) or type(e).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._pending_tasks) + len(self._pending_futures)

    async def flush(self) -> None:
        """Wait for reports scheduled on the running loop."""
        if self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Wait for reports running on the background thread."""
        if self._pending_futures:
            wait(list(self._pending_futures), timeout=timeout)

    def close(self) -> None:
        """Shut down the background worker, letting queued reports finish."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
