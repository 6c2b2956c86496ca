"""
Python runtime adapters for capture sources.

This module provides:
- install_global_handlers / uninstall_global_handlers for sys.excepthook and
  threading.excepthook
- install_asyncio_handler for failures asyncio reports but nobody handled
- MonitoredTransport / AsyncMonitoredTransport, httpx transports that
  report failed requests and stale versioned-asset fetches
- track_long_task for timing blocking work
"""

import asyncio
import sys
import threading
import time
from contextlib import contextmanager
from typing import Callable, Optional

import httpx

from error_monitor.capture.base import CaptureSource
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_PATH_MARKER = "/_next/static/"

_previous_excepthook: Optional[Callable] = None
_previous_threading_excepthook: Optional[Callable] = None


def _origin(tb) -> tuple:
    """(filename, lineno) of the innermost frame of a traceback."""
    if tb is None:
        return None, None
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code.co_filename, tb.tb_lineno


def install_global_handlers(source: CaptureSource) -> None:
    """
    Route uncaught exceptions in the main thread and worker threads to a source.

    The previous hooks still run after the source has seen the error.
    KeyboardInterrupt is passed through untouched.

    Args:
        source: Capture source receiving the errors
    """
    global _previous_excepthook, _previous_threading_excepthook

    uninstall_global_handlers()
    previous_excepthook = sys.excepthook
    previous_threading_excepthook = threading.excepthook

    def excepthook(exc_type, exc_value, exc_tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            filename, lineno = _origin(exc_tb)
            try:
                source.on_uncaught_error(exc_value, filename=filename, lineno=lineno)
            except Exception as e:
                logger.error(f"Capture source failed on uncaught error: {e}", exc_info=True)
        previous_excepthook(exc_type, exc_value, exc_tb)

    def threading_excepthook(args):
        if args.exc_value is not None and not issubclass(args.exc_type, SystemExit):
            filename, lineno = _origin(args.exc_traceback)
            try:
                source.on_uncaught_error(args.exc_value, filename=filename, lineno=lineno)
            except Exception as e:
                logger.error(f"Capture source failed on thread error: {e}", exc_info=True)
        previous_threading_excepthook(args)

    _previous_excepthook = previous_excepthook
    _previous_threading_excepthook = previous_threading_excepthook
    sys.excepthook = excepthook
    threading.excepthook = threading_excepthook
    logger.info("Global error handlers installed")


def uninstall_global_handlers() -> None:
    """Restore the hooks that were active before install_global_handlers."""
    global _previous_excepthook, _previous_threading_excepthook

    if _previous_excepthook is not None:
        sys.excepthook = _previous_excepthook
        _previous_excepthook = None
    if _previous_threading_excepthook is not None:
        threading.excepthook = _previous_threading_excepthook
        _previous_threading_excepthook = None


def install_asyncio_handler(loop: asyncio.AbstractEventLoop, source: CaptureSource) -> None:
    """
    Route asyncio's unhandled-exception reports (e.g. a task's exception
    never retrieved) to a source as unhandled rejections.

    Args:
        loop: Event loop to hook
        source: Capture source receiving the failures
    """
    previous = loop.get_exception_handler()

    def handler(handler_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        reason = context.get("exception") or context.get("message")
        try:
            source.on_unhandled_rejection(reason)
        except Exception as e:
            logger.error(f"Capture source failed on unhandled rejection: {e}", exc_info=True)
        if previous is not None:
            previous(handler_loop, context)
        else:
            handler_loop.default_exception_handler(context)

    loop.set_exception_handler(handler)


def _inspect_response(
    source: CaptureSource,
    request: httpx.Request,
    response: httpx.Response,
    chunk_path_marker: str,
) -> None:
    url = str(request.url)
    if response.status_code >= 400 and chunk_path_marker in url:
        source.on_chunk_load_failure(url, response.status_code, response.reason_phrase)


class MonitoredTransport(httpx.BaseTransport):
    """
    httpx transport wrapper reporting failures to a capture source.

    Usage:
        client = httpx.Client(transport=MonitoredTransport(source))
    """

    def __init__(
        self,
        source: CaptureSource,
        transport: Optional[httpx.BaseTransport] = None,
        chunk_path_marker: str = DEFAULT_CHUNK_PATH_MARKER,
    ):
        self.source = source
        self.transport = transport or httpx.HTTPTransport()
        self.chunk_path_marker = chunk_path_marker

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        try:
            response = self.transport.handle_request(request)
        except httpx.TransportError as e:
            self.source.on_network_failure(e, str(request.url), request.method)
            raise
        _inspect_response(self.source, request, response, self.chunk_path_marker)
        return response

    def close(self) -> None:
        self.transport.close()


class AsyncMonitoredTransport(httpx.AsyncBaseTransport):
    """
    Async variant of MonitoredTransport.

    Usage:
        client = httpx.AsyncClient(transport=AsyncMonitoredTransport(source))
    """

    def __init__(
        self,
        source: CaptureSource,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_path_marker: str = DEFAULT_CHUNK_PATH_MARKER,
    ):
        self.source = source
        self.transport = transport or httpx.AsyncHTTPTransport()
        self.chunk_path_marker = chunk_path_marker

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self.transport.handle_async_request(request)
        except httpx.TransportError as e:
            self.source.on_network_failure(e, str(request.url), request.method)
            raise
        _inspect_response(self.source, request, response, self.chunk_path_marker)
        return response

    async def aclose(self) -> None:
        await self.transport.aclose()


@contextmanager
def track_long_task(source: CaptureSource, name: Optional[str] = None):
    """
    Time a block of blocking work and report it as a potential long task.

    The source decides whether the duration crosses its threshold.

    Usage:
        with track_long_task(source, "render report"):
            build_report()
    """
    start_time = time.time()
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        source.on_long_task(duration_ms, start_time=start_time, name=name)
