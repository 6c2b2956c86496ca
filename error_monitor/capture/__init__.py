"""Event capture layer: host hooks feeding the error monitor."""

from error_monitor.capture.base import CaptureSource, UserActionKind
from error_monitor.capture.hooks import (
    AsyncMonitoredTransport,
    MonitoredTransport,
    install_asyncio_handler,
    install_global_handlers,
    track_long_task,
    uninstall_global_handlers,
)
from error_monitor.capture.source import (
    ChunkLoadError,
    MonitorCaptureSource,
    ResourceLoadError,
    UnhandledRejectionError,
)

__all__ = [
    'CaptureSource',
    'UserActionKind',
    'MonitorCaptureSource',
    'ChunkLoadError',
    'ResourceLoadError',
    'UnhandledRejectionError',
    'install_global_handlers',
    'uninstall_global_handlers',
    'install_asyncio_handler',
    'MonitoredTransport',
    'AsyncMonitoredTransport',
    'track_long_task',
]
