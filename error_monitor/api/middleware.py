"""
Request middleware binding request descriptors to the error monitor.
"""

import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from error_monitor.models.breadcrumb import BreadcrumbLevel
from error_monitor.models.error import ErrorCategory, ErrorSeverity
from error_monitor.services.environment import bind_request
from error_monitor.services.monitor import ErrorMonitor, get_error_monitor
from error_monitor.utils.logging import get_logger

logger = get_logger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token
    return None


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """
    Binds URL, user agent and bearer token for the duration of a request,
    leaves a breadcrumb per request and logs unhandled request errors
    (high, system) before re-raising them.
    """

    def __init__(self, app: ASGIApp, monitor_provider: Callable[[], ErrorMonitor] = get_error_monitor):
        super().__init__(app)
        self.monitor_provider = monitor_provider

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        monitor = self.monitor_provider()
        start_time = time.time()

        with bind_request(
            url=str(request.url),
            user_agent=request.headers.get("user-agent"),
            token=_bearer_token(request),
        ):
            monitor.add_breadcrumb(
                "HTTP request",
                BreadcrumbLevel.INFO,
                {"method": request.method, "path": request.url.path},
            )
            try:
                response = await call_next(request)
            except Exception as e:
                monitor.log_error(
                    e,
                    {
                        "component": "http",
                        "action": f"{request.method} {request.url.path}",
                        "additional_data": {
                            "duration_ms": round((time.time() - start_time) * 1000, 2),
                        },
                    },
                    ErrorSeverity.HIGH,
                    ErrorCategory.SYSTEM,
                )
                raise

        if response.status_code >= 500:
            logger.warning(
                f"Request failed: {request.method} {request.url.path}",
                extra={"status_code": response.status_code},
            )
        return response
