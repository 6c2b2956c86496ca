"""
FastAPI application entry point for the error diagnostics service.
"""

import asyncio

from fastapi import FastAPI

from error_monitor import __version__
from error_monitor.api import errors
from error_monitor.api.middleware import ErrorCaptureMiddleware
from error_monitor.config import MonitoringConfig
from error_monitor.utils.logging import setup_logging, get_logger

settings = MonitoringConfig()

# Configure structured logging
setup_logging(settings.app_log_level)

logger = get_logger(__name__)

app = FastAPI(
    title="Error Monitor",
    description="Error aggregation, classification and diagnostics",
    version=__version__
)

app.add_middleware(ErrorCaptureMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Error Monitor API",
        "version": __version__,
        "docs": "/docs"
    }


app.include_router(errors.router)


@app.on_event("startup")
async def startup_event():
    """Configure monitoring and start performance sampling."""
    logger.info("Starting Error Monitor API")

    from error_monitor.bootstrap import setup_monitoring
    from error_monitor.capture.hooks import install_asyncio_handler
    from error_monitor.services.monitor import get_error_monitor

    monitor = get_error_monitor()
    source = setup_monitoring(monitor)
    install_asyncio_handler(asyncio.get_running_loop(), source)

    if monitor.config.include_performance_metrics:
        monitor.performance.start_sampling()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop sampling and flush pending reports."""
    logger.info("Shutting down Error Monitor API")

    from error_monitor.capture.hooks import uninstall_global_handlers
    from error_monitor.services.monitor import get_error_monitor

    monitor = get_error_monitor()
    await monitor.performance.stop_sampling()
    await monitor.reporter.flush()
    monitor.reporter.close()
    uninstall_global_handlers()
    logger.info("Error monitoring stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
