"""
Error diagnostics REST API endpoints.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status

from error_monitor.models.api_response import (
    BreadcrumbRequest,
    ClearResult,
    ManualReportRequest,
    ReportAccepted,
)
from error_monitor.models.error import ClassifiedErrorRecord, ErrorStats
from error_monitor.services.monitor import ErrorMonitor, get_error_monitor
from error_monitor.utils.logging import get_logger, log_error_record

logger = logging.getLogger(__name__)
ingest_logger = get_logger("error_monitor.ingest")

router = APIRouter(prefix="/api/errors", tags=["errors"])


class ReportedError(Exception):
    """Error reported through the API rather than raised in-process."""
    pass


async def verify_api_key(
    x_api_key: str = Header(None),
    monitor: ErrorMonitor = Depends(get_error_monitor),
) -> None:
    """
    Verify API key for diagnostics endpoints.

    No key is required when diagnostics_api_key is not configured.

    Raises:
        HTTPException: If API key is invalid or missing
    """
    expected_key = monitor.config.diagnostics_api_key
    if not expected_key:
        return

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


@router.post("", response_model=ReportAccepted, status_code=status.HTTP_202_ACCEPTED)
async def ingest_error(record: ClassifiedErrorRecord) -> ReportAccepted:
    """
    Receive an error record reported by a client.

    Args:
        record: Classified record as produced by a client-side monitor

    Returns:
        Acknowledgement
    """
    log_error_record(ingest_logger, record)
    return ReportAccepted(status="accepted", message="Error report received", record_id=record.id)


@router.get("/stats", response_model=ErrorStats, dependencies=[Depends(verify_api_key)])
async def get_stats(monitor: ErrorMonitor = Depends(get_error_monitor)) -> ErrorStats:
    """
    Get error totals by severity and category and the most recent records.
    """
    return monitor.get_error_stats()


@router.get("/export", dependencies=[Depends(verify_api_key)])
async def export_errors(monitor: ErrorMonitor = Depends(get_error_monitor)) -> Response:
    """
    Export the full error log as JSON.
    """
    return Response(content=monitor.export_errors(), media_type="application/json")


@router.delete("", response_model=ClearResult, dependencies=[Depends(verify_api_key)])
async def clear_errors(monitor: ErrorMonitor = Depends(get_error_monitor)) -> ClearResult:
    """
    Clear the error log, breadcrumbs and notification rate limits.
    """
    cleared = monitor.get_error_stats().total
    monitor.clear_errors()
    logger.info(f"Cleared {cleared} error records")
    return ClearResult(cleared=cleared)


@router.post("/report", response_model=ReportAccepted, status_code=status.HTTP_202_ACCEPTED)
async def report_error(
    request: ManualReportRequest,
    monitor: ErrorMonitor = Depends(get_error_monitor),
) -> ReportAccepted:
    """
    Report an error manually.

    Args:
        request: Reported error details

    Returns:
        Acknowledgement with the new record id, if one was logged
    """
    record = monitor.log_error(
        ReportedError(request.message),
        {
            "component": "manual_report",
            "action": "user_reported",
            "additional_data": {**request.additional_data, "reported_type": request.error_type},
        },
        "medium",
        "user_action",
    )
    if record is None:
        return ReportAccepted(status="ignored", message="Error monitoring did not log the report")
    return ReportAccepted(status="accepted", message="Error reported", record_id=record.id)


@router.post("/breadcrumbs", status_code=status.HTTP_204_NO_CONTENT)
async def add_breadcrumb(
    request: BreadcrumbRequest,
    monitor: ErrorMonitor = Depends(get_error_monitor),
) -> Response:
    """
    Add a breadcrumb to the trail attached to future errors.
    """
    monitor.add_breadcrumb(request.message, request.level, request.data)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{record_id}/resolve", response_model=ClassifiedErrorRecord, dependencies=[Depends(verify_api_key)])
async def resolve_error(
    record_id: str,
    monitor: ErrorMonitor = Depends(get_error_monitor),
) -> ClassifiedErrorRecord:
    """
    Mark an error record as resolved.

    Raises:
        HTTPException: If the record is not in the log
    """
    if not monitor.mark_resolved(record_id):
        raise HTTPException(status_code=404, detail=f"Error record {record_id} not found")
    return monitor.get_error(record_id)
