"""API request and response data models."""

from typing import Dict, Optional

from pydantic import BaseModel, JsonValue

from .breadcrumb import BreadcrumbLevel


class ReportAccepted(BaseModel):
    """Response for an ingested or manually reported error."""

    status: str
    message: str
    record_id: Optional[str] = None


class ClearResult(BaseModel):
    """Result of clearing the error log."""

    cleared: int


class ManualReportRequest(BaseModel):
    """Error reported by a user or by tooling."""

    message: str
    error_type: str = "Error"
    additional_data: Dict[str, JsonValue] = {}


class BreadcrumbRequest(BaseModel):
    """Breadcrumb pushed over HTTP."""

    message: str
    level: BreadcrumbLevel = BreadcrumbLevel.INFO
    data: Optional[JsonValue] = None
