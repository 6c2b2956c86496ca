"""Breadcrumb data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, JsonValue


class BreadcrumbLevel(str, Enum):
    """Level of a breadcrumb entry."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Breadcrumb(BaseModel):
    """Timestamped trail entry describing recent activity."""

    timestamp: datetime
    message: str
    level: BreadcrumbLevel = BreadcrumbLevel.INFO
    data: Optional[JsonValue] = None
