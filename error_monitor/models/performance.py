"""Performance snapshot data model."""

from typing import Optional

from pydantic import BaseModel


class PerformanceSnapshot(BaseModel):
    """Latest known performance figures, copied into every error record."""

    response_time: float = 0
    memory_usage: Optional[int] = None
    cpu_usage: Optional[float] = None
    network_latency: Optional[float] = None
    dom_content_loaded: Optional[float] = None
    first_contentful_paint: Optional[float] = None
    largest_contentful_paint: Optional[float] = None
