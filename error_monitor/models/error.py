"""Error tracking data models."""

import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, JsonValue, model_validator

from .breadcrumb import Breadcrumb


class ErrorSeverity(str, Enum):
    """Ordinal urgency tier of a classified error."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = [
    ErrorSeverity.LOW,
    ErrorSeverity.MEDIUM,
    ErrorSeverity.HIGH,
    ErrorSeverity.CRITICAL,
]


class ErrorCategory(str, Enum):
    """Topical classification of an error."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NETWORK = "network"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    PERFORMANCE = "performance"
    SECURITY = "security"
    USER_ACTION = "user_action"
    SYSTEM = "system"
    THIRD_PARTY = "third_party"


class ErrorContext(BaseModel):
    """Where and during what an error happened."""

    component: Optional[str] = None
    action: Optional[str] = None
    user_id: Optional[str] = None
    url: Optional[str] = None
    user_agent: Optional[str] = None
    additional_data: Dict[str, JsonValue] = {}

    @model_validator(mode="before")
    @classmethod
    def _fold_unknown_keys(cls, data: Any) -> Any:
        # Free-form keys end up in additional_data
        if not isinstance(data, Mapping):
            return data
        known = set(cls.model_fields)
        folded = {key: value for key, value in data.items() if key in known}
        for key in ("component", "action", "user_id", "url", "user_agent"):
            value = folded.get(key)
            if value is not None and not isinstance(value, str):
                folded[key] = str(value)
        additional_data = folded.get("additional_data")
        if additional_data is None and "additional_data" in folded:
            folded["additional_data"] = {}
        elif additional_data is not None and not isinstance(additional_data, Mapping):
            folded["additional_data"] = {"value": additional_data}
        extra = {key: value for key, value in data.items() if key not in known}
        if extra:
            additional = dict(folded.get("additional_data") or {})
            additional.update(extra)
            folded["additional_data"] = additional
        return folded


ContextInput = Union[ErrorContext, Mapping[str, Any], None]


class RawFailureEvent(BaseModel):
    """Failure as captured, before classification."""

    error_type: str
    message: str
    stack_trace: Optional[str] = None
    context: ErrorContext = Field(default_factory=ErrorContext)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        context: Optional[ErrorContext] = None,
    ) -> "RawFailureEvent":
        stack_trace = None
        if error.__traceback__ is not None:
            stack_trace = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        return cls(
            error_type=type(error).__name__,
            message=str(error),
            stack_trace=stack_trace,
            context=context or ErrorContext(),
        )


class ClassifiedErrorRecord(BaseModel):
    """Durable unit of the error log."""

    id: str
    type: str = "runtime"
    message: str
    stack_trace: Optional[str] = None
    error_type: Optional[str] = None
    context: Dict[str, JsonValue] = {}
    timestamp: datetime
    resolved: bool = False
    severity: ErrorSeverity
    category: ErrorCategory
    user_id: Optional[str] = None
    session_id: str
    user_agent: Optional[str] = None
    url: Optional[str] = None
    fingerprint: str
    breadcrumbs: List[Breadcrumb] = []
    tags: List[str] = []
    metadata: Dict[str, JsonValue] = {}


class ErrorStats(BaseModel):
    """Aggregate view over the error log."""

    total: int
    by_severity: Dict[ErrorSeverity, int]
    by_category: Dict[ErrorCategory, int]
    recent_errors: List[ClassifiedErrorRecord] = []
