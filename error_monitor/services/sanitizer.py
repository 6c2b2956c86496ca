"""
Sensitive-data redaction for event payloads.

Payloads are normalized to the JSON value domain on the way through:
mappings become dicts with string keys, sequences and sets become lists,
JSON scalars pass through unchanged, and anything else is rendered the way
a JSON round trip would render it.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Mapping

from pydantic import BaseModel


REDACTED = "[REDACTED]"

_SCALARS = (str, int, float, bool, type(None))


def _normalize_keys(sensitive_keys: Iterable[str]) -> List[str]:
    return [key.lower() for key in sensitive_keys if key]


def is_sensitive_key(key: str, sensitive_keys: Iterable[str]) -> bool:
    """Return True if the key contains any sensitive substring (case-insensitive)."""
    lowered = key.lower()
    return any(sensitive in lowered for sensitive in _normalize_keys(sensitive_keys))


def to_json_value(value: Any) -> Any:
    """Coerce a value outside the JSON domain into one inside it."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)


def sanitize(value: Any, sensitive_keys: Iterable[str], marker: str = REDACTED) -> Any:
    """
    Return a redacted deep copy of a payload.

    Any mapping key containing one of the sensitive substrings has its value
    replaced with the marker, at any nesting depth. Sibling keys and the
    overall structure are preserved. The input is never mutated.

    Args:
        value: Arbitrary (acyclic) payload
        sensitive_keys: Substrings that mark a key as sensitive
        marker: Replacement for sensitive values

    Returns:
        Sanitized copy within the JSON value domain
    """
    keys = _normalize_keys(sensitive_keys)
    return _sanitize(value, keys, marker)


def _sanitize(value: Any, keys: List[str], marker: str) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    if isinstance(value, Mapping):
        result = {}
        for key, item in value.items():
            name = str(to_json_value(key))
            lowered = name.lower()
            if any(sensitive in lowered for sensitive in keys):
                result[name] = marker
            else:
                result[name] = _sanitize(item, keys, marker)
        return result

    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize(item, keys, marker) for item in value]

    return to_json_value(value)
