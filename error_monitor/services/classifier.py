"""
Event classification: severity, category, fingerprint and tags.

Every function here is a pure function of the raw failure event, so each
rule set can be exercised on its own. Rules are evaluated in order and the
first match wins. Message matching is case-insensitive.
"""

import base64
import hashlib
import re
from typing import List, NamedTuple, Optional

from error_monitor.models.error import ErrorCategory, ErrorSeverity, RawFailureEvent


FINGERPRINT_LENGTH = 32

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")

# User agent substring -> tag
_BROWSER_TAGS = (
    ("Mobile", "mobile"),
    ("Chrome", "chrome"),
    ("Firefox", "firefox"),
    ("Safari", "safari"),
)


class Classification(NamedTuple):
    """Result of classifying a raw failure event."""

    severity: ErrorSeverity
    category: ErrorCategory
    fingerprint: str


def _message(event: RawFailureEvent) -> str:
    return event.message.lower()


def _mentions(event: RawFailureEvent, *words: str) -> bool:
    message = _message(event)
    return any(word in message for word in words)


def _is_validation(event: RawFailureEvent) -> bool:
    return event.error_type == "ValidationError" or event.context.action == "validation"


def determine_severity(event: RawFailureEvent) -> ErrorSeverity:
    """
    Derive severity from the event.

    Order: critical wording or payment component, then auth, then
    validation, then network wording, then the medium default.
    """
    component = event.context.component

    if _mentions(event, "critical") or component == "payment":
        return ErrorSeverity.CRITICAL

    if component == "auth" or _mentions(event, "unauthorized"):
        return ErrorSeverity.HIGH

    if _is_validation(event):
        return ErrorSeverity.LOW

    if _mentions(event, "fetch", "network"):
        return ErrorSeverity.MEDIUM

    return ErrorSeverity.MEDIUM


def determine_category(event: RawFailureEvent) -> ErrorCategory:
    """Derive category from the event."""
    component = event.context.component

    if component == "auth" or _mentions(event, "auth"):
        return ErrorCategory.AUTHENTICATION

    if _mentions(event, "permission", "forbidden"):
        return ErrorCategory.AUTHORIZATION

    if _mentions(event, "fetch", "network"):
        return ErrorCategory.NETWORK

    if _is_validation(event):
        return ErrorCategory.VALIDATION

    if component in ("payment", "checkout"):
        return ErrorCategory.BUSINESS_LOGIC

    if _mentions(event, "performance", "timeout"):
        return ErrorCategory.PERFORMANCE

    return ErrorCategory.SYSTEM


def generate_fingerprint(event: RawFailureEvent) -> str:
    """
    Derive the rate-limiting key from (message, component, action).

    The triple is base64 encoded and stripped to alphanumerics. Encodings
    longer than the fingerprint length keep a 16 character prefix and get a
    16 character SHA-256 suffix so long messages sharing a prefix stay
    distinct.
    """
    message = event.message or "Unknown error"
    component = event.context.component or "Unknown"
    action = event.context.action or "Unknown"

    raw = f"{message}-{component}-{action}".encode("utf-8")
    encoded = _NON_ALPHANUMERIC.sub("", base64.b64encode(raw).decode("ascii"))

    if len(encoded) <= FINGERPRINT_LENGTH:
        return encoded

    half = FINGERPRINT_LENGTH // 2
    digest = hashlib.sha256(raw).hexdigest()[:half]
    return encoded[:half] + digest


def generate_tags(
    event: RawFailureEvent,
    category: ErrorCategory,
    user_agent: Optional[str] = None,
) -> List[str]:
    """
    Build free-text tags for a record.

    Args:
        event: Raw failure event
        category: Resolved category
        user_agent: Client user agent, when the error came from a client

    Returns:
        Ordered list of unique tags
    """
    tags = [category.value]

    if event.context.component:
        tags.append(f"component:{event.context.component}")
    if event.context.action:
        tags.append(f"action:{event.context.action}")
    if event.error_type:
        tags.append(f"type:{event.error_type}")

    if user_agent:
        tags.append("client-side")
        for marker, tag in _BROWSER_TAGS:
            if marker in user_agent:
                tags.append(tag)
    else:
        tags.append("server-side")

    return list(dict.fromkeys(tags))


def classify(event: RawFailureEvent) -> Classification:
    """Run severity, category and fingerprint derivation together."""
    return Classification(
        severity=determine_severity(event),
        category=determine_category(event),
        fingerprint=generate_fingerprint(event),
    )
