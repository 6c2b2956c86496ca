"""
Host environment lookups for error records.

The current request's URL, user agent and bearer token live in context
variables set by the HTTP middleware. Lookups are best effort: outside a
request they return None.
"""

import base64
import json
from contextlib import contextmanager
from contextvars import ContextVar
from typing import NamedTuple, Optional


_current_url: ContextVar[Optional[str]] = ContextVar("error_monitor_url", default=None)
_current_user_agent: ContextVar[Optional[str]] = ContextVar("error_monitor_user_agent", default=None)
_current_token: ContextVar[Optional[str]] = ContextVar("error_monitor_token", default=None)


class EnvironmentInfo(NamedTuple):
    """Environment descriptors attached to error records."""

    user_agent: Optional[str] = None
    url: Optional[str] = None


@contextmanager
def bind_request(
    url: Optional[str] = None,
    user_agent: Optional[str] = None,
    token: Optional[str] = None,
):
    """
    Bind request descriptors for the duration of a block.

    Usage:
        with bind_request(url=str(request.url), user_agent=ua):
            await call_next(request)
    """
    tokens = (
        _current_url.set(url),
        _current_user_agent.set(user_agent),
        _current_token.set(token),
    )
    try:
        yield
    finally:
        _current_token.reset(tokens[2])
        _current_user_agent.reset(tokens[1])
        _current_url.reset(tokens[0])


def request_environment() -> EnvironmentInfo:
    """Environment descriptors of the current request, if any."""
    return EnvironmentInfo(user_agent=_current_user_agent.get(), url=_current_url.get())


def current_token() -> Optional[str]:
    return _current_token.get()


def decode_token_user_id(token: Optional[str]) -> Optional[str]:
    """
    Read the user id from a JWT payload without verifying it.

    Args:
        token: Bearer token (header.payload.signature)

    Returns:
        userId (or sub) claim, or None
    """
    if not token:
        return None
    parts = token.split(".")
    if len(parts) < 2:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    payload = json.loads(base64.urlsafe_b64decode(segment))
    user_id = payload.get("userId") or payload.get("sub")
    return str(user_id) if user_id is not None else None


def token_user_id() -> Optional[str]:
    """User id of the current request's bearer token. Raises on malformed tokens."""
    return decode_token_user_id(current_token())
