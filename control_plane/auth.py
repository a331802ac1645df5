"""
Session token handling.

Callers pass their session token as ?token=<uuid>. The token is the owner
namespace for every app the caller touches; admin membership is decided by
the service from its configured admin token set.
"""

import re
from dataclasses import dataclass
from typing import Optional

from fastapi import Query

from .errors import SessionError

# Canonical hyphenated form only, so one session maps to exactly one owner string
SESSION_TOKEN_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE
)


@dataclass(frozen=True)
class SessionContext:
    token: str

    @property
    def owner(self) -> str:
        return self.token


def parse_session_token(token: Optional[str]) -> SessionContext:
    if not token:
        raise SessionError("Missing session token. Supply ?token=<session_uuid>.")

    if not SESSION_TOKEN_PATTERN.fullmatch(token):
        raise SessionError("Session token must be a valid UUID.")

    return SessionContext(token=token)


async def require_session(token: Optional[str] = Query(None)) -> SessionContext:
    """FastAPI dependency resolving the caller's session."""
    return parse_session_token(token)
