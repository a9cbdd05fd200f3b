"""
Authentication Package

Boundary with the local session subsystem. The proxy does not log users in;
it only reads the session a co-located login service issued and turns it into
a LocalSession for the trust pipeline.

Modules:
- session: session token creation/verification and request session lookup
"""

from .session import (
    SessionTokenError,
    create_session_token,
    read_local_session,
    verify_session_token,
)

__all__ = [
    "SessionTokenError",
    "create_session_token",
    "read_local_session",
    "verify_session_token",
]
