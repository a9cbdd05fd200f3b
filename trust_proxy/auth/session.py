"""
Local Session Module
====================

Reads the caller's local session for the proxy. The session is carried as a
signed session token (HS256/384/512) in a cookie or a Bearer Authorization
header and is issued by the login service that shares ``SESSION_JWT_SECRET``.

Claims:
    - sid:    session identifier (required)
    - sub:    user name (optional, absent for anonymous sessions)
    - locale: preferred locale (optional)
    - iat / exp / iss: standard claims

Unlike a protected API, the proxy never answers 401 for a bad token: an invalid
or expired token simply means "no session", and the pipeline decides what to do
with an unauthenticated caller.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings
from ..models import LocalSession

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class SessionTokenError(Exception):
    """Raised when a session token cannot be created or verified."""
    pass


# =============================================================================
# Token Creation
# =============================================================================

def create_session_token(
    claims: Dict[str, Any],
    settings: Settings,
    expires_in_minutes: Optional[int] = None,
) -> str:
    """
    Create a session token with the provided claims.

    Args:
        claims: Claims to include. 'sid' is required; 'sub' and 'locale' are optional.
        settings: Application settings (secret, algorithm, issuer, expiry)
        expires_in_minutes: Optional custom expiry (overrides settings)

    Returns:
        Encoded token string

    Raises:
        SessionTokenError: If the claims are incomplete or encoding fails

    Example:
        >>> token = create_session_token({"sid": "A1B2", "sub": "admin"}, settings)
    """
    payload = claims.copy()
    if not payload.get("sid"):
        raise SessionTokenError("Missing required claim: 'sid' (session id)")

    now = datetime.now(timezone.utc)
    expiry = expires_in_minutes or settings.SESSION_JWT_EXPIRY_MINUTES
    payload.update({
        "iat": now,
        "exp": now + timedelta(minutes=expiry),
        "iss": settings.SESSION_JWT_ISSUER,
    })

    try:
        return jwt.encode(
            payload,
            settings.SESSION_JWT_SECRET,
            algorithm=settings.SESSION_JWT_ALGORITHM,
        )
    except Exception as e:
        logger.error(f"Failed to create session token: {e}", exc_info=True)
        raise SessionTokenError(f"Failed to create session token: {str(e)}") from e


# =============================================================================
# Token Verification
# =============================================================================

def verify_session_token(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Verify and decode a session token.

    Args:
        token: Token string to verify
        settings: Application settings

    Returns:
        Dictionary containing the decoded claims

    Raises:
        SessionTokenError: If the token is empty, expired, badly signed,
            from another issuer, or missing the session id
    """
    if not token:
        raise SessionTokenError("No session token provided")

    try:
        decoded = jwt.decode(
            token,
            settings.SESSION_JWT_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=settings.SESSION_JWT_ISSUER,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": ["exp", "iat", "iss", "sid"],
            },
        )
    except ExpiredSignatureError as e:
        raise SessionTokenError("Session token has expired") from e
    except InvalidTokenError as e:
        raise SessionTokenError(f"Invalid session token: {str(e)}") from e

    return decoded


# =============================================================================
# Helper Functions
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """
    Extract a Bearer token from an Authorization header value.

    Returns:
        The token, or None when the header is missing or not a Bearer header
    """
    if not authorization:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    return parts[1]


def session_from_claims(claims: Dict[str, Any], settings: Settings) -> LocalSession:
    user_name = claims.get("sub")
    return LocalSession(
        session_id=str(claims["sid"]),
        user_name=str(user_name) if user_name else None,
        locale=claims.get("locale") or None,
        max_inactive_interval=settings.SESSION_MAX_INACTIVE_SECONDS,
    )


def read_local_session(request: Request, settings: Settings) -> Optional[LocalSession]:
    """
    Resolve the caller's local session from the request.

    The session cookie wins over the Authorization header when both are present.

    Returns:
        LocalSession, or None when no valid session token was presented
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        token = extract_token_from_header(request.headers.get("Authorization"))
    if not token:
        return None

    try:
        claims = verify_session_token(token, settings)
    except SessionTokenError as e:
        logger.warning(
            f"Ignoring session token: {e}",
            extra={"path": request.url.path},
        )
        return None

    return session_from_claims(claims, settings)


__all__ = [
    "SessionTokenError",
    "create_session_token",
    "verify_session_token",
    "extract_token_from_header",
    "session_from_claims",
    "read_local_session",
]
