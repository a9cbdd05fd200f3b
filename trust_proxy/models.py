"""
Data Models Module

This module defines the value types that flow through the proxy pipeline.

Models are organized by functional area:
- Configuration (the validated, immutable ProxyConfig)
- Request models (inbound request snapshot, local session, trust context, outbound request)
- Result models (the terminal outcomes of a proxied request)
- Health check models
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


TRUST_USER_PARAM = "_TRUST_USER_"
TRUST_LOCALE_OVERRIDE_PARAM = "_TRUST_LOCALE_OVERRIDE_"
CONTINUITY_COOKIE_NAME = "JSESSIONID"


# ============================================================================
# Configuration
# ============================================================================

class ProxyConfig(BaseModel):
    """Validated proxy configuration. Built once at startup, never mutated."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(..., description="Backend origin, already validated")
    redirect_url: Optional[str] = Field(None, description="Continuity redirect location")
    error_url: Optional[str] = Field(None, description="Redirect for unauthenticated callers")
    locale_override_enabled: bool = Field(default=True)
    mount_prefix: str = Field(default="/proxy")
    continuity_segment: str = Field(default="redirect")
    app_root_path: str = Field(default="/")
    anonymous_passthrough: bool = Field(default=False)
    failure_policy: str = Field(default="silent")
    default_locale: str = Field(default="en_US")

    @property
    def surfaces_failures(self) -> bool:
        return self.failure_policy == "surface"


# ============================================================================
# Request Models
# ============================================================================

class IncomingRequest(BaseModel):
    """Transport-agnostic snapshot of the inbound request."""

    method: str = Field(..., description="GET or POST")
    path: str = Field(..., description="Raw (percent-encoded) request path including the mount prefix")
    query_params: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="Query pairs in arrival order, duplicates preserved",
    )
    body: bytes = Field(default=b"", description="Raw request body (POST only)")
    accept_language: Optional[str] = Field(None)


class LocalSession(BaseModel):
    """Session as seen by the proxy; produced by trust_proxy.auth.session."""

    session_id: str
    user_name: Optional[str] = None
    locale: Optional[str] = None
    max_inactive_interval: int = Field(default=1800, description="Seconds")


class TrustContext(BaseModel):
    """Identity the forwarded request will carry. user_name None means anonymous."""

    user_name: Optional[str] = None
    locale: Optional[str] = None


class OutgoingRequest(BaseModel):
    """Request dispatched to the backend."""

    method: str
    url: str
    body: Optional[bytes] = None
    headers: Dict[str, str] = Field(default_factory=dict)


# ============================================================================
# Result Models
# ============================================================================

class FailureKind(str, Enum):
    INVALID_TARGET = "invalid_target"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    REMOTE_NON_OK = "remote_non_ok"


@dataclass(frozen=True)
class Relayed:
    """
    Successful backend response, body not yet consumed.

    ``body`` is an async iterator of raw bytes; ``release`` closes the upstream
    response and must run once the body has been streamed (or abandoned).
    """

    status_code: int
    headers: Dict[str, str]
    body: Any
    release: Optional[Callable[[], Awaitable[None]]] = None


@dataclass(frozen=True)
class ContinuityRedirect:
    session_id: str
    max_age: int
    path: str
    location: str
    cookie_name: str = CONTINUITY_COOKIE_NAME


@dataclass(frozen=True)
class ErrorRedirect:
    location: str


@dataclass(frozen=True)
class Suppressed:
    """Nothing observable is written to the caller."""

    reason: str


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    detail: str = ""
    status_code: Optional[int] = None
    target: Optional[str] = None


ProxyResult = Union[Relayed, ContinuityRedirect, ErrorRedirect, Suppressed, Failure]


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    proxy_enabled: bool = Field(..., description="Whether the proxy pipeline accepted its configuration")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")
