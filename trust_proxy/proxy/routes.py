"""
Proxy Routes - Trusted Backend Forwarding
=========================================

Catch-all GET/POST endpoint mounted under PROXY_MOUNT_PREFIX. Every request is
handed to the TrustProxyHandler built at startup and its result is rendered by
the relay.

Security Model:
---------------
1. The caller's identity comes only from the local session token
2. Any caller-supplied _TRUST_USER_ parameter is dropped before forwarding
3. The session user (and locale) are appended as trust parameters
4. No inbound header is forwarded to the backend
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from ..auth.session import read_local_session
from ..models import IncomingRequest, LocalSession
from .handler import TrustProxyHandler
from .relay import relay

logger = logging.getLogger(__name__)

# Everything an encoded path may already contain; only non-ASCII bytes get escaped
RAW_PATH_SAFE = "/%:@!$&'()*+,;=-._~"

proxy_router = APIRouter()


# ============================================================================
# Dependencies
# ============================================================================

def get_proxy_handler(request: Request) -> TrustProxyHandler:
    """
    Dependency to get the proxy handler from app state.

    Raises:
        HTTPException: If the application lifespan has not run
    """
    app_state = getattr(request.app.state, "app_state", None)
    handler = getattr(app_state, "proxy_handler", None)
    if handler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Proxy handler not initialized"
        )
    return handler


def get_local_session(request: Request) -> Optional[LocalSession]:
    """Dependency resolving the caller's local session, None when there is none."""
    return read_local_session(request, request.app.state.app_state.settings)


def raw_request_path(request: Request) -> str:
    """
    The request path as sent, percent-encoding intact.

    Starlette decodes ``scope["path"]``, which would turn ``%3F`` or ``%2F`` into
    query or segment delimiters once the path is put back into a URL.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return quote(raw_path.split(b"?", 1)[0], safe=RAW_PATH_SAFE)
    return quote(request.url.path, safe="/")


async def incoming_from_request(request: Request) -> IncomingRequest:
    body = await request.body() if request.method.upper() == "POST" else b""
    return IncomingRequest(
        method=request.method.upper(),
        path=raw_request_path(request),
        query_params=request.query_params.multi_items(),
        body=body,
        accept_language=request.headers.get("accept-language"),
    )


# ============================================================================
# Proxy Endpoint
# ============================================================================

@proxy_router.api_route("/{path:path}", methods=["GET", "POST"])
async def proxy_request(
    request: Request,
    path: str,
    handler: TrustProxyHandler = Depends(get_proxy_handler),
    session: Optional[LocalSession] = Depends(get_local_session),
) -> Response:
    """
    Forward a request to the backend on behalf of the session user.

    Returns:
        The relayed backend response, a redirect, or the untouched default
        response when the request was suppressed or failed
    """
    incoming = await incoming_from_request(request)
    result = await handler.handle(incoming, session)

    logger.debug(
        "Proxy request handled",
        extra={
            "method": incoming.method,
            "path": incoming.path,
            "result": type(result).__name__,
        }
    )
    return relay(result, handler.config)
