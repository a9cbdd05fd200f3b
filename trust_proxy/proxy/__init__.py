"""
Proxy Package
=============

This package implements the trusted-identity forwarding pipeline: requests
from authenticated callers are rewritten to carry the session user and sent
to the configured backend origin.

Main Components:
----------------
- uri_builder.py: outbound URI construction and anti-spoof filtering
- trust.py: identity resolution from the local session
- forwarder.py: backend dispatch on the shared HTTP client
- relay.py: rendering of results (stream, redirect, no-op)
- handler.py: the pipeline (TrustProxyHandler)
- routes.py: FastAPI catch-all route

Usage:
------
    from trust_proxy.proxy import proxy_router
    app.include_router(proxy_router, prefix=settings.PROXY_MOUNT_PREFIX)
"""

from .handler import RequestHandler, TrustProxyHandler
from .routes import proxy_router

__all__ = ["RequestHandler", "TrustProxyHandler", "proxy_router"]
