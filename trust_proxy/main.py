"""
FastAPI Trust Proxy Application Factory
=======================================

Entry point for the service that sits between authenticated users and a
backend that trusts identity parameters set by this proxy.

Architecture:
    Browser (local session) → Trust Proxy (this service) → Backend origin

Routers:
    - {PROXY_MOUNT_PREFIX}/*  : Proxied GET/POST requests
    - /health                 : Health check endpoint

Running the Service:
    Development:
        uvicorn trust_proxy.main:create_app --factory --reload --port 8080

    Production:
        uvicorn trust_proxy.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn trust_proxy.main:create_app --factory --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .lifecycle import build_proxy_config, create_backend_client
from .models import HealthResponse, ProxyConfig
from .proxy import TrustProxyHandler, proxy_router
from .proxy.forwarder import HttpForwarder

SERVICE_NAME = "trust-proxy"
SERVICE_VERSION = "1.0.0"


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class AppState:
    """
    Application state container.

    Holds the resources shared by every request: the validated proxy
    configuration, the pooled backend client and the pipeline built on them.
    """
    def __init__(self, settings: Settings):
        self.settings: Settings = settings
        self.proxy_config: Optional[ProxyConfig] = None
        self.backend_client: Optional[httpx.AsyncClient] = None
        self.proxy_handler: Optional[TrustProxyHandler] = None


def create_app(
    settings: Optional[Settings] = None,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management (config validation, shared backend client)
        - CORS middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Explicit settings (defaults to environment / .env)
        backend_transport: Transport for the backend client (tests use httpx.MockTransport)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    app_state = AppState(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Validate the proxy configuration once (disables the proxy if invalid)
            - Create the shared backend HTTP client

        Shutdown:
            - Close the backend client and its connection pool
        """
        setup_logging(settings.LOG_LEVEL)
        logger = logging.getLogger("trust_proxy.main")

        logger.info(
            "Starting trust proxy service",
            extra={
                "mount_prefix": settings.PROXY_MOUNT_PREFIX,
                "log_level": settings.LOG_LEVEL,
            }
        )

        app_state.proxy_config = build_proxy_config(settings)
        app_state.backend_client = create_backend_client(settings, transport=backend_transport)
        app_state.proxy_handler = TrustProxyHandler(
            app_state.proxy_config,
            HttpForwarder(app_state.backend_client),
        )

        if app_state.proxy_config is None:
            logger.warning("Proxy pipeline disabled: every proxied request is a no-op")
        else:
            logger.info(
                "Trust proxy started successfully",
                extra={"service": SERVICE_NAME, "version": SERVICE_VERSION}
            )

        yield

        logger.info("Shutting down trust proxy service")
        await app_state.backend_client.aclose()
        logger.info("Closed backend HTTP client")

    app = FastAPI(
        title="Trust Proxy",
        description="Forwards authenticated requests to a backend with a trusted identity",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.app_state = app_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Health check endpoint (registered before the proxy catch-all)
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """
        Health check endpoint.

        Returns service status and whether the proxy pipeline is enabled.
        """
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            proxy_enabled=app_state.proxy_config is not None,
        )

    mount_prefix = "" if settings.PROXY_MOUNT_PREFIX == "/" else settings.PROXY_MOUNT_PREFIX
    app.include_router(
        proxy_router,
        prefix=mount_prefix,
        tags=["Trust Proxy"]
    )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Logs unhandled errors and returns a standardized error response.
        """
        logger = logging.getLogger("trust_proxy.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        content: Dict[str, Any] = {
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        }
        if settings.LOG_LEVEL == "DEBUG":
            content["detail"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    return app


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "trust_proxy.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        log_level=settings.LOG_LEVEL.lower()
    )
