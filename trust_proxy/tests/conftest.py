"""
Shared fixtures for the trust proxy tests.

The backend is simulated with httpx.MockTransport plugged into the shared
backend client, so every outbound call the proxy makes is recorded.
"""

from contextlib import contextmanager
from typing import Callable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from trust_proxy.auth.session import create_session_token
from trust_proxy.config import Settings
from trust_proxy.main import create_app

TEST_SECRET = "test-session-secret-0123456789abcdef"
BACKEND_URL = "http://reports.internal:8080/pentaho"
REDIRECT_URL = "http://second-app.internal:3000/"
ERROR_URL = "http://portal.internal/login-required"


def make_settings(**overrides) -> Settings:
    values = {
        "SESSION_JWT_SECRET": TEST_SECRET,
        "PROXY_BASE_URL": BACKEND_URL,
        "PROXY_MOUNT_PREFIX": "/proxy",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class RecordingBackend:
    """MockTransport handler that records every request it receives."""

    def __init__(self, responder: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self.responder = responder or (
            lambda request: httpx.Response(
                200, content=b"OK", headers={"Content-Type": "text/plain"}
            )
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def proxy_client():
    """Factory returning a running TestClient (lifespan started) for given settings."""

    @contextmanager
    def _make(settings: Settings, backend: RecordingBackend):
        app = create_app(settings, backend_transport=backend.transport)
        with TestClient(app, follow_redirects=False) as client:
            yield client

    return _make


@pytest.fixture
def session_headers(settings):
    """Factory for Authorization headers carrying a session token."""

    def _make(user: Optional[str] = "admin", sid: str = "A1B2C3D4", **claims):
        payload = {"sid": sid, **claims}
        if user is not None:
            payload["sub"] = user
        token = create_session_token(payload, settings)
        return {"Authorization": f"Bearer {token}"}

    return _make
