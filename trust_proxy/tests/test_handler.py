"""
Unit Tests for the Proxy Pipeline
=================================

Tests for trust_proxy/proxy/trust.py, forwarder.py, relay.py and handler.py
without going through the HTTP layer.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from trust_proxy.models import (
    ContinuityRedirect,
    ErrorRedirect,
    Failure,
    FailureKind,
    IncomingRequest,
    LocalSession,
    OutgoingRequest,
    ProxyConfig,
    Relayed,
    Suppressed,
    TrustContext,
)
from trust_proxy.proxy.forwarder import HttpForwarder, build_outgoing_request
from trust_proxy.proxy.handler import TrustProxyHandler
from trust_proxy.proxy.relay import relay
from trust_proxy.proxy.trust import locale_from_accept_language, resolve_trust

BASE_URL = "http://reports.internal:8080/pentaho"


def make_config(**overrides) -> ProxyConfig:
    values = {"base_url": BASE_URL, "mount_prefix": "/proxy"}
    values.update(overrides)
    return ProxyConfig(**values)


def make_session(user="admin", **overrides) -> LocalSession:
    values = {"session_id": "S-1", "user_name": user, "max_inactive_interval": 900}
    values.update(overrides)
    return LocalSession(**values)


def make_incoming(method="GET", path="/proxy/api/report", **overrides) -> IncomingRequest:
    return IncomingRequest(method=method, path=path, **overrides)


# ============================================================================
# Trust Resolution Tests
# ============================================================================

class TestResolveTrust:

    def test_authenticated_session(self):
        trust = resolve_trust(make_session(locale="it_IT"), make_incoming(), make_config())

        assert trust == TrustContext(user_name="admin", locale="it_IT")

    def test_locale_skipped_when_override_disabled(self):
        trust = resolve_trust(
            make_session(locale="it_IT"), make_incoming(), make_config(locale_override_enabled=False)
        )

        assert trust == TrustContext(user_name="admin", locale=None)

    @pytest.mark.parametrize("session", [None, make_session(user=None), make_session(user="")])
    def test_unauthenticated_redirects_to_error_url(self, session):
        result = resolve_trust(session, make_incoming(), make_config(error_url="http://portal/err"))

        assert result == ErrorRedirect(location="http://portal/err")

    def test_unauthenticated_without_error_url_is_suppressed(self):
        result = resolve_trust(None, make_incoming(), make_config())

        assert isinstance(result, Suppressed)
        assert result.reason == "identity_missing"

    def test_anonymous_passthrough(self):
        result = resolve_trust(None, make_incoming(), make_config(anonymous_passthrough=True))

        assert result == TrustContext(user_name=None, locale=None)

    def test_error_url_wins_over_anonymous_passthrough(self):
        result = resolve_trust(
            None,
            make_incoming(),
            make_config(anonymous_passthrough=True, error_url="http://portal/err"),
        )

        assert isinstance(result, ErrorRedirect)


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("en-US,en;q=0.9", "en_US"),
        ("pt-br", "pt_BR"),
        ("de", "de"),
        ("*, fr-CA;q=0.5", "fr_CA"),
        ("*", None),
    ],
)
def test_locale_from_accept_language(header, expected):
    assert locale_from_accept_language(header) == expected


# ============================================================================
# Forwarder Tests
# ============================================================================

def test_get_request_has_no_body():
    outgoing = build_outgoing_request(make_incoming(body=b"ignored"), httpx.URL(BASE_URL))

    assert outgoing == OutgoingRequest(
        method="GET", url=BASE_URL, headers={"Accept-Encoding": "identity"}
    )


def test_post_request_is_labelled_json():
    outgoing = build_outgoing_request(
        make_incoming(method="post", body=b"a=1&b=2"), httpx.URL(BASE_URL)
    )

    assert outgoing.method == "POST"
    assert outgoing.body == b"a=1&b=2"
    assert outgoing.headers == {
        "Accept-Encoding": "identity",
        "Content-Type": "application/json",
    }


def test_unsupported_method_cannot_be_built():
    with pytest.raises(ValueError):
        build_outgoing_request(make_incoming(method="DELETE"), httpx.URL(BASE_URL))


class TestHttpForwarder:

    @pytest.mark.asyncio
    async def test_success_streams_raw_body(self):
        payload = b"\x89PNG\r\n\x1a\n\x00\xff"

        def handler(request):
            return httpx.Response(
                200,
                content=payload,
                headers={"Content-Type": "image/png", "X-Trace": "1"},
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await HttpForwarder(client).execute(
                OutgoingRequest(method="GET", url=f"{BASE_URL}/img")
            )
            assert isinstance(result, Relayed)
            body = b"".join([chunk async for chunk in result.body])
            await result.release()

        assert result.status_code == 200
        assert result.headers == {"content-type": "image/png", "content-length": str(len(payload))}
        assert body == payload

    @pytest.mark.asyncio
    async def test_non_2xx_is_remote_failure(self):
        def handler(request):
            return httpx.Response(500, content=b"boom")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await HttpForwarder(client).execute(
                OutgoingRequest(method="GET", url=BASE_URL)
            )

        assert isinstance(result, Failure)
        assert result.kind == FailureKind.REMOTE_NON_OK
        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_redirect_from_backend_is_not_followed(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(302, headers={"Location": f"{BASE_URL}/elsewhere"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await HttpForwarder(client).execute(
                OutgoingRequest(method="GET", url=BASE_URL)
            )

        assert len(calls) == 1
        assert isinstance(result, Failure)
        assert result.status_code == 302

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, kind",
        [
            (httpx.ConnectError("refused"), FailureKind.TRANSPORT),
            (httpx.ReadError("reset"), FailureKind.TRANSPORT),
            (httpx.ConnectTimeout("slow"), FailureKind.TIMEOUT),
            (httpx.ReadTimeout("slower"), FailureKind.TIMEOUT),
        ],
    )
    async def test_transport_errors_are_classified(self, error, kind):
        calls = []

        def handler(request):
            calls.append(request)
            raise error

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await HttpForwarder(client).execute(
                OutgoingRequest(method="POST", url=BASE_URL, body=b"{}")
            )

        assert len(calls) == 1
        assert isinstance(result, Failure)
        assert result.kind == kind
        assert result.target == "reports.internal"


# ============================================================================
# Handler Tests
# ============================================================================

@pytest.fixture
def forwarder():
    forwarder = AsyncMock(spec=HttpForwarder)
    forwarder.execute.return_value = Relayed(status_code=200, headers={}, body=iter([]))
    return forwarder


class TestTrustProxyHandler:

    @pytest.mark.asyncio
    async def test_disabled_pipeline_is_suppressed(self, forwarder):
        handler = TrustProxyHandler(None, forwarder)

        result = await handler.handle(make_incoming(), make_session())

        assert result == Suppressed(reason="proxy_disabled")
        assert handler.enabled is False
        forwarder.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_authenticated_request_is_dispatched(self, forwarder):
        handler = TrustProxyHandler(make_config(), forwarder)

        result = await handler.handle(
            make_incoming(query_params=[("_TRUST_USER_", "evil")]), make_session()
        )

        assert isinstance(result, Relayed)
        outgoing = forwarder.execute.call_args.args[0]
        assert outgoing.method == "GET"
        assert httpx.URL(outgoing.url).params.get_list("_TRUST_USER_") == ["admin"]

    @pytest.mark.asyncio
    async def test_invalid_target_is_failure_without_dispatch(self, forwarder):
        handler = TrustProxyHandler(make_config(base_url="relative/path"), forwarder)

        result = await handler.handle(make_incoming(), make_session())

        assert isinstance(result, Failure)
        assert result.kind == FailureKind.INVALID_TARGET
        forwarder.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_continuity_redirect(self, forwarder):
        handler = TrustProxyHandler(
            make_config(redirect_url="http://second-app/", app_root_path="/pentaho"), forwarder
        )

        result = await handler.handle(make_incoming(path="/proxy/webttle/redirect/"), make_session())

        assert result == ContinuityRedirect(
            session_id="S-1", max_age=900, path="/pentaho", location="http://second-app/"
        )
        forwarder.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_continuity_redirect_without_session(self, forwarder):
        handler = TrustProxyHandler(
            make_config(redirect_url="http://second-app/", anonymous_passthrough=True), forwarder
        )

        result = await handler.handle(make_incoming(path="/proxy/redirect"), None)

        assert result == Suppressed(reason="no_session")
        forwarder.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_encoded_slash_does_not_form_continuity_segment(self, forwarder):
        handler = TrustProxyHandler(make_config(redirect_url="http://second-app/"), forwarder)

        result = await handler.handle(make_incoming(path="/proxy/a%2Fredirect"), make_session())

        assert isinstance(result, Relayed)
        assert forwarder.execute.call_args.args[0].url.startswith(f"{BASE_URL}/a%2Fredirect?")

    @pytest.mark.asyncio
    async def test_custom_continuity_segment(self, forwarder):
        handler = TrustProxyHandler(
            make_config(redirect_url="http://second-app/", continuity_segment="handoff"), forwarder
        )

        handoff = await handler.handle(make_incoming(path="/proxy/handoff"), make_session())
        plain = await handler.handle(make_incoming(path="/proxy/redirect"), make_session())

        assert isinstance(handoff, ContinuityRedirect)
        assert isinstance(plain, Relayed)

    @pytest.mark.asyncio
    async def test_unsupported_method_is_suppressed(self, forwarder):
        handler = TrustProxyHandler(make_config(), forwarder)

        result = await handler.handle(make_incoming(method="PUT"), make_session())

        assert result == Suppressed(reason="method_not_supported")
        forwarder.execute.assert_not_called()


# ============================================================================
# Relay Tests
# ============================================================================

@pytest.mark.parametrize(
    "result",
    [
        Suppressed(reason="identity_missing"),
        Failure(kind=FailureKind.TRANSPORT),
        Failure(kind=FailureKind.REMOTE_NON_OK, status_code=404),
        Failure(kind=FailureKind.INVALID_TARGET),
    ],
)
def test_silent_outcomes_render_untouched_response(result):
    response = relay(result, make_config())

    assert response.status_code == 200
    assert response.body == b""
    assert "content-type" not in response.headers


@pytest.mark.parametrize(
    "result, expected_status",
    [
        (Failure(kind=FailureKind.TRANSPORT), 502),
        (Failure(kind=FailureKind.TIMEOUT), 504),
        (Failure(kind=FailureKind.INVALID_TARGET), 500),
        (Failure(kind=FailureKind.REMOTE_NON_OK, status_code=403), 403),
    ],
)
def test_surface_policy_status(result, expected_status):
    response = relay(result, make_config(failure_policy="surface"))

    assert response.status_code == expected_status


def test_disabled_pipeline_failure_is_untouched():
    response = relay(Failure(kind=FailureKind.TRANSPORT), None)

    assert response.status_code == 200


def test_error_redirect_response():
    response = relay(ErrorRedirect(location="http://portal/err"), make_config())

    assert response.status_code == 302
    assert response.headers["location"] == "http://portal/err"


def test_continuity_redirect_response():
    response = relay(
        ContinuityRedirect(session_id="XYZ", max_age=1800, path="/", location="http://second-app/"),
        make_config(),
    )

    assert response.status_code == 302
    assert response.headers["location"] == "http://second-app/"
    cookie = response.headers["set-cookie"]
    assert cookie.startswith("JSESSIONID=XYZ;")
    assert "Max-Age=1800" in cookie
    assert "Path=/" in cookie
