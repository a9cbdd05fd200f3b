"""
The trust proxy pipeline.

    RECEIVE -> IDENTITY_CHECK -> ERROR_REDIRECT | SUPPRESSED
                              -> BUILD_URI -> ABORT_INVALID_URI
                                           -> CONTINUITY_REDIRECT
                                           -> DISPATCH -> RELAY_SUCCESS | ABORT_FAILURE

Every branch ends in a ProxyResult; nothing raised inside the pipeline reaches
the caller.
"""

import logging
from typing import Optional, Protocol

import httpx

from ..models import (
    ContinuityRedirect,
    Failure,
    FailureKind,
    IncomingRequest,
    LocalSession,
    ProxyConfig,
    ProxyResult,
    Suppressed,
    TrustContext,
)
from .errors import InvalidProxyTarget
from .forwarder import SUPPORTED_METHODS, HttpForwarder, build_outgoing_request
from .trust import resolve_trust
from .uri_builder import build_proxied_uri

logger = logging.getLogger(__name__)


class RequestHandler(Protocol):
    async def handle(
        self, incoming: IncomingRequest, session: Optional[LocalSession]
    ) -> ProxyResult:
        ...


class TrustProxyHandler:
    """
    Forwards requests with a trusted identity.

    Args:
        config: Validated configuration, or None when the proxy is disabled
        forwarder: Dispatcher bound to the shared backend client
    """

    def __init__(self, config: Optional[ProxyConfig], forwarder: HttpForwarder):
        self.config = config
        self.forwarder = forwarder

    @property
    def enabled(self) -> bool:
        return self.config is not None

    def is_continuity_target(self, incoming: IncomingRequest, target: httpx.URL) -> bool:
        """GET on a target whose last path segment is the continuity sentinel."""
        if not self.config.redirect_url or incoming.method.upper() != "GET":
            return False
        raw_path = target.raw_path.split(b"?", 1)[0].decode("ascii")
        last_segment = raw_path.rstrip("/").rsplit("/", 1)[-1]
        return last_segment == self.config.continuity_segment

    async def handle(
        self, incoming: IncomingRequest, session: Optional[LocalSession]
    ) -> ProxyResult:
        config = self.config
        if config is None:
            return Suppressed(reason="proxy_disabled")

        if incoming.method.upper() not in SUPPORTED_METHODS:
            return Suppressed(reason="method_not_supported")

        trust = resolve_trust(session, incoming, config)
        if not isinstance(trust, TrustContext):
            return trust

        try:
            target = build_proxied_uri(incoming, trust, config)
        except InvalidProxyTarget as e:
            logger.error(f"URI syntax error: {e}", extra={"path": incoming.path})
            return Failure(kind=FailureKind.INVALID_TARGET, detail=str(e))

        if self.is_continuity_target(incoming, target):
            if session is None:
                logger.warning(
                    "Continuity redirect requested without a local session",
                    extra={"path": incoming.path},
                )
                return Suppressed(reason="no_session")
            return ContinuityRedirect(
                session_id=session.session_id,
                max_age=session.max_inactive_interval,
                path=config.app_root_path,
                location=config.redirect_url,
            )

        return await self.forwarder.execute(build_outgoing_request(incoming, target))
