"""
Identity resolution for forwarded requests.

Decides, from the caller's local session, whether a request carries a trusted
user to the backend, is redirected to the error page, or stops here.
"""

import logging
from typing import Optional, Union

from ..models import (
    ErrorRedirect,
    IncomingRequest,
    LocalSession,
    ProxyConfig,
    Suppressed,
    TrustContext,
)

logger = logging.getLogger(__name__)


def locale_from_accept_language(header: Optional[str]) -> Optional[str]:
    """
    Pick the first concrete language tag of an Accept-Language header.

    Tags are rendered the way the backend expects locales (``en-us`` -> ``en_US``).
    """
    if not header:
        return None

    for part in header.split(","):
        tag = part.split(";", 1)[0].strip()
        if not tag or tag == "*":
            continue
        pieces = tag.replace("_", "-").split("-")
        language = pieces[0].lower()
        if len(pieces) > 1 and pieces[1]:
            return f"{language}_{pieces[1].upper()}"
        return language
    return None


def resolve_locale(
    session: Optional[LocalSession],
    incoming: IncomingRequest,
    config: ProxyConfig,
) -> str:
    if session is not None and session.locale:
        return session.locale
    return locale_from_accept_language(incoming.accept_language) or config.default_locale


def resolve_trust(
    session: Optional[LocalSession],
    incoming: IncomingRequest,
    config: ProxyConfig,
) -> Union[TrustContext, ErrorRedirect, Suppressed]:
    """
    Resolve the identity a request is forwarded with.

    Returns:
        TrustContext when the request may proceed (user_name None only with
        anonymous passthrough), ErrorRedirect when the caller is unauthenticated
        and an error page is configured, Suppressed otherwise
    """
    user_name = session.user_name if session is not None else None

    if not user_name:
        if config.error_url:
            logger.warning(
                "Unauthenticated proxy request, redirecting to error page",
                extra={"path": incoming.path, "error_url": config.error_url},
            )
            return ErrorRedirect(location=config.error_url)

        if not config.anonymous_passthrough:
            logger.warning(
                "Unauthenticated proxy request dropped",
                extra={"path": incoming.path},
            )
            return Suppressed(reason="identity_missing")

        return TrustContext(user_name=None, locale=None)

    locale = resolve_locale(session, incoming, config) if config.locale_override_enabled else None
    return TrustContext(user_name=user_name, locale=locale)
