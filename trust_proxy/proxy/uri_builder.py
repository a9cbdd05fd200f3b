"""
Outbound URI construction.

The target is built structurally: the backend origin is parsed once, the local
mount prefix is removed from the raw (still percent-encoded) inbound path as
whole leading segments, and the query string is rebuilt from (key, value) pairs
in their original order, duplicates and interleaving included.
"""

import logging
from typing import List, Tuple
from urllib.parse import parse_qsl, quote, urlencode

import httpx

from ..models import (
    TRUST_LOCALE_OVERRIDE_PARAM,
    TRUST_USER_PARAM,
    IncomingRequest,
    ProxyConfig,
    TrustContext,
)
from .errors import InvalidProxyTarget

logger = logging.getLogger(__name__)


def strip_mount_prefix(path: str, mount_prefix: str) -> str:
    """
    Remove the local mount prefix from a request path.

    Only whole leading segments are removed: with prefix ``/proxy``,
    ``/proxy/api/x`` becomes ``/api/x`` while ``/proxyfoo`` and
    ``/api/proxy/x`` are left untouched.
    """
    if not mount_prefix or mount_prefix == "/":
        return path
    if path == mount_prefix:
        return ""
    if path.startswith(mount_prefix + "/"):
        return path[len(mount_prefix):]
    return path


def join_paths(base_path: str, remainder: str) -> str:
    base_path = base_path.rstrip("/")
    if remainder and not remainder.startswith("/"):
        remainder = "/" + remainder
    return (base_path + remainder) or "/"


def build_query_pairs(
    base_pairs: List[Tuple[str, str]],
    incoming_pairs: List[Tuple[str, str]],
    trust: TrustContext,
    config: ProxyConfig,
) -> List[Tuple[str, str]]:
    """
    Merge query pairs, drop caller-supplied trust users and append the trusted ones.

    Surviving pairs keep their relative order; trust pairs always come last.
    """
    # Just in case someone is trying to spoof the proxy.
    pairs = [
        (key, value)
        for key, value in list(base_pairs) + list(incoming_pairs)
        if key != TRUST_USER_PARAM
    ]

    if trust.user_name:
        pairs.append((TRUST_USER_PARAM, trust.user_name))
        if config.locale_override_enabled:
            pairs.append((TRUST_LOCALE_OVERRIDE_PARAM, trust.locale or config.default_locale))

    return pairs


def query_pairs(url: httpx.URL) -> List[Tuple[str, str]]:
    """Decode the query of a URL into pairs, keeping order, duplicates and blanks."""
    return parse_qsl(url.query.decode("ascii"), keep_blank_values=True)


def encode_query(pairs: List[Tuple[str, str]]) -> bytes:
    return urlencode(pairs, quote_via=quote).encode("ascii")


def _masked(target: httpx.URL, pairs: List[Tuple[str, str]]) -> str:
    masked = [
        (key, "***" if key == TRUST_USER_PARAM else value) for key, value in pairs
    ]
    return str(target.copy_with(query=encode_query(masked) if masked else None))


def build_proxied_uri(
    incoming: IncomingRequest,
    trust: TrustContext,
    config: ProxyConfig,
) -> httpx.URL:
    """
    Derive the backend URI for an inbound request.

    ``incoming.path`` is the raw request path: encoded reserved characters
    (``%2F``, ``%3F``, ``%23``) stay encoded inside their segment.

    Args:
        incoming: Inbound request snapshot
        trust: Resolved identity (user_name None for anonymous requests)
        config: Validated proxy configuration

    Returns:
        Absolute backend URL

    Raises:
        InvalidProxyTarget: If the base URL and inbound path do not form a valid URL
    """
    try:
        base = httpx.URL(config.base_url)
        remainder = strip_mount_prefix(incoming.path, quote(config.mount_prefix, safe="/"))
        pairs = build_query_pairs(query_pairs(base), incoming.query_params, trust, config)
        target = base.copy_with(
            path=join_paths(base.raw_path.split(b"?", 1)[0].decode("ascii"), remainder),
            query=encode_query(pairs) if pairs else None,
        )
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidProxyTarget(f"Cannot build proxy target for {incoming.path}: {e}") from e

    if target.scheme not in ("http", "https") or not target.host:
        raise InvalidProxyTarget(f"Proxy target is not an absolute http(s) URL: {target}")

    logger.debug(f"Proxy output URL: {_masked(target, pairs)}")
    return target
