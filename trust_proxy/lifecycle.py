"""
Startup validation of the proxy configuration.

The proxy is fail-closed: when PROXY_BASE_URL is missing or malformed the
pipeline is disabled for the lifetime of the process (every request becomes a
silent no-op) rather than refusing to start.
"""

import logging
from typing import Optional

import httpx

from .config import Settings
from .models import ProxyConfig

logger = logging.getLogger(__name__)


def parse_http_url(value: Optional[str]) -> Optional[httpx.URL]:
    """
    Parse an absolute http(s) URL.

    Returns:
        The parsed URL, or None when the value is empty or not an absolute http(s) URL
    """
    if value is None or not value.strip():
        return None

    try:
        url = httpx.URL(value.strip())
    except (httpx.InvalidURL, TypeError, ValueError):
        return None

    if url.scheme not in ("http", "https") or not url.host:
        return None
    return url


def _optional_url(name: str, value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    if parse_http_url(value) is None:
        logger.error(f"{name} is not a valid URL, ignoring it: {value}")
        return None
    return value.strip()


def build_proxy_config(settings: Settings) -> Optional[ProxyConfig]:
    """
    Validate the proxy settings once and freeze them into a ProxyConfig.

    Returns:
        ProxyConfig, or None when the pipeline must stay disabled
    """
    if not settings.PROXY_BASE_URL:
        logger.error("No proxy base URL specified (PROXY_BASE_URL); proxy disabled")
        return None

    base_url = parse_http_url(settings.PROXY_BASE_URL)
    if base_url is None:
        logger.error(
            f"Invalid proxy base URL: {settings.PROXY_BASE_URL}; proxy disabled"
        )
        return None

    config = ProxyConfig(
        base_url=str(base_url),
        redirect_url=_optional_url("PROXY_REDIRECT_URL", settings.PROXY_REDIRECT_URL),
        error_url=_optional_url("PROXY_ERROR_URL", settings.PROXY_ERROR_URL),
        locale_override_enabled=settings.PROXY_LOCALE_OVERRIDE_ENABLED,
        mount_prefix=settings.PROXY_MOUNT_PREFIX,
        continuity_segment=settings.PROXY_CONTINUITY_SEGMENT.strip("/"),
        app_root_path=settings.PROXY_APP_ROOT_PATH,
        anonymous_passthrough=settings.PROXY_ANONYMOUS_PASSTHROUGH,
        failure_policy=settings.PROXY_FAILURE_POLICY,
        default_locale=settings.DEFAULT_LOCALE,
    )

    logger.info(
        f"Proxy URL selected: {config.base_url}",
        extra={
            "mount_prefix": config.mount_prefix,
            "redirect_url": config.redirect_url,
            "error_url": config.error_url,
            "locale_override_enabled": config.locale_override_enabled,
            "failure_policy": config.failure_policy,
        },
    )
    return config


def create_backend_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the process-wide HTTP client used for every backend call.

    Redirects from the backend are relayed to the caller, never followed.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.PROXY_READ_TIMEOUT,
            connect=settings.PROXY_CONNECT_TIMEOUT,
        ),
        limits=httpx.Limits(
            max_connections=settings.PROXY_MAX_CONNECTIONS,
            max_keepalive_connections=settings.PROXY_MAX_KEEPALIVE_CONNECTIONS,
        ),
        follow_redirects=False,
        transport=transport,
    )
