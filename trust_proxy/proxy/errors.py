class ProxyError(Exception):
    """Base exception for proxy pipeline errors"""
    pass


class InvalidProxyTarget(ProxyError):
    """The outbound URI could not be constructed from the inbound request."""
    pass
