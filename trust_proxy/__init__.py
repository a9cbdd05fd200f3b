"""
Trust Proxy
===========

Forwards GET/POST requests to a configured backend origin on behalf of a
locally authenticated user. The backend receives the session user as a
trusted ``_TRUST_USER_`` parameter (plus ``_TRUST_LOCALE_OVERRIDE_``) that
callers cannot forge, and its response is streamed back unchanged.

Packages:
    - auth:  local session token reading
    - proxy: URI building, trust resolution, dispatch and relay
"""

__version__ = "1.0.0"
