"""
Configuration module for the Trust Proxy service.

This module uses Pydantic Settings to load and validate environment variables
for the backend origin, continuity/error redirects, session token handling,
HTTP client tuning, and CORS settings.

Environment variables are loaded from .env file or system environment.

URL values are deliberately kept as plain strings here. They are validated once
by ``trust_proxy.lifecycle`` at startup so that a bad ``PROXY_BASE_URL`` disables
the proxy pipeline instead of preventing the process from starting.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


FAILURE_POLICIES = ("silent", "surface")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # Proxy Target Configuration
    # =========================================================================

    PROXY_BASE_URL: Optional[str] = Field(
        None,
        description="Backend origin requests are forwarded to (e.g., http://reports:8080/pentaho)",
    )

    PROXY_REDIRECT_URL: Optional[str] = Field(
        None,
        description="Location used for the session-continuity redirect",
    )

    PROXY_ERROR_URL: Optional[str] = Field(
        None,
        description="Location unauthenticated callers are redirected to",
    )

    PROXY_LOCALE_OVERRIDE_ENABLED: bool = Field(
        default=True,
        description="Append the trusted locale override parameter to forwarded requests",
    )

    PROXY_MOUNT_PREFIX: str = Field(
        default="/proxy",
        description="Local path prefix the proxy is mounted under (stripped before forwarding)",
    )

    PROXY_CONTINUITY_SEGMENT: str = Field(
        default="redirect",
        description="Trailing path segment that triggers the continuity redirect",
        min_length=1,
    )

    PROXY_APP_ROOT_PATH: str = Field(
        default="/",
        description="Application root used as the JSESSIONID cookie path",
    )

    PROXY_ANONYMOUS_PASSTHROUGH: bool = Field(
        default=False,
        description="Forward unauthenticated callers without trust parameters instead of dropping them",
    )

    PROXY_FAILURE_POLICY: str = Field(
        default="silent",
        description="'silent' swallows backend failures, 'surface' maps them to an HTTP status",
    )

    # =========================================================================
    # Backend HTTP Client Configuration
    # =========================================================================

    PROXY_CONNECT_TIMEOUT: float = Field(default=10.0, gt=0)
    PROXY_READ_TIMEOUT: float = Field(default=30.0, gt=0)
    PROXY_MAX_CONNECTIONS: int = Field(default=100, ge=1)
    PROXY_MAX_KEEPALIVE_CONNECTIONS: int = Field(default=20, ge=0)

    DEFAULT_LOCALE: str = Field(
        default="en_US",
        description="Locale sent when neither the session nor the request carries one",
    )

    # =========================================================================
    # Local Session Configuration
    # =========================================================================

    SESSION_JWT_SECRET: str = Field(
        ...,
        description="Secret key used to verify session tokens (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="Session token signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_JWT_ISSUER: str = Field(default="trust-proxy")

    SESSION_JWT_EXPIRY_MINUTES: int = Field(
        default=60,
        ge=5,
        le=1440,  # Max 24 hours
    )

    SESSION_COOKIE_NAME: str = Field(default="session", min_length=1)

    SESSION_MAX_INACTIVE_SECONDS: int = Field(
        default=1800,
        description="Session inactivity interval, used as the JSESSIONID Max-Age",
        ge=0,
    )

    # =========================================================================
    # Server / CORS / Logging
    # =========================================================================

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (all origins when empty)",
    )

    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or ["*"] if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return ["*"]

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("PROXY_FAILURE_POLICY")
    @classmethod
    def validate_failure_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in FAILURE_POLICIES:
            raise ValueError(
                f"PROXY_FAILURE_POLICY must be one of {list(FAILURE_POLICIES)}, got: {v}"
            )
        return v

    @field_validator("PROXY_MOUNT_PREFIX", "PROXY_APP_ROOT_PATH")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Normalise to a leading slash and no trailing slash (except the root)."""
        v = v.strip()
        if not v.startswith("/"):
            v = "/" + v
        if len(v) > 1:
            v = v.rstrip("/") or "/"
        return v

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate the session token algorithm is one of the supported HMAC algorithms.
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported LOG_LEVEL: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.

    Example:
        >>> from trust_proxy.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.PROXY_BASE_URL)
    """
    return Settings()
