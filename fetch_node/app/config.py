"""
Configuration module for the KeyFetch regional proxy node.

This module uses Pydantic Settings to load and validate environment variables
for the node's region identity, the identity/billing service connection,
usage reporting and outbound request limits.

Environment variables are loaded from .env file or system environment.
Every setting has a default so a bare node starts without any configuration.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SERVICE_SECRET = "dev-service-secret"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Region identity, identity service access, usage reporting cadence and
    forwarding limits are all defined here.
    """

    # =========================================================================
    # Node Identity
    # =========================================================================

    KEYFETCH_REGION: str = Field(
        default="unknown",
        description="Region identifier this node serves from (e.g., 'eu-frankfurt')",
    )

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the node server",
    )

    PORT: int = Field(
        default=3000,
        description="Port to bind the node server",
        ge=1,
        le=65535,
    )

    # =========================================================================
    # Identity / Billing Service
    # =========================================================================

    IDENTITY_API_URL: str = Field(
        default="https://keykeeper.world/api",
        description="Base URL of the identity/billing service",
    )

    SERVICE_SECRET: str = Field(
        default=DEFAULT_SERVICE_SECRET,
        description="Shared secret sent as X-Service-Secret to the identity service",
    )

    SERVICE_NAME: str = Field(
        default="keyfetch",
        description="Service identifier reported in verify and usage payloads",
    )

    IDENTITY_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for calls to the identity service",
        gt=0,
    )

    TOKEN_CACHE_TTL_SECONDS: float = Field(
        default=60.0,
        description="How long a positive token verification is reused",
        gt=0,
    )

    # =========================================================================
    # Usage Reporting
    # =========================================================================

    USAGE_REPORT_INTERVAL: int = Field(
        default=30000,
        description="Interval between usage flushes in milliseconds",
        ge=100,
    )

    MAX_PENDING_USAGE: int = Field(
        default=10000,
        description="Pending usage records above which a flush is forced",
        ge=1,
    )

    # =========================================================================
    # Forwarding Limits
    # =========================================================================

    MAX_FETCH_TIMEOUT_MS: int = Field(
        default=30000,
        description="Upper bound for the caller-requested outbound timeout",
        ge=1,
    )

    USER_AGENT: str = Field(
        default="KeyFetch/1.0",
        description="Default User-Agent for outbound requests",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

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
    def identity_api_url_str(self) -> str:
        """Identity service base URL without trailing slash."""
        return self.IDENTITY_API_URL.rstrip("/")

    @property
    def verify_url(self) -> str:
        return f"{self.identity_api_url_str}/v1/services/verify"

    @property
    def usage_url(self) -> str:
        return f"{self.identity_api_url_str}/v1/services/usage"

    @property
    def usage_report_interval_seconds(self) -> float:
        return self.USAGE_REPORT_INTERVAL / 1000.0

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Normalize and validate the logging level name.

        Raises:
            ValueError: If the level is not a standard logging level
        """
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.strip().upper()
        if level not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return level

    @field_validator("IDENTITY_API_URL")
    @classmethod
    def validate_identity_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid IDENTITY_API_URL: '{v}'. Expected an http(s) URL"
            )
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so the environment is read once per process.

    Returns:
        Settings instance with all configuration loaded and validated.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Check settings that are legal but suspicious for a production node.

    Returns:
        Dictionary with the warnings and the settings they were computed from.
    """
    from .regions import is_known_region

    warnings = []

    if settings.SERVICE_SECRET == DEFAULT_SERVICE_SECRET:
        warnings.append("SERVICE_SECRET is the development default")

    if not is_known_region(settings.KEYFETCH_REGION):
        warnings.append(
            f"KEYFETCH_REGION '{settings.KEYFETCH_REGION}' is not a known region"
        )

    if settings.MAX_PENDING_USAGE < 100:
        warnings.append("MAX_PENDING_USAGE is very low; flushes will be forced often")

    return {
        "warnings": warnings,
        "region": settings.KEYFETCH_REGION,
        "identity_api_url": settings.identity_api_url_str,
    }
