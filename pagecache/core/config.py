"""
Page Cache Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for all settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional, List
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(
        default=False, description="Render log lines as JSON instead of console text"
    )

    # Page cache behaviour
    PAGE_CACHE_ENABLED: bool = Field(
        default=True, description="Master switch for the page cache"
    )
    PAGE_CACHE_BACKEND: str = Field(
        default="auto", description="Storage backend: auto, ttl or static"
    )
    PAGE_CACHE_TTL_SECONDS: int = Field(
        default=43200,
        ge=1,
        le=86400 * 365,
        description="Lifetime of TTL store entries in seconds (12 hours)",
    )
    PAGE_CACHE_NAMESPACE: str = Field(
        default="page_cache:",
        min_length=1,
        max_length=64,
        description="Key prefix isolating page cache entries in the TTL store",
    )
    PAGE_CACHE_SKIP_QUERY_STRINGS: bool = Field(
        default=True,
        description="Never cache requests that carry a query string",
    )
    PAGE_CACHE_ADMIN_TOKEN: Optional[str] = Field(
        default=None,
        min_length=16,
        description="Token required by the cache admin endpoints (unset disables them)",
    )

    # Redis configuration (TTL store)
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )
    REDIS_SOCKET_TIMEOUT: float = Field(
        default=2.0, gt=0, le=30, description="Redis socket timeout in seconds"
    )

    # Static file store
    STATIC_CACHE_ROOT: str = Field(
        default="public/page-cache",
        description="Directory holding the static page copies",
    )
    DOCUMENT_ROOT: str = Field(
        default="public", description="Front-door web server document root"
    )
    REWRITE_RULES_FILE: Optional[str] = Field(
        default=None,
        description="Front-door config file receiving the rewrite block "
        "(defaults to DOCUMENT_ROOT/.htaccess)",
    )
    REWRITE_RECHECK_SECONDS: int = Field(
        default=43200,
        ge=60,
        description="Minimum interval between rewrite rule installation attempts",
    )
    SERVER_SOFTWARE: str = Field(
        default="", description="Front-door server signature used by backend auto-selection"
    )

    # Request classification
    CONTROL_PATH_PREFIXES: str = Field(
        default="/admin,/login,/logout",
        description="Administrative path prefixes (comma-separated)",
    )
    API_PATH_PREFIXES: str = Field(
        default="/api,/_cache",
        description="Host API / control channel path prefixes (comma-separated)",
    )
    AUTH_COOKIE_PREFIXES: str = Field(
        default="session,logged_in",
        description="Cookie name prefixes identifying an authenticated caller",
    )

    # Write guard
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Consecutive write failures before cooldown"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Write cooldown duration in seconds",
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("PAGE_CACHE_BACKEND")
    @classmethod
    def validate_backend(cls, v):
        """Validate backend strategy."""
        allowed = ["auto", "ttl", "static"]
        if v.lower() not in allowed:
            raise ValueError(f"PAGE_CACHE_BACKEND must be one of: {allowed}")
        return v.lower()

    @field_validator("PAGE_CACHE_NAMESPACE")
    @classmethod
    def validate_namespace(cls, v):
        """Namespace becomes part of every key; keep it SCAN-pattern safe."""
        if any(char.isspace() for char in v) or any(c in v for c in "*?[]"):
            raise ValueError("PAGE_CACHE_NAMESPACE cannot contain whitespace or glob characters")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def control_path_prefixes(self) -> List[str]:
        return _split_csv(self.CONTROL_PATH_PREFIXES)

    @property
    def api_path_prefixes(self) -> List[str]:
        return _split_csv(self.API_PATH_PREFIXES)

    @property
    def auth_cookie_prefixes(self) -> List[str]:
        return _split_csv(self.AUTH_COOKIE_PREFIXES)

    @property
    def rewrite_rules_file(self) -> str:
        """Rewrite target, defaulting to the document root .htaccess."""
        if self.REWRITE_RULES_FILE:
            return self.REWRITE_RULES_FILE
        return f"{self.DOCUMENT_ROOT.rstrip('/')}/.htaccess"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
