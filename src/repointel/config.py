"""Configuration management for repointel.

Loads the optional GitHub token and runtime settings from environment
variables using Pydantic. Secrets belong in .env (never hardcoded).

Usage:
    from repointel.config import settings

    print(settings.github_owner)
    print(settings.log_level)
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """repointel configuration from environment variables.

    Loads from .env file automatically. Validates on instantiation.
    Nothing is required: without a token the client falls back to
    anonymous access (lower upstream rate limit).

    Attributes:
        github_token: Bearer token for api.github.com (optional)
        github_owner: Default account whose repositories are aggregated
        github_api_url: Base URL of the GitHub REST API
        request_timeout: httpx timeout per request (seconds)
        max_concurrency: Max in-flight upstream requests per client
        stats_retries: Retries when a stats endpoint answers 202
        stats_retry_delay: Fixed delay between those retries (seconds)
        cache_sweep_interval: Period of the expired-entry sweep (seconds)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # GitHub (optional, anonymous access if absent)
    github_token: str | None = Field(
        default=None,
        description="GitHub bearer token (https://github.com/settings/tokens)",
    )
    github_owner: str | None = Field(
        default=None,
        description="Default repository owner for CLI commands",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )

    # Transport
    request_timeout: float = Field(default=30.0, gt=0, description="Request timeout (seconds)")
    max_concurrency: int = Field(default=10, ge=1, le=100, description="Max in-flight requests")

    # Stats endpoints answer 202 while GitHub computes them
    stats_retries: int = Field(default=3, ge=0, description="Retries on 202 Accepted")
    stats_retry_delay: float = Field(default=1.0, ge=0, description="Delay between 202 retries")

    # Cache housekeeping
    cache_sweep_interval: float = Field(
        default=600.0,
        gt=0,
        description="Expired-entry sweep period (seconds)",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("github_token", "github_owner")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat empty strings from .env as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper


# Global settings instance — loaded once at import
settings = Settings()
