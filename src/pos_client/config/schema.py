"""Configuration schema and validation using Pydantic.

This module defines the settings schema that validates and coerces
configuration values from the environment and programmatic overrides into
the correct types with proper defaults.
"""

from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Pydantic settings schema for the POS data-access client.

    Environment variables use the ``POS_CLIENT_`` prefix, e.g.
    ``POS_CLIENT_BASE_URL``. Keyword arguments passed to the constructor take
    precedence over the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="POS_CLIENT_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",
    )

    # --- Endpoint ---

    base_url: str = Field(
        default="http://localhost:5000",
        description="Backend origin, without the /api/<version> suffix",
        min_length=1,
    )

    api_version: str = Field(
        default="v1",
        description="API version segment",
        min_length=1,
    )

    timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout handed to the HTTP client",
        gt=0,
    )

    # --- Retry ---

    max_retries: int = Field(
        default=3,
        description="Retries for network-class failures (total attempts = max_retries + 1)",
        ge=0,
    )

    base_delay_ms: int = Field(default=1000, description="First backoff delay", ge=0)

    cap_delay_ms: int = Field(default=10000, description="Backoff ceiling", ge=0)

    retry_jitter: float = Field(
        default=0.0,
        description="Extra random delay as a fraction of the backoff (0 disables)",
        ge=0.0,
        le=1.0,
    )

    # --- Interceptors ---

    install_default_interceptors: bool = Field(
        default=True,
        description="Install the logging and slow-response interceptors",
    )

    slow_response_ms: float = Field(
        default=1000.0,
        description="Server response time above which a warning is logged",
        ge=0,
    )

    # --- Optimistic updates ---

    field_debounce_ms: int = Field(default=300, ge=0)
    quantity_debounce_ms: int = Field(default=200, ge=0)
    binary_debounce_ms: int = Field(default=500, ge=0)

    # --- Validation Rules ---

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) origin and strip trailing slashes."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid base_url: {v}. Must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> "ClientSettings":
        """Ensure the backoff ceiling is not below the first delay."""
        if self.cap_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"cap_delay_ms ({self.cap_delay_ms}) must be >= "
                f"base_delay_ms ({self.base_delay_ms})"
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary of resolved values."""
        return self.model_dump()
