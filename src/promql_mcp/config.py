"""
Configuration management for the PromQL MCP server.

Supports environment variables, .env files and direct instantiation.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from promql_mcp.exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Log level options, in increasing order of severity."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def logging_level(self) -> int:
        """The matching standard library logging level."""
        return _STDLIB_LEVELS[self]


_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def parse_log_level(value: Any) -> LogLevel:
    """
    Map a user-supplied level name to a LogLevel.

    Matching is case-insensitive and ``warning`` is accepted for ``warn``.
    Anything unrecognized falls back to ``info``.
    """
    if isinstance(value, LogLevel):
        return value
    name = str(value or "").strip().lower()
    if name == "warning":
        name = "warn"
    try:
        return LogLevel(name)
    except ValueError:
        return LogLevel.INFO


class LogFormat(str, Enum):
    """Log renderer options."""

    TEXT = "text"
    JSON = "json"


class AuthType(str, Enum):
    """Authentication type options."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Settings can be configured via:
    - Environment variables (prefixed with PROMQL_MCP_)
    - .env file
    - Direct instantiation

    Example:
        ```bash
        export PROMQL_MCP_API_URL="http://prometheus:9090"
        export PROMQL_MCP_STDIO=true
        export PROMQL_MCP_LOG_LEVEL=debug
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="PROMQL_MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Prometheus-compatible API
    # ==========================================================================

    api_url: str = Field(
        default="http://localhost:9090",
        description="The Prometheus-compatible API URL",
        examples=["http://prometheus:9090", "https://thanos.example.com"],
    )

    auth_type: AuthType = Field(
        default=AuthType.NONE,
        description="Authentication type for the API connection",
    )

    auth_username: Optional[str] = Field(
        default=None,
        description="Username for basic authentication",
    )

    auth_password: Optional[SecretStr] = Field(
        default=None,
        description="Password for basic authentication",
    )

    auth_token: Optional[SecretStr] = Field(
        default=None,
        description="Bearer token for token-based authentication",
    )

    tls_verify: bool = Field(
        default=True,
        description="Verify TLS certificates",
    )

    max_connections: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of concurrent connections",
    )

    # ==========================================================================
    # MCP transport
    # ==========================================================================

    stdio: bool = Field(
        default=False,
        description="Serve over stdin/stdout instead of streamable HTTP",
    )

    host: str = Field(
        default="0.0.0.0",
        description="Host to bind the HTTP listener",
    )

    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port for the HTTP listener",
    )

    shutdown_timeout: float = Field(
        default=10.0,
        ge=0.0,
        le=300.0,
        description="Seconds to wait for the HTTP listener to drain on shutdown",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Log level (debug, info, warn, error)",
    )

    log_format: LogFormat = Field(
        default=LogFormat.TEXT,
        description="Log format (text or json)",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize the API URL."""
        v = v.rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: Any) -> LogLevel:
        return parse_log_level(v)

    @model_validator(mode="after")
    def validate_auth_config(self) -> "Settings":
        """Validate authentication configuration."""
        if self.auth_type == AuthType.BASIC:
            if not self.auth_username or not self.auth_password:
                raise ValueError(
                    "Basic auth requires both auth_username and auth_password"
                )
        elif self.auth_type == AuthType.BEARER:
            if not self.auth_token:
                raise ValueError("Bearer auth requires auth_token")
        return self

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def mcp_url(self) -> str:
        """Where the streamable HTTP endpoint is reachable."""
        return f"http://{self.host}:{self.port}/mcp"

    def get_auth_headers(self) -> dict[str, str]:
        """Get authentication headers."""
        headers: dict[str, str] = {}

        if self.auth_type == AuthType.BEARER and self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token.get_secret_value()}"

        return headers

    def get_basic_auth(self) -> Optional[tuple[str, str]]:
        """Get basic auth credentials."""
        if (
            self.auth_type == AuthType.BASIC
            and self.auth_username
            and self.auth_password
        ):
            return (self.auth_username, self.auth_password.get_secret_value())
        return None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()


def load_settings(**values: Any) -> Settings:
    """
    Build settings from explicit values, layered over the environment.

    Raises:
        ConfigurationError: If any value fails validation
    """
    try:
        return Settings(**values)
    except PydanticValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {errors}") from e
