"""
Custom exceptions for the PromQL MCP server.
"""

from __future__ import annotations


class PromQLMCPError(Exception):
    """Base exception for all PromQL MCP server errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# =============================================================================
# Request validation
# =============================================================================


class ValidationError(PromQLMCPError):
    """Raised when a caller-supplied argument is missing or mistyped."""

    def __init__(self, message: str, argument: str) -> None:
        super().__init__(message)
        self.argument = argument


class InvalidArgumentError(ValidationError):
    """Raised when a tool argument has the wrong type."""

    pass


class MissingArgumentError(ValidationError):
    """Raised when a required prompt argument is absent."""

    def __init__(self, argument: str) -> None:
        super().__init__(f"{argument} is required", argument)


class UnknownCapabilityError(PromQLMCPError):
    """Raised when a client asks for a tool or prompt that is not registered."""

    pass


# =============================================================================
# Backend
# =============================================================================


class BackendError(PromQLMCPError):
    """Raised when a call to the Prometheus-compatible API cannot complete."""

    pass


class PrometheusConnectionError(BackendError):
    """Raised when connection to Prometheus fails."""

    pass


class PrometheusTimeoutError(BackendError):
    """Raised when a request to Prometheus times out."""

    pass


class PrometheusAPIError(BackendError):
    """Raised when Prometheus API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.error_type = error_type


class PrometheusQueryError(PrometheusAPIError):
    """Raised when the selector or request parameters are rejected."""

    pass


class SeriesLookupError(PromQLMCPError):
    """Raised by the series tool when the backend lookup fails."""

    pass


# =============================================================================
# Process lifecycle
# =============================================================================


class ConfigurationError(PromQLMCPError):
    """Raised when configuration is invalid."""

    pass


class StartupError(PromQLMCPError):
    """Raised when the backend client or the transport cannot be started."""

    pass


class TransportError(PromQLMCPError):
    """Raised when the active transport stops with an error."""

    pass


class ShutdownError(PromQLMCPError):
    """Raised when a transport fails to shut down gracefully."""

    pass
