"""
Prometheus-compatible HTTP API client with connection pooling and error handling.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, NamedTuple, Optional

import httpx
import structlog

from promql_mcp import __version__
from promql_mcp.config import Settings, get_settings
from promql_mcp.exceptions import (
    PrometheusAPIError,
    PrometheusConnectionError,
    PrometheusQueryError,
    PrometheusTimeoutError,
)

SERIES_PATH = "/api/v1/series"


class SeriesResult(NamedTuple):
    """Label sets matching a selector, plus any advisory warnings."""

    label_sets: list[dict[str, str]]
    warnings: list[str]


def format_time(value: datetime) -> str:
    """Format a datetime as the Unix-seconds string the API expects."""
    return f"{value.timestamp():.3f}"


class PrometheusClient:
    """
    Async client for a Prometheus-compatible HTTP API.

    Features:
    - One pooled connection shared by every concurrent tool call
    - Basic and bearer authentication
    - Total per-call time bound that cancels the in-flight request
    - Typed errors for transport, status and payload failures

    Requests are never retried.

    Example:
        ```python
        async with PrometheusClient() as client:
            label_sets, warnings = await client.series(["up"], start, end)
        ```
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Configuration settings. Uses default settings if not provided.
            logger: Logger to bind request context onto. Uses the module logger
                if not provided.
        """
        self.settings = settings or get_settings()
        self._client: Optional[httpx.AsyncClient] = None
        self._log = (logger or structlog.get_logger(__name__)).bind(
            prometheus_url=self.settings.api_url
        )

    async def __aenter__(self) -> "PrometheusClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @property
    def base_url(self) -> str:
        """The configured API URL, without a trailing slash."""
        return self.settings.api_url

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the pooled HTTP client."""
        if self._client is not None:
            return

        client_kwargs: dict[str, Any] = {
            "base_url": self.settings.api_url,
            "limits": httpx.Limits(
                max_connections=self.settings.max_connections,
                max_keepalive_connections=max(1, self.settings.max_connections // 2),
            ),
            "verify": self.settings.tls_verify,
            "headers": {
                "Accept": "application/json",
                "User-Agent": f"promql-mcp/{__version__}",
            },
        }

        client_kwargs["headers"].update(self.settings.get_auth_headers())

        basic_auth = self.settings.get_basic_auth()
        if basic_auth:
            client_kwargs["auth"] = basic_auth

        self._client = httpx.AsyncClient(**client_kwargs)
        self._log.info("Prometheus client ready")

    async def close(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._log.info("Prometheus client closed")

    async def _send(
        self,
        method: str,
        path: str,
        fields: dict[str, Any],
        timeout: Optional[float],
    ) -> httpx.Response:
        assert self._client is not None

        if method == "GET":
            request = self._client.request(
                method, path, params=fields, timeout=timeout or httpx.USE_CLIENT_DEFAULT
            )
        else:
            request = self._client.request(
                method, path, data=fields, timeout=timeout or httpx.USE_CLIENT_DEFAULT
            )

        if timeout is None:
            return await request
        return await asyncio.wait_for(request, timeout=timeout)

    async def _request(
        self,
        path: str,
        fields: dict[str, Any],
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """
        POST form fields to an API endpoint and decode the response envelope.

        Falls back to GET with query parameters when the server answers
        405 Method Not Allowed, as some read-only proxies do.

        Args:
            path: API path
            fields: Form fields or query parameters
            timeout: Upper bound in seconds for the whole call

        Returns:
            Decoded response envelope

        Raises:
            PrometheusAPIError: On API errors
            PrometheusConnectionError: On connection errors
            PrometheusTimeoutError: On timeout
        """
        if self._client is None:
            await self.connect()

        log = self._log.bind(path=path)
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        try:
            response = await self._send("POST", path, fields, timeout)
            if response.status_code == 405:
                log.debug("POST not allowed, falling back to GET")
                remaining = None if deadline is None else max(deadline - loop.time(), 0.001)
                response = await self._send("GET", path, fields, remaining)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            log.error("Request timeout", timeout=timeout)
            raise PrometheusTimeoutError(
                f"Request timeout after {timeout}s" if timeout else f"Request timeout: {e}"
            ) from e
        except httpx.TransportError as e:
            log.error("Connection error", error=str(e))
            raise PrometheusConnectionError(f"Connection error: {e}") from e

        return self._decode(response, log)

    def _decode(self, response: httpx.Response, log: Any) -> dict[str, Any]:
        error_type: Optional[str] = None
        error_detail = response.text

        try:
            result = response.json()
        except ValueError as e:
            result = None
            if response.status_code < 400:
                log.error("Failed to parse response", error=str(e))
                raise PrometheusAPIError(
                    f"Invalid JSON response: {e}",
                    status_code=response.status_code,
                ) from e

        if isinstance(result, dict) and result.get("status") == "error":
            error_type = result.get("errorType", "unknown")
            error_detail = result.get("error", "Unknown error")

        if response.status_code >= 400:
            log.error(
                "API error",
                status_code=response.status_code,
                error_type=error_type,
                error=error_detail,
            )

            if response.status_code in (400, 422):
                message = (
                    f"{error_type}: {error_detail}"
                    if error_type
                    else f"Bad request: {error_detail}"
                )
                raise PrometheusQueryError(
                    message, status_code=response.status_code, error_type=error_type
                )
            elif response.status_code == 401:
                message = f"Authentication failed: {error_detail}"
            elif response.status_code == 403:
                message = f"Access denied: {error_detail}"
            elif response.status_code == 503:
                message = f"Service unavailable: {error_detail}"
            else:
                message = f"HTTP {response.status_code}: {error_detail}"
            raise PrometheusAPIError(
                message, status_code=response.status_code, error_type=error_type
            )

        if not isinstance(result, dict):
            log.error("Unexpected response envelope", body=response.text[:200])
            raise PrometheusAPIError(
                "Invalid response: expected a JSON object",
                status_code=response.status_code,
            )

        if error_type is not None:
            log.error("Prometheus error", error_type=error_type, error=error_detail)
            raise PrometheusQueryError(
                f"{error_type}: {error_detail}",
                status_code=response.status_code,
                error_type=error_type,
            )

        return result

    # ==========================================================================
    # Series API
    # ==========================================================================

    async def series(
        self,
        match: list[str],
        start: datetime,
        end: datetime,
        timeout: Optional[float] = None,
    ) -> SeriesResult:
        """
        Find time series matching series selectors.

        Args:
            match: Series selectors, sent as ``match[]``
            start: Start of the lookup window
            end: End of the lookup window
            timeout: Upper bound in seconds for the whole call

        Returns:
            Matching label sets in the order the API returned them, and any
            warnings attached to the response

        Raises:
            PrometheusAPIError: If the response payload is malformed
        """
        fields: dict[str, Any] = {
            "match[]": list(match),
            "start": format_time(start),
            "end": format_time(end),
        }

        self._log.debug("Looking up series", match=match)
        response = await self._request(SERIES_PATH, fields, timeout=timeout)

        data = response.get("data")
        if data is None:
            data = []
        if not isinstance(data, list) or not all(isinstance(s, dict) for s in data):
            raise PrometheusAPIError("Invalid series response: data is not a list of label sets")

        warnings = response.get("warnings") or []
        return SeriesResult(
            label_sets=[{str(k): str(v) for k, v in s.items()} for s in data],
            warnings=[str(w) for w in warnings],
        )
