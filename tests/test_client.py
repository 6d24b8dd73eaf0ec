"""Tests for Prometheus client module."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest
from httpx import Response

from promql_mcp.client import PrometheusClient, SeriesResult, format_time
from promql_mcp.config import Settings
from promql_mcp.exceptions import (
    BackendError,
    PrometheusAPIError,
    PrometheusConnectionError,
    PrometheusQueryError,
    PrometheusTimeoutError,
)

END = datetime(2024, 1, 1, 1, 0, 0, tzinfo=timezone.utc)
START = END - timedelta(hours=1)


class TestPrometheusClient:
    """Test PrometheusClient class."""

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, settings: Settings):
        """Test client connection lifecycle."""
        client = PrometheusClient(settings=settings)

        assert client._client is None
        await client.connect()
        assert client.connected
        await client.close()
        assert client._client is None

    @pytest.mark.asyncio
    async def test_context_manager(self, settings: Settings):
        """Test async context manager."""
        async with PrometheusClient(settings=settings) as client:
            assert client._client is not None
        assert client._client is None

    def test_base_url(self):
        client = PrometheusClient(settings=Settings(api_url="http://prom:9090/"))
        assert client.base_url == "http://prom:9090"

    @pytest.mark.asyncio
    async def test_series(
        self,
        settings: Settings,
        mock_prometheus,
        mock_series_response: dict,
    ):
        """Test series lookup."""
        route = mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json=mock_series_response)
        )

        async with PrometheusClient(settings=settings) as client:
            result = await client.series(["up"], start=START, end=END)

        assert isinstance(result, SeriesResult)
        assert result.label_sets == [
            {"__name__": "up", "job": "node"},
            {"__name__": "up", "job": "api"},
        ]
        assert result.warnings == []

        form = parse_qs(route.calls.last.request.content.decode())
        assert form["match[]"] == ["up"]
        assert form["start"] == [format_time(START)]
        assert form["end"] == [format_time(END)]

    @pytest.mark.asyncio
    async def test_series_warnings(
        self,
        settings: Settings,
        mock_prometheus,
        mock_series_response_with_warnings: dict,
    ):
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json=mock_series_response_with_warnings)
        )

        async with PrometheusClient(settings=settings) as client:
            label_sets, warnings = await client.series(["up"], start=START, end=END)

        assert len(label_sets) == 1
        assert warnings == ["partial response: store gateway unavailable"]

    @pytest.mark.asyncio
    async def test_series_empty(self, settings: Settings, mock_prometheus):
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json={"status": "success", "data": []})
        )

        async with PrometheusClient(settings=settings) as client:
            result = await client.series(["nope"], start=START, end=END)

        assert result.label_sets == []

    @pytest.mark.asyncio
    async def test_series_falls_back_to_get(
        self,
        settings: Settings,
        mock_prometheus,
        mock_series_response: dict,
    ):
        """Test GET fallback when POST is not allowed."""
        mock_prometheus.post("/api/v1/series").mock(return_value=Response(405))
        get_route = mock_prometheus.get("/api/v1/series").mock(
            return_value=Response(200, json=mock_series_response)
        )

        async with PrometheusClient(settings=settings) as client:
            result = await client.series(["up"], start=START, end=END)

        assert len(result.label_sets) == 2
        params = get_route.calls.last.request.url.params
        assert params.get_list("match[]") == ["up"]

    @pytest.mark.asyncio
    async def test_bearer_auth_header(
        self,
        settings_with_bearer_auth: Settings,
        mock_prometheus,
        mock_series_response: dict,
    ):
        route = mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json=mock_series_response)
        )

        async with PrometheusClient(settings=settings_with_bearer_auth) as client:
            await client.series(["up"], start=START, end=END)

        assert route.calls.last.request.headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_basic_auth_header(
        self,
        settings_with_basic_auth: Settings,
        mock_prometheus,
        mock_series_response: dict,
    ):
        route = mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json=mock_series_response)
        )

        async with PrometheusClient(settings=settings_with_basic_auth) as client:
            await client.series(["up"], start=START, end=END)

        assert route.calls.last.request.headers["Authorization"].startswith("Basic ")


class TestErrorHandling:
    """Test error handling."""

    @pytest.mark.asyncio
    async def test_error_envelope(
        self,
        settings: Settings,
        mock_prometheus,
        mock_bad_data_response: dict,
    ):
        """Test handling of a bad_data error envelope."""
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(400, json=mock_bad_data_response)
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusQueryError) as exc_info:
                await client.series(["up{"], start=START, end=END)

        assert str(exc_info.value).startswith("bad_data: ")
        assert exc_info.value.status_code == 400
        assert exc_info.value.error_type == "bad_data"

    @pytest.mark.asyncio
    async def test_error_envelope_with_success_status(
        self,
        settings: Settings,
        mock_prometheus,
        mock_bad_data_response: dict,
    ):
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json=mock_bad_data_response)
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusQueryError):
                await client.series(["up{"], start=START, end=END)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, text, expected",
        [
            (401, "Unauthorized", "Authentication failed"),
            (403, "Forbidden", "Access denied"),
            (503, "Service Unavailable", "Service unavailable"),
            (502, "Bad Gateway", "HTTP 502"),
        ],
    )
    async def test_http_errors(
        self,
        settings: Settings,
        mock_prometheus,
        status: int,
        text: str,
        expected: str,
    ):
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(status, text=text)
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusAPIError) as exc_info:
                await client.series(["up"], start=START, end=END)

        assert expected in str(exc_info.value)
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_invalid_json(self, settings: Settings, mock_prometheus):
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, text="<html>not json</html>")
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusAPIError) as exc_info:
                await client.series(["up"], start=START, end=END)

        assert "Invalid JSON response" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_data(self, settings: Settings, mock_prometheus):
        mock_prometheus.post("/api/v1/series").mock(
            return_value=Response(200, json={"status": "success", "data": {"up": 1}})
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusAPIError):
                await client.series(["up"], start=START, end=END)

    @pytest.mark.asyncio
    async def test_connection_error(self, settings: Settings, mock_prometheus):
        mock_prometheus.post("/api/v1/series").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusConnectionError) as exc_info:
                await client.series(["up"], start=START, end=END)

        assert "connection refused" in str(exc_info.value)
        assert isinstance(exc_info.value, BackendError)

    @pytest.mark.asyncio
    async def test_httpx_timeout(self, settings: Settings, mock_prometheus):
        mock_prometheus.post("/api/v1/series").mock(
            side_effect=httpx.ReadTimeout("timed out")
        )

        async with PrometheusClient(settings=settings) as client:
            with pytest.raises(PrometheusTimeoutError):
                await client.series(["up"], start=START, end=END, timeout=1.0)

    @pytest.mark.asyncio
    async def test_total_timeout_cancels_request(self, client: PrometheusClient):
        """A hung request is cancelled once the time bound expires."""
        cancelled = asyncio.Event()

        async def hang(*args, **kwargs):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        client._client.request = hang

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(PrometheusTimeoutError) as exc_info:
            await client.series(["up"], start=START, end=END, timeout=0.05)

        assert loop.time() - started < 5
        assert cancelled.is_set()
        assert "timeout" in str(exc_info.value).lower()


class TestFormatTime:
    """Test time formatting."""

    def test_format_time(self):
        assert format_time(datetime(2024, 1, 1, tzinfo=timezone.utc)) == "1704067200.000"
