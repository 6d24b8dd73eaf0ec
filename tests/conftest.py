"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest
import respx

from promql_mcp.client import PrometheusClient
from promql_mcp.config import Settings, clear_settings_cache
from promql_mcp.server import PromQLServer


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        api_url="http://localhost:9090",
        shutdown_timeout=0.2,
    )


@pytest.fixture
def settings_with_basic_auth() -> Settings:
    """Create test settings with basic auth."""
    return Settings(
        api_url="http://localhost:9090",
        auth_type="basic",
        auth_username="admin",
        auth_password="secret",
    )


@pytest.fixture
def settings_with_bearer_auth() -> Settings:
    """Create test settings with bearer auth."""
    return Settings(
        api_url="http://localhost:9090",
        auth_type="bearer",
        auth_token="test-token",
    )


@pytest.fixture
async def client(settings: Settings) -> PrometheusClient:
    """Create a connected test client."""
    client = PrometheusClient(settings=settings)
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def server(settings: Settings) -> PromQLServer:
    """Create a server against the mocked API."""
    return PromQLServer(settings=settings)


@pytest.fixture
def mock_prometheus():
    """Mock Prometheus API responses."""
    with respx.mock(base_url="http://localhost:9090", assert_all_called=False) as mock:
        yield mock


# =============================================================================
# Common Mock Responses
# =============================================================================


@pytest.fixture
def mock_series_response() -> dict:
    """Mock series response."""
    return {
        "status": "success",
        "data": [
            {"__name__": "up", "job": "node"},
            {"__name__": "up", "job": "api"},
        ],
    }


@pytest.fixture
def mock_series_response_with_warnings() -> dict:
    """Mock series response carrying warnings."""
    return {
        "status": "success",
        "data": [
            {"__name__": "up", "job": "prometheus", "instance": "localhost:9090"},
        ],
        "warnings": ["partial response: store gateway unavailable"],
    }


@pytest.fixture
def mock_bad_data_response() -> dict:
    """Mock error envelope for an unparsable selector."""
    return {
        "status": "error",
        "errorType": "bad_data",
        "error": '1:3: parse error: unexpected "{" in label matching',
    }
