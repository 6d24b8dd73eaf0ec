"""
PromQL MCP Server

A Model Context Protocol (MCP) server that helps AI agents write PromQL:
it looks up the series available in a Prometheus-compatible API and serves
prompt templates for query and Perses dashboard generation.
"""

__version__ = "0.1.0"

from promql_mcp.client import PrometheusClient  # noqa: E402
from promql_mcp.config import Settings, get_settings  # noqa: E402
from promql_mcp.server import PromQLServer, create_server  # noqa: E402

__all__ = [
    "create_server",
    "PromQLServer",
    "PrometheusClient",
    "Settings",
    "get_settings",
    "__version__",
]
