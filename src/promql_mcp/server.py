"""
PromQL MCP server implementation.

Wires the series lookup tool and the two prompt templates into an MCP server
and supervises exactly one transport: stdio, or streamable HTTP.

Capabilities:
- prometheus_get_series (tool)
- prometheus_generate_promql (prompt)
- perses_generate_dashboard (prompt)
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Optional

import structlog
from mcp import types
from mcp.server.lowlevel import Server

from promql_mcp import __version__
from promql_mcp.client import PrometheusClient
from promql_mcp.config import Settings, get_settings
from promql_mcp.exceptions import (
    PromQLMCPError,
    ShutdownError,
    StartupError,
    TransportError,
    UnknownCapabilityError,
)
from promql_mcp.prompts import (
    GENERATE_DASHBOARD_PROMPT,
    GENERATE_DASHBOARD_PROMPT_NAME,
    GENERATE_PROMQL_PROMPT,
    GENERATE_PROMQL_PROMPT_NAME,
    build_dashboard_prompt,
    build_query_prompt,
)
from promql_mcp.tools import GET_SERIES_TOOL, GET_SERIES_TOOL_NAME, get_series
from promql_mcp.transports import StdioTransport, StreamableHTTPTransport, Transport

SERVER_NAME = "promql-mcp"

SERVER_INSTRUCTIONS = """\
Welcome to the PromQL MCP server!

You can use this server to interact with a Prometheus-compatible API or TSDB, but only for the purposes of generating queries.
This server does not support querying metrics or series directly, but rather focuses on helping you construct valid PromQL queries.

You can use the tool prometheus_get_series to query the series available in the Prometheus instance. This will help you understand the actual available metrics and their labels
and allow you to construct valid PromQL queries based on that information.

The user can ask a variety of questions related to health, kube pods, questions around specific workloads and so on. Try to use tools/prompts from this server
to generate accurate PromQL queries."""

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class PromQLServer:
    """MCP server exposing series lookup and PromQL prompt templates."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: PrometheusClient | None = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._log = logger or structlog.get_logger(__name__)
        self.client = client or PrometheusClient(settings=self.settings, logger=self._log)

        self.server: Server = Server(
            SERVER_NAME,
            version=__version__,
            instructions=SERVER_INSTRUCTIONS,
        )
        self.server.list_tools()(self.list_tools)
        self.server.call_tool(validate_input=False)(self.call_tool)
        self.server.list_prompts()(self.list_prompts)
        self.server.get_prompt()(self.get_prompt)

    # ==========================================================================
    # Handlers
    # ==========================================================================

    async def list_tools(self) -> list[types.Tool]:
        return [GET_SERIES_TOOL]

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None
    ) -> list[types.TextContent]:
        """
        Dispatch a tool call.

        Errors are raised rather than returned; the MCP runtime turns them into
        a result with ``isError`` set and the error message as its text.
        """
        if name == GET_SERIES_TOOL_NAME:
            return await get_series(self.client, arguments, logger=self._log)
        raise UnknownCapabilityError(f"Unknown tool: {name}")

    async def list_prompts(self) -> list[types.Prompt]:
        return [GENERATE_PROMQL_PROMPT, GENERATE_DASHBOARD_PROMPT]

    async def get_prompt(
        self, name: str, arguments: dict[str, str] | None
    ) -> types.GetPromptResult:
        if name == GENERATE_PROMQL_PROMPT_NAME:
            return build_query_prompt(self.client.base_url, arguments)
        if name == GENERATE_DASHBOARD_PROMPT_NAME:
            return build_dashboard_prompt(arguments)
        raise UnknownCapabilityError(f"Unknown prompt: {name}")

    # ==========================================================================
    # Supervisor
    # ==========================================================================

    def create_transport(self) -> Transport:
        """Pick the transport selected by configuration."""
        if self.settings.stdio:
            return StdioTransport(self.server, logger=self._log)
        return StreamableHTTPTransport(
            self.server,
            host=self.settings.host,
            port=self.settings.port,
            logger=self._log,
        )

    def _install_signal_handlers(
        self, loop: asyncio.AbstractEventLoop, stop: asyncio.Event
    ) -> list[signal.Signals]:
        installed = []
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, stop.set)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread;
                # KeyboardInterrupt still reaches the caller.
                continue
            installed.append(sig)
        return installed

    async def run(
        self,
        transport: Transport | None = None,
        stop: asyncio.Event | None = None,
        handle_signals: bool = True,
    ) -> None:
        """
        Serve until the transport closes or a shutdown is requested.

        Args:
            transport: Transport to serve. Chosen from settings if not provided.
            stop: Event that requests a graceful shutdown when set.
            handle_signals: Set ``stop`` on SIGINT and SIGTERM.

        Raises:
            StartupError: If the client or the transport cannot be started
            TransportError: If the transport stops with an error
        """
        if transport is None:
            transport = self.create_transport()
        if stop is None:
            stop = asyncio.Event()
        loop = asyncio.get_running_loop()

        try:
            await self.client.connect()
        except Exception as e:
            self._log.error("Error creating Prometheus client", error=str(e))
            raise StartupError(f"Error creating Prometheus client: {e}") from e

        installed = self._install_signal_handlers(loop, stop) if handle_signals else []
        serve_task = asyncio.create_task(transport.serve(), name=f"mcp-{transport.name}")
        stop_task = asyncio.create_task(stop.wait(), name="mcp-stop")

        try:
            await asyncio.wait(
                {serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )

            if serve_task.done():
                self._raise_for_serve(serve_task)
                self._log.info("Transport closed", transport=transport.name)
                return

            self._log.info("Shutdown requested", transport=transport.name)
            await self._shutdown(transport, serve_task)
        finally:
            stop_task.cancel()
            if not serve_task.done():
                serve_task.cancel()
                await asyncio.wait({serve_task}, timeout=self.settings.shutdown_timeout)
            if not serve_task.done():
                self._log.warning(
                    "Transport did not finish after cancellation",
                    transport=transport.name,
                )
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self.client.close()

    def _raise_for_serve(self, serve_task: asyncio.Task) -> None:
        if serve_task.cancelled():
            return
        error = serve_task.exception()
        if error is None:
            return
        self._log.error("Transport failed", error=str(error))
        if isinstance(error, PromQLMCPError):
            raise error
        raise TransportError(f"Transport failed: {error}") from error

    async def _stop_transport(self, transport: Transport, timeout: float) -> None:
        """
        Ask the transport to stop accepting work.

        Raises:
            ShutdownError: If the transport fails or does not answer in time
        """
        try:
            await asyncio.wait_for(transport.shutdown(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ShutdownError(
                f"{transport.name} transport did not shut down within {timeout}s"
            ) from e
        except Exception as e:
            raise ShutdownError(
                f"Error shutting down {transport.name} transport: {e}"
            ) from e

    async def _shutdown(self, transport: Transport, serve_task: asyncio.Task) -> None:
        # Stopping the transport and draining the serve task share one grace period.
        loop = asyncio.get_running_loop()
        grace = self.settings.shutdown_timeout
        deadline = loop.time() + grace

        try:
            await self._stop_transport(transport, timeout=grace)
        except ShutdownError as e:
            self._log.error("Shutdown failed", error=str(e), exc_info=True)

        remaining = max(deadline - loop.time(), 0)
        done, _ = await asyncio.wait({serve_task}, timeout=remaining)
        if not done:
            self._log.warning("Transport did not stop in time, cancelling", grace=grace)
            return
        if not serve_task.cancelled() and serve_task.exception() is not None:
            self._log.error(
                "Transport failed while shutting down",
                error=str(serve_task.exception()),
            )

        self._log.info("Server stopped", transport=transport.name)


def create_server(
    settings: Settings | None = None,
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> PromQLServer:
    """Create a new PromQL MCP server instance."""
    return PromQLServer(settings=settings, logger=logger)


if __name__ == "__main__":
    asyncio.run(create_server().run())
