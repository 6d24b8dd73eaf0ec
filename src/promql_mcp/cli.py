"""
Command-line interface for the PromQL MCP server.

Serves over stdio or streamable HTTP, and offers a couple of helper commands.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from promql_mcp import __version__
from promql_mcp.config import (
    AuthType,
    LogFormat,
    LogLevel,
    Settings,
    clear_settings_cache,
    load_settings,
    parse_log_level,
)
from promql_mcp.exceptions import BackendError, ConfigurationError, PromQLMCPError
from promql_mcp.prompts import GENERATE_DASHBOARD_PROMPT, GENERATE_PROMQL_PROMPT
from promql_mcp.server import create_server
from promql_mcp.tools import GET_SERIES_TOOL

# stdout carries the MCP stream in stdio mode.
console = Console(stderr=True)


def setup_logging(level: LogLevel, format: LogFormat) -> structlog.stdlib.BoundLogger:
    """Configure structlog for the application and return the root logger."""
    logging.basicConfig(
        format="%(message)s",
        level=level.logging_level,
        stream=sys.stderr,
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if format == LogFormat.JSON:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("promql_mcp")


def print_banner() -> None:
    """Print the startup banner."""
    banner = """
[bold blue]PromQL MCP Server[/bold blue]
[dim]Model Context Protocol server for generating PromQL[/dim]
    """
    console.print(Panel(banner, border_style="blue"))


def print_config(settings: Settings) -> None:
    """Print current configuration."""
    table = Table(title="Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("API URL", settings.api_url)
    table.add_row("Transport", "stdio" if settings.stdio else "streamable-http")
    table.add_row("Auth Type", settings.auth_type.value)
    table.add_row("TLS Verify", str(settings.tls_verify))
    table.add_row("Log Level", settings.log_level.value)

    if not settings.stdio:
        table.add_row("MCP Endpoint", settings.mcp_url)

    console.print(table)
    console.print()


def auth_options(func):
    """Shared options for connecting to the Prometheus-compatible API."""
    options = [
        click.option(
            "--api-url",
            envvar="PROMQL_MCP_API_URL",
            default="http://localhost:9090",
            show_default=True,
            help="The Prometheus-compatible API URL",
        ),
        click.option(
            "--auth-type",
            envvar="PROMQL_MCP_AUTH_TYPE",
            type=click.Choice([a.value for a in AuthType]),
            default=AuthType.NONE.value,
            help="Authentication type",
        ),
        click.option(
            "--auth-username",
            envvar="PROMQL_MCP_AUTH_USERNAME",
            help="Username for basic auth",
        ),
        click.option(
            "--auth-password",
            envvar="PROMQL_MCP_AUTH_PASSWORD",
            help="Password for basic auth",
        ),
        click.option(
            "--auth-token",
            envvar="PROMQL_MCP_AUTH_TOKEN",
            help="Token for bearer auth",
        ),
        click.option(
            "--no-tls-verify",
            is_flag=True,
            help="Disable TLS certificate verification",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(invoke_without_command=True)
@auth_options
@click.option(
    "--stdio",
    envvar="PROMQL_MCP_STDIO",
    is_flag=True,
    help="Use stdio transport instead of streamable HTTP",
)
@click.option(
    "--host",
    envvar="PROMQL_MCP_HOST",
    default="0.0.0.0",
    show_default=True,
    help="Host for the streamable HTTP listener",
)
@click.option(
    "--port",
    envvar="PROMQL_MCP_PORT",
    type=int,
    default=8080,
    show_default=True,
    help="Port for the streamable HTTP listener",
)
@click.option(
    "--log-level",
    envvar="PROMQL_MCP_LOG_LEVEL",
    default=LogLevel.INFO.value,
    show_default=True,
    help="Log level (debug, info, warn, error); unknown values mean info",
)
@click.option(
    "--log-format",
    envvar="PROMQL_MCP_LOG_FORMAT",
    type=click.Choice([f.value for f in LogFormat]),
    default=LogFormat.TEXT.value,
    show_default=True,
    help="Log format",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress banner and config output",
)
@click.version_option(version=__version__, prog_name="promql-mcp")
@click.pass_context
def main(
    ctx: click.Context,
    api_url: str,
    auth_type: str,
    auth_username: Optional[str],
    auth_password: Optional[str],
    auth_token: Optional[str],
    no_tls_verify: bool,
    stdio: bool,
    host: str,
    port: int,
    log_level: str,
    log_format: str,
    quiet: bool,
) -> None:
    """
    PromQL MCP Server - helps AI agents write PromQL.

    Exposes the prometheus_get_series tool and the prometheus_generate_promql
    and perses_generate_dashboard prompts.

    \b
    Examples:
      # Run with stdio (for MCP clients like Claude Desktop)
      promql-mcp --stdio --api-url http://prometheus:9090

      # Run as a streamable HTTP server on :8080
      promql-mcp --api-url http://prometheus:9090

      # With bearer authentication
      promql-mcp --auth-type bearer --auth-token "$TOKEN"
    """
    if ctx.invoked_subcommand is not None:
        return

    clear_settings_cache()

    try:
        settings = load_settings(
            api_url=api_url,
            auth_type=AuthType(auth_type),
            auth_username=auth_username,
            auth_password=auth_password,
            auth_token=auth_token,
            tls_verify=not no_tls_verify,
            stdio=stdio,
            host=host,
            port=port,
            log_level=parse_log_level(log_level),
            log_format=LogFormat(log_format),
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    log = setup_logging(settings.log_level, settings.log_format)
    log.info("Prometheus-compatible API URL configured", url=settings.api_url)
    log.info("Log level set", level=settings.log_level.value)

    if not quiet and not settings.stdio:
        print_banner()
        print_config(settings)

    server = create_server(settings, logger=log)

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        if not quiet:
            console.print("\n[yellow]Shutting down...[/yellow]")
    except PromQLMCPError as e:
        log.error("Server stopped with error", error=str(e))
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except Exception as e:
        log.exception("Unexpected server error")
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@main.command()
@auth_options
@click.option(
    "--match",
    default="up",
    show_default=True,
    help="Series selector to look up",
)
def check(
    api_url: str,
    auth_type: str,
    auth_username: Optional[str],
    auth_password: Optional[str],
    auth_token: Optional[str],
    no_tls_verify: bool,
    match: str,
) -> None:
    """Check that the API answers a series lookup."""
    from promql_mcp.client import PrometheusClient

    console.print(f"[cyan]Checking connection to:[/cyan] {api_url}")

    try:
        settings = load_settings(
            api_url=api_url,
            auth_type=AuthType(auth_type),
            auth_username=auth_username,
            auth_password=auth_password,
            auth_token=auth_token,
            tls_verify=not no_tls_verify,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    async def do_check() -> None:
        end = datetime.now(timezone.utc)
        async with PrometheusClient(settings=settings) as client:
            label_sets, warnings = await client.series(
                [match], start=end - timedelta(hours=1), end=end, timeout=10.0
            )

        console.print(f"[green]✓[/green] Series lookup passed ({len(label_sets)} series)")
        for warning in warnings:
            console.print(f"[yellow]![/yellow] {warning}")

    try:
        asyncio.run(do_check())
    except BackendError as e:
        console.print(f"\n[red]Connection failed:[/red] {e}")
        sys.exit(1)

    console.print("\n[green]Connection successful![/green]")


@main.command()
def tools() -> None:
    """List the tools and prompts this server registers."""
    table = Table(title="Available Tools", show_header=True)
    table.add_column("Tool", style="cyan", width=30)
    table.add_column("Arguments", style="white")

    args = ", ".join(GET_SERIES_TOOL.inputSchema.get("required", []))
    table.add_row(GET_SERIES_TOOL.name, args)
    console.print(table)
    console.print()

    prompt_table = Table(title="Available Prompts", show_header=True)
    prompt_table.add_column("Prompt", style="cyan", width=30)
    prompt_table.add_column("Arguments", style="white")

    for prompt in (GENERATE_PROMQL_PROMPT, GENERATE_DASHBOARD_PROMPT):
        prompt_table.add_row(
            prompt.name, ", ".join(arg.name for arg in prompt.arguments or [])
        )

    console.print(prompt_table)


if __name__ == "__main__":
    main()
