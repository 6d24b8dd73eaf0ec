"""
MCP transports.

Each transport is a servable: ``serve()`` runs until the transport closes or
the task is cancelled, ``shutdown()`` asks it to stop accepting work.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import stat
import sys
from typing import AsyncIterator, BinaryIO, Generator, Optional, Protocol

import anyio
import structlog
import uvicorn
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.routing import Mount
from starlette.types import Receive, Scope, Send

from promql_mcp.exceptions import StartupError

# MCP messages are one JSON document per line.
STDIN_LINE_LIMIT = 16 * 1024 * 1024


class Transport(Protocol):
    """Something the supervisor can serve and shut down."""

    name: str

    async def serve(self) -> None: ...

    async def shutdown(self) -> None: ...


class PipeLineReader:
    """
    Line iterator over a pipe registered with the event loop.

    ``stdio_server()`` reads stdin on a worker thread by default, and that read
    cannot be cancelled while the client keeps the pipe open. Reading through
    ``loop.connect_read_pipe`` instead lets a shutdown cancel the session.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        transport: asyncio.ReadTransport,
    ) -> None:
        self._reader = reader
        self._transport = transport

    @classmethod
    async def open(cls, source: BinaryIO) -> Optional["PipeLineReader"]:
        """
        Attach to ``source`` if it is a pipe or socket.

        Returns None for anything else (a terminal, a regular file), which
        leaves reading to the runtime's default stdin reader. The descriptor
        is duplicated so closing the reader leaves ``source`` open.
        """
        try:
            fd = source.fileno()
            mode = os.fstat(fd).st_mode
        except (AttributeError, OSError, ValueError):
            return None
        if not (stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode)):
            return None

        loop = asyncio.get_running_loop()
        pipe = os.fdopen(os.dup(fd), "rb", buffering=0)
        reader = asyncio.StreamReader(limit=STDIN_LINE_LIMIT)
        try:
            transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), pipe
            )
        except (NotImplementedError, OSError, ValueError):
            pipe.close()
            return None
        return cls(reader, transport)

    def __aiter__(self) -> "PipeLineReader":
        return self

    async def __anext__(self) -> str:
        line = await self._reader.readline()
        if not line:
            raise StopAsyncIteration
        return line.decode("utf-8", errors="replace")

    def close(self) -> None:
        self._transport.close()


class StdioTransport:
    """Serve a single MCP session over stdin/stdout."""

    name = "stdio"

    def __init__(
        self,
        server: Server,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[anyio.AsyncFile[str]] = None,
    ) -> None:
        self.server = server
        self._log = (logger or structlog.get_logger(__name__)).bind(transport=self.name)
        self._stdin = stdin
        self._stdout = stdout
        self._task: Optional[asyncio.Task] = None

    async def serve(self) -> None:
        self._task = asyncio.current_task()
        source = self._stdin if self._stdin is not None else sys.stdin.buffer
        stdin = await PipeLineReader.open(source)
        if stdin is None:
            self._log.debug("stdin is not a pipe, using the default reader")

        self._log.info("Starting PromQL MCP server using stdio transport")
        try:
            async with stdio_server(stdin=stdin, stdout=self._stdout) as (
                read_stream,
                write_stream,
            ):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            if stdin is not None:
                stdin.close()
        self._log.info("stdio transport closed")

    async def shutdown(self) -> None:
        # A stdio session has nothing to drain.
        if self._task is not None and not self._task.done():
            self._task.cancel()


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the supervisor."""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


class StreamableHTTPTransport:
    """Serve MCP over streamable HTTP at ``/mcp``."""

    name = "streamable-http"

    def __init__(
        self,
        server: Server,
        host: str,
        port: int,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ) -> None:
        self.server = server
        self.host = host
        self.port = port
        self._log = (logger or structlog.get_logger(__name__)).bind(
            transport=self.name, host=host, port=port
        )
        self._listener: Optional[_ListenerServer] = None
        self._stopping = False

    def build_app(self) -> Starlette:
        """Build the ASGI app; a fresh session manager is needed per run."""
        session_manager = StreamableHTTPSessionManager(app=self.server)

        async def handle_mcp(scope: Scope, receive: Receive, send: Send) -> None:
            await session_manager.handle_request(scope, receive, send)

        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> AsyncIterator[None]:
            async with session_manager.run():
                yield

        return Starlette(routes=[Mount("/mcp", app=handle_mcp)], lifespan=lifespan)

    async def serve(self) -> None:
        config = uvicorn.Config(
            self.build_app(),
            host=self.host,
            port=self.port,
            log_config=None,
            lifespan="on",
        )
        self._listener = _ListenerServer(config)

        self._log.info("Starting PromQL MCP server using streamable HTTP transport")
        try:
            await self._listener.serve()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind or start up.
            raise StartupError(
                f"Could not start HTTP listener on {self.host}:{self.port}"
            ) from e

        if not self._listener.started and not self._stopping:
            raise StartupError(f"HTTP listener on {self.host}:{self.port} failed to start")
        self._log.info("HTTP listener stopped")

    async def shutdown(self) -> None:
        self._stopping = True
        if self._listener is None:
            return
        self._log.info("Shutting down HTTP listener")
        self._listener.should_exit = True

    def __repr__(self) -> str:
        return f"StreamableHTTPTransport(host={self.host!r}, port={self.port!r})"
