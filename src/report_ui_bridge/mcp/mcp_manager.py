import asyncio
import os
from typing import Any

from loguru import logger
from mcp import ClientSession, StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamable_http_client

from report_ui_bridge.mcp.mcp_tool_host import McpToolHost

_SHUTDOWN_TIMEOUT = 5.0


class _ServerConnection:
    """Holds a running server's session and shutdown control."""

    def __init__(self, name: str, host: McpToolHost):
        self.name = name
        self.tool_names: list[str] = []
        self._host = host
        self._ready = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._error: Exception | None = None

    async def wait_ready(self) -> None:
        await self._ready.wait()
        if self._error:
            raise self._error

    async def _serve(self, session: ClientSession) -> None:
        await session.initialize()
        tools_result = await session.list_tools()
        self.tool_names = [
            tool.name for tool in tools_result.tools if self._host.register(self.name, tool.name, session)
        ]
        self._ready.set()
        await self._shutdown.wait()

    async def _run_stdio(self, config: dict[str, Any]) -> None:
        # Per-server env entries override the parent environment (including .env values)
        merged_env = dict(os.environ)
        merged_env.update(config.get("env") or {})
        async with stdio_client(StdioServerParameters(
            command=config["command"],
            args=config.get("args", []),
            env=merged_env,
        )) as (read_stream, write_stream):
            async with ClientSession(read_stream, write_stream) as session:
                await self._serve(session)

    async def _run_http(self, config: dict[str, Any]) -> None:
        async with streamable_http_client(config["url"]) as (read_stream, write_stream, _):
            async with ClientSession(read_stream, write_stream) as session:
                await self._serve(session)

    async def start(self, config: dict[str, Any]) -> None:
        transport = config.get("transport", "stdio")

        async def _run():
            try:
                if transport == "stdio":
                    await self._run_stdio(config)
                elif transport == "http":
                    await self._run_http(config)
                else:
                    raise ValueError(f"Unknown transport '{transport}'")
            except Exception as ex:
                self._error = ex
                self._ready.set()
            finally:
                self._host.unregister_server(self.name)

        self._task = asyncio.create_task(_run())

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        # stdio_client's anyio task group may ignore a bare asyncio cancel
        self._shutdown.set()
        self._task.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=_SHUTDOWN_TIMEOUT)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass


class McpManager:
    """Connects the configured MCP servers and exposes their tools through one McpToolHost."""

    def __init__(self, server_configs: dict[str, dict[str, Any]], host: McpToolHost | None = None):
        self._server_configs = server_configs
        self._connections: list[_ServerConnection] = []
        self.host = host or McpToolHost()

    async def connect_all(self) -> McpToolHost:
        for server_name, config in self._server_configs.items():
            conn = _ServerConnection(server_name, self.host)
            self._connections.append(conn)

            try:
                await conn.start(config)
                await conn.wait_ready()
                logger.info(f"MCP server '{server_name}': {len(conn.tool_names)} tool(s) registered")
            except Exception as ex:
                logger.error(f"Failed to connect to MCP server '{server_name}': {ex}")

        return self.host

    async def close(self) -> None:
        for conn in self._connections:
            logger.debug(f"Shutting down MCP server '{conn.name}'...")
            try:
                await conn.stop()
                logger.debug(f"MCP server '{conn.name}' shut down")
            except Exception as ex:
                logger.warning(f"MCP server '{conn.name}' shutdown error: {ex}")
        self._connections.clear()
