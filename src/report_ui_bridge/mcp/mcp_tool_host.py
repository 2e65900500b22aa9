import json
from typing import Any

from loguru import logger
from mcp import ClientSession
from mcp.types import TextContent


def decode_tool_output(result: Any) -> Any:
    """Turn an MCP CallToolResult into the plain value the UI translators expect."""
    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        return structured
    text_parts = [block.text for block in result.content if isinstance(block, TextContent)]
    output = "\n".join(text_parts)
    if not output:
        return {}
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        return {"text": output}


class McpToolHost:
    """Tool host that routes tool names to the MCP sessions that advertise them."""

    def __init__(self):
        self._routes: dict[str, tuple[str, ClientSession]] = {}
        self._sessions: dict[str, ClientSession] = {}

    def register(self, server_name: str, tool_name: str, session: ClientSession) -> bool:
        existing = self._routes.get(tool_name)
        if existing is not None and existing[0] != server_name:
            logger.warning(
                f"MCP tool '{tool_name}' from '{server_name}' shadowed by server '{existing[0]}'"
            )
            return False
        self._routes[tool_name] = (server_name, session)
        self._sessions[server_name] = session
        return True

    def unregister_server(self, server_name: str) -> None:
        self._routes = {name: route for name, route in self._routes.items() if route[0] != server_name}
        self._sessions.pop(server_name, None)

    @property
    def tool_names(self) -> list[str]:
        return sorted(self._routes)

    def get_tool(self, name: str):
        route = self._routes.get(name)
        if route is None:
            return None
        server_name, session = route

        async def call(params: dict[str, Any]) -> Any:
            return await self._call(server_name, session, name, params)

        return call

    async def health_check(self) -> bool:
        for server_name, session in self._sessions.items():
            await session.send_ping()
            logger.debug(f"MCP server '{server_name}' answered ping")
        return True

    async def _call(self, server_name: str, session: ClientSession, tool_name: str, params: dict[str, Any]) -> Any:
        logger.debug(
            "MCP tool call: {server}/{name} | input: {input}",
            server=server_name,
            name=tool_name,
            input=json.dumps(params, default=str),
        )
        result = await session.call_tool(tool_name, arguments=params)
        if result.isError:
            text_parts = [block.text for block in result.content if isinstance(block, TextContent)]
            output = "\n".join(text_parts) or "(no output)"
            logger.warning("MCP tool error: {name} | result: {output}", name=tool_name, output=output[:500])
            raise RuntimeError(output)
        value = decode_tool_output(result)
        logger.debug("MCP tool result: {name} | type={kind}", name=tool_name, kind=type(value).__name__)
        return value
