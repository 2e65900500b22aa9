from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from report_ui_bridge.errors import ToolNotFoundError

ToolCallable = Callable[[dict[str, Any]], Awaitable[Any]]


@runtime_checkable
class ReportTool(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    async def execute(self, params: dict[str, Any]) -> Any: ...


class LocalToolHost:
    """Exposes in-process ReportTool objects by name."""

    def __init__(self, tools: list[ReportTool] | None = None):
        self._tools: dict[str, ReportTool] = {t.name: t for t in tools or []}

    def add(self, tool: ReportTool) -> None:
        self._tools[tool.name] = tool

    @property
    def tool_names(self) -> list[str]:
        return sorted(self._tools)

    def get_tool(self, name: str) -> ToolCallable | None:
        tool = self._tools.get(name)
        return tool.execute if tool is not None else None


def resolve_tool(tool_host: Any, name: str) -> ToolCallable:
    """Find the callable for a tool on a host object, mapping or get_tool() provider."""
    get_tool = getattr(tool_host, "get_tool", None)
    if callable(get_tool):
        candidate = get_tool(name)
    elif isinstance(tool_host, dict):
        candidate = tool_host.get(name)
    else:
        candidate = None if name.startswith("_") else getattr(tool_host, name, None)

    if not callable(candidate):
        raise ToolNotFoundError(name)
    return candidate
