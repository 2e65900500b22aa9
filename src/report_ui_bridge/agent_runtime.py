from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class AgentRuntime(Protocol):
    async def run(self, message: str) -> Any: ...


@dataclass(frozen=True)
class ToolCallRecord:
    tool: str
    result: Any


@dataclass
class AgentResult:
    text: str | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> AgentResult:
        """Read text and tool calls from a dict-shaped or attribute-shaped run result."""
        if isinstance(raw, AgentResult):
            return raw
        if isinstance(raw, Mapping):
            text = raw.get("text")
            calls = raw.get("tool_calls", raw.get("toolCalls"))
        else:
            text = getattr(raw, "text", None)
            calls = getattr(raw, "tool_calls", None)

        records: list[ToolCallRecord] = []
        for call in calls if isinstance(calls, list) else []:
            if isinstance(call, ToolCallRecord):
                records.append(call)
            elif isinstance(call, Mapping) and call.get("tool") and call.get("result") is not None:
                records.append(ToolCallRecord(tool=str(call["tool"]), result=call["result"]))

        return cls(text=text if isinstance(text, str) else None, tool_calls=records)
