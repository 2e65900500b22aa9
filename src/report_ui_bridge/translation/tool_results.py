from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from report_ui_bridge.actions import UIAction


class ToolKind(str, Enum):
    FILL_REPORT = "fill_report"
    VALIDATE_REPORT = "validate_report_data"
    RENDER_PDF = "render_pdf"
    LAW_CONTENT = "get_law_content"
    WEB_SNAPSHOT = "web_snapshot"
    UPLOAD_IMAGE = "upload_image"
    GENERIC = "*"

    @classmethod
    def for_tool(cls, tool: str) -> ToolKind:
        try:
            kind = cls(tool)
        except ValueError:
            return cls.GENERIC
        return kind


@dataclass
class ToolResult:
    tool: str
    result: Any = None
    success: bool = True
    error: str | None = None

    @classmethod
    def coerce(cls, raw: ToolResult | Mapping[str, Any]) -> ToolResult:
        if isinstance(raw, ToolResult):
            return raw
        return cls(
            tool=str(raw.get("tool", "")),
            result=raw.get("result"),
            success=bool(raw.get("success", True)),
            error=raw.get("error"),
        )


@dataclass
class TranslationContext:
    session_id: str
    user_id: str | None = None
    current_form_data: Any = None
    previous_actions: list[UIAction] = field(default_factory=list)


def as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}
