"""Actions re-derived from tool calls an agent reports in its run result.

These cover tool calls that never went through the invocation wrapper, so
only the state-changing part of each result is replayed (no progress or
toast chatter for the known tools).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from report_ui_bridge.actions import UIAction, end_pdf_render, highlight_field, set_fields, show_toast
from report_ui_bridge.translation.tool_results import ToolKind, as_mapping


def _fill_report(tool: str, result: Mapping[str, Any]) -> list[UIAction]:
    data = result.get("data")
    if not isinstance(data, Mapping) or not data:
        return []
    return [set_fields(dict(data), source=f"agent_{tool}")]


def _validate_report(tool: str, result: Mapping[str, Any]) -> list[UIAction]:
    errors = result.get("errors")
    if result.get("valid") is not False or not isinstance(errors, list):
        return []
    return [
        highlight_field(str(error["field"]), str(error.get("message", "")))
        for error in errors
        if isinstance(error, Mapping) and error.get("field")
    ]


def _render_pdf(tool: str, result: Mapping[str, Any]) -> list[UIAction]:
    if not result.get("url"):
        return []
    return [end_pdf_render(result["url"], result.get("filename"), "PDF generation completed.")]


def _completed_toast(tool: str, result: Mapping[str, Any]) -> list[UIAction]:
    return [show_toast(f"{tool} completed.")]


_DERIVATIONS: dict[ToolKind, Callable[[str, Mapping[str, Any]], list[UIAction]]] = {
    ToolKind.FILL_REPORT: _fill_report,
    ToolKind.VALIDATE_REPORT: _validate_report,
    ToolKind.RENDER_PDF: _render_pdf,
    ToolKind.LAW_CONTENT: _completed_toast,
    ToolKind.WEB_SNAPSHOT: _completed_toast,
    ToolKind.UPLOAD_IMAGE: _completed_toast,
    ToolKind.GENERIC: _completed_toast,
}


def derive_tool_call_actions(tool: str, result: Any) -> list[UIAction]:
    try:
        return _DERIVATIONS[ToolKind.for_tool(tool)](tool, as_mapping(result))
    except Exception as ex:
        logger.error(f"Could not derive UI actions from agent tool call {tool}: {ex}")
        return []
