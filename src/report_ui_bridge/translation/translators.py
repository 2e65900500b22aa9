from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import fields, replace
from typing import Any

from loguru import logger

from report_ui_bridge.actions import (
    ToastType,
    UIAction,
    end_pdf_render,
    highlight_field,
    insert_law_citation,
    open_panel,
    set_field,
    set_fields,
    show_toast,
    start_pdf_render,
    update_progress,
)
from report_ui_bridge.translation.tool_results import ToolKind, ToolResult, TranslationContext, as_mapping

IMAGE_FIELD = "safety_photo"

_CONTEXT_FIELDS = {f.name for f in fields(TranslationContext)} - {"session_id"}

# (result, tool name, context) -> actions
Handler = Callable[[Mapping[str, Any], str, TranslationContext], list[UIAction]]


def _fill_report(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    data = result.get("data")
    actions: list[UIAction] = []
    if isinstance(data, Mapping):
        actions.append(set_fields(dict(data), source=tool))
    actions.append(show_toast("Report fields were filled in automatically."))
    if data:
        actions.append(open_panel("preview", "Report preview", data=data))
    return actions


def _validate_report(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    if result.get("valid"):
        return [show_toast("Report data is valid.")]

    errors = result.get("errors")
    errors = errors if isinstance(errors, list) else []
    actions = [
        highlight_field(str(error["field"]), str(error.get("message", "")))
        for error in errors
        if isinstance(error, Mapping) and error.get("field")
    ]
    actions.append(show_toast(f"Validation failed: {len(errors)} error(s) found.", ToastType.ERROR))
    return actions


def _render_pdf(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    actions = [
        start_pdf_render("Generating PDF..."),
        update_progress(50, "Injecting data into the template..."),
    ]
    if result.get("url"):
        actions.append(end_pdf_render(result["url"], result.get("filename"), "PDF generation completed."))
    return actions


def _law_content(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    content = result.get("content")
    if not content:
        return []
    return [
        insert_law_citation(
            result.get("law_name") or "Related law",
            content,
            source=result.get("source"),
            article=result.get("article"),
        ),
        show_toast("Law content was inserted."),
    ]


def _web_snapshot(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    summary = result.get("summary")
    if not summary:
        return []
    return [
        insert_law_citation("Web snapshot", summary, source=result.get("url"), article="Web page summary"),
        show_toast("Web page summary was inserted."),
    ]


def _upload_image(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    url = result.get("url")
    if not url:
        return []
    metadata = {key: result.get(key) for key in ("width", "height", "format", "size")}
    return [
        set_field(IMAGE_FIELD, url, type="image", metadata=metadata),
        show_toast("Image was uploaded."),
    ]


def _generic(result: Mapping[str, Any], tool: str, context: TranslationContext) -> list[UIAction]:
    return [show_toast(f"{tool} completed.")]


HANDLERS: dict[ToolKind, Handler] = {
    ToolKind.FILL_REPORT: _fill_report,
    ToolKind.VALIDATE_REPORT: _validate_report,
    ToolKind.RENDER_PDF: _render_pdf,
    ToolKind.LAW_CONTENT: _law_content,
    ToolKind.WEB_SNAPSHOT: _web_snapshot,
    ToolKind.UPLOAD_IMAGE: _upload_image,
    ToolKind.GENERIC: _generic,
}


def error_actions(tool: str, error: str | None) -> list[UIAction]:
    return [show_toast(f"{tool} failed: {error or 'Unknown error'}", ToastType.ERROR)]


class ResultTranslator:
    """Maps tool results to UI actions for one UI session."""

    def __init__(self, context: TranslationContext):
        self._context = context

    @property
    def context(self) -> TranslationContext:
        return self._context

    def update_context(self, **patch: Any) -> None:
        unknown = set(patch) - _CONTEXT_FIELDS
        if unknown:
            logger.warning(f"Ignoring unknown translation context key(s): {', '.join(sorted(unknown))}")
        self._context = replace(self._context, **{k: v for k, v in patch.items() if k in _CONTEXT_FIELDS})

    def translate(self, tool_result: ToolResult | Mapping[str, Any]) -> list[UIAction]:
        try:
            tool_result = ToolResult.coerce(tool_result)
            if not tool_result.success:
                return error_actions(tool_result.tool, tool_result.error)
            handler = HANDLERS[ToolKind.for_tool(tool_result.tool)]
            return handler(as_mapping(tool_result.result), tool_result.tool, self._context)
        except Exception as ex:
            logger.error(f"Tool result translation failed for session {self._context.session_id}: {ex}")
            return []
