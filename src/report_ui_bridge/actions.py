from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionKind(str, Enum):
    SET_FIELD = "set_field"
    SET_FIELDS = "set_fields"
    OPEN_PANEL = "open_panel"
    HIGHLIGHT_FIELD = "highlight_field"
    SHOW_TOAST = "show_toast"
    START_PDF_RENDER = "start_pdf_render"
    UPDATE_PROGRESS = "update_progress"
    END_PDF_RENDER = "end_pdf_render"
    INSERT_LAW_CITATION = "insert_law_citation"
    ADD_ISSUE = "add_issue"
    FOCUS = "focus"

    @classmethod
    def parse(cls, value: object) -> ActionKind | None:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ToastType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


TOAST_TYPES = frozenset(t.value for t in ToastType)

SUCCESS_TOAST_MS = 3000
ERROR_TOAST_MS = 5000
START_TOAST_MS = 2000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class UIAction:
    kind: ActionKind | str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: int | float = field(default_factory=now_ms)
    sequence: int = 0

    @property
    def kind_name(self) -> str:
        return self.kind.value if isinstance(self.kind, ActionKind) else str(self.kind)

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.kind_name,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "sequence": self.sequence,
        }


def show_toast(message: str, toast_type: ToastType = ToastType.SUCCESS, duration: int | None = None) -> UIAction:
    if duration is None:
        duration = ERROR_TOAST_MS if toast_type is ToastType.ERROR else SUCCESS_TOAST_MS
    return UIAction(
        ActionKind.SHOW_TOAST,
        {"message": message, "type": toast_type.value, "duration": duration},
    )


def set_field(field_name: str, value: Any, **extra: Any) -> UIAction:
    return UIAction(ActionKind.SET_FIELD, {"field": field_name, "value": value, **extra})


def set_fields(fields: dict[str, Any], source: str) -> UIAction:
    return UIAction(ActionKind.SET_FIELDS, {"fields": fields, "source": source, "timestamp": now_ms()})


def highlight_field(field_name: str, message: str, duration: int = ERROR_TOAST_MS) -> UIAction:
    return UIAction(
        ActionKind.HIGHLIGHT_FIELD,
        {"field": field_name, "message": message, "type": ToastType.ERROR.value, "duration": duration},
    )


def open_panel(panel: str, title: str, **content: Any) -> UIAction:
    return UIAction(ActionKind.OPEN_PANEL, {"panel": panel, "title": title, **content})


def start_pdf_render(message: str) -> UIAction:
    return UIAction(ActionKind.START_PDF_RENDER, {"message": message, "progress": 0})


def update_progress(progress: int, message: str) -> UIAction:
    return UIAction(ActionKind.UPDATE_PROGRESS, {"progress": progress, "message": message})


def end_pdf_render(url: str, filename: str | None, message: str) -> UIAction:
    # downloadUrl/lawName keep the key names the browser client reads
    return UIAction(
        ActionKind.END_PDF_RENDER,
        {"url": url, "filename": filename, "message": message, "downloadUrl": url},
    )


def insert_law_citation(law_name: str, content: str, source: Any = None, article: Any = None) -> UIAction:
    return UIAction(
        ActionKind.INSERT_LAW_CITATION,
        {"lawName": law_name, "content": content, "source": source, "article": article},
    )
