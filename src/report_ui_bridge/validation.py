from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from report_ui_bridge.actions import TOAST_TYPES, ActionKind, UIAction


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _set_field_ok(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("field"), str) and payload.get("value") is not None


def _set_fields_ok(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("fields"), Mapping)


def _show_toast_ok(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("message"), str) and payload.get("type") in TOAST_TYPES


def _highlight_field_ok(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("field"), str) and isinstance(payload.get("message"), str)


_PAYLOAD_RULES: dict[ActionKind, Callable[[Mapping[str, Any]], bool]] = {
    ActionKind.SET_FIELD: _set_field_ok,
    ActionKind.SET_FIELDS: _set_fields_ok,
    ActionKind.SHOW_TOAST: _show_toast_ok,
    ActionKind.HIGHLIGHT_FIELD: _highlight_field_ok,
}


def coerce_action(raw: object) -> UIAction | None:
    """Accept a UIAction or a wire-shaped mapping ({type, payload, timestamp})."""
    if isinstance(raw, UIAction):
        return raw
    if isinstance(raw, Mapping):
        return UIAction(
            kind=raw.get("type", ""),
            payload=raw.get("payload"),
            timestamp=raw.get("timestamp"),
            sequence=raw.get("sequence") or 0,
        )
    return None


def validate_action(action: UIAction) -> bool:
    if not action.kind:
        return False
    kind = ActionKind.parse(action.kind)
    if kind is None:
        return False
    if not isinstance(action.payload, Mapping) or not _is_number(action.timestamp):
        return False
    rule = _PAYLOAD_RULES.get(kind)
    return rule is None or rule(action.payload)
