from __future__ import annotations

import json
import time
from collections import Counter, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from loguru import logger

from report_ui_bridge.actions import ActionKind, UIAction
from report_ui_bridge.channel.socket_manager import TOOL_RESULT_EVENT, UI_ACTIONS_EVENT, ChannelManager
from report_ui_bridge.translation.tool_results import ToolResult, TranslationContext
from report_ui_bridge.translation.translators import ResultTranslator
from report_ui_bridge.validation import coerce_action, validate_action

LATENCY_SAMPLES = 100


@dataclass
class BridgeConfig:
    enabled: bool = True
    max_payload_size: int = 1024 * 1024
    enable_metrics: bool = True
    enable_logging: bool = True


@dataclass
class BridgeMetrics:
    tool_latency: dict[str, deque] = field(default_factory=dict)
    emit_count: Counter = field(default_factory=Counter)
    action_count: Counter = field(default_factory=Counter)
    action_drop_count: int = 0

    def record_latency(self, tool: str, latency_ms: float) -> None:
        self.tool_latency.setdefault(tool, deque(maxlen=LATENCY_SAMPLES)).append(latency_ms)

    def snapshot(self) -> dict[str, Any]:
        return {
            "toolLatency": {tool: list(samples) for tool, samples in self.tool_latency.items()},
            "emitCount": dict(self.emit_count),
            "actionCount": dict(self.action_count),
            "actionDropCount": self.action_drop_count,
        }


def payload_size(payload: Any) -> int:
    """Size in bytes of the JSON form of a payload."""
    return len(json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8"))


class UIBridge:
    """Validates, size-checks and forwards tool results and UI actions to the channel."""

    def __init__(self, channel: ChannelManager, config: BridgeConfig | None = None):
        self._channel = channel
        self._config = config or BridgeConfig()
        self._metrics = BridgeMetrics()
        self._translators: dict[str, ResultTranslator] = {}

    @property
    def channel(self) -> ChannelManager:
        return self._channel

    @property
    def config(self) -> BridgeConfig:
        return self._config

    async def emit_tool_result(self, session_id: str, tool: str, result: Any) -> bool:
        if not self._config.enabled:
            return False

        started = time.perf_counter()
        try:
            size = payload_size(result)
            if size > self._config.max_payload_size:
                logger.warning(f"Tool result payload too large: {size} > {self._config.max_payload_size} ({tool})")
                self._metrics.action_drop_count += 1
                return False

            delivered = await self._channel.emit_tool_result(session_id, tool, result)
        except Exception as ex:
            logger.error(f"Tool result bridge error for {session_id} -> {tool}: {ex}")
            self._metrics.action_drop_count += 1
            return False

        if delivered:
            self._record_emit(TOOL_RESULT_EVENT)
            if self._config.enable_metrics:
                self._metrics.record_latency(tool, (time.perf_counter() - started) * 1000)
            if self._config.enable_logging:
                logger.info(f"Tool result bridged: {session_id} -> {tool}")
        return delivered

    async def emit_actions(self, session_id: str, actions: Iterable[UIAction | Mapping[str, Any]]) -> bool:
        if not self._config.enabled:
            return False

        try:
            valid = self._filter_valid(actions)
            if not valid:
                logger.warning(f"No valid UI actions to send: {session_id}")
                return False

            size = payload_size([a.to_wire() for a in valid])
            if size > self._config.max_payload_size:
                logger.warning(f"UI action payload too large: {size} > {self._config.max_payload_size} ({session_id})")
                self._metrics.action_drop_count += 1
                return False

            delivered = await self._channel.emit(session_id, valid)
        except Exception as ex:
            logger.error(f"UI action bridge error for {session_id}: {ex}")
            self._metrics.action_drop_count += 1
            return False

        if delivered:
            self._record_emit(UI_ACTIONS_EVENT)
            if self._config.enable_metrics:
                self._metrics.action_count.update(a.kind_name for a in valid)
            if self._config.enable_logging:
                logger.info(f"UI actions bridged: {session_id} -> {len(valid)} action(s)")
        return delivered

    async def translate_and_emit(
        self,
        session_id: str,
        tool_result: ToolResult | Mapping[str, Any],
        context_patch: Mapping[str, Any] | None = None,
    ) -> bool:
        if not self._config.enabled:
            return False

        try:
            tool_result = ToolResult.coerce(tool_result)
        except (AttributeError, TypeError) as ex:
            logger.error(f"Malformed tool result for {session_id}: {ex}")
            self._metrics.action_drop_count += 1
            return False

        translator = self._translator_for(session_id)
        if context_patch:
            translator.update_context(**context_patch)

        actions = translator.translate(tool_result)
        tool = tool_result.tool
        if not actions:
            logger.warning(f"Tool result produced no UI actions: {session_id} -> {tool}")
            return False

        translator.update_context(previous_actions=actions)
        delivered = await self.emit_actions(session_id, actions)
        if delivered and self._config.enable_logging:
            logger.info(f"Tool result translated: {session_id} -> {tool} -> {len(actions)} action(s)")
        return delivered

    def get_context(self, session_id: str) -> TranslationContext | None:
        translator = self._translators.get(session_id)
        return translator.context if translator else None

    async def cleanup_session(self, session_id: str) -> None:
        self._translators.pop(session_id, None)
        await self._channel.leave(session_id)
        logger.info(f"Bridge session cleaned up: {session_id}")

    def cleanup_all_sessions(self) -> None:
        self._translators.clear()
        logger.info("All bridge translation contexts cleared")

    def get_metrics(self) -> dict[str, Any]:
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics = BridgeMetrics()

    def update_config(self, **changes: Any) -> None:
        known = {f.name for f in fields(BridgeConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown bridge config option(s): {', '.join(sorted(unknown))}")
        self._config = replace(self._config, **changes)
        logger.info(f"UI bridge config updated: {self._config}")

    def set_enabled(self, enabled: bool) -> None:
        self._config.enabled = enabled
        logger.info(f"UI bridge {'enabled' if enabled else 'disabled'}")

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self._config.enabled,
            "activeSessions": self._channel.session_stats()["activeSessions"],
            "metrics": self._config.enable_metrics,
        }

    def _translator_for(self, session_id: str) -> ResultTranslator:
        translator = self._translators.get(session_id)
        if translator is None:
            translator = ResultTranslator(TranslationContext(session_id=session_id))
            self._translators[session_id] = translator
        return translator

    def _filter_valid(self, actions: Iterable[UIAction | Mapping[str, Any]]) -> list[UIAction]:
        valid: list[UIAction] = []
        for raw in actions:
            action = coerce_action(raw)
            if action is None or ActionKind.parse(action.kind) is None:
                kind = action.kind if action is not None else type(raw).__name__
                logger.warning(f"UI action type not allowed: {kind!r}")
                self._metrics.action_drop_count += 1
                continue
            if not validate_action(action):
                logger.warning(f"UI action payload rejected: {action.kind_name}")
                self._metrics.action_drop_count += 1
                continue
            valid.append(action)
        return valid

    def _record_emit(self, event: str) -> None:
        if self._config.enable_metrics:
            self._metrics.emit_count[event] += 1
