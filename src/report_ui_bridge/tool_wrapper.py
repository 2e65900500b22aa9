from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any
from uuid import uuid4

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, stop_any, wait_exponential

from report_ui_bridge.actions import now_ms
from report_ui_bridge.bridge import LATENCY_SAMPLES, UIBridge
from report_ui_bridge.errors import CallCancelledError, ToolNotFoundError
from report_ui_bridge.notifications import best_effort
from report_ui_bridge.tool import resolve_tool
from report_ui_bridge.translation.tool_results import ToolResult


class CallState(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CallRecord:
    call_id: str
    tool: str
    params: dict[str, Any]
    session_id: str | None = None
    user_id: str | None = None
    started_at: int = field(default_factory=now_ms)
    retry_count: int = 0
    state: CallState = CallState.PENDING


@dataclass
class ToolWrapperConfig:
    enable_ui_bridge: bool = True
    enable_metrics: bool = True
    enable_logging: bool = True
    max_retries: int = 3
    retry_delay: float = 1000  # ms, first backoff step
    notification_timeout: float = 5.0


@dataclass
class WrapperMetrics:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    ui_bridge_calls: int = 0
    latency_history: deque = field(default_factory=lambda: deque(maxlen=LATENCY_SAMPLES))

    @property
    def average_latency(self) -> float:
        if not self.latency_history:
            return 0.0
        return sum(self.latency_history) / len(self.latency_history)

    def snapshot(self) -> dict[str, Any]:
        return {
            "totalCalls": self.total_calls,
            "successfulCalls": self.successful_calls,
            "failedCalls": self.failed_calls,
            "uiBridgeCalls": self.ui_bridge_calls,
            "averageLatency": self.average_latency,
            "latencyHistory": list(self.latency_history),
        }


def _is_retryable(ex: BaseException) -> bool:
    return isinstance(ex, Exception) and not isinstance(ex, (ToolNotFoundError, CallCancelledError))


def _new_call_id(tool: str) -> str:
    return f"{tool}_{now_ms()}_{uuid4().hex[:9]}"


class ToolInvocationWrapper:
    """Calls tools on a tool host with retry/backoff and mirrors outcomes to the UI bridge.

    Each invocation owns a CallRecord in the active-call table from the first
    attempt until a terminal outcome. Cancelling a call removes its record,
    which stops any further retries. An attempt already awaiting the tool
    host is not interrupted, but its outcome is discarded and the caller
    gets CallCancelledError.
    """

    def __init__(
        self,
        tool_host: Any,
        bridge: UIBridge,
        config: ToolWrapperConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._tool_host = tool_host
        self._bridge = bridge
        self._config = config or ToolWrapperConfig()
        self._sleep = sleep
        self._active: dict[str, CallRecord] = {}
        self._metrics = WrapperMetrics()

    async def invoke(
        self,
        tool: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> Any:
        record = CallRecord(
            call_id=_new_call_id(tool),
            tool=tool,
            params=dict(params or {}),
            session_id=session_id,
            user_id=user_id,
        )
        self._active[record.call_id] = record
        if self._config.enable_logging:
            logger.info(f"Tool call: {tool} (session: {session_id or 'none'}, call: {record.call_id})")

        try:
            result = await self._retrying()(self._attempt, record)
        except Exception as ex:
            cancelled = record.call_id not in self._active
            record.state = CallState.CANCELLED if cancelled else CallState.FAILED
            logger.error(f"Tool call {record.state.value}: {tool} after {record.retry_count} retries: {ex}")
            if cancelled:
                if isinstance(ex, CallCancelledError):
                    raise
                raise CallCancelledError(tool, record.call_id) from ex
            if self._bridges_to_ui(record):
                await self._forward_error(record, ex)
            raise
        else:
            record.state = CallState.SUCCEEDED
            if self._bridges_to_ui(record):
                await self._forward_result(record, result)
            return result
        finally:
            self._active.pop(record.call_id, None)

    def cancel(self, call_id: str) -> bool:
        record = self._active.pop(call_id, None)
        if record is None:
            return False
        record.state = CallState.CANCELLED
        logger.info(f"Tool call cancelled: {record.tool} ({call_id})")
        return True

    def cancel_all(self) -> None:
        for record in self._active.values():
            record.state = CallState.CANCELLED
        self._active.clear()
        logger.info("All tool calls cancelled")

    def list_active(self) -> list[CallRecord]:
        return [replace(record, params=dict(record.params)) for record in self._active.values()]

    async def check_health(self) -> bool:
        probe = getattr(self._tool_host, "health_check", None)
        try:
            if callable(probe):
                return (await probe()) is not False
            return True
        except Exception as ex:
            logger.error(f"Tool host health check failed: {ex}")
            return False

    def get_metrics(self) -> dict[str, Any]:
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics = WrapperMetrics()

    def get_config(self) -> ToolWrapperConfig:
        return replace(self._config)

    def update_config(self, **changes: Any) -> None:
        known = {f.name for f in fields(ToolWrapperConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown tool wrapper config option(s): {', '.join(sorted(unknown))}")
        self._config = replace(self._config, **changes)
        logger.info(f"Tool wrapper config updated: {self._config}")

    def set_ui_bridge_enabled(self, enabled: bool) -> None:
        self._config.enable_ui_bridge = enabled
        logger.info(f"Tool wrapper UI bridge {'enabled' if enabled else 'disabled'}")

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_any(stop_after_attempt(self._config.max_retries + 1), self._is_cancelled),
            wait=wait_exponential(multiplier=self._config.retry_delay / 1000),
            before_sleep=self._before_retry,
            sleep=self._sleep,
            reraise=True,
        )

    def _is_cancelled(self, retry_state: RetryCallState) -> bool:
        record: CallRecord = retry_state.args[0]
        return record.call_id not in self._active

    def _before_retry(self, retry_state: RetryCallState) -> None:
        record: CallRecord = retry_state.args[0]
        record.retry_count += 1
        record.state = CallState.RETRYING
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Tool {record.tool} failed ({exc}). Retrying in {delay:.2f}s "
            f"(retry {record.retry_count}/{self._config.max_retries})..."
        )

    async def _attempt(self, record: CallRecord) -> Any:
        self._raise_if_cancelled(record)
        started = time.perf_counter()
        try:
            call = resolve_tool(self._tool_host, record.tool)
            result = await call(dict(record.params))
        except Exception:
            self._record_attempt(started, succeeded=False)
            raise
        self._record_attempt(started, succeeded=True)
        # a result that lands after cancel() is discarded
        self._raise_if_cancelled(record)
        return result

    def _raise_if_cancelled(self, record: CallRecord) -> None:
        if record.call_id not in self._active:
            raise CallCancelledError(record.tool, record.call_id)

    def _record_attempt(self, started: float, succeeded: bool) -> None:
        if not self._config.enable_metrics:
            return
        self._metrics.total_calls += 1
        if succeeded:
            self._metrics.successful_calls += 1
        else:
            self._metrics.failed_calls += 1
        self._metrics.latency_history.append((time.perf_counter() - started) * 1000)

    def _bridges_to_ui(self, record: CallRecord) -> bool:
        return self._config.enable_ui_bridge and record.session_id is not None

    async def _forward_result(self, record: CallRecord, result: Any) -> None:
        async def forward() -> bool:
            raw_sent = await self._bridge.emit_tool_result(record.session_id, record.tool, result)
            translated = await self._bridge.translate_and_emit(
                record.session_id,
                ToolResult(tool=record.tool, result=result, success=True),
                {"user_id": record.user_id, "current_form_data": record.params},
            )
            return raw_sent or translated

        delivered = await best_effort(
            forward(),
            timeout=self._config.notification_timeout,
            label=f"{record.tool} result -> {record.session_id}",
        )
        if delivered:
            self._metrics.ui_bridge_calls += 1
            if self._config.enable_logging:
                logger.info(f"Tool result forwarded to UI: {record.tool} -> {record.session_id}")

    async def _forward_error(self, record: CallRecord, error: Exception) -> None:
        tool_result = ToolResult(
            tool=record.tool,
            result=None,
            success=False,
            error=str(error) or type(error).__name__,
        )
        await best_effort(
            self._bridge.translate_and_emit(record.session_id, tool_result, {"user_id": record.user_id}),
            timeout=self._config.notification_timeout,
            label=f"{record.tool} error -> {record.session_id}",
        )
