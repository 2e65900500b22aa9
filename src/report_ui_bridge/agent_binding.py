from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any

from loguru import logger

from report_ui_bridge.actions import START_TOAST_MS, ToastType, UIAction, open_panel, show_toast
from report_ui_bridge.agent_runtime import AgentResult, AgentRuntime
from report_ui_bridge.bridge import UIBridge
from report_ui_bridge.errors import AgentNotFoundError
from report_ui_bridge.notifications import best_effort
from report_ui_bridge.tool_wrapper import ToolInvocationWrapper
from report_ui_bridge.translation.agent_actions import derive_tool_call_actions


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class AgentBindingConfig:
    enable_ui_bridge: bool = True
    enable_metrics: bool = True
    enable_logging: bool = True
    auto_translate_results: bool = True
    session_timeout: float = 30 * 60  # seconds
    notification_timeout: float = 5.0
    long_text_threshold: int = 200


@dataclass
class BoundSession:
    session_id: str
    user_id: str | None
    created_at: float
    last_activity: float
    context: dict[str, Any] = field(default_factory=dict)
    active_runs: int = 0

    @property
    def state(self) -> RunState:
        return RunState.RUNNING if self.active_runs > 0 else RunState.IDLE


@dataclass
class BoundAgent:
    agent_id: str
    agent: AgentRuntime
    tool_wrapper: ToolInvocationWrapper
    bridge: UIBridge
    sessions: dict[str, BoundSession] = field(default_factory=dict)


class AgentsBinding:
    """Ties agents to UI sessions: lifecycle toasts, result-derived actions and idle expiry."""

    def __init__(self, config: AgentBindingConfig | None = None, *, clock: Callable[[], float] = time.time):
        self._config = config or AgentBindingConfig()
        self._clock = clock
        self._agents: dict[str, BoundAgent] = {}
        self._cleanup_task: asyncio.Task | None = None

    def bind(
        self,
        agent_id: str,
        agent: AgentRuntime,
        tool_wrapper: ToolInvocationWrapper,
        bridge: UIBridge,
    ) -> BoundAgent:
        bound = BoundAgent(
            agent_id=agent_id,
            agent=agent,
            tool_wrapper=tool_wrapper,
            bridge=bridge,
        )
        self._agents[agent_id] = bound
        if self._config.enable_logging:
            logger.info(f"Agent bound: {agent_id}")
        return bound

    def get(self, agent_id: str) -> BoundAgent:
        bound = self._agents.get(agent_id)
        if bound is None:
            raise AgentNotFoundError(agent_id)
        return bound

    async def run(
        self,
        agent_id: str,
        message: str,
        session_id: str | None = None,
        user_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> Any:
        bound = self.get(agent_id)
        if session_id is not None:
            self._update_session(bound, session_id, user_id, context)

        notify = self._config.enable_ui_bridge and session_id is not None
        if self._config.enable_logging:
            logger.info(f"Agent run: {agent_id} (session: {session_id or 'none'})")

        if notify:
            await self._notify(
                bound.bridge.emit_actions(
                    session_id,
                    [show_toast("The agent is processing your request...", ToastType.INFO, START_TOAST_MS)],
                ),
                f"start {agent_id} -> {session_id}",
            )

        try:
            raw = await bound.agent.run(message)
        except Exception as ex:
            logger.error(f"Agent run failed: {agent_id}: {ex}")
            if notify:
                await self._notify(
                    bound.bridge.emit_actions(
                        session_id,
                        [show_toast(f"Agent '{agent_id}' failed: {str(ex) or type(ex).__name__}", ToastType.ERROR)],
                    ),
                    f"error {agent_id} -> {session_id}",
                )
            self._finish_run(bound, session_id)
            raise

        if notify:
            await self._handle_agent_result(bound, session_id, raw)
        self._finish_run(bound, session_id)
        return raw

    def derive_actions(self, raw_result: Any) -> list[UIAction]:
        """UI actions implied by an agent run result, excluding the completion toast."""
        try:
            result = AgentResult.from_raw(raw_result)
        except Exception as ex:
            logger.error(f"Could not read agent result: {ex}")
            return []

        actions: list[UIAction] = []
        if self._config.auto_translate_results:
            for call in result.tool_calls:
                actions.extend(derive_tool_call_actions(call.tool, call.result))
        if result.text and len(result.text) > self._config.long_text_threshold:
            actions.append(open_panel("response", "Agent response", content=result.text))
        return actions

    async def cleanup_expired_sessions(self) -> int:
        now = self._clock()
        timeout = self._config.session_timeout
        removed = 0

        for agent_id, bound in list(self._agents.items()):
            expired = [
                session_id
                for session_id, session in bound.sessions.items()
                if session.state is RunState.IDLE and now - session.last_activity > timeout
            ]
            for session_id in expired:
                bound.sessions.pop(session_id, None)
                await self._notify(bound.bridge.cleanup_session(session_id), f"cleanup {session_id}")
            removed += len(expired)

            if expired and self._config.enable_logging:
                logger.info(f"Expired sessions cleaned up: {agent_id} -> {len(expired)}")

        return removed

    async def remove(self, agent_id: str) -> bool:
        bound = self._agents.get(agent_id)
        if bound is None:
            return False

        for session_id in list(bound.sessions):
            await self._notify(bound.bridge.cleanup_session(session_id), f"cleanup {session_id}")
        bound.sessions.clear()
        del self._agents[agent_id]

        if self._config.enable_logging:
            logger.info(f"Agent removed: {agent_id}")
        return True

    def start_session_cleanup(self, interval: float = 5 * 60) -> asyncio.Task:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval))
            logger.info(f"Agent session cleanup started (every {interval:.0f}s)")
        return self._cleanup_task

    async def stop_session_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("Agent session cleanup stopped")

    def get_agent_status(self, agent_id: str) -> dict[str, Any] | None:
        bound = self._agents.get(agent_id)
        if bound is None:
            return None
        return {
            "agentId": agent_id,
            "config": asdict(self._config),
            "activeSessions": len(bound.sessions),
            "toolWrapperMetrics": bound.tool_wrapper.get_metrics(),
            "uiBridgeStatus": bound.bridge.get_status(),
        }

    def get_all_agents_status(self) -> list[dict[str, Any]]:
        return [status for agent_id in self._agents if (status := self.get_agent_status(agent_id))]

    def update_config(self, **changes: Any) -> None:
        known = {f.name for f in fields(AgentBindingConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown agent binding config option(s): {', '.join(sorted(unknown))}")
        self._config = replace(self._config, **changes)
        logger.info(f"Agent binding config updated: {self._config}")

    def set_ui_bridge_enabled(self, enabled: bool) -> None:
        self._config.enable_ui_bridge = enabled
        for bound in self._agents.values():
            bound.tool_wrapper.set_ui_bridge_enabled(enabled)
        logger.info(f"Agent binding UI bridge {'enabled' if enabled else 'disabled'}")

    def _update_session(
        self,
        bound: BoundAgent,
        session_id: str,
        user_id: str | None,
        context: dict[str, Any] | None,
    ) -> None:
        now = self._clock()
        session = bound.sessions.get(session_id)
        if session is None:
            session = BoundSession(session_id=session_id, user_id=user_id, created_at=now, last_activity=now)
            bound.sessions[session_id] = session
        else:
            session.last_activity = now
            if user_id is not None:
                session.user_id = user_id
        if context:
            session.context.update(context)
        session.active_runs += 1

    def _finish_run(self, bound: BoundAgent, session_id: str | None) -> None:
        if session_id is None:
            return
        session = bound.sessions.get(session_id)
        if session is not None:
            session.active_runs = max(0, session.active_runs - 1)
            session.last_activity = self._clock()

    async def _handle_agent_result(self, bound: BoundAgent, session_id: str, raw: Any) -> None:
        actions = self.derive_actions(raw)
        if actions:
            await self._notify(
                bound.bridge.emit_actions(session_id, actions),
                f"result actions {bound.agent_id} -> {session_id}",
            )
        await self._notify(
            bound.bridge.emit_actions(session_id, [show_toast("Your request has been completed.")]),
            f"completion {bound.agent_id} -> {session_id}",
        )
        if self._config.enable_logging:
            logger.info(f"Agent result handled: {bound.agent_id} -> {session_id} -> {len(actions)} action(s)")

    async def _notify(self, awaitable: Awaitable[Any], label: str) -> None:
        await best_effort(awaitable, timeout=self._config.notification_timeout, label=label)

    async def _cleanup_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup_expired_sessions()
            except Exception as ex:
                logger.error(f"Error in agent session cleanup loop: {ex}")
