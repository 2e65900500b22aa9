from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import socketio
from loguru import logger

from report_ui_bridge.agent_binding import AgentsBinding, BoundAgent
from report_ui_bridge.agent_runtime import AgentRuntime
from report_ui_bridge.app_config import AppConfig, RuntimeEnv
from report_ui_bridge.bridge import UIBridge
from report_ui_bridge.channel.socket_manager import ChannelManager
from report_ui_bridge.channel.socketio_transport import (
    SocketIOTransport,
    create_socketio_server,
    register_channel_handlers,
)
from report_ui_bridge.logging_config import setup_logging
from report_ui_bridge.mcp.mcp_manager import McpManager
from report_ui_bridge.tool import LocalToolHost
from report_ui_bridge.tool_wrapper import ToolInvocationWrapper


@dataclass
class AppRuntime:
    app: AppConfig
    sio: socketio.AsyncServer
    asgi_app: Any
    channel: ChannelManager
    bridge: UIBridge
    tool_host: Any
    tool_wrapper: ToolInvocationWrapper
    binding: AgentsBinding
    mcp_manager: McpManager | None
    log_descriptions: list[str]
    background_tasks: list[asyncio.Task] = field(default_factory=list)

    def bind_agent(self, agent_id: str, agent: AgentRuntime) -> BoundAgent:
        return self.binding.bind(agent_id, agent, self.tool_wrapper, self.bridge)


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv, tool_host: Any = None) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    sio = create_socketio_server(env.allowed_origins, app.max_payload_size)
    channel = ChannelManager(SocketIOTransport(sio), active_window_seconds=app.session_timeout_ms / 1000)
    register_channel_handlers(sio, channel)
    bridge = UIBridge(channel, app.bridge_config())

    mcp_manager: McpManager | None = None
    if tool_host is None:
        if app.mcp_server_configs:
            mcp_manager = McpManager(app.mcp_server_configs)
            tool_host = await mcp_manager.connect_all()
        else:
            tool_host = LocalToolHost()

    tool_wrapper = ToolInvocationWrapper(tool_host, bridge, app.tool_wrapper_config())
    binding = AgentsBinding(app.agent_binding_config())

    logger.info(
        f"UI bridge runtime ready (bridge: {'on' if app.enable_ui_bridge else 'off'}, "
        f"origins: {', '.join(env.allowed_origins)})"
    )

    return AppRuntime(
        app=app,
        sio=sio,
        asgi_app=socketio.ASGIApp(sio),
        channel=channel,
        bridge=bridge,
        tool_host=tool_host,
        tool_wrapper=tool_wrapper,
        binding=binding,
        mcp_manager=mcp_manager,
        log_descriptions=log_descriptions,
    )


def start_background_tasks(runtime: AppRuntime) -> None:
    interval = runtime.app.session_cleanup_interval_ms / 1000
    timeout = runtime.app.session_timeout_ms / 1000
    runtime.background_tasks = [
        runtime.channel.start_cleanup(interval, timeout),
        runtime.binding.start_session_cleanup(interval),
    ]


async def shutdown_runtime(runtime: AppRuntime) -> None:
    await runtime.binding.stop_session_cleanup()
    await runtime.channel.stop_cleanup()
    runtime.background_tasks.clear()
    runtime.tool_wrapper.cancel_all()
    runtime.bridge.cleanup_all_sessions()
    if runtime.mcp_manager is not None:
        await runtime.mcp_manager.close()
    logger.info("UI bridge runtime shut down")
