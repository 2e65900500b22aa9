from __future__ import annotations

from typing import Any

import socketio
from loguru import logger

from report_ui_bridge.actions import now_ms
from report_ui_bridge.channel.socket_manager import ChannelManager


def create_socketio_server(allowed_origins: list[str] | str, max_payload_size: int) -> socketio.AsyncServer:
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=allowed_origins,
        transports=["websocket", "polling"],
        max_http_buffer_size=max_payload_size,
    )


class SocketIOTransport:
    """ChannelTransport backed by a python-socketio AsyncServer."""

    def __init__(self, sio: socketio.AsyncServer, namespace: str = "/"):
        self._sio = sio
        self._namespace = namespace

    async def enter_room(self, sid: str, room: str) -> None:
        await self._sio.enter_room(sid, room, namespace=self._namespace)

    async def leave_room(self, sid: str, room: str) -> None:
        await self._sio.leave_room(sid, room, namespace=self._namespace)

    async def emit(self, event: str, data: Any, *, room: str | None = None, to: str | None = None) -> None:
        await self._sio.emit(event, data, room=room, to=to, namespace=self._namespace)


def _session_id_from(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    session_id = data.get("sessionId") or data.get("uiSessionId")
    return str(session_id) if session_id else None


def register_channel_handlers(sio: socketio.AsyncServer, channel: ChannelManager) -> None:
    """Wire the ui:* protocol messages of a Socket.IO server to the channel manager."""

    @sio.on("connect")
    async def _on_connect(sid, environ, auth=None):
        logger.info(f"Client connected: {sid}")

    @sio.on("ui:join")
    async def _on_join(sid, data):
        session_id = _session_id_from(data)
        if session_id is None:
            logger.warning(f"ui:join without a session id from {sid}")
            return {"ok": False, "error": "sessionId is required"}
        room = await channel.join(session_id, data.get("userId"), sid=sid)
        return {"ok": True, "room": room}

    @sio.on("ui:leave")
    async def _on_leave(sid, data):
        session_id = _session_id_from(data)
        if session_id is None:
            return {"ok": False, "error": "sessionId is required"}
        return {"ok": await channel.leave(session_id, sid=sid)}

    @sio.on("ui:heartbeat")
    async def _on_heartbeat(sid, data):
        session_id = _session_id_from(data)
        return {"ok": session_id is not None and channel.touch(session_id)}

    @sio.on("ping")
    async def _on_ping(sid, data=None):
        await sio.emit("pong", {"timestamp": now_ms()}, to=sid)

    @sio.on("disconnect")
    async def _on_disconnect(sid, *args):
        logger.info(f"Client disconnected: {sid}")
        await channel.on_disconnect(sid)
