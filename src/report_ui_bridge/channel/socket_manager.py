from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from report_ui_bridge.actions import UIAction, now_ms

UI_ACTIONS_EVENT = "ui:actions"
TOOL_RESULT_EVENT = "mcp:result"
JOINED_EVENT = "ui:joined"


@runtime_checkable
class ChannelTransport(Protocol):
    async def enter_room(self, sid: str, room: str) -> None: ...

    async def leave_room(self, sid: str, room: str) -> None: ...

    async def emit(self, event: str, data: Any, *, room: str | None = None, to: str | None = None) -> None: ...


def room_for(session_id: str) -> str:
    return f"ui_{session_id}"


@dataclass
class UISession:
    id: str
    room: str
    user_id: str | None = None
    created_at: float = 0.0
    last_activity: float = 0.0
    sequence: int = 0
    subscribers: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
            "room": self.room,
        }


class ChannelManager:
    """Session registry, per-session sequencing and room fan-out over a transport.

    Every emission for a session runs under that session's lock so the order
    in which sequence numbers are handed out is the order in which batches
    reach the transport.
    """

    def __init__(
        self,
        transport: ChannelTransport,
        *,
        clock: Callable[[], float] = time.time,
        active_window_seconds: float = 30 * 60,
    ):
        self._transport = transport
        self._clock = clock
        self._active_window = active_window_seconds
        self._sessions: dict[str, UISession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._cleanup_task: asyncio.Task | None = None

    async def join(self, session_id: str, user_id: str | None = None, sid: str | None = None) -> str:
        now = self._clock()
        previous = self._sessions.get(session_id)
        session = UISession(
            id=session_id,
            room=room_for(session_id),
            user_id=user_id,
            created_at=now,
            last_activity=now,
        )
        if previous is not None:
            session.subscribers = previous.subscribers
        self._sessions[session_id] = session
        self._locks.setdefault(session_id, asyncio.Lock())

        if sid is not None:
            session.subscribers.add(sid)
            await self._transport.enter_room(sid, session.room)
            await self._transport.emit(
                JOINED_EVENT,
                {"type": JOINED_EVENT, "sessionId": session_id, "room": session.room, "timestamp": now_ms()},
                to=sid,
            )

        logger.info(f"UI session joined: {session_id} (user: {user_id or 'anonymous'})")
        return session.room

    async def leave(self, session_id: str, sid: str | None = None) -> bool:
        session = self._sessions.pop(session_id, None)
        self._locks.pop(session_id, None)
        if session is None:
            return False

        subscribers = {sid} if sid is not None else set(session.subscribers)
        for subscriber in subscribers:
            await self._transport.leave_room(subscriber, session.room)

        logger.info(f"UI session left: {session_id}")
        return True

    async def on_disconnect(self, sid: str) -> list[str]:
        owned = [s.id for s in self._sessions.values() if sid in s.subscribers]
        for session_id in owned:
            # the transport drops the socket's rooms itself on disconnect
            self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
            logger.info(f"UI session cleaned up after disconnect: {session_id} (sid: {sid})")
        return owned

    def touch(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.last_activity = self._clock()
        return True

    async def emit(self, session_id: str, actions: list[UIAction]) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning(f"UI session not found: {session_id}")
            return False

        async with self._lock_for(session_id):
            if self._sessions.get(session_id) is not session:
                logger.warning(f"UI session removed before emission: {session_id}")
                return False
            stamped = []
            for action in actions:
                session.sequence += 1
                sequenced = replace(action, sequence=session.sequence, timestamp=now_ms())
                stamped.append(sequenced.to_wire())
            await self._transport.emit(UI_ACTIONS_EVENT, stamped, room=session.room)
            session.last_activity = self._clock()

        logger.debug(f"UI actions sent: {session_id} -> {len(stamped)} action(s)")
        return True

    async def emit_tool_result(self, session_id: str, tool: str, result: Any) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning(f"UI session not found: {session_id}")
            return False

        async with self._lock_for(session_id):
            if self._sessions.get(session_id) is not session:
                logger.warning(f"UI session removed before emission: {session_id}")
                return False
            session.sequence += 1
            sequence = session.sequence
            await self._transport.emit(
                TOOL_RESULT_EVENT,
                {"tool": tool, "result": result, "timestamp": now_ms(), "sequence": sequence},
                room=session.room,
            )
            session.last_activity = self._clock()

        logger.debug(f"Tool result sent: {session_id} -> {tool} (sequence: {sequence})")
        return True

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def get_session(self, session_id: str) -> UISession | None:
        return self._sessions.get(session_id)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def session_stats(self) -> dict[str, Any]:
        now = self._clock()
        sessions = list(self._sessions.values())
        return {
            "totalSessions": len(sessions),
            "activeSessions": sum(1 for s in sessions if now - s.last_activity < self._active_window),
            "sessions": [s.to_dict() for s in sessions],
        }

    async def expire_idle_sessions(self, timeout_seconds: float) -> list[str]:
        now = self._clock()
        expired = [s.id for s in self._sessions.values() if now - s.last_activity > timeout_seconds]
        for session_id in expired:
            await self.leave(session_id)
        if expired:
            logger.info(f"Expired {len(expired)} idle UI session(s)")
        return expired

    def start_cleanup(self, interval_seconds: float, timeout_seconds: float) -> asyncio.Task:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval_seconds, timeout_seconds))
            logger.info("UI session cleanup task started")
        return self._cleanup_task

    async def stop_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("UI session cleanup task stopped")

    async def _cleanup_loop(self, interval_seconds: float, timeout_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.expire_idle_sessions(timeout_seconds)
            except Exception as ex:
                logger.error(f"Error in UI session cleanup loop: {ex}")
