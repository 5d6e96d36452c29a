"""Per-user real-time notifications over WebSockets.

Delivery is best-effort and at-most-once: sessions that are not connected
when an event is published never see it, and a session whose send fails is
dropped.
"""
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


def user_room(user_id: int | str) -> str:
    return f"user:{user_id}"


class NotificationHub:
    def __init__(self):
        self._rooms: dict[str, set[WebSocket]] = {}

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self._rooms.values())

    async def connect(self, user_id: int | str, websocket: WebSocket, accept: bool = True) -> None:
        if accept:
            await websocket.accept()
        self._rooms.setdefault(user_room(user_id), set()).add(websocket)
        logger.info("User %s connected", user_id)

    def disconnect(self, user_id: int | str, websocket: WebSocket) -> None:
        room = user_room(user_id)
        sockets = self._rooms.get(room)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._rooms[room]
        logger.info("User %s disconnected", user_id)

    async def _send(self, room: str, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.warning("Dropping dead socket in %s: %s", room, exc)
            sockets = self._rooms.get(room)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    del self._rooms[room]
            return False

    async def publish_to_user(self, user_id: int | str, event: str, payload: dict[str, Any]) -> int:
        room = user_room(user_id)
        message = {"event": event, "data": payload}
        delivered = 0
        for websocket in list(self._rooms.get(room, ())):
            if await self._send(room, websocket, message):
                delivered += 1
        return delivered

    async def publish_global(self, event: str, payload: dict[str, Any]) -> int:
        message = {"event": event, "data": payload}
        delivered = 0
        for room, sockets in list(self._rooms.items()):
            for websocket in list(sockets):
                if await self._send(room, websocket, message):
                    delivered += 1
        return delivered

    async def close(self) -> None:
        for sockets in list(self._rooms.values()):
            for websocket in list(sockets):
                try:
                    await websocket.close()
                except (WebSocketDisconnect, RuntimeError, OSError):
                    pass  # already closed by the client
        self._rooms.clear()


_hub: NotificationHub | None = None


def init_hub() -> NotificationHub:
    global _hub
    if _hub is None:
        _hub = NotificationHub()
    return _hub


def get_hub() -> NotificationHub:
    if _hub is None:
        raise RuntimeError("Notification hub not initialized")
    return _hub


async def shutdown_hub() -> None:
    global _hub
    if _hub is not None:
        await _hub.close()
        _hub = None
