import logging

from fastapi import APIRouter, WebSocket, status

from app.dependencies import bearer_token, user_from_token
from app.services.notification_service import get_hub
from app.utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


def _handshake_token(websocket: WebSocket) -> str | None:
    return websocket.query_params.get("token") or bearer_token(websocket.headers.get("authorization"))


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    try:
        user = user_from_token(_handshake_token(websocket))
    except AuthenticationError as exc:
        logger.info("Rejected WebSocket connection: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = get_hub()
    await hub.connect(user.id, websocket)
    try:
        # Server-push only; inbound text or binary frames are read and
        # discarded until the client goes away.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        hub.disconnect(user.id, websocket)
