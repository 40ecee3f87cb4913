"""WebSocket endpoint for real-time chat and swap updates."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from auth import manager as auth_manager, AuthError
from chats.realtime import manager

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["WebSocket"])

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Authenticate with a {"token": ...} frame, then receive pushed updates.

    Clients may send {"type": "ping"} frames; anything else is ignored.
    """
    # Accept the connection first
    await websocket.accept()

    user_id = None
    try:
        # Wait for authentication message
        try:
            auth_message = await websocket.receive_json()
        except ValueError:
            auth_message = None
        if not isinstance(auth_message, dict) or "token" not in auth_message:
            await websocket.close(code=4001, reason="Authentication required")
            return

        try:
            user_id = auth_manager.verify_token(auth_message["token"])
        except AuthError as e:
            logger.debug(f"WebSocket authentication failed: {e}")
            await websocket.close(code=4001, reason="Invalid token")
            return

        await manager.connect(websocket, user_id)
        logger.info(f"WebSocket connected for {user_id}")

        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                continue
            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for {user_id}")
    except Exception as e:
        logger.warning(f"WebSocket error for {user_id}: {e}")
        if websocket.client_state != WebSocketState.DISCONNECTED:
            await websocket.close(code=1011, reason="Internal error")
    finally:
        if user_id:
            manager.disconnect(user_id, websocket)
