"""Per-user WebSocket registry that pushes chat and swap updates."""

import logging
from typing import Any, Dict, Iterable

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

CHAT_MESSAGE = 'chat_message'
SWAP_UPDATED = 'swap_updated'


class ConnectionManager:
    def __init__(self):
        # Map of user_id -> WebSocket connection
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        """Register an authenticated client, replacing any earlier socket for the user."""
        previous = self.active_connections.get(user_id)
        self.active_connections[user_id] = websocket
        if previous is not None and previous is not websocket:
            try:
                await previous.close(code=4000, reason="Replaced by a newer connection")
            except Exception as e:
                logger.debug(f"Error closing replaced socket for {user_id}: {e}")

        await self.send_to_user(user_id, {
            "type": "connection_status",
            "data": {
                "status": "connected",
                "user_id": user_id
            }
        })

    def disconnect(self, user_id: str, websocket: WebSocket = None):
        """Forget a client. With a websocket, only if it is still the current one."""
        current = self.active_connections.get(user_id)
        if current is None:
            return
        if websocket is None or current is websocket:
            del self.active_connections[user_id]

    def is_connected(self, user_id: str) -> bool:
        return user_id in self.active_connections

    async def send_to_user(self, user_id: str, message: Dict[str, Any]):
        """Send a frame to one user; a failed send drops the connection."""
        websocket = self.active_connections.get(user_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(jsonable_encoder(message))
        except Exception as e:
            logger.warning(f"Dropping websocket for {user_id}: {e}")
            self.disconnect(user_id, websocket)

    async def send_to_users(self, user_ids: Iterable[str], message: Dict[str, Any]):
        for user_id in dict.fromkeys(str(user_id) for user_id in user_ids if user_id):
            await self.send_to_user(user_id, message)

    async def publish_chat_message(self, chat: Dict[str, Any], message: Dict[str, Any]):
        """Push a new message or event to both chat participants."""
        await self.send_to_users(
            [chat['buyer_id'], chat['seller_id']],
            {"type": CHAT_MESSAGE, "data": message}
        )

    async def publish_swap_update(self, match: Dict[str, Any]):
        """Push a proposed or answered swap to both parties."""
        await self.send_to_users(
            [match['user_1_id'], match['user_2_id']],
            {"type": SWAP_UPDATED, "data": match}
        )


# Global instance
manager = ConnectionManager()
