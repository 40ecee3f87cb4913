"""Tests for the websocket connection manager."""

from datetime import datetime, timezone

import pytest

from chats.realtime import ConnectionManager, CHAT_MESSAGE, SWAP_UPDATED

class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.closed = None
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)

    async def close(self, code=1000, reason=None):
        self.closed = code

@pytest.mark.asyncio
async def test_connect_confirms_and_replaces_previous_socket():
    """Test one socket per user."""
    manager = ConnectionManager()
    first, second = FakeSocket(), FakeSocket()

    await manager.connect(first, "u1")
    await manager.connect(second, "u1")

    assert manager.active_connections["u1"] is second
    assert first.closed == 4000
    assert second.sent[0]["type"] == "connection_status"

@pytest.mark.asyncio
async def test_chat_message_reaches_both_participants():
    """Test fan-out to buyer and seller with JSON-safe payloads."""
    manager = ConnectionManager()
    buyer, seller = FakeSocket(), FakeSocket()
    await manager.connect(buyer, "buyer")
    await manager.connect(seller, "seller")

    created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await manager.publish_chat_message(
        {"buyer_id": "buyer", "seller_id": "seller"},
        {"id": "m1", "content": "hi", "created_at": created_at}
    )

    for socket in (buyer, seller):
        frame = socket.sent[-1]
        assert frame["type"] == CHAT_MESSAGE
        assert frame["data"]["created_at"] == created_at.isoformat()

@pytest.mark.asyncio
async def test_failed_delivery_disconnects():
    """Test that a broken socket is dropped without raising."""
    manager = ConnectionManager()
    manager.active_connections["u2"] = FakeSocket(fail=True)

    await manager.publish_swap_update({"user_1_id": "u1", "user_2_id": "u2", "status": "pending"})

    assert not manager.is_connected("u2")

@pytest.mark.asyncio
async def test_swap_update_frame():
    """Test the swap_updated frame."""
    manager = ConnectionManager()
    socket = FakeSocket()
    await manager.connect(socket, "u1")

    await manager.publish_swap_update({"user_1_id": "u1", "user_2_id": "u2", "status": "accepted"})

    assert socket.sent[-1] == {
        "type": SWAP_UPDATED,
        "data": {"user_1_id": "u1", "user_2_id": "u2", "status": "accepted"}
    }

def test_disconnect_ignores_stale_socket():
    """Test that an old socket's disconnect doesn't drop the newer one."""
    manager = ConnectionManager()
    old, new = FakeSocket(), FakeSocket()
    manager.active_connections["u1"] = new

    manager.disconnect("u1", old)

    assert manager.active_connections["u1"] is new
