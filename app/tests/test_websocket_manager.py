"""
Concurrency tests for the WebSocket session registry.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock
from api.websocket_manager import ConnectionState, SessionRegistry, heartbeat_monitor, room_for
from core.security import Identity

ALICE = Identity(id="alice1")
BOB = Identity(id="bob2")


@pytest.mark.asyncio
async def test_connect_joins_user_room():
    registry = SessionRegistry(max_connections_per_user=5)
    ws = AsyncMock()

    assert await registry.connect(ws, ALICE) is True

    ws.accept.assert_awaited_once()
    assert registry.rooms[room_for(ALICE.id)] == [ws]
    assert registry.identity_for(ws) == ALICE
    assert registry.state_of(ws) == ConnectionState.JOINED


@pytest.mark.asyncio
async def test_concurrent_connections_share_one_room():
    registry = SessionRegistry(max_connections_per_user=5)
    ws1 = AsyncMock()
    ws2 = AsyncMock()

    await asyncio.gather(
        registry.connect(ws1, ALICE),
        registry.connect(ws2, ALICE)
    )

    assert len(registry.get_user_connections(ALICE.id)) == 2

    delivered = await registry.send_to_user(ALICE.id, "message", {"id": "m1"})

    assert delivered == 2
    ws1.send_json.assert_awaited_with({"event": "message", "data": {"id": "m1"}})
    ws2.send_json.assert_awaited_with({"event": "message", "data": {"id": "m1"}})


@pytest.mark.asyncio
async def test_connection_limit_refuses_without_accepting():
    registry = SessionRegistry(max_connections_per_user=1)
    ws1 = AsyncMock()
    ws2 = AsyncMock()

    assert await registry.connect(ws1, ALICE) is True
    assert await registry.connect(ws2, ALICE) is False

    ws2.accept.assert_not_awaited()
    assert registry.state_of(ws2) == ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_send_to_offline_user_is_not_an_error():
    registry = SessionRegistry()

    assert await registry.send_to_user(BOB.id, "message", {"id": "m1"}) == 0


@pytest.mark.asyncio
async def test_fan_out_stays_in_recipient_room():
    registry = SessionRegistry()
    alice_ws = AsyncMock()
    bob_ws = AsyncMock()
    await registry.connect(alice_ws, ALICE)
    await registry.connect(bob_ws, BOB)

    await registry.send_to_user(BOB.id, "message", {"id": "m1"})

    bob_ws.send_json.assert_awaited_once()
    alice_ws.send_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_send_drops_only_that_connection():
    registry = SessionRegistry()
    broken = AsyncMock()
    broken.send_json.side_effect = RuntimeError("socket closed")
    healthy = AsyncMock()
    await registry.connect(broken, ALICE)
    await registry.connect(healthy, ALICE)

    delivered = await registry.send_to_user(ALICE.id, "message", {"id": "m1"})

    assert delivered == 1
    assert registry.get_user_connections(ALICE.id) == [healthy]
    assert registry.identity_for(broken) is None


@pytest.mark.asyncio
async def test_disconnect_is_idempotent():
    registry = SessionRegistry()
    ws = AsyncMock()
    await registry.connect(ws, ALICE)

    await registry.disconnect(ws)
    await registry.disconnect(ws)

    assert room_for(ALICE.id) not in registry.rooms
    assert registry.get_connection_count() == 0


@pytest.mark.asyncio
async def test_race_condition_connect_disconnect():
    """
    Rapid connect and disconnect leaves no room behind.
    """
    registry = SessionRegistry(max_connections_per_user=200)

    async def connect_then_leave():
        ws = AsyncMock()
        await registry.connect(ws, ALICE)
        await asyncio.sleep(0.001)
        await registry.disconnect(ws)

    await asyncio.gather(*(connect_then_leave() for _ in range(100)))

    assert room_for(ALICE.id) not in registry.rooms
    assert registry.get_user_count() == 0


@pytest.mark.asyncio
async def test_send_while_disconnecting():
    """
    Sending while a connection leaves never fails and keeps the other one.
    """
    registry = SessionRegistry()
    ws1 = AsyncMock()
    ws2 = AsyncMock()
    await registry.connect(ws1, ALICE)
    await registry.connect(ws2, ALICE)

    async def disconnect_one():
        await asyncio.sleep(0.005)
        await registry.disconnect(ws1)

    async def send_msg():
        for _ in range(10):
            await registry.send_to_user(ALICE.id, "message", {"msg": "hello"})
            await asyncio.sleep(0.001)

    await asyncio.gather(disconnect_one(), send_msg())

    assert registry.get_user_connections(ALICE.id) == [ws2]


@pytest.mark.asyncio
async def test_heartbeat_closes_stale_connections():
    registry = SessionRegistry()
    ws = AsyncMock()
    await registry.connect(ws, ALICE)
    registry.last_heartbeat[ws] = registry.last_heartbeat[ws].replace(year=2000)

    task = asyncio.create_task(heartbeat_monitor(registry, interval_seconds=0.01, timeout_seconds=1))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    ws.close.assert_awaited()
    assert registry.get_connection_count() == 0
