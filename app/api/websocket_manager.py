"""
WebSocket session registry for realtime messaging.

Tracks live connections per authenticated user. Every user has one room,
"user_<id>", holding all of their connections (multiple devices/tabs), and
messages are fanned out to a user by sending to every connection in the room.
"""
import enum
import logging
import asyncio
from typing import Any, Dict, List, Optional
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from fastapi import WebSocket

from api.metrics import (
    websocket_connections_total, websocket_disconnections_total,
    websocket_messages_sent_total, update_websocket_metrics
)
from core.config import settings
from core.security import Identity

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    """Lifecycle of a realtime connection."""
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    CLOSED = "closed"


def room_for(user_id: str) -> str:
    """Name of the room holding every connection of a user."""
    return f"user_{user_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry:
    """
    Manages live WebSocket connections for realtime messaging.

    Features:
    - One room per user, multiple connections per room
    - Identity bound at accept time, stored alongside the connection
    - Enforces connection limits per user
    - Fan-out tolerant of connections closing mid-send

    Safe for concurrent joins, leaves and fan-outs within the event loop.
    """

    def __init__(self, max_connections_per_user: Optional[int] = None):
        # {room: List[WebSocket]} - all connections per user room
        self.rooms: Dict[str, List[WebSocket]] = defaultdict(list)

        # {WebSocket: Identity} - identity bound at accept time, never replaced
        self.connection_identity: Dict[WebSocket, Identity] = {}

        # {WebSocket: ConnectionState}
        self.connection_state: Dict[WebSocket, ConnectionState] = {}

        # {WebSocket: datetime} - tracks last heartbeat received
        self.last_heartbeat: Dict[WebSocket, datetime] = {}

        self.max_connections_per_user = max_connections_per_user or settings.ws_max_connections_per_user

        self._lock = asyncio.Lock()

        logger.info("SessionRegistry initialized")

    async def connect(self, websocket: WebSocket, identity: Identity) -> bool:
        """
        Accept an authenticated connection and join it to the user's room.

        Args:
            websocket: WebSocket connection whose handshake credential was verified
            identity: Identity extracted from the credential

        Returns:
            True if the connection joined its room, False if the user's
            connection limit is reached (connection is not accepted)
        """
        room = room_for(identity.id)
        async with self._lock:
            current_connections = len(self.rooms.get(room, []))
            if current_connections >= self.max_connections_per_user:
                logger.warning(
                    f"Connection limit reached for user {identity.id}: "
                    f"{current_connections}/{self.max_connections_per_user}"
                )
                return False
            self.connection_identity[websocket] = identity
            self.connection_state[websocket] = ConnectionState.AUTHENTICATED

        try:
            await websocket.accept()
        except Exception:
            async with self._lock:
                self.connection_identity.pop(websocket, None)
                self.connection_state.pop(websocket, None)
            raise

        async with self._lock:
            self.rooms[room].append(websocket)
            self.connection_state[websocket] = ConnectionState.JOINED
            self.last_heartbeat[websocket] = _utcnow()
            total = len(self.rooms[room])

        websocket_connections_total.labels(instance="api").inc()
        update_websocket_metrics(self)
        logger.info(f"User {identity.id} joined {room} (total connections: {total})")
        return True

    async def disconnect(self, websocket: WebSocket, reason: str = "normal") -> None:
        """
        Remove a connection from its room and drop its tracking entries.

        Safe to call more than once and concurrently with a fan-out.
        """
        async with self._lock:
            identity = self.connection_identity.pop(websocket, None)
            self.connection_state.pop(websocket, None)
            self.last_heartbeat.pop(websocket, None)
            if identity is None:
                return

            room = room_for(identity.id)
            connections = self.rooms.get(room)
            if connections is not None:
                if websocket in connections:
                    connections.remove(websocket)
                if not connections:
                    del self.rooms[room]
            remaining = len(self.rooms.get(room, []))

        websocket_disconnections_total.labels(instance="api", reason=reason).inc()
        update_websocket_metrics(self)
        logger.info(f"User {identity.id} left {room} (remaining connections: {remaining})")

    def identity_for(self, websocket: WebSocket) -> Optional[Identity]:
        """Identity bound to a connection, if it is still registered."""
        return self.connection_identity.get(websocket)

    def state_of(self, websocket: WebSocket) -> ConnectionState:
        """Current lifecycle state of a connection."""
        return self.connection_state.get(websocket, ConnectionState.CLOSED)

    async def send_to_user(self, user_id: str, event: str, payload: Any) -> int:
        """
        Deliver an event to every connection in a user's room.

        An empty room is not an error: the recipient is offline and will
        fetch the stored message later.

        Returns:
            Number of connections the event was delivered to
        """
        room = room_for(user_id)
        async with self._lock:
            connections = list(self.rooms.get(room, []))

        if not connections:
            logger.debug(f"No active connections in {room}")
            return 0

        results = await asyncio.gather(
            *(self._safe_send(connection, event, payload) for connection in connections)
        )
        delivered = sum(1 for result in results if result)
        logger.debug(f"Delivered '{event}' to {delivered}/{len(connections)} connections in {room}")
        return delivered

    async def send_to_connection(self, websocket: WebSocket, event: str, payload: Any) -> bool:
        """
        Deliver an event to a single connection.

        Returns:
            True if sent, False if the connection is gone
        """
        return await self._safe_send(websocket, event, payload)

    async def _safe_send(self, websocket: WebSocket, event: str, payload: Any) -> bool:
        try:
            await websocket.send_json({"event": event, "data": payload})
        except Exception as e:
            logger.warning(f"Dropping connection after failed '{event}' send: {e}")
            await self.disconnect(websocket, reason="send_error")
            return False
        websocket_messages_sent_total.labels(message_type=event, instance="api").inc()
        return True

    async def update_heartbeat(self, websocket: WebSocket) -> None:
        """
        Update last heartbeat timestamp for a connection.

        Called when a pong is received in response to a ping.
        """
        async with self._lock:
            if websocket in self.connection_identity:
                self.last_heartbeat[websocket] = _utcnow()

    def get_stale_connections(self, timeout_seconds: int) -> List[WebSocket]:
        """
        Find connections that haven't sent a heartbeat recently.

        Args:
            timeout_seconds: Seconds since last heartbeat to consider stale

        Returns:
            List of stale WebSocket connections
        """
        cutoff = _utcnow() - timedelta(seconds=timeout_seconds)
        return [connection for connection, last_beat in list(self.last_heartbeat.items()) if last_beat < cutoff]

    def get_connection_count(self) -> int:
        """Total number of live connections across all rooms."""
        return sum(len(connections) for connections in self.rooms.values())

    def get_user_count(self) -> int:
        """Number of users with at least one live connection."""
        return len(self.rooms)

    def get_user_connections(self, user_id: str) -> List[WebSocket]:
        """Snapshot of the connections in a user's room."""
        return list(self.rooms.get(room_for(user_id), []))

    def all_connections(self) -> List[WebSocket]:
        """Snapshot of every live connection."""
        return [connection for connections in list(self.rooms.values()) for connection in list(connections)]


# Global session registry instance
session_registry = SessionRegistry()


async def heartbeat_monitor(
    registry: SessionRegistry,
    interval_seconds: Optional[int] = None,
    timeout_seconds: Optional[int] = None
):
    """
    Background task to send heartbeat pings and close stale connections.

    Sends a ping to every connection each interval; connections that have
    not answered with a pong within the timeout are closed and removed.
    """
    interval_seconds = interval_seconds or settings.ws_heartbeat_interval_seconds
    timeout_seconds = timeout_seconds or settings.ws_heartbeat_timeout_seconds
    logger.info(f"Heartbeat monitor started (interval={interval_seconds}s, timeout={timeout_seconds}s)")

    while True:
        await asyncio.sleep(interval_seconds)

        try:
            ping = {"timestamp": _utcnow().isoformat()}
            for connection in registry.all_connections():
                await registry.send_to_connection(connection, "ping", ping)

            for connection in registry.get_stale_connections(timeout_seconds):
                identity = registry.identity_for(connection)
                logger.warning(f"Closing stale connection for user {identity.id if identity else 'unknown'}")
                try:
                    await connection.close(code=1001, reason="Connection timeout")
                except Exception as e:
                    logger.debug(f"Stale connection already closed: {e}")
                await registry.disconnect(connection, reason="timeout")

            logger.info(
                f"Heartbeat complete: {registry.get_connection_count()} connections, "
                f"{registry.get_user_count()} users"
            )

        except Exception as e:
            logger.error(f"Error in heartbeat monitor: {e}")
