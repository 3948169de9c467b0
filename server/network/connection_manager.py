"""
Connection manager for WebSocket clients.

Tracks connected users and their room subscriptions. This is the
real-time channel: messages published to a room reach every connection
subscribed to it.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from websockets.asyncio.server import ServerConnection

from shared.protocol import Message


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserConnection:
    """Tracks a connected user's state."""
    user_id: str
    display_name: str
    websocket: ServerConnection
    avatar_url: str | None = None
    is_guest: bool = False
    rooms: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)

    def update_activity(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = _now()


class ConnectionManager:
    """
    Manages WebSocket connections and per-room subscriptions.

    Provides methods for:
    - Tracking user connections
    - Subscribing connections to rooms
    - Sending messages to specific users
    - Publishing messages to every subscriber of a room
    """

    def __init__(self):
        # websocket -> UserConnection
        self._connections: dict[ServerConnection, UserConnection] = {}

        # user_id -> websocket (for quick lookup)
        self._user_to_socket: dict[str, ServerConnection] = {}

        # room_id -> set of subscribed user_ids
        self._room_subscribers: dict[str, set[str]] = {}

        self._lock = asyncio.Lock()

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    async def connect(
        self,
        websocket: ServerConnection,
        user_id: str,
        display_name: str,
        avatar_url: str | None = None,
        is_guest: bool = False
    ) -> UserConnection:
        """
        Register a user connection.

        A user connecting again from a new socket replaces the old socket;
        room subscriptions are carried over.
        """
        async with self._lock:
            old_socket = self._user_to_socket.get(user_id)
            previous = self._connections.pop(old_socket, None) if old_socket else None

            connection = UserConnection(
                user_id=user_id,
                display_name=display_name,
                websocket=websocket,
                avatar_url=avatar_url,
                is_guest=is_guest,
            )
            if previous:
                connection.rooms = previous.rooms
                logger.info(f"User {display_name} ({user_id}) reconnected")
            else:
                logger.info(f"User {display_name} ({user_id}) connected")

            self._connections[websocket] = connection
            self._user_to_socket[user_id] = websocket

            return connection

    async def disconnect(self, websocket: ServerConnection) -> UserConnection | None:
        """
        Drop a connection and all of its room subscriptions.

        Returns:
            The UserConnection if found, None otherwise
        """
        async with self._lock:
            connection = self._connections.pop(websocket, None)
            if not connection:
                return None

            if self._user_to_socket.get(connection.user_id) is websocket:
                del self._user_to_socket[connection.user_id]
                for room_id in list(connection.rooms):
                    self._unsubscribe_internal(connection.user_id, room_id)

            logger.info(f"User {connection.display_name} ({connection.user_id}) disconnected")
            return connection

    # =========================================================================
    # Room Subscriptions
    # =========================================================================

    async def subscribe(self, user_id: str, room_id: str) -> bool:
        """
        Subscribe a connected user to a room's channel.

        Returns:
            True if successful, False if the user is not connected
        """
        async with self._lock:
            connection = self.get_connection_by_user_id(user_id)
            if not connection:
                return False

            connection.rooms.add(room_id)
            self._room_subscribers.setdefault(room_id, set()).add(user_id)

            logger.debug(f"User {user_id} subscribed to room {room_id}")
            return True

    async def unsubscribe(self, user_id: str, room_id: str) -> bool:
        """
        Drop a user's subscription to a room.

        Returns:
            True if the user was subscribed
        """
        async with self._lock:
            return self._unsubscribe_internal(user_id, room_id)

    def _unsubscribe_internal(self, user_id: str, room_id: str) -> bool:
        """Internal helper to remove a subscription (no lock)."""
        connection = self.get_connection_by_user_id(user_id)
        if connection:
            connection.rooms.discard(room_id)

        subscribers = self._room_subscribers.get(room_id)
        if not subscribers or user_id not in subscribers:
            return False

        subscribers.discard(user_id)
        if not subscribers:
            del self._room_subscribers[room_id]
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get_connection(self, websocket: ServerConnection) -> UserConnection | None:
        """Get connection info for a websocket."""
        return self._connections.get(websocket)

    def get_connection_by_user_id(self, user_id: str) -> UserConnection | None:
        """Get connection info for a user ID."""
        websocket = self._user_to_socket.get(user_id)
        if websocket:
            return self._connections.get(websocket)
        return None

    def get_user_id(self, websocket: ServerConnection) -> str | None:
        """Get user ID for a websocket."""
        connection = self._connections.get(websocket)
        return connection.user_id if connection else None

    def get_subscribers(self, room_id: str) -> set[str]:
        """Get all user IDs subscribed to a room."""
        return self._room_subscribers.get(room_id, set()).copy()

    def is_user_connected(self, user_id: str) -> bool:
        """Check if a user is currently connected."""
        return user_id in self._user_to_socket

    def is_subscribed(self, user_id: str, room_id: str) -> bool:
        return user_id in self._room_subscribers.get(room_id, set())

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_to_user(self, user_id: str, message: Message | dict | str) -> bool:
        """
        Send a message to a specific user.

        Returns:
            True if sent successfully, False if the user is not connected
        """
        websocket = self._user_to_socket.get(user_id)
        if not websocket:
            return False

        return await self._send_to_websocket(websocket, message)

    async def send_to_connection(
        self,
        websocket: ServerConnection,
        message: Message | dict | str
    ) -> bool:
        """Send a message to a specific websocket connection."""
        return await self._send_to_websocket(websocket, message)

    async def publish(
        self,
        room_id: str,
        message: Message | dict | str,
        exclude_user_id: str | None = None
    ) -> int:
        """
        Publish a message to every subscriber of a room.

        Args:
            room_id: The room channel
            message: Message object, dict, or JSON string
            exclude_user_id: Optional user to skip (usually the sender)

        Returns:
            Number of connections the message was sent to
        """
        sent_count = 0

        for user_id in self.get_subscribers(room_id):
            if exclude_user_id and user_id == exclude_user_id:
                continue

            if await self.send_to_user(user_id, message):
                sent_count += 1

        return sent_count

    async def broadcast_to_all(self, message: Message | dict | str) -> int:
        """Send a message to every connection."""
        sent_count = 0
        for websocket in list(self._connections.keys()):
            if await self._send_to_websocket(websocket, message):
                sent_count += 1
        return sent_count

    async def _send_to_websocket(
        self,
        websocket: ServerConnection,
        message: Message | dict | str
    ) -> bool:
        """Internal helper to send a message to a websocket."""
        try:
            if isinstance(message, Message):
                data = message.to_json()
            elif isinstance(message, dict):
                data = json.dumps(message)
            else:
                data = message

            await websocket.send(data)

            connection = self._connections.get(websocket)
            if connection:
                connection.update_activity()

            return True

        except Exception as e:
            logger.error(f"Failed to send message: {e}")
            return False

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return {
            "total_connections": len(self._connections),
            "total_users": len(self._user_to_socket),
            "subscribed_rooms": len(self._room_subscribers),
            "subscribers_per_room": {
                room_id: len(users)
                for room_id, users in self._room_subscribers.items()
            },
        }
