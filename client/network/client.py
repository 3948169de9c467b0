"""
WebSocket client for connecting to the WordWave server.

Handles connection, reconnection, request/response pairing and per-room
channel subscriptions. Room listeners receive ROOM_CHANGED, BROADCAST
and CHANNEL_STATUS messages for their room.
"""

import asyncio
import json
import logging
import uuid
from enum import Enum, auto
from typing import Callable

import websockets
from websockets.asyncio.client import ClientConnection, connect

from client.config import ClientSettings, settings as default_settings
from shared.protocol import (
    Message,
    ListRoomsRequest,
    CreateRoomRequest,
    JoinRoomRequest,
    LeaveRoomRequest,
    StartGameRequest,
    FinishRoomRequest,
    SubmitWordRequest,
    GetRoomStateRequest,
    SubscribeRequest,
    UnsubscribeRequest,
    BroadcastMessage,
    RoomSettings,
)
from shared.enums import MessageType, BroadcastEvent, ChannelStatus


logger = logging.getLogger(__name__)

RoomListener = Callable[[dict], None]


class ConnectionState(Enum):
    """Connection state."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    FAILED = auto()


def _status_message(room_id: str, status: ChannelStatus) -> dict:
    return {
        "type": MessageType.CHANNEL_STATUS.value,
        "data": {"room_id": room_id, "status": status.value},
    }


class NetworkClient:
    """
    WebSocket client for WordWave server communication.

    Callbacks (all optional, called on the event loop):
    - on_connection_changed(ConnectionState)
    - on_message(dict): every server message that is not a response
    - on_error(str)
    """

    def __init__(self, client_settings: ClientSettings | None = None):
        self._settings = client_settings or default_settings

        self._websocket: ClientConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._user_id: str | None = None
        self._display_name: str | None = None
        self._avatar_url: str | None = None
        self._is_guest = False

        self._receive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._should_reconnect = True

        # Pending requests waiting for responses
        self._pending_requests: dict[str, asyncio.Future] = {}

        # room_id -> listener
        self._room_listeners: dict[str, RoomListener] = {}

        self.on_connection_changed: Callable[[ConnectionState], None] | None = None
        self.on_message: Callable[[dict], None] | None = None
        self.on_error: Callable[[str], None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def display_name(self) -> str | None:
        return self._display_name

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify."""
        if self._state != state:
            self._state = state
            if self.on_connection_changed:
                self.on_connection_changed(state)

    def _emit_error(self, error: str) -> None:
        logger.warning(error)
        if self.on_error:
            self.on_error(error)

    async def connect(
        self,
        display_name: str,
        user_id: str | None = None,
        avatar_url: str | None = None,
        is_guest: bool = False
    ) -> bool:
        """
        Connect to the server.

        Args:
            display_name: Display name for this user
            user_id: Optional user ID for reconnection
            avatar_url: Optional avatar
            is_guest: Guests play without statistics

        Returns:
            True if connection successful
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return self._state == ConnectionState.CONNECTED

        self._display_name = display_name
        self._user_id = user_id or str(uuid.uuid4())
        self._avatar_url = avatar_url
        self._is_guest = is_guest
        self._should_reconnect = True

        return await self._do_connect()

    async def _do_connect(self) -> bool:
        """Perform the actual connection."""
        self._set_state(ConnectionState.CONNECTING)

        try:
            self._websocket = await connect(
                self._settings.server_url,
                ping_interval=30,
                ping_timeout=10,
            )

            await self._websocket.send(Message(
                type=MessageType.CONNECT,
                data={
                    "user_id": self._user_id,
                    "display_name": self._display_name,
                    "avatar_url": self._avatar_url,
                    "is_guest": self._is_guest,
                },
            ).to_json())

            response = await asyncio.wait_for(self._websocket.recv(), timeout=self._settings.request_timeout)
            data = json.loads(response)

            if data.get("type") == MessageType.CONNECT.value and data.get("data", {}).get("success"):
                self._set_state(ConnectionState.CONNECTED)
                self._receive_task = asyncio.create_task(self._receive_loop())
                logger.info(f"Connected as {self._display_name} ({self._user_id})")
                return True

            self._emit_error(data.get("data", {}).get("message", "Connection rejected"))
            self._set_state(ConnectionState.FAILED)
            return False

        except asyncio.TimeoutError:
            self._emit_error("Connection timeout")
            self._set_state(ConnectionState.FAILED)
            return False
        except (OSError, websockets.WebSocketException, json.JSONDecodeError) as e:
            self._emit_error(f"Connection failed: {e}")
            self._set_state(ConnectionState.FAILED)
            return False

    async def disconnect(self) -> None:
        """Disconnect from the server."""
        self._should_reconnect = False

        websocket = self._websocket
        if websocket:
            await websocket.close()
            self._websocket = None

        for task in (self._receive_task, self._reconnect_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._receive_task = None
        self._reconnect_task = None

        self._fail_pending()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Disconnected from server")

    async def _receive_loop(self) -> None:
        """Receive messages from server."""
        try:
            async for raw_message in self._websocket:
                try:
                    data = json.loads(raw_message)
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse message: {e}")
                    continue
                self._handle_message(data)

        except websockets.ConnectionClosed:
            logger.info("Connection closed by server")
        finally:
            self._websocket = None
            self._fail_pending()
            self._notify_rooms(ChannelStatus.CLOSED)
            if self._should_reconnect:
                self._reconnect_task = asyncio.create_task(self._reconnect())
            else:
                self._set_state(ConnectionState.DISCONNECTED)

    def _handle_message(self, data: dict) -> None:
        """Route an incoming message to a waiting request, a room listener or on_message."""
        request_id = data.get("request_id")

        if request_id and request_id in self._pending_requests:
            future = self._pending_requests.pop(request_id)
            if not future.done():
                future.set_result(data)
            return

        msg_type = data.get("type")
        if msg_type in (
            MessageType.ROOM_CHANGED.value,
            MessageType.BROADCAST.value,
            MessageType.CHANNEL_STATUS.value,
        ):
            listener = self._room_listeners.get(data.get("data", {}).get("room_id"))
            if listener:
                listener(data)
                return

        if msg_type == MessageType.ERROR.value:
            self._emit_error(data.get("data", {}).get("message", "Unknown error"))

        if self.on_message:
            self.on_message(data)

    def _notify_rooms(self, status: ChannelStatus) -> None:
        for room_id, listener in list(self._room_listeners.items()):
            listener(_status_message(room_id, status))

    def _fail_pending(self) -> None:
        for future in self._pending_requests.values():
            if not future.done():
                future.cancel()
        self._pending_requests.clear()

    async def _reconnect(self) -> None:
        """Attempt to reconnect to the server."""
        self._set_state(ConnectionState.RECONNECTING)

        for attempt in range(self._settings.reconnect_attempts):
            logger.info(f"Reconnection attempt {attempt + 1}/{self._settings.reconnect_attempts}")

            await asyncio.sleep(self._settings.reconnect_delay)

            if not self._should_reconnect:
                break

            if await self._do_connect():
                return

        self._set_state(ConnectionState.FAILED)
        self._emit_error("Failed to reconnect to server")

    async def send(self, message: Message | dict) -> bool:
        """
        Send a message to the server.

        Returns:
            True if the message was written to the socket
        """
        if not self._websocket or self._state != ConnectionState.CONNECTED:
            self._emit_error("Not connected to server")
            return False

        data = message.to_json() if isinstance(message, Message) else json.dumps(message)
        try:
            await self._websocket.send(data)
            return True
        except websockets.ConnectionClosed as e:
            self._emit_error(f"Failed to send: {e}")
            return False

    async def send_and_wait(
        self,
        message: Message,
        timeout: float | None = None
    ) -> dict | None:
        """
        Send a message and wait for the response.

        Returns:
            Response data or None on timeout/error
        """
        if not message.request_id:
            message.request_id = str(uuid.uuid4())
        request_id = message.request_id

        future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            if not await self.send(message):
                return None
            return await asyncio.wait_for(future, timeout=timeout or self._settings.request_timeout)
        except asyncio.TimeoutError:
            self._emit_error("Request timed out")
            return None
        except asyncio.CancelledError:
            if future.cancelled():
                # Connection dropped while waiting
                return None
            raise
        finally:
            self._pending_requests.pop(request_id, None)

    # =========================================================================
    # Room channel
    # =========================================================================

    async def subscribe(self, room_id: str, listener: RoomListener) -> None:
        """
        Subscribe to a room's channel.

        The outcome is reported to listener as a CHANNEL_STATUS message:
        SUBSCRIBED, CHANNEL_ERROR, or TIMED_OUT if the server never answered.
        """
        self._room_listeners[room_id] = listener

        if not self.is_connected:
            listener(_status_message(room_id, ChannelStatus.CHANNEL_ERROR))
            return

        request = SubscribeRequest.create(room_id, request_id=str(uuid.uuid4()))
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[request.request_id] = future
        try:
            if not await self.send(request):
                status = ChannelStatus.CHANNEL_ERROR
            else:
                response = await asyncio.wait_for(future, timeout=self._settings.request_timeout)
                if response.get("type") == MessageType.CHANNEL_STATUS.value:
                    status = ChannelStatus(response["data"]["status"])
                else:
                    status = ChannelStatus.CHANNEL_ERROR
        except asyncio.TimeoutError:
            status = ChannelStatus.TIMED_OUT
        except asyncio.CancelledError:
            if not future.cancelled():
                raise
            status = ChannelStatus.CLOSED
        finally:
            self._pending_requests.pop(request.request_id, None)

        # Unsubscribed while the request was in flight
        if self._room_listeners.get(room_id) is listener:
            listener(_status_message(room_id, status))

    async def unsubscribe(self, room_id: str) -> None:
        """Stop listening to a room's channel."""
        self._room_listeners.pop(room_id, None)
        if self.is_connected:
            await self.send(UnsubscribeRequest.create(room_id))

    async def fetch_room(self, room_id: str) -> dict | None:
        """Authoritative read of the room aggregate."""
        response = await self.send_and_wait(GetRoomStateRequest.create(room_id))
        if response and response.get("type") == MessageType.ROOM_STATE.value:
            return response.get("data")
        return None

    async def send_broadcast(self, room_id: str, event: BroadcastEvent, payload: dict | None = None) -> bool:
        """Relay a hint to the other subscribers of a room."""
        message = BroadcastMessage.create(room_id, event, payload, self._user_id)
        return await self.send(message)

    # =========================================================================
    # Convenience methods for common actions
    # =========================================================================

    async def _room_request(self, message: Message) -> dict | None:
        response = await self.send_and_wait(message)
        if response and response.get("type") == MessageType.ROOM_STATE.value:
            return response.get("data")
        return None

    async def list_rooms(self, status: str | None = None) -> list | None:
        """Get list of rooms waiting in the lobby."""
        response = await self.send_and_wait(ListRoomsRequest.create(status))
        if response and response.get("type") == MessageType.ROOM_LIST.value:
            return response.get("data", {}).get("rooms", [])
        return None

    async def create_room(self, name: str, room_settings: RoomSettings | None = None) -> dict | None:
        """Create a new room, joining it as host."""
        settings_data = room_settings.to_dict() if room_settings else None
        return await self._room_request(CreateRoomRequest.create(name, settings_data))

    async def join_room(self, room_id: str) -> dict | None:
        """Join an existing room."""
        return await self._room_request(JoinRoomRequest.create(room_id))

    async def leave_room(self, room_id: str) -> bool:
        """Leave a room."""
        response = await self.send_and_wait(LeaveRoomRequest.create(room_id))
        return bool(response and response.get("data", {}).get("success"))

    async def start_game(self, room_id: str) -> dict | None:
        """Start the game (host only)."""
        return await self._room_request(StartGameRequest.create(room_id))

    async def finish_room(self, room_id: str) -> dict | None:
        """End the game early (host only)."""
        return await self._room_request(FinishRoomRequest.create(room_id))

    async def submit_word(self, room_id: str, word: str) -> dict | None:
        """
        Submit a word for the current turn.

        Returns:
            The MOVE_RESULT data, or the ERROR data if the server refused
        """
        response = await self.send_and_wait(SubmitWordRequest.create(room_id, word))
        if response:
            return response.get("data")
        return None
