"""
Message handler for routing client messages to room actions.

Parses incoming messages, validates them, executes the appropriate
room or solo action, and formats responses and relayed broadcasts.
"""

import logging
from dataclasses import dataclass

from server.persistence import UserRecord, WordWaveRepository
from server.network.room_manager import RoomManager
from server.network.solo_manager import SoloManager
from server.network.connection_manager import ConnectionManager
from shared.protocol import (
    Message,
    ErrorMessage,
    RoomListResponse,
    RoomStateMessage,
    MoveResultMessage,
    ChannelStatusMessage,
    BroadcastMessage,
    SoloStateMessage,
    LeaderboardResponse,
    RoomSettings,
    parse_message,
)
from shared.enums import MessageType, BroadcastEvent, ChannelStatus, ErrorCode


logger = logging.getLogger(__name__)

# Hints a client may relay to the rest of its room
RELAYABLE_EVENTS = {BroadcastEvent.TYPING_INDICATOR, BroadcastEvent.FORCE_REFRESH}


@dataclass
class HandleResult:
    """Result of handling a message."""
    # Response to send back to the requesting user (None if no response needed)
    response: Message | None = None
    # Messages to publish on a room channel
    broadcasts: list[Message] | None = None
    # Room channel the broadcasts go to
    room_id: str | None = None
    # Whether the sender is skipped when publishing
    exclude_sender: bool = True


class MessageHandler:
    """
    Routes incoming messages to room, solo and leaderboard actions.

    Each handler method returns a HandleResult containing a response for
    the sender and, optionally, broadcasts for a room channel.
    """

    def __init__(
        self,
        room_manager: RoomManager,
        solo_manager: SoloManager,
        connection_manager: ConnectionManager,
        repository: WordWaveRepository
    ):
        self._rooms = room_manager
        self._solo = solo_manager
        self._connections = connection_manager
        self._repository = repository

    async def handle_message(
        self,
        user_id: str,
        message: Message | str | dict
    ) -> HandleResult:
        """
        Handle an incoming message from a user.

        Args:
            user_id: ID of the user sending the message
            message: The message (Message object, JSON string, or dict)

        Returns:
            HandleResult with response and broadcasts
        """
        if isinstance(message, str):
            try:
                message = parse_message(message)
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Failed to parse message: {e}")
                return HandleResult(
                    response=ErrorMessage.create(f"Invalid message format: {e}", ErrorCode.PARSE_ERROR.value)
                )
        elif isinstance(message, dict):
            try:
                message = Message.from_dict(message)
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Failed to parse message dict: {e}")
                return HandleResult(
                    response=ErrorMessage.create(f"Invalid message format: {e}", ErrorCode.PARSE_ERROR.value)
                )

        handler = self._get_handler(message.type)
        if not handler:
            return HandleResult(
                response=ErrorMessage.create(
                    f"Unknown message type: {message.type.value}",
                    ErrorCode.UNKNOWN_MESSAGE_TYPE.value,
                    message.request_id
                )
            )

        try:
            result = await handler(user_id, message)

            # Preserve request_id in response
            if result.response and message.request_id:
                result.response.request_id = message.request_id

            return result

        except Exception as e:
            logger.exception(f"Error handling message {message.type}: {e}")
            return HandleResult(
                response=ErrorMessage.create(
                    f"Internal error: {e}",
                    ErrorCode.INTERNAL_ERROR.value,
                    message.request_id
                )
            )

    def _get_handler(self, message_type: MessageType):
        """Get the handler method for a message type."""
        handlers = {
            # Lobby
            MessageType.LIST_ROOMS: self._handle_list_rooms,
            MessageType.CREATE_ROOM: self._handle_create_room,
            MessageType.JOIN_ROOM: self._handle_join_room,
            MessageType.LEAVE_ROOM: self._handle_leave_room,

            # Game flow
            MessageType.START_GAME: self._handle_start_game,
            MessageType.FINISH_ROOM: self._handle_finish_room,
            MessageType.SUBMIT_WORD: self._handle_submit_word,
            MessageType.GET_ROOM_STATE: self._handle_get_room_state,

            # Real-time channel
            MessageType.SUBSCRIBE: self._handle_subscribe,
            MessageType.UNSUBSCRIBE: self._handle_unsubscribe,
            MessageType.BROADCAST: self._handle_broadcast,

            # Solo
            MessageType.SOLO_START: self._handle_solo_start,
            MessageType.SOLO_SUBMIT: self._handle_solo_submit,
            MessageType.SOLO_END: self._handle_solo_end,

            # Statistics
            MessageType.GET_LEADERBOARD: self._handle_get_leaderboard,
        }
        return handlers.get(message_type)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _get_user(self, user_id: str) -> UserRecord:
        """Identity of the sender, as announced on CONNECT."""
        connection = self._connections.get_connection_by_user_id(user_id)
        if connection:
            return UserRecord(
                id=user_id,
                display_name=connection.display_name,
                avatar_url=connection.avatar_url,
                is_guest=connection.is_guest,
            )
        stored = self._repository.get_user(user_id)
        return stored or UserRecord(id=user_id, display_name="Player")

    @staticmethod
    def _require_room_id(message: Message) -> tuple[str | None, HandleResult | None]:
        room_id = message.data.get("room_id")
        if not room_id:
            return None, HandleResult(
                response=ErrorMessage.create("room_id is required", ErrorCode.MISSING_FIELD.value)
            )
        return room_id, None

    @staticmethod
    def _error(message: str, code: ErrorCode) -> HandleResult:
        return HandleResult(response=ErrorMessage.create(message, code.value))

    def _state_message(self, room_id: str) -> Message:
        aggregate = self._rooms.get_room_state(room_id)
        if not aggregate:
            return ErrorMessage.create("Room not found", ErrorCode.ROOM_NOT_FOUND.value)
        return RoomStateMessage.create(aggregate.to_dict())

    # =========================================================================
    # Lobby Handlers
    # =========================================================================

    async def _handle_list_rooms(self, user_id: str, message: Message) -> HandleResult:
        """Handle LIST_ROOMS request."""
        status = message.data.get("status", "lobby")
        rooms = self._rooms.list_rooms(status=status or None)
        return HandleResult(
            response=RoomListResponse.create([room.to_dict() for room in rooms])
        )

    async def _handle_create_room(self, user_id: str, message: Message) -> HandleResult:
        """Handle CREATE_ROOM request."""
        name = message.data.get("name", "")
        settings_data = message.data.get("settings") or {}

        try:
            room_settings = RoomSettings.from_dict(settings_data)
        except (TypeError, ValueError) as e:
            return self._error(f"Invalid settings: {e}", ErrorCode.INVALID_SETTINGS)

        success, msg, result = await self._rooms.create_room(
            self._get_user(user_id),
            name,
            room_settings
        )
        if not success:
            return self._error(msg, result)

        return HandleResult(response=RoomStateMessage.create(result.to_dict()))

    async def _handle_join_room(self, user_id: str, message: Message) -> HandleResult:
        """Handle JOIN_ROOM request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        success, msg, result = await self._rooms.join_room(self._get_user(user_id), room_id)
        if not success:
            return self._error(msg, result)

        return HandleResult(response=RoomStateMessage.create(result.to_dict()))

    async def _handle_leave_room(self, user_id: str, message: Message) -> HandleResult:
        """Handle LEAVE_ROOM request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        success, msg, result = await self._rooms.leave_room(user_id, room_id)
        if not success:
            return self._error(msg, result)

        await self._connections.unsubscribe(user_id, room_id)

        return HandleResult(
            response=Message(type=MessageType.LEAVE_ROOM, data={"success": True, "room_id": room_id})
        )

    # =========================================================================
    # Game Flow Handlers
    # =========================================================================

    async def _handle_start_game(self, user_id: str, message: Message) -> HandleResult:
        """Handle START_GAME request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        success, msg, result = await self._rooms.start_game(user_id, room_id)
        if not success:
            return self._error(msg, result)

        return HandleResult(response=RoomStateMessage.create(result.to_dict()))

    async def _handle_finish_room(self, user_id: str, message: Message) -> HandleResult:
        """Handle FINISH_ROOM request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        success, msg, result = await self._rooms.finish_room(user_id, room_id)
        if not success:
            return self._error(msg, result)

        return HandleResult(response=RoomStateMessage.create(result.to_dict()))

    async def _handle_submit_word(self, user_id: str, message: Message) -> HandleResult:
        """Handle SUBMIT_WORD request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        word = message.data.get("word")
        if word is None:
            return self._error("word is required", ErrorCode.MISSING_FIELD)

        success, msg, result = await self._rooms.submit_word(user_id, room_id, str(word))
        if not success:
            return self._error(msg, result)

        return HandleResult(
            response=MoveResultMessage.create(
                is_valid=result.validation.valid,
                reason=result.validation.reason.value,
                points=result.points,
                required_start_char=result.validation.required_start_char,
                next_turn=result.next_turn,
                move=result.move.to_dict() if result.move else None,
            )
        )

    async def _handle_get_room_state(self, user_id: str, message: Message) -> HandleResult:
        """Handle GET_ROOM_STATE request (authoritative read)."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        return HandleResult(response=self._state_message(room_id))

    # =========================================================================
    # Channel Handlers
    # =========================================================================

    async def _handle_subscribe(self, user_id: str, message: Message) -> HandleResult:
        """Handle SUBSCRIBE request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        if not self._rooms.get_room_state(room_id):
            return HandleResult(
                response=ChannelStatusMessage.create(room_id, ChannelStatus.CHANNEL_ERROR)
            )

        subscribed = await self._connections.subscribe(user_id, room_id)
        status = ChannelStatus.SUBSCRIBED if subscribed else ChannelStatus.CHANNEL_ERROR
        return HandleResult(response=ChannelStatusMessage.create(room_id, status))

    async def _handle_unsubscribe(self, user_id: str, message: Message) -> HandleResult:
        """Handle UNSUBSCRIBE request."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        await self._connections.unsubscribe(user_id, room_id)
        return HandleResult(response=ChannelStatusMessage.create(room_id, ChannelStatus.CLOSED))

    async def _handle_broadcast(self, user_id: str, message: Message) -> HandleResult:
        """Relay a client hint (typing indicator, force refresh) to the room."""
        room_id, error = self._require_room_id(message)
        if error:
            return error

        try:
            event = BroadcastEvent(message.data.get("event"))
        except ValueError:
            return self._error("Unknown broadcast event", ErrorCode.INVALID_EVENT)

        if event not in RELAYABLE_EVENTS:
            return self._error(f"Clients may not send {event.value}", ErrorCode.FORBIDDEN_EVENT)

        if not self._connections.is_subscribed(user_id, room_id):
            return self._error("Subscribe to the room first", ErrorCode.NOT_IN_ROOM)

        return HandleResult(
            broadcasts=[
                BroadcastMessage.create(room_id, event, message.data.get("payload"), user_id)
            ],
            room_id=room_id,
            exclude_sender=event == BroadcastEvent.TYPING_INDICATOR,
        )

    # =========================================================================
    # Solo Handlers
    # =========================================================================

    async def _handle_solo_start(self, user_id: str, message: Message) -> HandleResult:
        """Handle SOLO_START request."""
        session = self._solo.start(self._get_user(user_id))
        return HandleResult(response=SoloStateMessage.create(session.to_dict()))

    async def _handle_solo_submit(self, user_id: str, message: Message) -> HandleResult:
        """Handle SOLO_SUBMIT request."""
        word = message.data.get("word")
        if word is None:
            return self._error("word is required", ErrorCode.MISSING_FIELD)

        success, msg, result = await self._solo.submit(user_id, str(word))
        if not success:
            return self._error(msg, result)

        return HandleResult(response=SoloStateMessage.create(result.to_dict()))

    async def _handle_solo_end(self, user_id: str, message: Message) -> HandleResult:
        """Handle SOLO_END request."""
        success, msg, result = self._solo.end(user_id)
        if not success:
            return self._error(msg, result)

        return HandleResult(response=SoloStateMessage.create(result.to_dict()))

    # =========================================================================
    # Statistics Handlers
    # =========================================================================

    async def _handle_get_leaderboard(self, user_id: str, message: Message) -> HandleResult:
        """Handle GET_LEADERBOARD request."""
        limit = int(message.data.get("limit", 20))
        return HandleResult(
            response=LeaderboardResponse.create(
                multiplayer=[entry.to_dict() for entry in self._repository.get_leaderboard(limit)],
                solo=[entry.to_dict() for entry in self._repository.get_solo_leaderboard(limit)],
            )
        )
