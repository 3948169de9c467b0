"""
Message protocol for client-server communication.

All messages are JSON objects with a "type" field and optional "data" field.
"""

from dataclasses import dataclass, field, asdict
from typing import Any
import json

from shared.constants import (
    DEFAULT_MAX_PLAYERS,
    DEFAULT_ROUND_TIME,
    DEFAULT_ROUNDS,
    MIN_PLAYERS,
    MAX_PLAYERS,
    MIN_ROUND_TIME,
    MAX_ROUND_TIME,
    MIN_ROUNDS,
    MAX_ROUNDS,
)
from shared.enums import MessageType, BroadcastEvent, ChannelStatus


@dataclass
class Message:
    """Base message structure for all client-server communication."""
    type: MessageType
    data: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None  # Optional, for matching requests to responses

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps(self.to_dict())

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "data": self.data,
            "request_id": self.request_id,
        }

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        raw = json.loads(json_str)
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        """Create message from dictionary."""
        return cls(
            type=MessageType(raw["type"]),
            data=raw.get("data") or {},
            request_id=raw.get("request_id"),
        )


@dataclass
class ErrorMessage(Message):
    """Error response message."""
    type: MessageType = MessageType.ERROR

    @classmethod
    def create(cls, message: str, code: str = "ERROR", request_id: str | None = None) -> "ErrorMessage":
        """Create an error message."""
        return cls(
            data={"message": message, "code": code},
            request_id=request_id,
        )


# =============================================================================
# Lobby Messages (Client -> Server)
# =============================================================================

@dataclass
class ListRoomsRequest(Message):
    """Request list of rooms, lobby rooms by default."""
    type: MessageType = MessageType.LIST_ROOMS

    @classmethod
    def create(cls, status: str | None = None, request_id: str | None = None) -> "ListRoomsRequest":
        data = {}
        if status:
            data["status"] = status
        return cls(data=data, request_id=request_id)


@dataclass
class CreateRoomRequest(Message):
    """Request to create a new room; the sender becomes host."""
    type: MessageType = MessageType.CREATE_ROOM

    @classmethod
    def create(
        cls,
        name: str,
        settings: dict | None = None,
        request_id: str | None = None
    ) -> "CreateRoomRequest":
        return cls(
            data={"name": name, "settings": settings or {}},
            request_id=request_id,
        )


@dataclass
class JoinRoomRequest(Message):
    """Request to join (or rejoin) a room."""
    type: MessageType = MessageType.JOIN_ROOM

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "JoinRoomRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


@dataclass
class LeaveRoomRequest(Message):
    """Request to leave a room."""
    type: MessageType = MessageType.LEAVE_ROOM

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "LeaveRoomRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


@dataclass
class StartGameRequest(Message):
    """Request to start the game (host only)."""
    type: MessageType = MessageType.START_GAME

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "StartGameRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


@dataclass
class FinishRoomRequest(Message):
    """Request to end the game early (host only)."""
    type: MessageType = MessageType.FINISH_ROOM

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "FinishRoomRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


# =============================================================================
# Game Action Messages (Client -> Server)
# =============================================================================

@dataclass
class SubmitWordRequest(Message):
    """Submit a word for the current turn."""
    type: MessageType = MessageType.SUBMIT_WORD

    @classmethod
    def create(cls, room_id: str, word: str, request_id: str | None = None) -> "SubmitWordRequest":
        return cls(data={"room_id": room_id, "word": word}, request_id=request_id)


@dataclass
class GetRoomStateRequest(Message):
    """Authoritative read of a room aggregate."""
    type: MessageType = MessageType.GET_ROOM_STATE

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "GetRoomStateRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


@dataclass
class SubscribeRequest(Message):
    """Subscribe to a room's real-time channel."""
    type: MessageType = MessageType.SUBSCRIBE

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "SubscribeRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


@dataclass
class UnsubscribeRequest(Message):
    """Drop a room subscription."""
    type: MessageType = MessageType.UNSUBSCRIBE

    @classmethod
    def create(cls, room_id: str, request_id: str | None = None) -> "UnsubscribeRequest":
        return cls(data={"room_id": room_id}, request_id=request_id)


# =============================================================================
# Server Response/Broadcast Messages (Server -> Client)
# =============================================================================

@dataclass
class RoomListResponse(Message):
    """Response containing list of rooms."""
    type: MessageType = MessageType.ROOM_LIST

    @classmethod
    def create(cls, rooms: list[dict], request_id: str | None = None) -> "RoomListResponse":
        return cls(data={"rooms": rooms}, request_id=request_id)


@dataclass
class RoomStateMessage(Message):
    """Full room aggregate: room, host, players by turn order, last move."""
    type: MessageType = MessageType.ROOM_STATE

    @classmethod
    def create(cls, room_state: dict, request_id: str | None = None) -> "RoomStateMessage":
        return cls(data=room_state, request_id=request_id)


@dataclass
class MoveResultMessage(Message):
    """Outcome of a word submission, sent to the submitting player."""
    type: MessageType = MessageType.MOVE_RESULT

    @classmethod
    def create(
        cls,
        is_valid: bool,
        reason: str,
        points: int,
        required_start_char: str,
        next_turn: str | None,
        move: dict | None = None,
        request_id: str | None = None
    ) -> "MoveResultMessage":
        return cls(
            data={
                "is_valid": is_valid,
                "reason": reason,
                "points": points,
                "required_start_char": required_start_char,
                "next_turn": next_turn,
                "move": move,
            },
            request_id=request_id,
        )


@dataclass
class ChannelStatusMessage(Message):
    """Status of a room subscription."""
    type: MessageType = MessageType.CHANNEL_STATUS

    @classmethod
    def create(
        cls,
        room_id: str,
        status: ChannelStatus,
        request_id: str | None = None
    ) -> "ChannelStatusMessage":
        return cls(
            data={"room_id": room_id, "status": status.value},
            request_id=request_id,
        )


@dataclass
class RoomChangedMessage(Message):
    """Store change notification scoped to a room."""
    type: MessageType = MessageType.ROOM_CHANGED

    @classmethod
    def create(cls, room_id: str, table: str, kind: str, row: dict | None) -> "RoomChangedMessage":
        return cls(data={
            "room_id": room_id,
            "table": table,
            "kind": kind,
            "row": row,
        })


@dataclass
class BroadcastMessage(Message):
    """Application-level hint relayed to every subscriber of a room."""
    type: MessageType = MessageType.BROADCAST

    @classmethod
    def create(
        cls,
        room_id: str,
        event: BroadcastEvent,
        payload: dict | None = None,
        sender_id: str | None = None
    ) -> "BroadcastMessage":
        return cls(data={
            "room_id": room_id,
            "event": event.value,
            "payload": payload or {},
            "sender_id": sender_id,
        })


@dataclass
class SoloStateMessage(Message):
    """Snapshot of a solo session."""
    type: MessageType = MessageType.SOLO_STATE

    @classmethod
    def create(cls, state: dict, request_id: str | None = None) -> "SoloStateMessage":
        return cls(data=state, request_id=request_id)


@dataclass
class LeaderboardResponse(Message):
    """Top multiplayer and solo aggregates."""
    type: MessageType = MessageType.LEADERBOARD

    @classmethod
    def create(
        cls,
        multiplayer: list[dict],
        solo: list[dict],
        request_id: str | None = None
    ) -> "LeaderboardResponse":
        return cls(
            data={"multiplayer": multiplayer, "solo": solo},
            request_id=request_id,
        )


# =============================================================================
# Room Settings
# =============================================================================

@dataclass
class RoomSettings:
    """Settings for a room, configured by the host at creation."""
    max_players: int = DEFAULT_MAX_PLAYERS
    round_time_seconds: int = DEFAULT_ROUND_TIME
    rounds: int = DEFAULT_ROUNDS

    def to_dict(self) -> dict:
        return asdict(self)

    def validate(self) -> tuple[bool, str]:
        """Check the settings against the allowed ranges."""
        if not MIN_PLAYERS <= self.max_players <= MAX_PLAYERS:
            return False, f"max_players must be between {MIN_PLAYERS} and {MAX_PLAYERS}"
        if not MIN_ROUND_TIME <= self.round_time_seconds <= MAX_ROUND_TIME:
            return False, (
                f"round_time_seconds must be between {MIN_ROUND_TIME} and {MAX_ROUND_TIME}"
            )
        if not MIN_ROUNDS <= self.rounds <= MAX_ROUNDS:
            return False, f"rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}"
        return True, ""

    @classmethod
    def from_dict(cls, data: dict) -> "RoomSettings":
        return cls(
            max_players=int(data.get("max_players", DEFAULT_MAX_PLAYERS)),
            round_time_seconds=int(data.get("round_time_seconds", DEFAULT_ROUND_TIME)),
            rounds=int(data.get("rounds", DEFAULT_ROUNDS)),
        )


# =============================================================================
# Helper function for parsing incoming messages
# =============================================================================

def parse_message(json_str: str) -> Message:
    """
    Parse a JSON string into a Message.

    The message handler uses the type field to determine how to process it.
    """
    return Message.from_json(json_str)
