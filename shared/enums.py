"""
Enumerations used throughout the game.
"""
from enum import Enum


class RoomStatus(str, Enum):
    """Lifecycle state of a game room."""
    LOBBY = "lobby"
    IN_GAME = "in_game"
    FINISHED = "finished"


class ValidationReason(str, Enum):
    """Outcome of judging a submitted word."""
    VALID = "valid"
    EMPTY_WORD = "empty_word"
    CHAIN_MISMATCH = "chain_mismatch"
    DUPLICATE_WORD = "duplicate_word"
    NOT_IN_DICTIONARY = "not_in_dictionary"


class LookupStatus(str, Enum):
    """Answer from the external dictionary service."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


class ChangeKind(str, Enum):
    """Kind of committed write reported by the store."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class BroadcastEvent(str, Enum):
    """Application-level hints fanned out to a room ahead of store confirmation."""
    WORD_SUBMITTED = "word_submitted"
    TURN_CHANGED = "turn_changed"
    GAME_STARTED = "game_started"
    GAME_FINISHED = "game_finished"
    FORCE_REFRESH = "force_refresh"
    TYPING_INDICATOR = "typing_indicator"


class ChannelStatus(str, Enum):
    """Status of a room subscription on the real-time channel."""
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


class MessageType(str, Enum):
    """Types of messages between client and server."""
    # Connection
    CONNECT = "CONNECT"
    DISCONNECT = "DISCONNECT"

    # Lobby
    CREATE_ROOM = "CREATE_ROOM"
    JOIN_ROOM = "JOIN_ROOM"
    LEAVE_ROOM = "LEAVE_ROOM"
    LIST_ROOMS = "LIST_ROOMS"
    ROOM_LIST = "ROOM_LIST"

    # Game flow
    START_GAME = "START_GAME"
    FINISH_ROOM = "FINISH_ROOM"
    SUBMIT_WORD = "SUBMIT_WORD"
    MOVE_RESULT = "MOVE_RESULT"
    GET_ROOM_STATE = "GET_ROOM_STATE"
    ROOM_STATE = "ROOM_STATE"

    # Real-time channel
    SUBSCRIBE = "SUBSCRIBE"
    UNSUBSCRIBE = "UNSUBSCRIBE"
    CHANNEL_STATUS = "CHANNEL_STATUS"
    ROOM_CHANGED = "ROOM_CHANGED"
    BROADCAST = "BROADCAST"

    # Solo mode
    SOLO_START = "SOLO_START"
    SOLO_SUBMIT = "SOLO_SUBMIT"
    SOLO_END = "SOLO_END"
    SOLO_STATE = "SOLO_STATE"

    # Statistics
    GET_LEADERBOARD = "GET_LEADERBOARD"
    LEADERBOARD = "LEADERBOARD"

    # Errors
    ERROR = "ERROR"


class ErrorCode(str, Enum):
    """Stable codes carried by ERROR messages."""
    PARSE_ERROR = "PARSE_ERROR"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"
    NOT_CONNECTED = "NOT_CONNECTED"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_EVENT = "INVALID_EVENT"
    FORBIDDEN_EVENT = "FORBIDDEN_EVENT"
    INVALID_SETTINGS = "INVALID_SETTINGS"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    NOT_IN_ROOM = "NOT_IN_ROOM"
    NOT_HOST = "NOT_HOST"
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    ROOM_FULL = "ROOM_FULL"
    ROOM_FINISHED = "ROOM_FINISHED"
    ALREADY_STARTED = "ALREADY_STARTED"
    NOT_IN_GAME = "NOT_IN_GAME"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    STALE_TURN = "STALE_TURN"
    COMMIT_FAILED = "COMMIT_FAILED"
    NO_SOLO_SESSION = "NO_SOLO_SESSION"
    INTERNAL_ERROR = "INTERNAL_ERROR"
