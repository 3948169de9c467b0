"""
Network layer for the WordWave server.

Provides WebSocket server, connection management, room and solo
management, and message handling.
"""

from server.network.connection_manager import ConnectionManager, UserConnection
from server.network.room_manager import RoomManager, SubmissionOutcome
from server.network.solo_manager import SoloManager
from server.network.message_handler import MessageHandler, HandleResult
from server.network.server import WordWaveServer, run_server


__all__ = [
    "ConnectionManager",
    "UserConnection",
    "RoomManager",
    "SubmissionOutcome",
    "SoloManager",
    "MessageHandler",
    "HandleResult",
    "WordWaveServer",
    "run_server",
]
