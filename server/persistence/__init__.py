"""
Persistence layer for the WordWave server.

Provides SQLite-based storage for rooms, players, rounds, moves, the
dictionary and player statistics, plus per-room change notifications.
"""

from server.persistence.database import (
    Database,
    get_database,
    init_database
)
from server.persistence.models import (
    UserRecord,
    RoomRecord,
    PlayerRecord,
    RoundRecord,
    MoveRecord,
    LeaderboardEntry,
    SoloStatsRecord,
    RoomSummary,
    RoomAggregate,
    TurnCommit
)
from server.persistence.changes import ChangeFeed, ChangeEvent
from server.persistence.repository import (
    WordWaveRepository,
    StaleTurnError,
    RoomStateError
)


__all__ = [
    # Database
    "Database",
    "get_database",
    "init_database",

    # Models
    "UserRecord",
    "RoomRecord",
    "PlayerRecord",
    "RoundRecord",
    "MoveRecord",
    "LeaderboardEntry",
    "SoloStatsRecord",
    "RoomSummary",
    "RoomAggregate",
    "TurnCommit",

    # Change feed
    "ChangeFeed",
    "ChangeEvent",

    # Repository
    "WordWaveRepository",
    "StaleTurnError",
    "RoomStateError"
]
