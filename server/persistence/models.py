"""
Data models for database operations.

These are simple dataclasses that map to database rows.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any


@dataclass
class UserRecord:
    """Opaque identity supplied by the auth collaborator."""
    id: str
    display_name: str
    avatar_url: str | None = None
    is_guest: bool = False
    created_at: datetime | None = None
    last_seen: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            display_name=row["display_name"],
            avatar_url=row["avatar_url"],
            is_guest=bool(row["is_guest"]),
            created_at=row["created_at"],
            last_seen=row["last_seen"]
        )


@dataclass
class RoomRecord:
    """Database representation of a room."""
    id: str
    host_id: str
    name: str
    max_players: int = 4
    round_time_seconds: int = 15
    rounds: int = 10
    status: str = "lobby"
    current_round: int = 0
    current_player_turn: str | None = None
    last_word: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RoomRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            host_id=row["host_id"],
            name=row["name"],
            max_players=row["max_players"],
            round_time_seconds=row["round_time_seconds"],
            rounds=row["rounds"],
            status=row["status"],
            current_round=row["current_round"],
            current_player_turn=row["current_player_turn"],
            last_word=row["last_word"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PlayerRecord:
    """Database representation of a player seat in a room."""
    id: str
    room_id: str
    user_id: str
    display_name: str
    turn_order: int
    avatar_url: str | None = None
    score: int = 0
    is_active: bool = True
    eliminated_at: datetime | None = None
    joined_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PlayerRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            room_id=row["room_id"],
            user_id=row["user_id"],
            display_name=row["display_name"],
            turn_order=row["turn_order"],
            avatar_url=row["avatar_url"],
            score=row["score"],
            is_active=bool(row["is_active"]),
            eliminated_at=row["eliminated_at"],
            joined_at=row["joined_at"]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RoundRecord:
    """Database representation of a round."""
    id: str
    room_id: str
    round_number: int
    started_at: datetime | None = None
    ended_at: datetime | None = None
    winner_id: str | None = None
    turns_taken: int = 0

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RoundRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            room_id=row["room_id"],
            round_number=row["round_number"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            winner_id=row["winner_id"],
            turns_taken=row["turns_taken"]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MoveRecord:
    """A word submission. Moves are append-only."""
    id: str
    round_id: str
    room_id: str
    player_id: str | None
    user_id: str
    word: str
    normalized_word: str
    submitted_at: str
    is_valid: bool
    validation_reason: str
    time_taken_ms: int = 0
    points_awarded: int = 0
    chain_valid: bool = False
    seq: int = 0
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MoveRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            round_id=row["round_id"],
            room_id=row["room_id"],
            player_id=row["player_id"],
            user_id=row["user_id"],
            word=row["word"],
            normalized_word=row["normalized_word"],
            submitted_at=row["submitted_at"],
            is_valid=bool(row["is_valid"]),
            validation_reason=row["validation_reason"],
            time_taken_ms=row["time_taken_ms"],
            points_awarded=row["points_awarded"],
            chain_valid=bool(row["chain_valid"]),
            seq=row["seq"],
            created_at=row["created_at"]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class LeaderboardEntry:
    """Multiplayer aggregate for one user."""
    user_id: str
    total_games: int = 0
    total_wins: int = 0
    total_points: int = 0
    best_word: str | None = None
    display_name: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LeaderboardEntry":
        """Create from database row."""
        return cls(
            user_id=row["user_id"],
            total_games=row["total_games"],
            total_wins=row["total_wins"],
            total_points=row["total_points"],
            best_word=row["best_word"],
            display_name=row.get("display_name"),
            updated_at=row["updated_at"]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SoloStatsRecord:
    """Solo aggregate for one user, separate from the multiplayer board."""
    user_id: str
    total_games: int = 0
    total_points: int = 0
    best_streak: int = 0
    average_time_ms: int = 0
    favorite_word: str | None = None
    display_name: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SoloStatsRecord":
        """Create from database row."""
        return cls(
            user_id=row["user_id"],
            total_games=row["total_games"],
            total_points=row["total_points"],
            best_streak=row["best_streak"],
            average_time_ms=row["average_time_ms"],
            favorite_word=row["favorite_word"],
            display_name=row.get("display_name"),
            updated_at=row["updated_at"]
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RoomSummary:
    """Lightweight room info for listings."""
    id: str
    name: str
    status: str
    host_id: str
    player_count: int
    max_players: int
    round_time_seconds: int
    rounds: int
    created_at: datetime | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RoomAggregate:
    """
    Everything a client needs to render a room: the room, its host, every
    player seat (active and departed), the open round and the last move.
    """
    room: RoomRecord
    players: list[PlayerRecord] = field(default_factory=list)
    open_round: RoundRecord | None = None
    last_move: MoveRecord | None = None
    host: UserRecord | None = None

    @property
    def active_players(self) -> list[PlayerRecord]:
        return sorted(
            (p for p in self.players if p.is_active),
            key=lambda p: p.turn_order
        )

    def player_for(self, user_id: str) -> PlayerRecord | None:
        for player in self.players:
            if player.user_id == user_id:
                return player
        return None

    def to_dict(self) -> dict:
        return {
            "room": self.room.to_dict(),
            "host": asdict(self.host) if self.host else None,
            "players": [p.to_dict() for p in sorted(self.players, key=lambda p: p.turn_order)],
            "open_round": self.open_round.to_dict() if self.open_round else None,
            "last_move": self.last_move.to_dict() if self.last_move else None,
        }


@dataclass
class TurnCommit:
    """
    Everything one turn writes, committed as a single transaction.

    expected_turn and expected_turns_taken are compare-and-set guards: if
    the room has moved on, the commit is rejected as stale.
    """
    room_id: str
    round_id: str
    expected_turn: str
    expected_turns_taken: int
    turns_taken: int
    next_turn: str | None
    current_round: int
    move: MoveRecord | None = None
    last_word: str | None = None
    close_round: bool = False
    next_round_number: int | None = None
    finish: bool = False
    deactivate_player_id: str | None = None
