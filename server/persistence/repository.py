"""
Repository layer for WordWave persistence operations.

Handles all database CRUD operations. Writes that touch a room publish
ChangeEvents on the change feed once their transaction has committed.
"""

import sqlite3
import uuid
from typing import Iterable

from shared.enums import RoomStatus, ChangeKind
from server.persistence.database import Database, get_database
from server.persistence.changes import ChangeFeed, ChangeEvent
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
    TurnCommit,
)


class StaleTurnError(Exception):
    """The room moved on before this write could commit."""


class RoomStateError(Exception):
    """A lifecycle write found the room in an unexpected state."""


class WordWaveRepository:
    """
    Repository for rooms, players, rounds, moves, the dictionary and
    player statistics.
    """

    def __init__(self, database: Database | None = None, changes: ChangeFeed | None = None):
        self.db = database or get_database()
        self.changes = changes or ChangeFeed()

    def _row(self, conn: sqlite3.Connection, table: str, key: str, value) -> dict | None:
        cursor = conn.execute(f"SELECT * FROM {table} WHERE {key} = ?", (value,))
        row = cursor.fetchone()
        return dict(row) if row else None

    # =========================================================================
    # Users
    # =========================================================================

    def upsert_user(self, user: UserRecord) -> UserRecord:
        """Create or refresh a user identity."""
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO users (id, display_name, avatar_url, is_guest)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    display_name = excluded.display_name,
                    avatar_url = excluded.avatar_url,
                    is_guest = excluded.is_guest,
                    last_seen = CURRENT_TIMESTAMP
                """,
                (user.id, user.display_name, user.avatar_url, int(user.is_guest))
            )
        return user

    def get_user(self, user_id: str) -> UserRecord | None:
        with self.db.get_connection() as conn:
            row = self._row(conn, "users", "id", user_id)
            return UserRecord.from_row(row) if row else None

    # =========================================================================
    # Rooms
    # =========================================================================

    def create_room(self, room: RoomRecord, host: PlayerRecord) -> RoomRecord:
        """Create a room with its host seated at turn order 0."""
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO rooms (id, host_id, name, max_players, round_time_seconds, rounds, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    room.id,
                    room.host_id,
                    room.name,
                    room.max_players,
                    room.round_time_seconds,
                    room.rounds,
                    room.status
                )
            )
            self._insert_player(conn, host)
            events = [
                ChangeEvent("rooms", ChangeKind.INSERT, room.id, self._row(conn, "rooms", "id", room.id)),
                ChangeEvent("players", ChangeKind.INSERT, room.id, self._row(conn, "players", "id", host.id)),
            ]
        self.changes.publish_all(events)
        return self.get_room(room.id)

    def get_room(self, room_id: str) -> RoomRecord | None:
        """Get a room by ID."""
        with self.db.get_connection() as conn:
            row = self._row(conn, "rooms", "id", room_id)
            return RoomRecord.from_row(row) if row else None

    def list_rooms(
        self,
        status: str | None = RoomStatus.LOBBY.value,
        limit: int = 50,
        offset: int = 0
    ) -> list[RoomSummary]:
        """List rooms, newest first, with their active player counts."""
        query = """
            SELECT r.id, r.name, r.status, r.host_id, r.max_players,
                   r.round_time_seconds, r.rounds, r.created_at,
                   COUNT(p.id) AS player_count
            FROM rooms r
            LEFT JOIN players p ON p.room_id = r.id AND p.is_active = 1
            {where}
            GROUP BY r.id
            ORDER BY r.created_at DESC, r.rowid DESC
            LIMIT ? OFFSET ?
        """
        with self.db.get_connection() as conn:
            if status:
                cursor = conn.execute(
                    query.format(where="WHERE r.status = ?"),
                    (status, limit, offset)
                )
            else:
                cursor = conn.execute(query.format(where=""), (limit, offset))

            return [
                RoomSummary(
                    id=row["id"],
                    name=row["name"],
                    status=row["status"],
                    host_id=row["host_id"],
                    player_count=row["player_count"],
                    max_players=row["max_players"],
                    round_time_seconds=row["round_time_seconds"],
                    rounds=row["rounds"],
                    created_at=row["created_at"]
                )
                for row in cursor.fetchall()
            ]

    def delete_room(self, room_id: str) -> bool:
        """Delete a room and all related data (cascades)."""
        with self.db.get_connection() as conn:
            cursor = conn.execute("DELETE FROM rooms WHERE id = ?", (room_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            self.changes.publish(ChangeEvent("rooms", ChangeKind.DELETE, room_id, {"id": room_id}))
        return deleted

    def start_room(self, room_id: str, host_id: str, first_turn: str) -> RoundRecord:
        """
        lobby -> in_game: open round 1 and hand the first turn out.

        Raises:
            RoomStateError: if the room is not a lobby owned by host_id
        """
        round_id = str(uuid.uuid4())
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE rooms
                SET status = 'in_game',
                    started_at = CURRENT_TIMESTAMP,
                    current_round = 1,
                    current_player_turn = ?,
                    last_word = NULL
                WHERE id = ? AND host_id = ? AND status = 'lobby'
                """,
                (first_turn, room_id, host_id)
            )
            if cursor.rowcount == 0:
                raise RoomStateError(f"Room {room_id} cannot be started")

            conn.execute(
                "INSERT INTO rounds (id, room_id, round_number) VALUES (?, ?, 1)",
                (round_id, room_id)
            )
            events = [
                ChangeEvent("rooms", ChangeKind.UPDATE, room_id, self._row(conn, "rooms", "id", room_id)),
                ChangeEvent("rounds", ChangeKind.INSERT, room_id, self._row(conn, "rounds", "id", round_id)),
            ]
        self.changes.publish_all(events)
        return RoundRecord.from_row(events[1].row)

    def finish_room(self, room_id: str, deactivate_player_id: str | None = None) -> bool:
        """
        Move a room to finished, closing its open round.

        Returns False if the room was already finished.
        """
        with self.db.get_connection() as conn:
            events = []
            if deactivate_player_id:
                events.append(self._deactivate(conn, room_id, deactivate_player_id))
            finished = self._finish(conn, room_id, events)
            if not finished:
                conn.rollback()
                return False
        self.changes.publish_all(events)
        return True

    def update_host(self, room_id: str, host_id: str) -> None:
        with self.db.get_connection() as conn:
            conn.execute("UPDATE rooms SET host_id = ? WHERE id = ?", (host_id, room_id))
            row = self._row(conn, "rooms", "id", room_id)
        self.changes.publish(ChangeEvent("rooms", ChangeKind.UPDATE, room_id, row))

    def _finish(self, conn: sqlite3.Connection, room_id: str, events: list[ChangeEvent]) -> bool:
        cursor = conn.execute(
            """
            UPDATE rooms
            SET status = 'finished',
                finished_at = CURRENT_TIMESTAMP,
                current_player_turn = NULL
            WHERE id = ? AND status != 'finished'
            """,
            (room_id,)
        )
        if cursor.rowcount == 0:
            return False

        open_round = conn.execute(
            "SELECT id FROM rounds WHERE room_id = ? AND ended_at IS NULL",
            (room_id,)
        ).fetchone()
        if open_round:
            events.append(self._close_round(conn, room_id, open_round["id"]))

        self._record_game_results(conn, room_id)
        events.append(
            ChangeEvent("rooms", ChangeKind.UPDATE, room_id, self._row(conn, "rooms", "id", room_id))
        )
        return True

    # =========================================================================
    # Players
    # =========================================================================

    def _insert_player(self, conn: sqlite3.Connection, player: PlayerRecord) -> None:
        conn.execute(
            """
            INSERT INTO players (
                id, room_id, user_id, display_name, avatar_url,
                score, turn_order, is_active
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                player.id,
                player.room_id,
                player.user_id,
                player.display_name,
                player.avatar_url,
                player.score,
                player.turn_order,
                int(player.is_active)
            )
        )

    def add_player(self, player: PlayerRecord) -> PlayerRecord:
        """Seat a player in a room."""
        with self.db.get_connection() as conn:
            self._insert_player(conn, player)
            row = self._row(conn, "players", "id", player.id)
        self.changes.publish(ChangeEvent("players", ChangeKind.INSERT, player.room_id, row))
        return PlayerRecord.from_row(row)

    def reactivate_player(self, player_id: str, turn_order: int) -> PlayerRecord:
        """Bring a departed player back at a new turn order, keeping their score."""
        with self.db.get_connection() as conn:
            conn.execute(
                """
                UPDATE players
                SET is_active = 1, eliminated_at = NULL, turn_order = ?
                WHERE id = ?
                """,
                (turn_order, player_id)
            )
            row = self._row(conn, "players", "id", player_id)
        self.changes.publish(ChangeEvent("players", ChangeKind.UPDATE, row["room_id"], row))
        return PlayerRecord.from_row(row)

    def deactivate_player(self, room_id: str, player_id: str) -> None:
        """Soft-remove a player who left a running game."""
        with self.db.get_connection() as conn:
            event = self._deactivate(conn, room_id, player_id)
        self.changes.publish(event)

    def _deactivate(self, conn: sqlite3.Connection, room_id: str, player_id: str) -> ChangeEvent:
        conn.execute(
            """
            UPDATE players
            SET is_active = 0, eliminated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND room_id = ?
            """,
            (player_id, room_id)
        )
        return ChangeEvent("players", ChangeKind.UPDATE, room_id, self._row(conn, "players", "id", player_id))

    def delete_player(self, room_id: str, player_id: str) -> bool:
        """Remove a seat entirely (lobby only)."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM players WHERE id = ? AND room_id = ?",
                (player_id, room_id)
            )
            deleted = cursor.rowcount > 0
        if deleted:
            self.changes.publish(ChangeEvent("players", ChangeKind.DELETE, room_id, {"id": player_id}))
        return deleted

    def get_player(self, room_id: str, user_id: str) -> PlayerRecord | None:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM players WHERE room_id = ? AND user_id = ?",
                (room_id, user_id)
            )
            row = cursor.fetchone()
            return PlayerRecord.from_row(dict(row)) if row else None

    def get_players(self, room_id: str, active_only: bool = False) -> list[PlayerRecord]:
        """Get the players of a room, ordered by turn order."""
        with self.db.get_connection() as conn:
            if active_only:
                cursor = conn.execute(
                    "SELECT * FROM players WHERE room_id = ? AND is_active = 1 ORDER BY turn_order",
                    (room_id,)
                )
            else:
                cursor = conn.execute(
                    "SELECT * FROM players WHERE room_id = ? ORDER BY turn_order",
                    (room_id,)
                )
            return [PlayerRecord.from_row(dict(row)) for row in cursor.fetchall()]

    # =========================================================================
    # Rounds
    # =========================================================================

    def get_open_round(self, room_id: str) -> RoundRecord | None:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM rounds WHERE room_id = ? AND ended_at IS NULL",
                (room_id,)
            )
            row = cursor.fetchone()
            return RoundRecord.from_row(dict(row)) if row else None

    def get_rounds(self, room_id: str) -> list[RoundRecord]:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM rounds WHERE room_id = ? ORDER BY round_number",
                (room_id,)
            )
            return [RoundRecord.from_row(dict(row)) for row in cursor.fetchall()]

    def _close_round(self, conn: sqlite3.Connection, room_id: str, round_id: str) -> ChangeEvent:
        """End a round, crediting whoever scored most in it."""
        winner = conn.execute(
            """
            SELECT user_id, SUM(points_awarded) AS points
            FROM moves
            WHERE round_id = ? AND is_valid = 1
            GROUP BY user_id
            HAVING points > 0
            ORDER BY points DESC, MIN(seq) ASC
            LIMIT 1
            """,
            (round_id,)
        ).fetchone()

        conn.execute(
            "UPDATE rounds SET ended_at = CURRENT_TIMESTAMP, winner_id = ? WHERE id = ?",
            (winner["user_id"] if winner else None, round_id)
        )
        return ChangeEvent("rounds", ChangeKind.UPDATE, room_id, self._row(conn, "rounds", "id", round_id))

    # =========================================================================
    # Moves
    # =========================================================================

    def get_moves(self, room_id: str) -> list[MoveRecord]:
        """All moves of a room in submission order."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM moves WHERE room_id = ? ORDER BY seq",
                (room_id,)
            )
            return [MoveRecord.from_row(dict(row)) for row in cursor.fetchall()]

    def get_valid_words(self, room_id: str) -> list[str]:
        """The room's word chain: normalized valid words in order."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT normalized_word FROM moves WHERE room_id = ? AND is_valid = 1 ORDER BY seq",
                (room_id,)
            )
            return [row["normalized_word"] for row in cursor.fetchall()]

    def get_last_move(self, room_id: str) -> MoveRecord | None:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM moves WHERE room_id = ? ORDER BY seq DESC LIMIT 1",
                (room_id,)
            )
            row = cursor.fetchone()
            return MoveRecord.from_row(dict(row)) if row else None

    # =========================================================================
    # Turn commit
    # =========================================================================

    def commit_turn(self, commit: TurnCommit) -> MoveRecord | None:
        """
        Apply one turn atomically: room turn pointer, optional move,
        score, round bookkeeping and finish.

        Raises:
            StaleTurnError: if the turn was already taken or advanced, or the
                next turn holder is no longer an active player
        """
        with self.db.get_connection() as conn:
            events: list[ChangeEvent] = []

            if commit.next_turn is not None:
                seat = conn.execute(
                    "SELECT 1 FROM players WHERE room_id = ? AND user_id = ? AND is_active = 1",
                    (commit.room_id, commit.next_turn)
                ).fetchone()
                if seat is None:
                    raise StaleTurnError(f"Next turn holder {commit.next_turn} is no longer active in {commit.room_id}")

            cursor = conn.execute(
                """
                UPDATE rooms
                SET current_player_turn = ?,
                    current_round = ?,
                    last_word = COALESCE(?, last_word)
                WHERE id = ? AND status = 'in_game' AND current_player_turn = ?
                """,
                (
                    commit.next_turn,
                    commit.current_round,
                    commit.last_word,
                    commit.room_id,
                    commit.expected_turn
                )
            )
            if cursor.rowcount == 0:
                raise StaleTurnError(f"Turn of {commit.expected_turn} in {commit.room_id} already ended")

            cursor = conn.execute(
                "UPDATE rounds SET turns_taken = ? WHERE id = ? AND turns_taken = ? AND ended_at IS NULL",
                (commit.turns_taken, commit.round_id, commit.expected_turns_taken)
            )
            if cursor.rowcount == 0:
                raise StaleTurnError(f"Round {commit.round_id} moved on")

            move_row = None
            if commit.move:
                move_row = self._insert_move(conn, commit.move)
                events.append(ChangeEvent("moves", ChangeKind.INSERT, commit.room_id, move_row))

                if commit.move.is_valid and commit.move.points_awarded > 0 and commit.move.player_id:
                    conn.execute(
                        "UPDATE players SET score = score + ? WHERE id = ?",
                        (commit.move.points_awarded, commit.move.player_id)
                    )
                    events.append(ChangeEvent(
                        "players", ChangeKind.UPDATE, commit.room_id,
                        self._row(conn, "players", "id", commit.move.player_id)
                    ))

            if commit.deactivate_player_id:
                events.append(self._deactivate(conn, commit.room_id, commit.deactivate_player_id))

            if commit.finish:
                self._finish(conn, commit.room_id, events)
            else:
                if commit.close_round:
                    events.append(self._close_round(conn, commit.room_id, commit.round_id))
                if commit.next_round_number is not None:
                    round_id = str(uuid.uuid4())
                    conn.execute(
                        "INSERT INTO rounds (id, room_id, round_number) VALUES (?, ?, ?)",
                        (round_id, commit.room_id, commit.next_round_number)
                    )
                    events.append(ChangeEvent(
                        "rounds", ChangeKind.INSERT, commit.room_id,
                        self._row(conn, "rounds", "id", round_id)
                    ))
                events.append(ChangeEvent(
                    "rooms", ChangeKind.UPDATE, commit.room_id,
                    self._row(conn, "rooms", "id", commit.room_id)
                ))

        self.changes.publish_all(events)
        return MoveRecord.from_row(move_row) if move_row else None

    def _insert_move(self, conn: sqlite3.Connection, move: MoveRecord) -> dict:
        seq = conn.execute(
            "SELECT COALESCE(MAX(seq), 0) + 1 AS seq FROM moves WHERE room_id = ?",
            (move.room_id,)
        ).fetchone()["seq"]

        conn.execute(
            """
            INSERT INTO moves (
                id, seq, round_id, room_id, player_id, user_id, word,
                normalized_word, submitted_at, is_valid, validation_reason,
                time_taken_ms, points_awarded, chain_valid
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                move.id,
                seq,
                move.round_id,
                move.room_id,
                move.player_id,
                move.user_id,
                move.word,
                move.normalized_word,
                move.submitted_at,
                int(move.is_valid),
                move.validation_reason,
                move.time_taken_ms,
                move.points_awarded if move.is_valid else 0,
                int(move.chain_valid)
            )
        )
        return self._row(conn, "moves", "id", move.id)

    # =========================================================================
    # Aggregate read
    # =========================================================================

    def load_room_aggregate(self, room_id: str) -> RoomAggregate | None:
        """Authoritative read of a room: room, host, players, open round, last move."""
        with self.db.get_connection() as conn:
            room_row = self._row(conn, "rooms", "id", room_id)
            if not room_row:
                return None
            room = RoomRecord.from_row(room_row)

            players = [
                PlayerRecord.from_row(dict(row))
                for row in conn.execute(
                    "SELECT * FROM players WHERE room_id = ? ORDER BY turn_order",
                    (room_id,)
                ).fetchall()
            ]

            round_row = conn.execute(
                "SELECT * FROM rounds WHERE room_id = ? AND ended_at IS NULL",
                (room_id,)
            ).fetchone()

            move_row = conn.execute(
                "SELECT * FROM moves WHERE room_id = ? ORDER BY seq DESC LIMIT 1",
                (room_id,)
            ).fetchone()

            host_row = self._row(conn, "users", "id", room.host_id)

        return RoomAggregate(
            room=room,
            players=players,
            open_round=RoundRecord.from_row(dict(round_row)) if round_row else None,
            last_move=MoveRecord.from_row(dict(move_row)) if move_row else None,
            host=UserRecord.from_row(host_row) if host_row else None,
        )

    # =========================================================================
    # Dictionary
    # =========================================================================

    def has_word(self, word: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute("SELECT 1 FROM dictionary_words WHERE word = ?", (word,))
            return cursor.fetchone() is not None

    def add_words(self, words: Iterable[str], language: str = "en") -> int:
        """Add normalized words to the word list. Returns how many were new."""
        with self.db.get_connection() as conn:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO dictionary_words (word, language) VALUES (?, ?)",
                [(word, language) for word in words]
            )
            return conn.total_changes - before

    # =========================================================================
    # Statistics
    # =========================================================================

    def _record_game_results(self, conn: sqlite3.Connection, room_id: str) -> None:
        """Fold a finished room into the multiplayer leaderboard (guests excluded)."""
        players = conn.execute(
            """
            SELECT p.user_id, p.score
            FROM players p
            LEFT JOIN users u ON u.id = p.user_id
            WHERE p.room_id = ? AND COALESCE(u.is_guest, 0) = 0
            """,
            (room_id,)
        ).fetchall()
        if not players:
            return

        all_scores = [
            row["score"] for row in conn.execute(
                "SELECT score FROM players WHERE room_id = ?", (room_id,)
            ).fetchall()
        ]
        top_score = max(all_scores) if all_scores else 0

        for player in players:
            best = conn.execute(
                """
                SELECT normalized_word FROM moves
                WHERE room_id = ? AND user_id = ? AND is_valid = 1
                ORDER BY LENGTH(normalized_word) DESC, seq ASC
                LIMIT 1
                """,
                (room_id, player["user_id"])
            ).fetchone()
            won = 1 if top_score > 0 and player["score"] == top_score else 0

            conn.execute(
                """
                INSERT INTO leaderboards (user_id, total_games, total_wins, total_points, best_word)
                VALUES (?, 1, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    total_games = total_games + 1,
                    total_wins = total_wins + excluded.total_wins,
                    total_points = total_points + excluded.total_points,
                    best_word = CASE
                        WHEN excluded.best_word IS NOT NULL
                             AND LENGTH(excluded.best_word) > LENGTH(COALESCE(best_word, ''))
                        THEN excluded.best_word
                        ELSE best_word
                    END,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    player["user_id"],
                    won,
                    player["score"],
                    best["normalized_word"] if best else None
                )
            )

    def record_solo_session(
        self,
        user_id: str,
        points: int,
        best_streak: int,
        average_time_ms: int,
        longest_word: str | None
    ) -> SoloStatsRecord:
        """Fold one solo session into the user's solo statistics."""
        with self.db.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO solo_stats (
                    user_id, total_games, total_points, best_streak,
                    average_time_ms, favorite_word
                )
                VALUES (?, 1, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    average_time_ms = (average_time_ms * total_games + excluded.average_time_ms)
                                      / (total_games + 1),
                    total_games = total_games + 1,
                    total_points = total_points + excluded.total_points,
                    best_streak = MAX(best_streak, excluded.best_streak),
                    favorite_word = CASE
                        WHEN excluded.favorite_word IS NOT NULL
                             AND LENGTH(excluded.favorite_word) > LENGTH(COALESCE(favorite_word, ''))
                        THEN excluded.favorite_word
                        ELSE favorite_word
                    END,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (user_id, points, best_streak, average_time_ms, longest_word or None)
            )
            row = self._row(conn, "solo_stats", "user_id", user_id)
        return SoloStatsRecord.from_row(row)

    def get_leaderboard_entry(self, user_id: str) -> LeaderboardEntry | None:
        with self.db.get_connection() as conn:
            row = self._row(conn, "leaderboards", "user_id", user_id)
            return LeaderboardEntry.from_row(row) if row else None

    def get_solo_stats(self, user_id: str) -> SoloStatsRecord | None:
        with self.db.get_connection() as conn:
            row = self._row(conn, "solo_stats", "user_id", user_id)
            return SoloStatsRecord.from_row(row) if row else None

    def get_leaderboard(self, limit: int = 20) -> list[LeaderboardEntry]:
        """Top multiplayer players by total points."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT l.*, u.display_name
                FROM leaderboards l
                LEFT JOIN users u ON u.id = l.user_id
                ORDER BY l.total_points DESC, l.total_wins DESC
                LIMIT ?
                """,
                (limit,)
            )
            return [LeaderboardEntry.from_row(dict(row)) for row in cursor.fetchall()]

    def get_solo_leaderboard(self, limit: int = 20) -> list[SoloStatsRecord]:
        """Top solo players by total points."""
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT s.*, u.display_name
                FROM solo_stats s
                LEFT JOIN users u ON u.id = s.user_id
                ORDER BY s.total_points DESC, s.best_streak DESC
                LIMIT ?
                """,
                (limit,)
            )
            return [SoloStatsRecord.from_row(dict(row)) for row in cursor.fetchall()]
