"""
Tests for the persistence layer.

Run with: python3 tests/test_persistence/test_persistence.py
"""

import sys
import tempfile
import unittest
import uuid
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from server.persistence import (
    Database,
    init_database,
    WordWaveRepository,
    ChangeFeed,
    ChangeEvent,
    UserRecord,
    RoomRecord,
    PlayerRecord,
    MoveRecord,
    TurnCommit,
    StaleTurnError,
    RoomStateError,
)
from shared.constants import SEED_WORDS
from shared.enums import ChangeKind


class PersistenceTestCase(unittest.TestCase):
    """Base test case with database setup/teardown."""

    def setUp(self):
        """Create a temporary database for each test."""
        self.temp_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.db_path = self.temp_file.name
        self.temp_file.close()

        self.db = init_database(self.db_path)
        self.changes = ChangeFeed()
        self.repository = WordWaveRepository(self.db, self.changes)

    def tearDown(self):
        """Clean up the temporary database."""
        self.db.close_connection()
        for suffix in ("", "-wal", "-shm"):
            Path(self.db_path + suffix).unlink(missing_ok=True)

    def create_user(self, user_id: str, is_guest: bool = False) -> UserRecord:
        return self.repository.upsert_user(
            UserRecord(id=user_id, display_name=user_id.title(), is_guest=is_guest)
        )

    def create_sample_room(self, player_count: int = 3, rounds: int = 10) -> tuple[RoomRecord, list[PlayerRecord]]:
        """Create a lobby room with the host plus player_count - 1 guests seated."""
        room_id = str(uuid.uuid4())
        users = [self.create_user(f"user{i}") for i in range(player_count)]

        host_seat = PlayerRecord(
            id=str(uuid.uuid4()),
            room_id=room_id,
            user_id=users[0].id,
            display_name=users[0].display_name,
            turn_order=0,
        )
        room = self.repository.create_room(
            RoomRecord(id=room_id, host_id=users[0].id, name="Sample", rounds=rounds),
            host_seat,
        )

        players = [host_seat]
        for i, user in enumerate(users[1:], start=1):
            players.append(self.repository.add_player(PlayerRecord(
                id=str(uuid.uuid4()),
                room_id=room_id,
                user_id=user.id,
                display_name=user.display_name,
                turn_order=i,
            )))
        return room, players

    def make_move(self, room_id: str, round_id: str, player: PlayerRecord, word: str, points: int) -> MoveRecord:
        return MoveRecord(
            id=str(uuid.uuid4()),
            round_id=round_id,
            room_id=room_id,
            player_id=player.id,
            user_id=player.user_id,
            word=word,
            normalized_word=word.lower(),
            submitted_at=datetime.now(timezone.utc).isoformat(),
            is_valid=points > 0,
            validation_reason="valid" if points > 0 else "not_in_dictionary",
            time_taken_ms=1000,
            points_awarded=points,
            chain_valid=True,
        )


class TestDatabase(PersistenceTestCase):
    """Test database initialization."""

    def test_tables_created(self):
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
            tables = {row["name"] for row in cursor.fetchall()}

        for table in (
            "users", "rooms", "players", "rounds", "moves",
            "dictionary_words", "leaderboards", "solo_stats",
        ):
            self.assertIn(table, tables)

    def test_seed_words_loaded(self):
        self.assertTrue(self.repository.has_word(SEED_WORDS[0]))
        self.assertFalse(self.repository.has_word("qqqzzz"))

    def test_add_words(self):
        added = self.repository.add_words(["quixotic", SEED_WORDS[0]])
        self.assertEqual(added, 1)
        self.assertTrue(self.repository.has_word("quixotic"))

    def test_failed_block_rolls_back(self):
        with self.assertRaises(RuntimeError):
            with self.db.get_connection() as conn:
                conn.execute("INSERT INTO dictionary_words (word) VALUES ('rollbackword')")
                raise RuntimeError("boom")
        self.assertFalse(self.repository.has_word("rollbackword"))

    def test_reset_database(self):
        self.create_sample_room()
        self.db.reset_database()
        self.assertEqual(self.repository.list_rooms(status=None), [])
        self.assertTrue(self.repository.has_word(SEED_WORDS[0]))


class TestRoomOperations(PersistenceTestCase):

    def test_create_and_get_room(self):
        room, players = self.create_sample_room(2)
        self.assertEqual(room.status, "lobby")
        self.assertEqual(room.current_round, 0)
        self.assertEqual(len(self.repository.get_players(room.id)), 2)

    def test_list_rooms_counts_active_players(self):
        room, players = self.create_sample_room(3)
        self.repository.deactivate_player(room.id, players[2].id)

        rooms = self.repository.list_rooms()
        self.assertEqual(len(rooms), 1)
        self.assertEqual(rooms[0].player_count, 2)
        self.assertEqual(self.repository.list_rooms(status="in_game"), [])

    def test_start_room(self):
        room, players = self.create_sample_room(3)
        round_one = self.repository.start_room(room.id, room.host_id, players[1].user_id)

        started = self.repository.get_room(room.id)
        self.assertEqual(started.status, "in_game")
        self.assertEqual(started.current_round, 1)
        self.assertEqual(started.current_player_turn, players[1].user_id)
        self.assertEqual(round_one.round_number, 1)
        self.assertTrue(self.repository.get_open_round(room.id).is_open)

    def test_start_room_twice_fails(self):
        room, players = self.create_sample_room(2)
        self.repository.start_room(room.id, room.host_id, players[1].user_id)
        with self.assertRaises(RoomStateError):
            self.repository.start_room(room.id, room.host_id, players[1].user_id)
        self.assertEqual(len(self.repository.get_rounds(room.id)), 1)

    def test_finish_room(self):
        room, players = self.create_sample_room(2)
        self.repository.start_room(room.id, room.host_id, players[1].user_id)

        self.assertTrue(self.repository.finish_room(room.id))
        self.assertFalse(self.repository.finish_room(room.id))

        finished = self.repository.get_room(room.id)
        self.assertEqual(finished.status, "finished")
        self.assertIsNone(finished.current_player_turn)
        self.assertIsNone(self.repository.get_open_round(room.id))

    def test_delete_room_cascades(self):
        room, _ = self.create_sample_room(2)
        self.assertTrue(self.repository.delete_room(room.id))
        self.assertIsNone(self.repository.get_room(room.id))
        self.assertEqual(self.repository.get_players(room.id), [])

    def test_rejoin_keeps_score(self):
        room, players = self.create_sample_room(2)
        with self.db.get_connection() as conn:
            conn.execute("UPDATE players SET score = 12 WHERE id = ?", (players[1].id,))
        self.repository.deactivate_player(room.id, players[1].id)
        self.assertEqual(len(self.repository.get_players(room.id, active_only=True)), 1)

        back = self.repository.reactivate_player(players[1].id, 5)
        self.assertTrue(back.is_active)
        self.assertEqual(back.score, 12)
        self.assertEqual(back.turn_order, 5)


class TestTurnCommit(PersistenceTestCase):

    def setUp(self):
        super().setUp()
        self.room, self.players = self.create_sample_room(2, rounds=2)
        self.round = self.repository.start_room(self.room.id, self.room.host_id, self.players[1].user_id)

    def commit_for(self, player: PlayerRecord, next_player: PlayerRecord, word: str, points: int, **kwargs) -> TurnCommit:
        aggregate = self.repository.load_room_aggregate(self.room.id)
        move = self.make_move(self.room.id, aggregate.open_round.id, player, word, points)
        defaults = dict(
            room_id=self.room.id,
            round_id=aggregate.open_round.id,
            expected_turn=player.user_id,
            expected_turns_taken=aggregate.open_round.turns_taken,
            turns_taken=aggregate.open_round.turns_taken + 1,
            next_turn=next_player.user_id,
            current_round=aggregate.room.current_round,
            move=move,
            last_word=word if points else None,
        )
        defaults.update(kwargs)
        return TurnCommit(**defaults)

    def test_commit_applies_move_score_and_turn(self):
        move = self.repository.commit_turn(self.commit_for(self.players[1], self.players[0], "Echo", 9))

        self.assertEqual(move.seq, 1)
        aggregate = self.repository.load_room_aggregate(self.room.id)
        self.assertEqual(aggregate.room.current_player_turn, self.players[0].user_id)
        self.assertEqual(aggregate.room.last_word, "Echo")
        self.assertEqual(aggregate.player_for(self.players[1].user_id).score, 9)
        self.assertEqual(aggregate.open_round.turns_taken, 1)
        self.assertEqual(aggregate.last_move.id, move.id)
        self.assertEqual(self.repository.get_valid_words(self.room.id), ["echo"])

    def test_invalid_move_keeps_last_word_and_score(self):
        self.repository.commit_turn(self.commit_for(self.players[1], self.players[0], "zzz", 0))

        room = self.repository.get_room(self.room.id)
        self.assertIsNone(room.last_word)
        self.assertEqual(self.repository.get_player(self.room.id, self.players[1].user_id).score, 0)
        self.assertEqual(self.repository.get_valid_words(self.room.id), [])
        self.assertEqual(len(self.repository.get_moves(self.room.id)), 1)

    def test_stale_turn_rejected_without_side_effects(self):
        commit = self.commit_for(self.players[1], self.players[0], "echo", 9)
        self.repository.commit_turn(commit)

        # Same turn again: the room has moved on
        replay = self.commit_for(self.players[1], self.players[0], "ocean", 10)
        with self.assertRaises(StaleTurnError):
            self.repository.commit_turn(replay)

        self.assertEqual(len(self.repository.get_moves(self.room.id)), 1)
        self.assertEqual(self.repository.get_player(self.room.id, self.players[1].user_id).score, 9)

    def test_stale_round_counter_rejected(self):
        commit = self.commit_for(self.players[1], self.players[0], "echo", 9, expected_turns_taken=5)
        with self.assertRaises(StaleTurnError):
            self.repository.commit_turn(commit)
        room = self.repository.get_room(self.room.id)
        self.assertEqual(room.current_player_turn, self.players[1].user_id)

    def test_inactive_next_turn_rejected(self):
        self.repository.deactivate_player(self.room.id, self.players[0].id)

        commit = self.commit_for(self.players[1], self.players[0], "echo", 9)
        with self.assertRaises(StaleTurnError):
            self.repository.commit_turn(commit)

        room = self.repository.get_room(self.room.id)
        self.assertEqual(room.current_player_turn, self.players[1].user_id)
        self.assertIsNone(room.last_word)
        self.assertEqual(self.repository.get_moves(self.room.id), [])

    def test_round_rollover(self):
        self.repository.commit_turn(self.commit_for(self.players[1], self.players[0], "echo", 9))
        self.repository.commit_turn(self.commit_for(
            self.players[0], self.players[1], "ocean", 10,
            current_round=2, close_round=True, next_round_number=2,
        ))

        rounds = self.repository.get_rounds(self.room.id)
        self.assertEqual(len(rounds), 2)
        self.assertFalse(rounds[0].is_open)
        self.assertEqual(rounds[0].winner_id, self.players[0].user_id)
        self.assertTrue(rounds[1].is_open)
        self.assertEqual(self.repository.get_room(self.room.id).current_round, 2)

    def test_finishing_commit_records_leaderboard(self):
        self.repository.commit_turn(self.commit_for(self.players[1], self.players[0], "echo", 9))
        self.repository.commit_turn(self.commit_for(
            self.players[0], self.players[1], "ocean", 10,
            next_turn=None, close_round=True, finish=True,
        ))

        room = self.repository.get_room(self.room.id)
        self.assertEqual(room.status, "finished")

        winner = self.repository.get_leaderboard_entry(self.players[0].user_id)
        loser = self.repository.get_leaderboard_entry(self.players[1].user_id)
        self.assertEqual((winner.total_games, winner.total_wins, winner.total_points), (1, 1, 10))
        self.assertEqual(winner.best_word, "ocean")
        self.assertEqual((loser.total_games, loser.total_wins), (1, 0))

        board = self.repository.get_leaderboard()
        self.assertEqual(board[0].user_id, self.players[0].user_id)
        self.assertEqual(board[0].display_name, "User0")

    def test_change_events_published_after_commit(self):
        received: list[ChangeEvent] = []
        self.changes.subscribe(self.room.id, received.append)

        self.repository.commit_turn(self.commit_for(self.players[1], self.players[0], "echo", 9))

        tables = [(e.table, e.kind) for e in received]
        self.assertIn(("moves", ChangeKind.INSERT), tables)
        self.assertIn(("players", ChangeKind.UPDATE), tables)
        self.assertIn(("rooms", ChangeKind.UPDATE), tables)

    def test_no_events_for_stale_commit(self):
        received: list[ChangeEvent] = []
        self.changes.subscribe(self.room.id, received.append)

        with self.assertRaises(StaleTurnError):
            self.repository.commit_turn(
                self.commit_for(self.players[0], self.players[1], "echo", 9)
            )
        self.assertEqual(received, [])


class TestChangeFeed(unittest.TestCase):

    def test_room_scoped_subscription(self):
        feed = ChangeFeed()
        room_a, everything = [], []
        unsubscribe = feed.subscribe("a", room_a.append)
        feed.subscribe_all(everything.append)

        feed.publish(ChangeEvent("rooms", ChangeKind.UPDATE, "a"))
        feed.publish(ChangeEvent("rooms", ChangeKind.UPDATE, "b"))
        self.assertEqual(len(room_a), 1)
        self.assertEqual(len(everything), 2)

        unsubscribe()
        feed.publish(ChangeEvent("rooms", ChangeKind.UPDATE, "a"))
        self.assertEqual(len(room_a), 1)
        self.assertEqual(feed.subscriber_count("a"), 0)

    def test_failing_subscriber_does_not_block_others(self):
        feed = ChangeFeed()
        received = []

        def broken(event):
            raise ValueError("subscriber bug")

        feed.subscribe("a", broken)
        feed.subscribe("a", received.append)
        with self.assertLogs("server.persistence.changes", level="ERROR"):
            feed.publish(ChangeEvent("moves", ChangeKind.INSERT, "a"))
        self.assertEqual(len(received), 1)


class TestStatistics(PersistenceTestCase):

    def test_guests_excluded_from_leaderboard(self):
        room, players = self.create_sample_room(2)
        self.create_user(players[1].user_id, is_guest=True)
        self.repository.start_room(room.id, room.host_id, players[1].user_id)
        self.repository.finish_room(room.id)

        self.assertIsNotNone(self.repository.get_leaderboard_entry(players[0].user_id))
        self.assertIsNone(self.repository.get_leaderboard_entry(players[1].user_id))

    def test_no_wins_when_nobody_scored(self):
        room, players = self.create_sample_room(2)
        self.repository.start_room(room.id, room.host_id, players[1].user_id)
        self.repository.finish_room(room.id)

        entry = self.repository.get_leaderboard_entry(players[0].user_id)
        self.assertEqual(entry.total_wins, 0)

    def test_solo_stats_accumulate(self):
        self.create_user("soloist")
        first = self.repository.record_solo_session("soloist", 40, 3, 2000, "ocean")
        self.assertEqual(first.total_games, 1)

        second = self.repository.record_solo_session("soloist", 60, 7, 4000, "cat")
        self.assertEqual(second.total_games, 2)
        self.assertEqual(second.total_points, 100)
        self.assertEqual(second.best_streak, 7)
        self.assertEqual(second.average_time_ms, 3000)
        self.assertEqual(second.favorite_word, "ocean")

        # Solo play never touches the multiplayer board
        self.assertIsNone(self.repository.get_leaderboard_entry("soloist"))
        self.assertEqual(self.repository.get_solo_leaderboard()[0].user_id, "soloist")


def run_tests():
    """Run all persistence tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    test_classes = [
        TestDatabase,
        TestRoomOperations,
        TestTurnCommit,
        TestChangeFeed,
        TestStatistics,
    ]

    for test_class in test_classes:
        suite.addTests(loader.loadTestsFromTestCase(test_class))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
