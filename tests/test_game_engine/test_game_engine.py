"""
Tests for the WordWave game engine.

Run from project root: python -m pytest tests/ -v
Or run directly: python tests/test_game_engine/test_game_engine.py
"""

import asyncio
import random
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from server.game_engine import (
    normalize,
    first_letter,
    last_letter,
    DictionaryGate,
    ExternalDictionary,
    LookupResult,
    WordRules,
    ValidationResult,
    score_word,
    TurnScheduler,
    TurnClock,
    RoomStateMachine,
    SoloSession,
)
from server.game_engine.scoring import time_bonus, streak_bonus
from server.persistence.models import RoomAggregate, RoomRecord, PlayerRecord, RoundRecord
from shared.enums import ValidationReason, LookupStatus, RoomStatus, ErrorCode


class FakeWordList:
    """In-memory stand-in for the stored dictionary."""

    def __init__(self, words):
        self.words = {normalize(w) for w in words}

    def has_word(self, word: str) -> bool:
        return word in self.words


WORDS = ["cyber", "rain", "storm", "echo", "ocean", "night", "tiger", "rabbit", "table", "eagle"]


def make_rules(words=WORDS, lookup=None) -> WordRules:
    return WordRules(DictionaryGate(FakeWordList(words), lookup))


def make_aggregate(
    player_count: int = 3,
    status: str = "lobby",
    current_turn: str | None = None,
    current_round: int = 0,
    rounds: int = 10,
    turns_taken: int = 0,
    max_players: int = 4,
) -> RoomAggregate:
    room = RoomRecord(
        id="room-1",
        host_id="u0",
        name="Test Room",
        max_players=max_players,
        rounds=rounds,
        status=status,
        current_round=current_round,
        current_player_turn=current_turn,
    )
    players = [
        PlayerRecord(
            id=f"p{i}",
            room_id="room-1",
            user_id=f"u{i}",
            display_name=f"Player {i}",
            turn_order=i,
        )
        for i in range(player_count)
    ]
    open_round = None
    if status == "in_game":
        open_round = RoundRecord(
            id="round-1",
            room_id="room-1",
            round_number=current_round,
            turns_taken=turns_taken,
        )
    return RoomAggregate(room=room, players=players, open_round=open_round)


# =============================================================================
# Normalizer
# =============================================================================

class TestNormalizer(unittest.TestCase):

    def test_lowercases_and_strips_non_letters(self):
        self.assertEqual(normalize("Ice-9!"), "ice")
        self.assertEqual(normalize("  ECHO!  "), "echo")
        self.assertEqual(normalize("rock'n'roll"), "rocknroll")

    def test_empty_inputs(self):
        self.assertEqual(normalize(""), "")
        self.assertEqual(normalize(None), "")
        self.assertEqual(normalize("123 !?"), "")

    def test_idempotent(self):
        samples = ["Cyber", "ECHO!", "hello world", "ÉCOLE", "a-b-c", "", "42", "Ωmega"]
        for word in samples:
            once = normalize(word)
            self.assertEqual(normalize(once), once, word)

    def test_first_and_last_letter(self):
        self.assertEqual(first_letter("Rain!"), "r")
        self.assertEqual(last_letter("CYBER"), "r")
        self.assertEqual(last_letter("..."), "")


# =============================================================================
# Validator
# =============================================================================

class TestWordRules(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.rules = make_rules()

    async def test_chain_rule(self):
        result = await self.rules.validate("CYBER", [], "Rain")
        self.assertTrue(result.valid)
        self.assertEqual(result.reason, ValidationReason.VALID)
        self.assertEqual(result.normalized_word, "rain")
        self.assertEqual(result.required_start_char, "r")

        result = await self.rules.validate("CYBER", [], "storm")
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, ValidationReason.CHAIN_MISMATCH)
        self.assertIn("R", result.message)

    async def test_first_word_is_exempt_from_chain(self):
        result = await self.rules.validate(None, [], "storm")
        self.assertTrue(result.valid)
        self.assertEqual(result.required_start_char, "")

    async def test_duplicate_ignores_case_and_punctuation(self):
        used = []
        first = await self.rules.validate(None, used, "Echo")
        self.assertTrue(first.valid)
        used.append(first.normalized_word)

        second = await self.rules.validate(None, used, "ECHO!")
        self.assertEqual(second.reason, ValidationReason.DUPLICATE_WORD)

    async def test_empty_wins_over_duplicate(self):
        result = await self.rules.validate("cyber", ["", "rain"], "!!!")
        self.assertEqual(result.reason, ValidationReason.EMPTY_WORD)

    async def test_chain_checked_before_duplicate(self):
        result = await self.rules.validate("cyber", ["storm"], "storm")
        self.assertEqual(result.reason, ValidationReason.CHAIN_MISMATCH)

    async def test_duplicate_checked_before_dictionary(self):
        rules = make_rules(words=[])
        result = await rules.validate(None, ["zzzz"], "zzzz")
        self.assertEqual(result.reason, ValidationReason.DUPLICATE_WORD)

    async def test_not_in_dictionary(self):
        result = await self.rules.validate("cyber", [], "rqqq")
        self.assertEqual(result.reason, ValidationReason.NOT_IN_DICTIONARY)

    def test_result_dict(self):
        result = ValidationResult.failure(ValidationReason.CHAIN_MISMATCH, "storm", "r")
        data = result.to_dict()
        self.assertFalse(data["is_valid"])
        self.assertEqual(data["reason"], "chain_mismatch")
        self.assertEqual(data["required_start_char"], "r")


# =============================================================================
# Dictionary gate
# =============================================================================

class TestDictionaryGate(unittest.IsolatedAsyncioTestCase):

    def make_lookup(self, status, definition=None):
        lookup = ExternalDictionary("http://dictionary.invalid/")
        lookup.lookup = AsyncMock(return_value=LookupResult(status, definition))
        return lookup

    async def test_local_hit_skips_lookup(self):
        lookup = self.make_lookup(LookupStatus.NOT_FOUND)
        gate = DictionaryGate(FakeWordList(["echo"]), lookup)

        verdict = await gate.check("echo")
        self.assertTrue(verdict.accepted)
        self.assertEqual(verdict.source, "local")
        lookup.lookup.assert_not_awaited()

    async def test_external_hit_is_cached(self):
        lookup = self.make_lookup(LookupStatus.FOUND, "a rare word")
        gate = DictionaryGate(FakeWordList([]), lookup)

        first = await gate.check("quixotic")
        second = await gate.check("quixotic")
        self.assertTrue(first.accepted and second.accepted)
        self.assertEqual(second.definition, "a rare word")
        lookup.lookup.assert_awaited_once_with("quixotic")

    async def test_external_miss(self):
        gate = DictionaryGate(FakeWordList([]), self.make_lookup(LookupStatus.NOT_FOUND))
        verdict = await gate.check("qqq")
        self.assertFalse(verdict.accepted)
        self.assertEqual(verdict.reason, ValidationReason.NOT_IN_DICTIONARY)
        self.assertFalse(verdict.lookup_unavailable)

    async def test_unavailable_falls_back_to_local_only(self):
        gate = DictionaryGate(FakeWordList(["echo"]), self.make_lookup(LookupStatus.UNAVAILABLE))

        self.assertTrue((await gate.check("echo")).accepted)

        verdict = await gate.check("quixotic")
        self.assertFalse(verdict.accepted)
        self.assertTrue(verdict.lookup_unavailable)

    async def test_no_lookup_configured(self):
        gate = DictionaryGate(FakeWordList([]))
        self.assertFalse((await gate.check("anything")).accepted)


# =============================================================================
# Scoring
# =============================================================================

class TestScoring(unittest.TestCase):

    def test_instant_answer_gets_full_bonus(self):
        score = score_word(5, 0, 15)
        self.assertEqual(score.time_bonus, 5)
        self.assertEqual(score.total, 10)

    def test_answer_at_deadline_gets_no_bonus(self):
        score = score_word(5, 15000, 15)
        self.assertEqual(score.time_bonus, 0)
        self.assertEqual(score.total, 5)

    def test_bonus_rounds_up(self):
        # 14 of 15 seconds left: ceil(14/15 * 5) = 5
        self.assertEqual(time_bonus(1000, 15), 5)
        # 7.5 of 15 seconds left: ceil(2.5) = 3
        self.assertEqual(time_bonus(7500, 15), 3)
        # 1ms left still earns a point
        self.assertEqual(time_bonus(14999, 15), 1)

    def test_late_and_negative_times(self):
        self.assertEqual(time_bonus(20000, 15), 0)
        self.assertEqual(time_bonus(-50, 15), 5)

    def test_streak_bonus(self):
        self.assertEqual(streak_bonus(0), 0)
        self.assertEqual(streak_bonus(4), 0)
        self.assertEqual(streak_bonus(5), 5)
        self.assertEqual(streak_bonus(12), 10)

        score = score_word(4, 15000, 15, streak=5)
        self.assertEqual(score.to_dict(), {"base": 4, "time_bonus": 0, "streak_bonus": 5, "total": 9})


# =============================================================================
# Turn scheduler and clock
# =============================================================================

class TestTurnScheduler(unittest.TestCase):

    def setUp(self):
        self.players = make_aggregate(3).players

    def test_advance_and_wraparound(self):
        self.assertEqual(TurnScheduler.next_player(self.players, "u1").user_id, "u2")
        self.assertEqual(TurnScheduler.next_player(self.players, "u2").user_id, "u0")

    def test_order_follows_turn_order_not_list_order(self):
        shuffled = list(reversed(self.players))
        self.assertEqual(TurnScheduler.next_player(shuffled, "u0").user_id, "u1")

    def test_missing_current_restarts_rotation(self):
        self.assertEqual(TurnScheduler.next_player(self.players, "gone").user_id, "u0")

    def test_first_player_is_not_host(self):
        self.assertEqual(TurnScheduler.first_player(self.players, "u0").user_id, "u1")

    def test_no_players(self):
        self.assertIsNone(TurnScheduler.next_player([], "u0"))


class FakeTime:
    def __init__(self):
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


class TestTurnClock(unittest.IsolatedAsyncioTestCase):

    async def test_claim_beats_expiry(self):
        expired = []

        async def on_expire(ticket):
            expired.append(ticket.user_id)

        clock = TurnClock(on_expire)
        clock.start("room", "u1", 30)

        self.assertIsNotNone(clock.claim("room", "u1"))
        self.assertFalse(clock.expire("room"))
        await clock.drain()
        self.assertEqual(expired, [])

    async def test_expiry_beats_claim(self):
        expired = []

        async def on_expire(ticket):
            expired.append(ticket.user_id)

        clock = TurnClock(on_expire)
        clock.start("room", "u1", 30)

        self.assertTrue(clock.expire("room"))
        self.assertIsNone(clock.claim("room", "u1"))
        await clock.drain()
        self.assertEqual(expired, ["u1"])

    async def test_claim_requires_turn_holder(self):
        clock = TurnClock()
        clock.start("room", "u1", 30)
        self.assertIsNone(clock.claim("room", "u2"))
        self.assertIsNotNone(clock.current("room"))
        clock.cancel_all()

    async def test_start_cancels_previous_countdown(self):
        expired = []

        async def on_expire(ticket):
            expired.append(ticket.user_id)

        clock = TurnClock(on_expire)
        clock.start("room", "u1", 0.01)
        clock.start("room", "u2", 30)
        await asyncio.sleep(0.05)
        await clock.drain()

        self.assertEqual(expired, [])
        self.assertEqual(clock.current("room").user_id, "u2")
        clock.cancel_all()

    async def test_countdown_fires(self):
        expired = []

        async def on_expire(ticket):
            expired.append(ticket.user_id)

        clock = TurnClock(on_expire)
        clock.start("room", "u1", 0.01)
        await asyncio.sleep(0.05)
        await clock.drain()
        self.assertEqual(expired, ["u1"])
        self.assertIsNone(clock.current("room"))

    async def test_elapsed_ms(self):
        fake = FakeTime()
        clock = TurnClock(time_func=fake)
        ticket = clock.start("room", "u1", 30)
        fake.value += 2.5
        self.assertEqual(ticket.elapsed_ms(clock.now()), 2500)
        clock.cancel_all()


# =============================================================================
# Room state machine
# =============================================================================

class TestRoomStateMachine(unittest.TestCase):

    def test_start_requires_two_players(self):
        machine = RoomStateMachine(make_aggregate(1))
        decision = machine.can_start("u0")
        self.assertFalse(decision)
        self.assertEqual(decision.code, ErrorCode.NOT_ENOUGH_PLAYERS)

    def test_only_host_starts(self):
        machine = RoomStateMachine(make_aggregate(3))
        self.assertEqual(machine.can_start("u1").code, ErrorCode.NOT_HOST)
        self.assertTrue(machine.can_start("u0"))

    def test_start_skips_host(self):
        plan = RoomStateMachine(make_aggregate(3)).plan_start()
        self.assertEqual(plan.first_turn, "u1")

    def test_cannot_start_twice(self):
        machine = RoomStateMachine(make_aggregate(3, status="in_game", current_turn="u1", current_round=1))
        self.assertEqual(machine.can_start("u0").code, ErrorCode.ALREADY_STARTED)

    def test_join_rules(self):
        full = RoomStateMachine(make_aggregate(4, max_players=4))
        self.assertEqual(full.can_join("new").code, ErrorCode.ROOM_FULL)
        self.assertTrue(full.can_join("u1"))
        self.assertIsNone(full.plan_join("u1"))

        finished = RoomStateMachine(make_aggregate(2, status="finished"))
        self.assertEqual(finished.can_join("new").code, ErrorCode.ROOM_FINISHED)

    def test_join_plans(self):
        aggregate = make_aggregate(3)
        aggregate.players[1].is_active = False
        machine = RoomStateMachine(aggregate)

        fresh = machine.plan_join("new")
        self.assertEqual(fresh.turn_order, 3)
        self.assertFalse(fresh.is_rejoin)

        rejoin = machine.plan_join("u1")
        self.assertTrue(rejoin.is_rejoin)
        self.assertEqual(rejoin.rejoin_player_id, "p1")
        self.assertEqual(rejoin.turn_order, 3)

    def test_submit_policies(self):
        lobby = RoomStateMachine(make_aggregate(3))
        self.assertEqual(lobby.can_submit("u1").code, ErrorCode.NOT_IN_GAME)

        game = RoomStateMachine(make_aggregate(3, status="in_game", current_turn="u1", current_round=1))
        self.assertTrue(game.can_submit("u1"))
        self.assertEqual(game.can_submit("u2").code, ErrorCode.NOT_YOUR_TURN)
        self.assertEqual(game.can_submit("stranger").code, ErrorCode.NOT_IN_ROOM)

    def test_turn_inside_round(self):
        machine = RoomStateMachine(make_aggregate(3, status="in_game", current_turn="u1", current_round=1))
        outcome = machine.plan_turn_end("u1")
        self.assertEqual(outcome.next_turn, "u2")
        self.assertEqual(outcome.turns_taken, 1)
        self.assertFalse(outcome.round_completed)
        self.assertFalse(outcome.finish)

    def test_round_completes_after_every_player(self):
        machine = RoomStateMachine(make_aggregate(
            3, status="in_game", current_turn="u0", current_round=1, turns_taken=2
        ))
        outcome = machine.plan_turn_end("u0")
        self.assertTrue(outcome.round_completed)
        self.assertEqual(outcome.next_round_number, 2)
        self.assertEqual(outcome.next_turn, "u1")
        self.assertFalse(outcome.finish)

    def test_last_round_finishes(self):
        machine = RoomStateMachine(make_aggregate(
            2, status="in_game", current_turn="u0", current_round=3, rounds=3, turns_taken=1
        ))
        outcome = machine.plan_turn_end("u0")
        self.assertTrue(outcome.finish)
        self.assertIsNone(outcome.next_turn)

    def test_finish_policy(self):
        machine = RoomStateMachine(make_aggregate(3, status="in_game", current_turn="u1", current_round=1))
        self.assertEqual(machine.can_finish("u1").code, ErrorCode.NOT_HOST)
        self.assertTrue(machine.can_finish("u0"))
        self.assertTrue(machine.can_finish(None))

        finished = RoomStateMachine(make_aggregate(2, status=RoomStatus.FINISHED.value))
        self.assertEqual(finished.can_finish("u0").code, ErrorCode.ROOM_FINISHED)

    def test_lobby_leave(self):
        machine = RoomStateMachine(make_aggregate(3))
        plan = machine.plan_leave("u0")
        self.assertTrue(plan.delete_player)
        self.assertEqual(plan.new_host_id, "u1")
        self.assertFalse(plan.delete_room)

        alone = RoomStateMachine(make_aggregate(1)).plan_leave("u0")
        self.assertTrue(alone.delete_room)

    def test_in_game_leave_with_turn(self):
        machine = RoomStateMachine(make_aggregate(3, status="in_game", current_turn="u1", current_round=1))
        plan = machine.plan_leave("u1")
        self.assertFalse(plan.delete_player)
        self.assertIsNotNone(plan.turn)
        self.assertEqual(plan.turn.next_turn, "u2")

    def test_attrition(self):
        machine = RoomStateMachine(make_aggregate(2, status="in_game", current_turn="u1", current_round=1))
        self.assertFalse(machine.plan_leave("u0").finish)

        strict = RoomStateMachine(
            make_aggregate(2, status="in_game", current_turn="u1", current_round=1),
            finish_on_last_player=True,
        )
        self.assertTrue(strict.plan_leave("u0").finish)


# =============================================================================
# Solo
# =============================================================================

class TestSoloSession(unittest.IsolatedAsyncioTestCase):

    def make_session(self) -> SoloSession:
        return SoloSession(
            "solo-user",
            make_rules(),
            time_limit=20,
            rng=random.Random(7),
            filler_words=["eagle", "table"],
        )

    async def test_valid_word_scores_and_chains(self):
        session = self.make_session()
        result = await session.submit("Cyber", 0)

        self.assertTrue(result.validation.valid)
        self.assertEqual(result.points, 5 + 5)
        self.assertEqual(session.current_word, "cyber")
        self.assertEqual(session.required_start_char, "r")
        self.assertEqual(session.stats.current_streak, 1)

        result = await session.submit("rain", 0)
        self.assertTrue(result.validation.valid)
        self.assertEqual(session.stats.words_played, 2)
        self.assertEqual(session.stats.longest_word, "cyber")

    async def test_invalid_word_resets_streak_and_plays_filler(self):
        session = self.make_session()
        await session.submit("cyber", 0)
        result = await session.submit("storm", 0)

        self.assertEqual(result.validation.reason, ValidationReason.CHAIN_MISMATCH)
        self.assertEqual(session.stats.current_streak, 0)
        self.assertIn(result.filler_word, ("eagle", "table"))
        self.assertEqual(session.current_word, result.filler_word)
        self.assertIn(result.filler_word, session.used_words)

    async def test_streak_bonus_after_five(self):
        session = self.make_session()
        for word in ["cyber", "rain", "night", "tiger", "rabbit"]:
            result = await session.submit(word, 20000)
            self.assertTrue(result.validation.valid, word)
        # Sixth word is played with a streak of five
        result = await session.submit("table", 20000)
        self.assertEqual(result.score.streak_bonus, 5)
        self.assertEqual(session.stats.best_streak, 6)

    def test_timeout(self):
        session = self.make_session()
        session.stats.current_streak = 3
        result = session.timeout()
        self.assertTrue(result.timed_out)
        self.assertEqual(session.stats.current_streak, 0)
        self.assertIsNotNone(session.current_word)

    def test_end(self):
        session = self.make_session()
        stats = session.end()
        self.assertTrue(session.is_over)
        self.assertEqual(stats.score, 0)
        self.assertTrue(session.to_dict()["is_over"])


def run_tests():
    """Run all game engine tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    test_classes = [
        TestNormalizer,
        TestWordRules,
        TestDictionaryGate,
        TestScoring,
        TestTurnScheduler,
        TestTurnClock,
        TestRoomStateMachine,
        TestSoloSession,
    ]

    for test_class in test_classes:
        suite.addTests(loader.loadTestsFromTestCase(test_class))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
