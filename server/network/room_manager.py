"""
Room manager: drives the room state machine against the store.

Loads the room aggregate, asks the state machine what may happen, commits
the result as one transaction, keeps one turn countdown per room and
publishes application-level hints to the room channel.
"""

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from server.config import settings
from server.game_engine import (
    WordRules,
    ValidationResult,
    RoomStateMachine,
    TurnClock,
    TurnTicket,
    TurnOutcome,
    score_word,
)
from server.persistence import (
    WordWaveRepository,
    UserRecord,
    RoomRecord,
    PlayerRecord,
    MoveRecord,
    RoomAggregate,
    RoomSummary,
    TurnCommit,
    StaleTurnError,
    RoomStateError,
)
from server.network.connection_manager import ConnectionManager
from shared.protocol import RoomSettings, BroadcastMessage
from shared.enums import RoomStatus, BroadcastEvent, ErrorCode


logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    """Committed result of a word submission."""
    validation: ValidationResult
    points: int
    next_turn: str | None
    move: MoveRecord | None
    finished: bool = False

    def to_dict(self) -> dict:
        return {
            "is_valid": self.validation.valid,
            "reason": self.validation.reason.value,
            "points": self.points,
            "required_start_char": self.validation.required_start_char,
            "next_turn": self.next_turn,
            "move": self.move.to_dict() if self.move else None,
            "finished": self.finished,
        }


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RoomManager:
    """
    Manages room lifecycle, turns and turn timeouts.

    Every operation returns a tuple of (success, message, value). On
    failure the value is the ErrorCode explaining why.
    """

    def __init__(
        self,
        repository: WordWaveRepository,
        rules: WordRules,
        connections: ConnectionManager | None = None,
        clock: TurnClock | None = None,
        finish_on_last_player: bool = settings.FINISH_ON_LAST_PLAYER,
        commit_retries: int = settings.COMMIT_RETRIES
    ):
        self._repository = repository
        self._rules = rules
        self._connections = connections
        self._clock = clock or TurnClock()
        self._clock.on_expire = self._on_turn_expired
        self._finish_on_last_player = finish_on_last_player
        self._commit_retries = commit_retries

    @property
    def clock(self) -> TurnClock:
        return self._clock

    def _machine(self, aggregate: RoomAggregate) -> RoomStateMachine:
        return RoomStateMachine(aggregate, finish_on_last_player=self._finish_on_last_player)

    # =========================================================================
    # Queries
    # =========================================================================

    def list_rooms(self, status: str | None = RoomStatus.LOBBY.value) -> list[RoomSummary]:
        return self._repository.list_rooms(status=status)

    def get_room_state(self, room_id: str) -> RoomAggregate | None:
        """Authoritative read of a room aggregate."""
        return self._repository.load_room_aggregate(room_id)

    # =========================================================================
    # Lobby
    # =========================================================================

    async def create_room(
        self,
        user: UserRecord,
        name: str,
        room_settings: RoomSettings | None = None
    ) -> tuple[bool, str, RoomAggregate | ErrorCode]:
        """
        Create a room with the creator as host, seated at turn order 0.

        Returns:
            Tuple of (success, message, RoomAggregate or ErrorCode)
        """
        room_settings = room_settings or RoomSettings(
            max_players=settings.DEFAULT_MAX_PLAYERS,
            round_time_seconds=settings.DEFAULT_ROUND_TIME,
            rounds=settings.DEFAULT_ROUNDS,
        )
        valid, error = room_settings.validate()
        if not valid:
            return False, error, ErrorCode.INVALID_SETTINGS

        name = (name or "").strip() or f"{user.display_name}'s room"

        room = RoomRecord(
            id=str(uuid.uuid4()),
            host_id=user.id,
            name=name,
            max_players=room_settings.max_players,
            round_time_seconds=room_settings.round_time_seconds,
            rounds=room_settings.rounds,
        )
        host = PlayerRecord(
            id=str(uuid.uuid4()),
            room_id=room.id,
            user_id=user.id,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            turn_order=0,
        )
        self._repository.create_room(room, host)

        logger.info(f"Room '{name}' ({room.id}) created by {user.display_name}")
        return True, f"Room '{name}' created", self.get_room_state(room.id)

    async def join_room(
        self,
        user: UserRecord,
        room_id: str
    ) -> tuple[bool, str, RoomAggregate | ErrorCode]:
        """
        Seat a user in a room, or bring them back if they left a running game.

        Returns:
            Tuple of (success, message, RoomAggregate or ErrorCode)
        """
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False, "Room not found", ErrorCode.ROOM_NOT_FOUND

        machine = self._machine(aggregate)
        decision = machine.can_join(user.id)
        if not decision:
            return False, decision.message, decision.code

        plan = machine.plan_join(user.id)
        if plan is None:
            return True, "Already in room", aggregate

        if plan.is_rejoin:
            self._repository.reactivate_player(plan.rejoin_player_id, plan.turn_order)
            message = "Rejoined room"
        else:
            self._repository.add_player(PlayerRecord(
                id=str(uuid.uuid4()),
                room_id=room_id,
                user_id=user.id,
                display_name=user.display_name,
                avatar_url=user.avatar_url,
                turn_order=plan.turn_order,
            ))
            message = "Joined room"

        logger.info(f"User {user.display_name} ({user.id}) joined room {room_id} at seat {plan.turn_order}")
        return True, message, self.get_room_state(room_id)

    async def leave_room(self, user_id: str, room_id: str) -> tuple[bool, str, RoomAggregate | ErrorCode | None]:
        """
        Leave a room.

        In the lobby the seat is removed. In a running game the seat is
        deactivated; if it was the leaver's turn, the turn passes on.

        Returns:
            Tuple of (success, message, RoomAggregate, None if the room is gone, or ErrorCode)
        """
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False, "Room not found", ErrorCode.ROOM_NOT_FOUND

        machine = self._machine(aggregate)
        decision = machine.can_leave(user_id)
        if not decision:
            return False, decision.message, decision.code

        plan = machine.plan_leave(user_id)

        if plan.delete_player:
            if plan.delete_room:
                self._repository.delete_room(room_id)
                logger.info(f"Empty room {room_id} removed")
                return True, "Left room", None

            self._repository.delete_player(room_id, plan.player_id)
            if plan.new_host_id:
                self._repository.update_host(room_id, plan.new_host_id)
                logger.info(f"Host of room {room_id} passed to {plan.new_host_id}")
            return True, "Left room", self.get_room_state(room_id)

        if plan.turn:
            ticket = self._clock.claim(room_id, user_id)
            if ticket is None:
                # Timeout already owns this turn
                self._repository.deactivate_player(room_id, plan.player_id)
            else:
                commit = self._turn_commit(aggregate, user_id, plan.turn, deactivate_player_id=plan.player_id)
                ok, code, _ = self._commit(commit)
                if ok:
                    await self._after_turn(aggregate.room, plan.turn)
                else:
                    self._repository.deactivate_player(room_id, plan.player_id)
                    if code == ErrorCode.COMMIT_FAILED:
                        # The countdown will move the turn past the departed seat
                        self._clock.start(room_id, user_id, aggregate.room.round_time_seconds)
        elif plan.finish:
            if self._repository.finish_room(room_id, deactivate_player_id=plan.player_id):
                self._clock.cancel(room_id)
                await self._announce_finish(room_id)
        else:
            self._repository.deactivate_player(room_id, plan.player_id)

        logger.info(f"User {user_id} left room {room_id}")
        return True, "Left room", self.get_room_state(room_id)

    # =========================================================================
    # Game Lifecycle
    # =========================================================================

    async def start_game(self, actor_id: str, room_id: str) -> tuple[bool, str, RoomAggregate | ErrorCode]:
        """
        lobby -> in_game. Host only, at least two active players.

        Returns:
            Tuple of (success, message, RoomAggregate or ErrorCode)
        """
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False, "Room not found", ErrorCode.ROOM_NOT_FOUND

        machine = self._machine(aggregate)
        decision = machine.can_start(actor_id)
        if not decision:
            return False, decision.message, decision.code

        plan = machine.plan_start()
        try:
            self._repository.start_room(room_id, actor_id, plan.first_turn)
        except RoomStateError as e:
            logger.warning(f"Start of room {room_id} rejected by store: {e}")
            return False, "Game has already started", ErrorCode.ALREADY_STARTED

        self._clock.start(room_id, plan.first_turn, aggregate.room.round_time_seconds)

        logger.info(f"Room {room_id} started, first turn: {plan.first_turn}")
        await self._publish(room_id, BroadcastEvent.GAME_STARTED, {"first_turn": plan.first_turn}, actor_id)

        return True, "Game started", self.get_room_state(room_id)

    async def finish_room(self, actor_id: str | None, room_id: str) -> tuple[bool, str, RoomAggregate | ErrorCode]:
        """
        End a game early. actor_id None means the engine itself.

        Returns:
            Tuple of (success, message, RoomAggregate or ErrorCode)
        """
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False, "Room not found", ErrorCode.ROOM_NOT_FOUND

        decision = self._machine(aggregate).can_finish(actor_id)
        if not decision:
            return False, decision.message, decision.code

        if not self._repository.finish_room(room_id):
            return False, "Game has already finished", ErrorCode.ROOM_FINISHED

        self._clock.cancel(room_id)
        await self._announce_finish(room_id)

        return True, "Game finished", self.get_room_state(room_id)

    # =========================================================================
    # Turns
    # =========================================================================

    async def submit_word(
        self,
        user_id: str,
        room_id: str,
        word: str
    ) -> tuple[bool, str, SubmissionOutcome | ErrorCode]:
        """
        Judge, score and commit a word for the current turn.

        The turn clock is claimed before anything else so a timeout firing
        meanwhile cannot also advance the turn. If judging or committing
        fails, the claimed countdown is put back.

        Returns:
            Tuple of (success, message, SubmissionOutcome or ErrorCode)
        """
        ticket = self._clock.claim(room_id, user_id)
        try:
            return await self._play_turn(ticket, user_id, room_id, word)
        except Exception:
            if ticket is not None:
                self._release(ticket)
            raise

    async def _play_turn(
        self,
        ticket: TurnTicket | None,
        user_id: str,
        room_id: str,
        word: str
    ) -> tuple[bool, str, SubmissionOutcome | ErrorCode]:
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False, "Room not found", ErrorCode.ROOM_NOT_FOUND

        room = aggregate.room
        decision = self._machine(aggregate).can_submit(user_id)
        if not decision:
            if ticket:
                self._resume(ticket)
            return False, decision.message, decision.code

        if ticket is None:
            logger.warning(f"Late submission from {user_id} in room {room_id}")
            return False, "Time is up for this turn", ErrorCode.STALE_TURN

        if aggregate.open_round is None:
            logger.error(f"Room {room_id} is in game without an open round")
            self._resume(ticket)
            return False, "No active round", ErrorCode.NOT_IN_GAME

        time_taken_ms = ticket.elapsed_ms(self._clock.now())
        used_words = self._repository.get_valid_words(room_id)
        validation = await self._rules.validate(room.last_word, used_words, word)

        # Seats may have left while the word was being looked up
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False, "Room not found", ErrorCode.ROOM_NOT_FOUND
        machine = self._machine(aggregate)
        decision = machine.can_submit(user_id)
        if not decision:
            self._release(ticket, aggregate)
            return False, decision.message, decision.code

        points = 0
        if validation.valid:
            points = score_word(
                len(validation.normalized_word),
                time_taken_ms,
                room.round_time_seconds,
            ).total

        seat = aggregate.player_for(user_id)
        move = MoveRecord(
            id=str(uuid.uuid4()),
            round_id=aggregate.open_round.id,
            room_id=room_id,
            player_id=seat.id,
            user_id=user_id,
            word=word,
            normalized_word=validation.normalized_word,
            submitted_at=_utc_now(),
            is_valid=validation.valid,
            validation_reason=validation.reason.value,
            time_taken_ms=time_taken_ms,
            points_awarded=points,
            chain_valid=validation.valid,
        )

        outcome = machine.plan_turn_end(user_id)
        commit = self._turn_commit(
            aggregate,
            user_id,
            outcome,
            move=move,
            last_word=word if validation.valid else None,
        )

        ok, code, committed_move = self._commit(commit)
        if not ok:
            if code == ErrorCode.STALE_TURN:
                self._release(ticket, self.get_room_state(room_id))
                return False, "Your turn already ended", code
            # Nothing was written: the same player gets a fresh countdown
            self._clock.start(room_id, user_id, room.round_time_seconds)
            return False, "Could not save your move, please try again", code

        logger.info(
            f"Room {room_id}: {user_id} played '{word}' -> {validation.reason.value}"
            f" (+{points}), next: {outcome.next_turn}"
        )

        await self._publish(room_id, BroadcastEvent.WORD_SUBMITTED, {
            "user_id": user_id,
            "word": word,
            "is_valid": validation.valid,
            "reason": validation.reason.value,
            "points": points,
        }, user_id)
        await self._after_turn(room, outcome)

        return True, validation.message or "Word accepted", SubmissionOutcome(
            validation=validation,
            points=points,
            next_turn=outcome.next_turn,
            move=committed_move,
            finished=outcome.finish,
        )

    async def _on_turn_expired(self, ticket: TurnTicket) -> None:
        """Turn clock callback: advance without a move and without points."""
        try:
            await self.handle_timeout(ticket.key, ticket.user_id)
        except Exception as e:
            logger.exception(f"Timeout handling failed for room {ticket.key}: {e}")

    async def handle_timeout(self, room_id: str, user_id: str) -> bool:
        """
        Advance past user_id's expired turn.

        Returns:
            True if the turn was advanced
        """
        aggregate = self.get_room_state(room_id)
        if not aggregate:
            return False

        room = aggregate.room
        if room.status != RoomStatus.IN_GAME.value or room.current_player_turn != user_id:
            return False
        if aggregate.open_round is None:
            logger.error(f"Room {room_id} is in game without an open round")
            return False

        outcome = self._machine(aggregate).plan_turn_end(user_id)
        ok, code, _ = self._commit(self._turn_commit(aggregate, user_id, outcome))
        if not ok:
            if code == ErrorCode.COMMIT_FAILED:
                self._clock.start(room_id, user_id, room.round_time_seconds)
            return False

        logger.info(f"Room {room_id}: {user_id} timed out, next: {outcome.next_turn}")
        await self._after_turn(room, outcome, timed_out_user=user_id)
        return True

    def _turn_commit(
        self,
        aggregate: RoomAggregate,
        user_id: str,
        outcome: TurnOutcome,
        move: MoveRecord | None = None,
        last_word: str | None = None,
        deactivate_player_id: str | None = None
    ) -> TurnCommit:
        room = aggregate.room
        open_round = aggregate.open_round
        return TurnCommit(
            room_id=room.id,
            round_id=open_round.id,
            expected_turn=user_id,
            expected_turns_taken=open_round.turns_taken,
            turns_taken=outcome.turns_taken,
            next_turn=outcome.next_turn,
            current_round=room.current_round + (1 if outcome.round_completed else 0),
            move=move,
            last_word=last_word,
            close_round=outcome.round_completed,
            next_round_number=outcome.next_round_number,
            finish=outcome.finish,
            deactivate_player_id=deactivate_player_id,
        )

    def _commit(self, commit: TurnCommit) -> tuple[bool, ErrorCode | None, MoveRecord | None]:
        """
        Commit a turn, retrying transient store failures.

        Returns:
            Tuple of (success, ErrorCode or None, committed move or None)
        """
        attempts = self._commit_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                move = self._repository.commit_turn(commit)
                return True, None, move
            except StaleTurnError as e:
                logger.warning(f"Stale turn rejected: {e}")
                return False, ErrorCode.STALE_TURN, None
            except sqlite3.OperationalError as e:
                logger.warning(f"Turn commit for room {commit.room_id} failed (attempt {attempt}/{attempts}): {e}")

        logger.error(f"Turn commit for room {commit.room_id} gave up after {attempts} attempts")
        return False, ErrorCode.COMMIT_FAILED, None

    async def _after_turn(
        self,
        room: RoomRecord,
        outcome: TurnOutcome,
        timed_out_user: str | None = None
    ) -> None:
        if outcome.finish:
            self._clock.cancel(room.id)
            await self._announce_finish(room.id)
            return

        if outcome.next_turn:
            self._clock.start(room.id, outcome.next_turn, room.round_time_seconds)
        else:
            self._clock.cancel(room.id)

        payload = {"current_player_turn": outcome.next_turn}
        if outcome.round_completed:
            payload["round"] = outcome.next_round_number
        if timed_out_user:
            payload["timed_out_user"] = timed_out_user
        await self._publish(room.id, BroadcastEvent.TURN_CHANGED, payload)

    def _resume(self, ticket: TurnTicket) -> None:
        """Put back a claimed countdown with whatever time it had left."""
        elapsed = self._clock.now() - ticket.started_at
        remaining = max(0.0, ticket.seconds - elapsed)
        restarted = self._clock.start(ticket.key, ticket.user_id, remaining)
        restarted.started_at = ticket.started_at
        restarted.seconds = ticket.seconds

    def _release(self, ticket: TurnTicket, aggregate: RoomAggregate | None = None) -> None:
        """
        Hand a claimed countdown back unless the turn has moved on.

        Without an aggregate the room is not re-read; a stray ticket for a
        turn that already ended is ignored by handle_timeout.
        """
        if self._clock.current(ticket.key) is not None:
            return
        if aggregate is not None:
            room = aggregate.room
            if room.status != RoomStatus.IN_GAME.value or room.current_player_turn != ticket.user_id:
                return
        self._resume(ticket)

    # =========================================================================
    # Finishing
    # =========================================================================

    def winners(self, aggregate: RoomAggregate) -> list[str]:
        """Every top scorer, provided someone scored at all."""
        if not aggregate.players:
            return []
        top = max(p.score for p in aggregate.players)
        if top <= 0:
            return []
        return [p.user_id for p in aggregate.players if p.score == top]

    async def _announce_finish(self, room_id: str) -> None:
        aggregate = self.get_room_state(room_id)
        winners = self.winners(aggregate) if aggregate else []
        logger.info(f"Room {room_id} finished, winners: {winners}")
        await self._publish(room_id, BroadcastEvent.GAME_FINISHED, {"winners": winners})

    # =========================================================================
    # Startup / Shutdown
    # =========================================================================

    def resume_clocks(self) -> int:
        """Restart countdowns for games that were running when the server stopped."""
        resumed = 0
        for summary in self._repository.list_rooms(status=RoomStatus.IN_GAME.value, limit=1000):
            room = self._repository.get_room(summary.id)
            if room and room.current_player_turn:
                self._clock.start(room.id, room.current_player_turn, room.round_time_seconds)
                resumed += 1
        if resumed:
            logger.info(f"Resumed turn clocks for {resumed} running games")
        return resumed

    async def shutdown(self) -> None:
        self._clock.cancel_all()
        await self._clock.drain()

    # =========================================================================
    # Channel
    # =========================================================================

    async def _publish(
        self,
        room_id: str,
        event: BroadcastEvent,
        payload: dict | None = None,
        sender_id: str | None = None
    ) -> None:
        if not self._connections:
            return
        await self._connections.publish(
            room_id,
            BroadcastMessage.create(room_id, event, payload, sender_id)
        )
