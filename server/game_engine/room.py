"""
Room lifecycle state machine.

lobby -> in_game -> finished. The machine is pure: it inspects a loaded
RoomAggregate, answers authorization questions and plans transitions.
The room manager turns plans into store writes.
"""
from dataclasses import dataclass

from shared.constants import MIN_PLAYERS
from shared.enums import RoomStatus, ErrorCode
from server.persistence.models import RoomAggregate, PlayerRecord

from .scheduler import TurnScheduler


@dataclass
class Decision:
    """Answer to an authorization question."""
    allowed: bool
    code: ErrorCode | None = None
    message: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, code: ErrorCode, message: str) -> "Decision":
        return cls(allowed=False, code=code, message=message)

    def __bool__(self) -> bool:
        return self.allowed


@dataclass
class JoinPlan:
    """How a user gets a seat."""
    turn_order: int
    rejoin_player_id: str | None = None  # existing row to reactivate

    @property
    def is_rejoin(self) -> bool:
        return self.rejoin_player_id is not None


@dataclass
class StartPlan:
    first_turn: str


@dataclass
class TurnOutcome:
    """What happens when the current turn ends (move or timeout)."""
    next_turn: str | None
    turns_taken: int
    round_completed: bool = False
    next_round_number: int | None = None  # round to open after closing the current one
    finish: bool = False


@dataclass
class LeavePlan:
    """How a user's departure changes the room."""
    player_id: str
    delete_player: bool = False
    delete_room: bool = False
    new_host_id: str | None = None
    turn: TurnOutcome | None = None  # set when the leaver held the turn
    finish: bool = False


class RoomStateMachine:
    """
    Transition planner and policy checks for one room.

    Args:
        aggregate: Freshly loaded room state
        finish_on_last_player: Finish an in-game room once fewer than two
            players remain active
    """

    def __init__(self, aggregate: RoomAggregate, finish_on_last_player: bool = False):
        self.aggregate = aggregate
        self.finish_on_last_player = finish_on_last_player

    @property
    def room(self):
        return self.aggregate.room

    @property
    def status(self) -> RoomStatus:
        return RoomStatus(self.room.status)

    @property
    def is_finished(self) -> bool:
        return self.status == RoomStatus.FINISHED

    # =========================================================================
    # Joining
    # =========================================================================

    def can_join(self, user_id: str) -> Decision:
        if self.is_finished:
            return Decision.deny(ErrorCode.ROOM_FINISHED, "Game has already finished")

        seat = self.aggregate.player_for(user_id)
        if seat and seat.is_active:
            return Decision.allow()

        if len(self.aggregate.active_players) >= self.room.max_players:
            return Decision.deny(ErrorCode.ROOM_FULL, "Room is full")

        return Decision.allow()

    def plan_join(self, user_id: str) -> JoinPlan | None:
        """
        Seat for user_id, or None if they already hold an active one.

        New seats go to the end of the turn order. A returning user keeps
        their row and score but moves to the end as well.
        """
        seat = self.aggregate.player_for(user_id)
        if seat and seat.is_active:
            return None

        next_order = self._next_turn_order()
        if seat:
            return JoinPlan(turn_order=next_order, rejoin_player_id=seat.id)
        return JoinPlan(turn_order=next_order)

    def _next_turn_order(self) -> int:
        if not self.aggregate.players:
            return 0
        return max(p.turn_order for p in self.aggregate.players) + 1

    # =========================================================================
    # Starting
    # =========================================================================

    def can_start(self, actor_id: str) -> Decision:
        if actor_id != self.room.host_id:
            return Decision.deny(ErrorCode.NOT_HOST, "Only the host can start the game")

        if self.status == RoomStatus.FINISHED:
            return Decision.deny(ErrorCode.ROOM_FINISHED, "Game has already finished")

        if self.status != RoomStatus.LOBBY:
            return Decision.deny(ErrorCode.ALREADY_STARTED, "Game has already started")

        if len(self.aggregate.active_players) < MIN_PLAYERS:
            return Decision.deny(
                ErrorCode.NOT_ENOUGH_PLAYERS,
                f"Need at least {MIN_PLAYERS} players to start"
            )

        return Decision.allow()

    def plan_start(self) -> StartPlan:
        first = TurnScheduler.first_player(self.aggregate.active_players, self.room.host_id)
        return StartPlan(first_turn=first.user_id)

    # =========================================================================
    # Turns
    # =========================================================================

    def can_submit(self, user_id: str) -> Decision:
        if self.is_finished:
            return Decision.deny(ErrorCode.ROOM_FINISHED, "Game has already finished")

        if self.status != RoomStatus.IN_GAME:
            return Decision.deny(ErrorCode.NOT_IN_GAME, "Game has not started")

        seat = self.aggregate.player_for(user_id)
        if not seat or not seat.is_active:
            return Decision.deny(ErrorCode.NOT_IN_ROOM, "You are not playing in this room")

        if self.room.current_player_turn != user_id:
            return Decision.deny(ErrorCode.NOT_YOUR_TURN, "It's not your turn")

        return Decision.allow()

    def plan_turn_end(self, current_user_id: str | None) -> TurnOutcome:
        """
        Plan the end of the current turn, whether by move or timeout.

        A round is complete once every active player has had a turn in it.
        Completing the last configured round finishes the room.
        """
        return self._turn_end(self.aggregate.active_players, current_user_id)

    def _turn_end(
        self,
        players: list[PlayerRecord],
        current_user_id: str | None,
        following: PlayerRecord | None = None
    ) -> TurnOutcome:
        open_round = self.aggregate.open_round
        turns_taken = (open_round.turns_taken if open_round else 0) + 1

        if following is None:
            following = TurnScheduler.next_player(players, current_user_id)
        next_turn = following.user_id if following else None

        if not players:
            return TurnOutcome(next_turn=None, turns_taken=turns_taken, round_completed=True, finish=True)

        if turns_taken < len(players):
            return TurnOutcome(next_turn=next_turn, turns_taken=turns_taken)

        next_round = self.room.current_round + 1
        if next_round > self.room.rounds:
            return TurnOutcome(
                next_turn=None,
                turns_taken=turns_taken,
                round_completed=True,
                finish=True,
            )

        return TurnOutcome(
            next_turn=next_turn,
            turns_taken=turns_taken,
            round_completed=True,
            next_round_number=next_round,
        )

    # =========================================================================
    # Finishing
    # =========================================================================

    def can_finish(self, actor_id: str | None) -> Decision:
        """Host may end the game early; actor None is the engine itself."""
        if self.is_finished:
            return Decision.deny(ErrorCode.ROOM_FINISHED, "Game has already finished")

        if actor_id is not None and actor_id != self.room.host_id:
            return Decision.deny(ErrorCode.NOT_HOST, "Only the host can finish the game")

        return Decision.allow()

    def should_finish_for_attrition(self, remaining: int) -> bool:
        if self.status != RoomStatus.IN_GAME:
            return False
        if remaining == 0:
            return True
        return self.finish_on_last_player and remaining < MIN_PLAYERS

    # =========================================================================
    # Leaving
    # =========================================================================

    def can_leave(self, user_id: str) -> Decision:
        if self.is_finished:
            return Decision.deny(ErrorCode.ROOM_FINISHED, "Game has already finished")

        seat = self.aggregate.player_for(user_id)
        if not seat or not seat.is_active:
            return Decision.deny(ErrorCode.NOT_IN_ROOM, "You are not in this room")

        return Decision.allow()

    def plan_leave(self, user_id: str) -> LeavePlan:
        """
        In the lobby the seat is deleted (and an empty room with it); the
        host role passes to the next seat. In game the seat is deactivated
        and, if the leaver held the turn, the turn moves on with no move.
        """
        seat = self.aggregate.player_for(user_id)
        active = self.aggregate.active_players
        remaining = [p for p in active if p.user_id != user_id]

        if self.status == RoomStatus.LOBBY:
            plan = LeavePlan(player_id=seat.id, delete_player=True)
            if not remaining:
                plan.delete_room = True
            elif user_id == self.room.host_id:
                plan.new_host_id = remaining[0].user_id
            return plan

        plan = LeavePlan(player_id=seat.id)

        if self.should_finish_for_attrition(len(remaining)):
            plan.finish = True
            return plan

        if self.room.current_player_turn == user_id:
            following = TurnScheduler.next_player(active, user_id)
            if following and following.user_id == user_id:
                following = None
            plan.turn = self._turn_end(remaining, user_id, following)
            plan.finish = plan.turn.finish

        return plan
