"""
Turn order and turn countdowns.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar


logger = logging.getLogger(__name__)


class Seat(Protocol):
    user_id: str
    turn_order: int


S = TypeVar("S", bound=Seat)


class TurnScheduler:
    """Fixed join-order rotation over the active players of a room."""

    @staticmethod
    def ordered(players: Sequence[S]) -> list[S]:
        return sorted(players, key=lambda p: p.turn_order)

    @classmethod
    def next_player(cls, players: Sequence[S], current_user_id: str | None) -> S | None:
        """
        Player after current_user_id in turn order, wrapping around.

        If the current player is no longer in the list (they left), the
        rotation restarts from the first player.
        """
        ordered = cls.ordered(players)
        if not ordered:
            return None

        for index, player in enumerate(ordered):
            if player.user_id == current_user_id:
                return ordered[(index + 1) % len(ordered)]

        return ordered[0]

    @classmethod
    def first_player(cls, players: Sequence[S], host_user_id: str) -> S | None:
        """The host never takes the first turn: play opens with the seat after it."""
        return cls.next_player(players, host_user_id)


@dataclass
class TurnTicket:
    """An active turn: who holds it and when it started."""
    key: str
    user_id: str
    seconds: float
    started_at: float
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    def elapsed_ms(self, now: float) -> int:
        return max(0, int((now - self.started_at) * 1000))


ExpireCallback = Callable[[TurnTicket], Awaitable[None]]


class TurnClock:
    """
    One cancellable countdown per room.

    A ticket is consumed exactly once: either by claim() when a
    submission arrives, or by the expiry callback. Both run synchronously
    on the event loop, so whichever comes first wins and the other sees
    no ticket.
    """

    def __init__(
        self,
        on_expire: ExpireCallback | None = None,
        time_func: Callable[[], float] = time.monotonic
    ):
        self.on_expire = on_expire
        self.time_func = time_func
        self._tickets: dict[str, TurnTicket] = {}
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return self.time_func()

    def start(self, key: str, user_id: str, seconds: float) -> TurnTicket:
        """Start a countdown for user_id, cancelling any previous one for key."""
        self.cancel(key)

        ticket = TurnTicket(key=key, user_id=user_id, seconds=seconds, started_at=self.now())
        loop = asyncio.get_running_loop()
        ticket.handle = loop.call_later(seconds, self._expire, ticket)
        self._tickets[key] = ticket

        logger.debug(f"Turn clock started for {user_id} in {key} ({seconds}s)")
        return ticket

    def current(self, key: str) -> TurnTicket | None:
        return self._tickets.get(key)

    def claim(self, key: str, user_id: str) -> TurnTicket | None:
        """
        Stop the countdown and take the ticket if user_id holds the turn.

        Returns None if there is no live ticket for user_id.
        """
        ticket = self._tickets.get(key)
        if ticket is None or ticket.user_id != user_id:
            return None

        del self._tickets[key]
        if ticket.handle:
            ticket.handle.cancel()
        return ticket

    def cancel(self, key: str) -> None:
        ticket = self._tickets.pop(key, None)
        if ticket and ticket.handle:
            ticket.handle.cancel()

    def cancel_all(self) -> None:
        for key in list(self._tickets):
            self.cancel(key)

    def expire(self, key: str) -> bool:
        """Expire the countdown for key right now. Returns False if none was live."""
        ticket = self._tickets.get(key)
        if ticket is None:
            return False
        if ticket.handle:
            ticket.handle.cancel()
        self._expire(ticket)
        return True

    def _expire(self, ticket: TurnTicket) -> None:
        if self._tickets.get(ticket.key) is not ticket:
            return
        del self._tickets[ticket.key]

        logger.info(f"Turn timed out for {ticket.user_id} in {ticket.key}")

        if self.on_expire:
            task = asyncio.ensure_future(self.on_expire(ticket))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for pending expiry callbacks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
