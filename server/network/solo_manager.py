"""
Solo session manager.

One SoloSession per connected user, each with its own countdown. State
changes are pushed to the user as SOLO_STATE messages.
"""

import logging
import random

from server.game_engine import WordRules, SoloSession, TurnClock, TurnTicket
from server.persistence import WordWaveRepository, UserRecord, SoloStatsRecord
from server.network.connection_manager import ConnectionManager
from shared.constants import SOLO_TIME_LIMIT
from shared.protocol import SoloStateMessage
from shared.enums import ErrorCode


logger = logging.getLogger(__name__)


def _clock_key(user_id: str) -> str:
    return f"solo:{user_id}"


class SoloManager:
    """Manages solo sessions and their turn clocks."""

    def __init__(
        self,
        repository: WordWaveRepository,
        rules: WordRules,
        connections: ConnectionManager | None = None,
        clock: TurnClock | None = None,
        time_limit: int = SOLO_TIME_LIMIT,
        rng: random.Random | None = None
    ):
        self._repository = repository
        self._rules = rules
        self._connections = connections
        self._clock = clock or TurnClock()
        self._clock.on_expire = self._on_expired
        self._time_limit = time_limit
        self._random = rng or random.Random()

        # user_id -> SoloSession
        self._sessions: dict[str, SoloSession] = {}

    @property
    def clock(self) -> TurnClock:
        return self._clock

    def get_session(self, user_id: str) -> SoloSession | None:
        return self._sessions.get(user_id)

    def start(self, user: UserRecord) -> SoloSession:
        """Start (or restart) a solo session for user."""
        previous = self._sessions.pop(user.id, None)
        if previous:
            self._clock.cancel(_clock_key(user.id))

        session = SoloSession(
            user_id=user.id,
            rules=self._rules,
            time_limit=self._time_limit,
            is_guest=user.is_guest,
            rng=self._random,
        )
        self._sessions[user.id] = session
        self._clock.start(_clock_key(user.id), user.id, self._time_limit)

        logger.info(f"Solo session started for {user.display_name} ({user.id})")
        return session

    async def submit(self, user_id: str, word: str) -> tuple[bool, str, SoloSession | ErrorCode]:
        """
        Play a word in the user's solo session.

        Returns:
            Tuple of (success, message, SoloSession or ErrorCode)
        """
        session = self._sessions.get(user_id)
        if not session or session.is_over:
            return False, "No solo game in progress", ErrorCode.NO_SOLO_SESSION

        key = _clock_key(user_id)
        ticket = self._clock.claim(key, user_id)
        if ticket is None:
            return False, "Time is up for this turn", ErrorCode.STALE_TURN

        result = await session.submit(word, ticket.elapsed_ms(self._clock.now()))

        if self._sessions.get(user_id) is session and not session.is_over:
            self._clock.start(key, user_id, self._time_limit)

        message = "Word accepted" if result.validation.valid else result.validation.message
        return True, message, session

    def end(self, user_id: str) -> tuple[bool, str, SoloSession | ErrorCode]:
        """
        Finish the user's solo session and record its statistics.

        Guests play without statistics.

        Returns:
            Tuple of (success, message, SoloSession or ErrorCode)
        """
        session = self._sessions.pop(user_id, None)
        if not session:
            return False, "No solo game in progress", ErrorCode.NO_SOLO_SESSION

        self._clock.cancel(_clock_key(user_id))
        stats = session.end()

        if not session.is_guest:
            self._record(session)

        return True, f"Solo game over: {stats.score} points", session

    def _record(self, session: SoloSession) -> SoloStatsRecord:
        stats = session.stats
        return self._repository.record_solo_session(
            session.user_id,
            points=stats.score,
            best_streak=stats.best_streak,
            average_time_ms=stats.average_time_ms,
            longest_word=stats.longest_word,
        )

    async def _on_expired(self, ticket: TurnTicket) -> None:
        session = self._sessions.get(ticket.user_id)
        if not session or session.is_over:
            return

        session.timeout()
        self._clock.start(ticket.key, ticket.user_id, self._time_limit)

        if self._connections:
            await self._connections.send_to_user(
                ticket.user_id,
                SoloStateMessage.create(session.to_dict())
            )

    async def shutdown(self) -> None:
        self._clock.cancel_all()
        await self._clock.drain()
