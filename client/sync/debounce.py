"""
Debounced room refresh.

Notifications arriving within the debounce window collapse into a single
re-read. A trigger that arrives while a re-read is in flight schedules
exactly one follow-up once it completes.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from shared.constants import REFRESH_DEBOUNCE


logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    """Debouncer state."""
    IDLE = "idle"
    PENDING = "pending"
    FIRED = "fired"


class RefreshDebouncer:
    """
    idle -> pending -> fired -> idle state machine around an async refresh.

    trigger() from idle opens a window of `delay` seconds; triggers inside
    the window are absorbed. trigger(immediate=True) skips the window.
    While fired (refresh running), any trigger sets a single follow-up.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[None]],
        delay: float = REFRESH_DEBOUNCE
    ):
        self._refresh = refresh
        self._delay = delay
        self._state = RefreshState.IDLE
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._follow_up = False
        self._closed = False
        self.fire_count = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def trigger(self, immediate: bool = False) -> None:
        """Request a refresh."""
        if self._closed:
            return

        if self._state == RefreshState.FIRED:
            self._follow_up = True
            return

        if immediate:
            self._cancel_timer()
            self._fire()
            return

        if self._state == RefreshState.PENDING:
            return

        self._state = RefreshState.PENDING
        self._timer = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._state = RefreshState.FIRED
        self._follow_up = False
        self.fire_count += 1
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            await self._refresh()
        except Exception as e:
            logger.warning(f"Room refresh failed: {e}")
        finally:
            self._task = None
            if not self._closed:
                if self._follow_up:
                    self._fire()
                else:
                    self._state = RefreshState.IDLE

    def close(self) -> None:
        """Cancel the pending window and any running refresh. Further triggers are ignored."""
        self._closed = True
        self._follow_up = False
        self._cancel_timer()
        if self._task:
            self._task.cancel()
        self._state = RefreshState.IDLE

    async def wait_idle(self) -> None:
        """Wait until no refresh is pending or running."""
        while self._state != RefreshState.IDLE:
            if self._task:
                await asyncio.gather(self._task, return_exceptions=True)
            else:
                await asyncio.sleep(self._delay / 4 or 0.01)
