"""
Room sync coordinator.

Keeps a client's view of one room consistent with the store: every
change notification or application hint triggers a debounced
authoritative re-read of the room aggregate, and channel failures are
answered by resubscribing after a status-dependent delay.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Protocol

from client.config import ClientSettings, settings as default_settings
from client.sync.debounce import RefreshDebouncer
from client.sync.state import RoomStateCell
from shared.enums import MessageType, BroadcastEvent, ChannelStatus


logger = logging.getLogger(__name__)

# Hints that mean the room aggregate has moved on
REFRESH_EVENTS = {
    BroadcastEvent.WORD_SUBMITTED,
    BroadcastEvent.TURN_CHANGED,
    BroadcastEvent.GAME_STARTED,
    BroadcastEvent.GAME_FINISHED,
}


class RoomChannel(Protocol):
    """What the coordinator needs from the transport."""

    async def subscribe(self, room_id: str, listener: Callable[[dict], None]) -> None: ...

    async def unsubscribe(self, room_id: str) -> None: ...

    async def fetch_room(self, room_id: str) -> dict | None: ...

    async def send_broadcast(self, room_id: str, event: BroadcastEvent, payload: dict | None = None) -> bool: ...


class SyncConnectionState(str, Enum):
    """Health of the room subscription."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class SyncCoordinator:
    """
    Owns one room subscription for its lifetime.

    Use open()/close() or `async with`. After close() no callback fires
    and no fetch result is applied.
    """

    def __init__(
        self,
        room_id: str,
        channel: RoomChannel,
        fetch_room: Callable[[str], Awaitable[dict | None]] | None = None,
        on_state: Callable[[dict | None], None] | None = None,
        on_typing: Callable[[str | None, dict], None] | None = None,
        on_connection: Callable[[SyncConnectionState], None] | None = None,
        client_settings: ClientSettings | None = None
    ):
        cfg = client_settings or default_settings
        self.room_id = room_id
        self._channel = channel
        self._fetch_room = fetch_room or channel.fetch_room
        self._on_typing = on_typing
        self._on_connection = on_connection

        self._retry_delays = {
            ChannelStatus.TIMED_OUT: cfg.retry_timed_out,
            ChannelStatus.CLOSED: cfg.retry_closed,
            ChannelStatus.CHANNEL_ERROR: cfg.retry_error,
        }

        self.state = RoomStateCell()
        if on_state:
            self.state.add_listener(on_state)

        self._debouncer = RefreshDebouncer(self._fetch, cfg.refresh_debounce)
        self._connection_state = SyncConnectionState.DISCONNECTED
        self._alive = False
        self._generation = 0
        self._retry: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def connection_state(self) -> SyncConnectionState:
        return self._connection_state

    @property
    def is_open(self) -> bool:
        return self._alive

    @property
    def debouncer(self) -> RefreshDebouncer:
        return self._debouncer

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None

    def _set_connection_state(self, state: SyncConnectionState) -> None:
        if self._connection_state != state:
            self._connection_state = state
            if self._on_connection and self._alive:
                self._on_connection(state)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> "SyncCoordinator":
        """Subscribe to the room channel. The first SUBSCRIBED status fetches the room."""
        if self._alive:
            return self
        self._alive = True
        await self._subscribe()
        return self

    async def close(self) -> None:
        """Drop the subscription and cancel every timer and in-flight fetch."""
        if not self._alive:
            return
        self._alive = False
        self._generation += 1
        self._cancel_retry()
        self._debouncer.close()
        for task in list(self._tasks):
            task.cancel()
        await self._channel.unsubscribe(self.room_id)
        self._connection_state = SyncConnectionState.DISCONNECTED
        logger.debug(f"Closed sync for room {self.room_id}")

    async def __aenter__(self) -> "SyncCoordinator":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _subscribe(self) -> None:
        self._set_connection_state(SyncConnectionState.CONNECTING)
        await self._channel.subscribe(self.room_id, self.handle_message)

    def _resubscribe(self) -> None:
        self._retry = None
        if not self._alive:
            return
        # Results of re-reads started on the old subscription are stale
        self._generation += 1
        logger.info(f"Resubscribing to room {self.room_id}")
        self._spawn(self._subscribe())

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_retry(self, delay: float) -> None:
        self._cancel_retry()
        self._retry = asyncio.get_running_loop().call_later(delay, self._resubscribe)

    def _cancel_retry(self) -> None:
        if self._retry:
            self._retry.cancel()
            self._retry = None

    # =========================================================================
    # Incoming
    # =========================================================================

    def handle_message(self, message: dict) -> None:
        """Channel listener: store changes, hints and subscription status."""
        if not self._alive:
            return

        msg_type = message.get("type")
        data = message.get("data", {})

        if msg_type == MessageType.CHANNEL_STATUS.value:
            try:
                status = ChannelStatus(data.get("status"))
            except ValueError:
                logger.debug(f"Ignoring unknown channel status {data.get('status')}")
                return
            self._handle_status(status)
        elif msg_type == MessageType.ROOM_CHANGED.value:
            self._debouncer.trigger()
        elif msg_type == MessageType.BROADCAST.value:
            self._handle_broadcast(data)

    def _handle_status(self, status: ChannelStatus) -> None:
        if status == ChannelStatus.SUBSCRIBED:
            self._cancel_retry()
            self._set_connection_state(SyncConnectionState.CONNECTED)
            self._debouncer.trigger(immediate=True)
            return

        logger.warning(f"Room {self.room_id} channel {status.value}")
        self._set_connection_state(SyncConnectionState.RECONNECTING)

        if status == ChannelStatus.CLOSED and self._retry is not None:
            return
        self._schedule_retry(self._retry_delays[status])

    def _handle_broadcast(self, data: dict) -> None:
        try:
            event = BroadcastEvent(data.get("event"))
        except ValueError:
            logger.debug(f"Ignoring unknown broadcast {data.get('event')}")
            return

        if event == BroadcastEvent.TYPING_INDICATOR:
            if self._on_typing:
                self._on_typing(data.get("sender_id"), data.get("payload") or {})
        elif event == BroadcastEvent.FORCE_REFRESH:
            self._debouncer.trigger(immediate=True)
        elif event in REFRESH_EVENTS:
            self._debouncer.trigger()

    async def _fetch(self) -> None:
        generation = self._generation
        aggregate = await self._fetch_room(self.room_id)
        if not self._alive or generation != self._generation:
            logger.debug(f"Discarding superseded read of room {self.room_id}")
            return
        if aggregate is not None:
            self.state.confirm(aggregate)

    # =========================================================================
    # Outgoing
    # =========================================================================

    def refresh(self, immediate: bool = True) -> None:
        """Manual refresh."""
        self._debouncer.trigger(immediate=immediate)

    def submitted(self, word: str | None = None) -> None:
        """
        Own submission went through: show the word right away and re-read
        immediately.
        """
        if word:
            self.state.apply_optimistic(last_word=word)
        self._debouncer.trigger(immediate=True)

    async def force_refresh(self) -> None:
        """Ask every client in the room to re-read, including this one."""
        self._debouncer.trigger(immediate=True)
        await self._channel.send_broadcast(self.room_id, BroadcastEvent.FORCE_REFRESH)

    async def send_typing(self, is_typing: bool, display_name: str | None = None) -> None:
        if self._connection_state != SyncConnectionState.CONNECTED:
            return
        await self._channel.send_broadcast(
            self.room_id,
            BroadcastEvent.TYPING_INDICATOR,
            {"is_typing": is_typing, "display_name": display_name},
        )
