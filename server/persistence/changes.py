"""
Change notifications for committed writes.

The repository publishes one ChangeEvent per written row after the
transaction commits. Subscribers are scoped to a room.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from shared.enums import ChangeKind


logger = logging.getLogger(__name__)


@dataclass
class ChangeEvent:
    """A committed insert, update or delete touching a room."""
    table: str
    kind: ChangeKind
    room_id: str
    row: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "kind": self.kind.value,
            "room_id": self.room_id,
            "row": self.row,
        }


ChangeCallback = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Per-room publish/subscribe for store changes."""

    def __init__(self):
        # room_id -> callbacks
        self._subscribers: dict[str, list[ChangeCallback]] = {}
        # callbacks for every room
        self._firehose: list[ChangeCallback] = []

    def subscribe(self, room_id: str, callback: ChangeCallback) -> Callable[[], None]:
        """
        Receive changes for one room.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.setdefault(room_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(room_id)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[room_id]

        return unsubscribe

    def subscribe_all(self, callback: ChangeCallback) -> Callable[[], None]:
        """Receive changes for every room."""
        self._firehose.append(callback)

        def unsubscribe() -> None:
            if callback in self._firehose:
                self._firehose.remove(callback)

        return unsubscribe

    def subscriber_count(self, room_id: str) -> int:
        return len(self._subscribers.get(room_id, []))

    def publish(self, event: ChangeEvent) -> None:
        callbacks = list(self._subscribers.get(event.room_id, [])) + list(self._firehose)
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.exception(f"Change subscriber failed for {event.table} in {event.room_id}: {e}")

    def publish_all(self, events: list[ChangeEvent]) -> None:
        for event in events:
            self.publish(event)
