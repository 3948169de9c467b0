"""
Two-phase room state: the last confirmed aggregate plus an optimistic overlay.
"""

import copy
from typing import Any, Callable


class RoomStateCell:
    """
    Holds the confirmed room aggregate and a pending optimistic overlay.

    The overlay is a partial `room` dict applied on top of the confirmed
    aggregate's `room`. Every confirmed read discards the whole overlay.
    """

    def __init__(self):
        self._confirmed: dict | None = None
        self._pending: dict[str, Any] = {}
        self.version = 0
        self._listeners: list[Callable[[dict | None], None]] = []

    @property
    def confirmed(self) -> dict | None:
        return self._confirmed

    @property
    def pending(self) -> dict[str, Any]:
        return dict(self._pending)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def value(self) -> dict | None:
        """Confirmed aggregate with the overlay applied."""
        if self._confirmed is None:
            return None
        if not self._pending:
            return self._confirmed
        merged = copy.deepcopy(self._confirmed)
        merged.setdefault("room", {}).update(self._pending)
        return merged

    def add_listener(self, listener: Callable[[dict | None], None]) -> None:
        self._listeners.append(listener)

    def apply_optimistic(self, **changes: Any) -> None:
        """Show changes locally ahead of the store confirming them."""
        self._pending.update(changes)
        self._notify()

    def confirm(self, aggregate: dict) -> None:
        """Replace the confirmed value and drop every optimistic change."""
        self._confirmed = aggregate
        self._pending.clear()
        self.version += 1
        self._notify()

    def clear(self) -> None:
        self._confirmed = None
        self._pending.clear()

    def _notify(self) -> None:
        value = self.value
        for listener in list(self._listeners):
            listener(value)
