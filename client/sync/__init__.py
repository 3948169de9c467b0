"""
Client-side room synchronization.
"""
from .debounce import RefreshDebouncer, RefreshState
from .state import RoomStateCell
from .coordinator import SyncCoordinator, SyncConnectionState, RoomChannel

__all__ = [
    "RefreshDebouncer",
    "RefreshState",
    "RoomStateCell",
    "SyncCoordinator",
    "SyncConnectionState",
    "RoomChannel",
]
