"""Protocol-to-state synchronization for one network connection."""

from ircstate.sync.engine import SyncEngine
from ircstate.sync.history import HistoryCoordinator
from ircstate.sync.lifecycle import ConnectionLifecycle, ConnectionParams
from ircstate.sync.modes import ModeLine, ModeTracker
from ircstate.sync.transport import Transport

__all__ = [
    "ConnectionLifecycle",
    "ConnectionParams",
    "HistoryCoordinator",
    "ModeLine",
    "ModeTracker",
    "SyncEngine",
    "Transport",
]
