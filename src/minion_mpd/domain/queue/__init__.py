"""Queue domain - the persistent play queue.

This domain handles:
- Queue entries with stable ids and dense positions
- Add/remove/move/swap/shuffle/priority mutations, written through to SQLite
- The priority-grouped random traversal used in random mode
"""

from .models import QueueChange, QueueEntry, QueueSlot
from .store import (
    InvalidSong,
    NoSuchEntry,
    OutOfRange,
    QueueError,
    QueueFull,
    QueueListener,
    QueueStore,
)

__all__ = [
    "QueueChange",
    "QueueEntry",
    "QueueSlot",
    "QueueError",
    "InvalidSong",
    "NoSuchEntry",
    "OutOfRange",
    "QueueFull",
    "QueueListener",
    "QueueStore",
]
