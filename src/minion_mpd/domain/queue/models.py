"""
Play queue domain models.
"""

from dataclasses import dataclass
from typing import NamedTuple, Optional


class QueueEntry(NamedTuple):
    """Read-only view of one queue slot.

    `id` is stable for the life of the entry and never handed out again;
    `position` is its dense 0-based rank at the time the view was taken.
    """

    id: int
    position: int
    song_id: int
    priority: int = 0
    range_start: Optional[float] = None  # seconds
    range_end: Optional[float] = None  # seconds, None = to the end
    version: int = 0  # queue version of the last add/move touching this entry


@dataclass
class QueueSlot:
    """Mutable per-entry record kept in the store's arena."""

    song_id: int
    priority: int = 0
    range_start: Optional[float] = None
    range_end: Optional[float] = None
    version: int = 0


class QueueChange(NamedTuple):
    """Notification sent to queue listeners after a mutation.

    Attributes:
        kind: 'add', 'remove', 'move', 'swap', 'clear', 'shuffle',
            'priority' or 'range'
        version: Queue version after the mutation
        added: Ids of entries that were added
        removed: (entry id, former position) of entries that went away
        prior_random_order: Random traversal before a removal, if one existed
    """

    kind: str
    version: int
    added: tuple[int, ...] = ()
    removed: tuple[tuple[int, int], ...] = ()
    prior_random_order: tuple[int, ...] = ()
