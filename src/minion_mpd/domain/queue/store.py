"""
Persistent play queue.

Entries live in an arena keyed by their stable id; a dense list of ids gives
the play order. Every mutation is written to the `queue` table before it is
applied in memory, and listeners are told about it after the queue lock has
been released.
"""

import random
from typing import Callable, Iterable, Iterator, Optional

from loguru import logger

from minion_mpd.core.database import Database
from minion_mpd.core.locks import RWLock

from .models import QueueChange, QueueEntry, QueueSlot

QueueListener = Callable[[QueueChange], None]


class QueueError(Exception):
    """Base class for queue failures."""

    pass


class InvalidSong(QueueError):
    """The song id does not exist in the library (or is tombstoned)."""

    pass


class NoSuchEntry(QueueError):
    """No queue entry carries the given id."""

    pass


class OutOfRange(QueueError):
    """A position or range lies outside the queue."""

    pass


class QueueFull(QueueError):
    """The configured maximum queue length would be exceeded."""

    pass


class QueueStore:
    """Ordered collection of queue entries with stable ids."""

    def __init__(self, db: Database, max_length: int = 16384):
        self.db = db
        self.max_length = max_length
        self.lock = RWLock()
        self._slots: dict[int, QueueSlot] = {}
        self._order: list[int] = []
        self._positions: dict[int, int] = {}
        self._version = 1
        self._next_id = 1
        self._random_order: list[int] = []
        self._random_stale = True
        self._listeners: list[QueueListener] = []

    # -- persistence ----------------------------------------------------------

    def load(self) -> None:
        """Load entries and the id high-water mark from the database."""
        with self.lock.write():
            with self.db.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, song_id, position, priority, range_start, range_end
                    FROM queue ORDER BY position, id
                    """
                ).fetchall()
                state = conn.execute(
                    "SELECT next_entry_id FROM player_state WHERE id = 1"
                ).fetchone()

            self._slots = {
                row["id"]: QueueSlot(
                    song_id=row["song_id"],
                    priority=row["priority"],
                    range_start=row["range_start"],
                    range_end=row["range_end"],
                    version=self._version,
                )
                for row in rows
            }
            self._order = [row["id"] for row in rows]
            self._positions = {}
            self._reindex()
            stored_next = state["next_entry_id"] if state else 1
            self._next_id = max(stored_next, max(self._order, default=0) + 1)
            self._random_stale = True

            if any(row["position"] != pos for pos, row in enumerate(rows)):
                logger.warning("Queue positions were not dense, renumbering")
                with self.db.transaction() as conn:
                    self._write_positions(conn, self._order, 0)

        logger.info(f"Loaded queue: {len(self._order)} entries, next id {self._next_id}")

    def _write_positions(self, conn, order: list[int], start: int, end: Optional[int] = None):
        end = len(order) if end is None else end
        conn.executemany(
            "UPDATE queue SET position = ? WHERE id = ?",
            [(pos, order[pos]) for pos in range(start, end)],
        )

    # -- listeners ------------------------------------------------------------

    def add_listener(self, listener: QueueListener) -> None:
        self._listeners.append(listener)

    def _notify(self, change: Optional[QueueChange]) -> None:
        if change is None:
            return
        for listener in list(self._listeners):
            listener(change)

    # -- read side ------------------------------------------------------------

    def __len__(self) -> int:
        with self.lock.read():
            return len(self._order)

    def __contains__(self, entry_id: int) -> bool:
        with self.lock.read():
            return entry_id in self._slots

    @property
    def version(self) -> int:
        with self.lock.read():
            return self._version

    def _reindex(self, start: int = 0) -> None:
        for pos in range(start, len(self._order)):
            self._positions[self._order[pos]] = pos

    def _view(self, entry_id: int) -> QueueEntry:
        slot = self._slots[entry_id]
        return QueueEntry(
            id=entry_id,
            position=self._positions[entry_id],
            song_id=slot.song_id,
            priority=slot.priority,
            range_start=slot.range_start,
            range_end=slot.range_end,
            version=slot.version,
        )

    def _check_range(self, start: int, end: Optional[int]) -> tuple[int, int]:
        length = len(self._order)
        end = length if end is None else end
        if start < 0 or start > end or end > length:
            raise OutOfRange(f"Bad song index {start}:{end} (queue length {length})")
        return start, end

    def _require(self, entry_id: int) -> int:
        position = self._positions.get(entry_id)
        if position is None:
            raise NoSuchEntry(f"No such song id: {entry_id}")
        return position

    def get(self, entry_id: int) -> QueueEntry:
        with self.lock.read():
            self._require(entry_id)
            return self._view(entry_id)

    def at(self, position: int) -> QueueEntry:
        with self.lock.read():
            if not 0 <= position < len(self._order):
                raise OutOfRange(f"Bad song index {position}")
            return self._view(self._order[position])

    def position_of(self, entry_id: int) -> Optional[int]:
        """Current position of an entry, or None once it has been removed."""
        with self.lock.read():
            return self._positions.get(entry_id)

    def ids(self) -> list[int]:
        with self.lock.read():
            return list(self._order)

    def ids_in_range(self, start: int, end: Optional[int] = None) -> list[int]:
        with self.lock.read():
            start, end = self._check_range(start, end)
            return self._order[start:end]

    def entries(self, start: int = 0, end: Optional[int] = None) -> Iterator[QueueEntry]:
        """Iterate over a snapshot of (part of) the queue."""
        with self.lock.read():
            start, end = self._check_range(start, end)
            snapshot = [self._view(entry_id) for entry_id in self._order[start:end]]
        return iter(snapshot)

    def changes_since(self, version: int) -> list[QueueEntry]:
        """Entries added or moved after queue `version`, in position order."""
        with self.lock.read():
            return [
                self._view(entry_id)
                for entry_id in self._order
                if self._slots[entry_id].version > version
            ]

    # -- mutations ------------------------------------------------------------

    def add(self, song_id: int, position: Optional[int] = None) -> int:
        """Append a song (or insert it at `position`) and return the new entry id."""
        return self.add_many([song_id], position)[0]

    def add_many(self, song_ids: Iterable[int], position: Optional[int] = None) -> list[int]:
        """Add several songs in one step; all of them or none are added.

        Raises:
            InvalidSong: if any song is unknown to the library
            OutOfRange: if position is beyond the end of the queue
            QueueFull: if the queue would exceed its maximum length
        """
        song_ids = list(song_ids)
        if not song_ids:
            return []

        with self.lock.write():
            length = len(self._order)
            position = length if position is None else position
            if not 0 <= position <= length:
                raise OutOfRange(f"Bad song index {position} (queue length {length})")
            if length + len(song_ids) > self.max_length:
                raise QueueFull(f"Queue is limited to {self.max_length} entries")

            version = self._version + 1
            new_ids = list(range(self._next_id, self._next_id + len(song_ids)))
            order = self._order[:position] + new_ids + self._order[position:]

            with self.db.transaction() as conn:
                for offset, (entry_id, song_id) in enumerate(zip(new_ids, song_ids)):
                    # The existence check shares the write transaction with the
                    # insert, so a concurrent scan cannot delete the song in between
                    cursor = conn.execute(
                        """
                        INSERT INTO queue (id, song_id, position)
                        SELECT ?, ?, ?
                        WHERE EXISTS (SELECT 1 FROM songs WHERE id = ? AND tombstone = FALSE)
                        """,
                        (entry_id, song_id, position + offset, song_id),
                    )
                    if cursor.rowcount == 0:
                        raise InvalidSong(f"No such song: {song_id}")
                self._write_positions(conn, order, position + len(new_ids))
                conn.execute(
                    "UPDATE player_state SET next_entry_id = ? WHERE id = 1",
                    (new_ids[-1] + 1,),
                )

            for entry_id, song_id in zip(new_ids, song_ids):
                self._slots[entry_id] = QueueSlot(song_id=song_id)
            self._order = order
            self._reindex(position)
            self._touch(order[position:], version)
            self._next_id = new_ids[-1] + 1
            self._version = version
            self._random_stale = True
            change = QueueChange("add", version, added=tuple(new_ids))

        logger.debug(f"Queue: added {len(new_ids)} entries at {position}")
        self._notify(change)
        return new_ids

    def _touch(self, entry_ids: Iterable[int], version: int) -> None:
        for entry_id in entry_ids:
            self._slots[entry_id].version = version

    def _remove_locked(self, entry_ids: set[int]) -> Optional[QueueChange]:
        if not entry_ids:
            return None
        removed = tuple(
            sorted(((eid, self._positions[eid]) for eid in entry_ids), key=lambda r: r[1])
        )
        first = removed[0][1]
        order = [eid for eid in self._order if eid not in entry_ids]
        prior_random = () if self._random_stale else tuple(self._random_order)
        version = self._version + 1

        with self.db.transaction() as conn:
            conn.executemany("DELETE FROM queue WHERE id = ?", [(eid,) for eid in entry_ids])
            self._write_positions(conn, order, first)

        for entry_id in entry_ids:
            del self._slots[entry_id]
            del self._positions[entry_id]
        self._order = order
        self._reindex(first)
        self._touch(order[first:], version)
        self._version = version
        self._random_stale = True
        return QueueChange(
            "remove", version, removed=removed, prior_random_order=prior_random
        )

    def remove_id(self, entry_id: int) -> None:
        with self.lock.write():
            self._require(entry_id)
            change = self._remove_locked({entry_id})
        self._notify(change)

    def remove_range(self, start: int, end: Optional[int] = None) -> None:
        """Delete positions start..end-1 (a single position when end is start+1)."""
        with self.lock.write():
            start, end = self._check_range(start, end)
            if start == len(self._order):
                raise OutOfRange(f"Bad song index {start}")
            change = self._remove_locked(set(self._order[start:end]))
        self._notify(change)

    def remove_song_ids(self, song_ids: Iterable[int]) -> int:
        """Drop every entry referring to one of the given songs."""
        song_ids = set(song_ids)
        with self.lock.write():
            doomed = {eid for eid, slot in self._slots.items() if slot.song_id in song_ids}
            change = self._remove_locked(doomed)
        self._notify(change)
        return len(doomed)

    def clear(self) -> None:
        with self.lock.write():
            removed = tuple((eid, pos) for pos, eid in enumerate(self._order))
            version = self._version + 1
            with self.db.transaction() as conn:
                conn.execute("DELETE FROM queue")
            self._slots.clear()
            self._positions.clear()
            self._order = []
            self._random_order = []
            self._random_stale = True
            self._version = version
            change = QueueChange("clear", version, removed=removed)
        self._notify(change)

    def _move_locked(self, start: int, end: int, to: int) -> Optional[QueueChange]:
        count = end - start
        if to < 0 or to + count > len(self._order):
            raise OutOfRange(f"Bad song index {to}")
        if count == 0 or to == start:
            return None

        moving = self._order[start:end]
        rest = self._order[:start] + self._order[end:]
        order = rest[:to] + moving + rest[to:]
        low, high = min(start, to), max(end, to + count)
        version = self._version + 1

        with self.db.transaction() as conn:
            self._write_positions(conn, order, low, high)

        self._order = order
        self._reindex(low)
        self._touch(order[low:high], version)
        self._version = version
        return QueueChange("move", version)

    def move(self, start: int, end: Optional[int], to: int) -> None:
        """Move positions start..end-1 so the first of them lands at `to`."""
        with self.lock.write():
            start, end = self._check_range(start, end)
            change = self._move_locked(start, end, to)
        self._notify(change)

    def move_id(self, entry_id: int, to: int) -> None:
        with self.lock.write():
            position = self._require(entry_id)
            change = self._move_locked(position, position + 1, to)
        self._notify(change)

    def _swap_locked(self, pos_a: int, pos_b: int) -> Optional[QueueChange]:
        length = len(self._order)
        for pos in (pos_a, pos_b):
            if not 0 <= pos < length:
                raise OutOfRange(f"Bad song index {pos}")
        if pos_a == pos_b:
            return None

        order = list(self._order)
        order[pos_a], order[pos_b] = order[pos_b], order[pos_a]
        version = self._version + 1
        with self.db.transaction() as conn:
            conn.executemany(
                "UPDATE queue SET position = ? WHERE id = ?",
                [(pos_a, order[pos_a]), (pos_b, order[pos_b])],
            )

        self._order = order
        self._positions[order[pos_a]] = pos_a
        self._positions[order[pos_b]] = pos_b
        self._touch((order[pos_a], order[pos_b]), version)
        self._version = version
        return QueueChange("swap", version)

    def swap(self, pos_a: int, pos_b: int) -> None:
        with self.lock.write():
            change = self._swap_locked(pos_a, pos_b)
        self._notify(change)

    def swap_ids(self, id_a: int, id_b: int) -> None:
        with self.lock.write():
            change = self._swap_locked(self._require(id_a), self._require(id_b))
        self._notify(change)

    def shuffle(
        self, start: int = 0, end: Optional[int] = None, keep: Optional[int] = None
    ) -> None:
        """Uniformly permute a range, leaving the `keep` entry where it is."""
        with self.lock.write():
            start, end = self._check_range(start, end)
            pinned = self._positions.get(keep) if keep is not None else None
            slots = [pos for pos in range(start, end) if pos != pinned]
            if len(slots) < 2:
                return

            order = list(self._order)
            shuffled = [order[pos] for pos in slots]
            random.shuffle(shuffled)
            for pos, entry_id in zip(slots, shuffled):
                order[pos] = entry_id
            version = self._version + 1

            with self.db.transaction() as conn:
                self._write_positions(conn, order, start, end)

            self._order = order
            self._reindex(start)
            self._touch(order[start:end], version)
            self._version = version
            change = QueueChange("shuffle", version)
        self._notify(change)

    def set_priority(self, entry_ids: Iterable[int], priority: int) -> None:
        """Set the random-mode priority (0..255) of the given entries."""
        entry_ids = list(dict.fromkeys(entry_ids))
        with self.lock.write():
            for entry_id in entry_ids:
                self._require(entry_id)
            if not entry_ids:
                return
            version = self._version + 1
            with self.db.transaction() as conn:
                conn.executemany(
                    "UPDATE queue SET priority = ? WHERE id = ?",
                    [(priority, entry_id) for entry_id in entry_ids],
                )
            for entry_id in entry_ids:
                self._slots[entry_id].priority = priority
            self._touch(entry_ids, version)
            self._version = version
            self._random_stale = True
            change = QueueChange("priority", version)
        self._notify(change)

    def set_range(
        self, entry_id: int, start: Optional[float], end: Optional[float]
    ) -> None:
        """Restrict playback of an entry to start..end seconds (None = open)."""
        with self.lock.write():
            self._require(entry_id)
            version = self._version + 1
            with self.db.transaction() as conn:
                conn.execute(
                    "UPDATE queue SET range_start = ?, range_end = ? WHERE id = ?",
                    (start, end, entry_id),
                )
            slot = self._slots[entry_id]
            slot.range_start, slot.range_end = start, end
            self._touch((entry_id,), version)
            self._version = version
            change = QueueChange("range", version)
        self._notify(change)

    # -- random traversal -----------------------------------------------------

    def invalidate_random(self) -> None:
        """Force the random permutation to be rebuilt on next use."""
        with self.lock.write():
            self._random_stale = True

    def _regenerate_random(self, anchor: Optional[int]) -> None:
        groups: dict[int, list[int]] = {}
        for entry_id in self._order:
            groups.setdefault(self._slots[entry_id].priority, []).append(entry_id)

        order: list[int] = []
        for priority in sorted(groups, reverse=True):
            group = groups[priority]
            random.shuffle(group)
            order.extend(group)

        if anchor in self._slots:
            order.remove(anchor)
            order.insert(0, anchor)
        self._random_order = order
        self._random_stale = False

    def random_order(self, anchor: Optional[int] = None) -> list[int]:
        """The current random traversal, rebuilt (with `anchor` first) if stale."""
        with self.lock.write():
            if self._random_stale or (
                anchor is not None and anchor in self._slots and anchor not in self._random_order
            ):
                self._regenerate_random(anchor)
            return list(self._random_order)

    def new_random_pass(self, anchor: Optional[int] = None) -> list[int]:
        """Start a fresh random pass regardless of staleness."""
        with self.lock.write():
            self._regenerate_random(anchor)
            return list(self._random_order)
