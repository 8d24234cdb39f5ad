"""Tests for the persistent play queue."""

from unittest.mock import Mock

import pytest

from minion_mpd.core.database import Database
from minion_mpd.domain.library import LibraryStore
from minion_mpd.domain.queue import (
    InvalidSong,
    NoSuchEntry,
    OutOfRange,
    QueueChange,
    QueueFull,
    QueueStore,
)


@pytest.fixture
def song_ids(db: Database, sample_songs, write_songs) -> list[int]:
    return [song.id for song in write_songs(LibraryStore(db), sample_songs)]


@pytest.fixture
def queue(db: Database) -> QueueStore:
    store = QueueStore(db)
    store.load()
    return store


@pytest.fixture
def filled(queue: QueueStore, song_ids: list[int]) -> list[int]:
    """Queue holding the four sample songs; returns the entry ids."""
    return queue.add_many(song_ids)


def stored_order(db: Database) -> list[tuple[int, int]]:
    with db.connect() as conn:
        rows = conn.execute("SELECT id, position FROM queue ORDER BY position").fetchall()
    return [(row["id"], row["position"]) for row in rows]


def assert_dense(queue: QueueStore, db: Database) -> None:
    """Positions are 0..N-1 in memory and in the database."""
    entries = list(queue.entries())
    assert [e.position for e in entries] == list(range(len(entries)))
    assert stored_order(db) == [(e.id, e.position) for e in entries]


class TestAdd:
    """Tests for add/add_many."""

    def test_ids_start_at_one(self, queue: QueueStore, song_ids):
        assert queue.add(song_ids[0]) == 1
        assert queue.add(song_ids[1]) == 2

    def test_insert_at_position(self, queue, filled, song_ids, db):
        new_id = queue.add(song_ids[3], position=1)
        assert queue.position_of(new_id) == 1
        assert queue.ids() == [filled[0], new_id] + filled[1:]
        assert_dense(queue, db)

    def test_position_past_end(self, queue, filled, song_ids):
        with pytest.raises(OutOfRange):
            queue.add(song_ids[0], position=len(filled) + 1)

    def test_unknown_song(self, queue, db):
        with pytest.raises(InvalidSong):
            queue.add(9999)
        assert len(queue) == 0
        assert stored_order(db) == []

    def test_batch_is_atomic(self, queue, song_ids, db):
        """One unknown song rejects the whole batch."""
        with pytest.raises(InvalidSong):
            queue.add_many([song_ids[0], 9999])
        assert len(queue) == 0
        assert stored_order(db) == []

    def test_tombstoned_song_rejected(self, db, queue, song_ids):
        with db.transaction() as conn:
            conn.execute("UPDATE songs SET tombstone = TRUE WHERE id = ?", (song_ids[0],))
        with pytest.raises(InvalidSong):
            queue.add(song_ids[0])

    def test_queue_full(self, db, song_ids):
        queue = QueueStore(db, max_length=3)
        with pytest.raises(QueueFull):
            queue.add_many(song_ids)
        assert len(queue) == 0

    def test_version_bumps(self, queue, song_ids):
        before = queue.version
        queue.add(song_ids[0])
        assert queue.version == before + 1

    def test_listener_told_after_add(self, queue, song_ids):
        listener = Mock()
        queue.add_listener(listener)
        new_ids = queue.add_many(song_ids[:2])

        listener.assert_called_once()
        change = listener.call_args.args[0]
        assert isinstance(change, QueueChange)
        assert change.kind == "add"
        assert change.added == tuple(new_ids)


class TestRemove:
    """Tests for remove_id/remove_range/remove_song_ids/clear."""

    def test_remove_id(self, queue, filled, db):
        queue.remove_id(filled[1])
        assert queue.ids() == [filled[0]] + filled[2:]
        assert filled[1] not in queue
        assert_dense(queue, db)

    def test_remove_unknown_id(self, queue, filled):
        with pytest.raises(NoSuchEntry):
            queue.remove_id(999)

    def test_remove_range(self, queue, filled, db):
        queue.remove_range(1, 3)
        assert queue.ids() == [filled[0], filled[3]]
        assert_dense(queue, db)

    def test_remove_range_out_of_bounds(self, queue, filled):
        with pytest.raises(OutOfRange):
            queue.remove_range(2, 9)
        with pytest.raises(OutOfRange):
            queue.remove_range(4, None)

    def test_removal_reports_former_positions(self, queue, filled):
        listener = Mock()
        queue.add_listener(listener)
        queue.remove_range(1, 3)

        change = listener.call_args.args[0]
        assert change.kind == "remove"
        assert change.removed == ((filled[1], 1), (filled[2], 2))

    def test_remove_song_ids(self, queue, filled, song_ids, db):
        queue.add(song_ids[0])
        removed = queue.remove_song_ids([song_ids[0]])
        assert removed == 2
        assert queue.ids() == filled[1:]
        assert_dense(queue, db)

    def test_clear(self, queue, filled, db):
        queue.clear()
        assert len(queue) == 0
        assert stored_order(db) == []


class TestReorder:
    """Tests for move/swap/shuffle."""

    def test_move_range(self, queue, filled, db):
        queue.move(0, 2, 2)
        assert queue.ids() == [filled[2], filled[3], filled[0], filled[1]]
        assert_dense(queue, db)

    def test_move_id_to_front(self, queue, filled, db):
        queue.move_id(filled[3], 0)
        assert queue.ids() == [filled[3]] + filled[:3]
        assert_dense(queue, db)

    def test_move_to_own_position_is_noop(self, queue, filled):
        listener = Mock()
        queue.add_listener(listener)
        version = queue.version

        queue.move_id(filled[2], queue.position_of(filled[2]))

        assert queue.version == version
        assert queue.ids() == filled
        listener.assert_not_called()

    def test_move_out_of_range(self, queue, filled):
        with pytest.raises(OutOfRange):
            queue.move_id(filled[0], 4)

    def test_swap(self, queue, filled, db):
        queue.swap(0, 3)
        assert queue.ids() == [filled[3], filled[1], filled[2], filled[0]]
        assert_dense(queue, db)

    def test_swap_ids(self, queue, filled, db):
        queue.swap_ids(filled[1], filled[2])
        assert queue.ids() == [filled[0], filled[2], filled[1], filled[3]]
        assert_dense(queue, db)

    def test_shuffle_keeps_members(self, queue, filled, db):
        queue.shuffle()
        assert sorted(queue.ids()) == sorted(filled)
        assert_dense(queue, db)

    def test_shuffle_keeps_pinned_entry(self, queue, filled):
        for _ in range(10):
            queue.shuffle(keep=filled[1])
            assert queue.position_of(filled[1]) == 1

    def test_changes_since(self, queue, filled):
        """plchanges sees the entries a move touched."""
        version = queue.version
        queue.move_id(filled[3], 2)
        changed = queue.changes_since(version)
        assert [e.id for e in changed] == [filled[3], filled[2]]
        assert [e.position for e in changed] == [2, 3]
        assert queue.changes_since(queue.version) == []


class TestAttributes:
    """Tests for priority and playback ranges."""

    def test_set_priority(self, queue, filled):
        queue.set_priority([filled[0], filled[2]], 200)
        assert queue.get(filled[0]).priority == 200
        assert queue.get(filled[1]).priority == 0

    def test_set_priority_unknown(self, queue, filled):
        with pytest.raises(NoSuchEntry):
            queue.set_priority([filled[0], 999], 5)
        assert queue.get(filled[0]).priority == 0

    def test_set_range(self, queue, filled):
        queue.set_range(filled[0], 10.0, None)
        entry = queue.get(filled[0])
        assert (entry.range_start, entry.range_end) == (10.0, None)


class TestRandomOrder:
    """Tests for the random traversal."""

    def test_permutation_of_queue(self, queue, filled):
        assert sorted(queue.random_order()) == sorted(filled)

    def test_stable_until_invalidated(self, queue, filled):
        first = queue.random_order()
        assert queue.random_order() == first

    def test_anchor_first(self, queue, filled):
        assert queue.random_order(anchor=filled[2])[0] == filled[2]
        assert queue.new_random_pass(anchor=filled[3])[0] == filled[3]

    def test_higher_priority_first(self, queue, filled):
        queue.set_priority([filled[3]], 10)
        queue.set_priority([filled[1]], 5)
        order = queue.random_order()
        assert order[:2] == [filled[3], filled[1]]


class TestPersistence:
    """Persist and reload."""

    def test_reload_restores_order_and_attributes(self, db, queue, filled):
        queue.move_id(filled[0], 3)
        queue.set_priority([filled[1]], 7)
        queue.set_range(filled[2], 1.5, 30.0)

        reloaded = QueueStore(db)
        reloaded.load()

        assert reloaded.ids() == queue.ids()
        assert reloaded.get(filled[1]).priority == 7
        entry = reloaded.get(filled[2])
        assert (entry.range_start, entry.range_end) == (1.5, 30.0)

    def test_ids_not_reused_after_restart(self, db, queue, filled, song_ids):
        """The id high-water mark survives removal of the newest entry."""
        queue.remove_id(filled[-1])

        reloaded = QueueStore(db)
        reloaded.load()
        new_id = reloaded.add(song_ids[0])

        assert new_id == filled[-1] + 1

    def test_ids_not_reused_after_clear(self, queue, filled, song_ids):
        queue.clear()
        assert queue.add(song_ids[0]) == filled[-1] + 1

    def test_sparse_positions_renumbered(self, db, queue, filled):
        with db.transaction() as conn:
            conn.execute("UPDATE queue SET position = position * 10")

        reloaded = QueueStore(db)
        reloaded.load()

        assert reloaded.ids() == filled
        assert_dense(reloaded, db)
