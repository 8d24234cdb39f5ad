"""Tests for the readers-writer lock."""

import threading

from minion_mpd.core.locks import RWLock


class TestRWLock:
    """Tests for RWLock."""

    def test_readers_share(self):
        """Two threads can hold the read side at the same time."""
        lock = RWLock()
        both_inside = threading.Barrier(2, timeout=2.0)
        results = []

        def reader():
            with lock.read():
                both_inside.wait()
                results.append(True)

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=3.0)
        assert results == [True, True]

    def test_writer_excludes_readers(self):
        """A reader waits until the writer releases."""
        lock = RWLock()
        events = []
        lock.acquire_write()

        def reader():
            with lock.read():
                events.append("read")

        thread = threading.Thread(target=reader)
        thread.start()
        thread.join(timeout=0.2)
        assert events == []

        events.append("released")
        lock.release_write()
        thread.join(timeout=2.0)
        assert events == ["released", "read"]

    def test_write_is_reentrant(self):
        """The owning thread may nest write and read sections."""
        lock = RWLock()
        with lock.write():
            with lock.write():
                with lock.read():
                    pass

        # Fully released: another thread can write now
        acquired = []
        thread = threading.Thread(target=lambda: (lock.acquire_write(), acquired.append(True)))
        thread.start()
        thread.join(timeout=2.0)
        assert acquired == [True]
