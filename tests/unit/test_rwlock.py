"""
Unit tests for the reader-writer lock and its write-side condition.
"""

import threading
import time

import pytest

from parkingserver.lot.rwlock import ReadWriteLock


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share(self):
        """Several readers hold the lock at once."""
        lock = ReadWriteLock()
        lock.acquire_read()
        lock.acquire_read()

        assert lock.readers == 2

        lock.release_read()
        lock.release_read()
        assert lock.readers == 0

    def test_writer_excludes_readers(self):
        """A reader waits while a writer holds the lock."""
        lock = ReadWriteLock()
        lock.acquire_write()
        acquired = threading.Event()

        def reader():
            with lock.read():
                acquired.set()

        t = threading.Thread(target=reader)
        t.start()
        assert not acquired.wait(0.2)

        lock.release_write()
        assert acquired.wait(2.0)
        t.join(timeout=2.0)

    def test_writer_waits_for_readers(self):
        """A writer waits until the last reader leaves."""
        lock = ReadWriteLock()
        lock.acquire_read()
        acquired = threading.Event()

        def writer():
            with lock.write():
                acquired.set()

        t = threading.Thread(target=writer)
        t.start()
        assert not acquired.wait(0.2)

        lock.release_read()
        assert acquired.wait(2.0)
        t.join(timeout=2.0)

    def test_waiting_writer_blocks_new_readers(self):
        """Writer preference: a queued writer goes before later readers."""
        lock = ReadWriteLock()
        lock.acquire_read()
        order = []

        def writer():
            with lock.write():
                order.append("writer")

        def late_reader():
            with lock.read():
                order.append("reader")

        w = threading.Thread(target=writer)
        w.start()
        time.sleep(0.1)
        r = threading.Thread(target=late_reader)
        r.start()
        time.sleep(0.1)

        assert order == []
        lock.release_read()
        w.join(timeout=2.0)
        r.join(timeout=2.0)

        assert order == ["writer", "reader"]

    def test_release_without_holding(self):
        """Releasing an unheld lock is an error."""
        lock = ReadWriteLock()
        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()

    def test_context_managers_release_on_error(self):
        """read() and write() release even when the body raises."""
        lock = ReadWriteLock()

        with pytest.raises(ValueError):
            with lock.write():
                raise ValueError("boom")
        assert not lock.write_locked

        with pytest.raises(ValueError):
            with lock.read():
                raise ValueError("boom")
        assert lock.readers == 0


class TestWriteCondition:
    """Tests for WriteCondition."""

    def test_wait_times_out(self):
        """An unsatisfied predicate returns False after the timeout."""
        lock = ReadWriteLock()
        cond = lock.new_condition()

        with lock.write():
            start = time.monotonic()
            result = cond.wait_for(lambda: False, 0.2)
            elapsed = time.monotonic() - start
            assert lock.write_locked

        assert result is False
        assert elapsed >= 0.15

    def test_true_predicate_returns_at_once(self):
        """No waiting when the predicate already holds."""
        lock = ReadWriteLock()
        cond = lock.new_condition()
        with lock.write():
            assert cond.wait_for(lambda: True, 5.0) is True

    def test_wait_releases_lock_for_others(self):
        """While waiting, another writer can take the lock and notify."""
        lock = ReadWriteLock()
        cond = lock.new_condition()
        state = {"ready": False}
        results = []

        def waiter():
            with lock.write():
                results.append(cond.wait_for(lambda: state["ready"], 5.0))

        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.1)

        with lock.write():
            state["ready"] = True
            cond.notify()

        t.join(timeout=5.0)
        assert results == [True]
        assert not lock.write_locked

    def test_readers_proceed_while_writer_waits(self):
        """A writer parked on the condition does not hold out readers."""
        lock = ReadWriteLock()
        cond = lock.new_condition()

        def waiter():
            with lock.write():
                cond.wait_for(lambda: False, 0.5)

        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.1)

        start = time.monotonic()
        with lock.read():
            pass
        assert time.monotonic() - start < 0.3
        t.join(timeout=2.0)
