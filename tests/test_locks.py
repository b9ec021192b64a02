"""
Tests for person and family locks.
"""

import threading
import time

import pytest

from kinmerge.core.exceptions import ConflictError
from kinmerge.merge.locks import PersonLockManager


class TestPersonLockManager:
    """Tests for PersonLockManager."""

    def test_hold_and_release(self):
        """Test that ids are held only inside the block."""
        locks = PersonLockManager(wait_seconds=0.05)
        with locks.hold('a', 'b'):
            assert locks.is_held('a')
            assert locks.is_held('b')
        assert not locks.is_held('a')
        assert not locks.is_held('b')

    def test_overlapping_hold_conflicts(self):
        """Test that a held id cannot be taken again within the wait."""
        locks = PersonLockManager(wait_seconds=0.05)
        with locks.hold('a', 'b'):
            with pytest.raises(ConflictError):
                with locks.hold('b', 'c'):
                    pass
            assert not locks.is_held('c')

    def test_disjoint_holds(self):
        """Test that unrelated ids do not block each other."""
        locks = PersonLockManager(wait_seconds=0.05)
        with locks.hold('a'):
            with locks.hold('b'):
                assert locks.is_held('a') and locks.is_held('b')

    def test_released_on_error(self):
        """Test that an exception inside the block releases the ids."""
        locks = PersonLockManager()
        with pytest.raises(RuntimeError):
            with locks.hold('a'):
                raise RuntimeError("boom")
        assert not locks.is_held('a')

    def test_held_id_fails_without_waiting(self):
        """Test that a hold on a busy id is refused at once, not queued."""
        locks = PersonLockManager(wait_seconds=5)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold('a'):
                holding.set()
                release.wait(5)

        worker = threading.Thread(target=holder)
        worker.start()
        try:
            assert holding.wait(5)
            started = time.monotonic()
            with pytest.raises(ConflictError):
                with locks.hold('a', 'b'):
                    pass
            assert time.monotonic() - started < 1
            assert not locks.is_held('b')
        finally:
            release.set()
            worker.join(5)

        with locks.hold('a'):
            assert locks.is_held('a')

    def test_family_scan_serializes(self):
        """Test that the family scan lock is exclusive per family."""
        locks = PersonLockManager()
        with locks.family_scan('fam-1'):
            lock = locks._family_locks['fam-1']
            assert lock.locked()
            with locks.family_scan('fam-2'):
                assert locks._family_locks['fam-2'].locked()
        assert not lock.locked()
