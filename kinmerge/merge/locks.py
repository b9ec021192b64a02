"""In-process locks for merges (per person) and scans (per family)."""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional, Set

from ..core.exceptions import ConflictError

logger = logging.getLogger(__name__)


class PersonLockManager:
    """
    Exclusive holds on person ids.

    A merge holds both of its persons for its whole duration. Acquisition is
    all-or-nothing and never queues: if any requested id is already held,
    ConflictError is raised at once and nothing is held. wait_seconds only
    bounds the wait for the manager's own bookkeeping lock.
    """

    def __init__(self, wait_seconds: float = 0.5):
        self.wait_seconds = wait_seconds
        self._guard = threading.Lock()
        self._held: Set[str] = set()
        self._family_locks: Dict[str, threading.Lock] = {}
        self._family_guard = threading.Lock()

    @contextmanager
    def hold(self, *person_ids: str, wait_seconds: Optional[float] = None):
        """Hold every given person id for the duration of the block."""
        ids = set(person_ids)
        wait = self.wait_seconds if wait_seconds is None else wait_seconds

        if not self._guard.acquire(timeout=wait):
            raise ConflictError("Lock manager busy, try again")
        try:
            busy = sorted(self._held & ids)
            if busy:
                logger.warning(f"Persons {busy} are locked by another merge")
                raise ConflictError(f"Person(s) {', '.join(busy)} locked by another merge")
            self._held |= ids
        finally:
            self._guard.release()

        try:
            yield
        finally:
            with self._guard:
                self._held -= ids

    def is_held(self, person_id: str) -> bool:
        with self._guard:
            return person_id in self._held

    @contextmanager
    def family_scan(self, family_id: str):
        """Serialize scans of one family; scans of other families run freely."""
        with self._family_guard:
            lock = self._family_locks.setdefault(family_id, threading.Lock())
        with lock:
            yield
