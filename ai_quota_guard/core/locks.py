"""
Per-account locking.

Serializes the read-modify-write of an account's counters within a
process while leaving different accounts fully independent.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class AccountLocks:
    """Thread-safe registry of one lock per account id.

    Locks are created on first use and never removed, so every caller
    for a given id contends on the same lock even across deletion and
    re-provisioning of that id.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def lock_for(self, account_id: str) -> threading.Lock:
        """Return the account's lock, creating it on first use."""
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        """Hold the account's exclusive lock for the duration of the block."""
        with self.lock_for(account_id):
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
