"""Per-invoice mutual exclusion for callers sharing one process.

Operations on the same invoice are serialized; operations on different
invoices never wait on each other. Cross-process safety comes from the
invoice ``version`` column checked at commit time.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class InvoiceLockRegistry:
    """Hands out one lock per invoice id while the invoice is in use.

    A lock is created on first use and dropped when its last holder or
    waiter leaves, so the registry only holds invoices being worked on.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, invoice_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(invoice_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[invoice_id] = lock
                self._users[invoice_id] = 0
            # Counted before acquiring so waiters keep the lock alive
            self._users[invoice_id] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[invoice_id] -= 1
                if self._users[invoice_id] == 0:
                    del self._users[invoice_id]
                    del self._locks[invoice_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_registry = InvoiceLockRegistry()


def get_lock_registry() -> InvoiceLockRegistry:
    return _registry
