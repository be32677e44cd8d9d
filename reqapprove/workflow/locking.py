"""
Document Lock

Process-wide exclusive lock held across every read-decide-write of
decision fields. Acquisition is bounded; on timeout the caller fails
with LockTimeout and nothing is recorded.
"""

import logging
import threading
import time
from contextlib import contextmanager

from reqapprove.errors import LockTimeout


DEFAULT_LOCK_TIMEOUT_SECONDS = 30.0


class DocumentLock:
    """Coarse-grained lock over the whole requisition sheet"""

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        if timeout_seconds <= 0:
            raise ValueError("Lock timeout must be positive")

        self.timeout_seconds = timeout_seconds
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def hold(self, holder: str = "anonymous"):
        """
        Hold the lock for the duration of the with-block.

        Raises:
            LockTimeout: Lock not acquired within timeout_seconds
        """
        started = time.monotonic()
        if not self._lock.acquire(timeout=self.timeout_seconds):
            self.logger.warning(
                f"Lock wait by {holder} timed out after {self.timeout_seconds}s"
            )
            raise LockTimeout(f"Document lock not acquired within {self.timeout_seconds}s")

        waited = time.monotonic() - started
        self.logger.debug(f"Lock acquired by {holder} after {waited:.3f}s")
        try:
            yield
        finally:
            self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()
