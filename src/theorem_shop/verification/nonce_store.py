"""Single-use nonce registry for admin magic links."""

import threading
import time
from typing import Callable

DEFAULT_RETENTION_SECONDS = 1800


class NonceStore:
    """Remembers consumed nonces until their retention period lapses.

    Retention must outlive the token the nonce belongs to, otherwise a
    still-valid token becomes reusable once its nonce is forgotten.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._used: dict[str, float] = {}
        self._lock = threading.Lock()

    def consume(self, nonce: str, retention_seconds: int = DEFAULT_RETENTION_SECONDS) -> bool:
        """Mark ``nonce`` as used. Returns False if it was already used."""
        now = self._clock()
        with self._lock:
            expires_at = self._used.get(nonce)
            if expires_at is not None and now <= expires_at:
                return False
            self._used[nonce] = now + retention_seconds
            return True

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [n for n, exp in self._used.items() if now > exp]
            for nonce in expired:
                del self._used[nonce]
        return len(expired)

    def __len__(self) -> int:
        return len(self._used)
