"""Single-use email verification codes bound to a cart fingerprint.

A code proves the buyer controls an email address. Each identity holds at
most one live code; issuing again replaces it. A code can be verified once,
tolerates a bounded number of wrong guesses, and is inert after expiry.

The in-memory store does not survive a restart and is not shared between
processes, so restarts or multiple instances invalidate in-flight checkouts.
A keyed cache can implement ``CodeStore`` instead without touching callers.
"""

import hmac
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from theorem_shop.common.exceptions import (
    CartMismatchError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidCodeError,
    TooManyAttemptsError,
)

CODE_DIGITS = 6
DEFAULT_TTL_SECONDS = 600
DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class VerificationCode:
    """A pending identity proof."""

    identity: str
    code: str
    created_at: float
    expires_at: float
    cart_fingerprint: str
    verified: bool = False
    attempts: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


def normalize_identity(email: str) -> str:
    return email.strip().lower()


def generate_code() -> str:
    """Cryptographically random 6-digit code (100000-999999)."""
    low = 10 ** (CODE_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


class CodeStore(ABC):
    """Storage contract for single-use verification codes."""

    @abstractmethod
    def issue(self, identity: str, cart_fingerprint: str) -> str:
        """Create (or replace) the code for ``identity`` and return it."""

    @abstractmethod
    def verify(
        self, identity: str, submitted_code: str, cart_fingerprint: str,
    ) -> VerificationCode:
        """Consume the code for ``identity`` or raise a VerificationError."""

    @abstractmethod
    def release(self, identity: str) -> None:
        """Return a verified code to the unverified state, keeping its attempts."""

    @abstractmethod
    def delete(self, identity: str) -> None:
        """Remove any entry for ``identity``."""

    @abstractmethod
    def sweep(self) -> int:
        """Remove expired entries; return how many were removed."""


class InMemoryCodeStore(CodeStore):
    """Process-local code store.

    A single lock covers every read-modify-write, so concurrent verifies of
    the same identity cannot both observe ``verified=False``.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self._clock = clock
        self._entries: dict[str, VerificationCode] = {}
        self._lock = threading.Lock()

    def issue(self, identity: str, cart_fingerprint: str) -> str:
        key = normalize_identity(identity)
        now = self._clock()
        code = generate_code()
        with self._lock:
            self._entries[key] = VerificationCode(
                identity=key,
                code=code,
                created_at=now,
                expires_at=now + self.ttl_seconds,
                cart_fingerprint=cart_fingerprint,
            )
        return code

    def verify(
        self, identity: str, submitted_code: str, cart_fingerprint: str,
    ) -> VerificationCode:
        key = normalize_identity(identity)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise CodeNotFoundError()

            if entry.is_expired(self._clock()):
                del self._entries[key]
                raise CodeExpiredError()

            if entry.verified:
                raise CodeAlreadyUsedError()

            if entry.cart_fingerprint != cart_fingerprint:
                raise CartMismatchError()

            if entry.attempts >= self.max_attempts:
                del self._entries[key]
                raise TooManyAttemptsError()

            entry.attempts += 1
            if not hmac.compare_digest(entry.code, str(submitted_code).strip()):
                raise InvalidCodeError()

            entry.verified = True
            return entry

    def release(self, identity: str) -> None:
        key = normalize_identity(identity)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.verified = False

    def delete(self, identity: str) -> None:
        with self._lock:
            self._entries.pop(normalize_identity(identity), None)

    def get(self, identity: str) -> VerificationCode | None:
        """Return the live entry for ``identity``, if any (for monitoring/tests)."""
        with self._lock:
            entry = self._entries.get(normalize_identity(identity))
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
