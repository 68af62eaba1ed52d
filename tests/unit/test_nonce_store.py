"""Tests for verification.nonce_store."""

from theorem_shop.verification.nonce_store import NonceStore


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestNonceStore:
    def test_consume_once(self):
        store = NonceStore(clock=FakeClock())
        assert store.consume("abc") is True
        assert store.consume("abc") is False
        assert len(store) == 1

    def test_distinct_nonces(self):
        store = NonceStore(clock=FakeClock())
        assert store.consume("a") is True
        assert store.consume("b") is True

    def test_retention_lapses(self):
        clock = FakeClock()
        store = NonceStore(clock=clock)
        store.consume("abc", retention_seconds=1800)
        clock.now = 1801
        assert store.sweep() == 1
        assert len(store) == 0
        assert store.consume("abc") is True

    def test_sweep_keeps_live_nonces(self):
        clock = FakeClock()
        store = NonceStore(clock=clock)
        store.consume("short", retention_seconds=10)
        store.consume("long", retention_seconds=100)
        clock.now = 50
        assert store.sweep() == 1
        assert store.consume("long") is False
