import threading
import unittest
from datetime import timedelta

from tablepos.services.token_service import OneTimeTokenStore


class FakeClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now


class OneTimeTokenStoreTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = OneTimeTokenStore(ttl=timedelta(minutes=30), clock=self.clock)

    def test_token_consumed_exactly_once(self):
        token = self.store.issue()
        self.assertEqual(len(token), 64)
        self.assertTrue(self.store.consume(token))
        self.assertFalse(self.store.consume(token))

    def test_tokens_are_unique(self):
        tokens = {self.store.issue() for _ in range(50)}
        self.assertEqual(len(tokens), 50)

    def test_unknown_and_empty_tokens_rejected(self):
        self.assertFalse(self.store.consume("not-a-token"))
        self.assertFalse(self.store.consume(""))
        self.assertFalse(self.store.consume(None))

    def test_expired_token_rejected_even_before_sweep(self):
        token = self.store.issue()
        self.clock.now = 30 * 60
        self.assertFalse(self.store.consume(token))
        # Expired redemption attempt still removes it
        self.assertEqual(len(self.store), 0)

    def test_token_valid_until_expiry(self):
        token = self.store.issue()
        self.clock.now = 30 * 60 - 1
        self.assertTrue(self.store.consume(token))

    def test_sweep_removes_only_expired(self):
        old = self.store.issue()
        self.clock.now = 20 * 60
        fresh = self.store.issue()
        self.clock.now = 31 * 60

        self.assertEqual(self.store.sweep(), 1)
        self.assertEqual(len(self.store), 1)
        self.assertFalse(self.store.consume(old))
        self.assertTrue(self.store.consume(fresh))

    def test_concurrent_consume_has_single_winner(self):
        store = OneTimeTokenStore()
        token = store.issue()
        barrier = threading.Barrier(16)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            won = store.consume(token)
            with results_lock:
                results.append(won)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results.count(True), 1)
        self.assertEqual(len(results), 16)


if __name__ == "__main__":
    unittest.main()
