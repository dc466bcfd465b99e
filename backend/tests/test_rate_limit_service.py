import threading
import unittest
from datetime import timedelta

from tablepos.services.rate_limit_service import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class SlidingWindowRateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = SlidingWindowRateLimiter(clock=self.clock)
        self.window = timedelta(minutes=1)

    def test_admits_exactly_limit_then_rejects(self):
        results = [self.limiter.allow("order:1.2.3.4", 5, self.window) for _ in range(6)]
        self.assertEqual(results, [True] * 5 + [False])

    def test_rejections_are_not_recorded(self):
        for _ in range(5):
            self.limiter.allow("k", 5, self.window)
        for _ in range(20):
            self.assertFalse(self.limiter.allow("k", 5, self.window))

        # Only the five accepted calls have to age out
        self.clock.advance(60)
        self.assertTrue(self.limiter.allow("k", 5, self.window))

    def test_capacity_recovers_as_timestamps_expire(self):
        for _ in range(3):
            self.limiter.allow("k", 5, self.window)
        self.clock.advance(30)
        for _ in range(2):
            self.limiter.allow("k", 5, self.window)
        self.assertFalse(self.limiter.allow("k", 5, self.window))

        # First three expire at t+60; the later two are still live
        self.clock.advance(29)
        self.assertFalse(self.limiter.allow("k", 5, self.window))
        self.clock.advance(1)
        self.assertTrue(self.limiter.allow("k", 5, self.window))
        self.assertTrue(self.limiter.allow("k", 5, self.window))
        self.assertTrue(self.limiter.allow("k", 5, self.window))
        self.assertFalse(self.limiter.allow("k", 5, self.window))

    def test_keys_are_independent(self):
        for _ in range(5):
            self.limiter.allow("qr:10.0.0.1", 5, self.window)
        self.assertFalse(self.limiter.allow("qr:10.0.0.1", 5, self.window))
        self.assertTrue(self.limiter.allow("qr:10.0.0.2", 5, self.window))
        self.assertTrue(self.limiter.allow("order:10.0.0.1", 5, self.window))

    def test_window_in_seconds(self):
        self.assertTrue(self.limiter.allow("k", 1, 10))
        self.assertFalse(self.limiter.allow("k", 1, 10))
        self.clock.advance(10)
        self.assertTrue(self.limiter.allow("k", 1, 10))

    def test_zero_limit_rejects(self):
        self.assertFalse(self.limiter.allow("k", 0, self.window))

    def test_retry_after_and_remaining(self):
        self.limiter.allow("k", 2, self.window)
        self.clock.advance(15)
        self.limiter.allow("k", 2, self.window)

        self.assertEqual(self.limiter.remaining("k", 2, self.window), 0)
        self.assertEqual(self.limiter.retry_after("k", self.window), 45)
        self.assertEqual(self.limiter.retry_after("unknown", self.window), 0)
        self.assertEqual(self.limiter.remaining("unknown", 2, self.window), 2)

    def test_prune_drops_idle_keys(self):
        self.limiter.allow("idle", 5, self.window)
        self.clock.advance(120)
        self.limiter.allow("active", 5, self.window)

        self.assertEqual(self.limiter.prune(self.window), 1)
        self.assertEqual(self.limiter.remaining("active", 5, self.window), 4)

    def test_concurrent_calls_admit_exactly_limit(self):
        limiter = SlidingWindowRateLimiter()
        barrier = threading.Barrier(20)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            allowed = limiter.allow("payment:198.51.100.9", 5, self.window)
            with results_lock:
                results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results.count(True), 5)
        self.assertEqual(results.count(False), 15)


if __name__ == "__main__":
    unittest.main()
