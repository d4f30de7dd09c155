from __future__ import annotations

import unittest

from utils.rate_limit import RateLimiter


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class RateLimiterTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(limit=3, window_seconds=60, clock=self.clock)

    def test_blocks_after_limit_within_window(self):
        for _ in range(3):
            self.assertEqual(self.limiter.check("ip-1"), (True, 0))
            self.limiter.hit("ip-1")

        self.clock.now += 20
        allowed, retry_after = self.limiter.check("ip-1")
        self.assertFalse(allowed)
        self.assertEqual(retry_after, 40)
        self.assertEqual(self.limiter.check("ip-2"), (True, 0))

    def test_window_slides(self):
        for _ in range(3):
            self.limiter.hit("ip-1")
        self.clock.now += 61
        self.assertEqual(self.limiter.check("ip-1"), (True, 0))

    def test_check_does_not_record(self):
        for _ in range(10):
            self.limiter.check("ip-1")
        self.assertEqual(self.limiter.check("ip-1"), (True, 0))

    def test_reset(self):
        for _ in range(3):
            self.limiter.hit("ip-1")
        self.limiter.reset("ip-1")
        self.assertEqual(self.limiter.check("ip-1"), (True, 0))


if __name__ == "__main__":
    unittest.main()
