import math
import unittest

from titanbot.core.cache import TTLCache
from titanbot.core.calculator import evaluate, format_result
from titanbot.core.errors import ValidationError


class CalculatorTests(unittest.TestCase):
    def test_arithmetic_and_functions(self) -> None:
        self.assertEqual(evaluate("2 + 3 * 4"), 14)
        self.assertEqual(evaluate("2^10"), 1024)
        self.assertEqual(evaluate("sqrt(16) + abs(-2)"), 6)
        self.assertAlmostEqual(evaluate("sin(90 deg)"), 1.0)
        self.assertAlmostEqual(evaluate("pi"), math.pi)

    def test_rejects_unsafe_or_invalid(self) -> None:
        for expression in ("__import__('os')", "open('x')", "2 +", "1/0", "9^9^9", "x + 1", ""):
            with self.assertRaises(ValidationError, msg=expression):
                evaluate(expression)

    def test_format_result(self) -> None:
        self.assertEqual(format_result(4.0), "4")
        self.assertEqual(format_result(1234567), "1,234,567")
        self.assertEqual(format_result(0.1 + 0.2), "0.3")


class TTLCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = 0.0
        self.cache = TTLCache(maxsize=2, ttl=10, clock=lambda: self.now)

    def test_entries_expire(self) -> None:
        self.cache.set("a", 1)
        self.now = 9.9
        self.assertEqual(self.cache.get("a"), 1)
        self.now = 10.0
        self.assertIsNone(self.cache.get("a"))
        self.assertNotIn("a", self.cache)

    def test_bounded_size_evicts_least_recent(self) -> None:
        self.cache.set("a", 1)
        self.cache.set("b", 2)
        self.cache.get("a")
        self.cache.set("c", 3)
        self.assertIn("a", self.cache)
        self.assertNotIn("b", self.cache)
        self.assertEqual(len(self.cache), 2)

    def test_invalidate_and_clear(self) -> None:
        self.cache.set("a", 1)
        self.assertTrue(self.cache.invalidate("a"))
        self.assertFalse(self.cache.invalidate("a"))
        self.cache.set("b", 2)
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)

    def test_rejects_non_positive_size(self) -> None:
        with self.assertRaises(ValueError):
            TTLCache(maxsize=0, ttl=1)


if __name__ == "__main__":
    unittest.main()
