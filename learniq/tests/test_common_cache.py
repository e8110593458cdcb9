"""
Tests for the in-process TTL cache.
"""

import threading
import unittest

from learniq.common.cache import MemoryCache, cache_key


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestMemoryCache(unittest.TestCase):
    """Test cases for MemoryCache class"""

    def setUp(self):
        self.clock = ManualClock()
        self.cache = MemoryCache(max_size=3, default_ttl=10, cleanup_interval=5, clock=self.clock)

    def test_get_and_set(self):
        self.cache.set("a", 1)
        self.assertEqual(self.cache.get("a"), 1)
        self.assertIsNone(self.cache.get("missing"))

        stats = self.cache.get_stats()
        self.assertEqual(stats["hits"], 1)
        self.assertEqual(stats["misses"], 1)

    def test_entries_expire(self):
        self.cache.set("a", 1)
        self.cache.set("b", 2, ttl=30)

        self.clock.now = 11
        self.assertIsNone(self.cache.get("a"))
        self.assertEqual(self.cache.get("b"), 2)
        self.assertEqual(self.cache.get_stats()["expirations"], 1)

    def test_lru_eviction(self):
        for key in ("a", "b", "c"):
            self.cache.set(key, key)
        self.cache.get("a")
        self.cache.set("d", "d")

        self.assertIsNone(self.cache.get("b"))
        self.assertEqual(self.cache.get("a"), "a")
        self.assertEqual(len(self.cache), 3)
        self.assertEqual(self.cache.get_stats()["evictions"], 1)

    def test_sweep_on_write(self):
        self.cache.set("a", 1, ttl=1)
        self.cache.set("b", 2, ttl=1)
        self.clock.now = 6
        self.cache.set("c", 3)

        self.assertEqual(len(self.cache), 1)

    def test_delete_and_clear(self):
        self.cache.set("a", 1)
        self.assertTrue(self.cache.delete("a"))
        self.assertFalse(self.cache.delete("a"))

        self.cache.set("b", 2)
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)

    def test_concurrent_writers(self):
        cache = MemoryCache(max_size=50, default_ttl=None)

        def writer(offset):
            for i in range(200):
                cache.set(f"{offset}:{i}", i)
                cache.get(f"{offset}:{i // 2}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(cache), 50)


class TestCacheKey(unittest.TestCase):

    def test_key_ignores_dict_order(self):
        self.assertEqual(
            cache_key("hint", {"a": 1, "b": [1, 2]}),
            cache_key("hint", {"b": [1, 2], "a": 1}),
        )

    def test_namespace_and_payload_distinguish_keys(self):
        self.assertNotEqual(cache_key("hint", {"q": 1}), cache_key("explain", {"q": 1}))
        self.assertNotEqual(cache_key("hint", {"q": 1}), cache_key("hint", {"q": 2}))
        self.assertTrue(cache_key("hint", {}).startswith("hint:"))


if __name__ == "__main__":
    unittest.main()
