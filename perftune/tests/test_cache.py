import threading
import unittest

from perftune.cache import CacheStatistics, CacheStatisticsAggregator, CacheStore


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestCacheStatistics(unittest.TestCase):
    def test_empty_statistics(self):
        stats = CacheStatistics()
        self.assertEqual(stats.total_requests, 0)
        self.assertEqual(stats.hit_rate, 0.0)
        self.assertEqual(stats.miss_rate, 0.0)

    def test_derived_ratios(self):
        stats = CacheStatistics(total_items=10, hit_count=3, miss_count=1)
        self.assertEqual(stats.total_requests, 4)
        self.assertAlmostEqual(stats.hit_rate, 0.75)
        self.assertAlmostEqual(stats.miss_rate, 0.25)
        self.assertEqual(stats.to_dict()['total_requests'], 4)


class TestCacheStatisticsAggregator(unittest.TestCase):
    def setUp(self):
        self.aggregator = CacheStatisticsAggregator()

    def test_hit_rate_matches_recorded_counts(self):
        for hits, misses in [(1, 0), (0, 1), (7, 3), (123, 877)]:
            aggregator = CacheStatisticsAggregator()
            aggregator.record_hit(hits)
            aggregator.record_miss(misses)
            self.assertAlmostEqual(aggregator.snapshot().hit_rate, hits / (hits + misses))

    def test_no_requests_gives_zero_hit_rate(self):
        self.assertEqual(self.aggregator.snapshot().hit_rate, 0.0)

    def test_scenario_eighty_percent_hits(self):
        self.aggregator.record_insert(100)
        self.aggregator.record_hit(80)
        self.aggregator.record_miss(20)
        self.aggregator.record_expiry(5)

        stats = self.aggregator.snapshot()
        self.assertEqual(stats.total_items, 100)
        self.assertEqual(stats.total_requests, 100)
        self.assertAlmostEqual(stats.hit_rate, 0.80)
        self.assertEqual(stats.expired_items, 5)

    def test_snapshot_is_pure(self):
        self.aggregator.record_insert(3)
        self.aggregator.record_hit(2)
        self.assertEqual(self.aggregator.snapshot(), self.aggregator.snapshot())

    def test_expired_never_exceeds_total_items(self):
        self.aggregator.record_insert(2)
        self.aggregator.record_expiry(5)
        stats = self.aggregator.snapshot()
        self.assertEqual(stats.expired_items, 2)

    def test_expired_eviction_reduces_expired_items(self):
        self.aggregator.record_insert(4)
        self.aggregator.record_expiry(2)
        self.aggregator.record_eviction(1, expired=True)
        stats = self.aggregator.snapshot()
        self.assertEqual(stats.total_items, 3)
        self.assertEqual(stats.expired_items, 1)
        self.assertEqual(stats.eviction_count, 1)

    def test_negative_count_rejected(self):
        with self.assertRaises(ValueError):
            self.aggregator.record_hit(-1)

    def test_reset(self):
        self.aggregator.record_insert(5)
        self.aggregator.record_hit(5)
        self.aggregator.reset()
        self.assertEqual(self.aggregator.snapshot(), CacheStatistics())

    def test_concurrent_increments(self):
        def worker():
            for _ in range(1000):
                self.aggregator.record_hit()
                self.aggregator.record_miss()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = self.aggregator.snapshot()
        self.assertEqual(stats.hit_count, 8000)
        self.assertEqual(stats.miss_count, 8000)


class TestCacheStore(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = CacheStore(max_items=10, default_ttl=60.0, clock=self.clock)

    def test_get_records_hits_and_misses(self):
        self.cache.set("a", 1)
        self.assertEqual(self.cache.get("a"), 1)
        self.assertIsNone(self.cache.get("b"))
        self.assertEqual(self.cache.get("b", "fallback"), "fallback")

        stats = self.cache.statistics()
        self.assertEqual(stats.hit_count, 1)
        self.assertEqual(stats.miss_count, 2)
        self.assertEqual(stats.total_items, 1)

    def test_expired_entry_is_a_miss_and_evicted(self):
        self.cache.set("a", 1, ttl=5.0)
        self.clock.advance(6.0)

        self.assertIsNone(self.cache.get("a"))
        stats = self.cache.statistics()
        self.assertEqual(stats.miss_count, 1)
        self.assertEqual(stats.total_items, 0)
        self.assertEqual(stats.expired_items, 0)
        self.assertEqual(len(self.cache), 0)

    def test_scan_marks_expired_without_evicting(self):
        self.cache.set("a", 1, ttl=5.0)
        self.cache.set("b", 2, ttl=50.0)
        self.clock.advance(10.0)

        self.assertEqual(self.cache.scan_expired(), 1)
        self.assertEqual(self.cache.scan_expired(), 0)
        stats = self.cache.statistics()
        self.assertEqual(stats.expired_items, 1)
        self.assertEqual(stats.total_items, 2)
        self.assertNotIn("a", self.cache)
        self.assertIn("b", self.cache)

    def test_clear_expired(self):
        self.cache.set("a", 1, ttl=5.0)
        self.cache.set("b", 2, ttl=50.0)
        self.clock.advance(10.0)

        self.assertEqual(self.cache.clear_expired(), 1)
        stats = self.cache.statistics()
        self.assertEqual(stats.total_items, 1)
        self.assertEqual(stats.expired_items, 0)

    def test_full_cache_evicts_oldest_fifth(self):
        for i in range(10):
            self.cache.set(i, i)
            self.clock.advance(1.0)
        # Touch the oldest entry so it survives eviction
        self.cache.get(0)

        self.cache.set("new", "value")

        self.assertEqual(self.cache.size(), 9)
        self.assertIn(0, self.cache)
        self.assertNotIn(1, self.cache)
        self.assertNotIn(2, self.cache)
        self.assertEqual(self.cache.statistics().eviction_count, 2)

    def test_replacing_key_keeps_item_count(self):
        self.cache.set("a", 1)
        self.cache.set("a", 2)
        self.assertEqual(self.cache.get("a"), 2)
        self.assertEqual(self.cache.statistics().total_items, 1)

    def test_reduce_size_trims_to_half_capacity(self):
        for i in range(10):
            self.cache.set(i, i)
            self.clock.advance(1.0)

        self.assertEqual(self.cache.reduce_size(), 5)
        self.assertEqual(self.cache.size(), 5)
        self.assertIn(9, self.cache)
        self.assertNotIn(0, self.cache)
        self.assertEqual(self.cache.reduce_size(), 0)

    def test_remove(self):
        self.cache.set("a", 1)
        self.assertTrue(self.cache.remove("a"))
        self.assertFalse(self.cache.remove("a"))

    def test_clear_resets_statistics(self):
        self.cache.set("a", 1)
        self.cache.get("a")
        self.cache.clear()
        self.assertEqual(self.cache.size(), 0)
        self.assertEqual(self.cache.statistics(), CacheStatistics())

    def test_invalid_construction(self):
        with self.assertRaises(ValueError):
            CacheStore(max_items=0)
        with self.assertRaises(ValueError):
            CacheStore(default_ttl=0)


if __name__ == '__main__':
    unittest.main()
