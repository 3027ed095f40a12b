"""
Tests for the named cache manager and the cacheable decorator.
"""
import threading

import cachetools
from dorm.cache import Cache, cacheable


def test_cache_singleton():
    assert Cache.get_instance() is Cache.get_instance()


def test_get_cache_kinds():
    """Test LRU caches by default and TTL caches on request"""
    manager = Cache.get_instance()

    lru = manager.get_cache('test_lru', maxsize=2)
    ttl = manager.get_cache('test_ttl', maxsize=2, ttl=60)

    assert isinstance(lru, cachetools.LRUCache)
    assert isinstance(ttl, cachetools.TTLCache)
    assert manager.get_cache('test_lru') is lru


def test_clear_cache():
    """Test clearing one cache leaves the others alone"""
    manager = Cache.get_instance()
    first = manager.get_cache('test_first')
    second = manager.get_cache('test_second')
    first['a'] = 1
    second['b'] = 2

    manager.clear_cache('test_first')
    assert 'a' not in first
    assert second['b'] == 2

    manager.clear_all()
    assert len(second) == 0


def test_cacheable_computes_once():
    """Test repeated calls are served from the cache"""
    calls = []

    @cacheable('test_square')
    def square(n):
        calls.append(n)
        return n * n

    assert square(3) == 9
    assert square(3) == 9
    assert square(4) == 16
    assert calls == [3, 4]

    Cache.get_instance().clear_cache('test_square')
    assert square(3) == 9
    assert calls == [3, 4, 3]


def test_cacheable_first_writer_wins():
    """Test racing callers all receive the first stored result"""
    barrier = threading.Barrier(4)
    results = []

    @cacheable('test_race')
    def build(key):
        barrier.wait(timeout=5)
        return object()

    def worker():
        results.append(build('k'))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 4
    assert all(r is results[0] for r in results)
