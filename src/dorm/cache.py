"""
Named caches shared by the mapping layer.

Entity descriptors are the main tenant: they are derived from immutable class
definitions, so they are kept for the lifetime of the process. The caches are
cachetools containers behind a single re-entrant lock.
"""
import functools
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)

_MISSING = object()


class Cache:
    """Cache manager for the dorm package.

    Thread-safe singleton holding every named cache.
    """

    _instance = None
    _caches: dict[str, cachetools.Cache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get_cache(self, name: str, maxsize: int = 1024,
                  ttl: int | None = None) -> cachetools.Cache:
        """Get or create a cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size
            ttl: Time-to-live in seconds, None keeps entries until evicted

        Returns
            LRUCache, or TTLCache when a ttl is given
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    if ttl is None:
                        self._caches[name] = cachetools.LRUCache(maxsize=maxsize)
                    else:
                        self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
        return self._caches[name]

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_cache(self, name: str) -> None:
        """Clear a specific cache by name."""
        with self._lock:
            if name in self._caches:
                self._caches[name].clear()


def cacheable(cache_name: str, maxsize: int = 1024):
    """Decorator memoizing a single-argument function in a named cache.

    The wrapped function runs outside the lock. When two callers race on the
    same key, the first stored result wins and both callers receive it.

    Args:
        cache_name: Name of the cache
        maxsize: Maximum cache size
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(key):
            manager = Cache.get_instance()
            cache = manager.get_cache(cache_name, maxsize=maxsize)
            with manager.lock:
                result = cache.get(key, _MISSING)
            if result is not _MISSING:
                logger.debug(f'Cache hit for {func.__name__}({key!r})')
                return result

            logger.debug(f'Cache miss for {func.__name__}({key!r})')
            result = func(key)
            with manager.lock:
                return cache.setdefault(key, result)

        return wrapper
    return decorator
