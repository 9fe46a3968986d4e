"""Single-flight result cache for fetch-and-aggregate requests."""

import logging
import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger("pkgtrend")


class EvolutionCache:
    """Map request keys to in-flight or completed computations.

    The first caller for a key runs the computation; callers arriving while
    it runs wait on the same future, and later callers get the stored
    result. A failed computation is evicted so the next call retries.

    Example:
        cache = EvolutionCache()
        key = ("requests", "week", "2025-03-01", "2025-03-31")
        weeks = cache.get_or_compute(key, lambda: fetch_and_build(...))
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, Future[Any]] = {}
        self._lock = threading.Lock()

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Return the result for key, running compute() at most once at a time."""
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._entries[key] = future

        if not owner:
            logger.debug("Cache hit for %s", key)
            return future.result()

        try:
            result = compute()
        except BaseException as e:
            with self._lock:
                if self._entries.get(key) is future:
                    del self._entries[key]
            future.set_exception(e)
            raise

        future.set_result(result)
        return result

    def invalidate(self, key: Hashable) -> bool:
        """Drop the entry for key. Returns True if an entry was removed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
