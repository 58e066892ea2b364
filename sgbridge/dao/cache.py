"""
In-process single-flight implementation of MemoizingCache.

The first caller for a key becomes the leader and runs the computation
outside the lock; later callers for the same key wait on the leader's
``Future``.  A failed computation leaves no entry behind and every waiter
receives the same exception.  Invalidation only touches stored values, so
it never hands a key to a second leader while the first is still computing.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Generic, TypeVar

from sgbridge.dao.base import MemoizingCache

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class SingleFlightCache(MemoizingCache[K, V], Generic[K, V]):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict = {}
        self._in_flight: dict = {}

    def get_or_compute(self, key: K, compute: Callable[[K], V]) -> V:
        with self._lock:
            if key in self._values:
                return self._values[key]
            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            return future.result()

        try:
            value = compute(key)
        except BaseException as exc:
            with self._lock:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]
            future.set_exception(exc)
            raise

        with self._lock:
            if self._in_flight.get(key) is future:
                self._values[key] = value
                del self._in_flight[key]
        future.set_result(value)
        return value

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._values.pop(key, None)

    def invalidate_if(self, key: K, expected: V) -> bool:
        with self._lock:
            if key in self._values and self._values[key] is expected:
                del self._values[key]
                return True
        return False

    def invalidate_where(self, predicate: Callable[[K, V], bool]) -> int:
        with self._lock:
            stale = [k for k, v in self._values.items() if predicate(k, v)]
            for key in stale:
                del self._values[key]
        if stale:
            logger.debug("Invalidated %d cached group(s)", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values
