import time
from collections import deque
from collections.abc import Container
from typing import Callable, Deque, Dict, Generic, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class ExpiringCache(Generic[K, V], Container):
    _entries: Dict[K, Tuple[float, V]]
    _expiry_queue: Deque[Tuple[float, K]]

    def __init__(self, ttl: float, time_fn: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._time = time_fn
        self._entries = {}
        self._expiry_queue = deque()

    def __setitem__(self, key: K, value: V):
        self._expire()
        now = self._time()
        self._entries[key] = (now, value)
        self._expiry_queue.append((now, key))

    def __contains__(self, key: object) -> bool:
        self._expire()
        return key in self._entries

    def __len__(self) -> int:
        self._expire()
        return len(self._entries)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        self._expire()
        if key in self._entries:
            return self._entries[key][1]
        return default

    def _expire(self):
        while (
            len(self._expiry_queue) > 0
            and self._time() - self._expiry_queue[0][0] >= self.ttl
        ):
            inserted_at, key = self._expiry_queue.popleft()
            # Only drop the entry if it was not overwritten since.
            if key in self._entries and self._entries[key][0] == inserted_at:
                del self._entries[key]
