from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Small LRU map whose entries expire ``ttl`` seconds after being written."""

    def __init__(
        self,
        maxsize: int,
        ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = int(maxsize)
        self.ttl = float(ttl)
        self._clock = clock
        self._items: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()

    def _purge(self) -> None:
        now = self._clock()
        expired = [key for key, (expires, _) in self._items.items() if expires <= now]
        for key in expired:
            del self._items[key]

    def get(self, key: Hashable, default: Any = None) -> V | Any:
        entry = self._items.get(key)
        if entry is None:
            return default
        expires, value = entry
        if expires <= self._clock():
            del self._items[key]
            return default
        self._items.move_to_end(key)
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._purge()
        self._items[key] = (self._clock() + self.ttl, value)
        self._items.move_to_end(key)
        while len(self._items) > self.maxsize:
            self._items.popitem(last=False)

    def invalidate(self, key: Hashable) -> bool:
        return self._items.pop(key, None) is not None

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: object) -> bool:
        return self.get(key, _ABSENT) is not _ABSENT

    def __len__(self) -> int:
        self._purge()
        return len(self._items)


_ABSENT = object()
