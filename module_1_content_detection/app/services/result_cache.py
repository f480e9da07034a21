"""Whole-frame detection result cache."""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, Tuple, TypeVar

from ..models import PerformanceTier
from ..utils.frames import Frame

T = TypeVar("T")

CacheKey = Tuple[int, PerformanceTier]

_HASH_MASK = (1 << 64) - 1


def frame_fingerprint(frame: Frame) -> int:
    """Cheap content hash of the frame size plus three diagonal sample pixels."""

    digest = 17
    for value in (frame.width, frame.height):
        digest = (digest * 31 + value) & _HASH_MASK
    for fraction in (0.25, 0.5, 0.75):
        x = min(frame.width - 1, int(frame.width * fraction))
        y = min(frame.height - 1, int(frame.height * fraction))
        digest = (digest * 31 + frame.pixel(x, y)) & _HASH_MASK
    return digest


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at


class ResultCache(Generic[T]):
    """Fixed-capacity TTL map; an expired entry is dropped when read or on the next write."""

    def __init__(
        self,
        ttl_seconds: float = 5.0,
        capacity: int = 32,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[Hashable, CacheEntry[T]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.age(self._clock()) > self.ttl_seconds:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: Hashable, value: T) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value=value, created_at=now)
            self._evict(now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.age(now) > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
