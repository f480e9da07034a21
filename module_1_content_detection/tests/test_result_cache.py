from __future__ import annotations

import numpy as np

from module_1_content_detection.app.models import PerformanceTier
from module_1_content_detection.app.services.result_cache import ResultCache, frame_fingerprint
from module_1_content_detection.app.utils.frames import Frame


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: ResultCache[str] = ResultCache(ttl_seconds=5.0, capacity=4, clock=clock)
    cache.put("frame", "result")

    clock.now += 4.9
    assert cache.get("frame") == "result"

    clock.now += 0.2
    assert cache.get("frame") is None
    assert len(cache) == 0


def test_write_evicts_expired_and_oldest() -> None:
    clock = FakeClock()
    cache: ResultCache[int] = ResultCache(ttl_seconds=5.0, capacity=2, clock=clock)
    cache.put("old", 1)
    clock.now += 6
    cache.put("a", 2)
    assert len(cache) == 1

    cache.put("b", 3)
    cache.put("c", 4)
    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("c") == 4


def test_clear_drops_everything() -> None:
    cache: ResultCache[int] = ResultCache()
    cache.put(("k", PerformanceTier.FAST), 1)
    cache.clear()

    assert len(cache) == 0


def test_fingerprint_tracks_sampled_pixels() -> None:
    pixels = np.full((100, 100, 3), 40, dtype=np.uint8)
    base = frame_fingerprint(Frame.from_array(pixels))

    same = frame_fingerprint(Frame.from_array(pixels.copy()))
    changed = pixels.copy()
    changed[50, 50] = (255, 0, 0)
    resized = np.full((100, 120, 3), 40, dtype=np.uint8)

    assert same == base
    assert frame_fingerprint(Frame.from_array(changed)) != base
    assert frame_fingerprint(Frame.from_array(resized)) != base
    assert 0 <= base < 2 ** 64
