"""Frame-level content detection orchestrating scan, merge and caching."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional, Union

import numpy as np

from ..config.settings import DetectionSettings, load_settings
from ..errors import InferenceTimeout
from ..models import DetectionResult, PerformanceSample, PerformanceTier
from ..utils.frames import Frame
from .classifier import ClassificationBackend
from .performance_monitor import PerformanceMonitor, PerformanceSink
from .region_consolidator import merge
from .result_cache import CacheKey, ResultCache, frame_fingerprint
from .tile_scanner import TileScanner

LOGGER = logging.getLogger(__name__)


class DetectionContext:
    """Owns the active tier, the result cache, the classification backend and the tile worker pool."""

    def __init__(
        self,
        settings: DetectionSettings,
        backend: Optional[ClassificationBackend] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.settings = settings
        self.backend = backend or ClassificationBackend.from_model_path(settings.model_path, settings.model_input_size)
        self.cache: ResultCache[DetectionResult] = ResultCache(settings.cache_ttl_seconds, settings.cache_capacity)
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=settings.max_workers, thread_name_prefix="tile-scorer")
        self._tier = settings.performance_tier
        self._lock = threading.Lock()

    @property
    def tier(self) -> PerformanceTier:
        with self._lock:
            return self._tier

    def set_performance_tier(self, tier: Union[str, PerformanceTier]) -> bool:
        """Switch tiers, invalidating every cached result; returns whether the tier changed."""

        new_tier = PerformanceTier.parse(tier)
        with self._lock:
            if new_tier is self._tier:
                return False
            LOGGER.info("Performance tier changed %s -> %s; clearing result cache", self._tier.value, new_tier.value)
            self._tier = new_tier
            self.cache.clear()
        return True

    def close(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)


class ContentDetector:
    """Analyses frames into flagged regions within the tier's deadline."""

    def __init__(
        self,
        settings: Optional[DetectionSettings] = None,
        context: Optional[DetectionContext] = None,
        sink: Optional[PerformanceSink] = None,
    ) -> None:
        self.settings = settings or (context.settings if context else load_settings())
        self.context = context or DetectionContext(self.settings)
        self.sink = sink if sink is not None else PerformanceMonitor(
            window=self.settings.metrics_window,
            alert_threshold=self.settings.violation_alert_threshold,
        )
        self.scanner = TileScanner(
            backend=self.context.backend,
            executor=self.context.executor,
            tile_edges=self.settings.tile_edges,
            flag_threshold=self.settings.flag_threshold,
            max_flagged_tiles=self.settings.max_flagged_tiles,
            batch_size=self.settings.tile_batch_size,
            min_tile_fraction=self.settings.min_tile_fraction,
        )

    def set_performance_tier(self, tier: Union[str, PerformanceTier]) -> bool:
        return self.context.set_performance_tier(tier)

    def analyze_frame(
        self,
        frame: Union[Frame, np.ndarray],
        tier: Optional[Union[str, PerformanceTier]] = None,
    ) -> DetectionResult:
        """Return flagged regions for ``frame``; never raises for model or deadline problems."""

        if not isinstance(frame, Frame):
            frame = Frame.from_array(frame)
        active_tier = PerformanceTier.parse(tier) if tier is not None else self.context.tier
        key: CacheKey = (frame_fingerprint(frame), active_tier)
        started = time.perf_counter()

        cached = self.context.cache.get(key)
        if cached is not None:
            self._record(active_tier, started, cached=True)
            return cached

        # The tier timeout bounds model inference; heuristic-only scans run to completion.
        deadline = None
        if self.context.backend.has_model:
            deadline = time.monotonic() + active_tier.timeout_ms / 1000.0
        try:
            report = self.scanner.scan_frame(frame, active_tier, deadline)
        except InferenceTimeout as exc:
            latency_ms = _elapsed_ms(started)
            fresh = self.context.cache.get(key)
            LOGGER.warning("%s; returning %s", exc, "fresh cached result" if fresh is not None else "safe default")
            self._record(active_tier, started, timed_out=True)
            return fresh if fresh is not None else DetectionResult.safe_default(latency_ms)

        regions = merge(report.tiles, self.settings.merge_overlap_threshold)
        result = DetectionResult.from_regions(
            regions,
            report.max_confidence,
            self.settings.flag_threshold,
            report.source,
            tiles_scored=report.tiles_scored,
            latency_ms=_elapsed_ms(started),
        )
        self.context.cache.put(key, result)
        self._record(active_tier, started, fallback_used=report.fallback_used)
        LOGGER.debug(
            "Frame %dx%d: %d tiles scored, %d regions, confidence %.3f (%s)",
            frame.width,
            frame.height,
            report.tiles_scored,
            result.region_count,
            result.overall_confidence,
            result.source.value,
        )
        return result

    def _record(
        self,
        tier: PerformanceTier,
        started: float,
        *,
        cached: bool = False,
        fallback_used: bool = False,
        timed_out: bool = False,
    ) -> None:
        self.sink.record(
            PerformanceSample(
                latency_ms=_elapsed_ms(started),
                target_ms=tier.target_ms,
                operation_kind="analyze_frame",
                cached=cached,
                fallback_used=fallback_used,
                timed_out=timed_out,
            )
        )

    def close(self) -> None:
        self.context.close()


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
