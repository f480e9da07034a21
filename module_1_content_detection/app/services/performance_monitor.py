"""Rolling latency monitor for detection calls."""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Protocol

from ..models import PerformanceSample

LOGGER = logging.getLogger(__name__)


class PerformanceSink(Protocol):
    def record(self, sample: PerformanceSample) -> None:
        ...


class HealthState(str, Enum):
    OPTIMAL = "optimal"
    DEGRADED = "degraded"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class PerformanceReport:
    sample_count: int
    total_measurements: int
    average_ms: float
    p95_ms: float
    max_ms: float
    violation_rate: float
    cache_hit_rate: float
    fallback_rate: float
    timeout_rate: float
    consecutive_violations: int
    health: HealthState

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["health"] = self.health.value
        for key in ("average_ms", "p95_ms", "max_ms"):
            payload[key] = round(payload[key], 2)
        for key in ("violation_rate", "cache_hit_rate", "fallback_rate", "timeout_rate"):
            payload[key] = round(payload[key], 4)
        return payload


class PerformanceMonitor:
    """In-memory ``PerformanceSink`` keeping the most recent samples."""

    WARNING_STREAK = 3
    DEGRADED_FACTOR = 1.5

    def __init__(self, window: int = 100, alert_threshold: int = 5) -> None:
        self.window = window
        self.alert_threshold = alert_threshold
        self._samples: Deque[PerformanceSample] = deque(maxlen=window)
        self._total = 0
        self._consecutive_violations = 0
        self._health = HealthState.OPTIMAL
        self._lock = threading.Lock()

    def record(self, sample: PerformanceSample) -> None:
        with self._lock:
            self._samples.append(sample)
            self._total += 1
            if sample.is_violation:
                self._consecutive_violations += 1
            else:
                self._consecutive_violations = 0
            previous = self._health
            self._health = self._classify(sample)
        if self._health is not previous and self._health in (HealthState.WARNING, HealthState.CRITICAL):
            LOGGER.warning(
                "Detection latency %s: %.1fms against %.0fms target (%d consecutive violations)",
                self._health.value,
                sample.latency_ms,
                sample.target_ms,
                self._consecutive_violations,
            )
        LOGGER.debug(
            "Recorded %s sample %.1fms (cached=%s fallback=%s timeout=%s)",
            sample.operation_kind,
            sample.latency_ms,
            sample.cached,
            sample.fallback_used,
            sample.timed_out,
        )

    def _classify(self, sample: PerformanceSample) -> HealthState:
        if self._consecutive_violations >= self.alert_threshold:
            return HealthState.CRITICAL
        if self._consecutive_violations >= self.WARNING_STREAK:
            return HealthState.WARNING
        if sample.latency_ms > sample.target_ms * self.DEGRADED_FACTOR:
            return HealthState.DEGRADED
        return HealthState.OPTIMAL

    @property
    def health(self) -> HealthState:
        return self._health

    def samples(self) -> List[PerformanceSample]:
        with self._lock:
            return list(self._samples)

    def report(self) -> PerformanceReport:
        with self._lock:
            samples = list(self._samples)
            total = self._total
            streak = self._consecutive_violations
            health = self._health
        if not samples:
            return PerformanceReport(0, total, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, streak, health)
        latencies = sorted(sample.latency_ms for sample in samples)
        count = len(samples)
        p95_index = min(count - 1, int(count * 0.95))
        return PerformanceReport(
            sample_count=count,
            total_measurements=total,
            average_ms=sum(latencies) / count,
            p95_ms=latencies[p95_index],
            max_ms=latencies[-1],
            violation_rate=sum(1 for sample in samples if sample.is_violation) / count,
            cache_hit_rate=sum(1 for sample in samples if sample.cached) / count,
            fallback_rate=sum(1 for sample in samples if sample.fallback_used) / count,
            timeout_rate=sum(1 for sample in samples if sample.timed_out) / count,
            consecutive_violations=streak,
            health=health,
        )

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
            self._total = 0
            self._consecutive_violations = 0
            self._health = HealthState.OPTIMAL
