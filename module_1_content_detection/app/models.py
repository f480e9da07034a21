"""Shared data models for Module 1."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from .utils.geometry import Rect


class PerformanceTier(str, Enum):
    """Latency/quality profile controlling tile granularity and deadlines."""

    ULTRA_FAST = "ULTRA_FAST"
    FAST = "FAST"
    BALANCED = "BALANCED"
    QUALITY = "QUALITY"

    @property
    def timeout_ms(self) -> float:
        """Deadline for analysing a whole frame."""

        return _TIER_TIMEOUTS_MS[self]

    @property
    def target_ms(self) -> float:
        """Latency goal reported alongside performance samples."""

        return _TIER_TARGETS_MS[self]

    @property
    def overlap(self) -> float:
        return 0.3 if self.is_fast else 0.5

    @property
    def is_fast(self) -> bool:
        return self in (PerformanceTier.ULTRA_FAST, PerformanceTier.FAST)

    @classmethod
    def parse(cls, value: "str | PerformanceTier") -> "PerformanceTier":
        if isinstance(value, PerformanceTier):
            return value
        return cls(str(value).strip().upper().replace("-", "_"))


_TIER_TIMEOUTS_MS = {
    PerformanceTier.ULTRA_FAST: 50.0,
    PerformanceTier.FAST: 100.0,
    PerformanceTier.BALANCED: 5000.0,
    PerformanceTier.QUALITY: 5000.0,
}

_TIER_TARGETS_MS = {
    PerformanceTier.ULTRA_FAST: 50.0,
    PerformanceTier.FAST: 100.0,
    PerformanceTier.BALANCED: 200.0,
    PerformanceTier.QUALITY: 500.0,
}


class DetectionSource(str, Enum):
    MODEL = "model"
    HEURISTIC = "heuristic"
    TIMEOUT_DEFAULT = "timeout-default"


@dataclass(frozen=True)
class TileScore:
    confidence: float
    source: DetectionSource
    fallback_used: bool = False


@dataclass(frozen=True)
class Tile:
    """A scored square (or trailing-edge clipped) window of a frame."""

    rect: Rect
    confidence: float


@dataclass(frozen=True)
class Region:
    """Consolidated bounding box over one or more overlapping flagged tiles."""

    rect: Rect
    confidence: float
    tile_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bbox": self.rect.to_list(),
            "confidence": round(self.confidence, 4),
            "tile_count": self.tile_count,
        }


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one analyze-frame call."""

    is_flagged: bool
    overall_confidence: float
    regions: Tuple[Region, ...] = ()
    region_confidences: Tuple[float, ...] = ()
    max_region_confidence: float = 0.0
    source: DetectionSource = DetectionSource.HEURISTIC
    tiles_scored: int = 0
    latency_ms: float = 0.0

    @classmethod
    def from_regions(
        cls,
        regions: Sequence[Region],
        overall_confidence: float,
        flag_threshold: float,
        source: DetectionSource,
        *,
        tiles_scored: int = 0,
        latency_ms: float = 0.0,
    ) -> "DetectionResult":
        confidences = tuple(region.confidence for region in regions)
        return cls(
            is_flagged=bool(regions) or overall_confidence >= flag_threshold,
            overall_confidence=overall_confidence,
            regions=tuple(regions),
            region_confidences=confidences,
            max_region_confidence=max(confidences) if confidences else 0.0,
            source=source,
            tiles_scored=tiles_scored,
            latency_ms=latency_ms,
        )

    @classmethod
    def safe_default(cls, latency_ms: float = 0.0) -> "DetectionResult":
        """Cautious result used when classification cannot finish in time."""

        return cls(
            is_flagged=True,
            overall_confidence=0.5,
            source=DetectionSource.TIMEOUT_DEFAULT,
            latency_ms=latency_ms,
        )

    @property
    def region_count(self) -> int:
        return len(self.regions)

    def region_rects(self) -> List[Rect]:
        return [region.rect for region in self.regions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_flagged": self.is_flagged,
            "overall_confidence": round(self.overall_confidence, 4),
            "regions": [region.to_dict() for region in self.regions],
            "region_confidences": [round(value, 4) for value in self.region_confidences],
            "max_region_confidence": round(self.max_region_confidence, 4),
            "source": self.source.value,
            "tiles_scored": self.tiles_scored,
            "latency_ms": round(self.latency_ms, 2),
        }


@dataclass(frozen=True)
class PerformanceSample:
    latency_ms: float
    target_ms: float
    operation_kind: str
    cached: bool = False
    fallback_used: bool = False
    timed_out: bool = False
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_violation(self) -> bool:
        return self.latency_ms > self.target_ms
