"""Adaptive overlapping-tile scanner."""
from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from ..errors import InferenceTimeout
from ..models import DetectionSource, PerformanceTier, Tile, TileScore
from ..utils.frames import Frame
from ..utils.geometry import Rect
from .classifier import ClassificationBackend

LOGGER = logging.getLogger(__name__)


def tile_edge_for(width: int, height: int, edges: Sequence[int]) -> int:
    """Pick the tile edge from a three-entry table keyed by the frame's shorter side."""

    shorter = min(width, height)
    if shorter >= 1080:
        return int(edges[0])
    if shorter >= 720:
        return int(edges[1])
    return int(edges[2])


def iter_tile_rects(width: int, height: int, edge: int, overlap: float, min_fraction: float = 0.25) -> Iterator[Rect]:
    """Yield tile rectangles row by row; trailing slivers below ``min_fraction`` of the edge are skipped."""

    step = max(1, int(edge * (1.0 - overlap)))
    min_side = edge * min_fraction
    produced = False
    for top in range(0, height, step):
        for left in range(0, width, step):
            rect = Rect(left, top, min(left + edge, width), min(top + edge, height))
            if rect.width < min_side or rect.height < min_side:
                continue
            produced = True
            yield rect
    if not produced and width > 0 and height > 0:
        # Frames smaller than a sliver are scored whole.
        yield Rect(0, 0, width, height)


@dataclass
class ScanReport:
    tiles: List[Tile] = field(default_factory=list)
    max_confidence: float = 0.0
    tiles_scored: int = 0
    model_tiles: int = 0
    fallback_used: bool = False
    stopped_early: bool = False

    @property
    def source(self) -> DetectionSource:
        if self.tiles_scored and self.model_tiles == self.tiles_scored:
            return DetectionSource.MODEL
        return DetectionSource.HEURISTIC

    def add(self, rect: Rect, score: TileScore, flag_threshold: float) -> bool:
        self.tiles_scored += 1
        self.max_confidence = max(self.max_confidence, score.confidence)
        if score.source is DetectionSource.MODEL:
            self.model_tiles += 1
        self.fallback_used = self.fallback_used or score.fallback_used
        if score.confidence >= flag_threshold:
            self.tiles.append(Tile(rect=rect, confidence=score.confidence))
            return True
        return False


class TileScanner:
    """Scores overlapping tiles in bounded batches against one whole-frame deadline."""

    def __init__(
        self,
        backend: ClassificationBackend,
        executor: Executor,
        tile_edges: Dict[str, List[int]],
        flag_threshold: float = 0.3,
        max_flagged_tiles: int = 10,
        batch_size: int = 10,
        min_tile_fraction: float = 0.25,
    ) -> None:
        self.backend = backend
        self.executor = executor
        self.tile_edges = tile_edges
        self.flag_threshold = flag_threshold
        self.max_flagged_tiles = max_flagged_tiles
        self.batch_size = batch_size
        self.min_tile_fraction = min_tile_fraction

    def scan(self, frame: Frame, tier: PerformanceTier, deadline: Optional[float] = None) -> List[Tile]:
        return self.scan_frame(frame, tier, deadline).tiles

    def scan_frame(self, frame: Frame, tier: PerformanceTier, deadline: Optional[float] = None) -> ScanReport:
        """Scan ``frame``; ``deadline`` is a ``time.monotonic()`` instant."""

        edge = tile_edge_for(frame.width, frame.height, self.tile_edges[tier.value])
        rects = list(iter_tile_rects(frame.width, frame.height, edge, tier.overlap, self.min_tile_fraction))
        LOGGER.debug("Scanning %dx%d frame with %d tiles of %dpx (%s)", frame.width, frame.height, len(rects), edge, tier.value)

        report = ScanReport()
        flagged = 0
        for start in range(0, len(rects), self.batch_size):
            batch = rects[start:start + self.batch_size]
            futures = [self.executor.submit(self._score_tile, frame, rect, deadline) for rect in batch]
            scores = self._await_batch(futures, deadline, tier, report.tiles_scored)
            for rect, score in zip(batch, scores):
                if report.add(rect, score, self.flag_threshold):
                    flagged += 1
                if flagged >= self.max_flagged_tiles:
                    report.stopped_early = True
                    LOGGER.debug("Stopping scan after %d flagged tiles", flagged)
                    return report
        return report

    def _score_tile(self, frame: Frame, rect: Rect, deadline: Optional[float]) -> TileScore:
        timed_out = deadline is not None and time.monotonic() >= deadline
        return self.backend.score(frame.crop(rect), timed_out=timed_out)

    @staticmethod
    def _await_batch(
        futures: List["Future[TileScore]"],
        deadline: Optional[float],
        tier: PerformanceTier,
        tiles_scored: int,
    ) -> List[TileScore]:
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        done, pending = wait(futures, timeout=remaining)
        if pending:
            for future in futures:
                future.cancel()
            raise InferenceTimeout(tier.timeout_ms, tiles_scored + len(done))
        return [future.result() for future in futures]
