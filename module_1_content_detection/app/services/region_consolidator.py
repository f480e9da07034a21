"""Merge overlapping flagged tiles into regions."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import Region, Tile
from ..utils.geometry import Rect, overlap_ratio

MERGE_OVERLAP_THRESHOLD = 0.3


def merge(tiles: Sequence[Tile], threshold: float = MERGE_OVERLAP_THRESHOLD) -> List[Region]:
    """Union tiles whose overlap exceeds ``threshold`` of the smaller area."""

    return merge_rects(((tile.rect, tile.confidence) for tile in tiles), threshold)


def merge_rects(items: Iterable[Tuple[Rect, float]], threshold: float = MERGE_OVERLAP_THRESHOLD) -> List[Region]:
    regions: List[Region] = []
    for rect, confidence in items:
        incoming = Region(rect=rect, confidence=confidence)
        target = _find_overlapping(regions, rect, threshold)
        if target is None:
            regions.append(incoming)
            continue
        grown = _absorb(regions.pop(target), incoming)
        # A grown region may now overlap regions it previously missed.
        while True:
            index = _find_overlapping(regions, grown.rect, threshold)
            if index is None:
                break
            grown = _absorb(grown, regions.pop(index))
            if index < target:
                target -= 1
        regions.insert(target, grown)
    return regions


def flatten(regions: Iterable[Region]) -> List[Tile]:
    return [Tile(rect=region.rect, confidence=region.confidence) for region in regions]


def _find_overlapping(regions: Sequence[Region], rect: Rect, threshold: float) -> Optional[int]:
    for index, region in enumerate(regions):
        if overlap_ratio(region.rect, rect) > threshold:
            return index
    return None


def _absorb(region: Region, other: Region) -> Region:
    return Region(
        rect=region.rect.union(other.rect),
        confidence=max(region.confidence, other.confidence),
        tile_count=region.tile_count + other.tile_count,
    )
