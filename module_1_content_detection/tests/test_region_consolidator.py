from __future__ import annotations

from module_1_content_detection.app.models import Tile
from module_1_content_detection.app.services.region_consolidator import flatten, merge
from module_1_content_detection.app.utils.geometry import Rect


def tile(left: int, top: int, right: int, bottom: int, confidence: float = 0.5) -> Tile:
    return Tile(rect=Rect(left, top, right, bottom), confidence=confidence)


def test_overlapping_tiles_merge_into_union() -> None:
    regions = merge([tile(0, 0, 100, 100, 0.4), tile(50, 0, 150, 100, 0.8)])

    assert len(regions) == 1
    assert regions[0].rect.to_list() == [0, 0, 150, 100]
    assert regions[0].confidence == 0.8
    assert regions[0].tile_count == 2


def test_disjoint_tiles_stay_separate() -> None:
    regions = merge([tile(0, 0, 100, 100), tile(300, 300, 400, 400)])

    assert [region.rect.to_list() for region in regions] == [[0, 0, 100, 100], [300, 300, 400, 400]]


def test_overlap_must_exceed_threshold() -> None:
    regions = merge([tile(0, 0, 100, 100), tile(70, 0, 170, 100)])

    assert len(regions) == 2


def test_grown_region_absorbs_later_overlaps() -> None:
    regions = merge([tile(0, 0, 100, 100, 0.3), tile(200, 0, 300, 100, 0.9), tile(50, 0, 250, 100, 0.5)])

    assert len(regions) == 1
    assert regions[0].rect.to_list() == [0, 0, 300, 100]
    assert regions[0].confidence == 0.9
    assert regions[0].tile_count == 3


def test_merge_is_idempotent() -> None:
    tiles = [
        tile(0, 0, 96, 96, 0.4),
        tile(48, 0, 144, 96, 0.6),
        tile(400, 400, 496, 496, 0.7),
        tile(448, 448, 544, 544, 0.35),
        tile(900, 0, 996, 96, 0.5),
    ]

    once = merge(tiles)
    twice = merge(flatten(once))

    assert sorted((r.rect.to_list(), r.confidence) for r in twice) == sorted((r.rect.to_list(), r.confidence) for r in once)


def test_merge_of_nothing_is_empty() -> None:
    assert merge([]) == []
