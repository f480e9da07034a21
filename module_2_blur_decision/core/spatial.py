import math
from typing import Dict, Iterable, List

from module_1_content_detection.app.utils.geometry import Rect
from module_2_blur_decision.core.models import QuadrantCoverage, RegionSpatialDistribution


def _coverage(rects: List[Rect], zone: Rect) -> float:
    if zone.area <= 0:
        return 0.0
    covered = 0
    for rect in rects:
        overlap = rect.intersection(zone)
        if overlap is not None:
            covered += overlap.area
    return min(1.0, covered / zone.area)


def analyze_spatial_distribution(regions: Iterable[Rect], width: int, height: int) -> RegionSpatialDistribution:
    """Describe where flagged regions sit on screen: quadrants, centre box and border band."""

    rects = [rect.clamp(width, height) for rect in regions]
    rects = [rect for rect in rects if not rect.is_empty()]
    if width <= 0 or height <= 0 or not rects:
        return RegionSpatialDistribution()

    half_w, half_h = width // 2, height // 2
    quarter_w, quarter_h = width // 4, height // 4
    quadrants = QuadrantCoverage(
        top_left=_coverage(rects, Rect(0, 0, half_w, half_h)),
        top_right=_coverage(rects, Rect(half_w, 0, width, half_h)),
        bottom_left=_coverage(rects, Rect(0, half_h, half_w, height)),
        bottom_right=_coverage(rects, Rect(half_w, half_h, width, height)),
    )
    center_box = Rect(quarter_w, quarter_h, 3 * quarter_w, 3 * quarter_h)
    center = _coverage(rects, center_box)
    edge_bands = [
        Rect(0, 0, width, quarter_h),
        Rect(0, 3 * quarter_h, width, height),
        Rect(0, quarter_h, quarter_w, 3 * quarter_h),
        Rect(3 * quarter_w, quarter_h, width, 3 * quarter_h),
    ]
    edges = sum(_coverage(rects, band) for band in edge_bands) / len(edge_bands)

    center_regions = 0
    for rect in rects:
        cx, cy = rect.center()
        if center_box.left <= cx < center_box.right and center_box.top <= cy < center_box.bottom:
            center_regions += 1

    zones: Dict[str, float] = dict(quadrants.model_dump(), center=center)
    mean = sum(zones.values()) / len(zones)
    spread = math.sqrt(sum((value - mean) ** 2 for value in zones.values()) / len(zones))
    dominant = max(zones, key=lambda name: zones[name])

    return RegionSpatialDistribution(
        quadrants=quadrants,
        center_coverage=center,
        edge_coverage=edges,
        center_regions=center_regions,
        edge_regions=len(rects) - center_regions,
        clustering_score=spread,
        dominant_location=dominant if zones[dominant] > 0 else "none",
    )
