from typing import Iterable, Optional

from module_1_content_detection.app.models import DetectionResult
from module_1_content_detection.app.utils.geometry import Rect
from module_2_blur_decision.core.models import (
    ActionDecision,
    ContentAction,
    DecisionThresholds,
    DensityMetric,
    WarningLevel,
)


def compute_coverage(regions: Iterable[Rect], frame_area: float) -> float:
    """Share of the frame covered by consolidated regions, clamped to [0, 1]."""

    if frame_area <= 0:
        return 0.0
    covered = sum(rect.area for rect in regions)
    return max(0.0, min(1.0, covered / frame_area))


class DecisionEngine:
    """Map a detection result to a blur action and warning level.

    Rows are checked from the most to the least severe action and the first
    match wins, so growing coverage or region count never lowers the action.
    """

    def __init__(self, thresholds: Optional[DecisionThresholds] = None) -> None:
        self.thresholds = thresholds or DecisionThresholds()

    def metric(self, result: DetectionResult, frame_area: float) -> DensityMetric:
        return DensityMetric(
            coverage_percentage=compute_coverage(result.region_rects(), frame_area),
            region_count=result.region_count,
            max_confidence=result.max_region_confidence,
        )

    def decide(
        self,
        result: DetectionResult,
        frame_area: float,
        thresholds: Optional[DecisionThresholds] = None,
    ) -> ActionDecision:
        limits = thresholds or self.thresholds
        metric = self.metric(result, frame_area)
        coverage = metric.coverage_percentage
        count = metric.region_count
        confidence = metric.max_confidence

        if limits.immediate_close_coverage is not None and count > 0 and coverage >= limits.immediate_close_coverage:
            action, level = ContentAction.IMMEDIATE_CLOSE, WarningLevel.CRITICAL
            reason = f"coverage {coverage:.1%} at or above immediate-close limit"
        elif count >= limits.block_region_count and confidence >= limits.block_confidence:
            action, level = ContentAction.BLOCK_AND_WARN, WarningLevel.HIGH
            reason = f"{count} regions with confidence {confidence:.2f}"
        elif coverage >= limits.full_screen_coverage or count >= limits.full_screen_region_count:
            action, level = ContentAction.FULL_SCREEN_BLUR, WarningLevel.HIGH
            reason = f"coverage {coverage:.1%} across {count} regions"
        elif count >= limits.selective_region_count and confidence >= limits.selective_confidence:
            action = ContentAction.SELECTIVE_BLUR
            level = WarningLevel.MEDIUM if confidence >= limits.medium_confidence else WarningLevel.LOW
            reason = f"{count} localized regions"
        else:
            action, level = ContentAction.NO_ACTION, WarningLevel.NONE
            reason = "no regions above threshold"

        return ActionDecision(
            action=action,
            warning_level=level,
            coverage_percentage=coverage,
            metric=metric,
            reason=reason,
        )


def decide_action(
    result: DetectionResult,
    frame_area: float,
    thresholds: Optional[DecisionThresholds] = None,
) -> ActionDecision:
    return DecisionEngine(thresholds).decide(result, frame_area)
