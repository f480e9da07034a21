"""Geometry helpers for axis-aligned tile and region rectangles."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in frame pixel coordinates (right/bottom exclusive)."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return max(0, self.right - self.left)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top)

    @property
    def area(self) -> int:
        return self.width * self.height

    def is_empty(self) -> bool:
        return self.area == 0

    def center(self) -> Tuple[float, float]:
        return ((self.left + self.right) / 2.0, (self.top + self.bottom) / 2.0)

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        left = max(self.left, other.left)
        top = max(self.top, other.top)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        if right <= left or bottom <= top:
            return None
        return Rect(left, top, right, bottom)

    def union(self, other: "Rect") -> "Rect":
        return Rect(
            min(self.left, other.left),
            min(self.top, other.top),
            max(self.right, other.right),
            max(self.bottom, other.bottom),
        )

    def clamp(self, width: int, height: int) -> "Rect":
        return Rect(
            max(0, self.left),
            max(0, self.top),
            min(width, self.right),
            min(height, self.bottom),
        )

    def to_list(self) -> list[int]:
        return [self.left, self.top, self.right, self.bottom]

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "Rect":
        left, top, right, bottom = values
        return cls(int(left), int(top), int(right), int(bottom))


def overlap_ratio(first: Rect, second: Rect) -> float:
    """Return intersection area divided by the smaller rectangle's area."""

    intersection = first.intersection(second)
    if intersection is None:
        return 0.0
    smaller_area = min(first.area, second.area)
    if smaller_area <= 0:
        return 0.0
    return intersection.area / smaller_area


def total_area(rects: Iterable[Rect]) -> int:
    return sum(rect.area for rect in rects)
