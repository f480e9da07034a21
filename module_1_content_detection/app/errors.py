"""Error taxonomy for the content detection pipeline."""
from __future__ import annotations


class DetectionError(Exception):
    """Base class for detection pipeline failures."""


class InvalidFrame(DetectionError, ValueError):
    """Raised when a frame is missing or has zero area."""


class ModelUnavailable(DetectionError):
    """Raised when the classification model cannot be loaded."""


class InferenceFailure(DetectionError):
    """Raised when the classification model errors on an input."""


class InferenceTimeout(DetectionError):
    """Raised when frame analysis exceeds the tier deadline."""

    def __init__(self, timeout_ms: float, tiles_scored: int = 0) -> None:
        super().__init__(f"Frame analysis exceeded {timeout_ms:.0f}ms after {tiles_scored} tiles")
        self.timeout_ms = timeout_ms
        self.tiles_scored = tiles_scored
