"""Blurred preview rendering for flagged frames."""
from __future__ import annotations

import logging
from typing import Iterable

import cv2
import numpy as np

from ..utils.frames import Frame
from ..utils.geometry import Rect

LOGGER = logging.getLogger(__name__)


def _odd(kernel: int) -> int:
    return kernel if kernel % 2 == 1 else kernel + 1


def blur_full(pixels: np.ndarray, kernel: int = 99) -> np.ndarray:
    size = _odd(kernel)
    return cv2.GaussianBlur(np.array(pixels, dtype=np.uint8, order="C"), (size, size), 0)


def blur_regions(pixels: np.ndarray, rects: Iterable[Rect], kernel: int = 99) -> np.ndarray:
    """Return a copy of ``pixels`` with every rectangle Gaussian-blurred."""

    output = np.array(pixels, dtype=np.uint8, order="C")
    height, width = output.shape[:2]
    for rect in rects:
        bounded = rect.clamp(width, height)
        if bounded.is_empty():
            continue
        patch = np.ascontiguousarray(output[bounded.top:bounded.bottom, bounded.left:bounded.right])
        size = _odd(min(kernel, max(3, min(bounded.width, bounded.height) | 1)))
        output[bounded.top:bounded.bottom, bounded.left:bounded.right] = cv2.GaussianBlur(patch, (size, size), 0)
    return output


class PreviewRenderer:
    """Produces BGR preview images ready for ``cv2.imwrite``."""

    def __init__(self, kernel: int = 99, outline: bool = False) -> None:
        self.kernel = kernel
        self.outline = outline

    def render(self, frame: Frame, rects: Iterable[Rect], full_screen: bool = False) -> np.ndarray:
        rects = list(rects)
        if full_screen:
            blurred = blur_full(np.asarray(frame.data), self.kernel)
        else:
            blurred = blur_regions(np.asarray(frame.data), rects, self.kernel)
        preview = cv2.cvtColor(blurred, cv2.COLOR_RGB2BGR)
        if self.outline and not full_screen:
            for rect in rects:
                cv2.rectangle(preview, (rect.left, rect.top), (rect.right - 1, rect.bottom - 1), (0, 0, 255), 2)
        LOGGER.debug("Rendered preview (%s, %d regions)", "full" if full_screen else "selective", len(rects))
        return preview
