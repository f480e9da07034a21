"""Pixel-statistics scorer used when no classification model is usable."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)

# (r_min, r_max, g_min, g_max, b_min, b_max) for light, medium, darker and mid-warm tones.
SKIN_TONE_RANGES = (
    (180, 255, 120, 210, 90, 170),
    (140, 200, 100, 160, 70, 130),
    (100, 160, 70, 120, 50, 100),
    (160, 220, 110, 170, 80, 140),
)


@dataclass(frozen=True)
class HeuristicSignals:
    skin_ratio: float
    skin_tone: float
    color_concentration: float
    smoothness: float
    composition: float
    score: float


class HeuristicScorer:
    """Weighted blend of skin-tone, colour-concentration, smoothness and composition signals."""

    SKIN_WEIGHT = 0.4
    COLOR_WEIGHT = 0.3
    SMOOTHNESS_WEIGHT = 0.2
    COMPOSITION_WEIGHT = 0.1

    SKIN_SATURATION_RATIO = 0.4
    SKIN_PRESENCE_RATIO = 0.15
    MAX_SAMPLES_PER_AXIS = 100
    DOMINANT_BINS = 5
    COLOR_BIN_SIZE = 32
    SMOOTH_VARIANCE_CEILING = 1500.0

    def score(self, pixels: np.ndarray) -> float:
        return self.analyze(pixels).score

    def analyze(self, pixels: np.ndarray) -> HeuristicSignals:
        if pixels.size == 0:
            return HeuristicSignals(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

        sampled = self._sample(pixels)
        skin_ratio = float(np.mean(skin_tone_mask(sampled)))
        skin_tone = _clamp(skin_ratio / self.SKIN_SATURATION_RATIO)
        color = self._color_concentration(sampled)
        smoothness = self._smoothness(pixels)
        composition = self._composition(pixels.shape[1], pixels.shape[0])

        # Colour, texture and framing only describe exposed skin when skin is present.
        skin_gate = _clamp(skin_ratio / self.SKIN_PRESENCE_RATIO)
        score = self.SKIN_WEIGHT * skin_tone + skin_gate * (
            self.COLOR_WEIGHT * color
            + self.SMOOTHNESS_WEIGHT * smoothness
            + self.COMPOSITION_WEIGHT * composition
        )
        return HeuristicSignals(
            skin_ratio=skin_ratio,
            skin_tone=skin_tone,
            color_concentration=color,
            smoothness=smoothness,
            composition=composition,
            score=_clamp(score),
        )

    def _sample(self, pixels: np.ndarray) -> np.ndarray:
        height, width = pixels.shape[:2]
        step = max(1, max(width, height) // self.MAX_SAMPLES_PER_AXIS)
        return pixels[::step, ::step]

    def _color_concentration(self, sampled: np.ndarray) -> float:
        quantized = (sampled // self.COLOR_BIN_SIZE).astype(np.int32)
        keys = (quantized[..., 0] << 16) | (quantized[..., 1] << 8) | quantized[..., 2]
        _, counts = np.unique(keys, return_counts=True)
        total = counts.sum()
        if total == 0:
            return 0.0
        dominant = np.sort(counts)[::-1][: self.DOMINANT_BINS].sum()
        return _clamp(float(dominant) / float(total))

    def _smoothness(self, pixels: np.ndarray) -> float:
        gray = cv2.cvtColor(np.array(pixels, dtype=np.uint8, order="C"), cv2.COLOR_RGB2GRAY).astype(np.float32)
        height, width = gray.shape
        step = max(1, min(20, min(width, height) // 4))
        if height <= 2 * step or width <= 2 * step:
            return 0.0
        center = gray[step:-step:step, step:-step:step]
        rows, cols = center.shape
        ys = slice(step, step + rows * step, step)
        xs = slice(step, step + cols * step, step)
        neighbours = (
            gray[ys.start - step:ys.stop - step:step, xs],
            gray[ys.start + step:ys.stop + step:step, xs],
            gray[ys, xs.start - step:xs.stop - step:step],
            gray[ys, xs.start + step:xs.stop + step:step],
        )
        variance = np.mean([np.square(center - neighbour) for neighbour in neighbours], axis=0)
        average_variance = float(np.mean(variance))
        return _clamp(1.0 - average_variance / self.SMOOTH_VARIANCE_CEILING)

    @staticmethod
    def _composition(width: int, height: int) -> float:
        if height == 0:
            return 0.0
        aspect = width / height
        return 1.0 if 0.6 < aspect < 1.6 else 0.3


def skin_tone_mask(pixels: np.ndarray) -> np.ndarray:
    """Boolean mask of pixels inside the warm skin-tone RGB ranges."""

    red = pixels[..., 0].astype(np.int16)
    green = pixels[..., 1].astype(np.int16)
    blue = pixels[..., 2].astype(np.int16)
    mask = np.zeros(red.shape, dtype=bool)
    for r_min, r_max, g_min, g_max, b_min, b_max in SKIN_TONE_RANGES:
        mask |= (
            (red >= r_min) & (red <= r_max)
            & (green >= g_min) & (green <= g_max)
            & (blue >= b_min) & (blue <= b_max)
        )
    return mask & (red > green) & (green > blue)


def _clamp(value: float) -> float:
    return float(min(1.0, max(0.0, value)))
