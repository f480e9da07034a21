from __future__ import annotations

import numpy as np

from module_1_content_detection.app.services.heuristics import HeuristicScorer, skin_tone_mask


def solid(color: tuple[int, int, int], width: int = 224, height: int = 224) -> np.ndarray:
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, :] = color
    return pixels


def test_mid_grey_scores_zero() -> None:
    signals = HeuristicScorer().analyze(solid((128, 128, 128)))

    assert signals.skin_ratio == 0.0
    assert signals.score == 0.0


def test_uniform_skin_tone_scores_high() -> None:
    signals = HeuristicScorer().analyze(solid((200, 150, 120)))

    assert signals.skin_ratio == 1.0
    assert signals.color_concentration == 1.0
    assert signals.smoothness == 1.0
    assert signals.composition == 1.0
    assert signals.score >= 0.99


def test_wide_aspect_lowers_composition() -> None:
    signals = HeuristicScorer().analyze(solid((200, 150, 120), width=400, height=100))

    assert signals.composition == 0.3
    assert signals.score < 1.0


def test_noise_is_not_smooth() -> None:
    rng = np.random.default_rng(7)
    noise = rng.integers(0, 256, size=(200, 200, 3), dtype=np.uint8)

    signals = HeuristicScorer().analyze(noise)

    assert signals.smoothness < 0.2
    assert 0.0 <= signals.score <= 1.0


def test_empty_tile_scores_zero() -> None:
    assert HeuristicScorer().score(np.zeros((0, 0, 3), dtype=np.uint8)) == 0.0


def test_skin_tone_mask_requires_warm_ordering() -> None:
    pixels = np.array([[[200, 150, 120], [150, 150, 150], [120, 150, 200], [130, 90, 60]]], dtype=np.uint8)

    mask = skin_tone_mask(pixels)

    assert mask.tolist() == [[True, False, False, True]]
