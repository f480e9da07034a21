"""Tile classification backend with model-to-heuristic fallback."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union

import numpy as np

from ..errors import InferenceFailure, ModelUnavailable
from ..models import DetectionSource, TileScore
from .heuristics import HeuristicScorer
from .model_scorer import OnnxModelScorer

LOGGER = logging.getLogger(__name__)


class TileModel(Protocol):
    def score(self, pixels: np.ndarray) -> float:
        ...


@dataclass(frozen=True)
class ModelScorer:
    model: TileModel


@dataclass(frozen=True)
class HeuristicVariant:
    scorer: HeuristicScorer


Scorer = Union[ModelScorer, HeuristicVariant]


def select_scorer(has_model: bool, timed_out: bool) -> str:
    """Pick the scorer kind for the next tile: the model unless it is missing or timed out."""

    if has_model and not timed_out:
        return DetectionSource.MODEL.value
    return DetectionSource.HEURISTIC.value


class ClassificationBackend:
    """Scores single tiles, degrading to the heuristic whenever the model cannot answer."""

    def __init__(self, model: Optional[TileModel] = None, heuristic: Optional[HeuristicScorer] = None) -> None:
        self._heuristic = HeuristicVariant(heuristic or HeuristicScorer())
        self._model = ModelScorer(model) if model is not None else None

    @classmethod
    def from_model_path(cls, model_path: Optional[Path], input_size: int = 224) -> "ClassificationBackend":
        if model_path is None:
            LOGGER.info("No model configured; using heuristic scoring only")
            return cls()
        try:
            model = OnnxModelScorer(model_path, input_size=input_size)
        except ModelUnavailable as exc:
            LOGGER.warning("%s; falling back to heuristic scoring", exc)
            return cls()
        return cls(model=model)

    @property
    def has_model(self) -> bool:
        return self._model is not None

    def scorer_for(self, timed_out: bool = False) -> Scorer:
        kind = select_scorer(self.has_model, timed_out)
        if kind == DetectionSource.MODEL.value and self._model is not None:
            return self._model
        return self._heuristic

    def score(self, pixels: np.ndarray, timed_out: bool = False) -> TileScore:
        scorer = self.scorer_for(timed_out)
        if isinstance(scorer, ModelScorer):
            try:
                return TileScore(confidence=scorer.model.score(pixels), source=DetectionSource.MODEL)
            except InferenceFailure as exc:
                LOGGER.warning("Model failed on tile (%s); rescoring heuristically", exc)
                return TileScore(
                    confidence=self._heuristic.scorer.score(pixels),
                    source=DetectionSource.HEURISTIC,
                    fallback_used=True,
                )
        return TileScore(confidence=scorer.scorer.score(pixels), source=DetectionSource.HEURISTIC)
