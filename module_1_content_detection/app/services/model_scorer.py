"""ONNX classification model wrapper."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Sequence

import cv2
import numpy as np
import onnxruntime as ort

from ..errors import InferenceFailure, ModelUnavailable

LOGGER = logging.getLogger(__name__)


class OnnxModelScorer:
    """Scores RGB tiles with a single-output ONNX classifier.

    The classifier may emit a single probability, a ``[safe, flagged]`` pair or a
    vector whose first entry is the safe class; the flagged score is taken as the
    largest non-safe probability.
    """

    PROVIDERS = ("CPUExecutionProvider",)

    def __init__(self, model_path: Path, input_size: int = 224) -> None:
        self.model_path = model_path
        self.input_size = input_size
        if not model_path.exists():
            raise ModelUnavailable(f"Model weights not found at {model_path}")
        LOGGER.info("Loading ONNX model from %s", model_path)
        try:
            self._session = ort.InferenceSession(str(model_path), providers=list(self.PROVIDERS))
        except Exception as exc:
            raise ModelUnavailable(f"Unable to load model {model_path}: {exc}") from exc
        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        self._output_name = self._session.get_outputs()[0].name
        self._channels_first = _is_channels_first(model_input.shape)
        self._lock = threading.Lock()

    def score(self, pixels: np.ndarray) -> float:
        """Return the flagged-content probability for one tile."""

        tensor = self._preprocess(pixels)
        try:
            with self._lock:
                output = self._session.run([self._output_name], {self._input_name: tensor})[0]
        except Exception as exc:
            raise InferenceFailure(f"Model inference failed: {exc}") from exc
        return parse_output(output)

    def _preprocess(self, pixels: np.ndarray) -> np.ndarray:
        resized = cv2.resize(np.array(pixels, dtype=np.uint8, order="C"), (self.input_size, self.input_size), interpolation=cv2.INTER_AREA)
        tensor = resized.astype(np.float32) / 255.0
        if self._channels_first:
            tensor = np.transpose(tensor, (2, 0, 1))
        return np.expand_dims(tensor, axis=0)


def parse_output(output: np.ndarray) -> float:
    values = np.asarray(output, dtype=np.float32).squeeze()
    if values.ndim == 0:
        score = float(values)
    elif values.size == 1:
        score = float(values.reshape(-1)[0])
    elif values.size == 2:
        score = float(values.reshape(-1)[1])
    else:
        score = float(np.max(values.reshape(-1)[1:]))
    return float(min(1.0, max(0.0, score)))


def _is_channels_first(shape: Sequence[object]) -> bool:
    # NCHW when the second axis holds 3 channels and the last does not.
    if len(shape) != 4:
        return False
    return shape[1] == 3 and shape[3] != 3
