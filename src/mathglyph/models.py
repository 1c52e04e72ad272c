"""
Keras-backed symbol model used by the learned glyph detector.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np


@dataclass
class PredictionOutput:
    labels: np.ndarray
    probabilities: np.ndarray


def _load_keras_model(path: str) -> Any:
    try:
        from tensorflow.keras.models import load_model  # Lazy import keeps startup fast
    except ImportError as exc:
        raise RuntimeError(
            "TensorFlow/Keras is required for the learned detector. "
            "Install with: pip install 'mathglyph[learned]'"
        ) from exc
    return load_model(path)


def load_label_mapping(path: str) -> Dict[int, str]:
    """
    Read an index->label mapping saved either as ``{"0": "+", ...}`` or as
    ``{"idx_to_label": ["+", ...]}``.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Labels not found: {path}")
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    if isinstance(data, dict) and "idx_to_label" in data:
        return {idx: str(label) for idx, label in enumerate(data["idx_to_label"])}
    if isinstance(data, dict):
        return {int(k): str(v) for k, v in data.items()}
    if isinstance(data, list):
        return {idx: str(label) for idx, label in enumerate(data)}
    raise ValueError(f"Unsupported label mapping format in {path}")


class KerasSymbolModel:
    """Thin wrapper giving a saved Keras classifier a batch ``predict``."""

    def __init__(self, model: Any, input_shape: Tuple[int, int, int] = (28, 28, 1)) -> None:
        self.model = model
        self.input_shape = input_shape

    @classmethod
    def load(cls, path: str) -> "KerasSymbolModel":
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Model not found: {path}")
        model = _load_keras_model(path)
        shape = getattr(model, "input_shape", None)
        if shape and len(shape) == 4 and shape[1] and shape[2]:
            return cls(model, (int(shape[1]), int(shape[2]), int(shape[3] or 1)))
        return cls(model)

    def predict(self, X: np.ndarray) -> PredictionOutput:
        probs = np.asarray(self.model.predict(X, verbose=0), dtype=np.float32)
        return PredictionOutput(labels=probs.argmax(axis=1), probabilities=probs)
