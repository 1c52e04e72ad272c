"""
Label vocabulary, thresholds, and tunable defaults for the glyph recogniser.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Tuple

# Glyph labels produced by the heuristic classifier and the arrow pass.
GLYPH_LABELS: List[str] = [
    "+",
    "-",
    "×",
    "÷",
    "=",
    "circle",
    "triangle",
    "square",
    "line",
    "arrow",
    "unknown",
]

# Labels that pass through the stream merger unchanged.
LITERAL_SYMBOLS = frozenset({"+", "-", "=", "×", "÷"})

# Mapping from glyph labels to symbol tokens in the merged stream.
SYMBOL_TOKENS: Dict[str, str] = {
    "arrow": "->",
    "circle": "(circle)",
}

# Mapping from learned-model class names to glyph labels.
RAW_LABEL_MAP: Dict[str, str] = {
    "+": "+",
    "plus": "+",
    "-": "-",
    "minus": "-",
    "=": "=",
    "equals": "=",
    "*": "×",
    "x": "×",
    "times": "×",
    "×": "×",
    "/": "÷",
    "div": "÷",
    "÷": "÷",
    "circle": "circle",
    "triangle": "triangle",
    "square": "square",
    "line": "line",
    "arrow": "arrow",
}

# Heuristic scores per label.
LABEL_SCORES: Dict[str, float] = {
    "-": 0.92,
    "+": 0.92,
    "=": 0.92,
    "×": 0.88,
    "÷": 0.85,
    "circle": 0.86,
    "line": 0.66,
    "triangle": 0.78,
    "square": 0.78,
    "unknown": 0.6,
    "arrow": 0.62,
}

MAX_DIMENSION = 1400
DEFAULT_CONTRAST = 1.08
OCR_CONTRAST = 1.5
CONTRAST_RANGE: Tuple[float, float] = (1.08, 1.5)
THRESHOLD_SCALE = 0.9
THRESHOLD_BOUNDS: Tuple[int, int] = (55, 200)
MIN_COMPONENT_AREA = 30
DEFAULT_TIMEOUT = 10.0
DEFAULT_VARIABLE = "x"

# Luma weights (ITU-R BT.601) in R, G, B order.
LUMA_WEIGHTS: Tuple[float, float, float] = (0.299, 0.587, 0.114)


@dataclass(frozen=True)
class PipelineConfig:
    """Tunables shared by the normaliser, segmenter, and solver."""

    max_dimension: int = MAX_DIMENSION
    contrast: float = DEFAULT_CONTRAST
    threshold_scale: float = THRESHOLD_SCALE
    threshold_bounds: Tuple[int, int] = THRESHOLD_BOUNDS
    min_component_area: int = MIN_COMPONENT_AREA
    timeout_seconds: float = DEFAULT_TIMEOUT
    variable: str = DEFAULT_VARIABLE

    def __post_init__(self) -> None:
        if self.max_dimension <= 0:
            raise ValueError(f"max_dimension must be positive, got {self.max_dimension}")
        low, high = CONTRAST_RANGE
        if not (low <= self.contrast <= high):
            raise ValueError(f"contrast must lie in [{low}, {high}], got {self.contrast}")
        lower, upper = self.threshold_bounds
        if not (0 <= lower <= upper <= 255):
            raise ValueError(f"Invalid threshold bounds: {self.threshold_bounds}")
        if self.min_component_area < 1:
            raise ValueError("min_component_area must be at least 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if len(self.variable) != 1 or not self.variable.isalpha():
            raise ValueError(f"variable must be a single letter, got {self.variable!r}")

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        return replace(self, **overrides)

    def for_ocr(self) -> "PipelineConfig":
        """Variant with the stronger contrast stretch used ahead of OCR."""
        return replace(self, contrast=OCR_CONTRAST)


def load_config(path: str | None = None) -> PipelineConfig:
    """
    Build a config from defaults, optionally overridden by a JSON object file.
    """
    config = PipelineConfig()
    if not path:
        return config
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    known = {field.name for field in fields(PipelineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}")
    if "threshold_bounds" in data:
        data["threshold_bounds"] = tuple(int(v) for v in data["threshold_bounds"])
    return config.with_overrides(**data)
