"""
Glyph detectors behind a single ``detect(image)`` capability.

``HeuristicDetector`` is the stroke-shape classifier. ``LearnedDetector``
classifies the same components with a trained symbol model and hands over
to its heuristic detector whenever the model fails or finds nothing, so a
pipeline only ever talks to one detector.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .classifier import Glyph, HeuristicGlyphClassifier, circularity, detect_arrows
from .constants import RAW_LABEL_MAP, PipelineConfig
from .models import KerasSymbolModel, load_label_mapping
from .preprocess import Binarizer, BinaryMask, PixelBuffer
from .segmentation import ComponentSegmenter, component_patch


class GlyphDetector:
    """Turn a normalised image into glyphs in reading order."""

    name = "base"

    def detect(self, image: PixelBuffer) -> List[Glyph]:
        raise NotImplementedError

    def detect_with_mask(self, image: PixelBuffer) -> Tuple[List[Glyph], Optional[BinaryMask]]:
        """Glyphs plus the mask they were read from, when the detector builds one."""
        return self.detect(image), None


class HeuristicDetector(GlyphDetector):
    name = "heuristic"

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.binarizer = Binarizer(self.config)
        self.segmenter = ComponentSegmenter(self.config.min_component_area)
        self.classifier = HeuristicGlyphClassifier()

    def detect_mask(self, mask: BinaryMask) -> List[Glyph]:
        components = self.segmenter.segment(mask)
        glyphs = self.classifier.classify_all(components, mask)
        return glyphs + detect_arrows(glyphs, mask)

    def detect_with_mask(self, image: PixelBuffer) -> Tuple[List[Glyph], Optional[BinaryMask]]:
        mask = self.binarizer.binarise(image)
        return self.detect_mask(mask), mask

    def detect(self, image: PixelBuffer) -> List[Glyph]:
        return self.detect_with_mask(image)[0]


class LearnedDetector(GlyphDetector):
    """
    Classify segmented components with a symbol model.

    ``model.predict(batch)`` must return class probabilities, either directly
    or on a ``probabilities`` attribute. Classes that do not map to a glyph
    label (digits, letters) are left to OCR.
    """

    name = "learned"

    def __init__(
        self,
        model: Any,
        label_mapping: Dict[int, str],
        config: PipelineConfig | None = None,
        min_score: float = 0.5,
        input_size: int = 28,
        fallback: GlyphDetector | None = None,
    ) -> None:
        self.model = model
        self.label_mapping = dict(label_mapping)
        self.config = config or PipelineConfig()
        self.min_score = float(min_score)
        self.input_size = int(input_size)
        self.binarizer = Binarizer(self.config)
        self.segmenter = ComponentSegmenter(self.config.min_component_area)
        self.fallback = fallback or HeuristicDetector(self.config)

    def _probabilities(self, batch: np.ndarray) -> np.ndarray:
        result = self.model.predict(batch)
        probs = getattr(result, "probabilities", result)
        probs = np.asarray(probs, dtype=np.float32)
        if probs.ndim != 2 or probs.shape[0] != batch.shape[0]:
            raise ValueError(f"Model returned probabilities of shape {probs.shape}")
        return probs

    def _canonical(self, idx: int) -> str | None:
        raw = self.label_mapping.get(idx)
        if raw is None:
            return None
        return RAW_LABEL_MAP.get(raw.strip().lower())

    def predict_glyphs(self, mask: BinaryMask) -> List[Glyph]:
        components = self.segmenter.segment(mask)
        if not components:
            return []
        size = self.input_size
        patches = [component_patch(c, mask.width, size) for c in components]
        batch = np.stack(patches).astype(np.float32).reshape(-1, size, size, 1) / 255.0
        probs = self._probabilities(batch)

        glyphs: List[Glyph] = []
        for component, vec in zip(components, probs):
            idx = int(np.argmax(vec))
            score = float(vec[idx])
            label = self._canonical(idx)
            if label is None or score < self.min_score:
                continue
            glyphs.append(
                Glyph(
                    label=label,
                    bbox=component.bbox,
                    score=score,
                    area=component.area,
                    circularity=circularity(component.area, component.perimeter),
                )
            )
        return glyphs + detect_arrows(glyphs, mask)

    def detect_with_mask(self, image: PixelBuffer) -> Tuple[List[Glyph], Optional[BinaryMask]]:
        mask = self.binarizer.binarise(image)
        try:
            glyphs = self.predict_glyphs(mask)
        except Exception as exc:
            print(f"Warning: learned glyph detector failed: {exc}")
            glyphs = []
        if glyphs:
            return glyphs, mask
        return self.fallback.detect_with_mask(image)

    def detect(self, image: PixelBuffer) -> List[Glyph]:
        return self.detect_with_mask(image)[0]


def load_keras_detector(
    model_path: str, labels_path: str, config: PipelineConfig | None = None, min_score: float = 0.5
) -> LearnedDetector:
    """Build a learned detector from a saved Keras model and its label mapping."""
    model = KerasSymbolModel.load(model_path)
    mapping = load_label_mapping(labels_path)
    return LearnedDetector(
        model,
        mapping,
        config=config,
        min_score=min_score,
        input_size=model.input_shape[0],
    )
