"""
Optional Tesseract adapter producing line text and word confidences.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from .constants import PipelineConfig
from .merge import OCRTranscript
from .preprocess import ImageNormalizer, ImageSource, PixelBuffer


def _load_pytesseract() -> Any:
    try:
        import pytesseract  # Optional dependency
    except ImportError as exc:
        raise RuntimeError(
            "pytesseract is required for OCR. Install with: pip install 'mathglyph[ocr]' "
            "and make sure the tesseract binary is on PATH"
        ) from exc
    return pytesseract


def group_words(data: Dict[str, List[Any]]) -> Tuple[List[str], List[float]]:
    """Group ``image_to_data`` rows into lines keyed by block/paragraph/line."""
    lines: Dict[Tuple[int, int, int], List[str]] = {}
    confidences: List[float] = []
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
        lines.setdefault(key, []).append(word)
        conf = float(data["conf"][i])
        if conf >= 0:
            confidences.append(conf)
    ordered = [" ".join(lines[key]) for key in sorted(lines)]
    return ordered, confidences


class TesseractOCR:
    """Run Tesseract on a contrast-boosted copy of the image."""

    def __init__(self, config: PipelineConfig | None = None, lang: str = "eng", tesseract_cmd: str | None = None):
        self.config = (config or PipelineConfig()).for_ocr()
        self.lang = lang
        self.tesseract_cmd = tesseract_cmd
        self.normalizer = ImageNormalizer(self.config)

    def transcribe(self, source: ImageSource | PixelBuffer) -> OCRTranscript:
        pytesseract = _load_pytesseract()
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        if isinstance(source, PixelBuffer):
            buffer = self.normalizer.normalise(source.pixels)
        else:
            buffer = self.normalizer.load(source)
        data = pytesseract.image_to_data(
            buffer.pixels, lang=self.lang, output_type=pytesseract.Output.DICT
        )
        lines, confidences = group_words(data)
        return OCRTranscript(lines=tuple(lines), word_confidences=tuple(confidences))
