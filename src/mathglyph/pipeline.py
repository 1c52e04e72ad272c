"""
High-level pipeline: normalise an image, detect glyphs, merge them with the
OCR transcript, and solve the merged stream.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple, Union

from .classifier import Glyph
from .constants import PipelineConfig
from .detectors import GlyphDetector, HeuristicDetector
from .errors import PipelineTimeout
from .merge import OCRTranscript, StreamMerger, Token, tokens_to_text
from .preprocess import BinaryMask, ImageNormalizer, ImageSource, PixelBuffer
from .solver import SolveResult, solve

OCRInput = Union[OCRTranscript, Iterable[str], str, None]


@dataclass(frozen=True)
class PipelineResult:
    glyphs: Tuple[Glyph, ...]
    tokens: Tuple[Token, ...]
    text: str
    solution: SolveResult
    ocr_confidence: Optional[float] = None
    threshold: Optional[int] = None
    mask: Optional[BinaryMask] = field(default=None, compare=False, repr=False)


class MathPipeline:
    """Recognise and solve the maths in a single image."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        detector: GlyphDetector | None = None,
        ocr: Any = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.normalizer = ImageNormalizer(self.config)
        self.detector = detector or HeuristicDetector(self.config)
        self.merger = StreamMerger()
        self.ocr = ocr

    def normalise(self, source: ImageSource | PixelBuffer) -> PixelBuffer:
        if isinstance(source, PixelBuffer):
            return source
        return self.normalizer.load(source)

    def segment_and_classify(self, image: PixelBuffer) -> List[Glyph]:
        return list(self.detector.detect(image))

    def _transcribe(self, source: Any) -> Optional[OCRTranscript]:
        if self.ocr is None:
            return None
        try:
            return self.ocr.transcribe(source)
        except Exception as exc:
            print(f"Warning: OCR failed, continuing with glyphs only: {exc}")
            return None

    def run(self, source: ImageSource | PixelBuffer, ocr_lines: OCRInput = None) -> PipelineResult:
        """Run every stage on the calling thread."""
        buffer = self.normalise(source)
        glyphs, mask = self.detector.detect_with_mask(buffer)
        if ocr_lines is None:
            ocr_lines = self._transcribe(source)
        confidence = ocr_lines.mean_confidence if isinstance(ocr_lines, OCRTranscript) else None
        tokens = self.merger.merge(ocr_lines, glyphs)
        return PipelineResult(
            glyphs=tuple(glyphs),
            tokens=tuple(tokens),
            text=tokens_to_text(tokens),
            solution=solve(tokens, self.config.variable),
            ocr_confidence=confidence,
            threshold=mask.threshold if mask is not None else None,
            mask=mask,
        )

    def process(self, source: ImageSource | PixelBuffer, ocr_lines: OCRInput = None) -> PipelineResult:
        """
        Like ``run`` but bounded by ``config.timeout_seconds``.

        On timeout ``PipelineTimeout`` is raised straight away. The worker
        thread cannot be interrupted, so a stage that is already running
        finishes in the background and its result is discarded.
        """
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.run, source, ocr_lines)
        try:
            return future.result(timeout=self.config.timeout_seconds)
        except FutureTimeout as exc:
            future.cancel()
            raise PipelineTimeout(
                f"Image processing exceeded {self.config.timeout_seconds:.1f}s"
            ) from exc
        finally:
            executor.shutdown(wait=False)


def segment_and_classify(image: PixelBuffer, config: PipelineConfig | None = None) -> List[Glyph]:
    """Heuristic glyphs for an already normalised image."""
    return HeuristicDetector(config).detect(image)
