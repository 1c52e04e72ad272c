"""
mathglyph: recognise and solve handwritten or printed maths.

Images are normalised, binarised, and split into connected components whose
shapes are classified into operator and shape glyphs. The glyphs are merged
with an OCR transcript of the same image and handed to a rule-based solver
for arithmetic, linear equations, and simple word problems.
"""

from .classifier import Glyph
from .constants import PipelineConfig, load_config
from .detectors import GlyphDetector, HeuristicDetector, LearnedDetector
from .errors import DecodeError, EvaluationError, MathGlyphError, PipelineTimeout, UnsafeExpression
from .merge import OCRTranscript, StreamMerger, Token
from .pipeline import MathPipeline, PipelineResult, segment_and_classify
from .preprocess import BinaryMask, PixelBuffer
from .solver import SolveResult, solve

__version__ = "1.0.0"

__all__ = [
    "BinaryMask",
    "DecodeError",
    "EvaluationError",
    "Glyph",
    "GlyphDetector",
    "HeuristicDetector",
    "LearnedDetector",
    "MathGlyphError",
    "MathPipeline",
    "OCRTranscript",
    "PipelineConfig",
    "PipelineResult",
    "PipelineTimeout",
    "PixelBuffer",
    "SolveResult",
    "StreamMerger",
    "Token",
    "UnsafeExpression",
    "load_config",
    "segment_and_classify",
    "solve",
]
