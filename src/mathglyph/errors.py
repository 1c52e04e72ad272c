"""
Exception types raised by the recognition pipeline and the numeric evaluator.
"""


class MathGlyphError(Exception):
    """Base class for recogniser errors."""


class DecodeError(MathGlyphError, ValueError):
    """Image bytes or path could not be interpreted as an image."""


class UnsafeExpression(MathGlyphError, ValueError):
    """Expression contains characters outside the arithmetic whitelist."""


class EvaluationError(MathGlyphError, ValueError):
    """Whitelisted expression is not well-formed arithmetic."""


class PipelineTimeout(MathGlyphError, TimeoutError):
    """Processing a single image exceeded the configured budget."""
