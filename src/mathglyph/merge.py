"""
Merge an OCR transcript and classified glyphs into one token stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union

from .classifier import Glyph
from .constants import LITERAL_SYMBOLS, SYMBOL_TOKENS


@dataclass(frozen=True)
class Token:
    kind: str  # "text" or "symbol"
    value: str

    @property
    def is_symbol(self) -> bool:
        return self.kind == "symbol"


@dataclass(frozen=True)
class OCRTranscript:
    """Line-level OCR output with optional per-word confidences (0-100)."""

    lines: Sequence[str] = field(default_factory=tuple)
    word_confidences: Sequence[float] = field(default_factory=tuple)

    @classmethod
    def from_text(cls, text: str) -> "OCRTranscript":
        return cls(lines=tuple(text.splitlines()))

    @property
    def mean_confidence(self) -> Optional[float]:
        """Informational only; never used to accept or reject a solve."""
        if not self.word_confidences:
            return None
        return sum(self.word_confidences) / float(len(self.word_confidences))


def symbol_token(label: str) -> str:
    if label in LITERAL_SYMBOLS:
        return label
    if label in SYMBOL_TOKENS:
        return SYMBOL_TOKENS[label]
    return f"[{label}]"


class StreamMerger:
    """
    Text tokens first, then one symbol token per glyph in the order given.

    Glyphs are not interleaved with the text by position.
    """

    def merge(
        self,
        lines: Union[OCRTranscript, Iterable[str], str, None],
        glyphs: Iterable[Glyph],
    ) -> List[Token]:
        if lines is None:
            text_lines: Iterable[str] = ()
        elif isinstance(lines, OCRTranscript):
            text_lines = lines.lines
        elif isinstance(lines, str):
            text_lines = lines.splitlines()
        else:
            text_lines = lines

        tokens: List[Token] = []
        for line in text_lines:
            tokens.extend(Token("text", word) for word in line.split())
        tokens.extend(Token("symbol", symbol_token(glyph.label)) for glyph in glyphs)
        return tokens


def tokens_to_text(tokens: Iterable[Token]) -> str:
    return " ".join(token.value for token in tokens)
