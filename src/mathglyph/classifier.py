"""
Model-free glyph classification from stroke histograms and shape metrics.

Each component is judged from its bounding-box patch of the binary mask:

- row and column stroke histograms,
- circularity ``4*pi*area / perimeter**2`` using the boundary pixel count,
- aspect ratio ``w / h``,
- significant peaks in the row histogram,
- coverage of the two box diagonals.

Rules are evaluated in a fixed precedence order and the first match wins, so
a shape that satisfies several heuristics always receives the same label.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .constants import LABEL_SCORES
from .preprocess import BinaryMask
from .segmentation import Box, Component

# Fraction of the peak row that another row must reach to count as a peak.
PEAK_FLOOR = 0.5
# Fraction of each box diagonal that must be inked for a crossing stroke.
DIAGONAL_COVERAGE = 0.6
# Ink density above which a patch is a blob rather than crossing strokes.
STROKE_DENSITY_MAX = 0.5
TRIANGLE_DIP_TOLERANCE = 4
ARROW_MASS_RATIO = 0.05


@dataclass(frozen=True)
class Glyph:
    """A classified symbol with its bounding box and confidence."""

    label: str
    bbox: Box
    score: float
    area: Optional[int] = None
    circularity: Optional[float] = None


@dataclass(frozen=True)
class StrokeFeatures:
    width: int
    height: int
    patch: np.ndarray
    row_sum: np.ndarray
    col_sum: np.ndarray
    area: int
    perimeter: int
    circularity: float
    aspect: float
    density: float
    row_peaks: Tuple[int, ...]
    diag_main: float
    diag_anti: float

    @property
    def max_row(self) -> int:
        return int(self.row_sum.max()) if self.row_sum.size else 0

    @property
    def max_col(self) -> int:
        return int(self.col_sum.max()) if self.col_sum.size else 0


def find_peaks(profile: Sequence[int], min_separation: int, floor: float = 0.0) -> List[int]:
    """
    Local maxima of a histogram, treating flat tops as a single peak.

    The profile is padded with zeros so plateaus touching either end still
    count. Peaks below ``floor`` are ignored, and peaks closer than
    ``min_separation`` collapse into the taller one.
    """
    values = [0] + [int(v) for v in profile] + [0]
    last = len(values) - 1
    candidates: List[int] = []
    i = 1
    while i < last:
        if values[i] > values[i - 1]:
            j = i
            while j + 1 < last and values[j + 1] == values[i]:
                j += 1
            if values[j + 1] < values[i] and values[i] >= floor:
                candidates.append((i - 1 + j - 1) // 2)
            i = j + 1
        else:
            i += 1

    peaks: List[int] = []
    for idx in candidates:
        if peaks and idx - peaks[-1] < min_separation:
            if values[idx + 1] > values[peaks[-1] + 1]:
                peaks[-1] = idx
            continue
        peaks.append(idx)
    return peaks


def diagonal_coverage(patch: np.ndarray, main: bool = True) -> float:
    """Fraction of sample points along a box diagonal that hit ink."""
    height, width = patch.shape
    n = min(width, height)
    if n == 0:
        return 0.0
    tolerance = max(1, n // 15)
    hits = 0
    for t in range(n):
        if n == 1:
            y, x = 0, 0
        else:
            y = int(round(t * (height - 1) / (n - 1)))
            x = int(round(t * (width - 1) / (n - 1)))
        if not main:
            x = width - 1 - x
        lo = max(0, x - tolerance)
        hi = min(width, x + tolerance + 1)
        if patch[y, lo:hi].any():
            hits += 1
    return hits / float(n)


def circularity(area: int, perimeter: int) -> float:
    if perimeter <= 0:
        return 0.0
    return (4.0 * math.pi * area) / float(perimeter * perimeter)


class HeuristicGlyphClassifier:
    """Classify components into math glyphs and simple shapes."""

    def extract_patch(self, component: Component, mask: BinaryMask) -> np.ndarray:
        x, y, w, h = component.bbox
        return mask.bits[y : y + h, x : x + w].astype(np.uint8)

    def features(self, component: Component, mask: BinaryMask) -> StrokeFeatures:
        patch = self.extract_patch(component, mask)
        height, width = patch.shape
        row_sum = patch.sum(axis=1).astype(np.int64)
        col_sum = patch.sum(axis=0).astype(np.int64)
        max_row = int(row_sum.max()) if row_sum.size else 0
        peaks = find_peaks(row_sum, max(1, height // 8), PEAK_FLOOR * max_row)
        return StrokeFeatures(
            width=width,
            height=height,
            patch=patch,
            row_sum=row_sum,
            col_sum=col_sum,
            area=component.area,
            perimeter=component.perimeter,
            circularity=circularity(component.area, component.perimeter),
            aspect=width / float(max(1, height)),
            density=component.area / float(max(1, width * height)),
            row_peaks=tuple(peaks),
            diag_main=diagonal_coverage(patch, main=True),
            diag_anti=diagonal_coverage(patch, main=False),
        )

    @staticmethod
    def _centre_band(profile: np.ndarray) -> int:
        """Largest value within a narrow band around the profile centre."""
        size = profile.size
        centre = size // 2
        reach = max(1, size // 10)
        return int(profile[max(0, centre - reach) : min(size, centre + reach + 1)].max())

    def _prominent_centre(self, profile: np.ndarray) -> bool:
        peak = int(profile.max())
        centre = self._centre_band(profile)
        return centre >= 0.45 * peak and centre >= 2.0 * float(np.median(profile))

    def is_minus(self, f: StrokeFeatures) -> bool:
        return self._centre_band(f.row_sum) > 0.6 * f.max_row and f.max_col < 0.45 * f.max_row

    def is_plus(self, f: StrokeFeatures) -> bool:
        return self._prominent_centre(f.row_sum) and self._prominent_centre(f.col_sum)

    def is_equals(self, f: StrokeFeatures) -> bool:
        if len(f.row_peaks) != 2:
            return False
        top, bottom = f.row_peaks
        if bottom - top <= max(1, f.height // 6):
            return False
        gap = int(f.row_sum[top : bottom + 1].min())
        if gap > 0.1 * f.max_row:
            return False
        # Two bars never share a column stroke that spans the glyph.
        return f.max_col < 0.85 * f.height

    def is_multiply(self, f: StrokeFeatures) -> bool:
        return (
            f.diag_main >= DIAGONAL_COVERAGE
            and f.diag_anti >= DIAGONAL_COVERAGE
            and f.density < STROKE_DENSITY_MAX
        )

    def is_division(self, f: StrokeFeatures) -> bool:
        third = max(1, f.height // 3)
        if f.height - third < 1:
            return False
        top = f.patch[:third]
        top_mass = int(top.sum())
        if top_mass == 0 or top_mass < 0.1 * f.area:
            return False
        columns = np.flatnonzero(top.any(axis=0))
        if columns[-1] - columns[0] + 1 > 0.5 * f.width:
            return False
        # The dot must be pinched off from the stroke beneath it.
        top_peak = int(f.row_sum[:third].max())
        if int(f.row_sum[third:].min()) >= 0.5 * top_peak:
            return False
        lower = f.patch[third:]
        horizontal = lower.sum(axis=1).max() >= 0.6 * f.width
        vertical = lower.sum(axis=0).max() >= 0.6 * lower.shape[0]
        diagonal = max(diagonal_coverage(lower, True), diagonal_coverage(lower, False))
        return bool(horizontal or vertical or diagonal >= DIAGONAL_COVERAGE)

    def is_circle(self, f: StrokeFeatures) -> bool:
        return f.circularity > 0.5 and 0.6 <= f.aspect <= 1.6

    def is_line(self, f: StrokeFeatures) -> bool:
        return f.aspect > 3 or f.aspect < 0.33

    def is_triangle(self, f: StrokeFeatures) -> bool:
        peak_idx = int(np.argmax(f.row_sum))
        if peak_idx < int(f.height * 0.4):
            return False
        for y in range(peak_idx):
            if f.row_sum[y + 1] < f.row_sum[y] - TRIANGLE_DIP_TOLERANCE:
                return False
        return True

    def is_square(self, f: StrokeFeatures) -> bool:
        return 0.85 <= f.aspect <= 1.25 and f.circularity < 0.3

    def label_for(self, f: StrokeFeatures) -> str:
        if f.max_row == 0:
            return "unknown"
        if self.is_minus(f):
            return "-"
        if self.is_plus(f):
            return "+"
        if self.is_equals(f):
            return "="
        if self.is_multiply(f):
            return "×"
        if self.is_division(f):
            return "÷"
        if self.is_circle(f):
            return "circle"
        if self.is_line(f):
            return "line"
        if self.is_triangle(f):
            return "triangle"
        if self.is_square(f):
            return "square"
        return "unknown"

    def classify(self, component: Component, mask: BinaryMask) -> Glyph:
        f = self.features(component, mask)
        label = self.label_for(f)
        return Glyph(
            label=label,
            bbox=component.bbox,
            score=LABEL_SCORES[label],
            area=component.area,
            circularity=f.circularity,
        )

    def classify_all(self, components: Iterable[Component], mask: BinaryMask) -> List[Glyph]:
        return [self.classify(component, mask) for component in components]


def arrow_band(w: int, h: int) -> int:
    return min(12, max(6, int(math.floor(min(w, h) * 0.2 + 0.5))))


def detect_arrows(glyphs: Iterable[Glyph], mask: BinaryMask) -> List[Glyph]:
    """
    Emit extra ``arrow`` glyphs where a line or unknown shape has ink stubs
    immediately to its left or right. Source glyphs are left untouched.
    """
    arrows: List[Glyph] = []
    for glyph in glyphs:
        if glyph.label not in ("line", "unknown"):
            continue
        x, y, w, h = glyph.bbox
        area = glyph.area if glyph.area is not None else mask.mass_in_rect(x, y, w, h)
        limit = area * ARROW_MASS_RATIO
        band = arrow_band(w, h)

        left_x = max(0, x - band)
        left_w = x - left_x
        if left_w > 0 and mask.mass_in_rect(left_x, y, left_w, h) > limit:
            arrows.append(Glyph("arrow", (left_x, y, left_w, h), LABEL_SCORES["arrow"]))

        right_x = x + w
        right_w = min(mask.width, right_x + band) - right_x
        if right_w > 0 and mask.mass_in_rect(right_x, y, right_w, h) > limit:
            arrows.append(Glyph("arrow", (right_x, y, right_w, h), LABEL_SCORES["arrow"]))
    return arrows
