"""
Image normalisation and global-threshold binarisation for glyph segmentation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from .constants import LUMA_WEIGHTS, PipelineConfig
from .errors import DecodeError

ImageSource = Union[str, "os.PathLike[str]", bytes, bytearray, np.ndarray, Image.Image]


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class PixelBuffer:
    """Row-major 8-bit luma samples."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 2 or self.pixels.dtype != np.uint8:
            raise ValueError("PixelBuffer expects a 2-D uint8 array")
        if self.pixels.flags.writeable:
            object.__setattr__(self, "pixels", _readonly(self.pixels.copy()))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Wrap an existing grayscale array, clipping to the 0-255 range."""
        arr = np.asarray(array)
        if arr.ndim != 2:
            raise ValueError("PixelBuffer.from_array expects a 2-D array")
        return cls(np.clip(arr, 0, 255).astype(np.uint8))


@dataclass(frozen=True)
class BinaryMask:
    """Foreground mask with the same shape as the buffer it came from."""

    bits: np.ndarray
    threshold: int

    def __post_init__(self) -> None:
        if self.bits.ndim != 2 or self.bits.dtype != np.bool_:
            raise ValueError("BinaryMask expects a 2-D boolean array")
        if self.bits.flags.writeable:
            object.__setattr__(self, "bits", _readonly(self.bits.copy()))

    @property
    def width(self) -> int:
        return int(self.bits.shape[1])

    @property
    def height(self) -> int:
        return int(self.bits.shape[0])

    @property
    def foreground_count(self) -> int:
        return int(self.bits.sum())

    def mass_in_rect(self, x: int, y: int, w: int, h: int) -> int:
        """Count foreground pixels inside a rectangle clipped to the mask."""
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + w), min(self.height, y + h)
        if x1 <= x0 or y1 <= y0:
            return 0
        return int(self.bits[y0:y1, x0:x1].sum())

    def to_image(self) -> np.ndarray:
        """Render as white ink on black, the layout OpenCV drawing expects."""
        return self.bits.astype(np.uint8) * 255


def decode_image(source: ImageSource) -> np.ndarray:
    """
    Decode an image source into an RGB uint8 array (or a 2-D gray array).

    Raw arrays with three channels are taken to be BGR, following OpenCV.
    """
    if isinstance(source, Image.Image):
        return np.asarray(source.convert("RGB"), dtype=np.uint8)

    if isinstance(source, np.ndarray):
        if source.size == 0:
            raise DecodeError("Image array is empty")
        if source.ndim == 2:
            return source.astype(np.uint8)
        if source.ndim == 3 and source.shape[2] == 3:
            return cv2.cvtColor(source.astype(np.uint8), cv2.COLOR_BGR2RGB)
        if source.ndim == 3 and source.shape[2] == 4:
            return cv2.cvtColor(source.astype(np.uint8), cv2.COLOR_BGRA2RGB)
        raise DecodeError(f"Unsupported image array shape: {source.shape}")

    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise DecodeError("Image bytes are empty")
        buffer = np.frombuffer(bytes(source), dtype=np.uint8)
        decoded = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if decoded is None:
            raise DecodeError("Could not decode image bytes")
        return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB)

    if isinstance(source, (str, os.PathLike)):
        path = os.fspath(source)
        if not os.path.isfile(path):
            raise DecodeError(f"Image file not found: {path}")
        try:
            with Image.open(path) as handle:
                return np.asarray(handle.convert("RGB"), dtype=np.uint8)
        except (OSError, ValueError) as exc:
            raise DecodeError(f"Could not load image from {path}: {exc}") from exc

    raise DecodeError(f"Unsupported image source type: {type(source).__name__}")


class ImageNormalizer:
    """Bound the image size, convert to luma, and stretch contrast."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def target_size(self, width: int, height: int) -> Tuple[int, int]:
        longest = max(width, height)
        if longest <= self.config.max_dimension:
            return width, height
        scale = self.config.max_dimension / float(longest)
        new_w = max(1, _round_half_up(width * scale))
        new_h = max(1, _round_half_up(height * scale))
        return new_w, new_h

    def resize(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        new_w, new_h = self.target_size(width, height)
        if (new_w, new_h) == (width, height):
            return image
        return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)

    def to_luma(self, image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image.astype(np.float32)
        rgb = image[:, :, :3].astype(np.float32)
        r_w, g_w, b_w = LUMA_WEIGHTS
        return r_w * rgb[:, :, 0] + g_w * rgb[:, :, 1] + b_w * rgb[:, :, 2]

    def stretch_contrast(self, luma: np.ndarray) -> np.ndarray:
        stretched = (luma - 128.0) * self.config.contrast + 128.0
        return np.clip(np.floor(stretched + 0.5), 0, 255).astype(np.uint8)

    def normalise(self, image: np.ndarray) -> PixelBuffer:
        """Full pipeline from a decoded RGB/gray array to a PixelBuffer."""
        resized = self.resize(image)
        return PixelBuffer(self.stretch_contrast(self.to_luma(resized)))

    def load(self, source: ImageSource) -> PixelBuffer:
        return self.normalise(decode_image(source))


def luminance_threshold(
    mean: float, scale: float = 0.9, bounds: Tuple[int, int] = (55, 200)
) -> int:
    lower, upper = bounds
    return max(lower, min(upper, _round_half_up(mean * scale)))


class Binarizer:
    """Content-dependent global threshold: ink is darker than the scaled mean."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def threshold_for(self, buffer: PixelBuffer) -> int:
        mean = float(buffer.pixels.mean()) if buffer.pixels.size else 0.0
        return luminance_threshold(mean, self.config.threshold_scale, self.config.threshold_bounds)

    def binarise(self, buffer: PixelBuffer) -> BinaryMask:
        threshold = self.threshold_for(buffer)
        return BinaryMask(bits=buffer.pixels < threshold, threshold=threshold)


def prepare_mask(source: Any, config: PipelineConfig | None = None) -> Tuple[PixelBuffer, BinaryMask]:
    """Utility composing normaliser and binariser for a raw image source."""
    cfg = config or PipelineConfig()
    if isinstance(source, PixelBuffer):
        buffer = source
    else:
        buffer = ImageNormalizer(cfg).load(source)
    return buffer, Binarizer(cfg).binarise(buffer)
