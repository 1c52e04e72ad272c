"""
Tests for image decoding, normalisation, and binarisation
"""

import os
import sys
import tempfile
import unittest

import cv2
import numpy as np
from PIL import Image

# Add src directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from mathglyph.constants import PipelineConfig
from mathglyph.errors import DecodeError
from mathglyph.preprocess import (
    Binarizer,
    BinaryMask,
    ImageNormalizer,
    PixelBuffer,
    decode_image,
    luminance_threshold,
    prepare_mask,
)


class TestDecodeImage(unittest.TestCase):
    """Test decoding of the supported image sources"""

    def test_gray_array_passes_through(self):
        gray = np.full((10, 12), 77, dtype=np.uint8)
        decoded = decode_image(gray)
        self.assertEqual(decoded.shape, (10, 12))
        self.assertEqual(int(decoded[0, 0]), 77)

    def test_bgr_array_becomes_rgb(self):
        bgr = np.zeros((4, 4, 3), dtype=np.uint8)
        bgr[:, :, 0] = 255  # blue in OpenCV order
        decoded = decode_image(bgr)
        self.assertEqual(int(decoded[0, 0, 2]), 255)
        self.assertEqual(int(decoded[0, 0, 0]), 0)

    def test_pil_image(self):
        image = Image.new("RGB", (8, 6), (255, 0, 0))
        decoded = decode_image(image)
        self.assertEqual(decoded.shape, (6, 8, 3))
        self.assertEqual(tuple(int(v) for v in decoded[0, 0]), (255, 0, 0))

    def test_png_bytes(self):
        gray = np.full((20, 30), 200, dtype=np.uint8)
        ok, encoded = cv2.imencode(".png", gray)
        self.assertTrue(ok)
        decoded = decode_image(encoded.tobytes())
        self.assertEqual(decoded.shape, (20, 30, 3))

    def test_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "sample.png")
            Image.new("L", (16, 9), 128).save(path)
            decoded = decode_image(path)
            self.assertEqual(decoded.shape, (9, 16, 3))

    def test_garbage_bytes_raise(self):
        with self.assertRaises(DecodeError):
            decode_image(b"definitely not an image")

    def test_missing_file_raises(self):
        with self.assertRaises(DecodeError):
            decode_image("/nonexistent/image.png")

    def test_unsupported_source_raises(self):
        with self.assertRaises(DecodeError):
            decode_image(12345)

    def test_decode_error_is_value_error(self):
        with self.assertRaises(ValueError):
            decode_image(b"")


class TestImageNormalizer(unittest.TestCase):
    """Test resizing, luma conversion, and contrast stretching"""

    def setUp(self):
        self.normalizer = ImageNormalizer(PipelineConfig())

    def test_contrast_stretch_on_gray(self):
        gray = np.array([[100, 200, 128]], dtype=np.uint8)
        buffer = self.normalizer.normalise(gray)
        self.assertEqual(buffer.pixels.tolist(), [[98, 206, 128]])

    def test_luma_weights(self):
        buffer = self.normalizer.load(Image.new("RGB", (4, 4), (255, 0, 0)))
        # 0.299 * 255 = 76.245, stretched by 1.08 around 128
        self.assertEqual(int(buffer.pixels[0, 0]), 72)

    def test_stretch_clamps(self):
        gray = np.array([[0, 255]], dtype=np.uint8)
        buffer = ImageNormalizer(PipelineConfig(contrast=1.5)).normalise(gray)
        self.assertEqual(buffer.pixels.tolist(), [[0, 255]])

    def test_long_edge_is_bounded(self):
        wide = np.full((100, 2800), 255, dtype=np.uint8)
        buffer = self.normalizer.normalise(wide)
        self.assertEqual((buffer.width, buffer.height), (1400, 50))

    def test_small_images_are_not_resized(self):
        small = np.full((30, 40), 255, dtype=np.uint8)
        buffer = self.normalizer.normalise(small)
        self.assertEqual((buffer.width, buffer.height), (40, 30))

    def test_target_size_preserves_aspect(self):
        normalizer = ImageNormalizer(PipelineConfig(max_dimension=100))
        self.assertEqual(normalizer.target_size(400, 200), (100, 50))
        self.assertEqual(normalizer.target_size(200, 400), (50, 100))


class TestPixelBuffer(unittest.TestCase):
    """Test that buffers and masks are read-only snapshots"""

    def test_buffer_is_read_only_copy(self):
        source = np.zeros((3, 3), dtype=np.uint8)
        buffer = PixelBuffer(source)
        source[0, 0] = 255
        self.assertEqual(int(buffer.pixels[0, 0]), 0)
        with self.assertRaises(ValueError):
            buffer.pixels[0, 0] = 1

    def test_buffer_rejects_colour(self):
        with self.assertRaises(ValueError):
            PixelBuffer(np.zeros((3, 3, 3), dtype=np.uint8))

    def test_from_array_clips(self):
        buffer = PixelBuffer.from_array(np.array([[-5, 300]]))
        self.assertEqual(buffer.pixels.tolist(), [[0, 255]])

    def test_mask_mass_in_rect_clips(self):
        bits = np.zeros((10, 10), dtype=bool)
        bits[0:2, 0:2] = True
        mask = BinaryMask(bits, threshold=100)
        self.assertEqual(mask.mass_in_rect(-5, -5, 7, 7), 4)
        self.assertEqual(mask.mass_in_rect(20, 20, 5, 5), 0)
        self.assertEqual(mask.foreground_count, 4)


class TestBinarizer(unittest.TestCase):
    """Test the content-dependent global threshold"""

    def test_threshold_formula(self):
        self.assertEqual(luminance_threshold(100.0), 90)
        self.assertEqual(luminance_threshold(105.0), 95)  # 94.5 rounds up

    def test_threshold_is_clamped(self):
        self.assertEqual(luminance_threshold(255.0), 200)
        self.assertEqual(luminance_threshold(0.0), 55)

    def test_dark_ink_is_foreground(self):
        pixels = np.full((20, 20), 255, dtype=np.uint8)
        pixels[5:10, 5:10] = 0
        mask = Binarizer().binarise(PixelBuffer(pixels))
        self.assertEqual(mask.foreground_count, 25)
        self.assertTrue(mask.bits[7, 7])
        self.assertFalse(mask.bits[0, 0])
        self.assertEqual(mask.bits.shape, pixels.shape)

    def test_uniform_image_has_no_foreground(self):
        pixels = np.full((10, 10), 255, dtype=np.uint8)
        mask = Binarizer().binarise(PixelBuffer(pixels))
        self.assertEqual(mask.threshold, 200)
        self.assertEqual(mask.foreground_count, 0)

    def test_prepare_mask_from_array(self):
        pixels = np.full((20, 20), 255, dtype=np.uint8)
        pixels[2:4, 2:18] = 0
        buffer, mask = prepare_mask(pixels)
        self.assertEqual(buffer.width, 20)
        self.assertEqual(mask.foreground_count, 32)


if __name__ == '__main__':
    unittest.main()
