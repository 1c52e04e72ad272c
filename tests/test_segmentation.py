"""
Tests for connected-component segmentation
"""

import os
import sys
import unittest

import numpy as np

# Add src directory to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from mathglyph.preprocess import BinaryMask
from mathglyph.segmentation import ComponentSegmenter, component_patch


def make_mask(height, width, rects):
    bits = np.zeros((height, width), dtype=bool)
    for x, y, w, h in rects:
        bits[y : y + h, x : x + w] = True
    return BinaryMask(bits, threshold=128)


class TestComponentSegmenter(unittest.TestCase):
    """Test labelling, noise filtering, and ordering"""

    def setUp(self):
        self.segmenter = ComponentSegmenter(min_area=30)

    def test_empty_mask_yields_no_components(self):
        mask = make_mask(20, 20, [])
        self.assertEqual(self.segmenter.segment(mask), [])

    def test_bounding_box_and_area(self):
        mask = make_mask(30, 30, [(4, 6, 10, 8)])
        components = self.segmenter.segment(mask)
        self.assertEqual(len(components), 1)
        component = components[0]
        self.assertEqual(component.bbox, (4, 6, 10, 8))
        self.assertEqual(component.area, 80)
        self.assertEqual(len(component.pixels), 80)

    def test_perimeter_counts_boundary_pixels(self):
        mask = make_mask(20, 20, [(2, 2, 10, 10)])
        component = self.segmenter.segment(mask)[0]
        self.assertEqual(component.perimeter, 36)

    def test_image_border_counts_as_background(self):
        mask = make_mask(6, 6, [(0, 0, 6, 6)])
        component = self.segmenter.segment(mask)[0]
        self.assertEqual(component.perimeter, 20)

    def test_noise_is_dropped(self):
        mask = make_mask(40, 40, [(1, 1, 3, 3), (10, 10, 5, 5), (20, 20, 5, 6)])
        components = self.segmenter.segment(mask)
        self.assertEqual([c.area for c in components], [30])
        self.assertTrue(all(c.area >= 30 for c in components))

    def test_ids_count_dropped_components(self):
        mask = make_mask(40, 40, [(0, 0, 2, 2), (10, 10, 8, 8)])
        components = self.segmenter.segment(mask)
        self.assertEqual(len(components), 1)
        self.assertEqual(components[0].id, 2)

    def test_raster_order(self):
        mask = make_mask(60, 60, [(40, 2, 8, 8), (2, 20, 8, 8), (20, 2, 8, 8)])
        components = self.segmenter.segment(mask)
        self.assertEqual([c.bbox[:2] for c in components], [(20, 2), (40, 2), (2, 20)])
        ids = [c.id for c in components]
        self.assertEqual(ids, sorted(ids))

    def test_diagonal_pixels_are_not_connected(self):
        bits = np.zeros((20, 20), dtype=bool)
        bits[0:6, 0:6] = True
        bits[6:12, 6:12] = True
        components = self.segmenter.segment(BinaryMask(bits, threshold=128))
        self.assertEqual(len(components), 2)

    def test_partition_invariant(self):
        rng = np.random.default_rng(7)
        bits = rng.random((60, 60)) > 0.45
        mask = BinaryMask(bits, threshold=128)
        components = ComponentSegmenter(min_area=1).segment(mask)
        seen = set()
        foreground = set(np.flatnonzero(bits).tolist())
        for component in components:
            self.assertTrue(seen.isdisjoint(component.pixels))
            seen |= component.pixels
        self.assertTrue(seen <= foreground)
        self.assertEqual(seen, foreground)

    def test_deterministic(self):
        rng = np.random.default_rng(11)
        mask = BinaryMask(rng.random((50, 50)) > 0.5, threshold=128)
        first = self.segmenter.segment(mask)
        second = self.segmenter.segment(mask)
        self.assertEqual(first, second)

    def test_large_solid_region(self):
        mask = make_mask(300, 300, [(0, 0, 300, 300)])
        components = self.segmenter.segment(mask)
        self.assertEqual(len(components), 1)
        self.assertEqual(components[0].area, 90000)
        self.assertEqual(components[0].bbox, (0, 0, 300, 300))

    def test_visualise_draws_boxes(self):
        mask = make_mask(40, 40, [(5, 10, 10, 10)])
        overlay = self.segmenter.visualise(mask)
        self.assertEqual(overlay.shape, (40, 40, 3))
        # Box outline is drawn in green
        self.assertEqual(tuple(int(v) for v in overlay[10, 5]), (0, 255, 0))


class TestComponentPatch(unittest.TestCase):
    """Test model-input patches cut from components"""

    def setUp(self):
        # An L stroke whose bounding box also holds a separate square blob
        mask = make_mask(32, 32, [(0, 0, 3, 30), (0, 27, 30, 3), (15, 5, 10, 10)])
        self.stroke, self.blob = ComponentSegmenter(min_area=30).segment(mask)
        self.width = mask.width

    def test_patch_shape_and_ink(self):
        patch = component_patch(self.stroke, self.width, 28)
        self.assertEqual(patch.shape, (28, 28))
        self.assertEqual(patch.dtype, np.uint8)
        self.assertEqual(int(patch.max()), 255)

    def test_neighbouring_ink_is_excluded(self):
        patch = component_patch(self.stroke, self.width, 28)
        self.assertEqual(int(patch[6:14, 14:22].max()), 0)

    def test_glyph_is_centred(self):
        patch = component_patch(self.blob, self.width, 28)
        self.assertEqual(int(patch[14, 14]), 255)
        self.assertEqual(int(patch[0:2, :].max()), 0)
        self.assertEqual(int(patch[:, 26:].max()), 0)


if __name__ == '__main__':
    unittest.main()
