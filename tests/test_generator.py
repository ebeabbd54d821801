"""
Tests for anchor box generation and generator options.
"""

import os
import sys
import unittest

import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from anchor_pipeline import DetectionPipeline  # type: ignore
from generator import AnchorBoxGenerator, BoxLayout, dashed_segments  # type: ignore
from marker_codec import MarkerCodec, strip_border  # type: ignore
from options import (  # type: ignore
    AnchorBorder,
    AnchorLabel,
    BorderSides,
    BorderStyle,
    ConfigurationError,
    DetectionOptions,
    GeneratorOptions,
    LabelPlacement,
    MarkerIdError,
)


def decode_marker(image, x, y, size=60, border_bits=1):
    """Read the payload of a rendered marker back from cell centres."""
    cells = 4 + 2 * border_bits
    cell = size // cells
    centres = image[y + cell // 2:y + size:cell, x + cell // 2:x + size:cell, 0]
    bits = (centres > 127).astype(np.uint8)[:cells, :cells]
    return MarkerCodec(max_hamming_distance=0).decode(strip_border(bits, border_bits))


class TestGeneratorOptions(unittest.TestCase):
    """Validation at construction."""

    def test_minimum_box_size(self):
        with self.assertRaises(ConfigurationError):
            GeneratorOptions(box_id=0, pixel_width=29, pixel_height=100)
        with self.assertRaises(ConfigurationError):
            GeneratorOptions(box_id=0, pixel_width=100, pixel_height=29)
        options = GeneratorOptions(box_id=0, pixel_width=30, pixel_height=30)
        self.assertEqual(options.pixel_width, 30)

    def test_box_id_range(self):
        with self.assertRaises(ConfigurationError):
            GeneratorOptions(box_id=256, pixel_width=100, pixel_height=100)
        with self.assertRaises(ConfigurationError):
            GeneratorOptions(box_id=-1, pixel_width=100, pixel_height=100)

    def test_label_bounds(self):
        with self.assertRaises(ConfigurationError):
            AnchorLabel(text="x" * 101)
        with self.assertRaises(ConfigurationError):
            AnchorLabel(text="Sign here", font_size=4)
        with self.assertRaises(ConfigurationError):
            AnchorLabel(text="Sign here", font_size=26)
        AnchorLabel(text="x" * 100, font_size=25)

    def test_border_thickness(self):
        with self.assertRaises(ConfigurationError):
            AnchorBorder(thickness=0)
        with self.assertRaises(ConfigurationError):
            AnchorBorder(thickness=6)

    def test_marker_ids(self):
        options = GeneratorOptions(box_id=12, pixel_width=100, pixel_height=100)
        self.assertEqual(options.top_left_marker_id, 24)
        self.assertEqual(options.bottom_right_marker_id, 25)

    def test_from_config(self):
        options = GeneratorOptions.from_config({
            "box_id": 2,
            "pixel_width": 300,
            "pixel_height": 120,
            "fill_color": [250, 250, 200],
            "border": {"color": [0, 0, 255], "style": "dashed", "sides": 5},
            "label": {"text": "Sign", "placement": 3},
            "ignored": True,
        })
        self.assertEqual(options.fill_color, (250, 250, 200))
        self.assertEqual(options.border.style, BorderStyle.DASHED)
        self.assertEqual(options.border.sides, BorderSides.TOP | BorderSides.BOTTOM)
        self.assertEqual(options.label.placement, LabelPlacement.TOP_OUTSIDE)

    def test_detection_options_validation(self):
        with self.assertRaises(ConfigurationError):
            DetectionOptions(binary_threshold=1.2)
        with self.assertRaises(ConfigurationError):
            DetectionOptions(min_cell_px=10, max_cell_px=5)
        self.assertEqual(DetectionOptions(rotations=[90]).rotations, (90.0,))


class TestBoxLayout(unittest.TestCase):
    """Placement math."""

    def test_inner_layout(self):
        layout = BoxLayout.from_options(GeneratorOptions(box_id=0, pixel_width=300, pixel_height=200))
        self.assertEqual((layout.total_width, layout.total_height), (300, 200))
        self.assertEqual(layout.top_left_marker, (5, 5))
        self.assertEqual(layout.bottom_right_marker, (235, 135))

    def test_outer_layout_with_top_label(self):
        options = GeneratorOptions(
            box_id=0,
            pixel_width=300,
            pixel_height=200,
            outer_markers=True,
            label=AnchorLabel(text="Sign", placement=LabelPlacement.TOP_OUTSIDE, font_size=15),
        )
        layout = BoxLayout.from_options(options)
        self.assertEqual(layout.total_width, 300 + 2 * 65)
        self.assertEqual(layout.total_height, 20 + 200 + 2 * 65)
        self.assertEqual((layout.box_x, layout.box_y), (65, 85))
        self.assertEqual(layout.top_left_marker, (5, 25))
        self.assertEqual(layout.bottom_right_marker, (365, 285))
        self.assertEqual(layout.label_top(options.label), 70)

    def test_label_positions(self):
        options = GeneratorOptions(box_id=0, pixel_width=300, pixel_height=200)
        layout = BoxLayout.from_options(options)
        self.assertEqual(layout.label_top(AnchorLabel("a", LabelPlacement.TOP_INSIDE, 10)), 5)
        self.assertEqual(layout.label_top(AnchorLabel("a", LabelPlacement.BOTTOM_INSIDE, 10)), 185)
        self.assertEqual(layout.label_top(AnchorLabel("a", LabelPlacement.BOTTOM_OUTSIDE, 10)), 205)

    def test_markers_must_fit_inner_box(self):
        with self.assertRaises(ConfigurationError):
            BoxLayout.from_options(GeneratorOptions(box_id=0, pixel_width=60, pixel_height=200))

    def test_dashed_segments(self):
        pieces = dashed_segments((0, 0), (45, 0), 10, 10)
        self.assertEqual(pieces, [((0, 0), (10, 0)), ((20, 0), (30, 0)), ((40, 0), (45, 0))])


class TestAnchorBoxGenerator(unittest.TestCase):
    """Raster and SVG output."""

    def setUp(self):
        self.generator = AnchorBoxGenerator()

    def test_image_size_and_markers(self):
        options = GeneratorOptions(box_id=3, pixel_width=300, pixel_height=200)
        image = self.generator.generate_image(options)

        self.assertEqual(image.shape, (200, 300, 4))
        self.assertEqual(decode_marker(image, 5, 5), 6)
        self.assertEqual(decode_marker(image, 235, 135), 7)
        # Untouched pixels are transparent white
        self.assertEqual(image[100, 150].tolist(), [255, 255, 255, 0])

    def test_fill_border_and_label_stay_in_bounds(self):
        options = GeneratorOptions(
            box_id=1,
            pixel_width=300,
            pixel_height=200,
            fill_color=(250, 250, 200),
            border=AnchorBorder(color=(255, 0, 0), thickness=2, style=BorderStyle.DOTTED),
            label=AnchorLabel(text="Sign here", color=(0, 0, 255)),
        )
        image = self.generator.generate_image(options)

        self.assertEqual(image.shape, (200 + 14 + 5, 300, 4))
        self.assertEqual(image[100, 150].tolist(), [250, 250, 200, 255])
        # Red dots on the top edge, blue label pixels below the box
        self.assertTrue(np.any(np.all(image[0, 70:230] == (255, 0, 0, 255), axis=1)))
        label_band = image[200:, :, :3]
        self.assertTrue(np.any((label_band[:, :, 2] > 128) & (label_band[:, :, 0] < 128)))

    def test_border_sides(self):
        options = GeneratorOptions(
            box_id=0,
            pixel_width=300,
            pixel_height=200,
            border=AnchorBorder(color=(0, 255, 0), sides=BorderSides.LEFT),
        )
        image = self.generator.generate_image(options)
        green = np.all(image == (0, 255, 0, 255), axis=2)
        self.assertTrue(green[:, 0].any())
        self.assertFalse(green[100, 299])
        self.assertFalse(green[0, 150])

    def test_generated_box_is_detected(self):
        options = GeneratorOptions(box_id=3, pixel_width=300, pixel_height=200)
        image = self.generator.generate_image(options)

        result = DetectionPipeline(DetectionOptions(max_hamming_distance=0, max_workers=2)).locate(image)
        self.assertEqual(result.box_ids, [3])
        rect = result.boxes[0].rect
        # Content lies between the 60px markers at (5, 5) and (235, 135)
        for actual, expected in zip((rect.left, rect.top, rect.right, rect.bottom), (67, 67, 233, 133)):
            self.assertLessEqual(abs(actual - expected), 10)

    def test_generated_box_is_detected_with_default_options(self):
        options = GeneratorOptions(box_id=3, pixel_width=300, pixel_height=200)
        image = self.generator.generate_image(options)

        result = DetectionPipeline().locate(image)
        self.assertEqual(result.box_ids, [3])
        rect = result.boxes[0].rect
        for actual, expected in zip((rect.left, rect.top, rect.right, rect.bottom), (67, 67, 233, 133)):
            self.assertLessEqual(abs(actual - expected), 10)

    def test_out_of_dictionary_box(self):
        options = GeneratorOptions(box_id=25, pixel_width=300, pixel_height=200)
        with self.assertRaises(MarkerIdError):
            self.generator.generate_image(options)
        with self.assertRaises(MarkerIdError):
            self.generator.generate_svg(options)

    def test_svg(self):
        options = GeneratorOptions(
            box_id=0,
            pixel_width=300,
            pixel_height=200,
            border=AnchorBorder(style=BorderStyle.DASHED, sides=BorderSides.TOP | BorderSides.RIGHT),
            label=AnchorLabel(text="A & B", font="Courier New"),
        )
        svg = self.generator.generate_svg(options)

        self.assertTrue(svg.startswith('<svg width="300" height="219"'))
        self.assertIn('fill="none"', svg)
        self.assertEqual(svg.count("<line "), 2)
        self.assertIn('stroke-dasharray="10,10"', svg)
        self.assertIn("A &amp; B", svg)
        self.assertIn('font-family="Courier New"', svg)
        self.assertIn('translate(5,5)', svg)
        self.assertIn('translate(235,135)', svg)
        self.assertEqual(svg.count('viewBox="0 0 6 6"'), 2)


if __name__ == "__main__":
    unittest.main()
