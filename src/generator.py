"""
Anchor box generation.

Draws one anchor box: an optional fill, an optional styled border, an
optional label and the two markers that frame it (``2n`` top-left,
``2n + 1`` bottom-right). Markers sit inside the box corners by default, or
outside them when ``outer_markers`` is set.

Raster output is an RGBA array whose untouched pixels are transparent white,
so it can be composited onto a page or scanned as-is. SVG output mirrors the
same layout.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape

import cv2
import numpy as np

from marker_codec import MarkerCodec
from marker_render import MarkerRenderer
from options import (
    AnchorBorder,
    AnchorLabel,
    BorderSides,
    BorderStyle,
    Color,
    ConfigurationError,
    GeneratorOptions,
    LabelPlacement,
    MarkerIdError,
)

LOGGER = logging.getLogger(__name__)

LABEL_PADDING = 5
LABEL_FONT = cv2.FONT_HERSHEY_SIMPLEX
TRANSPARENT = (255, 255, 255, 0)

# (dash, gap) in pixels
DASH_PATTERNS = {
    BorderStyle.DASHED: (10, 10),
    BorderStyle.DOTTED: (2, 6),
}

Point = Tuple[int, int]


def _opaque(color: Color) -> Tuple[int, int, int, int]:
    return int(color[0]), int(color[1]), int(color[2]), 255


def _rgba(color: Color) -> Tuple[int, int, int, int]:
    alpha = int(color[3]) if len(color) == 4 else 255
    return int(color[0]), int(color[1]), int(color[2]), alpha


def _svg_hex(color: Color) -> str:
    return "#{:02X}{:02X}{:02X}".format(*color[:3])


@dataclass(frozen=True)
class BoxLayout:
    """Pixel geometry of a generated anchor box."""

    total_width: int
    total_height: int
    box_x: int
    box_y: int
    box_width: int
    box_height: int
    top_left_marker: Point
    bottom_right_marker: Point
    marker_size: int

    @classmethod
    def from_options(cls, options: GeneratorOptions) -> BoxLayout:
        extra_top = extra_bottom = 0
        if options.label is not None:
            if options.label.placement == LabelPlacement.TOP_OUTSIDE:
                extra_top = options.label.font_size + LABEL_PADDING
            elif options.label.placement == LabelPlacement.BOTTOM_OUTSIDE:
                extra_bottom = options.label.font_size + LABEL_PADDING

        w, h = options.pixel_width, options.pixel_height
        size, pad = options.marker_pixel_size, options.marker_padding

        if options.outer_markers:
            offset = size + pad
            total_w = w + 2 * offset
            total_h = extra_top + h + extra_bottom + 2 * offset
            box_x, box_y = offset, offset + extra_top
            top_left = (pad, pad + extra_top)
            bottom_right = (total_w - size - pad, total_h - size - pad - extra_bottom)
        else:
            if w < size + 2 * pad or h < size + 2 * pad:
                raise ConfigurationError(
                    f"A {size}px marker with {pad}px padding does not fit in a {w}x{h} box"
                )
            total_w = w
            total_h = extra_top + h + extra_bottom
            box_x, box_y = 0, extra_top
            top_left = (pad, extra_top + pad)
            bottom_right = (w - size - pad, extra_top + h - size - pad)

        return cls(total_w, total_h, box_x, box_y, w, h, top_left, bottom_right, size)

    def label_top(self, label: AnchorLabel) -> int:
        """Y coordinate of the top of the label text."""
        placement = label.placement
        if placement == LabelPlacement.TOP_OUTSIDE:
            return self.box_y - label.font_size
        if placement == LabelPlacement.BOTTOM_OUTSIDE:
            return self.box_y + self.box_height + LABEL_PADDING
        if placement == LabelPlacement.TOP_INSIDE:
            return self.box_y + LABEL_PADDING
        return self.box_y + self.box_height - label.font_size - LABEL_PADDING

    def border_segments(self, sides: BorderSides) -> List[Tuple[Point, Point]]:
        """Border lines for the requested sides, kept inside the box."""
        left, top = self.box_x, self.box_y
        right = self.box_x + self.box_width - 1
        bottom = self.box_y + self.box_height - 1
        segments = []
        if sides & BorderSides.TOP:
            segments.append(((left, top), (right, top)))
        if sides & BorderSides.RIGHT:
            segments.append(((right, top), (right, bottom)))
        if sides & BorderSides.BOTTOM:
            segments.append(((left, bottom), (right, bottom)))
        if sides & BorderSides.LEFT:
            segments.append(((left, top), (left, bottom)))
        return segments


def dashed_segments(start: Point, end: Point, dash: int, gap: int) -> List[Tuple[Point, Point]]:
    """Split a line into ``dash``-long pieces separated by ``gap`` pixels."""
    dx, dy = end[0] - start[0], end[1] - start[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return [(start, end)]
    ux, uy = dx / length, dy / length

    pieces = []
    position = 0.0
    while position < length:
        stop = min(position + dash, length)
        p1 = (int(round(start[0] + ux * position)), int(round(start[1] + uy * position)))
        p2 = (int(round(start[0] + ux * stop)), int(round(start[1] + uy * stop)))
        pieces.append((p1, p2))
        position += dash + gap
    return pieces


class AnchorBoxGenerator:
    """Renders anchor boxes as RGBA images or SVG documents."""

    def __init__(self, codec: Optional[MarkerCodec] = None):
        self.codec = codec or MarkerCodec()
        self.renderer = MarkerRenderer(self.codec)

    def _check_markers(self, options: GeneratorOptions):
        dictionary = self.codec.dictionary
        if not dictionary.contains(options.bottom_right_marker_id):
            raise MarkerIdError(
                f"Box id {options.box_id} needs markers {options.top_left_marker_id}/"
                f"{options.bottom_right_marker_id}, but {dictionary.name} has only {len(dictionary)} markers"
            )

    # ------------------------------------------------------------------ #
    # Raster output
    # ------------------------------------------------------------------ #
    def generate_image(self, options: GeneratorOptions) -> np.ndarray:
        """Render the anchor box to an RGBA array."""
        self._check_markers(options)
        layout = BoxLayout.from_options(options)

        image = np.empty((layout.total_height, layout.total_width, 4), dtype=np.uint8)
        image[:, :] = TRANSPARENT

        if options.fill_color is not None:
            image[
                layout.box_y:layout.box_y + layout.box_height,
                layout.box_x:layout.box_x + layout.box_width,
            ] = _rgba(options.fill_color)

        if options.border is not None:
            self._draw_border(image, layout, options.border)

        if options.label is not None and options.label.text:
            self._draw_label(image, layout, options.label)

        for marker_id, (x, y) in (
            (options.top_left_marker_id, layout.top_left_marker),
            (options.bottom_right_marker_id, layout.bottom_right_marker),
        ):
            marker = self.renderer.render_marker(marker_id, layout.marker_size, options.marker_border_bits)
            image[y:y + layout.marker_size, x:x + layout.marker_size] = marker

        LOGGER.debug(
            "Generated box %d: %dx%d px (markers %d/%d)",
            options.box_id,
            layout.total_width,
            layout.total_height,
            options.top_left_marker_id,
            options.bottom_right_marker_id,
        )
        return image

    @staticmethod
    def _draw_border(image: np.ndarray, layout: BoxLayout, border: AnchorBorder):
        color = _opaque(border.color)
        pattern = DASH_PATTERNS.get(border.style)
        for start, end in layout.border_segments(border.sides):
            pieces = [(start, end)] if pattern is None else dashed_segments(start, end, *pattern)
            for p1, p2 in pieces:
                cv2.line(image, p1, p2, color, border.thickness, cv2.LINE_8)

    @staticmethod
    def _draw_label(image: np.ndarray, layout: BoxLayout, label: AnchorLabel):
        thickness = 1
        scale = cv2.getFontScaleFromHeight(LABEL_FONT, label.font_size, thickness)
        (text_w, text_h), _ = cv2.getTextSize(label.text, LABEL_FONT, scale, thickness)
        x = int(round(layout.total_width / 2.0 - text_w / 2.0))
        baseline = layout.label_top(label) + text_h
        cv2.putText(
            image,
            label.text,
            (x, baseline),
            LABEL_FONT,
            scale,
            _opaque(label.color),
            thickness,
            cv2.LINE_AA,
        )

    # ------------------------------------------------------------------ #
    # Vector output
    # ------------------------------------------------------------------ #
    def generate_svg(self, options: GeneratorOptions) -> str:
        """Render the anchor box as a standalone SVG document."""
        self._check_markers(options)
        layout = BoxLayout.from_options(options)
        fill = _svg_hex(options.fill_color) if options.fill_color is not None else "none"

        parts = [
            f'<svg width="{layout.total_width}" height="{layout.total_height}" '
            f'xmlns="http://www.w3.org/2000/svg">',
            f'  <rect x="{layout.box_x}" y="{layout.box_y}" width="{layout.box_width}" '
            f'height="{layout.box_height}" fill="{fill}" stroke="none"/>',
        ]

        border = options.border
        if border is not None and border.sides != BorderSides.NONE:
            pattern = DASH_PATTERNS.get(border.style)
            dash_array = "none" if pattern is None else "{},{}".format(*pattern)
            right = layout.box_x + layout.box_width
            bottom = layout.box_y + layout.box_height
            lines = {
                BorderSides.TOP: (layout.box_x, layout.box_y, right, layout.box_y),
                BorderSides.RIGHT: (right, layout.box_y, right, bottom),
                BorderSides.BOTTOM: (layout.box_x, bottom, right, bottom),
                BorderSides.LEFT: (layout.box_x, layout.box_y, layout.box_x, bottom),
            }
            for side, (x1, y1, x2, y2) in lines.items():
                if border.sides & side:
                    parts.append(
                        f'  <line x1="{x1}" y1="{y1}" x2="{x2}" y2="{y2}" stroke="{_svg_hex(border.color)}" '
                        f'stroke-width="{border.thickness}" stroke-dasharray="{dash_array}" />'
                    )

        label = options.label
        if label is not None and label.text:
            baseline = layout.label_top(label) + label.font_size
            font = escape(label.font, {"\"": "&quot;"})
            parts.append(
                f'  <text x="{layout.total_width / 2:g}" y="{baseline}" text-anchor="middle" '
                f'font-size="{label.font_size}" fill="{_svg_hex(label.color)}" '
                f'font-family="{font}">{escape(label.text)}</text>'
            )

        for marker_id, (x, y) in (
            (options.top_left_marker_id, layout.top_left_marker),
            (options.bottom_right_marker_id, layout.bottom_right_marker),
        ):
            marker = self.renderer.marker_svg(marker_id, layout.marker_size, options.marker_border_bits)
            parts.append(f'  <g transform="translate({x},{y})">')
            parts.extend("    " + line for line in marker.splitlines())
            parts.append("  </g>")

        parts.append("</svg>")
        return "\n".join(parts)
