"""
Marker rendering.

Rasterizes an encoded (bordered) bit matrix into an RGBA pixel buffer using
nearest-neighbour upscaling, and produces an equivalent SVG fragment for
callers composing vector documents.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from marker_codec import MarkerCodec
from options import Color, ConfigurationError

LOGGER = logging.getLogger(__name__)

BORDER_COLOR: Color = (0, 0, 0, 255)
FOREGROUND_COLOR: Color = (255, 255, 255, 255)


def _rgba(color: Color) -> Tuple[int, int, int, int]:
    if len(color) == 3:
        return int(color[0]), int(color[1]), int(color[2]), 255
    return tuple(int(c) for c in color)  # type: ignore[return-value]


def _svg_hex(color: Color) -> str:
    return "#{:02X}{:02X}{:02X}".format(*color[:3])


class MarkerRenderer:
    """Turns bit matrices into marker images."""

    def __init__(
        self,
        codec: Optional[MarkerCodec] = None,
        border_color: Color = BORDER_COLOR,
        foreground_color: Color = FOREGROUND_COLOR,
    ):
        self.codec = codec or MarkerCodec()
        self.border_color = _rgba(border_color)
        self.foreground_color = _rgba(foreground_color)

    def render(self, bits: np.ndarray, side_pixels: int) -> np.ndarray:
        """Render a bordered bit matrix to a ``side_pixels`` square RGBA image.

        Every cell is ``side_pixels // cells`` pixels wide. Pixels left over by
        the floor division stay in the border colour.
        """
        bits = np.asarray(bits)
        if bits.ndim != 2 or bits.shape[0] != bits.shape[1]:
            raise ValueError(f"Bit matrix must be square, got shape {bits.shape}")

        cells = bits.shape[0]
        cell_px = side_pixels // cells
        if cell_px < 1:
            raise ConfigurationError(
                f"Marker of {cells} cells cannot be rendered in {side_pixels} pixels"
            )

        image = np.empty((side_pixels, side_pixels, 4), dtype=np.uint8)
        image[:, :] = self.border_color

        # Upscale the bit matrix, then paint set cells in the foreground colour
        mask = np.kron(bits.astype(bool), np.ones((cell_px, cell_px), dtype=bool))
        extent = cells * cell_px
        image[:extent, :extent][mask] = self.foreground_color
        return image

    def render_marker(self, marker_id: int, side_pixels: int, border_bits: int = 1) -> np.ndarray:
        """Encode and render ``marker_id``."""
        return self.render(self.codec.encode(marker_id, border_bits), side_pixels)

    # ------------------------------------------------------------------ #
    # Vector output
    # ------------------------------------------------------------------ #
    def render_svg(self, bits: np.ndarray, side_pixels: int) -> str:
        """SVG fragment in cell units (``viewBox``) scaled to ``side_pixels``."""
        bits = np.asarray(bits)
        cells = bits.shape[0]
        lines = [
            f'<svg width="{side_pixels}" height="{side_pixels}" '
            f'viewBox="0 0 {cells} {cells}" xmlns="http://www.w3.org/2000/svg">',
            f'  <rect x="0" y="0" width="{cells}" height="{cells}" fill="{_svg_hex(self.border_color)}"/>',
        ]
        for y, x in zip(*np.nonzero(bits)):
            lines.append(
                f'  <rect x="{x}" y="{y}" width="1" height="1" fill="{_svg_hex(self.foreground_color)}"/>'
            )
        lines.append("</svg>")
        return "\n".join(lines)

    def marker_svg(self, marker_id: int, side_pixels: int, border_bits: int = 1) -> str:
        return self.render_svg(self.codec.encode(marker_id, border_bits), side_pixels)
