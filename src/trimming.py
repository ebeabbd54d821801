"""
Content trimming for extracted anchor boxes.

Builds an ink mask, cleans it, keeps the largest ink blobs and crops the box
tightly around them on a white canvas. Used after extraction to strip the
empty margin around handwriting or stamps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import cv2
import numpy as np

from options import ConfigurationError

LOGGER = logging.getLogger(__name__)

TRIM_METHODS = ("heuristic", "adaptive")


@dataclass
class TrimConfiguration:
    """Configuration for ink detection and cropping."""

    method: str = "heuristic"  # 'heuristic' or 'adaptive'

    # Heuristic ink classification (HSV, independent of RGB/BGR order)
    dark_value: int = 30  # V below this is dark ink
    min_saturation: int = 40  # Coloured ink needs at least this saturation
    min_color_value: int = 60  # ...and at least this brightness

    # Adaptive thresholding
    adaptive_block_size: int = 25  # Odd, > 1
    adaptive_c: float = 10.0

    # Mask cleanup
    morphology: bool = True
    kernel_size: int = 3

    # Blob retention
    max_blobs: int = 10
    min_blob_area: int = 8

    padding: int = 10
    corner_strip: int = 6  # Ignore ink in the TL/BR corner squares (marker remnants)

    def __post_init__(self):
        if self.method not in TRIM_METHODS:
            raise ConfigurationError(f"Unknown trim method '{self.method}', expected one of {TRIM_METHODS}")
        if self.adaptive_block_size < 3 or self.adaptive_block_size % 2 == 0:
            raise ConfigurationError("Adaptive block size must be an odd number >= 3")
        if self.kernel_size < 1:
            raise ConfigurationError("Kernel size must be at least 1")
        if self.max_blobs < 1:
            raise ConfigurationError("max_blobs must be at least 1")
        if self.min_blob_area < 0 or self.padding < 0 or self.corner_strip < 0:
            raise ConfigurationError("Blob area, padding and corner strip cannot be negative")

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> TrimConfiguration:
        cfg = dict(config or {})
        return cls(**{k: v for k, v in cfg.items() if k in cls.__dataclass_fields__})


def _as_color(image: np.ndarray) -> np.ndarray:
    """Three-channel copy; alpha is composited onto white."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        color = image[:, :, :3].astype(np.float32)
        return (color * alpha + 255.0 * (1.0 - alpha)).round().astype(np.uint8)
    return image[:, :, :3].copy()


def _white_canvas(height: int, width: int, like: np.ndarray) -> np.ndarray:
    shape = (height, width) if like.ndim == 2 else (height, width, like.shape[2])
    return np.full(shape, 255, dtype=np.uint8)


def filled_area_ratio(image: np.ndarray, brightness_threshold: int = 240) -> float:
    """Fraction of pixels whose channel mean is below ``brightness_threshold``."""
    if image is None or image.size == 0:
        raise ValueError("Image cannot be empty.")
    color = _as_color(image).astype(np.uint16)
    luminance = color.sum(axis=2) // 3
    return float(np.count_nonzero(luminance < brightness_threshold)) / luminance.size


class ContentTrimmer:
    """Tight crop of the ink inside an extracted box."""

    def __init__(self, config: Optional[TrimConfiguration] = None):
        self.config = config or TrimConfiguration()
        LOGGER.debug("ContentTrimmer initialized with method=%s", self.config.method)

    # ------------------------------------------------------------------ #
    # Mask construction
    # ------------------------------------------------------------------ #
    def ink_mask(self, image: np.ndarray) -> np.ndarray:
        """Binary uint8 mask (255 = ink) after cleanup and blob filtering."""
        if image is None or image.size == 0:
            raise ValueError("Image cannot be empty.")

        color = _as_color(image)
        if self.config.method == "adaptive":
            mask = self._adaptive_mask(color)
        else:
            mask = self._heuristic_mask(color)

        strip = self.config.corner_strip
        if strip:
            mask[:strip, :strip] = 0
            mask[-strip:, -strip:] = 0

        if self.config.morphology:
            kernel = cv2.getStructuringElement(
                cv2.MORPH_ELLIPSE, (self.config.kernel_size, self.config.kernel_size)
            )
            mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel, iterations=1)
            mask = cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel, iterations=1)

        return self._keep_largest_blobs(mask)

    def _heuristic_mask(self, color: np.ndarray) -> np.ndarray:
        hsv = cv2.cvtColor(color, cv2.COLOR_BGR2HSV)
        saturation, value = hsv[:, :, 1], hsv[:, :, 2]
        dark = value < self.config.dark_value
        colored = (saturation >= self.config.min_saturation) & (value >= self.config.min_color_value)
        return np.where(dark | colored, 255, 0).astype(np.uint8)

    def _adaptive_mask(self, color: np.ndarray) -> np.ndarray:
        grey = cv2.cvtColor(color, cv2.COLOR_BGR2GRAY)
        return cv2.adaptiveThreshold(
            grey,
            255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY_INV,
            self.config.adaptive_block_size,
            self.config.adaptive_c,
        )

    def _keep_largest_blobs(self, mask: np.ndarray) -> np.ndarray:
        count, labels, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)
        if count <= 1:
            return np.zeros_like(mask)

        areas = stats[1:, cv2.CC_STAT_AREA]
        order = np.argsort(-areas, kind="stable")
        keep = [int(i) + 1 for i in order[: self.config.max_blobs] if areas[i] >= self.config.min_blob_area]
        LOGGER.debug("Ink blobs: %d found, %d kept", count - 1, len(keep))
        return np.where(np.isin(labels, keep), 255, 0).astype(np.uint8)

    # ------------------------------------------------------------------ #
    # Cropping
    # ------------------------------------------------------------------ #
    def trim(self, image: np.ndarray) -> np.ndarray:
        """Crop to the retained ink plus ``padding`` on a white canvas.

        Returns a blank ``(2p + 1)`` square canvas when no ink qualifies.
        """
        mask = self.ink_mask(image)
        pad = self.config.padding

        ys, xs = np.nonzero(mask)
        if ys.size == 0:
            LOGGER.debug("No ink found, returning blank canvas")
            return _white_canvas(2 * pad + 1, 2 * pad + 1, image)

        top, bottom = int(ys.min()), int(ys.max()) + 1
        left, right = int(xs.min()), int(xs.max()) + 1
        tight = image[top:bottom, left:right]

        canvas = _white_canvas(tight.shape[0] + 2 * pad, tight.shape[1] + 2 * pad, image)
        canvas[pad:pad + tight.shape[0], pad:pad + tight.shape[1]] = tight
        return canvas
