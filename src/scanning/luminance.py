"""
Luminance field with an integral image for constant-time rectangle sums.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


def to_luminance(image: np.ndarray) -> np.ndarray:
    """Unweighted mean of the three colour channels, truncated to uint8.

    Grey images are returned unchanged; an alpha channel is ignored.
    """
    if image is None or image.size == 0:
        raise ValueError("Image cannot be empty.")
    if image.ndim == 2:
        return image.astype(np.uint8, copy=False)
    if image.ndim != 3 or image.shape[2] < 3:
        raise ValueError(f"Unsupported image shape {image.shape}")
    channels = image[:, :, :3].astype(np.uint16)
    return (channels.sum(axis=2) // 3).astype(np.uint8)


@dataclass
class LuminanceField:
    """Brightness buffer plus its exclusive-prefix integral image.

    ``integral[y, x]`` is the sum of luminance over rows ``< y`` and columns
    ``< x``; the integral therefore has shape ``(H + 1, W + 1)``.
    """

    luminance: np.ndarray
    integral: np.ndarray

    @classmethod
    def from_image(cls, image: np.ndarray) -> LuminanceField:
        luminance = to_luminance(image)
        h, w = luminance.shape
        integral = np.zeros((h + 1, w + 1), dtype=np.int64)
        integral[1:, 1:] = luminance.astype(np.int64).cumsum(axis=0).cumsum(axis=1)
        return cls(luminance=luminance, integral=integral)

    @property
    def width(self) -> int:
        return self.luminance.shape[1]

    @property
    def height(self) -> int:
        return self.luminance.shape[0]

    def rect_sum(self, x0: int, y0: int, x1: int, y1: int) -> int:
        """Sum over ``[x0, x1) x [y0, y1)`` with four reads."""
        ii = self.integral
        return int(ii[y1, x1] - ii[y1, x0] - ii[y0, x1] + ii[y0, x0])

    def rect_sums(self, xs0, ys0, xs1, ys1) -> np.ndarray:
        """Vectorized ``rect_sum`` over broadcastable index arrays."""
        ii = self.integral
        return ii[ys1, xs1] - ii[ys1, xs0] - ii[ys0, xs1] + ii[ys0, xs0]
