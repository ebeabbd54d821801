"""
Rectangle type and the geometric checks shared by the scanner and the matcher.
"""

from __future__ import annotations

from dataclasses import dataclass

SCALE_TOLERANCE = 0.15


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in pixel coordinates; right/bottom are exclusive."""

    x: int
    y: int
    width: int
    height: int

    @property
    def left(self) -> int:
        return self.x

    @property
    def top(self) -> int:
        return self.y

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @classmethod
    def from_edges(cls, left: int, top: int, right: int, bottom: int) -> Rect:
        return cls(left, top, right - left, bottom - top)

    def contained_in(self, width: int, height: int) -> bool:
        return self.left >= 0 and self.top >= 0 and self.right <= width and self.bottom <= height


def is_plausible_pair(tl: Rect, br: Rect, tolerance: float = SCALE_TOLERANCE) -> bool:
    """True when ``br`` lies strictly below-right of ``tl`` at a similar scale."""
    if br.left <= tl.right or br.top <= tl.bottom:
        return False
    w_ratio = tl.width / max(1, br.width)
    h_ratio = tl.height / max(1, br.height)
    low, high = 1.0 - tolerance, 1.0 + tolerance
    return low < w_ratio < high and low < h_ratio < high
