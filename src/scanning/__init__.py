"""
Scanning subpackage.

Finds anchor markers in raster images without a vision-library detector and
pairs them into anchor boxes.

Building blocks:
- LuminanceField: grey buffer plus integral image for O(1) rectangle sums
- MarkerScanner: multi-scale sliding-window search with a ring pre-filter
  and per-window two-means thresholding
- PairMatcher: groups hits by id and validates ``2n`` / ``2n + 1`` pairs
"""

from .geometry import Rect, is_plausible_pair
from .luminance import LuminanceField, to_luminance
from .pairing import AnchorBoxPosition, PairMatcher, content_rect
from .scanner import MarkerHit, MarkerScanner, ScanState, two_means_threshold

__all__ = [
    "AnchorBoxPosition",
    "LuminanceField",
    "MarkerHit",
    "MarkerScanner",
    "PairMatcher",
    "Rect",
    "ScanState",
    "content_rect",
    "is_plausible_pair",
    "to_luminance",
    "two_means_threshold",
]
