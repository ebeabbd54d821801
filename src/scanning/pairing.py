"""
Pairing of scanner hits into anchor boxes.

Box ``n`` is framed by marker ``2n`` at its top-left corner and marker
``2n + 1`` at its bottom-right corner. A box is only produced when both
markers were seen, they form a plausible pair, at least one of them decoded
exactly and the gap between them leaves a content rectangle of positive size.
Two fuzzy decodes alone are never trusted: near-miss patterns are common
enough to pair up by chance.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from scanning.geometry import SCALE_TOLERANCE, Rect, is_plausible_pair
from scanning.scanner import MarkerHit

LOGGER = logging.getLogger(__name__)

CONTENT_MARGIN = 2


@dataclass(frozen=True)
class AnchorBoxPosition:
    """Validated content rectangle of one anchor box."""

    box_id: int
    rect: Rect  # Strictly positive width and height
    top_left: Optional[MarkerHit] = None
    bottom_right: Optional[MarkerHit] = None


def content_rect(tl: Rect, br: Rect, margin: int = CONTENT_MARGIN) -> Optional[Rect]:
    """Area strictly between two marker rects, shrunk by ``margin`` on every side.

    Returns None when the result would have no area.
    """
    left = tl.right + margin
    top = tl.bottom + margin
    right = br.left - margin
    bottom = br.top - margin
    if right <= left or bottom <= top:
        return None
    return Rect.from_edges(left, top, right, bottom)


class PairMatcher:
    """Groups hits by identifier and pairs ``2n`` with ``2n + 1``."""

    def __init__(self, margin: int = CONTENT_MARGIN, scale_tolerance: float = SCALE_TOLERANCE):
        self.margin = margin
        self.scale_tolerance = scale_tolerance

    @staticmethod
    def group(hits: Iterable[MarkerHit]) -> Dict[int, List[MarkerHit]]:
        """Hits per marker id, in the order they were recorded."""
        grouped: Dict[int, List[MarkerHit]] = defaultdict(list)
        for hit in hits:
            grouped[hit.marker_id].append(hit)
        return dict(grouped)

    def match(self, hits: Iterable[MarkerHit]) -> List[AnchorBoxPosition]:
        """Build one position per box whose two markers pair up, sorted by box id."""
        grouped = self.group(hits)
        positions: List[AnchorBoxPosition] = []

        for marker_id in sorted(grouped):
            if marker_id % 2:
                continue
            partners = grouped.get(marker_id + 1)
            if not partners:
                LOGGER.debug("Marker %d has no partner %d", marker_id, marker_id + 1)
                continue

            position = self._best_position(marker_id // 2, grouped[marker_id], partners)
            if position is not None:
                positions.append(position)

        return positions

    def _best_position(
        self,
        box_id: int,
        top_lefts: List[MarkerHit],
        bottom_rights: List[MarkerHit],
    ) -> Optional[AnchorBoxPosition]:
        best: Optional[Tuple[Tuple[int, int, int], AnchorBoxPosition]] = None

        for i, tl in enumerate(top_lefts):
            for j, br in enumerate(bottom_rights):
                if tl.distance and br.distance:
                    continue
                if not is_plausible_pair(tl.rect, br.rect, self.scale_tolerance):
                    continue
                rect = content_rect(tl.rect, br.rect, self.margin)
                if rect is None:
                    LOGGER.debug("Box %d: pair leaves no content area, dropped", box_id)
                    continue

                # Lowest combined decode distance, then earliest recorded
                rank = (tl.distance + br.distance, i, j)
                if best is None or rank < best[0]:
                    best = (rank, AnchorBoxPosition(box_id, rect, tl, br))

        if best is None:
            LOGGER.debug("Box %d: no plausible marker pair", box_id)
            return None
        return best[1]
