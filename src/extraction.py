"""
Content extraction.

Turns validated anchor box positions into pixel crops. Crops always come from
the image the caller passes in; the pipeline passes the original (or the
original rotated to the detected angle), never an enhanced working copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from scanning.geometry import Rect
from scanning.pairing import CONTENT_MARGIN, AnchorBoxPosition, content_rect

LOGGER = logging.getLogger(__name__)


@dataclass
class ExtractedBox:
    """Cropped content of one anchor box."""

    box_id: int
    image: np.ndarray
    position: AnchorBoxPosition

    @property
    def rect(self) -> Rect:
        return self.position.rect


class BoxExtractor:
    """Computes content rectangles and crops them out of an image."""

    def __init__(self, margin: int = CONTENT_MARGIN):
        self.margin = margin

    def content_rect(self, tl: Rect, br: Rect) -> Optional[Rect]:
        return content_rect(tl, br, self.margin)

    def crop(self, image: np.ndarray, rect: Rect) -> np.ndarray:
        """Return a copy of ``rect`` from ``image``.

        Raises:
            ValueError: if the image is empty or the rect is not inside it
        """
        if image is None or image.size == 0:
            raise ValueError("Image cannot be empty.")
        h, w = image.shape[:2]
        if not rect.contained_in(w, h):
            raise ValueError(f"Rect {rect} lies outside the {w}x{h} image")
        return image[rect.top:rect.bottom, rect.left:rect.right].copy()

    def crop_all(self, image: np.ndarray, positions: Iterable[AnchorBoxPosition]) -> List[ExtractedBox]:
        boxes = []
        for position in positions:
            boxes.append(ExtractedBox(position.box_id, self.crop(image, position.rect), position))
            LOGGER.debug("Extracted box %d: %s", position.box_id, position.rect)
        return boxes
