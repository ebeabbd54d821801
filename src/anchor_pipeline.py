"""
Anchor box detection pipeline.

Runs scanner, pair matcher and extractor over a sequence of enhancement
stages and stops at the first stage that yields at least one box:

1. the unmodified image
2. a grey, fixed-threshold binarized copy (when a threshold is configured)
3. the binarized copy rotated by each candidate angle (threshold + rotations)
4. the unmodified image rotated by each candidate angle (rotations)

Enhanced copies are only used to find markers. Crops always come from the
original image, rotated by the detection angle when a rotation stage won.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

import cv2
import numpy as np

from extraction import BoxExtractor, ExtractedBox
from marker_codec import MarkerCodec
from options import DetectionOptions
from scanning import AnchorBoxPosition, LuminanceField, MarkerScanner, PairMatcher, to_luminance

LOGGER = logging.getLogger(__name__)

WHITE = 255


class DetectionStage(Enum):
    """Pipeline stage that produced a result."""
    ORIGINAL = "original"
    BINARY = "binary"
    BINARY_ROTATED = "binary_rotated"
    ROTATED = "rotated"
    NONE = "none"


@dataclass
class DetectionResult:
    """Boxes found by the first successful stage.

    ``source`` is the image the box rects refer to: the original image, or the
    original rotated by ``rotation`` degrees clockwise.
    """

    boxes: List[AnchorBoxPosition] = field(default_factory=list)
    stage: DetectionStage = DetectionStage.NONE
    rotation: Optional[float] = None
    source: Optional[np.ndarray] = None

    @property
    def success(self) -> bool:
        return bool(self.boxes)

    @property
    def box_ids(self) -> List[int]:
        return [box.box_id for box in self.boxes]


def binarize(image: np.ndarray, threshold: float) -> np.ndarray:
    """Grey copy of ``image`` with pixels at or above ``threshold * 255`` set to white.

    Grey is the same channel-order independent mean the scanner reads.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Threshold has to be between 0.0 and 1.0, got {threshold}")
    grey = to_luminance(image)
    # THRESH_BINARY keeps values strictly above the cut
    cut = math.ceil(round(threshold * 255.0, 6)) - 1
    _, binary = cv2.threshold(grey, cut, 255, cv2.THRESH_BINARY)
    return binary


def rotate_image(image: np.ndarray, degrees: float, fill: int = WHITE) -> np.ndarray:
    """Rotate clockwise by ``degrees``.

    Quarter turns are exact pixel permutations. Any other angle is resampled
    onto a canvas large enough to hold the whole rotated image, with uncovered
    pixels set to ``fill``.
    """
    image = np.ascontiguousarray(image)
    angle = float(degrees) % 360.0
    if angle == 0.0:
        return image.copy()
    if angle == 90.0:
        return cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE)
    if angle == 180.0:
        return cv2.rotate(image, cv2.ROTATE_180)
    if angle == 270.0:
        return cv2.rotate(image, cv2.ROTATE_90_COUNTERCLOCKWISE)

    h, w = image.shape[:2]
    center = (w / 2.0, h / 2.0)
    # OpenCV angles are counter-clockwise
    matrix = cv2.getRotationMatrix2D(center, -angle, 1.0)
    cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
    new_w = int(math.ceil(h * sin + w * cos))
    new_h = int(math.ceil(h * cos + w * sin))
    matrix[0, 2] += new_w / 2.0 - center[0]
    matrix[1, 2] += new_h / 2.0 - center[1]

    channels = 1 if image.ndim == 2 else image.shape[2]
    return cv2.warpAffine(
        image,
        matrix,
        (new_w, new_h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(fill,) * min(channels, 4),
    )


class DetectionPipeline:
    """Staged anchor box detection."""

    def __init__(self, options: Optional[Union[DetectionOptions, Dict]] = None):
        if isinstance(options, dict):
            options = DetectionOptions.from_config(options)
        self.options = options or DetectionOptions()

        codec = MarkerCodec(max_hamming_distance=self.options.max_hamming_distance)
        self.scanner = MarkerScanner(self.options, codec)
        self.matcher = PairMatcher(self.options.margin, self.options.scale_tolerance)
        self.extractor = BoxExtractor(self.options.margin)

        LOGGER.info(
            "DetectionPipeline initialized: cells=%d..%d, threshold=%s, rotations=%s",
            self.options.min_cell_px,
            self.options.max_cell_px,
            self.options.binary_threshold,
            list(self.options.rotations),
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def find_positions(self, image: np.ndarray) -> List[AnchorBoxPosition]:
        """Single detection pass on ``image`` as given, no enhancement."""
        luminance = LuminanceField.from_image(image)
        hits = self.scanner.scan(luminance)
        return self.matcher.match(hits)

    def locate(self, image: np.ndarray) -> DetectionResult:
        """Run the stages in order and return the first non-empty result."""
        if image is None or image.size == 0:
            raise ValueError("Image cannot be empty.")

        boxes = self.find_positions(image)
        if boxes:
            return self._success(DetectionStage.ORIGINAL, boxes, image)

        threshold = self.options.binary_threshold
        rotations = self.options.rotations

        if threshold is not None:
            binary = binarize(image, threshold)
            boxes = self.find_positions(binary)
            if boxes:
                return self._success(DetectionStage.BINARY, boxes, image)

            result = self._try_rotations(binary, image, DetectionStage.BINARY_ROTATED)
            if result is not None:
                return result

        result = self._try_rotations(image, image, DetectionStage.ROTATED)
        if result is not None:
            return result

        LOGGER.info("No anchor boxes found after %d rotation(s)", len(rotations))
        return DetectionResult()

    def extract(self, image: np.ndarray) -> List[ExtractedBox]:
        """Locate boxes and crop their content."""
        result = self.locate(image)
        if not result.success:
            return []
        return self.extractor.crop_all(result.source, result.boxes)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _try_rotations(
        self,
        working: np.ndarray,
        original: np.ndarray,
        stage: DetectionStage,
    ) -> Optional[DetectionResult]:
        for angle in self.options.rotations:
            rotated = rotate_image(working, angle)
            boxes = self.find_positions(rotated)
            if not boxes:
                LOGGER.debug("Stage %s: nothing at %.1f degrees", stage.value, angle)
                continue
            source = rotated if working is original else rotate_image(original, angle)
            return self._success(stage, boxes, source, angle)
        return None

    @staticmethod
    def _success(
        stage: DetectionStage,
        boxes: List[AnchorBoxPosition],
        source: np.ndarray,
        rotation: Optional[float] = None,
    ) -> DetectionResult:
        LOGGER.info(
            "Stage %s found %d box(es): %s",
            stage.value,
            len(boxes),
            [box.box_id for box in boxes],
        )
        return DetectionResult(boxes=boxes, stage=stage, rotation=rotation, source=source)
