"""
Integral-image marker scanner.

Slides square windows of every candidate cell size across a luminance field,
rejects windows with a cheap ring/interior brightness test, samples the
interior payload cells, classifies them with a per-window two-means
threshold and hands the resulting pattern to the codec. Windows whose border
cells do not all classify as dark are dropped before decoding.

Rows of one cell size are scanned by a pool of worker threads. Workers share
two things only:
- a "pair found" event, polled per row and per hit, that stops the scan
- a lock-guarded ``id -> rect`` map of exact hits used to test pair
  plausibility as hits stream in
Only a pair of exact decodes stops the scan. Fuzzy hits are kept for the
matcher but never end the search for the real markers at a larger scale.
Each worker keeps its own hit list; lists are merged once a cell size is done.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from marker_codec import MarkerCodec
from options import DetectionOptions
from scanning.geometry import Rect, is_plausible_pair
from scanning.luminance import LuminanceField

LOGGER = logging.getLogger(__name__)

TWO_MEANS_ITERATIONS = 3
BANDS_PER_WORKER = 4


@dataclass(frozen=True)
class MarkerHit:
    """A decoded marker window."""

    marker_id: int
    rect: Rect  # Always square and inside the scanned image
    cell_size: int
    distance: int = 0  # Hamming distance of the decode (0 = exact)

    @property
    def window_size(self) -> int:
        return self.rect.width


@dataclass(frozen=True)
class WindowGeometry:
    """Per cell-size constants of the sliding window."""

    cell: int
    ring: int  # Width of the quiet-zone ring in pixels
    window: int
    step: int
    centers: np.ndarray  # Centre offsets of every grid cell, border included
    payload: slice  # Grid rows/columns holding payload cells
    border_mask: np.ndarray  # (grid, grid) True on border cells
    patch_radius: int

    @classmethod
    def for_cell(cls, cell: int, payload_size: int, border_bits: int) -> WindowGeometry:
        grid = payload_size + 2 * border_bits
        payload = slice(border_bits, border_bits + payload_size)
        border_mask = np.ones((grid, grid), dtype=bool)
        border_mask[payload, payload] = False
        return cls(
            cell=cell,
            ring=border_bits * cell,
            window=grid * cell,
            step=max(1, cell // 2),
            centers=np.arange(grid, dtype=np.int64) * cell + cell // 2,
            payload=payload,
            border_mask=border_mask,
            patch_radius=max(1, cell // 5),
        )


class ScanState:
    """Synchronisation shared by the scan workers."""

    def __init__(self, scale_tolerance: float):
        self.scale_tolerance = scale_tolerance
        self.pair_found = threading.Event()
        self._lock = threading.Lock()
        self._rect_by_id: Dict[int, Rect] = {}

    @property
    def stopped(self) -> bool:
        return self.pair_found.is_set()

    def record(self, hit: MarkerHit) -> bool:
        """Register a hit; returns True if it completes a plausible exact pair.

        Fuzzy hits are never registered.
        """
        if hit.distance:
            return False
        with self._lock:
            self._rect_by_id[hit.marker_id] = hit.rect
            tl_id = hit.marker_id - hit.marker_id % 2
            tl = self._rect_by_id.get(tl_id)
            br = self._rect_by_id.get(tl_id + 1)
            if tl is None or br is None or not is_plausible_pair(tl, br, self.scale_tolerance):
                return False
        self.pair_found.set()
        return True


def two_means_threshold(samples: np.ndarray, iterations: int = TWO_MEANS_ITERATIONS) -> np.ndarray:
    """Row-wise k-means (k=2) threshold.

    Each row of ``samples`` is split into a low and a high cluster, seeded at
    the row minimum and maximum, for a fixed number of iterations. The
    threshold is the midpoint of the two cluster means, truncated.

    Args:
        samples: (N, K) array of cell sums
        iterations: number of assignment/update rounds (no early stop)

    Returns:
        (N,) int64 thresholds
    """
    values = np.asarray(samples, dtype=np.float64)
    low_mean = values.min(axis=1)
    high_mean = values.max(axis=1)

    for _ in range(iterations):
        is_low = np.abs(values - low_mean[:, None]) <= np.abs(values - high_mean[:, None])
        low_count = is_low.sum(axis=1)
        high_count = values.shape[1] - low_count
        low_sum = np.where(is_low, values, 0.0).sum(axis=1)
        high_sum = np.where(is_low, 0.0, values).sum(axis=1)
        low_mean = np.where(low_count > 0, low_sum / np.maximum(low_count, 1), low_mean)
        high_mean = np.where(high_count > 0, high_sum / np.maximum(high_count, 1), high_mean)

    return np.floor((low_mean + high_mean) * 0.5).astype(np.int64)


class MarkerScanner:
    """Finds dictionary markers in an image without any vision-library detector."""

    def __init__(self, options: Optional[DetectionOptions] = None, codec: Optional[MarkerCodec] = None):
        self.options = options or DetectionOptions()
        self.codec = codec or MarkerCodec(max_hamming_distance=self.options.max_hamming_distance)

        bit_count = self.codec.payload_size ** 2
        self._bit_weights = np.left_shift(1, np.arange(bit_count - 1, -1, -1, dtype=np.int64))
        self._workers = self.options.max_workers or os.cpu_count() or 1

        LOGGER.debug(
            "MarkerScanner initialized: cells=%d..%d, border_bits=%d, workers=%d",
            self.options.min_cell_px,
            self.options.max_cell_px,
            self.options.border_bits,
            self._workers,
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def scan(self, image: Union[np.ndarray, LuminanceField]) -> List[MarkerHit]:
        """Scan all cell sizes, stopping once a plausible pair of exact decodes is seen."""
        field = image if isinstance(image, LuminanceField) else LuminanceField.from_image(image)
        state = ScanState(self.options.scale_tolerance)
        hits: List[MarkerHit] = []

        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            for cell in range(self.options.min_cell_px, self.options.max_cell_px + 1):
                if state.stopped:
                    break

                geometry = WindowGeometry.for_cell(cell, self.codec.payload_size, self.options.border_bits)
                if geometry.window > field.width or geometry.window > field.height:
                    break

                tops = np.arange(0, field.height - geometry.window + 1, geometry.step)
                lefts = np.arange(0, field.width - geometry.window + 1, geometry.step)
                band_count = min(len(tops), self._workers * BANDS_PER_WORKER)
                bands = [band for band in np.array_split(tops, band_count) if len(band)]

                futures = [
                    executor.submit(self._scan_band, field, geometry, band, lefts, state)
                    for band in bands
                ]
                found = 0
                for future in futures:
                    band_hits = future.result()
                    found += len(band_hits)
                    hits.extend(band_hits)

                LOGGER.debug("Cell %dpx (window %dpx): %d hits", cell, geometry.window, found)

        if state.stopped:
            LOGGER.debug("Scan stopped early on a plausible pair (%d hits)", len(hits))
        return hits

    # ------------------------------------------------------------------ #
    # Workers
    # ------------------------------------------------------------------ #
    def _scan_band(
        self,
        field: LuminanceField,
        geometry: WindowGeometry,
        tops: np.ndarray,
        lefts: np.ndarray,
        state: ScanState,
    ) -> List[MarkerHit]:
        local_hits: List[MarkerHit] = []
        for top in tops:
            if state.stopped:
                break
            local_hits.extend(self._scan_row(field, geometry, int(top), lefts, state))
        return local_hits

    def _scan_row(
        self,
        field: LuminanceField,
        geometry: WindowGeometry,
        top: int,
        lefts: np.ndarray,
        state: ScanState,
    ) -> List[MarkerHit]:
        win, t = geometry.window, geometry.ring
        x0, x1 = lefts, lefts + win
        y0, y1 = top, top + win

        # Ring pre-filter: a marker's quiet zone is not brighter than its payload
        ring_sum = (
            field.rect_sums(x0, y0, x1, y0 + t)
            + field.rect_sums(x0, y1 - t, x1, y1)
            + field.rect_sums(x0, y0 + t, x0 + t, y1 - t)
            + field.rect_sums(x1 - t, y0 + t, x1, y1 - t)
        )
        inner_sum = field.rect_sums(x0 + t, y0 + t, x1 - t, y1 - t)
        candidates = lefts[ring_sum <= inner_sum]
        if candidates.size == 0:
            return []

        patterns, dark_border = self._sample_patterns(field, geometry, top, candidates)
        candidates, patterns = candidates[dark_border], patterns[dark_border]
        if candidates.size == 0:
            return []
        ids, distances = self.codec.decode_patterns(patterns)

        row_hits: List[MarkerHit] = []
        next_left = -1
        fuzzy_until = -1
        for left, marker_id, distance in zip(candidates, ids, distances):
            if marker_id < 0 or left < next_left:
                continue
            # A fuzzy hit only shadows fuzzy windows; an exact one may follow
            if distance and left < fuzzy_until:
                continue
            if state.stopped:
                break

            hit = MarkerHit(
                marker_id=int(marker_id),
                rect=Rect(int(left), top, win, win),
                cell_size=geometry.cell,
                distance=int(distance),
            )
            row_hits.append(hit)
            LOGGER.debug("Marker %d at (%d, %d) size %d, distance %d", hit.marker_id, left, top, win, distance)
            state.record(hit)

            # Skip windows overlapping this hit in the same row
            if distance:
                fuzzy_until = int(left) + win
            else:
                next_left = int(left) + win
        return row_hits

    def _sample_patterns(
        self,
        field: LuminanceField,
        geometry: WindowGeometry,
        top: int,
        lefts: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Pack the thresholded payload cells of each window into an integer pattern.

        The threshold comes from the payload cells alone. Returns the patterns
        and a mask of the windows whose border cells all fall below it.
        """
        r = geometry.patch_radius
        n = self.codec.payload_size

        cx = lefts[:, None] + geometry.centers[None, :]  # (N, grid)
        cy = top + geometry.centers  # (grid,)
        cells = field.rect_sums(
            (cx - r)[:, None, :],
            (cy - r)[None, :, None],
            (cx + r + 1)[:, None, :],
            (cy + r + 1)[None, :, None],
        )  # (N, grid, grid)
        sums = cells[:, geometry.payload, geometry.payload].reshape(len(lefts), n * n)

        threshold = two_means_threshold(sums, self.options.two_means_iterations)
        bits = sums >= threshold[:, None]
        dark_border = (cells[:, geometry.border_mask] < threshold[:, None]).all(axis=1)
        return (bits * self._bit_weights).sum(axis=1), dark_border
