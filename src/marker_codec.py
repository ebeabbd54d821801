"""
Marker codec.

Encodes a marker identifier into a bordered bit matrix and decodes observed
bit patterns back to identifiers. Decoding is rotation invariant: the observed
pattern is compared against every codeword at all four quarter-turn rotations.

Matching policy:
- an exact match against any rotation is always accepted
- otherwise the (codeword x rotation) with the smallest Hamming distance wins,
  provided the distance is within ``max_hamming_distance``
- ties go to the lowest identifier (then the smallest rotation)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from marker_dict import MarkerDictionary, get_dictionary, pack_bits
from options import ConfigurationError

LOGGER = logging.getLogger(__name__)

MAX_HAMMING_DISTANCE = 2

# Bit counts for every 16-bit value, used for vectorized Hamming distances
POPCOUNT_16 = np.unpackbits(
    np.arange(1 << 16, dtype=">u2").view(np.uint8).reshape(-1, 2), axis=1
).sum(axis=1).astype(np.int64)


def popcount(values: np.ndarray) -> np.ndarray:
    """Element-wise number of set bits of a non-negative integer array."""
    remaining = np.asarray(values, dtype=np.int64).copy()
    counts = np.zeros(remaining.shape, dtype=np.int64)
    while remaining.any():
        counts += POPCOUNT_16[remaining & 0xFFFF]
        remaining >>= 16
    return counts


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of a successful decode."""

    marker_id: int
    quarter_turns: int  # Clockwise rotation of the reference codeword that matched
    distance: int  # Hamming distance to that rotation (0 = exact)


def strip_border(bits: np.ndarray, border_bits: int) -> np.ndarray:
    """Remove ``border_bits`` rings of cells from a bordered matrix."""
    if border_bits <= 0:
        return np.asarray(bits)
    return np.asarray(bits)[border_bits:-border_bits, border_bits:-border_bits]


class MarkerCodec:
    """Encode identifiers to bit matrices and decode observed matrices."""

    def __init__(
        self,
        dictionary: Optional[MarkerDictionary] = None,
        max_hamming_distance: int = MAX_HAMMING_DISTANCE,
    ):
        if max_hamming_distance < 0:
            raise ConfigurationError("Hamming tolerance cannot be negative")

        self.dictionary = dictionary or get_dictionary()
        self.max_hamming_distance = max_hamming_distance
        self._patterns, self._ids, self._turns = self.dictionary.rotated_patterns()

    @property
    def payload_size(self) -> int:
        return self.dictionary.payload_size

    # ------------------------------------------------------------------ #
    # Encoding
    # ------------------------------------------------------------------ #
    def encode(self, marker_id: int, border_bits: int = 1) -> np.ndarray:
        """Return the payload of ``marker_id`` wrapped in ``border_bits`` rings of 0-cells."""
        if border_bits < 0:
            raise ConfigurationError("Border bits cannot be negative")
        payload = self.dictionary.bits(marker_id)
        return np.pad(payload, border_bits, mode="constant", constant_values=0)

    # ------------------------------------------------------------------ #
    # Decoding
    # ------------------------------------------------------------------ #
    def decode(self, bits: np.ndarray) -> Optional[int]:
        """Return the identifier for an observed n x n payload, or None."""
        result = self.decode_with_details(bits)
        return result.marker_id if result is not None else None

    def decode_with_details(self, bits: np.ndarray) -> Optional[DecodeResult]:
        bits = np.asarray(bits)
        n = self.payload_size
        if bits.shape != (n, n):
            raise ValueError(f"Expected a {n}x{n} bit matrix, got shape {bits.shape}")
        return self.decode_pattern(pack_bits(bits))

    def decode_pattern(self, pattern: int) -> Optional[DecodeResult]:
        """Decode a single packed pattern."""
        ids, distances, turns = self._match(np.array([pattern], dtype=np.int64))
        if ids[0] < 0:
            return None
        return DecodeResult(int(ids[0]), int(turns[0]), int(distances[0]))

    def decode_patterns(self, patterns: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized decode of packed patterns.

        Returns:
            (ids, distances): ``-1`` marks patterns with no match in tolerance
        """
        ids, distances, _ = self._match(np.asarray(patterns, dtype=np.int64))
        return ids, distances

    def _match(self, patterns: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        if patterns.size == 0:
            empty = np.empty(0, dtype=np.int64)
            return empty, empty, empty

        distances = popcount(patterns[:, None] ^ self._patterns[None, :])
        # argmin picks the first minimum, i.e. the lowest id on ties
        best = np.argmin(distances, axis=1)
        best_distance = distances[np.arange(len(patterns)), best]
        accepted = best_distance <= self.max_hamming_distance

        ids = np.where(accepted, self._ids[best], -1)
        turns = np.where(accepted, self._turns[best], -1)
        return ids, best_distance, turns
