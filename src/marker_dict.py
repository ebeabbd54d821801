"""
Marker dictionary.

A fixed table of 4x4 binary codewords, one per marker identifier. Each
codeword is stored as a 16-bit integer in row-major order, most significant
bit first (bit 15 = row 0, column 0). A set bit is rendered as a white cell.

The table is process-wide, read-only data. Rotated variants of the patterns
are derived once and cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

import numpy as np

from options import MarkerIdError


@dataclass(frozen=True)
class MarkerDictionary:
    """Immutable, ordered table of codewords (identifier = index)."""

    name: str
    payload_size: int
    codewords: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.codewords)

    @property
    def bit_count(self) -> int:
        return self.payload_size * self.payload_size

    def contains(self, marker_id: int) -> bool:
        return 0 <= marker_id < len(self.codewords)

    def codeword(self, marker_id: int) -> int:
        """Return the packed codeword for ``marker_id``."""
        if not self.contains(marker_id):
            raise MarkerIdError(
                f"Marker id must be between 0 and {len(self.codewords) - 1} for {self.name}, got {marker_id}"
            )
        return self.codewords[marker_id]

    def bits(self, marker_id: int) -> np.ndarray:
        """Return the payload of ``marker_id`` as a fresh n x n uint8 matrix."""
        return unpack_bits(self.codeword(marker_id), self.payload_size)

    def rotated_patterns(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """All (codeword x rotation) patterns, id-major then 0/90/180/270 degrees clockwise.

        Returns:
            (patterns, ids, quarter_turns) as read-only 1-D arrays
        """
        return _rotated_patterns(self)


def pack_bits(bits: np.ndarray) -> int:
    """Pack an n x n 0/1 matrix into an integer (row-major, MSB first)."""
    value = 0
    for bit in np.asarray(bits).reshape(-1):
        value = (value << 1) | (1 if bit else 0)
    return value


def unpack_bits(pattern: int, size: int = 4) -> np.ndarray:
    """Unpack an integer pattern into a size x size uint8 matrix."""
    count = size * size
    flat = [(pattern >> (count - 1 - i)) & 1 for i in range(count)]
    return np.array(flat, dtype=np.uint8).reshape(size, size)


def rotate_pattern(pattern: int, quarter_turns: int, size: int = 4) -> int:
    """Rotate a packed pattern clockwise by ``quarter_turns`` x 90 degrees."""
    return pack_bits(np.rot90(unpack_bits(pattern, size), k=-(quarter_turns % 4)))


@lru_cache(maxsize=None)
def _rotated_patterns(dictionary: MarkerDictionary) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    patterns, ids, turns = [], [], []
    for marker_id, codeword in enumerate(dictionary.codewords):
        for quarter_turns in range(4):
            patterns.append(rotate_pattern(codeword, quarter_turns, dictionary.payload_size))
            ids.append(marker_id)
            turns.append(quarter_turns)
    arrays = (
        np.array(patterns, dtype=np.int64),
        np.array(ids, dtype=np.int64),
        np.array(turns, dtype=np.int64),
    )
    for arr in arrays:
        arr.setflags(write=False)
    return arrays


DICT_4X4_50 = MarkerDictionary(
    name="DICT_4X4_50",
    payload_size=4,
    codewords=(
        0x12BC, 0x3DC1, 0xC31E, 0xEC83, 0xA967, 0x56C8, 0x8E3A, 0x61C5,
        0x97B6, 0x6E49, 0x49DB, 0xB246, 0xDA31, 0x25CE, 0x4EC3, 0xD13C,
        0xF324, 0x0CDB, 0x38E1, 0xC71E, 0xE49C, 0x1B63, 0x6379, 0x9C86,
        0x84F3, 0x7B0C, 0xA1D2, 0x5E2D, 0x2F54, 0xD0AB, 0xF46B, 0x0B94,
        0x31E8, 0xCE17, 0xB50C, 0x4AF3, 0x69D7, 0x9638, 0xAD25, 0x52DA,
        0x7E1A, 0x81E5, 0xC8B7, 0x3728, 0x48CC, 0xB733, 0x93F3, 0x6C0C,
        0x0AF2, 0xF50D,
    ),
)


def get_dictionary() -> MarkerDictionary:
    """Return the default marker dictionary."""
    return DICT_4X4_50
