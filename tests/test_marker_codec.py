"""
Tests for the marker dictionary and codec.
"""

import os
import sys
import unittest

import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from marker_codec import MarkerCodec, popcount, strip_border  # type: ignore
from marker_dict import DICT_4X4_50, pack_bits, rotate_pattern, unpack_bits  # type: ignore
from options import ConfigurationError, MarkerIdError  # type: ignore


def flip(bits: np.ndarray, *indices: int) -> np.ndarray:
    """Copy of a payload with the given row-major cells inverted."""
    flipped = bits.copy().reshape(-1)
    for index in indices:
        flipped[index] ^= 1
    return flipped.reshape(bits.shape)


class TestMarkerDictionary(unittest.TestCase):
    """Dictionary layout and separation."""

    def test_size_and_payload(self):
        self.assertEqual(len(DICT_4X4_50), 50)
        self.assertEqual(DICT_4X4_50.payload_size, 4)
        self.assertEqual(DICT_4X4_50.bit_count, 16)

    def test_pack_unpack_msb_first(self):
        bits = unpack_bits(0x8001)
        self.assertEqual(bits[0, 0], 1)
        self.assertEqual(bits[3, 3], 1)
        self.assertEqual(int(bits.sum()), 2)
        self.assertEqual(pack_bits(bits), 0x8001)

    def test_rotate_pattern_clockwise(self):
        # Top-left cell moves to the top-right corner after one clockwise turn
        self.assertEqual(rotate_pattern(0x8000, 1), 0x1000)
        self.assertEqual(rotate_pattern(0x8000, 4), 0x8000)

    def test_rotated_patterns_are_unique(self):
        """No two (id, rotation) combinations share a pattern."""
        patterns, ids, turns = DICT_4X4_50.rotated_patterns()
        self.assertEqual(len(patterns), 200)
        self.assertEqual(len(set(patterns.tolist())), 200)
        self.assertEqual(ids[4], 1)
        self.assertEqual(turns[5], 1)

    def test_bits_returns_fresh_array(self):
        bits = DICT_4X4_50.bits(3)
        bits[:] = 0
        self.assertEqual(pack_bits(DICT_4X4_50.bits(3)), DICT_4X4_50.codewords[3])

    def test_out_of_range_id(self):
        with self.assertRaises(MarkerIdError):
            DICT_4X4_50.codeword(50)
        with self.assertRaises(MarkerIdError):
            DICT_4X4_50.bits(-1)


class TestMarkerCodec(unittest.TestCase):
    """Encoding, exact and fuzzy decoding."""

    def setUp(self):
        self.codec = MarkerCodec()

    def test_encode_adds_zero_border(self):
        encoded = self.codec.encode(7, border_bits=2)
        self.assertEqual(encoded.shape, (8, 8))
        self.assertEqual(int(encoded[:2].sum() + encoded[-2:].sum()), 0)
        self.assertEqual(int(encoded[:, :2].sum() + encoded[:, -2:].sum()), 0)
        np.testing.assert_array_equal(strip_border(encoded, 2), DICT_4X4_50.bits(7))

    def test_encode_invalid_id(self):
        with self.assertRaises(MarkerIdError):
            self.codec.encode(50)
        with self.assertRaises(ConfigurationError):
            self.codec.encode(0, border_bits=-1)

    def test_round_trip_all_rotations(self):
        for marker_id in range(len(DICT_4X4_50)):
            payload = strip_border(self.codec.encode(marker_id), 1)
            for k in range(4):
                with self.subTest(marker_id=marker_id, k=k):
                    self.assertEqual(self.codec.decode(np.rot90(payload, k)), marker_id)

    def test_decode_reports_rotation(self):
        payload = DICT_4X4_50.bits(12)
        result = self.codec.decode_with_details(np.rot90(payload, k=-1))
        self.assertEqual(result.marker_id, 12)
        self.assertEqual(result.quarter_turns, 1)
        self.assertEqual(result.distance, 0)

    def test_fuzzy_decode_within_tolerance(self):
        payload = DICT_4X4_50.bits(10)

        one_flip = self.codec.decode_with_details(flip(payload, 0))
        self.assertEqual(one_flip.marker_id, 10)
        self.assertEqual(one_flip.distance, 1)

        two_flips = self.codec.decode_with_details(flip(payload, 0, 1))
        self.assertEqual(two_flips.marker_id, 10)
        self.assertEqual(two_flips.distance, 2)

        self.assertEqual(self.codec.decode(flip(DICT_4X4_50.bits(33), 0, 7)), 33)

    def test_exact_only_codec_rejects_flips(self):
        strict = MarkerCodec(max_hamming_distance=0)
        self.assertIsNone(strict.decode(flip(DICT_4X4_50.bits(10), 0)))
        self.assertEqual(strict.decode(DICT_4X4_50.bits(10)), 10)

    def test_uniform_patterns_do_not_decode(self):
        self.assertIsNone(self.codec.decode(np.zeros((4, 4), dtype=np.uint8)))
        self.assertIsNone(self.codec.decode(np.ones((4, 4), dtype=np.uint8)))

    def test_decode_patterns_vectorized(self):
        patterns = np.array([DICT_4X4_50.codewords[5], 0x0000, rotate_pattern(DICT_4X4_50.codewords[9], 2)])
        ids, distances = self.codec.decode_patterns(patterns)
        self.assertEqual(ids.tolist(), [5, -1, 9])
        self.assertEqual(distances[0], 0)
        self.assertEqual(distances[2], 0)

    def test_decode_wrong_shape(self):
        with self.assertRaises(ValueError):
            self.codec.decode(np.zeros((6, 6), dtype=np.uint8))

    def test_negative_tolerance(self):
        with self.assertRaises(ConfigurationError):
            MarkerCodec(max_hamming_distance=-1)

    def test_popcount(self):
        values = np.array([0, 1, 0xFFFF, 0x1_0001, 0b1011])
        self.assertEqual(popcount(values).tolist(), [0, 1, 16, 2, 3])


if __name__ == "__main__":
    unittest.main()
