"""
Unit tests for KMV sketch serialization.
"""

import json
import struct
import unittest

from tiny_kmv.algorithms.kmv import DEFAULT_CAPACITY, KMinValues

LOGGER_NAME = "tiny_kmv.algorithms.kmv"


class TestKMinValuesCodec(unittest.TestCase):
    """Test cases for the binary and dictionary codecs."""

    def setUp(self):
        self.kmv = KMinValues(capacity=4)
        for h in [100, 50, 200, 10]:
            self.kmv.update(h)

    def test_byte_layout(self):
        """Capacity header then hashes, all big-endian u64, in stored order."""
        raw = self.kmv.to_bytes()
        self.assertEqual(len(raw), 8 + 8 * 4)
        self.assertEqual(raw[:8], (4).to_bytes(8, "big"))
        self.assertEqual(
            raw[8:],
            b"".join(h.to_bytes(8, "big") for h in [200, 100, 50, 10]),
        )

        # Empty sketch is just the header
        self.assertEqual(KMinValues(capacity=7).to_bytes(), struct.pack(">Q", 7))

    def test_round_trip(self):
        """Decoding reproduces capacity and the exact value sequence."""
        decoded = KMinValues.from_bytes(self.kmv.to_bytes())
        self.assertEqual(decoded.capacity, 4)
        self.assertEqual(decoded.values, [200, 100, 50, 10])
        self.assertEqual(decoded.cardinality(), self.kmv.cardinality())

        # Large hashes survive as unsigned values
        big = KMinValues(capacity=3)
        big.add_hash(2**64 - 1)
        big.add_hash(2**63)
        decoded = KMinValues.from_bytes(big.to_bytes())
        self.assertEqual(decoded.values, [2**64 - 1, 2**63])

    def test_serialize_binary(self):
        """serialize/deserialize with the binary format use the same layout."""
        raw = self.kmv.serialize(format="binary")
        self.assertEqual(raw, self.kmv.to_bytes())

        decoded = KMinValues.deserialize(raw, format="binary")
        self.assertEqual(decoded.capacity, 4)
        self.assertEqual(decoded.values, self.kmv.values)

    def test_decode_empty(self):
        """Empty input yields an empty default-capacity sketch."""
        decoded = KMinValues.from_bytes(b"")
        self.assertEqual(decoded.capacity, DEFAULT_CAPACITY)
        self.assertEqual(len(decoded), 0)

        decoded = KMinValues.from_bytes(b"", default_capacity=32)
        self.assertEqual(decoded.capacity, 32)

    def test_decode_short_header(self):
        """A header shorter than 8 bytes falls back and logs a warning."""
        with self.assertLogs(LOGGER_NAME, level="WARNING") as logs:
            decoded = KMinValues.from_bytes(b"\x00\x01\x02")
        self.assertEqual(decoded.capacity, DEFAULT_CAPACITY)
        self.assertEqual(len(decoded), 0)
        self.assertIn("capacity header", logs.output[0])

    def test_decode_truncated_hash(self):
        """A partial trailing hash falls back and logs a warning."""
        raw = self.kmv.to_bytes()[:-3]
        with self.assertLogs(LOGGER_NAME, level="WARNING") as logs:
            decoded = KMinValues.from_bytes(raw, default_capacity=16)
        self.assertEqual(decoded.capacity, 16)
        self.assertEqual(len(decoded), 0)
        self.assertIn("truncated", logs.output[0])

    def test_decode_zero_capacity(self):
        """A zero capacity header falls back and logs a warning."""
        with self.assertLogs(LOGGER_NAME, level="WARNING"):
            decoded = KMinValues.from_bytes(struct.pack(">QQ", 0, 5))
        self.assertEqual(decoded.capacity, DEFAULT_CAPACITY)
        self.assertEqual(len(decoded), 0)

    def test_decode_trusts_payload(self):
        """Stored hashes are taken verbatim, without re-sorting."""
        raw = struct.pack(">4Q", 8, 1, 3, 2)
        decoded = KMinValues.from_bytes(raw)
        self.assertEqual(decoded.capacity, 8)
        self.assertEqual(decoded.values, [1, 3, 2])

    def test_to_dict(self):
        """Test dictionary serialization."""
        data = self.kmv.to_dict()
        self.assertEqual(data["type"], "KMinValues")
        self.assertEqual(data["capacity"], 4)
        self.assertEqual(data["values"], [200, 100, 50, 10])
        self.assertEqual(data["items_processed"], 4)

        restored = KMinValues.from_dict(data)
        self.assertEqual(restored.capacity, 4)
        self.assertEqual(restored.values, self.kmv.values)
        self.assertEqual(restored.items_processed, 4)

    def test_json(self):
        """Test JSON serialization."""
        json_str = self.kmv.serialize(format="json")
        self.assertEqual(json.loads(json_str)["capacity"], 4)

        restored = KMinValues.deserialize(json_str, format="json")
        self.assertEqual(restored.values, self.kmv.values)
        self.assertEqual(restored.cardinality(), self.kmv.cardinality())

    def test_unsupported_format(self):
        with self.assertRaises(ValueError):
            self.kmv.serialize(format="xml")
        with self.assertRaises(ValueError):
            KMinValues.deserialize(b"", format="xml")


if __name__ == "__main__":
    unittest.main()
