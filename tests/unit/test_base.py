"""
Unit tests for the StreamSummary base class.
"""

import json
import unittest
from typing import Any, Dict

from tiny_kmv.core.base import StreamSummary


class ItemCounter(StreamSummary[Any, int]):
    """Minimal summary without a dedicated binary layout."""

    def __init__(self, memory_limit_bytes=None):
        super().__init__(memory_limit_bytes)
        self._total = 0

    def update(self, item: Any) -> None:
        super().update(item)
        self._total += 1

    def query(self, *args: Any, **kwargs: Any) -> int:
        return self._total

    def merge(self, other: "ItemCounter") -> "ItemCounter":
        self._check_same_type(other)
        result = ItemCounter()
        result._total = self._total + other._total
        result._items_processed = self._combine_items_processed(other)
        return result

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["total"] = self._total
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemCounter":
        counter = cls(memory_limit_bytes=data.get("memory_limit_bytes"))
        counter._total = data["total"]
        counter._items_processed = data["items_processed"]
        return counter


class TestStreamSummary(unittest.TestCase):
    """Test cases for the shared summary behaviour."""

    def setUp(self):
        self.counter = ItemCounter(memory_limit_bytes=4096)
        for item in ["a", "b", "c"]:
            self.counter.update(item)

    def test_binary_falls_back_to_json(self):
        """Summaries without a binary layout serialize as UTF-8 JSON."""
        raw = self.counter.serialize(format="binary")
        self.assertIsInstance(raw, bytes)
        self.assertEqual(json.loads(raw.decode("utf-8"))["total"], 3)
        self.assertEqual(raw, self.counter.to_bytes())

        restored = ItemCounter.deserialize(raw, format="binary")
        self.assertIsInstance(restored, ItemCounter)
        self.assertEqual(restored.query(), 3)
        self.assertEqual(restored.items_processed, 3)
        self.assertEqual(restored.to_dict(), self.counter.to_dict())

        # A str payload is encoded before decoding
        restored = ItemCounter.deserialize(raw.decode("utf-8"), format="binary")
        self.assertEqual(restored.query(), 3)

    def test_json(self):
        json_str = self.counter.serialize()
        restored = ItemCounter.deserialize(json_str)
        self.assertEqual(restored.query(), 3)
        self.assertEqual(restored.to_dict()["type"], "ItemCounter")

    def test_merge_combines_items_processed(self):
        other = ItemCounter()
        other.update("d")
        merged = self.counter.merge(other)
        self.assertEqual(merged.items_processed, 4)
        self.assertEqual(merged.query(), 4)

        with self.assertRaises(TypeError):
            self.counter.merge("not a summary")

    def test_clear(self):
        self.counter.clear()
        self.assertEqual(self.counter.items_processed, 0)
        self.assertTrue(self.counter.check_memory_limit())


if __name__ == "__main__":
    unittest.main()
