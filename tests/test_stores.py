import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.stores import MemoryComponentRegistry, MemorySnapshotBackend


class TestMemorySnapshotBackend(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = MemorySnapshotBackend()

    def _put(self, snapshot_id: str, page_id: str) -> dict:
        record = {"id": snapshot_id, "page_id": page_id, "data": {"components": {}}}
        self.backend.put(record)
        return record

    def test_list_by_page_index(self) -> None:
        self._put("s1", "p1")
        self._put("s2", "p2")
        self._put("s3", "p1")
        self.assertEqual([r["id"] for r in self.backend.list_by_page("p1")], ["s1", "s3"])
        self.assertEqual(self.backend.list_by_page("nope"), [])

    def test_records_are_copied(self) -> None:
        record = self._put("s1", "p1")
        record["data"]["components"]["x"] = {}
        listed = self.backend.list_by_page("p1")[0]
        self.assertEqual(listed["data"], {"components": {}})
        listed["data"]["components"]["y"] = {}
        self.assertEqual(self.backend.get("s1")["data"], {"components": {}})

    def test_put_same_id_moves_page(self) -> None:
        self._put("s1", "p1")
        self._put("s1", "p2")
        self.assertEqual(self.backend.list_by_page("p1"), [])
        self.assertEqual([r["id"] for r in self.backend.list_by_page("p2")], ["s1"])

    def test_delete_is_idempotent(self) -> None:
        self._put("s1", "p1")
        self.backend.delete("s1")
        self.backend.delete("s1")
        self.assertIsNone(self.backend.get("s1"))
        self.assertEqual(self.backend.list_by_page("p1"), [])

    def test_put_requires_keys(self) -> None:
        with self.assertRaises(ValueError):
            self.backend.put({"page_id": "p1"})
        with self.assertRaises(ValueError):
            self.backend.put({"id": "s1"})


class TestMemoryComponentRegistry(unittest.TestCase):
    def test_register_and_get(self) -> None:
        registry = MemoryComponentRegistry({"Hero": {"icon": "Star"}})
        registry.register("Pricing", {"icon": "DollarSign", "label": "Pricing table"})
        self.assertEqual(registry.get("Pricing")["icon"], "DollarSign")
        self.assertIsNone(registry.get("Unknown"))
        self.assertEqual(registry.list_types(), ["Hero", "Pricing"])


if __name__ == "__main__":
    unittest.main()
