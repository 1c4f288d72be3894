import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from studiokit.document_hash import document_content, document_hash


def _page(title: str = "Welcome") -> dict:
    return {
        "version": "1.0",
        "root": {"id": "root", "type": "Root", "props": {"title": "Home"}, "children": ["hero"]},
        "components": {
            "hero": {"id": "hero", "type": "Hero", "props": {"title": title}, "children": [], "parentId": None},
        },
        "zones": {},
    }


class TestDocumentHash(unittest.TestCase):
    def test_key_order_does_not_matter(self) -> None:
        page = _page()
        reordered = {key: page[key] for key in reversed(list(page))}
        self.assertEqual(document_hash(page), document_hash(reordered))

    def test_version_and_zones_are_not_content(self) -> None:
        page = _page()
        other = _page()
        other["version"] = "2.0"
        other["zones"] = {"header": []}
        self.assertEqual(document_hash(page), document_hash(other))
        self.assertEqual(set(document_content(other)), {"root", "components"})

    def test_prop_change_changes_hash(self) -> None:
        self.assertNotEqual(document_hash(_page("Welcome")), document_hash(_page("Hello")))

    def test_child_order_changes_hash(self) -> None:
        page = _page()
        page["root"]["children"] = ["hero", "footer"]
        other = _page()
        other["root"]["children"] = ["footer", "hero"]
        self.assertNotEqual(document_hash(page), document_hash(other))

    def test_hash_format(self) -> None:
        h = document_hash(_page())
        self.assertTrue(h.startswith("sha256:"))
        self.assertEqual(len(h), len("sha256:") + 64)

    def test_rejects_non_documents(self) -> None:
        with self.assertRaises(ValueError):
            document_hash(["not", "a", "page"])
        page = _page()
        page["components"]["hero"]["props"]["ratio"] = float("inf")
        with self.assertRaises(ValueError):
            document_hash(page)


if __name__ == "__main__":
    unittest.main()
