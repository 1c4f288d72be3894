import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from component_labels import get_component_label
from layer_tree import build_layer_tree, count_layers, filter_layers, find_layer, flatten_layer_tree


def _scenario_document() -> dict:
    return {
        "root": {"id": "root", "children": ["a"]},
        "components": {
            "a": {"id": "a", "type": "Hero", "props": {"title": "Welcome"}, "children": ["b"]},
            "b": {"id": "b", "type": "Button", "props": {"text": "Click me"}, "children": []},
        },
    }


def _three_level_document() -> dict:
    return {
        "root": {"id": "root", "children": ["page", "aside"]},
        "components": {
            "page": {"id": "page", "type": "Section", "props": {}, "children": ["row", "other"]},
            "row": {"id": "row", "type": "Columns", "props": {}, "children": ["signup"], "parentId": "page"},
            "signup": {"id": "signup", "type": "Newsletter", "props": {"title": "Join us"}, "children": [], "parentId": "row"},
            "other": {"id": "other", "type": "Text", "props": {"text": "Lorem"}, "children": [], "parentId": "page"},
            "aside": {"id": "aside", "type": "Card", "props": {"title": "Sidebar"}, "children": ["note"]},
            "note": {"id": "note", "type": "Quote", "props": {"text": "Quoted"}, "children": [], "parentId": "aside"},
        },
    }


class TestBuildLayerTree(unittest.TestCase):
    def test_hero_button_scenario(self) -> None:
        doc = _scenario_document()
        self.assertEqual(get_component_label(doc["components"]["a"]), "Welcome")
        self.assertEqual(get_component_label(doc["components"]["b"]), "Click me")
        tree = build_layer_tree(doc)
        self.assertEqual(len(tree), 1)
        top = tree[0]
        self.assertEqual((top["id"], top["label"], top["icon"], top["depth"]), ("a", "Welcome", "Star", 0))
        self.assertTrue(top["has_children"])
        self.assertIsNone(top["parent_id"])
        self.assertEqual(len(top["children"]), 1)
        child = top["children"][0]
        self.assertEqual((child["id"], child["label"], child["depth"], child["parent_id"]), ("b", "Click me", 1, "a"))
        self.assertFalse(child["has_children"])

    def test_selection_and_expansion_flags(self) -> None:
        tree = build_layer_tree(_scenario_document(), selected_id="b", expanded_ids={"a"})
        self.assertTrue(tree[0]["is_expanded"])
        self.assertFalse(tree[0]["is_selected"])
        self.assertTrue(tree[0]["children"][0]["is_selected"])

    def test_locked_hidden_flags(self) -> None:
        doc = _scenario_document()
        doc["components"]["b"]["locked"] = True
        doc["components"]["b"]["hidden"] = True
        child = build_layer_tree(doc)[0]["children"][0]
        self.assertTrue(child["is_locked"])
        self.assertTrue(child["is_hidden"])

    def test_dangling_reference_keeps_healthy_nodes(self) -> None:
        doc = _three_level_document()
        doc["components"]["row"]["children"].insert(0, "ghost")
        doc["root"]["children"].append("missing-top")
        with self.assertLogs("studio.layers", level="WARNING"):
            tree = build_layer_tree(doc)
        self.assertEqual(count_layers(tree), 6)
        self.assertIsNotNone(find_layer(tree, "signup"))
        self.assertIsNone(find_layer(tree, "ghost"))

    def test_cycle_does_not_recurse_forever(self) -> None:
        doc = _scenario_document()
        doc["components"]["b"]["children"] = ["a"]
        with self.assertLogs("studio.layers", level="WARNING"):
            tree = build_layer_tree(doc)
        self.assertEqual(count_layers(tree), 2)

    def test_malformed_document(self) -> None:
        self.assertEqual(build_layer_tree({}), [])
        self.assertEqual(build_layer_tree({"root": {"children": "x"}, "components": []}), [])


class TestFlattenLayerTree(unittest.TestCase):
    def test_collapsed_parents_hide_children(self) -> None:
        tree = build_layer_tree(_three_level_document())
        rows = flatten_layer_tree(tree, expanded_ids=set())
        self.assertEqual([row["id"] for row in rows], ["page", "aside"])

    def test_expanded_ids_reveal_children_in_order(self) -> None:
        tree = build_layer_tree(_three_level_document())
        rows = flatten_layer_tree(tree, expanded_ids={"page", "row"})
        self.assertEqual([row["id"] for row in rows], ["page", "row", "signup", "other", "aside"])

    def test_item_flags_used_without_expanded_ids(self) -> None:
        tree = build_layer_tree(_three_level_document(), expanded_ids={"aside"})
        rows = flatten_layer_tree(tree)
        self.assertEqual([row["id"] for row in rows], ["page", "aside", "note"])


class TestFilterLayers(unittest.TestCase):
    def test_leaf_match_keeps_ancestors_expanded(self) -> None:
        tree = build_layer_tree(_three_level_document())
        filtered = filter_layers(tree, "join")
        self.assertEqual([item["id"] for item in filtered], ["page"])
        page = filtered[0]
        self.assertTrue(page["is_expanded"])
        self.assertEqual([item["id"] for item in page["children"]], ["row"])
        row = page["children"][0]
        self.assertTrue(row["is_expanded"])
        self.assertEqual([item["id"] for item in row["children"]], ["signup"])
        self.assertEqual([r["id"] for r in flatten_layer_tree(filtered)], ["page", "row", "signup"])

    def test_type_match_is_case_insensitive(self) -> None:
        filtered = filter_layers(build_layer_tree(_three_level_document()), "QUOTE")
        self.assertEqual([item["id"] for item in filtered], ["aside"])
        self.assertEqual(filtered[0]["children"][0]["id"], "note")

    def test_blank_query_returns_tree_unchanged(self) -> None:
        tree = build_layer_tree(_three_level_document())
        self.assertIs(filter_layers(tree, "  "), tree)
        self.assertIs(filter_layers(tree, None), tree)

    def test_input_tree_not_mutated(self) -> None:
        tree = build_layer_tree(_three_level_document())
        filter_layers(tree, "join")
        self.assertFalse(tree[0]["is_expanded"])
        self.assertEqual(len(tree[0]["children"]), 2)

    def test_no_match(self) -> None:
        self.assertEqual(filter_layers(build_layer_tree(_three_level_document()), "zzz"), [])


if __name__ == "__main__":
    unittest.main()
