"""Derived layer-tree views over a page document (build, flatten, filter)."""

from __future__ import annotations

import logging
from typing import Any, Collection, Dict, List

from component_labels import get_component_icon, get_component_label


LayerItem = Dict[str, Any]

logger = logging.getLogger("studio.layers")


def _make_item(
    component_id: str,
    component: dict,
    depth: int,
    parent_id: str | None,
    selected_id: str | None,
    expanded_ids: Collection[str],
    registry: Any,
) -> LayerItem:
    component_type = component.get("type") if isinstance(component.get("type"), str) else ""
    return {
        "id": component_id,
        "type": component_type,
        "label": get_component_label(component),
        "icon": get_component_icon(component_type, registry),
        "children": [],
        "is_locked": bool(component.get("locked", False)),
        "is_hidden": bool(component.get("hidden", False)),
        "is_selected": component_id == selected_id,
        "is_expanded": component_id in expanded_ids,
        "depth": depth,
        "parent_id": parent_id,
        "has_children": False,
    }


def build_layer_tree(
    document: dict,
    selected_id: str | None = None,
    expanded_ids: Collection[str] = (),
    registry: Any = None,
) -> List[LayerItem]:
    """Build the layer forest for every component reachable from the root.

    Children missing from ``components`` are dropped, as is any component
    reached a second time, so derivation never raises on a corrupt tree.
    """
    components = document.get("components") if isinstance(document, dict) else None
    if not isinstance(components, dict):
        components = {}
    root = document.get("root") if isinstance(document, dict) else None
    root_children = root.get("children") if isinstance(root, dict) else None
    expanded = expanded_ids if expanded_ids is not None else ()
    seen: set[str] = set()
    dropped: List[str] = []

    def _build(child_ids: Any, depth: int, parent_id: str | None) -> List[LayerItem]:
        items: List[LayerItem] = []
        if not isinstance(child_ids, list):
            return items
        for child_id in child_ids:
            component = components.get(child_id) if isinstance(child_id, str) else None
            if not isinstance(component, dict) or child_id in seen:
                dropped.append(str(child_id))
                continue
            seen.add(child_id)
            item = _make_item(child_id, component, depth, parent_id, selected_id, expanded, registry)
            item["children"] = _build(component.get("children"), depth + 1, child_id)
            item["has_children"] = len(item["children"]) > 0
            items.append(item)
        return items

    tree = _build(root_children, 0, None)
    if dropped:
        logger.warning("layer_tree_dangling_refs count=%s ids=%s", len(dropped), dropped[:10])
    return tree


def flatten_layer_tree(tree: List[LayerItem], expanded_ids: Collection[str] | None = None) -> List[LayerItem]:
    """Visible rows in document order for a virtualized list.

    With ``expanded_ids=None`` each item's own ``is_expanded`` flag decides,
    which is what filtered trees need.
    """
    rows: List[LayerItem] = []
    stack = list(reversed(tree or []))
    while stack:
        item = stack.pop()
        rows.append(item)
        if not item.get("has_children"):
            continue
        if expanded_ids is None:
            is_open = bool(item.get("is_expanded"))
        else:
            is_open = item.get("id") in expanded_ids
        if is_open:
            stack.extend(reversed(item.get("children") or []))
    return rows


def _matches(item: LayerItem, needle: str) -> bool:
    return needle in (item.get("type") or "").lower() or needle in (item.get("label") or "").lower()


def filter_layers(tree: List[LayerItem], query: str | None) -> List[LayerItem]:
    """Keep items matching ``query`` plus their ancestors, expanded.

    A blank query returns ``tree`` itself; otherwise new item dicts are
    returned and the input is left untouched.
    """
    if query is None or not query.strip():
        return tree
    needle = query.strip().lower()

    def _filter(items: List[LayerItem]) -> List[LayerItem]:
        out: List[LayerItem] = []
        for item in items:
            children = _filter(item.get("children") or [])
            if not children and not _matches(item, needle):
                continue
            clone = dict(item)
            clone["children"] = children
            clone["has_children"] = len(children) > 0
            if children:
                clone["is_expanded"] = True
            out.append(clone)
        return out

    return _filter(tree)


def find_layer(tree: List[LayerItem], layer_id: str) -> LayerItem | None:
    stack = list(tree or [])
    while stack:
        item = stack.pop()
        if item.get("id") == layer_id:
            return item
        stack.extend(item.get("children") or [])
    return None


def count_layers(tree: List[LayerItem]) -> int:
    return sum(1 + count_layers(item.get("children") or []) for item in tree or [])
