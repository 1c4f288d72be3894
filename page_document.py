"""Page document model: component tree lookups, validation and structural edits."""

from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, Iterable, List


Document = Dict[str, Any]
Component = Dict[str, Any]
Issue = Dict[str, Any]

ROOT_ID = "root"
DOCUMENT_VERSION = "1.0"


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def generate_component_id() -> str:
    return f"comp_{uuid.uuid4().hex[:12]}"


def create_empty_document(title: str = "Untitled Page") -> Document:
    return {
        "version": DOCUMENT_VERSION,
        "root": {
            "id": ROOT_ID,
            "type": "Root",
            "props": {"title": title, "description": ""},
            "children": [],
        },
        "components": {},
        "zones": {},
    }


def _components(document: Any) -> dict:
    if not isinstance(document, dict):
        return {}
    components = document.get("components")
    return components if isinstance(components, dict) else {}


def _root_children(document: Any) -> list:
    if not isinstance(document, dict):
        return []
    root = document.get("root")
    if not isinstance(root, dict):
        return []
    children = root.get("children")
    return children if isinstance(children, list) else []


def _child_ids(component: Any) -> list:
    if not isinstance(component, dict):
        return []
    children = component.get("children")
    return children if isinstance(children, list) else []


def get_component(document: Document, component_id: str) -> Component | None:
    component = _components(document).get(component_id)
    return component if isinstance(component, dict) else None


def get_parent_id(document: Document, component_id: str) -> str | None:
    component = get_component(document, component_id)
    if component is None:
        return None
    parent_id = component.get("parentId")
    return parent_id if isinstance(parent_id, str) and parent_id else None


def get_sibling_ids(document: Document, component_id: str) -> List[str]:
    """Ordered ids sharing the component's parent (root children for top level)."""
    if get_component(document, component_id) is None:
        return []
    parent_id = get_parent_id(document, component_id)
    if parent_id is None:
        return list(_root_children(document))
    return list(_child_ids(get_component(document, parent_id)))


def get_sibling_index(document: Document, component_id: str) -> int:
    siblings = get_sibling_ids(document, component_id)
    try:
        return siblings.index(component_id)
    except ValueError:
        return -1


def get_all_component_ids(document: Document) -> List[str]:
    """Depth-first preorder of every id reachable from the root.

    Dangling references and ids reached a second time are skipped so a
    partially corrupt document still yields its healthy subtree.
    """
    components = _components(document)
    out: List[str] = []
    seen: set[str] = set()
    stack = list(reversed(_root_children(document)))
    while stack:
        component_id = stack.pop()
        if not isinstance(component_id, str) or component_id in seen:
            continue
        component = components.get(component_id)
        if not isinstance(component, dict):
            continue
        seen.add(component_id)
        out.append(component_id)
        stack.extend(reversed(_child_ids(component)))
    return out


def get_ancestor_ids(document: Document, component_id: str) -> List[str]:
    """Ancestor ids, nearest parent first."""
    out: List[str] = []
    seen = {component_id}
    parent_id = get_parent_id(document, component_id)
    while parent_id is not None and parent_id not in seen:
        if get_component(document, parent_id) is None:
            break
        out.append(parent_id)
        seen.add(parent_id)
        parent_id = get_parent_id(document, parent_id)
    return out


def get_descendant_ids(document: Document, component_id: str) -> List[str]:
    components = _components(document)
    out: List[str] = []
    seen = {component_id}
    stack = list(reversed(_child_ids(components.get(component_id))))
    while stack:
        child_id = stack.pop()
        if child_id in seen or not isinstance(components.get(child_id), dict):
            continue
        seen.add(child_id)
        out.append(child_id)
        stack.extend(reversed(_child_ids(components[child_id])))
    return out


def validate_document(document: Any) -> List[Issue]:
    issues: List[Issue] = []
    if not isinstance(document, dict):
        return [_issue("DOCUMENT_INVALID", "document must be object", "$")]
    root = document.get("root")
    if not isinstance(root, dict) or not isinstance(root.get("children"), list):
        issues.append(_issue("DOCUMENT_INVALID", "root.children must be list", "root.children"))
    if not isinstance(document.get("components"), dict):
        issues.append(_issue("DOCUMENT_INVALID", "components must be object", "components"))
    if issues:
        return issues

    components = document["components"]
    owners: Dict[str, str] = {}
    parents = [(ROOT_ID, "root.children", root["children"])]
    for comp_id, comp in components.items():
        if not isinstance(comp, dict):
            issues.append(_issue("DOCUMENT_INVALID", "component must be object", f"components.{comp_id}"))
            continue
        if comp.get("id") != comp_id:
            issues.append(_issue("DOCUMENT_INVALID", "component id does not match key", f"components.{comp_id}.id"))
        parents.append((comp_id, f"components.{comp_id}.children", _child_ids(comp)))

    for owner_id, path, children in parents:
        for idx, child_id in enumerate(children):
            child_path = f"{path}[{idx}]"
            if child_id not in components:
                issues.append(_issue("CHILD_DANGLING", "child id missing from components", child_path, {"id": child_id}))
                continue
            if child_id in owners:
                issues.append(
                    _issue(
                        "CHILD_DUPLICATE",
                        "component referenced more than once",
                        child_path,
                        {"id": child_id, "first_parent": owners[child_id]},
                    )
                )
                continue
            owners[child_id] = owner_id

    for comp_id, comp in components.items():
        if not isinstance(comp, dict) or comp_id not in owners:
            continue
        declared = comp.get("parentId") or ROOT_ID
        if declared != owners[comp_id]:
            issues.append(
                _issue(
                    "PARENT_MISMATCH",
                    "parentId does not match owning children list",
                    f"components.{comp_id}.parentId",
                    {"declared": comp.get("parentId"), "actual": None if owners[comp_id] == ROOT_ID else owners[comp_id]},
                )
            )

    reachable = set(get_all_component_ids(document))
    for comp_id in components:
        if comp_id not in reachable:
            issues.append(_issue("COMPONENT_UNREACHABLE", "component not reachable from root", f"components.{comp_id}"))
    return issues


def _require(document: Document, component_id: str) -> Component:
    component = get_component(document, component_id)
    if component is None:
        raise KeyError("Component not found")
    return component


def _children_list(document: Document, parent_id: str | None) -> list:
    if parent_id is None or parent_id == ROOT_ID:
        return document["root"].setdefault("children", [])
    return _require(document, parent_id).setdefault("children", [])


def _insert(children: list, component_id: str, index: int | None) -> None:
    if index is not None and 0 <= index <= len(children):
        children.insert(index, component_id)
    else:
        children.append(component_id)


def _zone_list(document: Document, component_id: str) -> list | None:
    zones = document.get("zones") if isinstance(document, dict) else None
    if not isinstance(zones, dict):
        return None
    zone_id = get_component(document, component_id).get("zoneId")
    zone = zones.get(zone_id) if isinstance(zone_id, str) else None
    if isinstance(zone, list) and component_id in zone:
        return zone
    for zone in zones.values():
        if isinstance(zone, list) and component_id in zone:
            return zone
    return None


def _owning_list(document: Document, component_id: str) -> list | None:
    """Live list that holds component_id, searching zones before children lists."""
    zone = _zone_list(document, component_id)
    if zone is not None:
        return zone
    parent_id = get_parent_id(document, component_id)
    if parent_id is None:
        declared = _root_children(document)
    else:
        declared = _child_ids(get_component(document, parent_id))
    if component_id in declared:
        return declared
    for children in [_root_children(document)] + [_child_ids(c) for c in _components(document).values()]:
        if component_id in children:
            return children
    return None


def _detach(document: Document, component_id: str) -> None:
    owner = _owning_list(document, component_id)
    if owner is not None:
        owner.remove(component_id)


def add_component(
    document: Document,
    component_type: str,
    props: dict | None = None,
    parent_id: str = ROOT_ID,
    index: int | None = None,
    component_id: str | None = None,
) -> str:
    if not isinstance(component_type, str) or not component_type:
        raise ValueError("component type must be non-empty string")
    new_id = component_id or generate_component_id()
    if new_id in _components(document):
        raise ValueError("Component id already exists")
    children = _children_list(document, parent_id)
    document.setdefault("components", {})[new_id] = {
        "id": new_id,
        "type": component_type,
        "props": copy.deepcopy(props) if props else {},
        "children": [],
        "parentId": None if parent_id == ROOT_ID else parent_id,
        "locked": False,
        "hidden": False,
    }
    _insert(children, new_id, index)
    return new_id


def update_component_props(document: Document, component_id: str, props: dict) -> None:
    component = _require(document, component_id)
    merged = dict(component.get("props") or {})
    merged.update(copy.deepcopy(props))
    component["props"] = merged


_UPDATABLE_FIELDS = {"type", "props", "locked", "hidden"}


def update_component(document: Document, component_id: str, updates: dict) -> None:
    """Update editable fields; tree links are changed through move_component only."""
    component = _require(document, component_id)
    rejected = sorted(key for key in updates if key not in _UPDATABLE_FIELDS)
    if rejected:
        raise ValueError(f"Field not updatable: {', '.join(rejected)}")
    for key, value in updates.items():
        component[key] = copy.deepcopy(value)


def set_locked(document: Document, component_id: str, locked: bool) -> None:
    _require(document, component_id)["locked"] = bool(locked)


def set_hidden(document: Document, component_id: str, hidden: bool) -> None:
    _require(document, component_id)["hidden"] = bool(hidden)


def delete_component(document: Document, component_id: str) -> List[str]:
    """Remove a component and its subtree; returns every removed id."""
    _require(document, component_id)
    removed = [component_id] + get_descendant_ids(document, component_id)
    _detach(document, component_id)
    components = document["components"]
    for rid in removed:
        components.pop(rid, None)
    return removed


def delete_components(document: Document, component_ids: Iterable[str]) -> List[str]:
    removed: List[str] = []
    for component_id in component_ids:
        if get_component(document, component_id) is None:
            continue
        removed.extend(delete_component(document, component_id))
    return removed


def duplicate_component(document: Document, component_id: str) -> str:
    """Clone a subtree with fresh ids and insert it right after the original."""
    _require(document, component_id)
    components = document["components"]
    visited: set[str] = set()

    def _clone(source_id: str, new_parent_id: str | None) -> str:
        visited.add(source_id)
        source = components[source_id]
        new_id = generate_component_id()
        clone = copy.deepcopy(source)
        clone["id"] = new_id
        clone["parentId"] = new_parent_id
        clone["children"] = []
        components[new_id] = clone
        for child_id in list(_child_ids(source)):
            if child_id not in visited and isinstance(components.get(child_id), dict):
                clone["children"].append(_clone(child_id, new_id))
        return new_id

    parent_id = get_parent_id(document, component_id)
    siblings = _owning_list(document, component_id)
    if siblings is None:
        owner_id = parent_id if get_component(document, parent_id or "") is not None else None
        siblings = _children_list(document, owner_id)
    new_id = _clone(component_id, parent_id)
    position = siblings.index(component_id) + 1 if component_id in siblings else len(siblings)
    siblings.insert(position, new_id)
    return new_id


def move_component(document: Document, component_id: str, new_parent_id: str, new_index: int | None = None) -> None:
    _require(document, component_id)
    target_parent = None if new_parent_id in (None, ROOT_ID) else new_parent_id
    if target_parent is not None:
        _require(document, target_parent)
        if target_parent == component_id or target_parent in get_descendant_ids(document, component_id):
            raise ValueError("Cannot move component into its own subtree")
    _detach(document, component_id)
    _insert(_children_list(document, target_parent), component_id, new_index)
    moved = document["components"][component_id]
    moved["parentId"] = target_parent
    moved.pop("zoneId", None)


def update_root_props(document: Document, props: dict) -> None:
    root = document.setdefault("root", {"id": ROOT_ID, "type": "Root", "props": {}, "children": []})
    merged = dict(root.get("props") or {})
    merged.update(copy.deepcopy(props))
    root["props"] = merged
