"""Per-page editor sessions owning the live document, history and snapshots."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

import page_document
from history_store import DEFAULT_MAX_ENTRIES, HistoryEntry, HistoryStore
from layer_tree import LayerItem, build_layer_tree, filter_layers, flatten_layer_tree
from snapshot_store import Snapshot, SnapshotBackend, SnapshotDiff, SnapshotStore
from studiokit.canonical_json import clone_json
from studiokit.document_hash import document_hash


logger = logging.getLogger("studio")


@dataclass
class DocumentInvalidError(Exception):
    message: str
    issues: List[dict] = field(default_factory=list)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


def _check_document(document: Any) -> None:
    issues = page_document.validate_document(document)
    blocking = [issue for issue in issues if issue["code"] == "DOCUMENT_INVALID"]
    if blocking:
        raise DocumentInvalidError("Document is not a valid page document", blocking)
    if issues:
        logger.warning(
            "document_integrity_issues count=%s codes=%s",
            len(issues),
            sorted({issue["code"] for issue in issues}),
        )


class EditorSession:
    """One open page: a live document plus its own history and snapshot stores.

    Every structural edit goes through ``page_document`` and is checkpointed
    in history with the matching action tag.
    """

    def __init__(
        self,
        site_id: str,
        page_id: str,
        backend: SnapshotBackend,
        document: dict | None = None,
        registry: Any = None,
        max_history: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if document is None:
            document = page_document.create_empty_document()
        _check_document(document)
        self.site_id = site_id
        self.page_id = page_id
        self.registry = registry
        self.document: dict = clone_json(document)
        self.history = HistoryStore(max_entries=max_history)
        self.snapshots = SnapshotStore(backend)
        self.snapshots.set_context(page_id, site_id)
        self.selected_id: str | None = None
        self.expanded_ids: set[str] = set()
        self.is_dirty = False
        self.history.record_action("page.load", self.document)

    # -- history ---------------------------------------------------------

    def _commit(
        self,
        action: str,
        component_id: str | None = None,
        component_type: str | None = None,
        custom_description: str | None = None,
    ) -> HistoryEntry:
        entry = self.history.record_action(
            action,
            self.document,
            component_id=component_id,
            component_type=component_type,
            custom_description=custom_description,
        )
        self.is_dirty = True
        return entry

    def record(
        self,
        action: str,
        document: dict,
        component_id: str | None = None,
        component_type: str | None = None,
        custom_description: str | None = None,
    ) -> HistoryEntry:
        """Adopt a document edited outside the session and checkpoint it."""
        _check_document(document)
        self.document = clone_json(document)
        self._prune_view_state()
        return self._commit(action, component_id, component_type, custom_description)

    def _apply_current(self) -> dict:
        self.document = self.history.current_document()
        self._prune_view_state()
        self.is_dirty = True
        return copy.deepcopy(self.document)

    def undo(self) -> dict | None:
        if not self.history.can_undo():
            return None
        self.history.mark_undo()
        return self._apply_current()

    def redo(self) -> dict | None:
        if not self.history.can_redo():
            return None
        self.history.mark_redo()
        return self._apply_current()

    def jump_to(self, entry_id: str) -> dict | None:
        if self.history.jump_to_entry(entry_id) is None:
            return None
        return self._apply_current()

    # -- edits -----------------------------------------------------------

    def _type_of(self, component_id: str) -> str | None:
        component = page_document.get_component(self.document, component_id)
        return component.get("type") if component else None

    def add_component(
        self,
        component_type: str,
        props: dict | None = None,
        parent_id: str = page_document.ROOT_ID,
        index: int | None = None,
    ) -> str:
        new_id = page_document.add_component(self.document, component_type, props, parent_id, index)
        self._commit("component.add", new_id, component_type)
        return new_id

    def update_props(self, component_id: str, props: dict) -> None:
        page_document.update_component_props(self.document, component_id, props)
        self._commit("component.edit", component_id, self._type_of(component_id))

    def update_component(self, component_id: str, updates: dict) -> None:
        page_document.update_component(self.document, component_id, updates)
        self._commit("component.edit", component_id, self._type_of(component_id))

    def update_page_props(self, props: dict) -> None:
        page_document.update_root_props(self.document, props)
        self._commit("page.settings", custom_description="Updated page settings")

    def move_component(self, component_id: str, parent_id: str, index: int | None = None) -> None:
        page_document.move_component(self.document, component_id, parent_id, index)
        self._commit("component.move", component_id, self._type_of(component_id))

    def duplicate_component(self, component_id: str) -> str:
        new_id = page_document.duplicate_component(self.document, component_id)
        self._commit("component.duplicate", new_id, self._type_of(new_id))
        return new_id

    def delete_component(self, component_id: str) -> List[str]:
        component_type = self._type_of(component_id)
        removed = page_document.delete_component(self.document, component_id)
        self._prune_view_state()
        self._commit("component.delete", component_id, component_type)
        return removed

    def delete_components(self, component_ids: Iterable[str]) -> List[str]:
        removed = page_document.delete_components(self.document, list(component_ids))
        if not removed:
            return removed
        self._prune_view_state()
        self._commit("bulk.action", custom_description=f"Deleted {len(removed)} components")
        return removed

    def set_locked(self, component_id: str, locked: bool) -> None:
        page_document.set_locked(self.document, component_id, locked)
        action = "component.lock" if locked else "component.unlock"
        self._commit(action, component_id, self._type_of(component_id))

    def set_hidden(self, component_id: str, hidden: bool) -> None:
        page_document.set_hidden(self.document, component_id, hidden)
        action = "component.hide" if hidden else "component.show"
        self._commit(action, component_id, self._type_of(component_id))

    # -- snapshots -------------------------------------------------------

    async def save_snapshot(
        self,
        name: str,
        description: str | None = None,
        thumbnail: str | None = None,
    ) -> Snapshot:
        return await self.snapshots.save_snapshot(name, self.document, description, thumbnail)

    def restore_snapshot(self, snapshot_id: str) -> dict | None:
        document = self.snapshots.restore_snapshot(snapshot_id)
        if document is None:
            return None
        self.document = document
        self._prune_view_state()
        self._commit("snapshot.restore")
        return copy.deepcopy(self.document)

    def compare_to_current(self, snapshot_id: str) -> SnapshotDiff | None:
        return self.snapshots.compare_to_current(snapshot_id, self.document)

    # -- layers panel ----------------------------------------------------

    def layers(self, query: str | None = None) -> List[LayerItem]:
        tree = build_layer_tree(self.document, self.selected_id, self.expanded_ids, self.registry)
        return filter_layers(tree, query)

    def visible_layers(self, query: str | None = None) -> List[LayerItem]:
        return flatten_layer_tree(self.layers(query))

    def select(self, component_id: str | None) -> None:
        if component_id is not None and page_document.get_component(self.document, component_id) is None:
            raise KeyError("Component not found")
        self.selected_id = component_id

    def toggle_expanded(self, component_id: str) -> bool:
        if component_id in self.expanded_ids:
            self.expanded_ids.discard(component_id)
            return False
        self.expanded_ids.add(component_id)
        return True

    def reveal(self, component_id: str) -> List[str]:
        """Expand every ancestor so the component is visible; returns them."""
        if page_document.get_component(self.document, component_id) is None:
            raise KeyError("Component not found")
        ancestors = page_document.get_ancestor_ids(self.document, component_id)
        self.expanded_ids.update(ancestors)
        return ancestors

    def _prune_view_state(self) -> None:
        components = self.document.get("components") or {}
        if self.selected_id is not None and self.selected_id not in components:
            self.selected_id = None
        self.expanded_ids = {comp_id for comp_id in self.expanded_ids if comp_id in components}

    # -- state -----------------------------------------------------------

    def mark_saved(self) -> None:
        self.is_dirty = False

    def state(self) -> Dict[str, Any]:
        return {
            "site_id": self.site_id,
            "page_id": self.page_id,
            "document": copy.deepcopy(self.document),
            "document_hash": document_hash(self.document),
            "selected_id": self.selected_id,
            "expanded_ids": sorted(self.expanded_ids),
            "is_dirty": self.is_dirty,
            "history_index": self.history.current_index,
            "can_undo": self.history.can_undo(),
            "can_redo": self.history.can_redo(),
            "undo_description": self.history.get_undo_description(),
            "redo_description": self.history.get_redo_description(),
        }

    def close(self) -> None:
        self.history.clear()
        self.snapshots.clear_context()


class StudioSessions:
    """Open editor sessions keyed by page id."""

    def __init__(self, backend: SnapshotBackend, registry: Any = None, max_history: int = DEFAULT_MAX_ENTRIES) -> None:
        self._backend = backend
        self._registry = registry
        self._max_history = max_history
        self._sessions: Dict[str, EditorSession] = {}

    def open(self, site_id: str, page_id: str, document: dict | None = None) -> EditorSession:
        """Open a page; an existing session is reused unless a document is supplied."""
        existing = self._sessions.get(page_id)
        if existing is not None and document is None and existing.site_id == site_id:
            return existing
        session = EditorSession(
            site_id,
            page_id,
            self._backend,
            document=document,
            registry=self._registry,
            max_history=self._max_history,
        )
        if existing is not None:
            existing.close()
        self._sessions[page_id] = session
        logger.info("studio_session_opened site_id=%s page_id=%s", site_id, page_id)
        return session

    def get(self, page_id: str) -> EditorSession | None:
        return self._sessions.get(page_id)

    def close(self, page_id: str) -> bool:
        session = self._sessions.pop(page_id, None)
        if session is None:
            return False
        session.close()
        logger.info("studio_session_closed page_id=%s", page_id)
        return True

    def page_ids(self) -> List[str]:
        return list(self._sessions)
