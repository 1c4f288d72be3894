"""Named, durable page snapshots with a props-and-membership diff."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol

import anyio

from studiokit.canonical_json import canonical_dumps, clone_json


Snapshot = Dict[str, Any]
SnapshotDiff = Dict[str, Any]

logger = logging.getLogger("studio.snapshots")

_MISSING = object()


@dataclass
class SnapshotError(Exception):
    code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"


class SnapshotContextError(SnapshotError):
    def __init__(self, message: str = "Snapshot context not set (page_id/site_id)") -> None:
        super().__init__("SNAPSHOT_CONTEXT_MISSING", message)


class SnapshotStorageError(SnapshotError):
    def __init__(self, message: str) -> None:
        super().__init__("SNAPSHOT_STORAGE_FAILED", message)


class SnapshotBackend(Protocol):
    def put(self, record: Snapshot) -> None: ...

    def list_by_page(self, page_id: str) -> List[Snapshot]: ...

    def delete(self, snapshot_id: str) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _component_map(document: Any) -> dict:
    if not isinstance(document, dict):
        return {}
    components = document.get("components")
    return components if isinstance(components, dict) else {}


def _type_of(component: Any) -> str | None:
    return component.get("type") if isinstance(component, dict) else None


def _props_of(component: Any) -> dict:
    props = component.get("props") if isinstance(component, dict) else None
    return props if isinstance(props, dict) else {}


def _serialized(value: Any) -> Any:
    if value is _MISSING:
        return _MISSING
    try:
        return canonical_dumps(value)
    except (TypeError, ValueError):
        return repr(value)


def _prop_changes(before: dict, after: dict) -> Dict[str, Dict[str, Any]]:
    changes: Dict[str, Dict[str, Any]] = {}
    for key in list(before) + [k for k in after if k not in before]:
        old = before.get(key, _MISSING)
        new = after.get(key, _MISSING)
        if _serialized(old) == _serialized(new):
            continue
        changes[key] = {
            "old": None if old is _MISSING else copy.deepcopy(old),
            "new": None if new is _MISSING else copy.deepcopy(new),
        }
    return changes


def _summary(added: int, removed: int, modified: int) -> str:
    parts = []
    if added:
        parts.append(f"{added} added")
    if removed:
        parts.append(f"{removed} removed")
    if modified:
        parts.append(f"{modified} modified")
    return ", ".join(parts) if parts else "No changes"


def diff_documents(before: dict, after: dict) -> SnapshotDiff:
    """Compare component membership and props of two documents.

    Tree position and child order are ignored, so a move alone is not a
    modification.
    """
    old_components = _component_map(before)
    new_components = _component_map(after)
    added = [
        {"id": comp_id, "type": _type_of(comp)}
        for comp_id, comp in new_components.items()
        if comp_id not in old_components
    ]
    removed = [
        {"id": comp_id, "type": _type_of(comp)}
        for comp_id, comp in old_components.items()
        if comp_id not in new_components
    ]
    modified = []
    for comp_id, old_comp in old_components.items():
        if comp_id not in new_components:
            continue
        new_comp = new_components[comp_id]
        changes = _prop_changes(_props_of(old_comp), _props_of(new_comp))
        if changes:
            modified.append({"id": comp_id, "type": _type_of(new_comp) or _type_of(old_comp), "changes": changes})
    return {
        "components_added": added,
        "components_removed": removed,
        "components_modified": modified,
        "summary": _summary(len(added), len(removed), len(modified)),
    }


class SnapshotStore:
    """Snapshots for one page, mirrored in memory after each durable write.

    The backend is synchronous; calls are pushed to a worker thread so the
    event loop is not blocked by storage I/O.
    """

    def __init__(self, backend: SnapshotBackend) -> None:
        self._backend = backend
        self.snapshots: List[Snapshot] = []
        self.page_id: str | None = None
        self.site_id: str | None = None
        self.is_loading = False
        self.error: str | None = None

    def set_context(self, page_id: str, site_id: str) -> None:
        if page_id != self.page_id:
            self.snapshots = []
        self.page_id = page_id
        self.site_id = site_id
        self.error = None

    def clear_context(self) -> None:
        self.page_id = None
        self.site_id = None
        self.snapshots = []
        self.error = None

    def _require_context(self) -> tuple[str, str]:
        if not self.page_id or not self.site_id:
            raise SnapshotContextError()
        return self.page_id, self.site_id

    async def save_snapshot(
        self,
        name: str,
        document: dict,
        description: str | None = None,
        thumbnail: str | None = None,
    ) -> Snapshot:
        page_id, site_id = self._require_context()
        record = {
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "timestamp": _now(),
            "data": clone_json(document),
            "thumbnail": thumbnail,
            "page_id": page_id,
            "site_id": site_id,
        }
        try:
            await anyio.to_thread.run_sync(self._backend.put, copy.deepcopy(record))
        except Exception as exc:
            logger.warning("snapshot_save_failed page_id=%s snapshot_id=%s error=%s", page_id, record["id"], exc)
            raise SnapshotStorageError(f"Failed to save snapshot: {exc}") from exc
        self.snapshots.insert(0, record)
        logger.info("snapshot_saved page_id=%s snapshot_id=%s name=%s", page_id, record["id"], name)
        return copy.deepcopy(record)

    async def load_snapshots(self) -> List[Snapshot]:
        page_id, _site_id = self._require_context()
        self.is_loading = True
        self.error = None
        try:
            records = await anyio.to_thread.run_sync(self._backend.list_by_page, page_id)
        except Exception as exc:
            logger.warning("snapshot_load_failed page_id=%s error=%s", page_id, exc)
            self.error = f"Failed to load snapshots: {exc}"
            return copy.deepcopy(self.snapshots)
        finally:
            self.is_loading = False
        self.snapshots = sorted(records or [], key=lambda item: item.get("timestamp") or "", reverse=True)
        logger.info("snapshots_loaded page_id=%s count=%s", page_id, len(self.snapshots))
        return copy.deepcopy(self.snapshots)

    async def delete_snapshot(self, snapshot_id: str) -> None:
        page_id, _site_id = self._require_context()
        try:
            await anyio.to_thread.run_sync(self._backend.delete, snapshot_id)
        except Exception as exc:
            logger.warning("snapshot_delete_failed page_id=%s snapshot_id=%s error=%s", page_id, snapshot_id, exc)
            raise SnapshotStorageError(f"Failed to delete snapshot: {exc}") from exc
        self.snapshots = [item for item in self.snapshots if item.get("id") != snapshot_id]
        logger.info("snapshot_deleted page_id=%s snapshot_id=%s", page_id, snapshot_id)

    def _find(self, snapshot_id: str) -> Snapshot | None:
        for item in self.snapshots:
            if item.get("id") == snapshot_id:
                return item
        return None

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        item = self._find(snapshot_id)
        return copy.deepcopy(item) if item else None

    def list_snapshots(self) -> List[Snapshot]:
        """Snapshot metadata without documents, newest first."""
        return [{key: value for key, value in item.items() if key != "data"} for item in self.snapshots]

    def restore_snapshot(self, snapshot_id: str) -> dict | None:
        item = self._find(snapshot_id)
        if item is None:
            return None
        return copy.deepcopy(item.get("data"))

    def compare_snapshots(self, id_a: str, id_b: str) -> SnapshotDiff | None:
        first = self._find(id_a)
        second = self._find(id_b)
        if first is None or second is None:
            return None
        return diff_documents(first.get("data"), second.get("data"))

    def compare_to_current(self, snapshot_id: str, live_document: dict) -> SnapshotDiff | None:
        item = self._find(snapshot_id)
        if item is None:
            return None
        return diff_documents(item.get("data"), live_document)
