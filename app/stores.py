"""In-memory backends for local development and tests."""

from __future__ import annotations

import copy
from typing import Dict, List


class MemorySnapshotBackend:
    """Snapshot records keyed by id with a page_id index."""

    def __init__(self) -> None:
        self._records: Dict[str, dict] = {}
        self._by_page: Dict[str, List[str]] = {}

    def put(self, record: dict) -> None:
        snapshot_id = record.get("id")
        page_id = record.get("page_id")
        if not isinstance(snapshot_id, str) or not snapshot_id:
            raise ValueError("snapshot id required")
        if not isinstance(page_id, str) or not page_id:
            raise ValueError("snapshot page_id required")
        previous = self._records.get(snapshot_id)
        if previous is not None and previous.get("page_id") != page_id:
            self._by_page.get(previous.get("page_id"), []).remove(snapshot_id)
        self._records[snapshot_id] = copy.deepcopy(record)
        ids = self._by_page.setdefault(page_id, [])
        if snapshot_id not in ids:
            ids.append(snapshot_id)

    def get(self, snapshot_id: str) -> dict | None:
        rec = self._records.get(snapshot_id)
        return copy.deepcopy(rec) if rec else None

    def list_by_page(self, page_id: str) -> list[dict]:
        return [copy.deepcopy(self._records[sid]) for sid in self._by_page.get(page_id, []) if sid in self._records]

    def delete(self, snapshot_id: str) -> None:
        rec = self._records.pop(snapshot_id, None)
        if rec is None:
            return
        ids = self._by_page.get(rec.get("page_id"), [])
        if snapshot_id in ids:
            ids.remove(snapshot_id)


class MemoryComponentRegistry:
    """Component type definitions (``{"icon", "label", ...}``) keyed by type."""

    def __init__(self, definitions: Dict[str, dict] | None = None) -> None:
        self._definitions: Dict[str, dict] = copy.deepcopy(definitions or {})

    def register(self, component_type: str, definition: dict) -> None:
        self._definitions[component_type] = copy.deepcopy(definition)

    def get(self, component_type: str) -> dict | None:
        definition = self._definitions.get(component_type)
        return copy.deepcopy(definition) if definition else None

    def list_types(self) -> list[str]:
        return sorted(self._definitions)
