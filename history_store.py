"""In-memory undo/redo history of full page-document checkpoints."""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from studiokit.canonical_json import clone_json


HistoryEntry = Dict[str, Any]

logger = logging.getLogger("studio.history")

DEFAULT_MAX_ENTRIES = 50

ACTION_DESCRIPTIONS = {
    "component.add": "Added {component}",
    "component.delete": "Deleted {component}",
    "component.move": "Moved {component}",
    "component.edit": "Edited {component}",
    "component.duplicate": "Duplicated {component}",
    "component.lock": "Locked {component}",
    "component.unlock": "Unlocked {component}",
    "component.hide": "Hid {component}",
    "component.show": "Showed {component}",
    "page.load": "Loaded page",
    "page.generate": "Generated page",
    "snapshot.restore": "Restored snapshot",
    "bulk.action": "Bulk action",
}
FALLBACK_DESCRIPTION = "Changed page"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def describe_action(
    action: str,
    component_type: str | None = None,
    custom_description: str | None = None,
) -> str:
    if custom_description:
        return custom_description
    template = ACTION_DESCRIPTIONS.get(action)
    if template is not None:
        return template.format(component=component_type or "component")
    return FALLBACK_DESCRIPTION


class HistoryStore:
    """Linear, size-bounded undo log for one editing session.

    ``current_index`` points at the entry whose document is on screen and is
    -1 while the log is empty. Recording while not at the end discards the
    redo branch.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: List[HistoryEntry] = []
        self._current_index = -1

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    @property
    def current_index(self) -> int:
        return self._current_index

    def __len__(self) -> int:
        return len(self._entries)

    def record_action(
        self,
        action: str,
        document: dict,
        component_id: str | None = None,
        component_type: str | None = None,
        custom_description: str | None = None,
    ) -> HistoryEntry:
        entry = {
            "id": str(uuid.uuid4()),
            "timestamp": _now(),
            "action": action,
            "component_id": component_id,
            "component_type": component_type,
            "description": describe_action(action, component_type, custom_description),
            "data": clone_json(document),
        }
        discarded = len(self._entries) - (self._current_index + 1)
        del self._entries[self._current_index + 1 :]
        self._entries.append(entry)
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            del self._entries[:overflow]
        self._current_index = len(self._entries) - 1
        logger.debug(
            "history_record action=%s entry_id=%s index=%s discarded=%s dropped=%s",
            action,
            entry["id"],
            self._current_index,
            discarded,
            max(overflow, 0),
        )
        return entry

    def _find_index(self, entry_id: str) -> int:
        for idx, entry in enumerate(self._entries):
            if entry["id"] == entry_id:
                return idx
        return -1

    def jump_to_entry(self, entry_id: str) -> dict | None:
        idx = self._find_index(entry_id)
        if idx < 0:
            return None
        self._current_index = idx
        return copy.deepcopy(self._entries[idx]["data"])

    def mark_undo(self) -> int:
        if self._entries:
            self._current_index = max(self._current_index - 1, 0)
        return self._current_index

    def mark_redo(self) -> int:
        if self._entries:
            self._current_index = min(self._current_index + 1, len(self._entries) - 1)
        return self._current_index

    def can_undo(self) -> bool:
        return self._current_index > 0

    def can_redo(self) -> bool:
        return 0 <= self._current_index < len(self._entries) - 1

    def get_undo_description(self) -> str | None:
        if not self.can_undo():
            return None
        return self._entries[self._current_index - 1]["description"]

    def get_redo_description(self) -> str | None:
        if not self.can_redo():
            return None
        return self._entries[self._current_index + 1]["description"]

    def current_entry(self) -> HistoryEntry | None:
        if self._current_index < 0:
            return None
        return copy.deepcopy(self._entries[self._current_index])

    def current_document(self) -> dict | None:
        if self._current_index < 0:
            return None
        return copy.deepcopy(self._entries[self._current_index]["data"])

    def list_entries(self) -> list[dict]:
        """Entry metadata (without documents) for a history panel, oldest first."""
        return [
            {
                "id": entry["id"],
                "timestamp": entry["timestamp"],
                "action": entry["action"],
                "component_id": entry["component_id"],
                "component_type": entry["component_type"],
                "description": entry["description"],
                "is_current": idx == self._current_index,
            }
            for idx, entry in enumerate(self._entries)
        ]

    def clear(self) -> None:
        self._entries.clear()
        self._current_index = -1
