"""Canonical JSON serialization and fail-loud JSON cloning."""

from __future__ import annotations

import copy
import json
import math
from typing import Any


class UnsupportedValueError(TypeError):
    """Raised when a value is not plain JSON (dict/list/str/number/bool/None)."""


def _validate(obj: Any, path: str = "$") -> None:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise UnsupportedValueError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            _validate(value, f"{path}.{key}")
        return
    if isinstance(obj, (list, tuple)):
        for idx, item in enumerate(obj):
            _validate(item, f"{path}[{idx}]")
        return
    if obj is None:
        return
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return
    if isinstance(obj, (str, int, bool)):
        return
    raise UnsupportedValueError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def canonical_dumps(obj: Any) -> str:
    """Serialize an object to deterministic canonical JSON.

    Rules:
    - Sort dict keys recursively.
    - Preserve list order.
    - UTF-8 with non-ASCII preserved.
    - No extra whitespace.
    """
    _validate(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def clone_json(obj: Any) -> Any:
    """Return an independent deep copy of a plain-JSON value.

    Cyclic references, callables, sets and other non-JSON values raise
    instead of being dropped or stringified.
    """
    try:
        _validate(obj)
    except RecursionError as exc:
        raise UnsupportedValueError("Cyclic or too deeply nested value") from exc
    return copy.deepcopy(obj)


def json_equal(a: Any, b: Any) -> bool:
    """Compare two JSON values by their canonical serialization."""
    return canonical_dumps(a) == canonical_dumps(b)
