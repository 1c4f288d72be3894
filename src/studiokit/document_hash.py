"""Content fingerprints for page documents."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps

# Keys that make up what a page renders; version and zone bookkeeping are excluded.
CONTENT_KEYS = ("root", "components")


def document_content(document: Any) -> dict:
    if not isinstance(document, dict):
        raise ValueError("document must be object")
    return {key: document.get(key) for key in CONTENT_KEYS}


def document_hash(document: Any) -> str:
    """Fingerprint of a page's rendered content, stable across key order and format version."""
    data = canonical_dumps(document_content(document)).encode("utf-8")
    return "sha256:" + hashlib.sha256(data).hexdigest()
