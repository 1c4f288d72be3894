"""Studio kernel utilities."""

from .canonical_json import UnsupportedValueError, canonical_dumps, clone_json, json_equal
from .document_hash import document_hash

__all__ = [
    "UnsupportedValueError",
    "canonical_dumps",
    "clone_json",
    "document_hash",
    "json_equal",
]
