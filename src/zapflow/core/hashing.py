"""
Deterministic row hashing for change detection.

A row hash is a content fingerprint of one external record. Two rows hash
equal exactly when their normalized field values are equal in the same
order, so a poller can tell "unchanged" from "updated" without keeping the
previous row contents.

Architecture:
    ::

        ["  x  ", None, "y"]
              │ normalize: str(v).strip(), None → ""
              ▼
        ["x", "", "y"]
              │ join with \\x1f (unit separator, not expected in data)
              ▼
        "x\\x1f\\x1fy" ──sha1──▶ 40-char hex digest

Examples:
    >>> hash_row(["  x  ", "y"]) == hash_row(["x", "y"])
    True
    >>> hash_row(["x", ""]) == hash_row(["x", None])
    True
    >>> hash_row(["A", "B", "C"]) == hash_row(["C", "B", "A"])
    False

Tags:
    hashing, change-detection, polling, zapflow
"""

import hashlib
from collections.abc import Iterable
from typing import Any

FIELD_SEPARATOR = "\x1f"


def normalize_value(value: Any) -> str:
    """Normalize one field: None and empty become ``""``, whitespace trimmed."""
    if value is None:
        return ""
    return str(value).strip()


def hash_row(values: Iterable[Any]) -> str:
    """Compute the SHA-1 hex digest of a row's normalized field values.

    Args:
        values: Field values in column order

    Returns:
        40-char lowercase hex string
    """
    content = FIELD_SEPARATOR.join(normalize_value(v) for v in values)
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


__all__ = ["FIELD_SEPARATOR", "hash_row", "normalize_value"]
