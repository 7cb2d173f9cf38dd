"""
Push Kernel — Wire Helpers

DiffTrees travel as plain JSON objects. None (JSON null) is reserved for
"delete this key", so a legitimate null leaf cannot be sent inside a diff.
On the receiving side every nested object of a decoded diff is read back as
a partial change (merge), since JSON cannot tell a replaced subtree from a
patched one.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pushkernel.observer import DiffTree, is_sequence, unwrap


def to_wire(value: Any) -> Any:
    """JSON-compatible copy of value. Views, StateObjects and DiffTrees become plain dicts/lists."""
    value = unwrap(value)
    if isinstance(value, Mapping):
        return {str(key): to_wire(value[key]) for key in value}
    if is_sequence(value) or isinstance(value, tuple):
        return [to_wire(item) for item in value]
    return value


def diff_from_wire(data: Mapping[str, Any]) -> DiffTree:
    """Rebuild a DiffTree from a decoded JSON object."""
    diff = DiffTree()
    for key, value in data.items():
        diff[key] = diff_from_wire(value) if isinstance(value, Mapping) else value
    return diff


def dumps(message: Mapping[str, Any]) -> str:
    return json.dumps(to_wire(message))


def loads(text: str) -> Any:
    return json.loads(text)
