"""
Cached entities held by a region, plus the dictionary helpers used to mutate them.

This is a pure data module with no network or event-loop dependencies.
"""
from __future__ import annotations

import copy
import dataclasses
from typing import Any

_MISSING = object()


@dataclasses.dataclass(eq=False)
class DataObject:
    """
    One cached entity.

    ``data`` is None when the object is known to exist but its content has
    not been loaded. ``cached_view`` memoizes the region mapper's output and
    must be reset whenever ``data`` changes.
    """

    id: str
    type: str
    data: dict[str, Any] | None = None
    cached_view: Any = None


@dataclasses.dataclass(frozen=True)
class DataObjectUpdateRecord:
    """Sparse field changes to deep-merge into an existing object's data."""

    id: str
    changes: dict[str, Any]


def deep_merged(base: dict, changes: dict) -> dict:
    """
    Return a copy of *base* with *changes* merged in.

    Nested mappings merge key by key; any other value replaces the old one.
    """
    result = dict(base)
    for key, value in changes.items():
        current = result.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            result[key] = deep_merged(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _split(key_path: str) -> list[str]:
    return [part for part in key_path.split(".") if part]


def get_key_path(data: dict, key_path: str, default: Any = None) -> Any:
    """Read a dotted key path such as ``properties.title``."""
    node: Any = data
    for part in _split(key_path):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def has_key_path(data: dict, key_path: str) -> bool:
    return get_key_path(data, key_path, _MISSING) is not _MISSING


def set_key_path(data: dict, key_path: str, value: Any) -> bool:
    """
    Write *value* at an existing dotted key path.

    Returns False, leaving *data* untouched, when any segment is missing.
    """
    parts = _split(key_path)
    if not parts:
        return False
    parent = get_key_path(data, ".".join(parts[:-1]), _MISSING) if len(parts) > 1 else data
    if not isinstance(parent, dict) or parts[-1] not in parent:
        return False
    parent[parts[-1]] = value
    return True
