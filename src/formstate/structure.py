"""Value-tree helpers — path addressing and shallow comparison.

Form values and error trees are plain nested dicts/lists. Keys address them
with dot segments and bracketed integer indices, e.g. ``customers[0].name``.
Trees are never mutated in place: set_in() returns a new tree, so a tree
handed to an observer stays a stable snapshot.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_SEGMENT = re.compile(r"[^.\[\]]+")


class _FormErrorKey:
    """Reserved error-tree key for the whole-form error.

    Not a string, so it can never collide with a field path. Copying returns
    the same singleton.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "FORM_ERROR"

    def __copy__(self) -> _FormErrorKey:
        return self

    def __deepcopy__(self, memo) -> _FormErrorKey:
        return self

    def __reduce__(self) -> str:
        return "FORM_ERROR"


FORM_ERROR = _FormErrorKey()


def to_path(key: str | None) -> list[str]:
    """Split a field key into its segments: ``"a[0].b"`` -> ``["a", "0", "b"]``."""
    if key is None or key == "":
        return []
    if not isinstance(key, str):
        raise TypeError(f"to_path() expects a string, got {type(key).__name__}")
    return _SEGMENT.findall(key)


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment)
    if isinstance(current, (list, tuple)) and segment.isdigit():
        index = int(segment)
        return current[index] if index < len(current) else None
    return None


def get_in(tree: Any, key: str) -> Any:
    """Read the value at key, or None if any segment is missing."""
    current = tree
    for segment in to_path(key):
        if current is None:
            return None
        current = _step(current, segment)
    return current


def _assoc_key(current: Any, key: str, value: Any) -> dict | None:
    result = dict(current) if isinstance(current, Mapping) else {}
    if value is None:
        result.pop(key, None)
        return result or None
    result[key] = value
    return result


def _assoc_index(current: Any, index: int, value: Any) -> list | None:
    result = list(current) if isinstance(current, (list, tuple)) else []
    if value is None:
        if index < len(result):
            result[index] = None
        # trailing holes are trimmed; inner holes keep sibling positions
        while result and result[-1] is None:
            result.pop()
        return result or None
    if index >= len(result):
        result.extend([None] * (index + 1 - len(result)))
    result[index] = value
    return result


def _assoc(current: Any, path: list[str], value: Any) -> Any:
    segment, rest = path[0], path[1:]
    if rest:
        value = _assoc(_step(current, segment), rest, value)
    if segment.isdigit():
        return _assoc_index(current, int(segment), value)
    return _assoc_key(current, segment, value)


def set_in(tree: Mapping | None, key: str, value: Any) -> dict:
    """Return a copy of tree with value written at key.

    Missing containers are created: numeric segments make lists, others make
    dicts. Writing None removes the leaf, and any container the removal
    leaves empty is removed too. The result is always a dict.
    """
    path = to_path(key)
    if not path:
        raise ValueError("set_in() needs a non-empty key")
    return _assoc(tree, path, value) or {}


def shallow_equal(a: Any, b: Any) -> bool:
    """True if a and b are the same object, or mappings with equal top-level entries."""
    if a is b:
        return True
    if not isinstance(a, Mapping) or not isinstance(b, Mapping):
        return False
    if a.keys() != b.keys():
        return False
    for key, value in a.items():
        other = b[key]
        if value is not other and value != other:
            return False
    return True
