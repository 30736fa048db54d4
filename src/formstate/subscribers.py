"""Subscriber registry — observers keyed by a monotonically increasing index.

Entries are removed by index in O(1) without renumbering the others, so an
unsubscribe handle stays valid no matter what else comes and goes. Indices
are never reused within one registry.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Callable

Observer = Callable[[dict], None]
Mask = Mapping[str, bool] | Iterable[str]


def normalize_mask(mask: Mask) -> frozenset[str]:
    """Reduce a mask to the set of keys the observer wants.

    Accepts ``{"error": True, "value": False}`` or an iterable of key names.
    """
    if isinstance(mask, Mapping):
        return frozenset(key for key, wanted in mask.items() if wanted)
    if isinstance(mask, str):
        return frozenset((mask,))
    return frozenset(mask)


@dataclass
class Subscription:
    observer: Observer
    mask: frozenset[str]
    last_payload: dict | None = None


class SubscriberRegistry:
    """Insertion-ordered mapping of index -> Subscription."""

    __slots__ = ("_counter", "_entries")

    def __init__(self) -> None:
        self._counter = itertools.count()
        self._entries: dict[int, Subscription] = {}

    def add(self, observer: Observer, mask: Mask) -> int:
        index = next(self._counter)
        self._entries[index] = Subscription(observer, normalize_mask(mask))
        return index

    def remove(self, index: int) -> None:
        self._entries.pop(index, None)

    def get(self, index: int) -> Subscription | None:
        return self._entries.get(index)

    def items(self) -> list[tuple[int, Subscription]]:
        """Snapshot in registration order; safe against removal during iteration."""
        return list(self._entries.items())

    def __contains__(self, index: int) -> bool:
        return index in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"SubscriberRegistry({len(self._entries)} entries)"
