"""Notification dispatch — decide whether an observer hears about a change, and what.

Each observer carries a mask of the projection keys it cares about. A
delivery contains only those keys (field deliveries also always carry the
field's name and its bound change/blur/focus callables), and happens only
when one of the masked keys differs from the previous state, or when the
delivery is forced (first delivery after subscribing).
"""

from __future__ import annotations

from typing import Callable

from formstate.structure import shallow_equal
from formstate.subscribers import SubscriberRegistry, Subscription

StateFilter = Callable[[dict, "dict | None", frozenset, bool], "dict | None"]

# Keys holding trees: a fresh tree with the same entries is not a change.
_TREE_KEYS = frozenset(("values", "errors", "initial_values", "submit_errors"))

_FIELD_HANDLES = ("name", "change", "blur", "focus")


def _same(key: str, current, previous) -> bool:
    if key in _TREE_KEYS:
        return shallow_equal(current, previous)
    return current is previous or current == previous


def _collect(result: dict, state: dict, previous: dict | None, mask: frozenset) -> bool:
    """Copy masked keys into result; report whether any of them changed."""
    different = False
    for key in mask:
        value = state.get(key)
        result[key] = value
        if previous is None or not _same(key, value, previous.get(key)):
            different = True
    return different


def filter_form_state(
    state: dict, previous: dict | None, mask: frozenset, force: bool = False
) -> dict | None:
    result: dict = {}
    different = _collect(result, state, previous, mask) or previous is None
    return result if different or force else None


def filter_field_state(
    state: dict, previous: dict | None, mask: frozenset, force: bool = False
) -> dict | None:
    result = {key: state[key] for key in _FIELD_HANDLES}
    different = _collect(result, state, previous, mask) or previous is None
    return result if different or force else None


def deliver(
    subscription: Subscription,
    state: dict,
    previous: dict | None,
    state_filter: StateFilter,
    force: bool = False,
) -> bool:
    """Invoke one observer if its filtered view changed. Returns True if it was called."""
    payload = state_filter(state, previous, subscription.mask, force)
    if payload is None:
        return False
    if not force and shallow_equal(payload, subscription.last_payload):
        return False
    subscription.last_payload = payload
    subscription.observer(payload)
    return True


def notify(
    registry: SubscriberRegistry,
    state: dict,
    previous: dict | None,
    state_filter: StateFilter,
) -> None:
    """Deliver to every entry in registration order."""
    for index, subscription in registry.items():
        # an earlier observer may have unsubscribed this one
        if index in registry:
            deliver(subscription, state, previous, state_filter)
