"""Tests for SubscriberRegistry and notification dispatch."""

from formstate.dispatch import deliver, filter_field_state, filter_form_state, notify
from formstate.subscribers import SubscriberRegistry, normalize_mask


class TestRegistry:
    def test_indices_are_monotonic(self):
        reg = SubscriberRegistry()
        assert reg.add(print, ()) == 0
        assert reg.add(print, ()) == 1
        reg.remove(1)
        assert reg.add(print, ()) == 2  # never reused

    def test_remove_keeps_other_indices(self):
        reg = SubscriberRegistry()
        a = reg.add(print, ())
        b = reg.add(print, ())
        c = reg.add(print, ())
        reg.remove(b)
        assert [index for index, _ in reg.items()] == [a, c]
        assert b not in reg
        assert len(reg) == 2

    def test_remove_unknown_is_noop(self):
        reg = SubscriberRegistry()
        reg.remove(42)
        assert len(reg) == 0
        assert not reg


class TestNormalizeMask:
    def test_mapping(self):
        assert normalize_mask({"error": True, "value": False}) == {"error"}

    def test_iterable(self):
        assert normalize_mask(["error", "value"]) == {"error", "value"}

    def test_single_key(self):
        assert normalize_mask("error") == {"error"}


class TestFilters:
    def test_unchanged_masked_keys_filtered_out(self):
        state = {"valid": True, "dirty": False}
        assert filter_form_state(state, dict(state), frozenset({"valid"})) is None

    def test_force(self):
        state = {"valid": True, "dirty": False}
        assert filter_form_state(state, state, frozenset({"valid"}), True) == {"valid": True}

    def test_first_delivery(self):
        state = {"valid": True, "dirty": False}
        assert filter_form_state(state, None, frozenset({"dirty"})) == {"dirty": False}

    def test_unmasked_change_ignored(self):
        previous = {"valid": True, "dirty": False}
        state = {"valid": True, "dirty": True}
        assert filter_form_state(state, previous, frozenset({"valid"})) is None

    def test_equal_trees_are_not_changes(self):
        previous = {"values": {"a": 1}}
        state = {"values": {"a": 1}}
        assert filter_form_state(state, previous, frozenset({"values"})) is None
        state = {"values": {"a": 2}}
        assert filter_form_state(state, previous, frozenset({"values"})) == {"values": {"a": 2}}

    def test_field_payload_carries_handles(self):
        state = {"name": "foo", "change": print, "blur": print, "focus": print, "error": "x"}
        payload = filter_field_state(state, None, frozenset({"error"}))
        assert payload == state


class TestDeliver:
    def test_skips_repeat_payload(self):
        reg = SubscriberRegistry()
        log = []
        index = reg.add(log.append, {"valid": True})
        sub = reg.get(index)
        assert deliver(sub, {"valid": False}, {"valid": True}, filter_form_state)
        # a different previous state, but the same payload as last time
        assert not deliver(sub, {"valid": False}, {"valid": None}, filter_form_state)
        assert log == [{"valid": False}]

    def test_force_always_delivers(self):
        reg = SubscriberRegistry()
        log = []
        sub = reg.get(reg.add(log.append, ["valid"]))
        state = {"valid": True}
        deliver(sub, state, state, filter_form_state, force=True)
        deliver(sub, state, state, filter_form_state, force=True)
        assert log == [{"valid": True}, {"valid": True}]

    def test_notify_in_registration_order(self):
        reg = SubscriberRegistry()
        order = []
        reg.add(lambda p: order.append("a"), ["valid"])
        reg.add(lambda p: order.append("b"), ["valid"])
        notify(reg, {"valid": False}, {"valid": True}, filter_form_state)
        assert order == ["a", "b"]

    def test_observer_removed_mid_notify_is_skipped(self):
        reg = SubscriberRegistry()
        log = []
        second = None

        def first(payload):
            log.append("first")
            reg.remove(second)

        reg.add(first, ["valid"])
        second = reg.add(lambda p: log.append("second"), ["valid"])
        notify(reg, {"valid": False}, {"valid": True}, filter_form_state)
        assert log == ["first"]
