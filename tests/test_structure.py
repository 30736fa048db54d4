"""Tests for path addressing and shallow comparison."""

import copy

import pytest

from formstate import FORM_ERROR, get_in, set_in, shallow_equal, to_path


class TestToPath:
    def test_dots_and_brackets(self):
        assert to_path("customers[0].firstName") == ["customers", "0", "firstName"]

    def test_empty(self):
        assert to_path("") == []
        assert to_path(None) == []

    def test_rejects_non_string(self):
        with pytest.raises(TypeError):
            to_path(5)


class TestGetIn:
    def test_nested(self):
        tree = {"a": {"b": [1, {"c": 2}]}}
        assert get_in(tree, "a.b[1].c") == 2
        assert get_in(tree, "a.b[0]") == 1

    def test_missing_is_none(self):
        tree = {"a": {"b": [1]}}
        assert get_in(tree, "a.x") is None
        assert get_in(tree, "a.b[5]") is None
        assert get_in(tree, "a.b[0].deeper") is None
        assert get_in(None, "a") is None


class TestSetIn:
    def test_creates_containers(self):
        assert set_in({}, "a.b[1].c", 3) == {"a": {"b": [None, {"c": 3}]}}

    def test_does_not_mutate(self):
        original = {"a": {"b": 1}}
        result = set_in(original, "a.c", 2)
        assert original == {"a": {"b": 1}}
        assert result == {"a": {"b": 1, "c": 2}}
        assert result["a"] is not original["a"]

    def test_none_removes_leaf_and_empty_parents(self):
        assert set_in({"a": {"b": 1}, "x": 1}, "a.b", None) == {"x": 1}
        assert set_in({"a": 1}, "a", None) == {}

    def test_none_trims_list_tail(self):
        assert set_in({"items": [1, 2]}, "items[1]", None) == {"items": [1]}
        assert set_in({"items": [1, 2]}, "items[0]", None) == {"items": [None, 2]}

    def test_removing_missing_path_is_harmless(self):
        assert set_in({"a": 1}, "b.c", None) == {"a": 1}

    def test_preserves_form_error_key(self):
        assert set_in({FORM_ERROR: "bad", "a": "x"}, "a", None) == {FORM_ERROR: "bad"}

    def test_requires_key(self):
        with pytest.raises(ValueError):
            set_in({}, "", 1)


class TestShallowEqual:
    def test_identity(self):
        d = {"a": 1}
        assert shallow_equal(d, d)
        assert shallow_equal(None, None)

    def test_equal_entries(self):
        assert shallow_equal({"a": 1, "b": "x"}, {"b": "x", "a": 1})
        assert shallow_equal({"a": [1]}, {"a": [1]})

    def test_differences(self):
        assert not shallow_equal({"a": 1}, {"a": 2})
        assert not shallow_equal({"a": 1}, {"a": 1, "b": 2})
        assert not shallow_equal(None, {})


class TestFormError:
    def test_survives_deepcopy(self):
        tree = copy.deepcopy({FORM_ERROR: "bad"})
        assert tree[FORM_ERROR] == "bad"

    def test_repr(self):
        assert repr(FORM_ERROR) == "FORM_ERROR"
