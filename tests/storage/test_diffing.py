"""Tests for kvspine.storage.diffing."""

from kvspine.core.events.changes import CreateChange, UpdateChange
from kvspine.storage.diffing import classify_write, deep_equal


class TestDeepEqual:
    def test_nested_structures(self):
        assert deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        assert not deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 3}]})

    def test_tuple_equals_list(self):
        assert deep_equal((1, 2), [1, 2])

    def test_key_order_is_irrelevant(self):
        assert deep_equal({"a": 1, "b": 2}, {"b": 2, "a": 1})

    def test_falsy_values_are_distinct(self):
        assert not deep_equal(0, None)
        assert not deep_equal("", None)
        assert not deep_equal(False, 0)
        assert not deep_equal({"on": True}, {"on": 1})


class TestClassifyWrite:
    def test_absent_key_is_create(self):
        change = classify_write("main", "a", None, 1, existed=False)
        assert change == CreateChange(table="main", key="a", data=1)

    def test_changed_value_is_update(self):
        change = classify_write("main", "a", 1, 2, existed=True)
        assert change == UpdateChange(table="main", key="a", new_data=2, old_data=1)

    def test_equal_value_is_nothing(self):
        assert classify_write("main", "a", {"x": [1]}, {"x": [1]}, existed=True) is None

    def test_stored_none_still_counts_as_present(self):
        assert classify_write("main", "a", None, None, existed=True) is None
        assert isinstance(classify_write("main", "a", None, 0, existed=True), UpdateChange)
