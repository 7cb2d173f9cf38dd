"""
StateObject field metadata -- Tests
"""

import copy

import pytest

from pushkernel.errors import AssignmentError, LockedFieldError
from pushkernel.fields import FieldKind, StateObject, describe


class TestStateObject:
    def test_item_and_attribute_access(self):
        obj = StateObject({"a": 1}, b=2)
        obj.c = 3
        obj["d"] = 4

        assert obj["a"] == 1
        assert obj.b == 2
        assert dict(obj) == {"a": 1, "b": 2, "c": 3, "d": 4}

    def test_missing_attribute(self):
        with pytest.raises(AttributeError):
            StateObject().nope

    def test_hidden_fields_are_not_enumerated(self):
        obj = StateObject(a=1, b=2)
        obj.hide("b")

        assert list(obj) == ["a"]
        assert len(obj) == 1
        assert "b" in obj
        assert obj.b == 2

        obj.reveal("b")
        assert list(obj) == ["a", "b"]

    def test_accessor_field(self):
        store = {"v": 1}
        obj = StateObject()
        obj.define("v", getter=lambda: store["v"], setter=lambda value: store.__setitem__("v", value))

        obj.v = 5
        assert store["v"] == 5
        assert obj.v == 5
        assert obj.describe("v").kind is FieldKind.ACCESSOR

    def test_read_only_accessor_rejects_writes(self):
        obj = StateObject()
        obj.define("v", getter=lambda: 1)

        with pytest.raises(AssignmentError):
            obj.v = 2

    def test_locked_field(self):
        obj = StateObject()
        obj.define("x", 1, locked=True)

        with pytest.raises(LockedFieldError):
            obj.x = 2
        with pytest.raises(LockedFieldError):
            del obj["x"]
        with pytest.raises(LockedFieldError):
            obj.define("x", 3)
        assert obj.is_locked("x")
        assert obj.x == 1

    def test_to_dict_skips_hidden_fields(self):
        obj = StateObject(a={"b": StateObject(c=1)}, hidden=0)
        obj.hide("hidden")

        assert obj.to_dict() == {"a": {"b": {"c": 1}}}

    def test_deepcopy_keeps_metadata(self):
        obj = StateObject(a={"b": 1})
        obj.define("x", 1, locked=True, visible=False)

        clone = copy.deepcopy(obj)
        clone.a["b"] = 2

        assert obj.a == {"b": 1}
        assert clone.is_locked("x")
        assert not clone.is_visible("x")


class TestDescribe:
    def test_plain_mapping_fields(self):
        field = describe({"a": None}, "a")
        assert field.kind is FieldKind.VALUE
        assert field.visible
        assert not field.locked

    def test_missing_key(self):
        assert describe({}, "a") is None
        assert describe(StateObject(), "a") is None
