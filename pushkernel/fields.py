"""
Push Kernel — Field Metadata

A StateObject is a plain mutable object whose fields each carry an explicit
metadata record: value or accessor, visible or hidden, locked or not.

Visibility controls enumeration only. A hidden field keeps its storage and
stays readable and writable by key. A locked field can never be written,
deleted or redefined.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pushkernel.errors import AssignmentError, LockedFieldError

_MISSING: Any = object()


class FieldKind(str, Enum):
    VALUE = "value"
    ACCESSOR = "accessor"


@dataclass
class Field:
    """Metadata and storage for one field of a StateObject."""

    kind: FieldKind = FieldKind.VALUE
    value: Any = None
    getter: Callable[[], Any] | None = None
    setter: Callable[[Any], None] | None = None
    locked: bool = False
    visible: bool = True


class StateObject(MutableMapping):
    """
    Mutable mapping with per-field metadata.

    Fields are reachable by item (obj["x"]) and attribute (obj.x) access.
    Names starting with an underscore are reserved for the object itself.
    """

    def __init__(self, data: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        object.__setattr__(self, "_fields", {})
        for key, value in {**(data or {}), **kwargs}.items():
            self.define(key, value)

    # -- metadata ----------------------------------------------------------

    def define(
        self,
        key: str,
        value: Any = _MISSING,
        *,
        getter: Callable[[], Any] | None = None,
        setter: Callable[[Any], None] | None = None,
        locked: bool = False,
        visible: bool = True,
    ) -> Field:
        """Create or replace the field for key. Accessor fields take getter/setter instead of value."""
        current = self._fields.get(key)
        if current is not None and current.locked:
            raise LockedFieldError(key)

        if getter is not None or setter is not None:
            field = Field(FieldKind.ACCESSOR, getter=getter, setter=setter, locked=locked, visible=visible)
        else:
            field = Field(FieldKind.VALUE, None if value is _MISSING else value, locked=locked, visible=visible)

        self._fields[key] = field
        return field

    def describe(self, key: str) -> Field | None:
        return self._fields.get(key)

    def has_field(self, key: str) -> bool:
        return key in self._fields

    def hide(self, key: str) -> None:
        self._fields[key].visible = False

    def reveal(self, key: str) -> None:
        self._fields[key].visible = True

    def is_visible(self, key: str) -> bool:
        field = self._fields.get(key)
        return field is not None and field.visible

    def is_locked(self, key: str) -> bool:
        field = self._fields.get(key)
        return field is not None and field.locked

    def to_dict(self) -> dict[str, Any]:
        """Plain nested copy of the visible fields."""
        from pushkernel.wire import to_wire

        return to_wire(self)

    # -- mapping protocol --------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        field = self._fields[key]
        if field.kind is FieldKind.ACCESSOR:
            return field.getter() if field.getter is not None else None
        return field.value

    def __setitem__(self, key: str, value: Any) -> None:
        field = self._fields.get(key)
        if field is None:
            self._fields[key] = Field(FieldKind.VALUE, value)
            return
        if field.locked:
            raise LockedFieldError(key)
        if field.kind is FieldKind.ACCESSOR:
            if field.setter is None:
                raise AssignmentError(f"READ_ONLY: {key}")
            field.setter(value)
            return
        field.value = value

    def __delitem__(self, key: str) -> None:
        field = self._fields[key]
        if field.locked:
            raise LockedFieldError(key)
        del self._fields[key]

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __iter__(self) -> Iterator[str]:
        return (key for key, field in list(self._fields.items()) if field.visible)

    def __len__(self) -> int:
        return sum(1 for field in self._fields.values() if field.visible)

    # -- attribute access --------------------------------------------------

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __delattr__(self, name: str) -> None:
        if name.startswith("_"):
            object.__delattr__(self, name)
            return
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"StateObject({dict(self.items())!r})"


def describe(obj: Any, key: Any) -> Field | None:
    """
    Field metadata for key on any tree node.

    Plain mappings and sequences have no metadata: their entries are visible,
    unlocked value fields.
    """
    from pushkernel.observer import unwrap

    raw = unwrap(obj)
    if isinstance(raw, StateObject):
        return raw.describe(key)
    try:
        return Field(FieldKind.VALUE, raw[key])
    except (KeyError, IndexError, TypeError):
        return None
