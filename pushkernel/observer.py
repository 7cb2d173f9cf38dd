"""
Push Kernel — Observed Tree

observe(host, key, callback) turns one field of a StateObject into a tracked
field. Reading it returns a view (TrackedMapping / TrackedSequence) over the
stored object; every write or delete made through a view, at any depth, is
staged into one sparse DiffTree per turn and delivered to callback on the
next turn.

  host.state["count"] = 1
  host.state["count"] = 2
  host.state.label = "x"
  # next turn: callback(DiffTree({"count": 2, "label": "x"}))

Diff shape:
  {"a": {"b": 1}}   a.b was set to 1, nothing else under a changed
  {"a": None}       a was deleted
  {"items": [...]}  sequences are atomic: any change re-stages the whole list

Staged values are deep copies taken at write time. Direct mutation of the
underlying objects, bypassing the views, is not tracked.
"""

from __future__ import annotations

import copy
import logging
import operator
from collections.abc import Callable, Iterable, MutableMapping, MutableSequence
from typing import Any

from pushkernel.errors import InvalidArgument
from pushkernel.fields import FieldKind, StateObject
from pushkernel.scheduling import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)

_MISSING: Any = object()
_DELETED: Any = object()


class DiffTree(dict):
    """Sparse nested diff. None leaves are deletions, nested DiffTrees are partial changes."""

    def __repr__(self) -> str:
        return f"DiffTree({dict.__repr__(self)})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_sequence(value: Any) -> bool:
    return isinstance(value, MutableSequence) and not isinstance(value, bytearray)


def is_container(value: Any) -> bool:
    return isinstance(value, MutableMapping) or is_sequence(value)


def unwrap(value: Any) -> Any:
    """Return the object behind a tracked view, or value itself."""
    if isinstance(value, (TrackedMapping, TrackedSequence)):
        return value._node.target
    return value


def _detach(value: Any) -> Any:
    return copy.deepcopy(unwrap(value))


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class TrackedNode:
    """
    One node per object reached through a view.

    path locates the node's entries inside the turn's aggregate. anchor is the
    outermost sequence node at or above this one; when set, every mutation
    re-stages the anchor's whole sequence instead of a sparse entry.
    """

    __slots__ = ("root", "target", "path", "anchor", "children", "attached", "_view")

    def __init__(self, root: RootNode | None, target: Any, path: tuple, anchor: TrackedNode | None) -> None:
        self.root = root if root is not None else self
        self.target = target
        self.path = path
        self.anchor = anchor
        self.children: dict[Any, TrackedNode] = {}
        self.attached = True
        self._view: TrackedMapping | TrackedSequence | None = None
        if self.anchor is None and is_sequence(target):
            self.anchor = self

    @property
    def view(self) -> TrackedMapping | TrackedSequence:
        if self._view is None:
            self._view = TrackedSequence(self) if is_sequence(self.target) else TrackedMapping(self)
        return self._view

    def detach(self) -> None:
        """Mark this subtree as no longer part of the observed tree."""
        self.attached = False
        self._drop_children()

    def _drop_children(self) -> None:
        for child in self.children.values():
            child.detach()
        self.children.clear()

    def _drop_child(self, key: Any) -> None:
        child = self.children.pop(key, None)
        if child is not None:
            child.detach()

    # -- reads -------------------------------------------------------------

    def read(self, key: Any) -> Any:
        value = unwrap(self.target[key])
        if not is_container(value):
            return value
        return self.child(key, value).view

    def child(self, key: Any, value: Any) -> TrackedNode:
        node = self.children.get(key)
        if node is None or node.target is not value:
            if node is not None:
                node.detach()
            node = TrackedNode(self.root, value, self.path + (key,), self.anchor)
            node.attached = self.attached
            self.children[key] = node
        return node

    # -- writes ------------------------------------------------------------

    def write(self, key: Any, value: Any) -> None:
        value = unwrap(value)
        self._prepare()
        self.target[key] = value
        self._drop_child(key)
        self._record(key, value)

    def remove(self, key: Any) -> None:
        self._prepare()
        del self.target[key]
        self._drop_child(key)
        self._record(key, _DELETED)

    def mutate_sequence(self, operation: Callable[..., Any], *args: Any) -> Any:
        self._prepare()
        result = operation(self.target, *args)
        self._reindex_children()
        self._record(None, _MISSING)
        return result

    def _prepare(self) -> None:
        # Scheduled before the target changes: a SchedulingError leaves target and aggregate as they were
        if self.attached:
            self.root.schedule()

    def _reindex_children(self) -> None:
        """Re-key child nodes by their element's new index; detach the ones that left the sequence."""
        positions = {id(item): index for index, item in enumerate(self.target)}
        children: dict[Any, TrackedNode] = {}
        for node in self.children.values():
            index = positions.get(id(node.target))
            if index is None or index in children:
                node.detach()
                continue
            node.path = self.path + (index,)
            children[index] = node
        self.children = children

    def _record(self, key: Any, value: Any) -> None:
        if not self.attached:
            return
        if self.anchor is not None:
            self.root.stage(self.anchor.path, self.anchor.target)
        else:
            self.root.stage(self.path + (key,), value)


class RootNode(TrackedNode):
    """Top-level node of one observed field. Owns the turn's aggregate and its delivery."""

    __slots__ = ("callback", "scheduler", "name", "pending", "aggregate")

    def __init__(
        self,
        target: Any,
        callback: Callable[[Any], Any],
        scheduler: Scheduler,
        name: str = "",
    ) -> None:
        super().__init__(None, target, (), None)
        self.callback = callback
        self.scheduler = scheduler
        self.name = name
        self.pending = False
        self.aggregate: Any = DiffTree()

    def current(self) -> Any:
        return self.view if is_container(self.target) else self.target

    def retarget(self, value: Any) -> None:
        """Point the root at a new object, invalidating its view and every child node."""
        self._drop_children()
        self.target = value
        self._view = None
        self.anchor = self if is_sequence(value) else None

    def replace(self, value: Any) -> None:
        """
        Wholesale replacement of the observed value.

        Folded into the pending delivery when a flush is already scheduled,
        delivered to the callback right away otherwise.
        """
        self.retarget(value)
        if self.pending:
            self.aggregate = _detach(value)
            return
        self.callback(value)

    def stage(self, path: tuple, value: Any) -> None:
        """Record value (or a deletion) at path in the turn's aggregate and schedule delivery."""
        if not path:
            self.aggregate = _detach(value)
            self.schedule()
            return

        container = self.aggregate
        partial = isinstance(container, DiffTree)
        for key in path[:-1]:
            if not partial:
                container = container[key]
                continue
            entry = container.get(key)
            if isinstance(entry, DiffTree):
                container = entry
            elif entry is None:
                entry = DiffTree()
                container[key] = entry
                container = entry
            else:
                # Replaced earlier in this turn: edit the staged copy directly
                container = entry
                partial = False

        last = path[-1]
        if value is _DELETED:
            if partial:
                container[last] = None
            else:
                container.pop(last, None)
        else:
            container[last] = _detach(value)
        self.schedule()

    def schedule(self) -> None:
        if self.pending:
            return
        self.scheduler.schedule(self.flush)
        self.pending = True

    def flush(self) -> None:
        payload, self.aggregate = self.aggregate, DiffTree()
        self.pending = False
        if isinstance(payload, DiffTree) and not payload:
            # Every mutation this turn raised before changing anything
            return
        logger.debug("observer: flushing %s", self.name)
        try:
            self.callback(payload)
        except Exception:
            logger.exception("observer: callback failed for %s", self.name)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class TrackedMapping(MutableMapping):
    """Mapping view over a tracked node. Item and attribute access are equivalent."""

    __slots__ = ("_node",)

    def __init__(self, node: TrackedNode) -> None:
        object.__setattr__(self, "_node", node)

    def __getitem__(self, key: Any) -> Any:
        return self._node.read(key)

    def __setitem__(self, key: Any, value: Any) -> None:
        self._node.write(key, value)

    def __delitem__(self, key: Any) -> None:
        self._node.remove(key)

    def __iter__(self):
        return iter(self._node.target)

    def __len__(self) -> int:
        return len(self._node.target)

    def __contains__(self, key: object) -> bool:
        return key in self._node.target

    def pop(self, key: Any, *default: Any) -> Any:
        target = self._node.target
        if key not in target:
            if default:
                return default[0]
            raise KeyError(key)
        value = target[key]
        self._node.remove(key)
        return value

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
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __eq__(self, other: object) -> bool:
        return self._node.target == unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __deepcopy__(self, memo: dict) -> Any:
        return copy.deepcopy(self._node.target, memo)

    def __copy__(self) -> Any:
        return copy.copy(self._node.target)

    def __repr__(self) -> str:
        return f"TrackedMapping({self._node.target!r})"


class TrackedSequence(MutableSequence):
    """Sequence view over a tracked node. Any mutation re-stages the whole sequence."""

    __slots__ = ("_node",)

    def __init__(self, node: TrackedNode) -> None:
        self._node = node

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return [self._node.read(i) for i in range(len(self._node.target))[index]]
        return self._node.read(index)

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            value = [unwrap(item) for item in value]
        else:
            value = unwrap(value)
        self._node.mutate_sequence(operator.setitem, index, value)

    def __delitem__(self, index: Any) -> None:
        self._node.mutate_sequence(operator.delitem, index)

    def __len__(self) -> int:
        return len(self._node.target)

    def insert(self, index: int, value: Any) -> None:
        self._node.mutate_sequence(lambda target: target.insert(index, unwrap(value)))

    def extend(self, values: Iterable[Any]) -> None:
        items = [unwrap(value) for value in values]
        self._node.mutate_sequence(lambda target: target.extend(items))

    def pop(self, index: int = -1) -> Any:
        return self._node.mutate_sequence(lambda target: target.pop(index))

    def remove(self, value: Any) -> None:
        self._node.mutate_sequence(lambda target: target.remove(unwrap(value)))

    def reverse(self) -> None:
        self._node.mutate_sequence(lambda target: target.reverse())

    def __eq__(self, other: object) -> bool:
        return self._node.target == unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __deepcopy__(self, memo: dict) -> Any:
        return copy.deepcopy(self._node.target, memo)

    def __copy__(self) -> Any:
        return copy.copy(self._node.target)

    def __repr__(self) -> str:
        return f"TrackedSequence({self._node.target!r})"


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------


class Binding:
    """
    Tracked accessor installed on one field of a host StateObject.

    Reads return the root view (or the scalar value). Writes replace the
    value wholesale and report it to the callback.
    """

    def __init__(
        self,
        host: StateObject,
        key: str,
        callback: Callable[[Any], Any],
        scheduler: Scheduler,
    ) -> None:
        self.host = host
        self.key = key
        self.callback = callback

        field = host.describe(key)
        self._original = field
        if field is not None and field.kind is FieldKind.ACCESSOR:
            self._read = field.getter or (lambda: None)
            self._write = field.setter
        else:
            self._value = field.value if field is not None else None
            self._read = lambda: self._value
            self._write = self._store

        self.root = RootNode(unwrap(self._read()), callback, scheduler, name=key)
        # A synthesized field stays hidden until its first assignment
        host.define(key, getter=self.get, setter=self.set, visible=field.visible if field is not None else False)

    def _store(self, value: Any) -> None:
        self._value = value

    def get(self) -> Any:
        value = unwrap(self._read())
        if value is not self.root.target:
            self.root.retarget(value)
        return self.root.current()

    def set(self, value: Any) -> None:
        field = self.host.describe(self.key)
        if field is not None and not field.visible:
            field.visible = True
        value = unwrap(value)
        self._write(value)
        self.root.replace(value)

    @property
    def pending(self) -> bool:
        return self.root.pending

    def unobserve(self) -> None:
        """Put back a plain field holding the current value (or the original accessor)."""
        field = self.host.describe(self.key)
        visible = field.visible if field is not None else True
        original = self._original
        if original is not None and original.kind is FieldKind.ACCESSOR:
            self.host.define(self.key, getter=original.getter, setter=original.setter, visible=visible)
        else:
            self.host.define(self.key, unwrap(self._read()), visible=visible)
        self.root.detach()


def observe(
    host: StateObject,
    key: str,
    callback: Callable[[Any], Any],
    *,
    scheduler: Scheduler | None = None,
) -> Binding | None:
    """
    Track every change to host[key] and report it to callback.

    callback receives a DiffTree for nested changes (once per turn) or the raw
    new value when the field itself is reassigned. Returns None, leaving the
    field alone, when it is a getter-only accessor.
    """
    if not isinstance(host, StateObject):
        raise InvalidArgument(f"Host needs to be a StateObject: {host!r}")
    if not callable(callback):
        raise InvalidArgument(f"Callback needs to be callable: {callback!r}")

    field = host.describe(key)
    if field is not None and field.kind is FieldKind.ACCESSOR and field.setter is None:
        logger.debug("observer: %s is getter-only, not observed", key)
        return None

    return Binding(host, key, callback, scheduler or AsyncioScheduler())
