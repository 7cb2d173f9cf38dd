"""
Push Kernel — Patch Reconciler

reconcile(previous, incoming) mutates previous in place until its visible
fields match incoming, field by field:

  1. identical values               → nothing
  2. locked field on previous       → report "locked", keep the old value
  3. absent or hidden on previous   → assign, reveal, report "added"
  4. absent (or None) on incoming   → delete value fields, clear and hide
                                      accessor fields, report "removed"
  5. mapping on both sides          → recurse with "<path>/"
  6. anything else                  → assign, report "updated"

Failed assignments are reported and skipped; reconciliation always carries
on with the remaining keys. Nothing is returned.

Snapshot mode (default) treats keys missing from incoming as removed. Diff
mode (sparse=True, or incoming is a DiffTree) leaves them alone; only None
leaves remove. Inside a diff, nested DiffTrees are partial changes and
nested plain mappings are full replacements.

Sequences are replaced atomically, never patched by index.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pushkernel.errors import LockedFieldError
from pushkernel.fields import FieldKind, StateObject, describe
from pushkernel.observer import DiffTree, is_container, is_sequence, unwrap

logger = logging.getLogger(__name__)

_MISSING: Any = object()

ADDED = "added"
REMOVED = "removed"
UPDATED = "updated"
LOCKED = "locked"
ADD_FAILED = "add_failed"
REMOVE_FAILED = "remove_failed"
UPDATE_FAILED = "update_failed"

FAILURE_KINDS = {LOCKED, ADD_FAILED, REMOVE_FAILED, UPDATE_FAILED}


@dataclass
class ChangeEvent:
    """One reconciliation outcome for one field."""

    kind: str
    path: str
    value: Any = None
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.kind in FAILURE_KINDS


Reporter = Callable[[ChangeEvent], Any]


def log_change(event: ChangeEvent) -> None:
    """Default reporter: changes at INFO, failures at ERROR."""
    if event.kind == ADDED:
        logger.info("Added property '%s' with value: %r", event.path, event.value)
    elif event.kind == REMOVED:
        logger.info("Removed property: %s", event.path)
    elif event.kind == UPDATED:
        logger.info("Updated property '%s' to: %r", event.path, event.value)
    elif event.kind == LOCKED:
        logger.error("Unable to modify locked property: %s", event.path)
    elif event.kind == ADD_FAILED:
        logger.error("Unable to add property: %s (%s)", event.path, event.error)
    elif event.kind == REMOVE_FAILED:
        logger.error("Unable to remove property: %s (%s)", event.path, event.error)
    else:
        logger.error("Unable to update property: %s (%s)", event.path, event.error)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def reconcile(
    previous: Any,
    incoming: Mapping[str, Any],
    path_prefix: str = "",
    *,
    sparse: bool | None = None,
    report: Reporter | None = None,
) -> None:
    """Mutate previous toward incoming. See the module docstring for the rules."""
    if sparse is None:
        sparse = isinstance(incoming, DiffTree)
    report = report or log_change

    if sparse:
        keys = list(incoming)
    else:
        keys = list(dict.fromkeys([*previous, *incoming]))

    for key in keys:
        _reconcile_key(previous, incoming, key, path_prefix, sparse, report)


def apply_diff(previous: Any, diff: Mapping[str, Any], *, report: Reporter | None = None) -> None:
    """Apply a DiffTree: untouched keys stay, None leaves remove."""
    reconcile(previous, diff, sparse=True, report=report)


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _reconcile_key(
    previous: Any,
    incoming: Mapping[str, Any],
    key: Any,
    path_prefix: str,
    sparse: bool,
    report: Reporter,
) -> None:
    old = _lookup(previous, key)
    new = _lookup(incoming, key)
    path = f"{path_prefix}{key}"

    if _same(old, new):
        return

    field = describe(previous, key)
    supplied = new is not _MISSING and new is not None

    if field is not None and field.locked:
        if new is not _MISSING:
            report(ChangeEvent(LOCKED, path, new, LockedFieldError(key)))
        return

    if field is None or not field.visible:
        if not supplied:
            return
        value = _materialize(new)
        try:
            previous[key] = value
        except Exception as e:
            report(ChangeEvent(ADD_FAILED, path, new, e))
            return
        raw = unwrap(previous)
        if isinstance(raw, StateObject) and raw.has_field(key) and not raw.is_visible(key):
            raw.reveal(key)
        report(ChangeEvent(ADDED, path, value))
        return

    if not supplied:
        try:
            if field.kind is FieldKind.ACCESSOR:
                if field.setter is not None:
                    field.setter(None)
                unwrap(previous).hide(key)
            else:
                del previous[key]
        except Exception as e:
            report(ChangeEvent(REMOVE_FAILED, path, None, e))
            return
        report(ChangeEvent(REMOVED, path))
        return

    if _is_mapping(old) and _is_mapping(new):
        reconcile(
            old,
            new,
            f"{path}/",
            sparse=sparse and isinstance(new, DiffTree),
            report=report,
        )
        return

    value = _materialize(new)
    try:
        previous[key] = value
    except Exception as e:
        report(ChangeEvent(UPDATE_FAILED, path, new, e))
        return
    report(ChangeEvent(UPDATED, path, value))


def _lookup(obj: Any, key: Any) -> Any:
    if key not in obj:
        return _MISSING
    return obj[key]


def _is_mapping(value: Any) -> bool:
    return isinstance(unwrap(value), Mapping)


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    raw_a, raw_b = unwrap(a), unwrap(b)
    if raw_a is raw_b:
        return True
    if is_container(raw_a) or is_container(raw_b):
        return is_sequence(raw_a) and is_sequence(raw_b) and raw_a == raw_b
    return type(raw_a) is type(raw_b) and raw_a == raw_b


def _materialize(value: Any) -> Any:
    """Detached plain copy of an incoming value. DiffTrees lose their deletion leaves."""
    if isinstance(value, DiffTree):
        return {key: _materialize(item) for key, item in value.items() if item is not None}
    return copy.deepcopy(unwrap(value))
