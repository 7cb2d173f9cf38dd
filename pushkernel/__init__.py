"""
Push Kernel — the synchronization engine.

Components:
  fields      — StateObject: mutable object with per-field metadata
  observer    — observe(): deep change tracking, one DiffTree per turn
  scheduling  — turn schedulers (asyncio, manual)
  reconcile   — reconcile() / apply_diff(): patch a local tree in place
  replica     — receiving-side tree fed by pushed messages
  wire        — JSON helpers for DiffTrees
"""

from pushkernel.errors import (
    AssignmentError,
    InvalidArgument,
    LoaderError,
    LockedFieldError,
    PushStateError,
    SchedulingError,
)
from pushkernel.fields import Field, FieldKind, StateObject
from pushkernel.observer import (
    Binding,
    DiffTree,
    TrackedMapping,
    TrackedSequence,
    observe,
    unwrap,
)
from pushkernel.reconcile import ChangeEvent, apply_diff, reconcile
from pushkernel.replica import Replica
from pushkernel.scheduling import AsyncioScheduler, ManualScheduler
from pushkernel.wire import diff_from_wire, to_wire

__all__ = [
    "AssignmentError",
    "InvalidArgument",
    "LoaderError",
    "LockedFieldError",
    "PushStateError",
    "SchedulingError",
    "Field",
    "FieldKind",
    "StateObject",
    "Binding",
    "DiffTree",
    "TrackedMapping",
    "TrackedSequence",
    "observe",
    "unwrap",
    "ChangeEvent",
    "reconcile",
    "apply_diff",
    "Replica",
    "AsyncioScheduler",
    "ManualScheduler",
    "diff_from_wire",
    "to_wire",
]
