"""
Patch Reconciler -- Tests

Covers:
  - Snapshot mode: add, update, remove, recursion with "a/b" paths
  - Locked fields are never overwritten
  - Visibility toggling for accessor vs value fields
  - Failed assignments are reported and skipped
  - Diff mode: untouched keys stay, None leaves remove
  - Atomic sequences
  - Round-trip convergence
  - Producer → consumer: a flushed diff reproduces the producer's tree
"""

import copy
import logging

import pytest

from pushkernel.fields import StateObject
from pushkernel.observer import DiffTree, observe
from pushkernel.reconcile import (
    ADD_FAILED,
    ADDED,
    LOCKED,
    REMOVED,
    UPDATE_FAILED,
    UPDATED,
    apply_diff,
    reconcile,
)
from pushkernel.scheduling import ManualScheduler
from pushkernel.wire import to_wire

# ============================================================================
# Helpers
# ============================================================================


@pytest.fixture
def events():
    return []


def kinds(events):
    return [(event.kind, event.path) for event in events]


def _reject(value):
    raise ValueError("rejected")


# ============================================================================
# 1. Snapshot mode
# ============================================================================


class TestSnapshotMode:
    def test_update_add_remove(self, events):
        previous = {"a": 1, "b": 2}
        reconcile(previous, {"a": 5, "c": 3}, report=events.append)

        assert previous == {"a": 5, "c": 3}
        assert kinds(events) == [(UPDATED, "a"), (REMOVED, "b"), (ADDED, "c")]

    def test_identical_values_are_not_reported(self, events):
        reconcile({"a": 1, "l": [1, 2], "s": "x"}, {"a": 1, "l": [1, 2], "s": "x"}, report=events.append)
        assert events == []

    def test_type_change_is_an_update(self, events):
        previous = {"a": 1}
        reconcile(previous, {"a": True}, report=events.append)

        assert previous["a"] is True
        assert kinds(events) == [(UPDATED, "a")]

    def test_nested_paths(self, events):
        previous = {"a": {"b": {"c": 1}, "keep": 0}}
        reconcile(previous, {"a": {"b": {"c": 2}, "keep": 0}}, report=events.append)

        assert previous == {"a": {"b": {"c": 2}, "keep": 0}}
        assert kinds(events) == [(UPDATED, "a/b/c")]

    def test_path_prefix(self, events):
        reconcile({"x": 1}, {"x": 2}, "root/", report=events.append)
        assert kinds(events) == [(UPDATED, "root/x")]

    def test_added_values_are_copies(self):
        incoming = {"a": {"b": [1]}}
        previous = {}
        reconcile(previous, incoming)

        incoming["a"]["b"].append(2)
        assert previous == {"a": {"b": [1]}}

    def test_none_counts_as_absent(self, events):
        previous = {"a": 1}
        reconcile(previous, {"a": None, "b": None}, report=events.append)

        assert previous == {}
        assert kinds(events) == [(REMOVED, "a")]

    def test_default_reporter_logs(self, caplog):
        with caplog.at_level(logging.INFO, logger="pushkernel.reconcile"):
            reconcile({"a": 1}, {"a": 1, "c": 3})
        assert "Added property 'c' with value: 3" in caplog.text


# ============================================================================
# 2. Locked fields
# ============================================================================


class TestLockedFields:
    def test_locked_field_is_kept(self, events):
        previous = StateObject()
        previous.define("x", 1, locked=True)

        reconcile(previous, {"x": 2}, report=events.append)

        assert previous.x == 1
        assert kinds(events) == [(LOCKED, "x")]
        assert events[0].failed

    def test_locked_field_absent_from_incoming_is_silent(self, events):
        previous = StateObject()
        previous.define("x", 1, locked=True)

        reconcile(previous, {}, report=events.append)

        assert previous.x == 1
        assert events == []

    def test_locked_failure_logged_and_siblings_continue(self, caplog):
        previous = StateObject(y=0)
        previous.define("x", 1, locked=True)

        with caplog.at_level(logging.ERROR, logger="pushkernel.reconcile"):
            reconcile(previous, {"x": 2, "y": 1})

        assert previous.x == 1
        assert previous.y == 1
        assert "Unable to modify locked property: x" in caplog.text


# ============================================================================
# 3. Visibility
# ============================================================================


class TestVisibility:
    def test_accessor_field_is_hidden_not_deleted(self, events):
        store = {"y": 1}
        previous = StateObject()
        previous.define("y", getter=lambda: store["y"], setter=lambda value: store.__setitem__("y", value))

        reconcile(previous, {}, report=events.append)

        assert "y" in previous
        assert list(previous) == []
        assert store["y"] is None
        assert kinds(events) == [(REMOVED, "y")]

    def test_value_field_is_deleted(self, events):
        previous = StateObject(y=1)
        reconcile(previous, {}, report=events.append)

        assert "y" not in previous
        assert kinds(events) == [(REMOVED, "y")]

    def test_hidden_field_is_revealed_on_add(self, events):
        store = {"y": 1}
        previous = StateObject()
        previous.define("y", getter=lambda: store["y"], setter=lambda value: store.__setitem__("y", value))
        reconcile(previous, {})

        reconcile(previous, {"y": 3}, report=events.append)

        assert list(previous) == ["y"]
        assert store["y"] == 3
        assert kinds(events) == [(ADDED, "y")]

    def test_hidden_value_field_is_revealed(self):
        previous = StateObject()
        previous.define("z", 0, visible=False)

        reconcile(previous, {"z": 4})

        assert previous.is_visible("z")
        assert previous.z == 4


# ============================================================================
# 4. Failed assignments
# ============================================================================


class TestAssignmentFailures:
    def test_add_failure_is_reported(self, events):
        previous = StateObject()
        previous.define("x", getter=lambda: None, setter=_reject, visible=False)

        reconcile(previous, {"x": 1, "ok": 2}, report=events.append)

        assert kinds(events) == [(ADD_FAILED, "x"), (ADDED, "ok")]
        assert isinstance(events[0].error, ValueError)
        assert not previous.is_visible("x")

    def test_update_failure_is_reported(self, events):
        previous = StateObject()
        previous.define("x", getter=lambda: 0, setter=_reject)

        reconcile(previous, {"x": 1}, report=events.append)

        assert kinds(events) == [(UPDATE_FAILED, "x")]
        assert previous.x == 0


# ============================================================================
# 5. Diff mode
# ============================================================================


class TestDiffMode:
    @pytest.fixture
    def previous(self):
        return {"a": {"b": 1, "c": 2}, "d": 3}

    def test_untouched_keys_stay(self, previous):
        apply_diff(previous, DiffTree(a=DiffTree(b=5)))
        assert previous == {"a": {"b": 5, "c": 2}, "d": 3}

    def test_none_leaf_removes(self, previous, events):
        apply_diff(previous, DiffTree(a=DiffTree(b=None)), report=events.append)

        assert previous == {"a": {"c": 2}, "d": 3}
        assert kinds(events) == [(REMOVED, "a/b")]

    def test_difftree_switches_mode_automatically(self, previous):
        reconcile(previous, DiffTree(d=4))
        assert previous == {"a": {"b": 1, "c": 2}, "d": 4}

    def test_plain_mapping_inside_diff_replaces(self, previous):
        apply_diff(previous, DiffTree(a={"z": 1}))
        assert previous == {"a": {"z": 1}, "d": 3}

    def test_new_subtree_from_diff_drops_deletions(self, previous):
        apply_diff(previous, DiffTree(n=DiffTree(x=1, y=None)))
        assert previous["n"] == {"x": 1}

    def test_deleting_hidden_accessor(self):
        store = {"y": 1}
        previous = StateObject()
        previous.define("y", getter=lambda: store["y"], setter=lambda value: store.__setitem__("y", value))

        apply_diff(previous, DiffTree(y=None))

        assert not previous.is_visible("y")


# ============================================================================
# 6. Sequences
# ============================================================================


class TestSequences:
    def test_sequences_are_replaced_atomically(self, events):
        incoming = {"l": [1]}
        previous = {"l": [1, 2, 3]}

        reconcile(previous, incoming, report=events.append)

        assert previous == {"l": [1]}
        assert previous["l"] is not incoming["l"]
        assert kinds(events) == [(UPDATED, "l")]

    def test_mapping_replaced_by_sequence(self):
        previous = {"l": {"0": "a"}}
        reconcile(previous, {"l": ["a"]})
        assert previous == {"l": ["a"]}


# ============================================================================
# 7. Convergence
# ============================================================================


class TestConvergence:
    def test_round_trip(self):
        tree = {"a": 1, "b": {"c": 2}}
        second = {"a": 5, "x": {"y": 1}}
        third = {"b": {"c": 3, "d": [1, 2]}, "z": "q"}

        via_second = copy.deepcopy(tree)
        reconcile(via_second, second)
        reconcile(via_second, third)

        direct = copy.deepcopy(tree)
        reconcile(direct, third)

        assert via_second == direct == third

    def test_state_object_converges(self):
        previous = StateObject(a=1, b={"c": 1})
        reconcile(previous, {"b": {"c": 2}, "e": [1]})
        assert to_wire(previous) == {"b": {"c": 2}, "e": [1]}


# ============================================================================
# 8. Producer → consumer
# ============================================================================


class TestProducerConsumer:
    def test_flushed_diff_reproduces_tree(self):
        scheduler = ManualScheduler()
        initial = {"a": {"b": 1, "c": 2}, "keep": True}
        host = StateObject(state=copy.deepcopy(initial))
        calls = []
        observe(host, "state", calls.append, scheduler=scheduler)
        replica = copy.deepcopy(initial)

        host.state["a"]["b"] = 5
        del host.state["a"]["c"]
        host.state["n"] = [1]
        scheduler.run_pending()

        apply_diff(replica, calls[0])
        assert replica == to_wire(host.state) == {"a": {"b": 5}, "keep": True, "n": [1]}

    def test_reconciling_into_tracked_view_produces_diff(self):
        scheduler = ManualScheduler()
        host = StateObject(state={"a": 1, "b": 2})
        calls = []
        observe(host, "state", calls.append, scheduler=scheduler)

        reconcile(host.state, {"a": 1, "c": 3})
        scheduler.run_pending()

        assert calls == [{"b": None, "c": 3}]
