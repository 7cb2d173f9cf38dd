"""
Push Kernel — Replica

Receiving side of a pushed tree. Feeds server messages into the reconciler
against a local copy.

  snapshot / replace  {"type": ..., "data": <full value>}  → snapshot reconcile
  patch               {"type": "patch", "data": <diff>}     → diff reconcile
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pushkernel.errors import InvalidArgument
from pushkernel.fields import StateObject
from pushkernel.reconcile import Reporter, apply_diff, reconcile
from pushkernel.wire import diff_from_wire

logger = logging.getLogger(__name__)

SNAPSHOT_TYPES = {"snapshot", "replace"}
PATCH_TYPES = {"patch"}


class Replica:
    """Local tree kept in sync with one pushed project."""

    def __init__(self, tree: Any = None, report: Reporter | None = None) -> None:
        self.tree = tree if tree is not None else StateObject()
        self.report = report
        self.applied = 0

    def apply(self, message: Mapping[str, Any]) -> None:
        kind = message.get("type")
        data = message.get("data")

        if not isinstance(kind, str):
            raise InvalidArgument(f"Unknown message type: {kind!r}")
        if kind in SNAPSHOT_TYPES:
            if not isinstance(data, Mapping):
                raise InvalidArgument(f"Snapshot data needs to be an object: {data!r}")
            reconcile(self.tree, data, report=self.report)
        elif kind in PATCH_TYPES:
            if not isinstance(data, Mapping):
                raise InvalidArgument(f"Patch data needs to be an object: {data!r}")
            apply_diff(self.tree, diff_from_wire(data), report=self.report)
        else:
            raise InvalidArgument(f"Unknown message type: {kind!r}")

        self.applied += 1
        logger.debug("replica: applied %s (%d total)", kind, self.applied)
