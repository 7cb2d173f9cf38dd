"""
Push Kernel — Errors

Recoverable errors (locked fields, rejected assignments) are caught by the
reconciler and reported. Everything else propagates to the caller.
"""

from __future__ import annotations


class PushStateError(Exception):
    """Base class for every error raised by the kernel and the server glue."""


class LockedFieldError(PushStateError):
    """Write, delete or redefinition attempted on a locked field."""

    def __init__(self, key: str) -> None:
        super().__init__(f"LOCKED_FIELD: {key}")
        self.key = key


class AssignmentError(PushStateError):
    """The underlying assignment rejected the value."""


class InvalidArgument(PushStateError, TypeError):
    """Malformed event name, non-callable callback or unknown message type."""


class SchedulingError(PushStateError, RuntimeError):
    """No event loop is available to defer a flush onto."""


class LoaderError(PushStateError):
    """
    A project loader failed.

    code is TIMEOUT or FAILED.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
