"""
Event triggers for the push server.

A trigger is created for each event the server can emit. Listeners register
through TriggerRegistry.on(). A trigger fired before anyone listens can defer
the call; it is replayed for the first listener.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pushkernel.errors import InvalidArgument

logger = logging.getLogger(__name__)


class Trigger:
    """Callable that fans out to every registered listener."""

    def __init__(self, event: str, on_first_listener: Callable[[Trigger], Any] | None = None) -> None:
        self.event = event
        self.listeners: list[Callable[..., Any]] = []
        self.on_first_listener = on_first_listener

    def __call__(self, *args: Any) -> None:
        for listener in list(self.listeners):
            listener(*args)

    def defer(self, *args: Any) -> None:
        """Fire now if someone listens, otherwise when the first listener arrives."""
        if self.listeners:
            self(*args)
        else:
            self.on_first_listener = lambda trigger: trigger(*args)


class TriggerRegistry:
    def __init__(self) -> None:
        self.triggers: dict[str, Trigger] = {}

    def add_trigger(self, event: str, on_first_listener: Callable[[Trigger], Any] | None = None) -> Trigger:
        trigger = Trigger(event, on_first_listener)
        self.triggers[event] = trigger
        return trigger

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Register callback for event.

        Raises InvalidArgument for a non-string event or a non-callable
        callback. Unknown events are ignored.
        """
        if not isinstance(event, str):
            raise InvalidArgument(f"Event needs to be a string: {event!r}")
        if not callable(callback):
            raise InvalidArgument(f"Callback needs to be callable: {callback!r}")

        trigger = self.triggers.get(event)
        if trigger is None:
            logger.debug("triggers: no trigger named %s", event)
            return

        trigger.listeners.append(callback)

        if trigger.on_first_listener is not None:
            hook, trigger.on_first_listener = trigger.on_first_listener, None
            hook(trigger)

    def fire(self, event: str, *args: Any) -> None:
        trigger = self.triggers.get(event)
        if trigger is not None:
            trigger(*args)
