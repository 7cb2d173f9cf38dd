"""
Push server core — ties the project library, connected clients, triggers and
runtime configuration together. One instance per application, stored on
app.state.server.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pushkernel.fields import StateObject
from pushkernel.observer import observe
from pushkernel.scheduling import Scheduler
from pushserver.config import Settings
from pushserver.services.clients import ClientRegistry
from pushserver.services.projects import MemoryLoader, ProjectLibrary, ProjectLoader
from pushserver.services.triggers import TriggerRegistry

logger = logging.getLogger(__name__)


class PushServer:
    def __init__(
        self,
        settings: Settings,
        loader: ProjectLoader | None = None,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        logger.info("Push server started...")
        self.settings = settings
        self.triggers = TriggerRegistry()
        self.clients = ClientRegistry()
        self.library = ProjectLibrary(
            loader or MemoryLoader(),
            self.triggers,
            timeout=settings.LOADER_TIMEOUT_SECONDS,
            scheduler=scheduler,
        )

        # Runtime-mutable configuration; auto_login changes are pushed to auto-login clients
        self.conf = StateObject(auto_login=settings.AUTO_LOGIN, port=settings.PORT)
        observe(self.conf, "auto_login", self._on_auto_login, scheduler=scheduler)

        # Subsystems still open; shutdown is logged once the last one closes
        self._open_systems = 0
        self._clients_closed = self.on_closed(lambda: logger.info("All clients disconnected"))

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        self.triggers.on(event, callback)

    def on_closed(self, callback: Callable[..., Any]) -> Callable[..., None]:
        """
        Register a closable subsystem.

        Returns the function to call once that subsystem has closed; it runs
        callback with the same arguments. When every registered subsystem
        has closed the server is shut down.
        """
        self._open_systems += 1
        done = False

        def closed(*args: Any) -> None:
            nonlocal done
            if done:
                return
            done = True
            callback(*args)
            self._open_systems -= 1
            if not self._open_systems:
                logger.info("Push server shut down!")

        return closed

    @property
    def is_closed(self) -> bool:
        return self._open_systems == 0

    async def start(self) -> None:
        logger.info("Pre-loading projects...")
        await self.library.preload(self.settings.PRELOAD_PROJECTS)

    def close(self) -> None:
        logger.info("Push server is shutting down...")
        for client in list(self.clients.clients.values()):
            self.clients.disconnect(client)
        self._clients_closed()

    def _on_auto_login(self, value: Any) -> None:
        logger.info("Updating all clients using auto_login to new project: %s", value)
        for client in self.clients.auto_logins:
            client.tx({"type": "auto_reload", "project": value})
