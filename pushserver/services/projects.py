"""
Projects and the project library.

A Project holds one observed state tree. Every turn's diff is broadcast to
the project's subscribed clients; inbound patches from clients go through
the reconciler onto the tracked view, so they are re-broadcast the same way.

The ProjectLibrary loads projects on demand through a ProjectLoader and
caches them for the lifetime of the server.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping
from typing import Any, Protocol

from pushkernel.errors import InvalidArgument, LoaderError
from pushkernel.fields import StateObject
from pushkernel.observer import DiffTree, observe
from pushkernel.reconcile import Reporter, apply_diff, reconcile
from pushkernel.scheduling import Scheduler
from pushkernel.wire import diff_from_wire, to_wire
from pushserver.services.clients import Client
from pushserver.services.triggers import TriggerRegistry

logger = logging.getLogger(__name__)


class Project:
    def __init__(
        self,
        project_id: str,
        state: Mapping[str, Any],
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.id = project_id
        self.clients: list[Client] = []
        self.host = StateObject(state=copy.deepcopy(dict(state)))
        self.binding = observe(self.host, "state", self._broadcast, scheduler=scheduler)

    @property
    def state(self) -> Any:
        """Tracked view of the project state. Writes through it are pushed to clients."""
        return self.host.state

    def snapshot(self) -> dict[str, Any]:
        return {"type": "snapshot", "project": self.id, "data": to_wire(self.host.state)}

    def subscribe(self, client: Client) -> None:
        client.project_id = self.id
        self.clients.append(client)
        client.tx(self.snapshot())

    def unsubscribe(self, client: Client) -> None:
        if client in self.clients:
            self.clients.remove(client)

    def apply(self, kind: str, data: Mapping[str, Any], report: Reporter | None = None) -> None:
        """Apply an inbound patch or replace message to the tracked state."""
        if kind == "patch":
            apply_diff(self.state, diff_from_wire(data), report=report)
        elif kind == "replace":
            reconcile(self.state, data, report=report)
        else:
            raise InvalidArgument(f"Unknown message type: {kind!r}")

    def _broadcast(self, payload: Any) -> None:
        kind = "patch" if isinstance(payload, DiffTree) else "replace"
        message = {"type": kind, "project": self.id, "data": to_wire(payload)}
        logger.debug("project %s: pushing %s to %d client(s)", self.id, kind, len(self.clients))
        for client in list(self.clients):
            client.tx(message)

    def __repr__(self) -> str:
        return f"Project(id={self.id!r}, clients={len(self.clients)})"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class ProjectLoader(Protocol):
    async def list_projects(self) -> list[str] | None: ...

    async def load_project(self, project_id: str, init: Mapping[str, Any] | None) -> Mapping[str, Any] | None: ...


class MemoryLoader:
    """
    Loader backed by a dict of initial states.

    Unknown ids get a fresh project seeded from init unless create_missing is
    off, in which case they are refused (None).
    """

    def __init__(self, projects: Mapping[str, Mapping[str, Any]] | None = None, create_missing: bool = True) -> None:
        self.projects = dict(projects or {})
        self.create_missing = create_missing

    async def list_projects(self) -> list[str]:
        return list(self.projects)

    async def load_project(self, project_id: str, init: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
        if project_id in self.projects:
            return copy.deepcopy(self.projects[project_id])
        if self.create_missing:
            return dict(init or {})
        return None


class ProjectLibrary:
    """Every project known to the server, loaded once and cached."""

    def __init__(
        self,
        loader: ProjectLoader,
        triggers: TriggerRegistry,
        *,
        timeout: float = 5.0,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.loader = loader
        self.triggers = triggers
        self.timeout = timeout
        self.scheduler = scheduler
        self.projects: dict[str, Project] = {}
        self._loading: dict[str, asyncio.Future[Project | None]] = {}

        triggers.add_trigger("preload")
        triggers.add_trigger("project_loaded")

    async def get(self, project_id: str, init: Mapping[str, Any] | None = None) -> Project | None:
        """Return the project for project_id, loading it on first use. None if it can't be loaded."""
        project = self.projects.get(project_id)
        if project is not None:
            return project

        future = self._loading.get(project_id)
        if future is None:
            future = asyncio.ensure_future(self._load(project_id, init))
            self._loading[project_id] = future
            future.add_done_callback(lambda _: self._loading.pop(project_id, None))
        return await future

    async def _load(self, project_id: str, init: Mapping[str, Any] | None) -> Project | None:
        try:
            settings = await self._call_loader(project_id, init)
        except LoaderError as e:
            if e.code == "TIMEOUT":
                logger.error("Timed out getting project settings for: %s", project_id)
            else:
                logger.error("Error loading project %s: %s", project_id, e)
            return None

        if settings is None:
            logger.info("Loader refused project: %s", project_id)
            return None
        if not isinstance(settings, Mapping):
            logger.error("Loaded value for %s needs to be a mapping: %r", project_id, settings)
            return None

        project = Project(project_id, settings, scheduler=self.scheduler)
        self.projects[project_id] = project
        logger.info("Loaded project: %s", project_id)
        self.triggers.fire("project_loaded", project)
        return project

    async def _call_loader(self, project_id: str, init: Mapping[str, Any] | None) -> Any:
        try:
            return await asyncio.wait_for(self.loader.load_project(project_id, init), self.timeout)
        except asyncio.TimeoutError:
            raise LoaderError("TIMEOUT", f"loading {project_id} took longer than {self.timeout}s") from None
        except Exception as e:
            raise LoaderError("FAILED", str(e)) from e

    async def preload(self, project_ids: list[str] | None = None) -> dict[str, Project]:
        """Load project_ids (or everything the loader lists) and fire the preload trigger."""
        if not project_ids:
            try:
                project_ids = await asyncio.wait_for(self.loader.list_projects(), self.timeout)
            except asyncio.TimeoutError:
                logger.error("Timed out getting projects to preload")
                project_ids = []
            except Exception:
                logger.exception("Error getting projects list")
                project_ids = []
            if project_ids is None:
                project_ids = []
            elif not isinstance(project_ids, list):
                logger.error("Returned value from list_projects needs to be a list: %r", project_ids)
                project_ids = []

        for project_id in project_ids:
            await self.get(project_id)

        if self.projects:
            logger.info("Pre-loaded projects:\n\t%s", "\n\t".join(self.projects))
        else:
            logger.info("Found no projects to pre-load")

        self.triggers.triggers["preload"].defer(self.projects)
        return self.projects
