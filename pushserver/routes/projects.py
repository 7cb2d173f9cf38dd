"""Read-only HTTP views of loaded projects."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from pushkernel.wire import to_wire

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("")
async def list_projects(request: Request) -> dict[str, Any]:
    """Ids and subscriber counts of every loaded project."""
    library = request.app.state.server.library
    return {
        "projects": [
            {"id": project.id, "clients": len(project.clients)} for project in library.projects.values()
        ]
    }


@router.get("/{project_id}")
async def get_project(project_id: str, request: Request) -> dict[str, Any]:
    """Current state of one loaded project. Does not trigger a load."""
    project = request.app.state.server.library.projects.get(project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project '{project_id}' not loaded")
    return {"id": project.id, "state": to_wire(project.host.state)}
