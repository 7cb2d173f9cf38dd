"""
WebSocket endpoints for project subscriptions.

Accepts connections at /ws/{project_id}. The client receives a snapshot of
the project state, then one patch (or replace) message per turn in which the
state changed.

Protocol:
  Client → Server:  {"type": "patch", "data": {...}}    sparse diff, null deletes
                    {"type": "replace", "data": {...}}  full snapshot
                    {"type": "ping"}
  Server → Client:  {"type": "snapshot" | "patch" | "replace", "project": id, "data": ...}
                    {"type": "auto_reload", "project": id}
                    {"type": "pong"} | {"type": "error", "error": "..."}
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from pushkernel.errors import PushStateError
from pushkernel.wire import loads
from pushserver.models.messages import client_message_adapter
from pushserver.services.clients import Client
from pushserver.services.projects import Project
from pushserver.services.server import PushServer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


def _error(message: str) -> dict[str, Any]:
    return {"type": "error", "error": message}


def _handle_message(client: Client, project: Project | None, raw: str) -> None:
    try:
        msg = loads(raw)
    except ValueError:
        logger.warning("ws: malformed message from client %d: %r", client.id, raw[:200])
        client.tx(_error("Message needs to be valid JSON"))
        return

    try:
        parsed = client_message_adapter.validate_python(msg)
    except ValidationError as e:
        logger.warning("ws: invalid message from client %d: %r", client.id, raw[:200])
        client.tx(_error(f"Invalid message: {e.errors()[0]['msg']}"))
        return

    if parsed.type == "ping":
        client.tx({"type": "pong"})
        return

    if project is None:
        client.tx(_error("Not subscribed to a project"))
        return

    try:
        project.apply(parsed.type, parsed.data)
    except PushStateError as e:
        logger.warning("ws: client %d %s rejected: %s", client.id, parsed.type, e)
        client.tx(_error(str(e)))


async def _serve(websocket: WebSocket, project_id: str | None, auto_login: bool = False) -> None:
    server: PushServer = websocket.app.state.server

    await websocket.accept()
    client = server.clients.connect(
        prefix=websocket.query_params.get("prefix"),
        address=websocket.client.host if websocket.client else None,
        auto_login=auto_login,
    )
    pump = asyncio.create_task(client.pump(websocket.send_text))

    project: Project | None = None
    try:
        if project_id:
            project = await server.library.get(project_id)
        if project is not None:
            project.subscribe(client)
        elif not auto_login:
            client.tx(_error(f"Project '{project_id}' not found"))

        while True:
            raw = await websocket.receive_text()
            _handle_message(client, project, raw)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: client=%d project=%s", client.id, project_id)
    finally:
        if project is not None:
            project.unsubscribe(client)
        server.clients.disconnect(client)
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump


@router.websocket("/ws/auto")
async def auto_login_websocket(websocket: WebSocket) -> None:
    """Join the configured auto-login project; told to reload when it changes."""
    server: PushServer = websocket.app.state.server
    await _serve(websocket, server.conf.auto_login, auto_login=True)


@router.websocket("/ws/{project_id}")
async def project_websocket(websocket: WebSocket, project_id: str) -> None:
    await _serve(websocket, project_id)
