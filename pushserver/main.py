"""
Push server FastAPI application.

Entry point for the socket server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from pushserver.config import Settings, settings
from pushserver.routes import projects as project_routes
from pushserver.routes import ws as ws_routes
from pushserver.services.projects import ProjectLoader
from pushserver.services.server import PushServer

logger = logging.getLogger(__name__)


def create_app(config: Settings = settings, loader: ProjectLoader | None = None) -> FastAPI:
    """Build the application around a fresh PushServer."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server = PushServer(config, loader)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Preload projects on startup, disconnect every client on shutdown."""
        await server.start()
        yield
        server.close()

    app = FastAPI(
        title="Push Server",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.server = server

    app.include_router(ws_routes.router)
    app.include_router(project_routes.router)

    @app.get("/health")
    async def health():
        """Health check endpoint for uptime monitoring."""
        return {"status": "ok"}

    if config.STATIC_DIR:
        static_dir = Path(config.STATIC_DIR)
        if static_dir.is_dir():
            app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
            logger.info("Serving static files from %s", static_dir)
        else:
            logger.error("STATIC_DIR is not a directory: %s", static_dir)

    return app


app = create_app()
