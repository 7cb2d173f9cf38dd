"""
Push server configuration — all environment variables in one place.

Read from environment at import time.
"""

from __future__ import annotations

import os


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings from environment variables."""

    # Socket server
    HOST: str = os.environ.get("PUSH_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("PUSH_PORT", "1994"))

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Projects
    PRELOAD_PROJECTS: list[str] = _split(os.environ.get("PRELOAD_PROJECTS", ""))
    LOADER_TIMEOUT_SECONDS: float = float(os.environ.get("LOADER_TIMEOUT_SECONDS", "5.0"))

    # Clients connecting through /ws/auto join this project
    AUTO_LOGIN: str | None = os.environ.get("AUTO_LOGIN") or None

    # Static files, mounted at /static when set
    STATIC_DIR: str | None = os.environ.get("STATIC_DIR") or None


# Singleton instance
settings = Settings()

if settings.PORT <= 0:
    raise RuntimeError("PUSH_PORT needs to be a positive integer")
