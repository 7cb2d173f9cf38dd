"""
Pytest configuration and fixtures for push server tests.
"""

from __future__ import annotations

import copy

import pytest
from fastapi.testclient import TestClient

from pushserver.config import Settings
from pushserver.main import create_app
from pushserver.services.projects import MemoryLoader

DEMO_STATE = {"count": 0, "tags": ["a"], "meta": {"title": "Demo"}}


@pytest.fixture
def config():
    """Settings with no environment-dependent preloading."""
    config = Settings()
    config.PRELOAD_PROJECTS = []
    config.AUTO_LOGIN = "demo"
    config.STATIC_DIR = None
    return config


@pytest.fixture
def demo_state():
    return copy.deepcopy(DEMO_STATE)


@pytest.fixture
def loader():
    return MemoryLoader({"demo": DEMO_STATE, "other": {"n": 1}}, create_missing=False)


@pytest.fixture
def app(config, loader):
    return create_app(config, loader)


@pytest.fixture
def client(app):
    """TestClient sharing one event loop across every WebSocket session, lifespan included."""
    with TestClient(app) as client:
        yield client
