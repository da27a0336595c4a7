"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.config import AppConfig, DatabaseSettings
from app.main import app
from app.services import build_services, set_services


@pytest.fixture
def config():
    """Default settings over an in-memory database."""
    return AppConfig(database=DatabaseSettings(path=":memory:"))


@pytest.fixture
def services(config):
    """Install a fresh service set (own DuckDB, own presence) for each test."""
    svc = build_services(config)
    set_services(svc)
    yield svc
    set_services(None)
    svc.close()


@pytest.fixture
def alice(services):
    return services.identity.create_user("Alice", user_id="alice")


@pytest.fixture
def bob(services):
    return services.identity.create_user("Bob", user_id="bob")


@pytest.fixture
def carol(services):
    return services.identity.create_user("Carol", user_id="carol")


@pytest.fixture
def api_client(services):
    """Provide a TestClient for the main FastAPI app.

    Used as a context manager so every request and WebSocket shares one
    event loop; the lifespan leaves the test-installed services alone.
    """
    with TestClient(app) as client:
        yield client