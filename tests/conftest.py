"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable so no .env file is loaded during
tests, and provides factories for isolated app instances.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_AUTH_REQUIRED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import AppSettings, LogSettings, Settings


@pytest.fixture
def make_settings():
    """Build Settings with AppSettings overrides."""

    def _make(**app_overrides) -> Settings:
        return Settings(app=AppSettings(**app_overrides), log=LogSettings(level="WARNING"))

    return _make


@pytest.fixture
def make_client(make_settings):
    """Build a TestClient around a freshly created app."""

    def _make(message_log=None, **app_overrides) -> TestClient:
        app = create_app(make_settings(**app_overrides), message_log=message_log, configure_logs=False)
        return TestClient(app)

    return _make


def bearer(uid: str, issued_at: int = 1700000000) -> dict[str, str]:
    """Authorization header carrying a local session token for ``uid``."""
    return {"Authorization": f"Bearer mock-token-{uid}-{issued_at}"}
