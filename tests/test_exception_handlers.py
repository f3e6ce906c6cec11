"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    RateLimitAppError,
    StorageAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_base_app_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-app-error")
        async def endpoint():
            raise AppError(code="bad_project", message="Unknown project")

        response = client.get("/test-app-error")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "bad_project"
        assert data["error"]["message"] == "Unknown project"
        assert "request_id" in data["error"]

    def test_authentication_error_returns_401(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def endpoint():
            raise AuthenticationAppError(code="invalid_token", message="Invalid or expired token")

        response = client.get("/test-auth")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_token"

    def test_storage_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-storage")
        async def endpoint():
            raise StorageAppError(code="message_store_unavailable", message="Try later")

        response = client.get("/test-storage")

        assert response.status_code == 503

    def test_details_are_included_when_present(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-details")
        async def endpoint():
            raise AppError(code="x", message="y", details={"hint": "check the project id"})

        response = client.get("/test-details")

        assert response.json()["error"]["details"] == {"hint": "check the project id"}


class TestRateLimitHandler:
    def test_returns_429_with_flat_body(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-throttle")
        async def endpoint():
            raise RateLimitAppError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded",
                retry_after_ms=1500,
                limit=10,
            )

        response = client.get("/test-throttle")

        assert response.status_code == 429
        data = response.json()
        assert data["error"] == "Rate limit exceeded"
        assert data["retryAfterMs"] == 1500
        assert "details" not in data
        assert response.headers["Retry-After"] == "2"
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "0"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_never_leaks_details(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: firestore connection failed")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "firestore" not in data["error"]["message"]
        assert "RuntimeError" not in json.dumps(data)


class TestErrorHandlerIntegration:
    def test_setup_registers_handlers(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert RateLimitAppError in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
