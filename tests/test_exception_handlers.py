"""Tests for global exception handlers.

Validates that domain errors map to the right HTTP status with a consistent
error body, and that unexpected errors never leak internals.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ratelimiter.core.errors import (
    AppError,
    MissingIdentityAppError,
    StorageAppError,
    ValidationAppError,
)
from ratelimiter.core.exception_handlers import general_exception_handler, setup_exception_handlers


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

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(
                code="invalid_rate_rule",
                message="Rate rule limit must be a positive integer, got 0",
                details={"rule": "0:10"},
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "invalid_rate_rule"
        assert data["error"]["details"]["rule"] == "0:10"
        assert "request_id" in data["error"]

    def test_missing_identity_fails_closed_with_429(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-identity")
        async def test_endpoint():
            raise MissingIdentityAppError(
                code="rate_limit_identity_missing",
                message="Unable to identify the caller for rate limiting",
            )

        response = client.get("/test-identity")

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "rate_limit_identity_missing"

    def test_storage_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-storage")
        async def test_endpoint():
            raise StorageAppError(
                code="storage_write_failed",
                message="Failed to persist rate limit state",
                details={"backend": "file"},
            )

        response = client.get("/test-storage")

        assert response.status_code == 503
        data = response.json()
        assert data["error"]["code"] == "storage_write_failed"
        assert data["error"]["details"] == {"backend": "file"}

    def test_error_without_details_omits_key(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise ValidationAppError(code="test", message="test")

        data = client.get("/test-format").json()

        assert set(data["error"]) == {"code", "message", "request_id"}


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_hides_message(self):
        request = AsyncMock()
        request.url.path = "/v1/rate-limit"
        request.method = "POST"

        exc = RuntimeError("actor table corrupted at /var/lib/limiter")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "corrupted" not in data["error"]["message"]
        assert "RuntimeError" not in bytes(response.body).decode()


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
