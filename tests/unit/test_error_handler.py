"""
Tests for error handler middleware and custom exceptions.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from skillconnect.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    UnauthorizedException,
    ForbiddenException,
    BadRequestException,
    ConflictException,
    ValidationException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)


@pytest.mark.unit
def test_app_exception_creation():
    exc = AppException(message="Test error", status_code=500, details={"key": "value"})

    assert exc.message == "Test error"
    assert exc.status_code == 500
    assert exc.details == {"key": "value"}


@pytest.mark.unit
def test_not_found_exception():
    exc = NotFoundException("Service request", "123")

    assert exc.message == "Service request with id '123' not found"
    assert exc.status_code == 404
    assert exc.details["resource"] == "Service request"
    assert exc.details["resource_id"] == "123"


@pytest.mark.unit
def test_not_found_exception_without_id():
    exc = NotFoundException("Booking")

    assert exc.message == "Booking not found"
    assert exc.status_code == 404


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc, status_code",
    [
        (UnauthorizedException(), 401),
        (ForbiddenException("Not authorized to accept this offer"), 403),
        (BadRequestException("Rating must be a number between 1 and 5"), 400),
        (ConflictException("You have already reviewed this booking"), 409),
        (ValidationException("Validation failed", errors={"email": "Invalid format"}), 422),
    ],
)
def test_exception_status_codes(exc, status_code):
    assert exc.status_code == status_code


@pytest.mark.unit
def test_validation_exception_keeps_errors():
    exc = ValidationException("Validation failed", errors={"email": "Invalid format"})

    assert exc.details["errors"] == {"email": "Invalid format"}


@pytest.mark.integration
def test_app_exception_handler_in_route():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-error")
    async def test_error():
        raise NotFoundException("Booking", "123")

    response = TestClient(app).get("/test-error")

    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert data["message"] == "Booking with id '123' not found"
    assert "correlation_id" in data


@pytest.mark.integration
def test_validation_error_handler_returns_400():
    """Request validation failures are reported as bad requests."""
    app = FastAPI()
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    class ReviewPayload(BaseModel):
        rating: int = Field(..., ge=1, le=5)
        comment: str = Field(..., max_length=10)

    @app.post("/test-validation")
    async def test_validation(data: ReviewPayload):
        return {"ok": True}

    response = TestClient(app).post("/test-validation", json={"rating": 9, "comment": "ok"})

    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["message"].startswith("rating:")
    assert data["details"]["errors"][0]["loc"] == ["body", "rating"]


@pytest.mark.integration
def test_http_exception_handler():
    app = FastAPI()
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    @app.get("/test-http-error")
    async def test_http_error():
        raise StarletteHTTPException(status_code=404, detail="Page not found")

    response = TestClient(app).get("/test-http-error")

    assert response.status_code == 404
    data = response.json()
    assert data["message"] == "Page not found"
    assert "correlation_id" in data


@pytest.mark.integration
def test_unhandled_exception_handler():
    app = FastAPI()
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/test-unhandled")
    async def test_unhandled():
        raise ValueError("Unexpected error")

    response = TestClient(app, raise_server_exceptions=False).get("/test-unhandled")

    assert response.status_code == 500
    assert response.json()["message"] == "Internal server error"


@pytest.mark.integration
def test_exception_with_correlation_id():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-correlation")
    async def test_correlation(request: Request):
        request.state.correlation_id = "test-correlation-123"
        raise BadRequestException("Test error")

    response = TestClient(app).get("/test-correlation")

    assert response.status_code == 400
    assert response.json()["correlation_id"] == "test-correlation-123"


@pytest.mark.integration
def test_exception_details_included():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-details")
    async def test_details():
        raise ConflictException(
            "This offer is no longer waiting for a decision",
            details={"status": "Working"},
        )

    response = TestClient(app).get("/test-details")

    assert response.status_code == 409
    assert response.json()["details"] == {"status": "Working"}


@pytest.mark.integration
def test_details_omitted_when_empty():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-no-details")
    async def test_no_details():
        raise ForbiddenException("Admin access required")

    data = TestClient(app).get("/test-no-details").json()

    assert "details" not in data
