"""Focused unit tests for global exception handling behaviors.

These tests exercise the public contract via a FastAPI test app using the
installed exception handler and ExceptionNormalizationMiddleware.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi import FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from core.error_handler import (
    ExceptionNormalizationMiddleware,
    _build_error_response,
    global_exception_handler,
)
from core.exceptions import (
    DomainError,
    PersistenceError,
    PresentationNotFoundError,
    PresentationNotReadyError,
)
from core.middleware import CorrelationIdMiddleware


class Item(BaseModel):
    name: str = Field(min_length=3)
    qty: int = Field(ge=1)


@pytest.fixture
def build_client() -> Generator:
    patchers = []

    def build(env: str) -> TestClient:
        app = FastAPI()
        app.add_middleware(ExceptionNormalizationMiddleware)
        app.add_middleware(CorrelationIdMiddleware)
        app.add_exception_handler(HTTPException, global_exception_handler)
        app.add_exception_handler(RequestValidationError, global_exception_handler)
        app.add_exception_handler(DomainError, global_exception_handler)

        @app.post("/items")
        async def create_item(item: Item):  # pragma: no cover - executed via client
            return {"ok": True, "item": item.model_dump()}

        @app.get("/missing")
        async def missing():
            raise PresentationNotFoundError("Presentation abc not found")

        @app.get("/not-ready")
        async def not_ready():
            raise PresentationNotReadyError("No outlines yet")

        @app.get("/persist")
        async def persist():
            raise PersistenceError("Failed to persist generated slides")

        @app.get("/domain")
        async def domain():
            raise DomainError("Unclassified domain failure")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("Exploded with secret=should_not_leak")

        @app.get("/unavailable")
        async def unavailable():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Model backend is not configured",
            )

        patcher = patch("core.error_handler.get_settings")
        patcher.start().return_value.ENVIRONMENT = env
        patchers.append(patcher)
        return TestClient(app, raise_server_exceptions=False)

    yield build
    for patcher in patchers:
        patcher.stop()


def test_validation_error_production(build_client):
    client = build_client("production")
    resp = client.post("/items", json={"name": "ab", "qty": 0})
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"]["type"] == "validation_error"
    # production should not include validation_errors
    assert "validation_errors" not in data["error"]


def test_validation_error_development(build_client):
    client = build_client("development")
    resp = client.post("/items", json={"name": "ab", "qty": 0})
    assert resp.status_code == 422
    assert "validation_errors" in resp.json()["error"]


def test_presentation_not_found_is_404(build_client):
    client = build_client("production")
    resp = client.get("/missing")
    assert resp.status_code == 404
    data = resp.json()
    assert data["success"] is False
    assert data["error"]["type"] == "not_found"
    assert data["message"] == "The requested presentation was not found"


def test_not_ready_is_409(build_client):
    client = build_client("development")
    resp = client.get("/not-ready")
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "domain_error"


def test_persistence_error_is_500(build_client):
    client = build_client("production")
    resp = client.get("/persist")
    assert resp.status_code == 500
    data = resp.json()
    assert data["error"]["type"] == "domain_error"
    assert "details" not in data["error"]


def test_unmapped_domain_error_is_500(build_client):
    client = build_client("production")
    resp = client.get("/domain")
    assert resp.status_code == 500
    data = resp.json()
    assert data["error"]["type"] == "domain_error"
    assert data["message"] == "Domain error"

def test_generic_exception_production(build_client):
    client = build_client("production")
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" not in body["error"]
    assert "secret=should_not_leak" not in str(body)


def test_generic_exception_development(build_client):
    client = build_client("development")
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" in body["error"]
    assert body["error"]["exception_type"] == "RuntimeError"


def test_http_error_keeps_status_and_hides_detail_in_production(build_client):
    client = build_client("production")
    resp = client.get("/unavailable")
    assert resp.status_code == 503
    body = resp.json()
    assert body["error"]["type"] == "http_error"
    assert body["error"]["correlation_id"]
    assert "details" not in body["error"]


def test_http_error_development_includes_detail(build_client):
    client = build_client("development")
    resp = client.get("/unavailable")
    body = resp.json()
    assert body["error"]["details"]["detail"] == "Model backend is not configured"


def test_correlation_id_is_echoed(build_client):
    client = build_client("production")
    resp = client.get("/missing", headers={"X-Correlation-ID": "req-123"})
    assert resp.headers["X-Correlation-ID"] == "req-123"
    assert resp.json()["error"]["correlation_id"] == "req-123"


def test_build_error_response_production_hides_optional_fields():
    resp = _build_error_response(
        correlation_id="cid",
        error_type="internal_server_error",
        message="An internal error occurred",
        environment="production",
        details={"debug": True},
        traceback_str="trace",
        exception_type="ValueError",
        validation_errors={"x": 1},
        status_code=500,
    )
    body = json.loads(resp.body)

    assert resp.status_code == 500
    # In production only correlation_id and type should be present in error
    assert body["error"] == {"correlation_id": "cid", "type": "internal_server_error"}


def test_build_error_response_development_includes_optional_fields():
    resp = _build_error_response(
        correlation_id="cid",
        error_type="internal_server_error",
        message="An internal error occurred",
        environment="development",
        details={"debug": True},
        traceback_str="trace",
        exception_type="ValueError",
        validation_errors={"x": 1},
        status_code=500,
    )
    body = json.loads(resp.body)

    assert body["error"]["details"] == {"debug": True}
    assert body["error"]["traceback"] == "trace"
    assert body["error"]["exception_type"] == "ValueError"
    assert body["error"]["validation_errors"] == {"x": 1}
