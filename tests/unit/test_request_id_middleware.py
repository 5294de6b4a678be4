"""
Unit tests for request ID middleware.

Tests the RequestIDMiddleware to ensure it correctly generates,
extracts, and propagates request IDs for correlation.
"""

import uuid

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from errors.exceptions import SessionDecodeError
from errors.handlers import register_exception_handlers
from middleware.request_id import (
    REQUEST_ID_HEADER,
    RequestIDMiddleware,
    current_request_id,
    request_id_var,
)


@pytest.fixture
def client():
    """A FastAPI app with the RequestIDMiddleware and the error handlers."""
    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/echo")
    async def echo(request: Request):
        return {
            "from_state": request.state.request_id,
            "from_context": current_request_id(),
        }

    @app.get("/bad-cookie")
    async def bad_cookie():
        raise SessionDecodeError("the value is not valid")

    return TestClient(app)


class TestRequestIDMiddleware:
    """Tests for the RequestIDMiddleware class."""

    def test_generates_uuid_when_header_missing(self, client):
        response = client.get("/echo")

        request_id = response.headers[REQUEST_ID_HEADER]
        assert str(uuid.UUID(request_id)) == request_id
        assert response.json() == {"from_state": request_id, "from_context": request_id}

    def test_uses_caller_request_id(self, client):
        response = client.get("/echo", headers={REQUEST_ID_HEADER: "caller-id-123"})

        assert response.headers[REQUEST_ID_HEADER] == "caller-id-123"
        assert response.json()["from_context"] == "caller-id-123"

    def test_each_request_gets_its_own_id(self, client):
        first = client.get("/echo").headers[REQUEST_ID_HEADER]
        second = client.get("/echo").headers[REQUEST_ID_HEADER]

        assert first != second

    def test_error_responses_carry_the_same_id(self, client):
        response = client.get("/bad-cookie", headers={REQUEST_ID_HEADER: "caller-id-456"})

        assert response.status_code == 400
        assert response.json()["request_id"] == "caller-id-456"
        assert response.headers[REQUEST_ID_HEADER] == "caller-id-456"

    def test_context_is_reset_after_request(self, client):
        client.get("/echo")

        assert request_id_var.get() == ""
        assert current_request_id() == ""
