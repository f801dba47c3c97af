"""Tests for RequestIDMiddleware."""

from uuid import UUID

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.testclient import TestClient

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from core.exceptions import ConflictError


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/echo")
    async def echo(request: Request):
        return JSONResponse({"request_id": request.state.request_id})

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Booking changed")

    return TestClient(app, raise_server_exceptions=False)


class TestRequestIDMiddleware:

    def test_generates_uuid_header(self, client):
        response = client.get("/echo")

        UUID(response.headers["X-Request-ID"])
        assert response.json()["request_id"] == response.headers["X-Request-ID"]

    def test_each_request_gets_unique_id(self, client):
        assert client.get("/echo").headers["X-Request-ID"] != client.get("/echo").headers["X-Request-ID"]

    def test_incoming_id_kept(self, client):
        response = client.get("/echo", headers={"X-Request-ID": "upstream-42"})

        assert response.headers["X-Request-ID"] == "upstream-42"
        assert response.json()["request_id"] == "upstream-42"

    def test_error_envelope_carries_request_id(self, client):
        response = client.get("/conflict", headers={"X-Request-ID": "trace-7"})

        assert response.status_code == 409
        assert response.json()["meta"]["request_id"] == "trace-7"
        assert response.headers["X-Request-ID"] == "trace-7"

    def test_logs_outcome(self, client, caplog):
        with caplog.at_level("INFO", logger="api.middleware"):
            client.get("/echo", headers={"X-Request-ID": "log-1"})

        assert "GET /echo -> 200" in caplog.text
        assert "log-1" in caplog.text
