"""
PeakSelf Backend — Exception Handler Tests
============================================

What:  Tests for the global exception handlers registered in main.py.
Why:   Every error the API reports flows through these; the frontend relies
       on the {"error": ...} envelope and production must not leak internals.

What we test:
    ✅ Unknown routes return "Route METHOD path not found"
    ✅ Malformed request bodies become 400 ValidationError
    ✅ Database failures become a generic 500
    ✅ Unexpected exceptions become 500 "Internal server error"
    ✅ Production bodies carry only error + request_id
    ✅ X-Request-ID is echoed and included in error bodies
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.exceptions import ConflictError, DatabaseError
from app.main import error_body, register_exception_handlers


class TestErrorEnvelope:

    @pytest.mark.asyncio
    async def test_unknown_route_returns_404_message(self, test_client):
        response = await test_client.get("/api/does-not-exist")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Route GET /api/does-not-exist not found"
        assert body["type"] == "NotFoundError"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/api/does-not-exist", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"
        assert response.json()["request_id"] == "abc12345"

    @pytest.mark.asyncio
    async def test_generated_request_id(self, test_client):
        response = await test_client.get("/api/health/live")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_malformed_body_returns_400(self, test_client, csrf_headers):
        response = await test_client.post(
            "/api/auth/login",
            content="{not json",
            headers={**csrf_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["type"] == "ValidationError"
        assert body["details"]["errors"]

    @pytest.mark.asyncio
    async def test_database_failure_returns_generic_500(self, test_client, csrf_headers, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        response = await test_client.post(
            "/api/auth/login",
            json={"email": "user@example.com", "password": "secret"},
            headers=csrf_headers,
        )
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Database operation failed"
        assert body["type"] == "DatabaseError"

    @pytest.mark.asyncio
    async def test_production_hides_internals(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        response = await test_client.get("/api/auth/google/failure")
        assert response.status_code == 401
        assert set(response.json()) == {"error", "request_id"}

    @pytest.mark.asyncio
    async def test_development_includes_stack(self, test_client):
        response = await test_client.get("/api/auth/google/failure")
        body = response.json()
        assert body["error"] == "Google authentication failed"
        assert body["type"] == "AuthenticationError"
        assert "Traceback" in body["stack"]


class TestStandaloneHandlers:
    """Handlers mounted on a bare app, for errors no PeakSelf route raises."""

    def _app(self) -> FastAPI:
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/crash")
        async def crash():
            raise RuntimeError("unexpected")

        @app.get("/conflict")
        async def conflict():
            raise ConflictError("Email already taken")

        return app

    @pytest.mark.asyncio
    async def test_unexpected_exception_returns_500(self):
        transport = ASGITransport(app=self._app(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/crash")
        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"
        assert response.json()["type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_conflict_maps_to_409(self):
        transport = ASGITransport(app=self._app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/conflict")
        assert response.status_code == 409
        assert response.json()["error"] == "Email already taken"


class TestErrorBody:

    def test_production_body(self, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        exc = DatabaseError(original_error=Exception("password=hunter2"))
        body = error_body(exc.message, exc.error_type, exc.details, exc)
        assert set(body) == {"error", "request_id"}

    def test_development_body_includes_details(self):
        exc = DatabaseError(original_error=Exception("boom"))
        body = error_body(exc.message, exc.error_type, exc.details, exc)
        assert body["details"] == {"original_error": "boom"}
        assert body["type"] == "DatabaseError"
