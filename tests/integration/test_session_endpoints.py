"""
Integration tests for session endpoints.

Drives the FastAPI application over ASGI with the coordinator wired to the
in-memory identity backend.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import drain, make_id_token
from session_auth.core.auth.errors import NetworkError
from session_auth.main import app


@pytest_asyncio.fixture
async def client(coordinator):
    """HTTP client for the app, using the test coordinator"""
    app.state.coordinator = coordinator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.integration
class TestSessionState:
    """Test GET /api/v1/session and /health"""

    @pytest.mark.asyncio
    async def test_initial_session(self, client: AsyncClient):
        response = await client.get("/api/v1/session")

        assert response.status_code == 200
        assert response.json() == {
            "status": "unauthenticated",
            "is_authenticated": False,
            "is_loading": False,
            "error_message": None,
            "identity": None,
        }

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["services"] == {"redis": "not_connected"}

    @pytest.mark.asyncio
    async def test_health_reports_unresponsive_redis(self, client: AsyncClient, monkeypatch):
        """Edge case: a connected Redis that stops answering degrades health"""
        redis_client = MagicMock()
        redis_client.health_check = AsyncMock(return_value=False)
        monkeypatch.setattr("session_auth.infrastructure.redis.client._redis_client", redis_client)

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["services"] == {"redis": "unhealthy"}
        redis_client.health_check.assert_awaited_once()


@pytest.mark.integration
class TestPasswordEndpoints:
    """Test POST /api/v1/session/sign-in and /sign-up"""

    @pytest.mark.asyncio
    async def test_sign_up(self, client: AsyncClient):
        """Test account creation signs the user in."""
        response = await client.post(
            "/api/v1/session/sign-up",
            json={"email": "a@b.com", "password": "secret", "display_name": "Ann"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "authenticated"
        assert data["identity"]["display_name"] == "Ann"
        assert data["identity"]["provider"] == "password"

    @pytest.mark.asyncio
    async def test_sign_in(self, client: AsyncClient, backend):
        backend.add_account("ann@example.com", "secret1")

        response = await client.post(
            "/api/v1/session/sign-in",
            json={"email": "ann@example.com", "password": "secret1"},
        )

        assert response.status_code == 200
        assert response.json()["identity"]["email"] == "ann@example.com"

    @pytest.mark.asyncio
    async def test_sign_in_invalid_email(self, client: AsyncClient, backend):
        """Test malformed email is rejected before reaching the identity service."""
        response = await client.post(
            "/api/v1/session/sign-in",
            json={"email": "bad-email", "password": "x"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {
            "error": "invalid_input",
            "message": "Please enter a valid email address",
        }
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_sign_in_wrong_password(self, client: AsyncClient, backend):
        backend.add_account("ann@example.com", "secret1")

        response = await client.post(
            "/api/v1/session/sign-in",
            json={"email": "ann@example.com", "password": "wrong"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "provider_error"

        session = (await client.get("/api/v1/session")).json()
        assert session["status"] == "error"
        assert "password is invalid" in session["error_message"]

    @pytest.mark.asyncio
    async def test_sign_in_network_failure(self, client: AsyncClient, backend):
        backend.errors["sign_in_with_password"] = NetworkError("The request timed out.")

        response = await client.post(
            "/api/v1/session/sign-in",
            json={"email": "ann@example.com", "password": "secret1"},
        )

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "network_error"

    @pytest.mark.asyncio
    async def test_sign_up_short_password(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/session/sign-up",
            json={"email": "a@b.com", "password": "12345", "display_name": "Ann"},
        )

        assert response.status_code == 400
        assert "at least 6" in response.json()["detail"]["message"]

    @pytest.mark.asyncio
    async def test_sign_up_missing_field(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/session/sign-up",
            json={"email": "a@b.com", "password": "secret"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_operation_in_progress(self, client: AsyncClient, backend, coordinator):
        """Test a second sign-in while one is in flight returns 409."""
        backend.add_account("ann@example.com", "secret1")
        backend.gate = asyncio.Event()

        first = asyncio.create_task(
            client.post(
                "/api/v1/session/sign-in",
                json={"email": "ann@example.com", "password": "secret1"},
            )
        )
        for _ in range(100):
            if coordinator.is_busy:
                break
            await drain()

        response = await client.post(
            "/api/v1/session/sign-in",
            json={"email": "ann@example.com", "password": "secret1"},
        )
        backend.gate.set()

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "already_in_progress"
        assert (await first).status_code == 200


@pytest.mark.integration
class TestFederatedEndpoints:
    """Test POST /api/v1/session/federated/*"""

    @pytest.mark.asyncio
    async def test_begin_and_complete(self, client: AsyncClient):
        """Test the challenge round-trip signs the user in."""
        begin = await client.post("/api/v1/session/federated/begin", json={"provider": "google.com"})

        assert begin.status_code == 200
        challenge = begin.json()
        assert challenge["provider"] == "google.com"
        assert len(challenge["challenge"]) == 64
        assert challenge["scopes"] == ["openid", "email", "profile"]
        assert challenge["expires_in"] == 60

        complete = await client.post(
            "/api/v1/session/federated/complete",
            json={"provider": "google.com", "id_token": make_id_token(challenge["challenge"])},
        )

        assert complete.status_code == 200
        assert complete.json()["identity"]["provider"] == "google.com"

    @pytest.mark.asyncio
    async def test_complete_with_other_nonce(self, client: AsyncClient):
        await client.post("/api/v1/session/federated/begin", json={"provider": "apple.com"})

        response = await client.post(
            "/api/v1/session/federated/complete",
            json={"provider": "apple.com", "id_token": make_id_token("not-the-challenge")},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_begin_unknown_provider(self, client: AsyncClient):
        response = await client.post("/api/v1/session/federated/begin", json={"provider": "github.com"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_begin_password_provider(self, client: AsyncClient):
        response = await client.post("/api/v1/session/federated/begin", json={"provider": "password"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cancel(self, client: AsyncClient, coordinator):
        await client.post("/api/v1/session/federated/begin", json={"provider": "apple.com"})

        response = await client.post("/api/v1/session/federated/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "unauthenticated"
        assert coordinator.pending_nonce is None


@pytest.mark.integration
class TestSignOutAndReload:
    """Test POST /api/v1/session/sign-out and /reload"""

    @pytest.mark.asyncio
    async def test_sign_out(self, client: AsyncClient, backend):
        backend.add_account("ann@example.com", "secret1")
        await client.post(
            "/api/v1/session/sign-in",
            json={"email": "ann@example.com", "password": "secret1"},
        )

        response = await client.post("/api/v1/session/sign-out")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Signed out successfully",
            "remote_acknowledged": True,
        }
        session = (await client.get("/api/v1/session")).json()
        assert session["status"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_sign_out_remote_failure(self, client: AsyncClient, backend):
        """Test sign-out still succeeds locally when the identity service fails."""
        backend.errors["sign_out"] = NetworkError("offline")

        response = await client.post("/api/v1/session/sign-out")

        assert response.status_code == 200
        assert response.json()["remote_acknowledged"] is False

    @pytest.mark.asyncio
    async def test_reload_without_user(self, client: AsyncClient):
        response = await client.post("/api/v1/session/reload")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "invalid_state"
