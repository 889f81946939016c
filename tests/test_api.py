"""
Tests for the HTTP surface.

Route tests skip the app lifespan and inject their own engine through the
``get_engine`` dependency; the lifespan itself is tested last.
"""

import httpx
import pytest
from jose import jwt

from savestack import dependencies, main
from savestack.dependencies import get_engine
from savestack.main import app
from savestack.models import Provider
from savestack.services.token_service import TokenService


@pytest.fixture
async def client(capability_engine, settings, monkeypatch):
    monkeypatch.setattr(dependencies, "get_token_service", lambda: TokenService(settings))
    app.dependency_overrides[get_engine] = lambda: capability_engine
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def bearer(user_id: str = "user-1") -> dict:
    token = jwt.encode({"sub": user_id, "aud": "authenticated"}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


async def sign_in(client: httpx.AsyncClient) -> None:
    response = await client.post("/api/session", headers=bearer())
    assert response.status_code == 200


# =============================================================================
# HEALTH / SESSION
# =============================================================================

class TestHealthAndSession:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["secret_store"] == "ok"
        assert data["fallback_credential"] is False

    async def test_engine_not_started(self):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/capability")
        assert response.status_code == 503

    async def test_sign_in_requires_token(self, client):
        response = await client.post("/api/session")
        assert response.status_code == 401

    async def test_sign_in_rejects_bad_token(self, client):
        response = await client.post("/api/session", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_sign_in_and_out(self, client, capability_engine):
        response = await client.post("/api/session", headers=bearer())
        assert response.json()["user_id"] == "user-1"
        assert capability_engine.identity.is_signed_in

        response = await client.delete("/api/session")
        assert response.json()["signed_in"] is False
        assert not capability_engine.identity.is_signed_in


# =============================================================================
# CAPABILITY
# =============================================================================

class TestCapability:
    async def test_initial_state(self, client):
        data = (await client.get("/api/capability")).json()

        assert data["status"] == "unknown"
        assert data["offline"] is True
        assert data["ai_enabled"] is True
        assert data["signed_in"] is False

    async def test_check_without_session(self, client):
        response = await client.post("/api/capability/check")

        assert response.json()["outcome"] == "sign_in_required"
        signals = (await client.get("/api/capability/signals")).json()
        assert signals == [{"signal": "sign_in", "detail": {}}]
        assert (await client.get("/api/capability/signals")).json() == []

    async def test_check_after_storing_credential(self, client, capability_engine):
        await sign_in(client)
        session = capability_engine.identity.current_session()
        await capability_engine.vault.store(session, Provider.GEMINI, "AIza-user")

        data = (await client.post("/api/capability/check")).json()

        assert data["outcome"] == "ran"
        assert data["source"] == "cache"
        assert data["capability"] == "online"

    async def test_classify_error(self, client, capability_engine):
        capability_engine.state.mark_online()

        transient = (await client.post("/api/capability/errors", json={"message": "503 overloaded"})).json()
        assert transient == {"classification": "TRANSIENT", "offline": False}

        failure = (await client.post(
            "/api/capability/errors",
            json={"message": "Requested entity was not found."},
        )).json()
        assert failure == {"classification": "CAPABILITY_FAILURE", "offline": True}

    async def test_reenable(self, client, capability_engine):
        capability_engine.local_store.set("SAVESTACK_AI_ENABLED", "false")

        data = (await client.post("/api/capability/reenable")).json()

        assert data["ai_enabled"] is True


# =============================================================================
# ONBOARDING
# =============================================================================

class TestOnboarding:
    async def test_full_flow(self, client):
        await sign_in(client)

        created = await client.post("/api/onboarding", json={"provider": "gemini"})
        assert created.status_code == 201
        flow_id = created.json()["id"]

        entered = await client.put(f"/api/onboarding/{flow_id}", json={"value": "AIza-user"})
        assert entered.json()["has_value"] is True
        assert "AIza-user" not in entered.text

        submitted = await client.post(f"/api/onboarding/{flow_id}/submit")
        assert submitted.status_code == 200
        assert submitted.json() == {
            "provider": "gemini",
            "validated": True,
            "warning": None,
            "capability": "online",
        }

        status = (await client.get("/api/onboarding/vault-status")).json()
        assert status["gemini"] == {"stored": True, "restricted": False}

        assert (await client.get(f"/api/onboarding/{flow_id}")).status_code == 404

    async def test_submit_without_session(self, client):
        flow_id = (await client.post("/api/onboarding", json={})).json()["id"]
        await client.put(f"/api/onboarding/{flow_id}", json={"value": "AIza"})

        response = await client.post(f"/api/onboarding/{flow_id}/submit")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "IDENTITY_REQUIRED"
        assert (await client.get(f"/api/onboarding/{flow_id}")).json()["step"] == "failed"

    async def test_disable_flow(self, client):
        flow_id = (await client.post("/api/onboarding", json={})).json()["id"]

        early = await client.post(f"/api/onboarding/{flow_id}/disable/confirm")
        assert early.status_code == 400

        asked = await client.post(f"/api/onboarding/{flow_id}/disable")
        assert asked.json()["awaiting_disable_confirmation"] is True

        confirmed = await client.post(f"/api/onboarding/{flow_id}/disable/confirm")
        assert confirmed.json()["step"] == "disabled"
        assert (await client.get("/api/capability")).json()["ai_enabled"] is False

    async def test_skip_and_dismiss(self, client):
        first = (await client.post("/api/onboarding", json={})).json()["id"]
        skipped = await client.post(f"/api/onboarding/{first}/skip")
        assert skipped.json()["step"] == "skipped"
        assert (await client.get("/api/capability")).json()["onboarding_skipped"] is True

        second = (await client.post("/api/onboarding", json={})).json()["id"]
        assert (await client.delete(f"/api/onboarding/{second}")).status_code == 204
        assert (await client.delete(f"/api/onboarding/{second}")).status_code == 404


# =============================================================================
# LIFESPAN
# =============================================================================

class TestLifespan:
    async def test_uses_configured_database(self, settings, tmp_path, monkeypatch):
        db_path = tmp_path / "configured.db"
        configured = settings.model_copy(update={
            "database_url": f"sqlite+aiosqlite:///{db_path}",
            "create_tables_on_startup": True,
        })
        monkeypatch.setattr(main, "get_settings", lambda: configured)

        try:
            async with main.lifespan(app):
                engine = app.state.engine
                assert engine.settings is configured
                assert await engine.vault.check_store() is None
        finally:
            del app.state.engine

        assert db_path.exists()
