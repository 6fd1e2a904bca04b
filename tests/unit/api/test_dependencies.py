"""Tests for session, bearer and scope dependencies."""

from datetime import datetime, timedelta, timezone
from typing import Annotated
from unittest.mock import AsyncMock

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from sidan.api.errors import register_error_handlers
from sidan.auth import dependencies
from sidan.auth.dependencies import (
    OptionalAuth,
    RequiredAuth,
    get_jwt_manager,
    get_refresh_manager,
    require_scope,
)
from sidan.auth.errors import NotFound, StorageError
from sidan.auth.models import AuthContext, Session, utcnow
from sidan.auth.refresh import TokenRefreshManager
from sidan.auth.state_store_factory import get_state_store
from sidan.settings import settings


@pytest.fixture
def scoped_client(store, jwt_manager) -> TestClient:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/me")
    async def me(auth: RequiredAuth, request: Request):
        assert request.state.auth is auth
        return {"member_number": auth.member_number, "via": auth.via, "scopes": auth.scopes}

    @app.get("/write")
    async def write(auth: Annotated[AuthContext, Depends(require_scope("write:member"))]):
        return {"ok": True}

    @app.get("/maybe")
    async def maybe(auth: OptionalAuth):
        return {"member_number": auth.member_number if auth else None}

    app.dependency_overrides[get_state_store] = lambda: store
    app.dependency_overrides[get_jwt_manager] = lambda: jwt_manager
    return TestClient(app)


async def make_session(store, member_id=1, scopes=None, ttl=timedelta(hours=8)) -> Session:
    session = Session(
        id=f"sess-{member_id}-{ttl.total_seconds()}",
        member_id=member_id,
        scopes=scopes if scopes is not None else ["read:member", "write:member"],
        expires_at=utcnow() + ttl,
    )
    await store.create_session(session)
    return session


class TestSessionCookie:
    @pytest.mark.asyncio
    async def test_valid_session(self, scoped_client, store):
        session = await make_session(store)
        scoped_client.cookies.set("session_id", session.id)

        response = scoped_client.get("/me")

        assert response.status_code == 200
        assert response.json() == {
            "member_number": 42,
            "via": "session",
            "scopes": ["read:member", "write:member"],
        }
        assert (await store.get_session(session.id)).last_activity_at >= session.last_activity_at

    def test_no_credentials(self, scoped_client):
        response = scoped_client.get("/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "no session"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_unknown_session(self, scoped_client):
        scoped_client.cookies.set("session_id", "nope")
        response = scoped_client.get("/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "no session"

    @pytest.mark.asyncio
    async def test_expired_session_is_deleted(self, scoped_client, store):
        session = await make_session(store, ttl=timedelta(seconds=-1))
        scoped_client.cookies.set("session_id", session.id)

        response = scoped_client.get("/me")

        assert response.status_code == 401
        assert response.json()["detail"] == "session expired"
        with pytest.raises(NotFound):
            await store.get_session(session.id)

    @pytest.mark.asyncio
    async def test_missing_member(self, scoped_client, store):
        session = await make_session(store, member_id=999)
        scoped_client.cookies.set("session_id", session.id)

        response = scoped_client.get("/me")

        assert response.status_code == 401
        assert response.json()["detail"] == "member not found"

    @pytest.mark.asyncio
    async def test_invalidated_member_loses_session(self, scoped_client, store):
        session = await make_session(store, member_id=4)
        scoped_client.cookies.set("session_id", session.id)

        response = scoped_client.get("/me")

        assert response.status_code == 401
        assert response.json()["detail"] == "member not found"
        with pytest.raises(NotFound):
            await store.get_session(session.id)


class TestBearer:
    def test_valid_token(self, scoped_client, jwt_manager):
        token = jwt_manager.generate(7, "bob@example.com", ["read:member"], "github")
        response = scoped_client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["via"] == "bearer"
        assert response.json()["member_number"] == 7

    def test_expired_token(self, scoped_client, jwt_manager):
        issued = datetime.now(timezone.utc) - timedelta(hours=9)
        token = jwt_manager.generate(7, "bob@example.com", [], "github", now=issued)
        response = scoped_client.get("/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "token expired"

    def test_invalid_token(self, scoped_client):
        response = scoped_client.get("/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid token"

    def test_lowercase_prefix_is_not_a_credential(self, scoped_client, jwt_manager):
        token = jwt_manager.generate(7, "bob@example.com", [], "github")
        response = scoped_client.get("/me", headers={"Authorization": f"bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "no session"

    @pytest.mark.asyncio
    async def test_cookie_takes_precedence(self, scoped_client, store, jwt_manager):
        session = await make_session(store)
        scoped_client.cookies.set("session_id", session.id)
        token = jwt_manager.generate(7, "bob@example.com", [], "github")

        response = scoped_client.get("/me", headers={"Authorization": f"Bearer {token}"})

        assert response.json()["via"] == "session"
        assert response.json()["member_number"] == 42


class TestScopes:
    @pytest.mark.asyncio
    async def test_scope_present(self, scoped_client, store):
        session = await make_session(store)
        scoped_client.cookies.set("session_id", session.id)
        assert scoped_client.get("/write").status_code == 200

    @pytest.mark.asyncio
    async def test_scope_missing(self, scoped_client, store):
        session = await make_session(store, scopes=["read:member"])
        scoped_client.cookies.set("session_id", session.id)

        response = scoped_client.get("/write")

        assert response.status_code == 403
        assert response.json() == {"error": "forbidden", "detail": "insufficient permissions"}

    def test_scope_requires_auth_first(self, scoped_client):
        assert scoped_client.get("/write").status_code == 401


class TestOptional:
    def test_anonymous(self, scoped_client):
        response = scoped_client.get("/maybe")
        assert response.status_code == 200
        assert response.json() == {"member_number": None}

    def test_bad_token_is_anonymous(self, scoped_client):
        response = scoped_client.get("/maybe", headers={"Authorization": "Bearer garbage"})
        assert response.json() == {"member_number": None}

    def test_authenticated(self, scoped_client, jwt_manager):
        token = jwt_manager.generate(7, "bob@example.com", [], "github")
        response = scoped_client.get("/maybe", headers={"Authorization": f"Bearer {token}"})
        assert response.json() == {"member_number": 7}

    def test_storage_failure_is_anonymous(self, scoped_client, store):
        store.get_session = AsyncMock(side_effect=StorageError("db down"))
        scoped_client.cookies.set("session_id", "sess-1")

        response = scoped_client.get("/maybe")

        assert response.status_code == 200
        assert response.json() == {"member_number": None}

    def test_storage_failure_still_fails_required_auth(self, scoped_client, store):
        store.get_session = AsyncMock(side_effect=StorageError("db down"))
        scoped_client.cookies.set("session_id", "sess-1")
        assert scoped_client.get("/me").status_code == 500


def test_refresh_manager_uses_configured_skew(monkeypatch):
    monkeypatch.setattr(dependencies, "_refresh_manager", None)
    monkeypatch.setattr(settings.auth, "refresh_skew_seconds", 60)

    manager = get_refresh_manager()

    assert isinstance(manager, TokenRefreshManager)
    assert manager.skew == timedelta(seconds=60)
    assert get_refresh_manager() is manager
