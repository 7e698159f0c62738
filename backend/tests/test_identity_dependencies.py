"""
Request identity modes (mandatory, optional, require-identity) against an
in-memory user store, mounted on a minimal app with the real error handlers.
"""

from datetime import timedelta
from typing import Optional

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient

from expense_tracker.auth.dependencies import (
    get_user_store,
    optional_user,
    require_identity,
    require_user,
)
from expense_tracker.auth.identity import (
    Identity,
    IdentityResolver,
    InMemoryUserStore,
)
from expense_tracker.auth.tokens import issue_token
from expense_tracker.error_handlers import register_exception_handlers
from expense_tracker.exceptions import IdentityNotFoundError

ALICE = Identity(id=1, email="alice@example.com", name="Alice")


class FailingUserStore:
    async def get_user_by_id(self, user_id: int) -> Optional[Identity]:
        raise ConnectionError("database is down")


def build_app(store) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.dependency_overrides[get_user_store] = lambda: store

    @app.get("/private")
    async def private(request: Request, user: Identity = Depends(require_user)):
        return {"id": user.id, "state_id": request.state.user.id}

    @app.get("/open")
    async def open_route(user: Optional[Identity] = Depends(optional_user)):
        return {"id": user.id if user else None}

    @app.get("/gated")
    async def gated(user: Identity = Depends(require_identity)):
        return {"id": user.id}

    return app


@pytest.fixture
def store():
    return InMemoryUserStore({ALICE.id: ALICE})


@pytest_asyncio.fixture
async def client(store):
    transport = ASGITransport(app=build_app(store), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestMandatory:

    @pytest.mark.asyncio
    async def test_valid_credential_attaches_identity(self, client, store):
        response = await client.get("/private", headers=bearer(issue_token(ALICE.id)))

        assert response.status_code == 200
        assert response.json() == {"id": 1, "state_id": 1}
        assert store.lookups == 1

    @pytest.mark.asyncio
    async def test_missing_credential(self, client):
        response = await client.get("/private")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Access token is required"
        assert body["status"] == 401

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_counts_as_missing(self, client):
        response = await client.get("/private", headers={"Authorization": "Basic Zm9vOmJhcg=="})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_tampered_credential(self, client, store):
        header, _, signature = issue_token(ALICE.id).split(".")
        forged_payload = issue_token(2).split(".")[1]
        response = await client.get(
            "/private", headers=bearer(f"{header}.{forged_payload}.{signature}")
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Invalid or expired token"
        assert store.lookups == 0

    @pytest.mark.asyncio
    async def test_expired_credential(self, client):
        token = issue_token(ALICE.id, expires_in=timedelta(seconds=-1))
        response = await client.get("/private", headers=bearer(token))

        assert response.status_code == 403
        assert response.json()["message"] == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_deleted_subject(self, client, store):
        token = issue_token(ALICE.id)
        store.remove(ALICE.id)

        response = await client.get("/private", headers=bearer(token))

        assert response.status_code == 403
        assert response.json()["message"] == "User no longer exists"

    @pytest.mark.asyncio
    async def test_store_failure(self):
        transport = ASGITransport(app=build_app(FailingUserStore()), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.get("/private", headers=bearer(issue_token(ALICE.id)))

        assert response.status_code == 500
        assert response.json()["message"] == "Authentication error"


class TestOptional:

    @pytest.mark.asyncio
    async def test_anonymous(self, client):
        response = await client.get("/open")
        assert response.json() == {"id": None}

    @pytest.mark.asyncio
    async def test_valid_credential(self, client):
        response = await client.get("/open", headers=bearer(issue_token(ALICE.id)))
        assert response.json() == {"id": 1}

    @pytest.mark.asyncio
    async def test_malformed_credential_downgrades_to_anonymous(self, client):
        response = await client.get("/open", headers=bearer("not.a.token"))

        assert response.status_code == 200
        assert response.json() == {"id": None}

    @pytest.mark.asyncio
    async def test_deleted_subject_downgrades_to_anonymous(self, client, store):
        token = issue_token(ALICE.id)
        store.remove(ALICE.id)

        response = await client.get("/open", headers=bearer(token))
        assert response.json() == {"id": None}


class TestRequireIdentity:

    @pytest.mark.asyncio
    async def test_anonymous_rejected(self, client):
        response = await client.get("/gated")

        assert response.status_code == 401
        assert response.json()["message"] == "Authentication required"

    @pytest.mark.asyncio
    async def test_bad_credential_rejected_as_unauthenticated(self, client):
        response = await client.get("/gated", headers=bearer("garbage"))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_identified(self, client):
        response = await client.get("/gated", headers=bearer(issue_token(ALICE.id)))
        assert response.json() == {"id": 1}


class TestIdentityResolver:

    @pytest.mark.asyncio
    async def test_single_lookup_per_resolution(self, store):
        resolver = IdentityResolver(store)

        assert await resolver.resolve(ALICE.id) == ALICE
        assert await resolver.resolve(ALICE.id) == ALICE
        assert store.lookups == 2

    @pytest.mark.asyncio
    async def test_missing_subject(self, store):
        with pytest.raises(IdentityNotFoundError):
            await IdentityResolver(store).resolve(999)

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self):
        with pytest.raises(ConnectionError):
            await IdentityResolver(FailingUserStore()).resolve(1)
