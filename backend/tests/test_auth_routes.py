"""
/api/auth route tests against a SQLite database.

Each test stays within the auth policy's 5 requests per window; the
counter is fresh for every test.
"""

import pytest

from expense_tracker.auth.tokens import issue_token, verify_token

REGISTRATION = {"email": " Alice@Example.COM ", "password": "secret123", "name": " Alice "}


async def register(client, payload=None):
    return await client.post("/api/auth/register", json=payload or REGISTRATION)


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_returns_user_and_token(self, client, database):
        response = await register(client)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        user = body["data"]["user"]
        assert user["email"] == "alice@example.com"
        assert user["name"] == "Alice"
        assert "password_hash" not in user
        assert verify_token(body["data"]["token"]).subject_id == user["id"]

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, database):
        await register(client)
        response = await register(client, {**REGISTRATION, "email": "alice@example.com"})

        assert response.status_code == 409
        assert response.json()["message"] == "User already exists with this email"

    @pytest.mark.asyncio
    async def test_validation_failure_has_details_outside_production(self, client, database):
        response = await register(client, {"email": "not-an-email", "password": "123", "name": "A"})

        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        fields = {tuple(error["loc"])[-1] for error in body["details"]}
        assert {"email", "password", "name"} <= fields


class TestLogin:

    @pytest.mark.asyncio
    async def test_login(self, client, database):
        await register(client)
        response = await client.post(
            "/api/auth/login", json={"email": "ALICE@example.com", "password": "secret123"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_the_same(self, client, database):
        await register(client)
        wrong = await client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "nope-nope"}
        )
        unknown = await client.post(
            "/api/auth/login", json={"email": "bob@example.com", "password": "secret123"}
        )

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["message"] == unknown.json()["message"] == "Invalid email or password"


class TestCurrentUser:

    @pytest.mark.asyncio
    async def test_me(self, client, user, auth_headers):
        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == user.id

    @pytest.mark.asyncio
    async def test_me_after_account_deletion(self, client, database):
        response = await client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {issue_token(999)}"}
        )

        assert response.status_code == 403
        assert response.json()["message"] == "User no longer exists"

    @pytest.mark.asyncio
    async def test_update_profile(self, client, auth_headers):
        response = await client.put(
            "/api/auth/profile",
            json={"name": "Alice Smith", "preferences": {"currency": "EUR"}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        user = response.json()["data"]["user"]
        assert user["name"] == "Alice Smith"
        assert user["preferences"] == {"currency": "EUR"}

    @pytest.mark.asyncio
    async def test_update_profile_requires_a_field(self, client, auth_headers):
        response = await client.put("/api/auth/profile", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "No fields to update"

    @pytest.mark.asyncio
    async def test_refresh(self, client, user, auth_headers):
        response = await client.post("/api/auth/refresh", headers=auth_headers)

        assert response.status_code == 200
        assert verify_token(response.json()["data"]["token"]).subject_id == user.id


class TestPasswordChange:

    @pytest.mark.asyncio
    async def test_change_password_then_login(self, client, database):
        token = (await register(client)).json()["data"]["token"]
        headers = {"Authorization": f"Bearer {token}"}

        wrong = await client.put(
            "/api/auth/password",
            json={"currentPassword": "not-it", "newPassword": "better-secret"},
            headers=headers,
        )
        assert wrong.status_code == 401
        assert wrong.json()["message"] == "Current password is incorrect"

        changed = await client.put(
            "/api/auth/password",
            json={"currentPassword": "secret123", "newPassword": "better-secret"},
            headers=headers,
        )
        assert changed.status_code == 200

        login = await client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "better-secret"}
        )
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_route_limit_of_three_changes(self, client, auth_headers):
        body = {"currentPassword": "whatever", "newPassword": "new-secret"}
        for _ in range(3):
            response = await client.put("/api/auth/password", json=body, headers=auth_headers)
            assert response.status_code == 401

        response = await client.put("/api/auth/password", json=body, headers=auth_headers)

        assert response.status_code == 429
        assert response.json()["message"] == "Rate limit exceeded"
        assert response.headers["Retry-After"] == "3600"
