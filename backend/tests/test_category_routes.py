"""/api/categories route tests, including the optional and require-identity modes."""

import pytest

from conftest import create_user
from expense_tracker.auth.tokens import issue_token
from expense_tracker.models.category import DEFAULT_CATEGORIES

NEW_CATEGORY = {"name": "Pets", "icon": "🐶", "color": "#AABBCC"}


class TestListing:

    @pytest.mark.asyncio
    async def test_anonymous_sees_defaults(self, client, database):
        response = await client.get("/api/categories")

        categories = response.json()["data"]["categories"]
        assert len(categories) == len(DEFAULT_CATEGORIES)
        assert all(c["is_default"] for c in categories)

    @pytest.mark.asyncio
    async def test_bad_credential_is_ignored(self, client, database):
        response = await client.get(
            "/api/categories", headers={"Authorization": "Bearer expired.or.forged"}
        )

        assert response.status_code == 200
        assert len(response.json()["data"]["categories"]) == len(DEFAULT_CATEGORIES)

    @pytest.mark.asyncio
    async def test_own_categories_visible_only_to_owner(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        assert created.status_code == 201
        assert created.json()["data"]["category"]["is_default"] is False

        mine = await client.get("/api/categories", headers=auth_headers)
        anonymous = await client.get("/api/categories")

        assert "Pets" in {c["name"] for c in mine.json()["data"]["categories"]}
        assert "Pets" not in {c["name"] for c in anonymous.json()["data"]["categories"]}


class TestManagement:

    @pytest.mark.asyncio
    async def test_duplicate_of_default_name(self, client, auth_headers):
        response = await client.post(
            "/api/categories",
            json={"name": "Groceries", "icon": "🛒", "color": "#112233"},
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["message"] == "Category with this name already exists"

    @pytest.mark.asyncio
    async def test_invalid_color(self, client, auth_headers):
        response = await client.post(
            "/api/categories", json={**NEW_CATEGORY, "color": "red"}, headers=auth_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_own_category(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        category_id = created.json()["data"]["category"]["id"]

        response = await client.delete(f"/api/categories/{category_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Category deleted successfully"

    @pytest.mark.asyncio
    async def test_category_in_use_cannot_be_deleted(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        category_id = created.json()["data"]["category"]["id"]
        await client.post(
            "/api/expenses",
            json={"category_id": category_id, "amount": 9.99, "description": "Dog food",
                  "date": "2024-02-02"},
            headers=auth_headers,
        )

        response = await client.delete(f"/api/categories/{category_id}", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete category that is being used by expenses"

    @pytest.mark.asyncio
    async def test_default_categories_cannot_be_deleted(self, client, auth_headers):
        categories = (await client.get("/api/categories")).json()["data"]["categories"]

        response = await client.delete(
            f"/api/categories/{categories[0]['id']}", headers=auth_headers
        )

        assert response.status_code == 404


class TestPopular:

    @pytest.mark.asyncio
    async def test_requires_identity(self, client, database):
        response = await client.get("/api/categories/popular")

        assert response.status_code == 401
        assert response.json()["message"] == "Authentication required"

    @pytest.mark.asyncio
    async def test_ranked_by_usage(self, client, auth_headers):
        categories = (await client.get("/api/categories")).json()["data"]["categories"]
        ids = {c["name"]: c["id"] for c in categories}
        for amount in (5, 7):
            await client.post(
                "/api/expenses",
                json={"category_id": ids["Travel"], "amount": amount, "description": "Bus",
                      "date": "2024-02-02"},
                headers=auth_headers,
            )

        response = await client.get("/api/categories/popular", headers=auth_headers)

        top = response.json()["data"]["categories"][0]
        assert (top["name"], top["usage_count"], top["total_spent"]) == ("Travel", 2, 12)


class TestUpdate:

    @pytest.mark.asyncio
    async def test_rename_and_recolor(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        category_id = created.json()["data"]["category"]["id"]

        response = await client.put(
            f"/api/categories/{category_id}",
            json={"name": "  Pet Care ", "color": "#010203"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Category updated successfully"
        category = response.json()["data"]["category"]
        assert (category["name"], category["icon"], category["color"]) == ("Pet Care", "🐶", "#010203")

    @pytest.mark.asyncio
    async def test_requires_a_field(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        category_id = created.json()["data"]["category"]["id"]

        response = await client.put(f"/api/categories/{category_id}", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "No fields to update"

    @pytest.mark.asyncio
    async def test_rename_onto_existing_name(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        category_id = created.json()["data"]["category"]["id"]

        response = await client.put(
            f"/api/categories/{category_id}", json={"name": "Travel"}, headers=auth_headers
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_defaults_and_foreign_categories_are_not_editable(self, client, auth_headers):
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        own_id = created.json()["data"]["category"]["id"]
        default_id = (await client.get("/api/categories")).json()["data"]["categories"][0]["id"]
        bob = await create_user(email="bob@example.com", name="Bob")
        bob_headers = {"Authorization": f"Bearer {issue_token(bob.id)}"}

        default_edit = await client.put(
            f"/api/categories/{default_id}", json={"icon": "❓"}, headers=auth_headers
        )
        foreign_edit = await client.put(
            f"/api/categories/{own_id}", json={"icon": "❓"}, headers=bob_headers
        )

        assert default_edit.status_code == foreign_edit.status_code == 404


class TestCategoryStats:

    @pytest.mark.asyncio
    async def test_statistics_and_trend(self, client, auth_headers):
        ids = {
            c["name"]: c["id"]
            for c in (await client.get("/api/categories")).json()["data"]["categories"]
        }
        for amount, day in ((10, "2024-05-01"), (30, "2024-05-01"), (20, "2024-05-03")):
            await client.post(
                "/api/expenses",
                json={"category_id": ids["Groceries"], "amount": amount,
                      "description": "Market", "date": day},
                headers=auth_headers,
            )

        response = await client.get(
            f"/api/categories/{ids['Groceries']}/stats",
            params={"period": "all"},
            headers=auth_headers,
        )

        data = response.json()["data"]
        assert data["category"]["name"] == "Groceries"
        assert data["period"] == "all"
        assert data["statistics"] == {
            "transaction_count": 3,
            "total_amount": 60,
            "average_amount": 20,
            "min_amount": 10,
            "max_amount": 30,
        }
        assert data["spending_trend"] == [
            {"date": "2024-05-03", "daily_total": 20},
            {"date": "2024-05-01", "daily_total": 40},
        ]

    @pytest.mark.asyncio
    async def test_empty_category(self, client, auth_headers):
        category_id = (await client.get("/api/categories")).json()["data"]["categories"][0]["id"]

        response = await client.get(f"/api/categories/{category_id}/stats", headers=auth_headers)

        data = response.json()["data"]
        assert data["statistics"]["transaction_count"] == 0
        assert data["statistics"]["total_amount"] == 0
        assert data["spending_trend"] == []

    @pytest.mark.asyncio
    async def test_anonymous_caller(self, client, auth_headers):
        default_id = (await client.get("/api/categories")).json()["data"]["categories"][0]["id"]
        created = await client.post("/api/categories", json=NEW_CATEGORY, headers=auth_headers)
        own_id = created.json()["data"]["category"]["id"]

        visible = await client.get(f"/api/categories/{default_id}/stats")
        hidden = await client.get(f"/api/categories/{own_id}/stats")

        assert visible.status_code == 401
        assert visible.json()["message"] == "Authentication required for category statistics"
        assert hidden.status_code == 404
