import pytest
from sqlalchemy import select

from wagba.models import OrderStatus, PasswordResetToken
from wagba.services.notifications import get_notification_service

from tests.conftest import PASSWORD, make_user

NEW_USER = {
    "username": "salma",
    "email": "Salma@Mail.com",
    "password": PASSWORD,
    "name": "Salma",
    "phone": "0122 345 6789",
}


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_signs_in(self, client):
        response = await client.post("/api/auth/register", json=NEW_USER)

        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["order_id"] is None
        assert body["user"]["email"] == "salma@mail.com"
        assert body["user"]["phone"] == "+201223456789"
        assert "password" not in body["user"]
        assert "wagba_auth" in response.cookies

        me = await client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.json()["username"] == "salma"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, db):
        await make_user(db, "salma")
        response = await client.post("/api/auth/register", json={**NEW_USER, "username": "salma2"})
        assert response.status_code == 400
        assert response.json() == {"message": "Email already exists"}

    @pytest.mark.asyncio
    async def test_invalid_body(self, client):
        response = await client.post("/api/auth/register", json={**NEW_USER, "email": "not-an-email"})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid request data"
        assert [error["field"] for error in body["errors"]] == ["email"]

    @pytest.mark.asyncio
    async def test_selections_made_before_signup_become_an_order(self, client, menu_week):
        week, meals = menu_week
        selections = {
            "week_id": week.id,
            "meal_count": 5,
            "portion_size": "standard",
            "selected_meals": [{"meal_id": meals[0].id}, {"meal_id": meals[1].id, "portion_size": "large"}],
            "delivery_slot": "evening",
        }
        stored = await client.post("/api/temp/meal-selections", json=selections)
        assert stored.status_code == 200
        assert (await client.get("/api/temp/meal-selections")).json()["meal_count"] == 5

        response = await client.post("/api/auth/register", json=NEW_USER)

        order_id = response.json()["order_id"]
        assert order_id is not None
        assert (await client.get("/api/temp/meal-selections")).status_code == 404

        items = await client.get(f"/api/orders/{order_id}/items")
        assert [item["portion_size"] for item in items.json()] == ["standard", "large"]

        pending = await client.get("/api/orders/pending")
        assert pending.json()["id"] == order_id
        assert pending.json()["status"] == OrderStatus.SELECTED.value
        assert pending.json()["delivery_slot"] == "evening"

        outbox = get_notification_service().outbox
        assert [mail["subject"] for mail in outbox] == ["Welcome to Wagba"]

    @pytest.mark.asyncio
    async def test_stale_selections_do_not_block_signup(self, client, db):
        await client.post("/api/temp/meal-selections", json={
            "week_id": 999, "meal_count": 4, "selected_meals": [{"meal_id": 1}],
        })

        response = await client.post("/api/auth/register", json=NEW_USER)

        assert response.status_code == 201
        assert response.json()["order_id"] is None


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_and_logout(self, client, db):
        user = await make_user(db)

        response = await client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id

        await client.post("/api/auth/logout")
        client.cookies.clear()
        assert (await client.get("/api/auth/me")).status_code == 401

    @pytest.mark.asyncio
    async def test_bad_password(self, client, db):
        user = await make_user(db)
        response = await client.post("/api/auth/login", json={"email": user.email, "password": "wrong-one"})
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_me_without_session_is_null(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_bearer_token_works_without_cookie(self, client):
        token = (await client.post("/api/auth/register", json=NEW_USER)).json()["token"]
        client.cookies.clear()

        response = await client.get("/api/user/profile", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["has_completed_onboarding"] is False

    @pytest.mark.asyncio
    async def test_protected_route_requires_login(self, client):
        response = await client.get("/api/user/profile")
        assert response.status_code == 401
        assert response.json() == {"message": "Unauthorized"}


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_unknown_email_gets_same_answer(self, client):
        response = await client.post("/api/auth/forgot-password", json={"email": "ghost@mail.com"})
        assert response.status_code == 200
        assert response.json()["message"] == "Password reset instructions sent if email exists"
        assert get_notification_service().outbox == []

    @pytest.mark.asyncio
    async def test_reset_flow(self, client, db):
        user = await make_user(db)

        await client.post("/api/auth/forgot-password", json={"email": user.email})
        token = (await db.execute(select(PasswordResetToken.token))).scalars().one()
        assert f"reset-password?token={token}" in get_notification_service().emails_to(user.email)[0]["text"]

        reset = await client.post("/api/auth/reset-password", json={"token": token, "password": "n3w-password"})
        assert reset.status_code == 200

        login = await client.post("/api/auth/login", json={"email": user.email, "password": "n3w-password"})
        assert login.status_code == 200

        reused = await client.post("/api/auth/reset-password", json={"token": token, "password": "another-one"})
        assert reused.status_code == 400
        assert reused.json()["message"] == "Invalid or expired reset token"
