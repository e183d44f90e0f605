import pytest

from tests.conftest import make_user, make_week, user_headers

ADDRESS = {"street": "El Nozha St", "building": "40", "area": "Heliopolis", "phone": "01001234567", "floor": "3"}


class TestMenuEndpoints:
    @pytest.mark.asyncio
    async def test_weeks_are_wrapped_and_generated(self, client, menu_week):
        week, _ = menu_week

        response = await client.get("/api/weeks")

        weeks = response.json()["weeks"]
        assert weeks[0]["id"] == week.id
        assert len(weeks) > 1

    @pytest.mark.asyncio
    async def test_current_menu(self, client, menu_week):
        week, meals = menu_week

        response = await client.get("/api/menu/current")

        body = response.json()
        assert body["week"]["id"] == week.id
        assert [meal["title"] for meal in body["meals"]] == [meal.title for meal in meals]

    @pytest.mark.asyncio
    async def test_no_current_week(self, client):
        response = await client.get("/api/weeks/current")
        assert response.status_code == 404
        assert response.json() == {"message": "No current week found"}

    @pytest.mark.asyncio
    async def test_pricing(self, client):
        body = (await client.get("/api/pricing")).json()
        assert body["meal_prices"]["4"] == 249.0
        assert body["meal_prices"]["15"] == 199.0
        assert body["large_meal_addon"] == 99.0
        assert body["express_delivery"] == 30.0
        assert (body["min_meals"], body["max_meals"]) == (4, 15)


class TestOrderFlow:
    @pytest.mark.asyncio
    async def test_build_skip_and_check_out(self, client, db, menu_week):
        week, meals = menu_week
        headers = user_headers(await make_user(db))

        created = await client.post("/api/orders", json={"week_id": "current", "meal_count": 4}, headers=headers)
        assert created.status_code == 201
        order_id = created.json()["id"]
        assert created.json()["status"] == "not_selected"

        added = await client.post(
            f"/api/orders/{order_id}/items", json={"meal_id": meals[0].id, "portion_size": "large"}, headers=headers
        )
        assert added.status_code == 201
        assert added.json()["price"] == 348.0

        by_week = await client.get("/api/orders/current", headers=headers)
        assert by_week.json()["status"] == "selected"
        assert by_week.json()["total"] == 348.0

        skipped = await client.patch(f"/api/orders/{order_id}/skip", headers=headers)
        assert skipped.json()["status"] == "skipped"
        unskipped = await client.patch(f"/api/orders/{order_id}/unskip", headers=headers)
        assert unskipped.json()["status"] == "selected"

        checkout = await client.post("/api/orders/checkout", json={
            "order_id": order_id, "delivery_address": ADDRESS, "payment_method": "card",
        }, headers=headers)
        assert checkout.status_code == 200
        body = checkout.json()
        assert body["success"] is True
        assert "/api/payments/paymob/response?" in body["payment_url"]
        assert body["order"]["payment_status"] == "processing"
        assert body["order"]["delivery_address"]["floor"] == "3"
        assert body["order"]["delivery_address"]["phone"] == "+201001234567"

        pending = await client.get("/api/orders/pending", headers=headers)
        assert pending.json()["id"] == order_id

    @pytest.mark.asyncio
    async def test_remove_item(self, client, db, menu_week):
        week, meals = menu_week
        headers = user_headers(await make_user(db))
        order = (await client.post("/api/orders", json={
            "week_id": week.id, "meal_count": 4, "items": [{"meal_id": meals[1].id}],
        }, headers=headers)).json()
        items = (await client.get(f"/api/orders/{order['id']}/items", headers=headers)).json()
        assert items[0]["meal"]["title"] == meals[1].title

        response = await client.delete(f"/api/orders/{order['id']}/items/{items[0]['id']}", headers=headers)

        assert response.json()["status"] == "not_selected"

    @pytest.mark.asyncio
    async def test_no_order_for_week_is_null(self, client, db, menu_week):
        headers = user_headers(await make_user(db))
        assert (await client.get("/api/orders/pending", headers=headers)).status_code == 404
        response = await client.get("/api/orders/current", headers=headers)
        assert response.status_code == 404
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_closed_week_reports_deadline(self, client, db):
        week = await make_week(db, days_ahead=2)
        headers = user_headers(await make_user(db))

        response = await client.post("/api/orders", json={"week_id": week.id, "meal_count": 4}, headers=headers)

        assert response.status_code == 400
        assert response.json() == {"message": "Order deadline has passed", "code": "deadline_passed"}

    @pytest.mark.asyncio
    async def test_checkout_of_someone_elses_order(self, client, db, menu_week):
        week, meals = menu_week
        owner = user_headers(await make_user(db))
        other = user_headers(await make_user(db, "karim", phone="01112345678"))
        order = (await client.post("/api/orders", json={
            "week_id": week.id, "meal_count": 4, "items": [{"meal_id": meals[0].id}],
        }, headers=owner)).json()

        response = await client.post("/api/orders/checkout", json={
            "order_id": order["id"], "delivery_address": ADDRESS,
        }, headers=other)

        assert response.status_code == 403


class TestAccountEndpoints:
    @pytest.mark.asyncio
    async def test_upcoming_meals(self, client, db, menu_week):
        week, _ = menu_week
        headers = user_headers(await make_user(db))

        upcoming = (await client.get("/api/user/upcoming-meals", headers=headers)).json()

        assert len(upcoming) == 4
        assert upcoming[0]["week_id"] == week.id
        assert all(entry["status"] == "not_selected" and entry["can_skip"] for entry in upcoming)

    @pytest.mark.asyncio
    async def test_subscription_pause_and_resume(self, client, db):
        headers = user_headers(await make_user(db))

        paused = await client.post("/api/user/subscription/pause", headers=headers)
        assert paused.json()["status"] == "paused"
        again = await client.post("/api/user/subscription/pause", headers=headers)
        assert again.status_code == 400

        resumed = await client.post("/api/user/subscription/resume", headers=headers)
        assert resumed.json()["status"] == "active"

    @pytest.mark.asyncio
    async def test_profile_update(self, client, db):
        headers = user_headers(await make_user(db))

        response = await client.patch("/api/user/profile", json={
            "name": "Mariam A.", "phone": "+20 150 000 1111", "address": {"street": "Road 9", "city": "Cairo"},
        }, headers=headers)

        body = response.json()
        assert body["name"] == "Mariam A."
        assert body["phone"] == "+201500001111"
        assert body["address"]["street"] == "Road 9"
