import json
from datetime import datetime, timedelta

import pytest

from wagba.core.exceptions import (
    DeadlinePassedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from wagba.models import OrderStatus, PaymentStatus, PortionSize
from wagba.services import orders
from wagba.services.orders import SelectedMeal

from tests.conftest import make_user, make_week

ADDRESS = {"street": "26th of July St", "building": "12", "apartment": "4", "area": "Zamalek", "city": "Cairo"}


async def planned_order(db, user, week, meals, meal_count=4, portions=None):
    portions = portions or [PortionSize.STANDARD] * len(meals)
    return await orders.create_order(
        db, user, week.id, meal_count,
        items=[SelectedMeal(m.id, p) for m, p in zip(meals, portions)],
    )


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_items_select_the_order_and_price_it(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)

        order = await planned_order(db, user, week, meals[:2], meal_count=5,
                                    portions=[PortionSize.STANDARD, PortionSize.LARGE])

        assert order.status == OrderStatus.SELECTED
        assert order.payment_status == PaymentStatus.PENDING
        assert order.subtotal == 239.0 + 338.0
        assert order.discount == 20.0
        assert order.total == order.subtotal
        assert order.delivery_date == week.delivery_date
        items = await orders.get_order_items(db, order.id)
        assert [item.price for item in items] == [239.0, 338.0]

    @pytest.mark.asyncio
    async def test_plan_without_items_stays_not_selected(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)

        order = await orders.create_order(db, user, "current", 6)

        assert order.status == OrderStatus.NOT_SELECTED
        assert order.total == 0.0

    @pytest.mark.asyncio
    async def test_replanning_replaces_items(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)

        first = await planned_order(db, user, week, meals[:3])
        second = await planned_order(db, user, week, meals[:1], meal_count=7)

        assert second.id == first.id
        assert second.meal_count == 7
        assert len(await orders.get_order_items(db, second.id)) == 1
        assert second.total == 219.0

    @pytest.mark.asyncio
    async def test_replanning_to_no_items_reverts_to_not_selected(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        await planned_order(db, user, week, meals[:1])

        order = await planned_order(db, user, week, [])

        assert order.status == OrderStatus.NOT_SELECTED
        assert await orders.get_order_items(db, order.id) == []
        assert await orders.get_pending_order(db, user.id) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("meal_count", [3, 16])
    async def test_meal_count_bounds(self, db, menu_week, meal_count):
        week, _ = menu_week
        user = await make_user(db)
        with pytest.raises(ValidationError, match="between 4 and 15"):
            await orders.create_order(db, user, week.id, meal_count)

    @pytest.mark.asyncio
    async def test_more_items_than_meal_count(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        with pytest.raises(ValidationError, match="Cannot select more than 4 meals"):
            await planned_order(db, user, week, meals * 2, meal_count=4)

    @pytest.mark.asyncio
    async def test_items_cannot_be_mixed(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        with pytest.raises(ValidationError, match="standard or large"):
            await planned_order(db, user, week, meals[:1], portions=[PortionSize.MIXED])

    @pytest.mark.asyncio
    async def test_unknown_meal(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)
        with pytest.raises(NotFoundError):
            await orders.create_order(db, user, week.id, 4, items=[SelectedMeal(999)])

    @pytest.mark.asyncio
    async def test_closed_week(self, db):
        week = await make_week(db, days_ahead=2)
        user = await make_user(db)
        with pytest.raises(DeadlinePassedError) as exc_info:
            await orders.create_order(db, user, week.id, 4)
        assert exc_info.value.code == "deadline_passed"

    @pytest.mark.asyncio
    async def test_first_order_skips_earlier_open_weeks(self, db, menu_week):
        first_week, meals = menu_week
        later_week = await make_week(db, days_ahead=17)
        user = await make_user(db)

        await planned_order(db, user, later_week, meals[:1])

        earlier = await orders.get_order_for_week(db, user.id, first_week.id)
        assert earlier is not None
        assert earlier.status == OrderStatus.SKIPPED


class TestItems:
    @pytest.mark.asyncio
    async def test_add_until_full(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await orders.create_order(db, user, week.id, 4)

        for meal in meals + meals[:1]:
            await orders.add_item(db, user, order.id, meal.id)
        await db.refresh(order)
        assert order.status == OrderStatus.SELECTED
        assert order.total == 4 * 249.0

        with pytest.raises(ValidationError, match="Order already has 4 meals"):
            await orders.add_item(db, user, order.id, meals[0].id)

    @pytest.mark.asyncio
    async def test_removing_last_item_reverts_to_not_selected(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:1])
        item = (await orders.get_order_items(db, order.id))[0]

        order = await orders.remove_item(db, user, order.id, item.id)

        assert order.status == OrderStatus.NOT_SELECTED
        assert order.subtotal == 0.0

    @pytest.mark.asyncio
    async def test_other_users_order_is_not_found(self, db, menu_week):
        week, meals = menu_week
        owner = await make_user(db)
        intruder = await make_user(db, "youssef", phone="01112345678")
        order = await orders.create_order(db, owner, week.id, 4)

        with pytest.raises(NotFoundError):
            await orders.add_item(db, intruder, order.id, meals[0].id)


class TestSkipping:
    @pytest.mark.asyncio
    async def test_skip_and_unskip_restore_previous_status(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:2])

        skipped = await orders.skip_order(db, user, order.id)
        assert skipped.status == OrderStatus.SKIPPED
        assert skipped.previous_status == OrderStatus.SELECTED

        again = await orders.skip_order(db, user, order.id)
        assert again.previous_status == OrderStatus.SELECTED

        with pytest.raises(ValidationError, match="skipped order"):
            await orders.add_item(db, user, order.id, meals[2].id)

        restored = await orders.unskip_order(db, user, order.id)
        assert restored.status == OrderStatus.SELECTED
        assert restored.previous_status is None

    @pytest.mark.asyncio
    async def test_unskip_requires_skipped_order(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)
        order = await orders.create_order(db, user, week.id, 4)
        with pytest.raises(ValidationError, match="Order is not skipped"):
            await orders.unskip_order(db, user, order.id)

    @pytest.mark.asyncio
    async def test_skip_after_deadline(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)
        order = await orders.create_order(db, user, week.id, 4)
        with pytest.raises(DeadlinePassedError):
            await orders.skip_order(db, user, order.id, now=week.order_deadline + timedelta(minutes=1))


class TestUpcomingMeals:
    @pytest.mark.asyncio
    async def test_placeholders_use_latest_meal_count(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        await planned_order(db, user, week, meals[:2], meal_count=8)

        upcoming = await orders.get_upcoming_meals(db, user)

        assert len(upcoming) == 4
        assert upcoming[0]["week_id"] == week.id
        assert len(upcoming[0]["items"]) == 2
        assert all(entry["meal_count"] == 8 for entry in upcoming)
        assert all(entry["status"] == OrderStatus.NOT_SELECTED for entry in upcoming[1:])
        assert upcoming[0]["can_edit"] and upcoming[0]["can_skip"] and not upcoming[0]["can_unskip"]


class TestCheckout:
    @pytest.mark.asyncio
    async def test_card_checkout_starts_payment(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:2])

        result = await orders.checkout(db, user, order.id, {**ADDRESS, "phone": "0155 123 4567"})

        assert result.payment_url.startswith("http://test/api/payments/paymob/response?")
        assert result.order.payment_status == PaymentStatus.PROCESSING
        assert result.order.paymob_order_id
        assert json.loads(result.order.delivery_address)["phone"] == "+201551234567"

    @pytest.mark.asyncio
    async def test_cash_checkout_stays_pending(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:1])

        result = await orders.checkout(db, user, order.id, ADDRESS, payment_method="cash")

        assert result.payment_url is None
        assert result.order.payment_status == PaymentStatus.PENDING
        assert result.order.payment_method == "cash"

    @pytest.mark.asyncio
    async def test_empty_order(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)
        order = await orders.create_order(db, user, week.id, 4)
        with pytest.raises(ValidationError, match="Select at least one meal"):
            await orders.checkout(db, user, order.id, ADDRESS)

    @pytest.mark.asyncio
    async def test_invalid_phone(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:1])
        with pytest.raises(ValidationError) as exc_info:
            await orders.checkout(db, user, order.id, {**ADDRESS, "phone": "12345"})
        assert exc_info.value.details == {"field": "phone"}

    @pytest.mark.asyncio
    async def test_someone_elses_order(self, db, menu_week):
        week, meals = menu_week
        owner = await make_user(db)
        intruder = await make_user(db, "youssef", phone="01112345678")
        order = await planned_order(db, owner, week, meals[:1])
        with pytest.raises(PermissionDeniedError):
            await orders.checkout(db, intruder, order.id, ADDRESS)


class TestAdminUpdate:
    @pytest.mark.asyncio
    async def test_delivered_is_a_flag(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:1])

        updated = await orders.admin_update_order(db, order.id, {"delivered": True, "status": "cancelled"})

        assert updated.delivered is True
        assert updated.status == OrderStatus.SELECTED

    @pytest.mark.asyncio
    async def test_delivered_status_is_rejected(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)
        order = await orders.create_order(db, user, week.id, 4)
        with pytest.raises(ValidationError, match="Use delivered field"):
            await orders.admin_update_order(db, order.id, {"status": "delivered"})

    @pytest.mark.asyncio
    async def test_meal_count_change_reprices(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals[:2])

        updated = await orders.admin_update_order(db, order.id, {"meal_count": 10, "delivery_slot": "evening"})

        assert updated.total == 2 * 199.0
        assert updated.delivery_slot.value == "evening"

    @pytest.mark.asyncio
    async def test_invalid_enum_value(self, db, menu_week):
        week, _ = menu_week
        user = await make_user(db)
        order = await orders.create_order(db, user, week.id, 4)
        with pytest.raises(ValidationError, match="Invalid payment_status"):
            await orders.admin_update_order(db, order.id, {"payment_status": "refunded"})

    @pytest.mark.asyncio
    async def test_meal_count_below_selected_items(self, db, menu_week):
        week, meals = menu_week
        user = await make_user(db)
        order = await planned_order(db, user, week, meals + meals[:2], meal_count=5)

        with pytest.raises(ValidationError, match="more than 4 meals"):
            await orders.admin_update_order(db, order.id, {"meal_count": 4})

        await db.refresh(order)
        assert order.meal_count == 5
        assert len(await orders.get_order_items(db, order.id)) == 5


async def paid_order(db, menu_week):
    week, meals = menu_week
    user = await make_user(db)
    order = await planned_order(db, user, week, meals[:1])
    order.payment_status = PaymentStatus.PAID
    await db.commit()
    return user, week, meals, order


class TestPaidOrders:
    @pytest.mark.asyncio
    async def test_replanning_is_refused(self, db, menu_week):
        user, week, meals, order = await paid_order(db, menu_week)

        with pytest.raises(ValidationError, match="Order is already paid"):
            await planned_order(db, user, week, meals, portions=[PortionSize.LARGE] * 3)

        await db.refresh(order)
        assert order.total == 249.0
        assert len(await orders.get_order_items(db, order.id)) == 1

    @pytest.mark.asyncio
    async def test_items_cannot_change(self, db, menu_week):
        user, week, meals, order = await paid_order(db, menu_week)
        item = (await orders.get_order_items(db, order.id))[0]

        with pytest.raises(ValidationError, match="Order is already paid"):
            await orders.add_item(db, user, order.id, meals[1].id)
        with pytest.raises(ValidationError, match="Order is already paid"):
            await orders.remove_item(db, user, order.id, item.id)

        await db.refresh(order)
        assert order.total == 249.0
