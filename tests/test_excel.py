import pytest
from filelock import FileLock

from wagba.models import PortionSize
from wagba.services import orders
from wagba.services.excel_manager import ExcelManager, build_week_rows, export_week_orders
from wagba.services.orders import SelectedMeal

from tests.conftest import make_user


@pytest.fixture
def manager(tmp_path):
    return ExcelManager(data_directory=str(tmp_path / "exports"), lock_timeout=1)


@pytest.fixture
async def week_with_orders(db, menu_week):
    week, meals = menu_week
    mariam = await make_user(db)
    karim = await make_user(db, "karim", phone="01112345678")
    await orders.create_order(db, mariam, week.id, 4, items=[
        SelectedMeal(meals[0].id),
        SelectedMeal(meals[2].id, PortionSize.LARGE),
    ])
    skipped = await orders.create_order(db, karim, week.id, 4, items=[SelectedMeal(meals[1].id)])
    await orders.skip_order(db, karim, skipped.id)
    return week, meals


class TestWeekRows:
    @pytest.mark.asyncio
    async def test_only_selected_orders_are_listed(self, db, week_with_orders):
        week, meals = week_with_orders

        rows = await build_week_rows(db, week.id)

        assert len(rows) == 1
        assert rows[0]["customer_email"] == "mariam@mail.com"
        assert rows[0]["meals"] == f"{meals[0].title} (standard); {meals[2].title} (large)"
        assert rows[0]["delivered"] is False


class TestExport:
    @pytest.mark.asyncio
    async def test_export_writes_week_sheet(self, db, week_with_orders, manager):
        week, meals = week_with_orders

        result = await export_week_orders(db, week.id, manager)

        assert result["success"] is True
        assert result["rows"] == 1
        assert result["file"].endswith(f"orders_{week.identifier}.xlsx")

        records = manager.read_week(week.identifier)
        assert len(records) == 1
        assert records[0]["customer_name"] == "Mariam"
        assert records[0]["exported_at"] == result["exported_at"]

    @pytest.mark.asyncio
    async def test_export_replaces_previous_sheet(self, db, week_with_orders, manager):
        week, _ = week_with_orders
        manager.write_week(week.identifier, [{"order_id": 1}, {"order_id": 2}])

        await export_week_orders(db, week.id, manager)

        assert len(manager.read_week(week.identifier)) == 1

    @pytest.mark.asyncio
    async def test_unknown_week(self, db, manager):
        result = await export_week_orders(db, 404, manager)
        assert result["success"] is False
        assert result["message"] == "Week not found"

    def test_missing_sheet_reads_empty(self, manager):
        assert manager.read_week("2026-W01") == []

    def test_lock_timeout(self, tmp_path):
        manager = ExcelManager(data_directory=str(tmp_path), lock_timeout=0)
        held = FileLock(f"{manager.file_for('2026-W43')}.lock")

        with held:
            result = manager.write_week("2026-W43", [{"order_id": 1}])

        assert result["success"] is False
        assert result["message"] == "Lock timeout (0s)"
        assert not manager.file_for("2026-W43").exists()
