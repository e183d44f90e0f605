"""
Excel File Manager with Concurrency Control

Process-safe weekly order sheets for the kitchen and delivery team. Each
export rewrites ``orders_<week identifier>.xlsx`` under a file lock, so a
Celery export and an admin-triggered export never interleave.
"""

import json
import logging
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.config import get_settings
from wagba.models import Meal, Order, OrderItem, OrderStatus, User, Week, utcnow

logger = logging.getLogger(__name__)


class ExcelManager:
    """Writes one order sheet per menu week."""

    ORDER_COLUMNS = [
        "order_id",
        "customer_name",
        "customer_email",
        "customer_phone",
        "delivery_address",
        "delivery_notes",
        "delivery_slot",
        "meal_count",
        "meals",
        "subtotal",
        "discount",
        "total",
        "payment_method",
        "payment_status",
        "order_type",
        "delivered",
        "exported_at",
    ]

    def __init__(self, data_directory: str = None, lock_timeout: int = None):
        settings = get_settings()
        self.data_dir = Path(data_directory or settings.data_directory)
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.excel_lock_timeout

    def _ensure_data_dir(self) -> None:
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")

    def file_for(self, week_identifier: str) -> Path:
        return self.data_dir / f"orders_{week_identifier}.xlsx"

    def write_week(self, week_identifier: str, rows: list[dict[str, Any]]) -> dict[str, Any]:
        """Replace the week's sheet with ``rows``, under the file lock."""
        self._ensure_data_dir()
        file_path = self.file_for(week_identifier)
        result = {
            "success": False,
            "message": "",
            "week": week_identifier,
            "rows": len(rows),
            "file": str(file_path),
            "exported_at": None,
        }

        try:
            lock = FileLock(f"{file_path}.lock", timeout=self.lock_timeout)
            with lock:
                logger.debug(f"Lock acquired for week {week_identifier}")
                export_time = utcnow().isoformat()
                df = pd.DataFrame(
                    [{**row, "exported_at": export_time} for row in rows],
                    columns=self.ORDER_COLUMNS,
                )
                df.to_excel(str(file_path), index=False, engine="openpyxl")

                logger.info(f"Exported {len(rows)} order(s) for week {week_identifier}")
                result["success"] = True
                result["message"] = f"{len(rows)} order(s) exported"
                result["exported_at"] = export_time

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Lock timeout for week {week_identifier}")

        except OSError as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting week {week_identifier}")

        return result

    def read_week(self, week_identifier: str) -> list[dict[str, Any]]:
        file_path = self.file_for(week_identifier)
        if not file_path.exists():
            return []
        df = pd.read_excel(file_path, engine="openpyxl")
        return df.to_dict("records")


def _address_line(raw: str) -> str:
    if not raw:
        return ""
    try:
        address = json.loads(raw)
    except ValueError:
        return raw
    if not isinstance(address, dict):
        return str(address)
    parts = [address.get(k) for k in ("street", "building", "apartment", "area", "city")]
    return ", ".join(str(p) for p in parts if p)


async def build_week_rows(db: AsyncSession, week_id: int) -> list[dict[str, Any]]:
    """One row per selected order of the week, meals listed by title."""
    result = await db.execute(
        select(Order, User)
        .join(User, User.id == Order.user_id)
        .where(Order.week_id == week_id, Order.status == OrderStatus.SELECTED)
        .order_by(Order.id)
    )
    rows = []
    for order, user in result.all():
        items = await db.execute(
            select(OrderItem.portion_size, Meal.title)
            .join(Meal, Meal.id == OrderItem.meal_id)
            .where(OrderItem.order_id == order.id)
            .order_by(OrderItem.id)
        )
        meals = "; ".join(f"{title} ({portion.value})" for portion, title in items.all())
        rows.append({
            "order_id": order.id,
            "customer_name": user.name or user.username,
            "customer_email": user.email,
            "customer_phone": user.phone,
            "delivery_address": _address_line(order.delivery_address),
            "delivery_notes": order.delivery_notes,
            "delivery_slot": order.delivery_slot.value,
            "meal_count": order.meal_count,
            "meals": meals,
            "subtotal": order.subtotal,
            "discount": order.discount,
            "total": order.total,
            "payment_method": order.payment_method,
            "payment_status": order.payment_status.value,
            "order_type": order.order_type.value,
            "delivered": order.delivered,
        })
    return rows


async def export_week_orders(db: AsyncSession, week_id: int, manager: ExcelManager = None) -> dict[str, Any]:
    week = await db.get(Week, week_id)
    if week is None:
        return {"success": False, "message": "Week not found", "week": None, "rows": 0}
    rows = await build_week_rows(db, week_id)
    return (manager or ExcelManager()).write_week(week.identifier, rows)
