"""
Celery Tasks
Background work: subscription billing, week generation and Excel exports.

The services are async; each task runs them in a fresh event loop and
disposes the engine's pool afterwards so no connection outlives its loop.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from wagba.celery_worker import celery_app
from wagba.database import async_session_maker, engine
from wagba.services.billing import process_weekly_billing
from wagba.services.excel_manager import export_week_orders
from wagba.services.weeks import ensure_future_weeks

logger = logging.getLogger(__name__)


def _run_with_session(job: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
    async def runner():
        try:
            async with async_session_maker() as session:
                return await job(session)
        finally:
            await engine.dispose()

    return asyncio.run(runner())


@celery_app.task(bind=True)
def process_subscription_billing(self) -> dict:
    """Hourly: charge subscription orders of weeks whose billing time has come."""
    start_time = time.time()
    report = _run_with_session(process_weekly_billing)
    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {self.request.id}: billing finished in {elapsed}s")
    return {**report.to_dict(), "task_id": self.request.id, "processing_time_seconds": elapsed}


@celery_app.task
def generate_future_weeks() -> dict:
    weeks = _run_with_session(ensure_future_weeks)
    return {"created": [week.identifier for week in weeks]}


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    retry_backoff=True
)
def export_week_orders_to_excel(self, week_id: int) -> dict:
    """
    Write the week's order sheet.

    Lock timeouts are retried; the sheet is rebuilt from the database on
    every attempt, so retries never duplicate rows.
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: exporting orders of week #{week_id}")
    start_time = time.time()

    result = _run_with_session(lambda db: export_week_orders(db, week_id))

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: week #{week_id} exported in {elapsed}s")
    elif result['message'].startswith("Lock timeout"):
        raise self.retry()
    else:
        logger.warning(f"Task {task_id}: week #{week_id} export failed - {result['message']}")
    return result


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
