"""
Paymob callbacks.

Paymob reports every transaction twice: a server-to-server "processed"
callback (JSON body, ``?hmac=`` in the query string) and the browser
redirect to the response URL (flattened fields plus ``hmac`` in the query
string). Both are verified and applied idempotently.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.exceptions import AuthenticationError, ValidationError
from wagba.database import get_db
from wagba.schemas import PaymentCallbackResponse
from wagba.services import payments
from wagba.services.notifications import get_notification_service
from wagba.services.payment import HMAC_FIELDS, TOKEN_HMAC_FIELDS, get_payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments/paymob", tags=["Payments"])


async def _settle(
    db: AsyncSession,
    data: dict[str, Any],
    background_tasks: BackgroundTasks,
) -> PaymentCallbackResponse:
    outcome = await payments.apply_transaction(db, data)
    if outcome.newly_paid:
        details = await payments.confirmation_details(db, outcome.order)
        if details is not None:
            background_tasks.add_task(get_notification_service().send_order_confirmation, **details)
    return PaymentCallbackResponse(
        success=outcome.success,
        message=outcome.message,
        order_id=outcome.order.id if outcome.order else None,
    )


@router.post("/webhook", response_model=PaymentCallbackResponse)
async def processed_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    hmac: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> PaymentCallbackResponse:
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        raise ValidationError("Invalid callback payload")
    callback_type = body.get("type")
    obj = body.get("obj") or {}
    service = get_payment_service()

    if callback_type == "TOKEN":
        if not service.verify_callback(obj, hmac, TOKEN_HMAC_FIELDS):
            raise AuthenticationError("Invalid HMAC signature")
        method = await payments.save_card_token(db, obj)
        return PaymentCallbackResponse(
            success=method is not None,
            message="Card saved" if method is not None else "Card not linked to a customer",
        )

    if callback_type != "TRANSACTION":
        logger.info(f"Ignoring Paymob callback of type {callback_type}")
        return PaymentCallbackResponse(success=False, message=f"Ignored callback type {callback_type}")

    if not service.verify_callback(obj, hmac, HMAC_FIELDS):
        raise AuthenticationError("Invalid HMAC signature")
    return await _settle(db, obj, background_tasks)


@router.get("/response", response_model=PaymentCallbackResponse)
async def response_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Browser redirect after checkout; the page shows ``message``."""
    params = dict(request.query_params)
    received = params.pop("hmac", None)

    if not get_payment_service().verify_callback(params, received, HMAC_FIELDS):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid payment signature", "order_id": None},
        )
    return await _settle(db, params, background_tasks)
