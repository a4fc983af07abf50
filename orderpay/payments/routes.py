from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from orderpay.common.utils import success_response
from orderpay.db.dependencies import get_session
from orderpay.orders.repository import find_order_by_id
from orderpay.payments.constants import logger
from orderpay.payments.dependencies import get_gateway_client
from orderpay.payments.gateway import MpesaClient
from orderpay.payments.models import CallbackEventOut, PaymentCreateIn, PaymentOut, PaymentStatusIn, StkCallbackEnvelope, StkPushIn
from orderpay.payments.repository import (bump_callback_attempts, create_payment, find_all_payments, find_callback_event_by_id,
                                          find_callback_events, find_payment_by_id, update_payment_status_by_id)
from orderpay.payments.services import initiate_stk_payment, process_callback_event
from orderpay.schema.full_schema import CallbackEventStatus, PaymentStatus

payments_router=APIRouter()
payments_admin_router=APIRouter()
callbacks_admin_router=APIRouter()


def _payment_out(payment):
    return PaymentOut.model_validate(payment).model_dump(mode="json")


@payments_router.post("/")
async def create_manual_payment(payload: PaymentCreateIn, session: AsyncSession = Depends(get_session)):

    if payload.order_id is None or payload.amount is None or not payload.method:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="All fields are required")

    if await find_order_by_id(session, payload.order_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    payment = await create_payment(session, payload.order_id, payload.amount, payload.method,
                                   status=PaymentStatus.INITIATED.value)
    await session.commit()

    logger.info("payment.create.success", extra={"payment_id": payment.id, "order_id": payment.order_id})
    return success_response(_payment_out(payment), status_code=status.HTTP_201_CREATED)


@payments_router.post("/stk")
async def stk_push(payload: StkPushIn, session: AsyncSession = Depends(get_session),
                   gateway: MpesaClient = Depends(get_gateway_client)):

    data = await initiate_stk_payment(session, gateway, payload)
    await session.commit()
    return success_response(data)

# ------------------------------------------------------------------------------------------------
# admin

@payments_admin_router.get("/")
async def list_payments(session: AsyncSession = Depends(get_session)):
    payments = await find_all_payments(session)
    return success_response([_payment_out(p) for p in payments])


@payments_admin_router.get("/{payment_id}")
async def get_payment(payment_id: int, session: AsyncSession = Depends(get_session)):
    payment = await find_payment_by_id(session, payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return success_response(_payment_out(payment))


@payments_admin_router.put("/{payment_id}/status")
async def set_payment_status(payment_id: int, payload: PaymentStatusIn, session: AsyncSession = Depends(get_session)):
    payment = await update_payment_status_by_id(session, payment_id, payload.status.value)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    await session.commit()

    logger.info("payment.status.manual_update", extra={"payment_id": payment_id, "status": payload.status.value})
    return success_response(_payment_out(payment))


@callbacks_admin_router.get("/")
async def list_callback_events(status_filter: Optional[CallbackEventStatus] = Query(None, alias="status"),
                               limit: int = Query(100, ge=1, le=500),
                               session: AsyncSession = Depends(get_session)):
    events = await find_callback_events(session, status_filter.value if status_filter else None, limit)
    return success_response([CallbackEventOut.model_validate(ev).model_dump(mode="json") for ev in events])


@callbacks_admin_router.post("/{event_id}/replay")
async def replay_callback_event(event_id: int, session: AsyncSession = Depends(get_session)):
    ev = await find_callback_event_by_id(session, event_id)
    if not ev:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Callback event not found")

    try:
        callback = StkCallbackEnvelope.model_validate(ev.payload).Body.stkCallback
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Stored payload is not a valid stk callback")

    # the attempt counts even when the replay below fails and rolls back
    await bump_callback_attempts(session, event_id)
    await session.commit()

    try:
        result = await process_callback_event(session, event_id, callback)
    except Exception as e:
        # already recorded on the event as errored
        logger.exception("mpesa.callback.replay_failed", extra={"callback_event_id": event_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Callback replay failed", "details": f"{type(e).__name__}: {e}"},
        )

    logger.info("mpesa.callback.replayed", extra={"callback_event_id": event_id, "outcome": result.outcome})

    data = {
        "callback_event_id": event_id,
        "outcome": result.outcome,
        "order_updated": result.order_updated,
        "payment": _payment_out(result.payment) if result.payment is not None else None,
    }
    return success_response(data)
