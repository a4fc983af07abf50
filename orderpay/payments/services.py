from typing import Any, Dict
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from orderpay.common.custom_exceptions import GatewayError
from orderpay.orders.repository import find_order_by_id
from orderpay.payments.constants import STK_METHOD, logger
from orderpay.payments.gateway import MpesaClient
from orderpay.payments.models import StkCallbackIn, StkPushIn
from orderpay.payments.reconciliation import ReconciliationResult, reconcile
from orderpay.payments.repository import callback_error_recorded, create_pending_payment, mark_callback_outcome
from orderpay.schema.full_schema import CallbackEventStatus, OrderStatus


async def initiate_stk_payment(session, gateway: MpesaClient, payload: StkPushIn) -> Dict[str, Any]:
    """Send the stk push and , once the gateway accepts it , store a pending payment keyed by its checkout id.

    Nothing is written when the gateway rejects the request. The caller commits.
    """
    if payload.amount is None or not payload.phone_number or payload.order_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Amount, phone number, and orderId required")
    if payload.amount != payload.amount.to_integral_value():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Amount must be a whole number of shillings")

    order = await find_order_by_id(session, payload.order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.status == OrderStatus.PAID.value:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Order already paid")
    order_id = order.id

    account_reference = payload.account_reference or "ORDER"

    try:
        result = await gateway.initiate(payload.amount, payload.phone_number, account_reference)
    except GatewayError as ex:
        logger.error("mpesa.stk_push.error", extra={"order_id": order_id, "error": ex.message, "http_status": ex.status_code})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Payment initiation failed",
                    "details": ex.details or "Internal server error. Check M-Pesa credentials."},
        )

    if not result.accepted:
        logger.error("mpesa.stk_push.rejected", extra={"order_id": order_id, "response_code": result.response_code,
                                                       "response_description": result.response_description})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "STK Push request denied by M-Pesa.", "details": result.response_description},
        )

    if not result.checkout_request_id:
        logger.error("mpesa.stk_push.missing_checkout_id", extra={"order_id": order_id, "response_code": result.response_code})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Payment initiation failed", "details": "gateway response carried no CheckoutRequestID"},
        )

    try:
        payment = await create_pending_payment(
            session,
            order_id=order_id,
            user_id=payload.user_id,
            amount=payload.amount,
            method=STK_METHOD,
            checkout_request_id=result.checkout_request_id,
            merchant_request_id=result.merchant_request_id,
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("payment.create_pending.failed", extra={"order_id": order_id,
                                                                 "checkout_request_id": result.checkout_request_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Payment initiation failed", "details": "could not record pending payment"},
        )

    logger.info("payment.pending.created", extra={"payment_id": payment.id, "order_id": order_id,
                                                  "checkout_request_id": result.checkout_request_id})

    return {
        "message": "STK Push initiated successfully. Awaiting payment confirmation.",
        "payment_id": payment.id,
        "checkout_request_id": result.checkout_request_id,
        "merchant_request_id": result.merchant_request_id,
        "customer_message": result.customer_message,
    }


async def process_callback_event(session, ev_id: int, callback: StkCallbackIn) -> ReconciliationResult:
    """Reconcile one recorded callback and store its outcome on the event row.

    Commits on success. On error the reconciliation work is rolled back , the error text
    is recorded on the event (own commit) and the exception is re-raised.
    """
    try:
        result = await reconcile(session, callback)
        if result.matched:
            await mark_callback_outcome(session, ev_id, CallbackEventStatus.PROCESSED.value)
        else:
            await mark_callback_outcome(session, ev_id, CallbackEventStatus.UNMATCHED.value,
                                        last_error="no payment found for checkout request id")
        await session.commit()
        return result

    except Exception as e:
        try:
            await session.rollback()
            await callback_error_recorded(session, ev_id, last_error=f"{type(e).__name__}: {e}")
            await session.commit()
        except Exception as rb_err:
            logger.error(
                "mpesa.callback.record_error_failure",
                exc_info=(type(rb_err), rb_err, rb_err.__traceback__),
                extra={"callback_event_id": ev_id},
            )
        raise
