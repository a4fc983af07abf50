"""Matching of asynchronous stk callbacks to pending payments.

A callback is matched to its payment by CheckoutRequestID. The payment moves to
``completed`` or ``failed`` and the owning order follows (``paid`` /
``payment_failed``). Both writes share the caller's transaction; the order write
runs in a savepoint so a broken order update never undoes the payment update.
Nothing here commits , the caller does.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from sqlalchemy.exc import SQLAlchemyError
from orderpay.orders.repository import update_order_status, update_order_status_with_receipt_ref
from orderpay.payments.constants import (CALLBACK_SUCCESS_CODE, META_AMOUNT, META_PHONE, META_RECEIPT,
                                         META_TRANSACTION_DATE, logger)
from orderpay.payments.models import PaymentUpdate, StkCallbackIn
from orderpay.payments.repository import update_payment_by_checkout_id
from orderpay.schema.full_schema import Orders, OrderStatus, Payment, PaymentStatus


class ReconcileOutcome:
    COMPLETED = "completed"
    FAILED = "failed"
    UNMATCHED = "unmatched"


@dataclass
class ReconciliationResult:
    outcome: str
    checkout_request_id: str
    payment: Optional[Payment] = None
    order: Optional[Orders] = None
    order_updated: bool = False

    @property
    def matched(self) -> bool:
        return self.payment is not None


def derive_transaction_id(receipt: Any, transaction_date: Any) -> str:
    # missing parts render empty so the id keeps its "{receipt}-{date}" shape
    receipt = "" if receipt is None else str(receipt)
    transaction_date = "" if transaction_date is None else str(transaction_date)
    return f"{receipt}-{transaction_date}"


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning("reconcile.amount.unparseable", extra={"amount": str(value)})
        return None


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def success_update(callback: StkCallbackIn) -> PaymentUpdate:
    amount = callback.metadata_value(META_AMOUNT)
    receipt = _as_str(callback.metadata_value(META_RECEIPT))
    transaction_date = _as_str(callback.metadata_value(META_TRANSACTION_DATE))
    phone_number = _as_str(callback.metadata_value(META_PHONE))

    if receipt is None or transaction_date is None:
        logger.warning(
            "reconcile.metadata.incomplete",
            extra={"checkout_request_id": callback.CheckoutRequestID, "has_receipt": receipt is not None,
                   "has_transaction_date": transaction_date is not None},
        )

    fields = {
        "status": PaymentStatus.COMPLETED,
        "transaction_id": derive_transaction_id(receipt, transaction_date),
    }
    # absent metadata leaves the column untouched
    optional = {
        "mpesa_receipt_number": receipt,
        "amount_paid": parse_amount(amount),
        "transaction_date": transaction_date,
        "phone_number": phone_number,
    }
    fields.update({k: v for k, v in optional.items() if v is not None})
    return PaymentUpdate(**fields)


def failure_update(callback: StkCallbackIn) -> PaymentUpdate:
    return PaymentUpdate(
        status=PaymentStatus.FAILED,
        error_description=callback.ResultDesc,
        result_code=callback.ResultCode,
    )


async def _apply_order_update(session, payment: Payment, status: str, receipt: Optional[str] = None,
                              transaction_id: Optional[str] = None, with_receipt: bool = False) -> Optional[Orders]:
    """Best-effort order transition. Failures are logged , never raised."""
    order_id = payment.order_id
    try:
        async with session.begin_nested():
            if with_receipt:
                order = await update_order_status_with_receipt_ref(session, order_id, status, receipt, transaction_id)
            else:
                order = await update_order_status(session, order_id, status)
    except SQLAlchemyError:
        logger.exception(
            "reconcile.order.update_failed",
            extra={"order_id": order_id, "payment_id": payment.id, "target_status": status},
        )
        return None

    if order is None:
        logger.error(
            "reconcile.order.inconsistent",
            extra={"order_id": order_id, "payment_id": payment.id, "target_status": status},
        )
    return order


async def reconcile(session, callback: StkCallbackIn) -> ReconciliationResult:
    checkout_id = callback.CheckoutRequestID

    if callback.ResultCode == CALLBACK_SUCCESS_CODE:
        updates = success_update(callback)
        logger.info(
            "reconcile.callback.success",
            extra={"checkout_request_id": checkout_id, "amount": str(updates.amount_paid),
                   "receipt": updates.mpesa_receipt_number},
        )

        payment = await update_payment_by_checkout_id(session, checkout_id, updates)
        if payment is None:
            logger.warning("reconcile.payment.unmatched", extra={"checkout_request_id": checkout_id})
            return ReconciliationResult(outcome=ReconcileOutcome.UNMATCHED, checkout_request_id=checkout_id)

        order = await _apply_order_update(
            session, payment, OrderStatus.PAID.value,
            receipt=payment.mpesa_receipt_number,
            transaction_id=payment.transaction_id,
            with_receipt=True,
        )
        if order is not None:
            logger.info("reconcile.order.paid", extra={"order_id": order.id, "payment_id": payment.id})

        return ReconciliationResult(
            outcome=ReconcileOutcome.COMPLETED,
            checkout_request_id=checkout_id,
            payment=payment,
            order=order,
            order_updated=order is not None,
        )

    logger.info(
        "reconcile.callback.failure",
        extra={"checkout_request_id": checkout_id, "result_code": callback.ResultCode,
               "result_desc": callback.ResultDesc},
    )
    payment = await update_payment_by_checkout_id(session, checkout_id, failure_update(callback))
    if payment is None:
        logger.warning("reconcile.payment.unmatched", extra={"checkout_request_id": checkout_id})
        return ReconciliationResult(outcome=ReconcileOutcome.UNMATCHED, checkout_request_id=checkout_id)

    order = await _apply_order_update(session, payment, OrderStatus.PAYMENT_FAILED.value)

    return ReconciliationResult(
        outcome=ReconcileOutcome.FAILED,
        checkout_request_id=checkout_id,
        payment=payment,
        order=order,
        order_updated=order is not None,
    )
