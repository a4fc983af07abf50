from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select, update
from orderpay.common.utils import now
from orderpay.payments.constants import logger
from orderpay.payments.models import PaymentUpdate
from orderpay.schema.full_schema import CallbackEventStatus, MpesaCallbackEvent, Payment, PaymentStatus


async def create_payment(session, order_id: int, amount: Decimal, method: str,
                         status: str = PaymentStatus.INITIATED.value, user_id: Optional[int] = None,
                         checkout_request_id: Optional[str] = None,
                         merchant_request_id: Optional[str] = None) -> Payment:
    """Insert a payment row. A duplicate checkout_request_id raises IntegrityError at flush."""
    payment = Payment(
        order_id=order_id,
        user_id=user_id,
        amount=amount,
        method=method,
        status=status,
        checkout_request_id=checkout_request_id,
        merchant_request_id=merchant_request_id,
    )
    session.add(payment)
    await session.flush()
    return payment


async def create_pending_payment(session, order_id: int, user_id: Optional[int], amount: Decimal, method: str,
                                 checkout_request_id: str, merchant_request_id: Optional[str]) -> Payment:
    return await create_payment(
        session, order_id, amount, method,
        status=PaymentStatus.PENDING.value,
        user_id=user_id,
        checkout_request_id=checkout_request_id,
        merchant_request_id=merchant_request_id,
    )


async def find_payment_by_checkout_id(session, checkout_request_id: str) -> Optional[Payment]:
    stmt = select(Payment).where(Payment.checkout_request_id == checkout_request_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def update_payment_by_checkout_id(session, checkout_request_id: str, updates: PaymentUpdate) -> Optional[Payment]:
    """Sparse update keyed by the gateway correlation id.

    Only the fields set on ``updates`` are written , everything else on the row is left as is.
    Returns None when nothing was supplied or when no payment owns the correlation id.
    """
    values = updates.changes()
    if not values:
        logger.debug("payment.update.nothing_to_update", extra={"checkout_request_id": checkout_request_id})
        return None

    stmt = (
        update(Payment)
        .where(Payment.checkout_request_id == checkout_request_id)
        .values(**values, updated_at=now())
        .returning(Payment)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def find_all_payments(session) -> List[Payment]:
    stmt = select(Payment).order_by(Payment.created_at.desc(), Payment.id.desc())
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def find_payment_by_id(session, payment_id: int) -> Optional[Payment]:
    stmt = select(Payment).where(Payment.id == payment_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def update_payment_status_by_id(session, payment_id: int, status: str) -> Optional[Payment]:
    stmt = (
        update(Payment)
        .where(Payment.id == payment_id)
        .values(status=status, updated_at=now())
        .returning(Payment)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()

# ------------------------------------------------------------------------------------------------
# callback event log

async def record_callback_received(session, payload: Optional[dict], checkout_request_id: Optional[str] = None,
                                   result_code: Optional[int] = None,
                                   status: str = CallbackEventStatus.RECEIVED.value,
                                   last_error: Optional[str] = None) -> MpesaCallbackEvent:
    ev = MpesaCallbackEvent(
        checkout_request_id=checkout_request_id,
        result_code=result_code,
        payload=payload,
        status=status,
        last_error=last_error,
        attempts=1,
        created_at=now(),
    )
    session.add(ev)
    await session.flush()
    return ev


async def mark_callback_outcome(session, ev_id: int, status: str, last_error: Optional[str] = None):
    stmt = (
        update(MpesaCallbackEvent)
        .where(MpesaCallbackEvent.id == ev_id)
        .values(status=status, last_error=last_error, processed_at=now())
    )
    await session.execute(stmt)


async def callback_error_recorded(session, ev_id: int, last_error: str):
    stmt = (
        update(MpesaCallbackEvent)
        .where(MpesaCallbackEvent.id == ev_id)
        .values(status=CallbackEventStatus.ERRORED.value, last_error=last_error)
    )
    await session.execute(stmt)


async def bump_callback_attempts(session, ev_id: int):
    stmt = (
        update(MpesaCallbackEvent)
        .where(MpesaCallbackEvent.id == ev_id)
        .values(attempts=MpesaCallbackEvent.attempts + 1)
        .execution_options(synchronize_session="fetch")
    )
    await session.execute(stmt)


async def find_callback_event_by_id(session, ev_id: int) -> Optional[MpesaCallbackEvent]:
    stmt = select(MpesaCallbackEvent).where(MpesaCallbackEvent.id == ev_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def find_callback_events(session, status: Optional[str] = None, limit: int = 100) -> List[MpesaCallbackEvent]:
    stmt = select(MpesaCallbackEvent)
    if status:
        stmt = stmt.where(MpesaCallbackEvent.status == status)
    stmt = stmt.order_by(MpesaCallbackEvent.created_at.desc(), MpesaCallbackEvent.id.desc()).limit(limit)
    res = await session.execute(stmt)
    return list(res.scalars().all())
