from typing import List, Optional
from sqlalchemy import select, update
from orderpay.orders.constants import logger
from orderpay.orders.models import OrderCreateIn
from orderpay.schema.full_schema import Orders, OrderStatus


async def create_order(session, data: OrderCreateIn) -> Orders:
    order = Orders(
        customer_name=data.customer_name,
        product=data.product,
        amount=data.amount,
        status=OrderStatus.PENDING.value,
    )
    session.add(order)
    await session.flush()
    return order


async def find_all_orders(session) -> List[Orders]:
    stmt = select(Orders).order_by(Orders.created_at.desc(), Orders.id.desc())
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def find_order_by_id(session, order_id: int) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.id == order_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def update_order_status(session, order_id: int, status: str) -> Optional[Orders]:
    """Set only the status. Returns None when no order has this id."""
    stmt = (
        update(Orders)
        .where(Orders.id == order_id)
        .values(status=status)
        .returning(Orders)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    order = res.scalar_one_or_none()
    if order is None:
        logger.debug("order.update_status.not_found", extra={"order_id": order_id})
    return order


async def update_order_status_with_receipt_ref(session, order_id: int, status: str,
                                               receipt: Optional[str], transaction_id: Optional[str]) -> Optional[Orders]:
    stmt = (
        update(Orders)
        .where(Orders.id == order_id)
        .values(status=status, mpesa_receipt_number=receipt, transaction_id=transaction_id)
        .returning(Orders)
        .execution_options(populate_existing=True)
    )
    res = await session.execute(stmt)
    order = res.scalar_one_or_none()
    if order is None:
        logger.debug("order.update_receipt_ref.not_found", extra={"order_id": order_id})
    return order
